"""Database connection and session management for flowdeck.

Local SQLite by default; any SQLAlchemy URL can be supplied via `DATABASE_URL`.
"""

import os
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from flowdeck.config import get_settings

# Database URL - SQLite by default
DATABASE_URL = get_settings().database_url

SQLITE_BUSY_TIMEOUT_MS = 5000


def _is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in (database_url or "")


def get_engine_kwargs(database_url: str) -> dict:
    """Return deterministic create_engine kwargs for a DB URL.

    This is separated to allow deterministic unit testing without connecting.
    """
    engine_kwargs: dict = {
        "echo": os.getenv("DEBUG", "False").lower() == "true",
        "pool_pre_ping": True,
    }

    if _is_sqlite_url(database_url):
        # Debounced sync and re-rank run on timer threads.
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        return engine_kwargs

    engine_kwargs["pool_size"] = int(os.getenv("DB_POOL_SIZE", "5"))
    engine_kwargs["max_overflow"] = int(os.getenv("DB_MAX_OVERFLOW", "5"))
    engine_kwargs["pool_timeout"] = int(os.getenv("DB_POOL_TIMEOUT_SEC", "30"))
    return engine_kwargs


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    """Enable WAL, foreign keys and a busy timeout on each SQLite connection."""
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    finally:
        cursor.close()


def build_engine(database_url: str) -> Engine:
    built = create_engine(database_url, **get_engine_kwargs(database_url))
    if _is_sqlite_url(database_url):
        event.listen(built, "connect", _set_sqlite_pragmas)
    return built


# Module-level singletons used by the API container
engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()


def init_db(engine_override: Engine = None):
    """Create the schema if it does not exist yet."""
    # Register models on Base.metadata
    from flowdeck.database import models  # noqa: F401

    Base.metadata.create_all(bind=engine_override or engine)
