"""Pytest fixtures and configuration for flowdeck tests."""

import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
import uuid

from flowdeck.config import Settings
from flowdeck.database.database import Base
from flowdeck.database.repository import BlobRepository, TaskRepository
from flowdeck.integrations.calendar_store import InMemoryCalendarStore
from flowdeck.integrations.reminders import InMemoryReminderScheduler
from flowdeck.models.task import Task, TaskStatus, TaskCategory, Priority


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

# Tuesday morning; every clock-dependent test runs relative to this
NOW = datetime(2026, 3, 10, 9, 0)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
def db_session():
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    """
    # Register the table models on Base.metadata
    from flowdeck.database import models  # noqa: F401

    # Create engine with StaticPool for in-memory database
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create session
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def task_repository(db_session: Session):
    """Create a TaskRepository instance for testing."""
    return TaskRepository(db_session)


@pytest.fixture
def blob_repository(db_session: Session):
    return BlobRepository(db_session)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    """Settings with auto sync off and the keep completion policy."""
    return Settings()


@pytest.fixture
def calendar_store():
    return InMemoryCalendarStore()


@pytest.fixture
def reminders():
    return InMemoryReminderScheduler()


@pytest.fixture
def sample_task_base():
    """Base task data for creating test tasks.

    Returns a dict with default task attributes that can be overridden.
    """
    return {
        "id": str(uuid.uuid4()),
        "title": "Test Task",
        "notes": "Test notes",
        "status": TaskStatus.PENDING,
        "priority": Priority.NONE,
        "category": TaskCategory.UNCATEGORIZED,
        "created_at": NOW,
        "updated_at": NOW,
        "due_date": None,
        "due_time": None,
        "estimated_duration_min": 30,
        "ai_excluded": False,
    }


@pytest.fixture
def make_task(sample_task_base):
    """Factory for tasks with a fresh id on every call."""
    def _make(**overrides) -> Task:
        return Task(**{**sample_task_base, "id": str(uuid.uuid4()), **overrides})
    return _make


@pytest.fixture
def sample_task(sample_task_base):
    """Create a sample Task object for testing."""
    return Task(**sample_task_base)


@pytest.fixture
def ai_excluded_task(sample_task_base):
    """Create a task that is AI-excluded (title starts with period)."""
    return Task(**{**sample_task_base, "title": ".Private Task", "ai_excluded": True})


@pytest.fixture
def work_task(sample_task_base):
    """Create a work category task."""
    return Task(**{**sample_task_base, "category": TaskCategory.WORK})


@pytest.fixture
def container(db_session, settings, calendar_store, reminders, clock):
    """Fully wired services on the test database and in-memory calendar."""
    from flowdeck.api.dependencies import build_container
    return build_container(
        db_session,
        settings=settings,
        calendar_store=calendar_store,
        reminders=reminders,
        clock=clock,
    )


@pytest.fixture
def test_client(container):
    """Create a FastAPI test client with the service container overridden."""
    from flowdeck.api.app import app
    from flowdeck.api.dependencies import get_container

    app.dependency_overrides[get_container] = lambda: container

    with TestClient(app) as client:
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
