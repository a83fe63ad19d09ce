"""Runtime settings for flowdeck.

Values come from the environment (a local .env file is honored). Tests build
Settings directly instead of going through get_settings().
"""

import os
from enum import Enum
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class CompletionPolicy(str, Enum):
    """What happens to a linked calendar event when its task is completed."""
    KEEP = "keep"  # prefix the event title with a checkmark
    DELETE = "delete"  # remove the event and unlink the task


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


class Settings(BaseModel):
    database_url: str = "sqlite:///./flowdeck.db"

    calendar_auto_sync: bool = False
    calendar_completion_policy: CompletionPolicy = CompletionPolicy.KEEP
    calendar_busy_only: bool = Field(False, description="Push a generic title and no notes")
    calendar_provider: str = Field("memory", description="memory or google")
    google_calendar_id: str = "primary"
    time_zone: str = "UTC"

    # Debounce windows (seconds)
    rerank_debounce_sec: float = 1.0
    forward_sync_debounce_sec: float = 1.5
    reverse_sync_debounce_sec: float = 2.0
    conflict_scan_debounce_sec: float = 1.0
    snooze_check_interval_sec: float = 60.0
    calendar_poll_interval_sec: float = Field(60.0, description="Change polling for stores without push notifications")

    @classmethod
    def from_env(cls) -> "Settings":
        policy = os.getenv("CALENDAR_COMPLETION_POLICY", "keep").lower()
        try:
            completion_policy = CompletionPolicy(policy)
        except ValueError:
            completion_policy = CompletionPolicy.KEEP

        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./flowdeck.db"),
            calendar_auto_sync=_env_bool("CALENDAR_AUTO_SYNC"),
            calendar_completion_policy=completion_policy,
            calendar_busy_only=_env_bool("CALENDAR_BUSY_ONLY"),
            calendar_provider=os.getenv("CALENDAR_PROVIDER", "memory").lower(),
            google_calendar_id=os.getenv("GOOGLE_CALENDAR_ID", "primary"),
            time_zone=os.getenv("FLOWDECK_TIME_ZONE", "UTC"),
            rerank_debounce_sec=_env_float("RERANK_DEBOUNCE_SEC", 1.0),
            forward_sync_debounce_sec=_env_float("FORWARD_SYNC_DEBOUNCE_SEC", 1.5),
            reverse_sync_debounce_sec=_env_float("REVERSE_SYNC_DEBOUNCE_SEC", 2.0),
            conflict_scan_debounce_sec=_env_float("CONFLICT_SCAN_DEBOUNCE_SEC", 1.0),
            snooze_check_interval_sec=_env_float("SNOOZE_CHECK_INTERVAL_SEC", 60.0),
            calendar_poll_interval_sec=_env_float("CALENDAR_POLL_INTERVAL_SEC", 60.0),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
