"""Calendar event model for flowdeck."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CalendarEvent(BaseModel):
    """Event as seen through a CalendarStore.

    event_id may change when the provider re-creates an event; external_id is
    the stable identifier used to find it again.
    """

    event_id: str = Field(..., description="Provider event identifier")
    external_id: Optional[str] = Field(None, description="Stable identifier across event id churn")
    title: str = Field("", description="Event title")
    notes: Optional[str] = Field(None, description="Event description")
    start: datetime = Field(..., description="Event start (local wall-clock)")
    end: datetime = Field(..., description="Event end (local wall-clock)")
    is_all_day: bool = False
    has_attendees: bool = False
    has_recurrence_rules: bool = False
    calendar_id: Optional[str] = None

    @property
    def duration_sec(self) -> float:
        return (self.end - self.start).total_seconds()
