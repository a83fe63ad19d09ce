"""Scheduling conflict model for flowdeck."""

import uuid
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional

from pydantic import BaseModel, Field

from flowdeck.models.calendar_event import CalendarEvent
from flowdeck.models.task import Task


class ConflictSeverity(IntEnum):
    """Ordered severity, low < medium < high."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @property
    def display_name(self) -> str:
        return self.name.capitalize()


class ConflictType(str, Enum):
    CALENDAR_EVENT = "calendar_event"  # task vs existing calendar event
    TASK_OVERLAP = "task_overlap"  # two tasks overlap
    NEW_MEETING = "new_meeting"  # newly added meeting vs task


class TaskConflict(BaseModel):
    """Computed on demand, never persisted."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    task: Task
    conflicting_event: Optional[CalendarEvent] = None
    conflicting_task: Optional[Task] = None
    conflict_time: datetime
    overlap_duration_sec: float = Field(..., gt=0)
    severity: ConflictSeverity
    type: ConflictType

    @property
    def formatted_overlap(self) -> str:
        minutes = int(self.overlap_duration_sec // 60)
        if minutes >= 60:
            hours, remaining = divmod(minutes, 60)
            if remaining:
                return f"{hours}h {remaining}m overlap"
            return f"{hours}h overlap"
        return f"{minutes}m overlap"

    @property
    def conflict_description(self) -> str:
        if self.type == ConflictType.CALENDAR_EVENT:
            title = self.conflicting_event.title if self.conflicting_event else "calendar event"
            return f'Conflicts with "{title}"'
        if self.type == ConflictType.TASK_OVERLAP:
            title = self.conflicting_task.title if self.conflicting_task else "another task"
            return f'Overlaps with "{title}"'
        title = self.conflicting_event.title if self.conflicting_event else ""
        return f'New meeting "{title}" conflicts'
