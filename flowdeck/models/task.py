"""Task data model for flowdeck."""

from datetime import date, datetime, time
from typing import List, Optional
from enum import Enum
from pydantic import BaseModel, Field

from flowdeck.dates import combine_date_and_time, is_same_day
from flowdeck.models.recurrence import RecurringRule


class TaskStatus(str, Enum):
    """Task lifecycle status. The only source of truth for completion."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Priority(str, Enum):
    """Explicit priority. Compare with `rank`; the string values do not sort."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.NONE: 0,
    Priority.LOW: 1,
    Priority.MEDIUM: 2,
    Priority.HIGH: 3,
    Priority.URGENT: 4,
}


class TaskCategory(str, Enum):
    """System task categories."""
    UNCATEGORIZED = "uncategorized"
    WORK = "work"
    PERSONAL = "personal"
    HEALTH = "health"
    FINANCE = "finance"
    SHOPPING = "shopping"
    ERRANDS = "errands"
    LEARNING = "learning"
    HOME = "home"


class Task(BaseModel):
    """Canonical Task model.

    Transition helpers (completed, in_progress, stop_progress, ...) never mutate
    the instance; they return an updated copy.
    """

    id: str = Field(..., description="Unique task identifier (UUID v4)")
    title: str = Field(..., description="Task title")
    notes: Optional[str] = Field(None, description="Task notes or description")
    due_date: Optional[date] = Field(None, description="Due date (date-only)")
    due_time: Optional[time] = Field(None, description="Due wall-clock time, combined with due_date when set")
    reminder_date: Optional[datetime] = Field(None, description="Instant to fire a reminder")
    status: TaskStatus = Field(TaskStatus.PENDING, description="Lifecycle status")
    is_archived: bool = Field(False, description="Archived tasks are hidden from ranking and sync")
    priority: Priority = Field(Priority.NONE, description="Explicit user priority")
    category: TaskCategory = Field(TaskCategory.UNCATEGORIZED, description="System category")
    custom_category_id: Optional[str] = Field(
        None, description="User-defined category; takes precedence over category when set"
    )
    list_id: Optional[str] = Field(None, description="Owning task list")

    # Calendar linkage
    linked_event_id: Optional[str] = Field(None, description="Calendar event id (may churn)")
    calendar_item_external_id: Optional[str] = Field(
        None, description="Stable calendar identifier used to re-associate when the event id changes"
    )
    last_synced_at: Optional[datetime] = Field(None, description="Last reverse-sync write to this task")
    scheduled_start_time: Optional[datetime] = Field(None, description="Start of the linked calendar block")
    scheduled_end_time: Optional[datetime] = Field(None, description="End of the linked calendar block")

    estimated_duration_min: Optional[int] = Field(None, ge=0, description="Estimated duration in minutes")
    created_at: datetime = Field(..., description="Task creation timestamp")
    updated_at: datetime = Field(..., description="Task last update timestamp")
    started_at: Optional[datetime] = Field(None, description="When the current work session started")
    completed_at: Optional[datetime] = Field(None, description="Completion timestamp")
    accumulated_duration_sec: float = Field(
        0.0, ge=0.0, description="Seconds spent in progress, summed across sessions"
    )

    # Recurrence
    recurring_rule: Optional[RecurringRule] = Field(None, description="Recurrence definition")
    intraday_completions_today: int = Field(0, ge=0, description="Completions recorded on last_intraday_completion_date")
    last_intraday_completion_date: Optional[date] = Field(None, description="Day the intraday counter belongs to")

    # Hierarchy
    parent_task_id: Optional[str] = Field(None, description="Parent task id for subtasks")
    subtasks: List[str] = Field(default_factory=list, description="Ordered subtask ids")
    subtask_order: int = Field(0, description="Position within the parent's subtask list")

    # Soft delete
    is_deleted: bool = Field(False, description="Tombstone flag kept until deletes are committed")
    deleted_at: Optional[datetime] = Field(None, description="Soft-delete timestamp")

    ai_excluded: bool = Field(False, description="Whether task is excluded from AI processing")

    # Derived views

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def is_in_progress(self) -> bool:
        return self.status == TaskStatus.IN_PROGRESS

    @property
    def has_active_session(self) -> bool:
        """In progress because the user started work, not because of subtask progress."""
        return self.is_in_progress and self.started_at is not None

    @property
    def is_subtask(self) -> bool:
        return self.parent_task_id is not None

    @property
    def is_recurring(self) -> bool:
        return self.recurring_rule is not None

    @property
    def is_intraday_task(self) -> bool:
        return self.recurring_rule is not None and self.recurring_rule.is_intraday

    @property
    def effective_category_key(self) -> str:
        """Grouping key: the custom category when set, else the system category."""
        if self.custom_category_id:
            return f"custom:{self.custom_category_id}"
        return self.category.value

    @property
    def due_datetime(self) -> Optional[datetime]:
        """Due date combined with due time (midnight when no time is set)."""
        if self.due_date is None:
            return None
        return combine_date_and_time(self.due_date, self.due_time)

    @property
    def is_eligible_for_auto_sync(self) -> bool:
        return (
            self.due_date is not None
            and self.due_time is not None
            and (self.estimated_duration_min or 0) > 0
            and not self.is_completed
            and not self.is_archived
        )

    def intraday_target(self, for_date: date) -> int:
        """Completions expected on for_date (0 for non-intraday tasks)."""
        if not self.is_intraday_task:
            return 0
        from flowdeck.recurrence.engine import intraday_target_count
        return intraday_target_count(self.recurring_rule, for_date)

    def completions_for(self, today: date) -> int:
        """Intraday counter, treated as zero once the stored day has passed."""
        if not is_same_day(self.last_intraday_completion_date, today):
            return 0
        return self.intraday_completions_today

    def is_intraday_complete_for(self, today: date) -> bool:
        target = self.intraday_target(today)
        return target > 0 and self.completions_for(today) >= target

    def elapsed_time(self, now: datetime) -> float:
        """Total seconds worked, including the running session if any."""
        total = self.accumulated_duration_sec
        if self.is_in_progress and self.started_at is not None:
            total += max(0.0, (now - self.started_at).total_seconds())
        return total

    # Transitions

    def completed(self, now: datetime) -> "Task":
        """Mark complete, folding any running session into accumulated time."""
        task = self.stop_progress(now) if self.is_in_progress else self
        return task.model_copy(update={
            "status": TaskStatus.COMPLETED,
            "completed_at": now,
            "updated_at": now,
        })

    def uncompleted(self, now: datetime) -> "Task":
        return self.model_copy(update={
            "status": TaskStatus.PENDING,
            "completed_at": None,
            "updated_at": now,
        })

    def in_progress(self, now: datetime) -> "Task":
        if self.is_in_progress:
            return self
        return self.model_copy(update={
            "status": TaskStatus.IN_PROGRESS,
            "started_at": now,
            "completed_at": None,
            "updated_at": now,
        })

    def stop_progress(self, now: datetime) -> "Task":
        """Pause work: accumulate now - started_at and return to pending."""
        if not self.is_in_progress:
            return self
        return self.model_copy(update={
            "status": TaskStatus.PENDING,
            "accumulated_duration_sec": self.elapsed_time(now),
            "started_at": None,
            "updated_at": now,
        })

    def with_aggregated_status(self, status: TaskStatus, now: datetime) -> "Task":
        """Status derived from subtask progress. Never starts a work session."""
        task = self
        if status != TaskStatus.IN_PROGRESS and self.started_at is not None:
            task = self.stop_progress(now)
        if status == TaskStatus.COMPLETED:
            completed_at = self.completed_at or now
        else:
            completed_at = None
        return task.model_copy(update={
            "status": status,
            "completed_at": completed_at,
            "updated_at": now,
        })

    def increment_intraday_completion(self, today: date, now: Optional[datetime] = None) -> "Task":
        count = self.completions_for(today) + 1
        return self.model_copy(update={
            "intraday_completions_today": count,
            "last_intraday_completion_date": today,
            "updated_at": now or self.updated_at,
        })

    def reset_intraday_completions(self, now: Optional[datetime] = None) -> "Task":
        return self.model_copy(update={
            "intraday_completions_today": 0,
            "last_intraday_completion_date": None,
            "updated_at": now or self.updated_at,
        })
