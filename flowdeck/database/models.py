"""SQLAlchemy database models for flowdeck."""

from datetime import datetime
from typing import Union, TypeVar, Type
import uuid
from sqlalchemy import Column, String, Integer, Float, Boolean, Date, DateTime, Time, Text, JSON

from flowdeck.database.database import Base
from flowdeck.models.task import TaskStatus, TaskCategory, Priority

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string)."""
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default."""
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


class TaskDB(Base):
    """Database model for Task.

    The ordered subtask list is not stored here; it is derived from
    parent_task_id + subtask_order by the repository.
    """

    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    title = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    due_date = Column(Date, nullable=True, index=True)
    due_time = Column(Time, nullable=True)
    reminder_date = Column(DateTime, nullable=True)

    status = Column(String, nullable=False, default=TaskStatus.PENDING.value, index=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    priority = Column(String, nullable=False, default=Priority.NONE.value)
    category = Column(String, nullable=False, default=TaskCategory.UNCATEGORIZED.value)
    custom_category_id = Column(String, nullable=True)
    list_id = Column(String, nullable=True, index=True)

    # Calendar linkage
    linked_event_id = Column(String, nullable=True, index=True)
    calendar_item_external_id = Column(String, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    scheduled_start_time = Column(DateTime, nullable=True)
    scheduled_end_time = Column(DateTime, nullable=True)

    estimated_duration_min = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    accumulated_duration_sec = Column(Float, nullable=False, default=0.0)

    # Recurrence (RecurringRule serialized as JSON)
    recurring_rule = Column(JSON, nullable=True)
    intraday_completions_today = Column(Integer, nullable=False, default=0)
    last_intraday_completion_date = Column(Date, nullable=True)

    # Hierarchy
    parent_task_id = Column(String, nullable=True, index=True)
    subtask_order = Column(Integer, nullable=False, default=0)

    # Soft delete
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    ai_excluded = Column(Boolean, nullable=False, default=False)

    def to_pydantic(self, subtask_ids=None):
        """Convert database model to Pydantic model."""
        from flowdeck.models.task import Task
        from flowdeck.models.recurrence import RecurringRule

        rule = RecurringRule.model_validate(self.recurring_rule) if self.recurring_rule else None

        return Task(
            id=self.id,
            title=self.title,
            notes=self.notes,
            due_date=self.due_date,
            due_time=self.due_time,
            reminder_date=self.reminder_date,
            status=value_to_enum(self.status, TaskStatus, TaskStatus.PENDING),
            is_archived=self.is_archived,
            priority=value_to_enum(self.priority, Priority, Priority.NONE),
            category=value_to_enum(self.category, TaskCategory, TaskCategory.UNCATEGORIZED),
            custom_category_id=self.custom_category_id,
            list_id=self.list_id,
            linked_event_id=self.linked_event_id,
            calendar_item_external_id=self.calendar_item_external_id,
            last_synced_at=self.last_synced_at,
            scheduled_start_time=self.scheduled_start_time,
            scheduled_end_time=self.scheduled_end_time,
            estimated_duration_min=self.estimated_duration_min,
            created_at=self.created_at,
            updated_at=self.updated_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            accumulated_duration_sec=self.accumulated_duration_sec or 0.0,
            recurring_rule=rule,
            intraday_completions_today=self.intraday_completions_today or 0,
            last_intraday_completion_date=self.last_intraday_completion_date,
            parent_task_id=self.parent_task_id,
            subtasks=list(subtask_ids or []),
            subtask_order=self.subtask_order or 0,
            is_deleted=self.is_deleted,
            deleted_at=self.deleted_at,
            ai_excluded=self.ai_excluded,
        )

    def apply(self, task) -> None:
        """Copy every stored field from a Pydantic Task onto this row."""
        self.title = task.title
        self.notes = task.notes
        self.due_date = task.due_date
        self.due_time = task.due_time
        self.reminder_date = task.reminder_date
        self.status = enum_to_value(task.status)
        self.is_archived = task.is_archived
        self.priority = enum_to_value(task.priority)
        self.category = enum_to_value(task.category)
        self.custom_category_id = task.custom_category_id
        self.list_id = task.list_id
        self.linked_event_id = task.linked_event_id
        self.calendar_item_external_id = task.calendar_item_external_id
        self.last_synced_at = task.last_synced_at
        self.scheduled_start_time = task.scheduled_start_time
        self.scheduled_end_time = task.scheduled_end_time
        self.estimated_duration_min = task.estimated_duration_min
        self.created_at = task.created_at
        self.updated_at = task.updated_at
        self.started_at = task.started_at
        self.completed_at = task.completed_at
        self.accumulated_duration_sec = task.accumulated_duration_sec
        self.recurring_rule = task.recurring_rule.model_dump(mode="json") if task.recurring_rule else None
        self.intraday_completions_today = task.intraday_completions_today
        self.last_intraday_completion_date = task.last_intraday_completion_date
        self.parent_task_id = task.parent_task_id
        self.subtask_order = task.subtask_order
        self.is_deleted = task.is_deleted
        self.deleted_at = task.deleted_at
        self.ai_excluded = task.ai_excluded

    @classmethod
    def from_pydantic(cls, task):
        """Create database model from Pydantic model."""
        task_db = cls(id=task.id)
        task_db.apply(task)
        return task_db


class KeyValueBlobDB(Base):
    """Opaque JSON blobs (suggestion feedback, completion patterns)."""

    __tablename__ = "key_value_blobs"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)
