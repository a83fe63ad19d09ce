"""Task creation factory for flowdeck.

This module centralizes task creation logic so every entry point (API, task
service, recurrence) applies the same defaults.
"""

import uuid
from datetime import date, datetime, time
from typing import Optional, Dict, Any

from flowdeck.models.recurrence import RecurringRule
from flowdeck.models.task import Task, TaskStatus, TaskCategory, Priority
from flowdeck.models.constants import DEFAULT_PRIORITY, DEFAULT_CATEGORY


def determine_ai_exclusion(title: str) -> bool:
    """Determine if a task should be AI-excluded based on title.

    A task is AI-excluded if its title starts with a period (`.`).

    Args:
        title: Task title to check

    Returns:
        True if task should be AI-excluded, False otherwise
    """
    return title.startswith('.') if title else False


def create_task_defaults() -> Dict[str, Any]:
    """Get default task values as a dictionary."""
    return {
        "status": TaskStatus.PENDING,
        "priority": DEFAULT_PRIORITY,
        "category": DEFAULT_CATEGORY,
        "is_archived": False,
        "accumulated_duration_sec": 0.0,
        "intraday_completions_today": 0,
        "subtasks": [],
        "ai_excluded": False,
    }


def create_task_base(
    title: str,
    now: Optional[datetime] = None,
    notes: Optional[str] = None,
    due_date: Optional[date] = None,
    due_time: Optional[time] = None,
    reminder_date: Optional[datetime] = None,
    priority: Optional[Priority] = None,
    category: Optional[TaskCategory] = None,
    custom_category_id: Optional[str] = None,
    list_id: Optional[str] = None,
    estimated_duration_min: Optional[int] = None,
    recurring_rule: Optional[RecurringRule] = None,
    parent_task_id: Optional[str] = None,
    subtask_order: int = 0,
    ai_excluded: Optional[bool] = None,
) -> Task:
    """Create a task with defaults, allowing overrides.

    Args:
        title: Task title (required)
        now: Creation timestamp (defaults to the current local time)
        notes: Task notes or description
        due_date: Due date
        due_time: Due wall-clock time
        reminder_date: Reminder instant
        priority: Explicit priority (defaults to NONE)
        category: System category (defaults to UNCATEGORIZED)
        custom_category_id: User-defined category id
        list_id: Owning list id
        estimated_duration_min: Estimated duration in minutes
        recurring_rule: Recurrence definition
        parent_task_id: Parent id when creating a subtask
        subtask_order: Position within the parent's subtask list
        ai_excluded: Whether task is excluded from AI processing (auto-determined if None)

    Returns:
        Task object with defaults applied
    """
    now = now or datetime.now()
    defaults = create_task_defaults()

    if ai_excluded is None:
        ai_excluded = determine_ai_exclusion(title)

    return Task(
        id=str(uuid.uuid4()),
        title=title,
        notes=notes,
        due_date=due_date,
        due_time=due_time,
        reminder_date=reminder_date,
        status=defaults["status"],
        is_archived=defaults["is_archived"],
        priority=priority if priority is not None else defaults["priority"],
        category=category if category is not None else defaults["category"],
        custom_category_id=custom_category_id,
        list_id=list_id,
        estimated_duration_min=estimated_duration_min,
        created_at=now,
        updated_at=now,
        accumulated_duration_sec=defaults["accumulated_duration_sec"],
        recurring_rule=recurring_rule,
        intraday_completions_today=defaults["intraday_completions_today"],
        parent_task_id=parent_task_id,
        subtasks=list(defaults["subtasks"]),
        subtask_order=subtask_order,
        ai_excluded=ai_excluded,
    )
