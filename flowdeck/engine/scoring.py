"""Deterministic priority scoring for flowdeck.

A task's base score is the sum of six independent factors, each clamped to its
own range, with the total clamped to [0, 100]. Learned feedback is applied on
top by the prioritization engine, never here.

This module is pure: same task + same instant + same last completed category
always produce the same score.
"""

from datetime import datetime, time
from typing import Dict, Optional

from flowdeck.models.task import Priority, Task, TaskCategory

MIN_SCORE = 0.0
MAX_SCORE = 100.0

# (low, high) bounds for each factor
DUE_DATE_RANGE = (5.0, 40.0)
PRIORITY_RANGE = (0.0, 25.0)
AGE_RANGE = (2.0, 10.0)
QUICK_WIN_RANGE = (0.0, 10.0)
TIME_OF_DAY_RANGE = (2.0, 10.0)
MOMENTUM_RANGE = (0.0, 5.0)

NO_DUE_DATE_SCORE = 5.0
UNKNOWN_DURATION_SCORE = 3.0
MOMENTUM_BONUS = 5.0

_PRIORITY_POINTS = {
    Priority.URGENT: 25.0,
    Priority.HIGH: 20.0,
    Priority.MEDIUM: 12.0,
    Priority.LOW: 5.0,
    Priority.NONE: 0.0,
}


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def effective_due(task: Task) -> Optional[datetime]:
    """Instant a task is due.

    A date-only due date means "by the end of that day".
    """
    if task.due_date is None:
        return None
    if task.due_time is None:
        return datetime.combine(task.due_date, time(23, 59, 59))
    return task.due_datetime


def due_date_score(task: Task, now: datetime) -> float:
    """Urgency from the due instant: 40 when overdue down to 5 beyond a week."""
    due = effective_due(task)
    if due is None:
        return NO_DUE_DATE_SCORE

    hours_until_due = (due - now).total_seconds() / 3600
    if hours_until_due < 0:
        score = 40.0
    elif hours_until_due < 2:
        score = 38.0
    elif hours_until_due < 24:
        score = 30 + (24 - hours_until_due) / 24 * 8
    elif hours_until_due < 48:
        score = 20 + (48 - hours_until_due) / 24 * 10
    elif hours_until_due < 168:
        score = 10 + (168 - hours_until_due) / 168 * 10
    else:
        score = 5.0
    return clamp(score, *DUE_DATE_RANGE)


def explicit_priority_score(task: Task) -> float:
    return clamp(_PRIORITY_POINTS[task.priority], *PRIORITY_RANGE)


def age_score(task: Task, now: datetime) -> float:
    """Older open tasks need attention. Measured from creation."""
    days = (now - task.created_at).total_seconds() / 86400
    if days > 14:
        score = 10.0
    elif days > 7:
        score = 7.0
    elif days > 3:
        score = 4.0
    else:
        score = 2.0
    return clamp(score, *AGE_RANGE)


def quick_win_score(task: Task) -> float:
    minutes = task.estimated_duration_min
    if minutes is None:
        return UNKNOWN_DURATION_SCORE
    if minutes <= 5:
        score = 10.0
    elif minutes <= 15:
        score = 8.0
    elif minutes <= 30:
        score = 5.0
    elif minutes <= 60:
        score = 2.0
    else:
        score = 0.0
    return clamp(score, *QUICK_WIN_RANGE)


def time_of_day_score(task: Task, hour: int) -> float:
    """How well the current hour suits the task's category.

    Mornings favor focused work, evenings personal and health tasks, business
    hours errands and shopping.
    """
    category = task.category
    if category == TaskCategory.WORK:
        if 6 <= hour < 12:
            score = 10.0
        elif 12 <= hour < 17:
            score = 6.0
        else:
            score = 2.0
    elif category in (TaskCategory.PERSONAL, TaskCategory.HEALTH):
        if hour >= 17:
            score = 10.0
        elif hour >= 12:
            score = 5.0
        else:
            score = 2.0
    elif category in (TaskCategory.ERRANDS, TaskCategory.SHOPPING):
        score = 8.0 if 10 <= hour < 18 else 2.0
    elif category == TaskCategory.LEARNING:
        score = 8.0 if (6 <= hour < 10 or 19 <= hour < 22) else 4.0
    else:
        score = 5.0
    return clamp(score, *TIME_OF_DAY_RANGE)


def momentum_score(task: Task, last_completed_category: Optional[TaskCategory]) -> float:
    if last_completed_category is None:
        return 0.0
    score = MOMENTUM_BONUS if task.category == last_completed_category else 0.0
    return clamp(score, *MOMENTUM_RANGE)


def score_breakdown(
    task: Task,
    now: datetime,
    last_completed_category: Optional[TaskCategory] = None,
) -> Dict[str, float]:
    """Per-factor contributions, keyed by factor name."""
    return {
        "due_date": due_date_score(task, now),
        "priority": explicit_priority_score(task),
        "age": age_score(task, now),
        "quick_win": quick_win_score(task),
        "time_of_day": time_of_day_score(task, now.hour),
        "momentum": momentum_score(task, last_completed_category),
    }


def calculate_priority_score(
    task: Task,
    now: datetime,
    last_completed_category: Optional[TaskCategory] = None,
) -> float:
    """Base priority score in [0, 100]."""
    total = sum(score_breakdown(task, now, last_completed_category).values())
    return clamp(total, MIN_SCORE, MAX_SCORE)
