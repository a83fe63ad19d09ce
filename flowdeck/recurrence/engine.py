"""Occurrence calculation for recurring tasks.

Pure functions: same rule + same reference instant always yield the same result.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import List, Optional

from flowdeck.dates import (
    add_days,
    add_hours,
    add_months,
    add_weeks,
    add_years,
    at_time,
    combine_date_and_time,
    weekday_number,
)
from flowdeck.models.recurrence import (
    DEFAULT_HOUR_INTERVAL,
    DEFAULT_TIMES_PER_DAY,
    RecurringFrequency,
    RecurringRule,
)
from flowdeck.models.task import Task
from flowdeck.models.task_factory import create_task_base

logger = logging.getLogger(__name__)

# Lookahead for weekly rules with explicit weekdays
WEEKDAY_SEARCH_DAYS = 14


def next_occurrence(rule: RecurringRule, from_instant: datetime) -> Optional[datetime]:
    """Compute the next occurrence strictly after from_instant.

    Returns None if from_instant is already past the rule's end date, or if the
    computed occurrence would land after it.
    """
    if rule.end_date is not None and from_instant > rule.end_date:
        return None

    f = rule.frequency
    if f in (RecurringFrequency.DAILY, RecurringFrequency.CUSTOM):
        next_dt = add_days(from_instant, rule.interval)
    elif f == RecurringFrequency.WEEKLY:
        if rule.days_of_week:
            next_dt = _find_next_weekday(from_instant, rule.days_of_week)
        else:
            next_dt = add_weeks(from_instant, rule.interval)
    elif f == RecurringFrequency.BIWEEKLY:
        next_dt = add_weeks(from_instant, 2 * rule.interval)
    elif f == RecurringFrequency.MONTHLY:
        next_dt = add_months(from_instant, rule.interval)
    elif f == RecurringFrequency.YEARLY:
        next_dt = add_years(from_instant, rule.interval)
    elif f == RecurringFrequency.HOURLY:
        next_dt = _next_hourly(rule, from_instant)
    else:
        next_dt = _next_times_per_day(rule, from_instant)

    if next_dt is not None and rule.end_date is not None and next_dt > rule.end_date:
        return None
    return next_dt


def _find_next_weekday(from_instant: datetime, weekdays: List[int]) -> Optional[datetime]:
    current = from_instant
    for _ in range(WEEKDAY_SEARCH_DAYS):
        current = add_days(current, 1)
        if weekday_number(current) in weekdays:
            return current
    # Unreachable for weekday sets validated to 1..7.
    logger.warning(f"No weekday in {weekdays} within {WEEKDAY_SEARCH_DAYS} days of {from_instant.isoformat()}")
    return None


def _next_hourly(rule: RecurringRule, from_instant: datetime) -> datetime:
    hours = rule.hour_interval or DEFAULT_HOUR_INTERVAL
    candidate = add_hours(from_instant, hours)

    # Unset active hours fall back to the 8..20 default window.
    if rule.start_hour <= candidate.hour <= rule.end_hour:
        return candidate

    # Outside the active window: first slot of the following day.
    return at_time(add_days(from_instant, 1), rule.start_hour)


def _distributed_hours(rule: RecurringRule, minimum_step: int = 0) -> List[int]:
    count = rule.times_per_day or DEFAULT_TIMES_PER_DAY
    step = (rule.end_hour - rule.start_hour) // count
    if minimum_step:
        step = max(minimum_step, step)
    return [rule.start_hour + i * step for i in range(count)]


def _sorted_specific_times(times: List[time]) -> List[time]:
    return sorted(times, key=lambda t: (t.hour, t.minute))


def _next_times_per_day(rule: RecurringRule, from_instant: datetime) -> Optional[datetime]:
    if rule.specific_times:
        ordered = _sorted_specific_times(rule.specific_times)
        current = (from_instant.hour, from_instant.minute)
        for t in ordered:
            if (t.hour, t.minute) > current:
                return at_time(from_instant, t.hour, t.minute)
        first = ordered[0]
        return at_time(add_days(from_instant, 1), first.hour, first.minute)

    hours = _distributed_hours(rule)
    for hour in hours:
        if hour > from_instant.hour:
            return at_time(from_instant, hour)
    first_hour = hours[0] if hours else rule.start_hour
    return at_time(add_days(from_instant, 1), first_hour)


def calculate_intraday_times(rule: RecurringRule, day) -> List[datetime]:
    """Enumerate every scheduled instant of an intraday rule on the given day.

    Non-intraday rules have no intraday schedule and return an empty list.
    """
    if isinstance(day, datetime):
        day = day.date()

    times: List[datetime] = []
    if rule.frequency == RecurringFrequency.HOURLY:
        step = rule.hour_interval or DEFAULT_HOUR_INTERVAL
        hour = rule.start_hour
        while hour <= rule.end_hour:
            times.append(at_time(day, hour))
            hour += step
    elif rule.frequency == RecurringFrequency.TIMES_PER_DAY:
        if rule.specific_times:
            times = [at_time(day, t.hour, t.minute) for t in rule.specific_times]
        else:
            times = [at_time(day, hour) for hour in _distributed_hours(rule, minimum_step=1)]
    return sorted(times)


def intraday_target_count(rule: RecurringRule, day: date) -> int:
    """Number of completions an intraday rule expects on the given day."""
    return len(calculate_intraday_times(rule, day))


def next_instance_for_completion(task: Task, now: Optional[datetime] = None) -> Optional[Task]:
    """Build the follow-up task for a completed recurring task.

    The next occurrence is computed from the task's due date (combined with its
    due time). The new task copies the descriptive fields and starts fresh:
    pending, no calendar link, no accumulated time. Returns None when the task
    has no rule, no due date, or the rule has ended.
    """
    if task.recurring_rule is None or task.due_date is None:
        return None

    next_dt = next_occurrence(task.recurring_rule, task.due_datetime)
    if next_dt is None:
        logger.debug(f"Recurrence for task {task.id} has ended")
        return None

    reminder = None
    if task.reminder_date is not None:
        reminder = combine_date_and_time(next_dt.date(), task.reminder_date.time())

    return create_task_base(
        title=task.title,
        now=now,
        notes=task.notes,
        due_date=next_dt.date(),
        due_time=task.due_time,
        reminder_date=reminder,
        priority=task.priority,
        category=task.category,
        custom_category_id=task.custom_category_id,
        list_id=task.list_id,
        estimated_duration_min=task.estimated_duration_min,
        recurring_rule=task.recurring_rule,
        ai_excluded=task.ai_excluded,
    )
