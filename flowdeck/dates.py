"""Date and time helpers shared by the recurrence, scoring and sync engines.

All datetimes handled here are naive wall-clock values in the user's local
timezone. Hour-of-day and weekday semantics depend on that.
"""

from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta


def start_of_day(dt: datetime) -> datetime:
    """Return midnight at the start of dt's calendar day."""
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def at_time(day, hour: int, minute: int = 0) -> datetime:
    """Anchor an hour/minute onto a day (date or datetime), seconds zeroed."""
    if isinstance(day, datetime):
        day = day.date()
    return datetime.combine(day, time(hour=hour, minute=minute))


def combine_date_and_time(day: date, tod: Optional[time]) -> datetime:
    """Combine a date-only value with a wall-clock time (hour and minute only).

    If tod is None the result is midnight of day.
    """
    if isinstance(day, datetime):
        day = day.date()
    if tod is None:
        return datetime.combine(day, time(0, 0))
    return datetime.combine(day, time(hour=tod.hour, minute=tod.minute))


def weekday_number(dt) -> int:
    """Weekday as 1=Sunday .. 7=Saturday.

    Python's weekday() is Monday=0 .. Sunday=6.
    """
    return (dt.weekday() + 1) % 7 + 1


def add_days(dt: datetime, days: int) -> datetime:
    return dt + timedelta(days=days)


def add_hours(dt: datetime, hours: int) -> datetime:
    return dt + timedelta(hours=hours)


def add_weeks(dt: datetime, weeks: int) -> datetime:
    return dt + timedelta(weeks=weeks)


def add_months(dt: datetime, months: int) -> datetime:
    """Calendar-aware month arithmetic (Jan 31 + 1 month -> Feb 28/29)."""
    return dt + relativedelta(months=months)


def add_years(dt: datetime, years: int) -> datetime:
    """Calendar-aware year arithmetic (Feb 29 + 1 year -> Feb 28)."""
    return dt + relativedelta(years=years)


def is_same_day(a: Optional[date], b: Optional[date]) -> bool:
    if a is None or b is None:
        return False
    if isinstance(a, datetime):
        a = a.date()
    if isinstance(b, datetime):
        b = b.date()
    return a == b


def calculate_overlap(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> timedelta:
    """Length of the intersection of two half-open intervals (never negative)."""
    overlap_start = max(start1, start2)
    overlap_end = min(end1, end2)
    return max(timedelta(0), overlap_end - overlap_start)


def merge_intervals(intervals: List[Tuple[datetime, datetime]]) -> List[Tuple[datetime, datetime]]:
    """Merge overlapping or touching intervals into a sorted, disjoint list."""
    if not intervals:
        return []
    ordered = sorted(intervals, key=lambda iv: (iv[0], iv[1]))
    merged: List[Tuple[datetime, datetime]] = [ordered[0]]
    for start, end in ordered[1:]:
        last_start, last_end = merged[-1]
        if start <= last_end:
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged
