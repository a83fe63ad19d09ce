"""Recurrence rule model for flowdeck.

A rule is attached to a task and evaluated by flowdeck.recurrence.engine whenever
the task is completed. Intraday rules (hourly, times per day) additionally drive
the per-day completion counter on the task.
"""

from __future__ import annotations

from datetime import datetime, time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


DEFAULT_ACTIVE_HOURS_START = 8
DEFAULT_ACTIVE_HOURS_END = 20
DEFAULT_HOUR_INTERVAL = 2
DEFAULT_TIMES_PER_DAY = 3

_WEEKDAY_SHORT_NAMES = {1: "Sun", 2: "Mon", 3: "Tue", 4: "Wed", 5: "Thu", 6: "Fri", 7: "Sat"}


class RecurringFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"
    HOURLY = "hourly"
    TIMES_PER_DAY = "times_per_day"

    @property
    def display_name(self) -> str:
        return {
            RecurringFrequency.DAILY: "Daily",
            RecurringFrequency.WEEKLY: "Weekly",
            RecurringFrequency.BIWEEKLY: "Every 2 Weeks",
            RecurringFrequency.MONTHLY: "Monthly",
            RecurringFrequency.YEARLY: "Yearly",
            RecurringFrequency.CUSTOM: "Custom",
            RecurringFrequency.HOURLY: "Hourly",
            RecurringFrequency.TIMES_PER_DAY: "Times Per Day",
        }[self]


class RecurringRule(BaseModel):
    """Declarative recurrence definition.

    Notes:
    - days_of_week uses 1=Sunday .. 7=Saturday and only applies to weekly rules.
    - Intraday fields (hour_interval, times_per_day, specific_times, active hours)
      only apply to hourly / times_per_day rules.
    - Active hours are compared by hour-of-day only.
    """

    frequency: RecurringFrequency
    interval: int = Field(1, ge=1, description="Repeat every N units")
    days_of_week: Optional[List[int]] = Field(None, description="Weekday numbers, 1=Sunday..7=Saturday")
    end_date: Optional[datetime] = None

    # Intraday specifics
    hour_interval: Optional[int] = Field(None, ge=1, le=12, description="For hourly: every N hours")
    times_per_day: Optional[int] = Field(None, ge=1, le=12, description="For times_per_day: target count")
    specific_times: Optional[List[time]] = None
    active_hours_start: Optional[time] = None
    active_hours_end: Optional[time] = None

    @field_validator("days_of_week")
    @classmethod
    def _validate_days_of_week(cls, v):
        if v is None:
            return None
        seen = set()
        out: List[int] = []
        for day in v:
            if day < 1 or day > 7:
                raise ValueError("days_of_week entries must be between 1 (Sunday) and 7 (Saturday)")
            if day not in seen:
                seen.add(day)
                out.append(day)
        return out

    @model_validator(mode="after")
    def _intraday_rules_have_no_weekdays(self):
        if self.is_intraday and self.days_of_week:
            raise ValueError("Intraday rules cannot use days_of_week")
        return self

    @property
    def is_intraday(self) -> bool:
        return self.frequency in (RecurringFrequency.HOURLY, RecurringFrequency.TIMES_PER_DAY)

    @property
    def start_hour(self) -> int:
        return self.active_hours_start.hour if self.active_hours_start else DEFAULT_ACTIVE_HOURS_START

    @property
    def end_hour(self) -> int:
        return self.active_hours_end.hour if self.active_hours_end else DEFAULT_ACTIVE_HOURS_END

    @property
    def has_active_hours(self) -> bool:
        return self.active_hours_start is not None and self.active_hours_end is not None

    def _frequency_unit(self) -> str:
        plural = self.interval != 1
        if self.frequency in (RecurringFrequency.DAILY, RecurringFrequency.CUSTOM):
            return "days" if plural else "day"
        if self.frequency in (RecurringFrequency.WEEKLY, RecurringFrequency.BIWEEKLY):
            return "weeks" if plural else "week"
        if self.frequency == RecurringFrequency.MONTHLY:
            return "months" if plural else "month"
        if self.frequency == RecurringFrequency.YEARLY:
            return "years" if plural else "year"
        if self.frequency == RecurringFrequency.HOURLY:
            return "hour" if (self.hour_interval or DEFAULT_HOUR_INTERVAL) == 1 else "hours"
        return "day"

    def display_description(self) -> str:
        """Human-readable summary, e.g. "Every 3 days on Mon, Wed until Jan 05, 2027"."""
        if self.frequency == RecurringFrequency.HOURLY:
            hours = self.hour_interval or DEFAULT_HOUR_INTERVAL
            description = f"Every {hours} hour{'' if hours == 1 else 's'}"
        elif self.frequency == RecurringFrequency.TIMES_PER_DAY:
            count = self.times_per_day or DEFAULT_TIMES_PER_DAY
            description = f"{count} time{'' if count == 1 else 's'} per day"
        else:
            description = self.frequency.display_name
            if self.interval > 1 and self.frequency != RecurringFrequency.BIWEEKLY:
                description = f"Every {self.interval} {self._frequency_unit()}"

        if self.days_of_week:
            names = [_WEEKDAY_SHORT_NAMES[d] for d in self.days_of_week]
            description += " on " + ", ".join(names)

        if self.end_date is not None:
            description += " until " + self.end_date.strftime("%b %d, %Y")

        return description

    def compact_display_format(self) -> str:
        """Short badge text for task cards ("1d", "3/wk", "2h", "3x/day")."""
        f = self.frequency
        if f == RecurringFrequency.DAILY:
            return f"{self.interval}d"
        if f == RecurringFrequency.WEEKLY:
            if self.days_of_week:
                return f"{len(self.days_of_week)}/wk"
            return f"{self.interval}w"
        if f == RecurringFrequency.BIWEEKLY:
            return "2w"
        if f == RecurringFrequency.MONTHLY:
            return f"{self.interval}mo"
        if f == RecurringFrequency.YEARLY:
            return f"{self.interval}y"
        if f == RecurringFrequency.CUSTOM:
            return f"{self.interval}d"
        if f == RecurringFrequency.HOURLY:
            return f"{self.hour_interval or DEFAULT_HOUR_INTERVAL}h"
        return f"{self.times_per_day or DEFAULT_TIMES_PER_DAY}x/day"
