"""Completion pattern model for flowdeck."""

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field

from flowdeck.dates import weekday_number
from flowdeck.models.task import Task, TaskCategory


def time_pattern_key(category: TaskCategory, hour: int) -> str:
    return f"{category.value}_{hour}"


def day_pattern_key(category: TaskCategory, weekday: int) -> str:
    return f"{category.value}_{weekday}"


class CompletionPatterns(BaseModel):
    """Aggregated completion counters used for momentum and insights.

    Counters are keyed "category_hour" and "category_weekday" (1=Sunday).
    average_completion_times holds a rolling average in seconds per category.
    """

    last_completed_category: Optional[TaskCategory] = None
    last_completed_time: Optional[datetime] = None
    category_time_patterns: Dict[str, int] = Field(default_factory=dict)
    category_day_patterns: Dict[str, int] = Field(default_factory=dict)
    average_completion_times: Dict[str, float] = Field(default_factory=dict)

    def record_completion(self, task: Task, now: datetime) -> None:
        category = task.category
        self.last_completed_category = category
        self.last_completed_time = now

        hour_key = time_pattern_key(category, now.hour)
        self.category_time_patterns[hour_key] = self.category_time_patterns.get(hour_key, 0) + 1

        day_key = day_pattern_key(category, weekday_number(now))
        self.category_day_patterns[day_key] = self.category_day_patterns.get(day_key, 0) + 1

        if task.estimated_duration_min is not None and task.completed_at is not None:
            actual = (task.completed_at - task.created_at).total_seconds()
            current = self.average_completion_times.get(category.value, task.estimated_duration_min * 60.0)
            self.average_completion_times[category.value] = (current + actual) / 2
