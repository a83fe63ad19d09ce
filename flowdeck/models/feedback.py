"""Suggestion feedback model for flowdeck.

Holds the bounded feedback log, the per-task score adjustments learned from it
and the active snoozes. Persistence is handled by flowdeck.engine.learning.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from flowdeck.dates import add_days, at_time
from flowdeck.models.task import TaskCategory


MAX_FEEDBACK_EVENTS = 200
MAX_ADJUSTMENT = 15.0
WEEKLY_DECAY_FACTOR = 0.95
DECAY_PRUNE_THRESHOLD = 0.5

EVENING_SNOOZE_HOUR = 18
TOMORROW_SNOOZE_HOUR = 9


class FeedbackAction(str, Enum):
    """User reaction to a suggestion."""
    STARTED_IMMEDIATELY = "started_immediately"
    VIEWED_DETAILS = "viewed_details"
    SNOOZED_1_HOUR = "snoozed_1_hour"
    SNOOZED_EVENING = "snoozed_evening"
    SNOOZED_TOMORROW = "snoozed_tomorrow"
    SKIPPED_NOT_RELEVANT = "skipped_not_relevant"
    SKIPPED_WRONG_TIME = "skipped_wrong_time"
    SKIPPED_NEEDS_FOCUS = "skipped_needs_focus"

    @property
    def adjustment_delta(self) -> float:
        return _ADJUSTMENT_DELTAS[self]

    @property
    def is_snooze(self) -> bool:
        return self in (
            FeedbackAction.SNOOZED_1_HOUR,
            FeedbackAction.SNOOZED_EVENING,
            FeedbackAction.SNOOZED_TOMORROW,
        )

    def snooze_until(self, now: datetime) -> Optional[datetime]:
        """Instant the snooze expires, or None for non-snooze actions.

        Evening means 18:00 today, or 18:00 tomorrow once that has passed.
        Tomorrow means 09:00 on the next day.
        """
        if self == FeedbackAction.SNOOZED_1_HOUR:
            return now + timedelta(hours=1)
        if self == FeedbackAction.SNOOZED_EVENING:
            evening = at_time(now, EVENING_SNOOZE_HOUR)
            if evening > now:
                return evening
            return at_time(add_days(now, 1), EVENING_SNOOZE_HOUR)
        if self == FeedbackAction.SNOOZED_TOMORROW:
            return at_time(add_days(now, 1), TOMORROW_SNOOZE_HOUR)
        return None


_ADJUSTMENT_DELTAS = {
    FeedbackAction.STARTED_IMMEDIATELY: 5.0,
    FeedbackAction.VIEWED_DETAILS: 1.0,
    FeedbackAction.SNOOZED_1_HOUR: -2.0,
    FeedbackAction.SNOOZED_EVENING: -3.0,
    FeedbackAction.SNOOZED_TOMORROW: -3.0,
    FeedbackAction.SKIPPED_NOT_RELEVANT: -5.0,
    FeedbackAction.SKIPPED_WRONG_TIME: -5.0,
    FeedbackAction.SKIPPED_NEEDS_FOCUS: -5.0,
}


class FeedbackEvent(BaseModel):
    """A single recorded reaction."""
    task_id: str
    action: FeedbackAction
    timestamp: datetime
    original_score: float
    task_category: TaskCategory = TaskCategory.UNCATEGORIZED
    hour_of_day: int = Field(..., ge=0, le=23)


def _clamp_adjustment(value: float) -> float:
    return max(-MAX_ADJUSTMENT, min(MAX_ADJUSTMENT, value))


class SuggestionFeedback(BaseModel):
    """Learned per-task bias on top of the deterministic score."""

    events: List[FeedbackEvent] = Field(default_factory=list)
    adjustments: Dict[str, float] = Field(default_factory=dict)
    snoozed_until: Dict[str, datetime] = Field(default_factory=dict)
    last_decay_date: datetime = Field(default_factory=datetime.now)

    def get_adjustment(self, task_id: str) -> float:
        return self.adjustments.get(task_id, 0.0)

    def record_feedback(
        self,
        task_id: str,
        action: FeedbackAction,
        original_score: float,
        task_category: TaskCategory,
        now: datetime,
    ) -> FeedbackEvent:
        """Append an event, move the task's adjustment by the action delta, snooze if needed."""
        event = FeedbackEvent(
            task_id=task_id,
            action=action,
            timestamp=now,
            original_score=original_score,
            task_category=task_category,
            hour_of_day=now.hour,
        )
        self.events.append(event)
        if len(self.events) > MAX_FEEDBACK_EVENTS:
            self.events = self.events[-MAX_FEEDBACK_EVENTS:]

        current = self.adjustments.get(task_id, 0.0)
        self.adjustments[task_id] = _clamp_adjustment(current + action.adjustment_delta)

        until = action.snooze_until(now)
        if until is not None:
            self.snoozed_until[task_id] = until
        return event

    def is_snoozed(self, task_id: str, now: datetime) -> bool:
        until = self.snoozed_until.get(task_id)
        return until is not None and until > now

    def clean_expired_snoozes(self, now: datetime) -> bool:
        """Drop elapsed snoozes. Returns True if any entry was removed."""
        before = len(self.snoozed_until)
        self.snoozed_until = {tid: until for tid, until in self.snoozed_until.items() if until > now}
        return len(self.snoozed_until) < before

    def apply_decay_if_needed(self, now: datetime) -> bool:
        """Apply 5% decay per full week since the last decay.

        Adjustments that fall below 0.5 in magnitude are dropped. Returns True
        when a decay was applied.
        """
        days = (now - self.last_decay_date).days
        if days < 7:
            return False

        factor = WEEKLY_DECAY_FACTOR ** (days // 7)
        decayed: Dict[str, float] = {}
        for task_id, adjustment in self.adjustments.items():
            value = adjustment * factor
            if abs(value) >= DECAY_PRUNE_THRESHOLD:
                decayed[task_id] = value
        self.adjustments = decayed
        self.last_decay_date = now
        return True

    def prune_deleted_tasks(self, active_ids: Iterable[str]) -> bool:
        """Forget adjustments and snoozes for tasks that no longer exist."""
        active = set(active_ids)
        adjustments = {tid: v for tid, v in self.adjustments.items() if tid in active}
        snoozes = {tid: v for tid, v in self.snoozed_until.items() if tid in active}
        changed = len(adjustments) != len(self.adjustments) or len(snoozes) != len(self.snoozed_until)
        self.adjustments = adjustments
        self.snoozed_until = snoozes
        return changed
