"""Feedback and completion-pattern store.

Owns the SuggestionFeedback and CompletionPatterns documents. Every mutation is
persisted before the call returns. A blob that fails to parse is replaced by an
empty default; learning is best-effort and must never block task operations.
"""

import json
import logging
import threading
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from flowdeck.database.repository import BlobRepository
from flowdeck.models.feedback import FeedbackAction, FeedbackEvent, SuggestionFeedback
from flowdeck.models.patterns import CompletionPatterns
from flowdeck.models.suggestion import ProductivityInsight
from flowdeck.models.task import Task, TaskCategory

logger = logging.getLogger(__name__)

FEEDBACK_KEY = "suggestion_feedback"
PATTERNS_KEY = "completion_patterns"

# Counters at or below this are too thin to report
INSIGHT_MIN_COUNT = 3

_DAY_NAMES = ["", "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

M = TypeVar("M", bound=BaseModel)


def _format_hour(hour: int) -> str:
    if hour == 0:
        return "12 AM"
    if hour < 12:
        return f"{hour} AM"
    if hour == 12:
        return "12 PM"
    return f"{hour - 12} PM"


class LearningStore:
    """Single owner of the learned suggestion state."""

    def __init__(self, blobs: BlobRepository, clock: Callable[[], datetime] = datetime.now):
        self._blobs = blobs
        self._clock = clock
        self._lock = threading.RLock()
        now = self._clock()
        self.feedback: SuggestionFeedback = self._load(FEEDBACK_KEY, SuggestionFeedback, last_decay_date=now)
        self.patterns: CompletionPatterns = self._load(PATTERNS_KEY, CompletionPatterns)

        decayed = self.feedback.apply_decay_if_needed(now)
        expired = self.feedback.clean_expired_snoozes(now)
        if decayed or expired:
            self._save_feedback()

    def _load(self, key: str, model_cls: Type[M], **defaults) -> M:
        raw = self._blobs.load(key)
        if raw is None:
            return model_cls(**defaults)
        try:
            return model_cls.model_validate_json(raw)
        except (ValidationError, json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Discarding unreadable {key} blob: {type(e).__name__}")
            return model_cls(**defaults)

    def _save_feedback(self) -> None:
        self._blobs.save(FEEDBACK_KEY, self.feedback.model_dump_json())

    def _save_patterns(self) -> None:
        self._blobs.save(PATTERNS_KEY, self.patterns.model_dump_json())

    # Feedback

    def record_feedback(
        self,
        task_id: str,
        action: FeedbackAction,
        original_score: float,
        category: TaskCategory,
        now: Optional[datetime] = None,
    ) -> FeedbackEvent:
        now = now or self._clock()
        with self._lock:
            event = self.feedback.record_feedback(task_id, action, original_score, category, now)
            self._save_feedback()
        logger.debug(
            f"Feedback {action.value} for task {task_id}; adjustment now {self.feedback.get_adjustment(task_id):+.1f}"
        )
        return event

    def adjustment_for(self, task_id: str) -> float:
        return self.feedback.get_adjustment(task_id)

    def is_snoozed(self, task_id: str, now: Optional[datetime] = None) -> bool:
        return self.feedback.is_snoozed(task_id, now or self._clock())

    def snoozed_count(self) -> int:
        return len(self.feedback.snoozed_until)

    def clean_expired_snoozes(self, now: Optional[datetime] = None) -> bool:
        """Drop elapsed snoozes. Returns True when the snoozed set shrank."""
        with self._lock:
            shrank = self.feedback.clean_expired_snoozes(now or self._clock())
            if shrank:
                self._save_feedback()
        return shrank

    def apply_decay_if_needed(self, now: Optional[datetime] = None) -> bool:
        with self._lock:
            applied = self.feedback.apply_decay_if_needed(now or self._clock())
            if applied:
                self._save_feedback()
                logger.debug(f"Applied feedback decay; {len(self.feedback.adjustments)} adjustments remain")
        return applied

    def prune_deleted_tasks(self, active_ids: Iterable[str]) -> bool:
        with self._lock:
            changed = self.feedback.prune_deleted_tasks(active_ids)
            if changed:
                self._save_feedback()
        return changed

    # Completion patterns

    @property
    def last_completed_category(self) -> Optional[TaskCategory]:
        return self.patterns.last_completed_category

    def record_completion(self, task: Task, now: Optional[datetime] = None) -> None:
        with self._lock:
            self.patterns.record_completion(task, now or self._clock())
            self._save_patterns()

    def productivity_insights(self) -> List[ProductivityInsight]:
        """Peak hour and most active weekday, once either has enough data."""
        insights: List[ProductivityInsight] = []

        time_patterns = self.patterns.category_time_patterns
        if time_patterns:
            key, count = max(time_patterns.items(), key=lambda kv: kv[1])
            if count > INSIGHT_MIN_COUNT:
                hour = int(key.rsplit("_", 1)[-1])
                insights.append(ProductivityInsight(
                    title="Peak Productivity",
                    description=f"You're most productive around {_format_hour(hour)}",
                ))

        day_patterns = self.patterns.category_day_patterns
        if day_patterns:
            key, count = max(day_patterns.items(), key=lambda kv: kv[1])
            if count > INSIGHT_MIN_COUNT:
                day = int(key.rsplit("_", 1)[-1])
                if 0 < day < len(_DAY_NAMES):
                    insights.append(ProductivityInsight(
                        title="Most Active Day",
                        description=f"{_DAY_NAMES[day]} is your most productive day",
                    ))

        return insights
