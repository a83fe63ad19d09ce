"""Prioritization engine for flowdeck.

Ranks open tasks by effective score (base score + learned adjustment), picks
the suggested next task and a category-diverse top three, and labels each
suggestion with a confidence band relative to the current batch.

The published ranking is an immutable snapshot swapped in under a lock, so a
feedback recording and the re-rank it triggers are observed together.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Tuple

from flowdeck.dates import is_same_day
from flowdeck.engine.ai_exclusion import is_ai_excluded
from flowdeck.engine.learning import LearningStore
from flowdeck.engine.scoring import calculate_priority_score, clamp, effective_due, MAX_SCORE, MIN_SCORE
from flowdeck.models.feedback import FeedbackAction
from flowdeck.models.suggestion import ConfidenceLevel, ProductivityInsight, TaskSuggestion
from flowdeck.models.task import Priority, Task, TaskCategory

logger = logging.getLogger(__name__)

TOP_SUGGESTION_COUNT = 3
# Beyond this gap from the top score, category diversity no longer applies
DIVERSITY_SCORE_GAP = 10.0
RECOMMENDED_PERCENTILE = 0.10
STRONG_PERCENTILE = 0.30
QUICK_TASK_REASON_MINUTES = 15

ScoredTask = Tuple[Task, float]


@dataclass(frozen=True)
class PrioritizationSnapshot:
    """One consistent view of the ranking."""
    ranked: List[ScoredTask] = field(default_factory=list)
    suggested_next: Optional[Task] = None
    top_three: List[Task] = field(default_factory=list)
    suggestions: List[TaskSuggestion] = field(default_factory=list)
    computed_at: Optional[datetime] = None

    @property
    def ranked_tasks(self) -> List[Task]:
        return [task for task, _ in self.ranked]


def is_rankable(task: Task) -> bool:
    return not task.is_completed and not task.is_archived and not task.is_deleted


def select_diverse_top_three(scored: Sequence[ScoredTask]) -> List[Task]:
    """Greedy top three with a soft category-diversity rule.

    scored must be sorted by score, highest first. The top task is always
    taken. Later candidates are taken if their category is new to the
    selection, or if they trail the top score by more than DIVERSITY_SCORE_GAP.
    Slots still open are back-filled in score order.
    """
    if not scored:
        return []

    primary_task, primary_score = scored[0]
    result: List[Task] = [primary_task]
    used_categories = {primary_task.effective_category_key}

    for task, score in scored[1:]:
        if len(result) >= TOP_SUGGESTION_COUNT:
            break
        gap = primary_score - score
        if gap > DIVERSITY_SCORE_GAP or task.effective_category_key not in used_categories:
            result.append(task)
            used_categories.add(task.effective_category_key)

    selected = {t.id for t in result}
    for task, _ in scored[1:]:
        if len(result) >= TOP_SUGGESTION_COUNT:
            break
        if task.id not in selected:
            result.append(task)
            selected.add(task.id)

    return result


def confidence_level(score: float, all_scores: Sequence[float]) -> ConfidenceLevel:
    """Band a score by its position within the batch.

    The percentile is the index of the first score <= this one in the
    descending list, over the batch size, so the top score is at 0.
    """
    if not all_scores:
        return ConfidenceLevel.CONSIDER

    ordered = sorted(all_scores, reverse=True)
    rank = next((i for i, s in enumerate(ordered) if s <= score), len(ordered))
    percentile = rank / len(ordered)

    if percentile <= RECOMMENDED_PERCENTILE:
        return ConfidenceLevel.RECOMMENDED
    if percentile <= STRONG_PERCENTILE:
        return ConfidenceLevel.STRONG
    return ConfidenceLevel.CONSIDER


def _relative_due(due: datetime, now: datetime) -> str:
    delta = due - now
    days = delta.days
    if days >= 7:
        weeks = days // 7
        return f"Due in {weeks} week{'s' if weeks != 1 else ''}"
    if days >= 1:
        return f"Due in {days} day{'s' if days != 1 else ''}"
    hours = int(delta.total_seconds() // 3600)
    return f"Due in {hours} hour{'s' if hours != 1 else ''}"


def generate_reasons(task: Task, now: datetime) -> List[str]:
    """Human-readable reasons behind a task's score."""
    reasons: List[str] = []

    due = effective_due(task)
    if due is not None:
        if due < now:
            reasons.append("This task is overdue")
        elif is_same_day(due, now):
            reasons.append("Due today")
        elif is_same_day(due, now + timedelta(days=1)):
            reasons.append("Due tomorrow")
        else:
            reasons.append(_relative_due(due, now))

    if task.priority == Priority.URGENT:
        reasons.append("Marked as urgent")
    elif task.priority == Priority.HIGH:
        reasons.append("High priority")

    minutes = task.estimated_duration_min
    if minutes is not None and minutes <= QUICK_TASK_REASON_MINUTES:
        reasons.append(f"Quick {minutes} minute task")

    if task.category == TaskCategory.WORK and 6 <= now.hour < 12:
        reasons.append("Morning is ideal for focused work")

    if (now - task.created_at).total_seconds() / 86400 > 7:
        reasons.append("Been on your list for over a week")

    return reasons


class PrioritizationEngine:
    """Ranks tasks and learns from suggestion feedback.

    Args:
        learning: Feedback and pattern store
        task_source: Returns the current task list for re-ranks the engine triggers itself
        insight_provider: Optional object with generate_suggestion_insight(task, reasons)
        clock: Source of "now"
    """

    def __init__(
        self,
        learning: LearningStore,
        task_source: Callable[[], List[Task]],
        insight_provider=None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.learning = learning
        self._task_source = task_source
        self._insight_provider = insight_provider
        self._clock = clock
        self._lock = threading.RLock()
        self._snapshot = PrioritizationSnapshot()

    @property
    def snapshot(self) -> PrioritizationSnapshot:
        return self._snapshot

    # Scoring

    def base_score(self, task: Task, now: Optional[datetime] = None) -> float:
        return calculate_priority_score(task, now or self._clock(), self.learning.last_completed_category)

    def effective_score(self, task: Task, now: Optional[datetime] = None) -> float:
        """Base score plus learned adjustment, clamped to [0, 100]."""
        base = self.base_score(task, now)
        return clamp(base + self.learning.adjustment_for(task.id), MIN_SCORE, MAX_SCORE)

    # Ranking

    def analyze_and_prioritize(
        self,
        tasks: Optional[List[Task]] = None,
        now: Optional[datetime] = None,
    ) -> PrioritizationSnapshot:
        """Score every open task and publish a new snapshot."""
        with self._lock:
            now = now or self._clock()
            if tasks is None:
                tasks = self._task_source()

            self.learning.apply_decay_if_needed(now)
            self.learning.prune_deleted_tasks(t.id for t in tasks)

            scored: List[ScoredTask] = [(t, self.effective_score(t, now)) for t in tasks if is_rankable(t)]
            scored.sort(key=lambda item: item[1], reverse=True)

            unsnoozed = [item for item in scored if not self.learning.is_snoozed(item[0].id, now)]
            top_three = select_diverse_top_three(unsnoozed)

            # Snoozed tasks shouldn't inflate the curve
            all_scores = [score for _, score in unsnoozed]
            score_by_id = {t.id: s for t, s in unsnoozed}
            suggestions = [
                TaskSuggestion(
                    task=task,
                    score=score_by_id[task.id],
                    reasons=generate_reasons(task, now),
                    confidence=confidence_level(score_by_id[task.id], all_scores),
                )
                for task in top_three
            ]

            self._snapshot = PrioritizationSnapshot(
                ranked=scored,
                suggested_next=unsnoozed[0][0] if unsnoozed else None,
                top_three=top_three,
                suggestions=suggestions,
                computed_at=now,
            )
            logger.debug(f"Ranked {len(scored)} tasks ({len(scored) - len(unsnoozed)} snoozed)")
            return self._snapshot

    def _unsnoozed_scores(self, now: datetime) -> List[float]:
        return [
            score for task, score in self._snapshot.ranked
            if not self.learning.is_snoozed(task.id, now)
        ]

    # Suggestions

    def get_top_three_suggestions(self) -> List[TaskSuggestion]:
        return list(self._snapshot.suggestions)

    def get_suggestion(self, task: Task, now: Optional[datetime] = None, with_insight: bool = True) -> TaskSuggestion:
        """Suggestion for any task, scored against the current batch."""
        now = now or self._clock()
        score = self.effective_score(task, now)
        reasons = generate_reasons(task, now)
        insight = self._insight_for(task, reasons) if with_insight else None
        return TaskSuggestion(
            task=task,
            score=score,
            reasons=reasons,
            ai_insight=insight,
            confidence=confidence_level(score, self._unsnoozed_scores(now)),
        )

    def get_next_suggestion(self, now: Optional[datetime] = None) -> Optional[TaskSuggestion]:
        task = self._snapshot.suggested_next
        if task is None:
            return None
        return self.get_suggestion(task, now)

    def _insight_for(self, task: Task, reasons: List[str]) -> Optional[str]:
        if self._insight_provider is None or is_ai_excluded(task):
            return None
        return self._insight_provider.generate_suggestion_insight(task, reasons)

    # Feedback

    def record_feedback(
        self,
        task: Task,
        action: FeedbackAction,
        now: Optional[datetime] = None,
    ) -> PrioritizationSnapshot:
        """Record a reaction to a suggestion and re-rank before returning."""
        with self._lock:
            now = now or self._clock()
            score = self.effective_score(task, now)
            self.learning.record_feedback(task.id, action, score, task.category, now)
            return self.analyze_and_prioritize(now=now)

    def record_completion(self, task: Task, now: Optional[datetime] = None) -> None:
        self.learning.record_completion(task, now or self._clock())

    def check_expired_snoozes(self, now: Optional[datetime] = None) -> bool:
        """Re-rank only if some snooze expired. Returns True when it re-ranked."""
        with self._lock:
            now = now or self._clock()
            if not self.learning.clean_expired_snoozes(now):
                return False
            self.analyze_and_prioritize(now=now)
            return True

    def productivity_insights(self) -> List[ProductivityInsight]:
        return self.learning.productivity_insights()
