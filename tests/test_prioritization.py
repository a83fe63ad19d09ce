"""Tests for ranking, diversity, confidence and feedback re-ranking."""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock

from flowdeck.engine.learning import LearningStore
from flowdeck.engine.prioritization import (
    PrioritizationEngine,
    confidence_level,
    generate_reasons,
    select_diverse_top_three,
)
from flowdeck.models.feedback import FeedbackAction
from flowdeck.models.suggestion import ConfidenceLevel
from flowdeck.models.task import Priority, TaskCategory, TaskStatus

from conftest import NOW


@pytest.fixture
def learning(blob_repository, clock):
    return LearningStore(blob_repository, clock=clock)


@pytest.fixture
def engine(learning, task_repository, clock):
    return PrioritizationEngine(learning, task_source=task_repository.get_all, clock=clock)


class TestDiverseTopThree:
    def test_skips_same_category_within_gap(self, make_task):
        a = make_task(title="A", category=TaskCategory.WORK)
        b = make_task(title="B", category=TaskCategory.WORK)
        c = make_task(title="C", category=TaskCategory.PERSONAL)
        d = make_task(title="D", category=TaskCategory.HEALTH)

        top = select_diverse_top_three([(a, 90.0), (b, 85.0), (c, 84.0), (d, 83.0)])
        assert [t.title for t in top] == ["A", "C", "D"]

    def test_large_gap_overrides_diversity(self, make_task):
        a = make_task(title="A", category=TaskCategory.WORK)
        b = make_task(title="B", category=TaskCategory.WORK)
        c = make_task(title="C", category=TaskCategory.WORK)

        top = select_diverse_top_three([(a, 90.0), (b, 79.0), (c, 70.0)])
        assert [t.title for t in top] == ["A", "B", "C"]

    def test_backfills_in_score_order(self, make_task):
        a = make_task(title="A", category=TaskCategory.WORK)
        b = make_task(title="B", category=TaskCategory.WORK)
        c = make_task(title="C", category=TaskCategory.WORK)
        d = make_task(title="D", category=TaskCategory.WORK)

        top = select_diverse_top_three([(a, 90.0), (b, 88.0), (c, 86.0), (d, 85.0)])
        assert [t.title for t in top] == ["A", "B", "C"]

    def test_custom_categories_are_distinct(self, make_task):
        a = make_task(title="A", category=TaskCategory.WORK, custom_category_id="garden")
        b = make_task(title="B", category=TaskCategory.WORK, custom_category_id="garden")
        c = make_task(title="C", category=TaskCategory.WORK, custom_category_id="taxes")

        top = select_diverse_top_three([(a, 90.0), (b, 89.0), (c, 88.0)])
        assert [t.title for t in top] == ["A", "C", "B"]

    def test_empty(self):
        assert select_diverse_top_three([]) == []


class TestConfidence:
    @pytest.mark.parametrize("score,expected", [
        (100.0, ConfidenceLevel.RECOMMENDED),
        (90.0, ConfidenceLevel.RECOMMENDED),
        (80.0, ConfidenceLevel.STRONG),
        (70.0, ConfidenceLevel.STRONG),
        (60.0, ConfidenceLevel.CONSIDER),
        (10.0, ConfidenceLevel.CONSIDER),
    ])
    def test_percentile_bands(self, score, expected):
        scores = [100.0, 90.0, 80.0, 70.0, 60.0, 50.0, 40.0, 30.0, 20.0, 10.0]
        assert confidence_level(score, scores) == expected

    def test_empty_batch(self):
        assert confidence_level(50.0, []) == ConfidenceLevel.CONSIDER


class TestReasons:
    def test_overdue_urgent_quick(self, make_task):
        task = make_task(
            due_date=(NOW - timedelta(days=1)).date(),
            priority=Priority.URGENT,
            estimated_duration_min=10,
        )
        reasons = generate_reasons(task, NOW)
        assert reasons[:3] == ["This task is overdue", "Marked as urgent", "Quick 10 minute task"]

    def test_due_tomorrow_and_old(self, make_task):
        task = make_task(
            due_date=(NOW + timedelta(days=1)).date(),
            created_at=NOW - timedelta(days=9),
            estimated_duration_min=None,
        )
        assert generate_reasons(task, NOW) == ["Due tomorrow", "Been on your list for over a week"]


class TestPrioritizationEngine:
    def _seed(self, task_repository, make_task):
        urgent = task_repository.create(make_task(
            title="File taxes",
            priority=Priority.URGENT,
            category=TaskCategory.FINANCE,
            due_date=NOW.date(),
            due_time=(NOW + timedelta(hours=1)).time(),
        ))
        relaxed = task_repository.create(make_task(title="Read novel", category=TaskCategory.PERSONAL))
        done = task_repository.create(make_task(title="Done already", status=TaskStatus.COMPLETED, completed_at=NOW))
        return urgent, relaxed, done

    def test_ranks_open_tasks(self, engine, task_repository, make_task):
        urgent, relaxed, done = self._seed(task_repository, make_task)
        snapshot = engine.analyze_and_prioritize()

        assert snapshot.suggested_next.id == urgent.id
        assert [t.id for t in snapshot.ranked_tasks] == [urgent.id, relaxed.id]
        assert snapshot.computed_at == NOW
        assert snapshot.suggestions[0].confidence == ConfidenceLevel.RECOMMENDED

    def test_effective_score_includes_adjustment(self, engine, learning, make_task):
        task = make_task()
        base = engine.base_score(task)
        learning.record_feedback(task.id, FeedbackAction.SKIPPED_NEEDS_FOCUS, base, task.category)
        assert engine.effective_score(task) == pytest.approx(base - 5.0)

    def test_effective_score_bounds(self, engine, learning, make_task):
        task = make_task()
        for _ in range(5):
            learning.record_feedback(task.id, FeedbackAction.SKIPPED_NOT_RELEVANT, 0.0, task.category)
        assert 0.0 <= engine.effective_score(task) <= 100.0

    def test_snooze_feedback_reranks_before_returning(self, engine, task_repository, make_task):
        urgent, relaxed, _ = self._seed(task_repository, make_task)
        engine.analyze_and_prioritize()

        snapshot = engine.record_feedback(urgent, FeedbackAction.SNOOZED_1_HOUR)
        assert snapshot.suggested_next.id == relaxed.id
        assert engine.snapshot is snapshot
        assert urgent.id not in [t.id for t in snapshot.top_three]
        # Snoozed tasks stay in the full ranking
        assert urgent.id in [t.id for t in snapshot.ranked_tasks]

    def test_expired_snooze_triggers_rerank(self, engine, task_repository, make_task, clock):
        urgent, _, _ = self._seed(task_repository, make_task)
        engine.record_feedback(urgent, FeedbackAction.SNOOZED_1_HOUR)

        assert engine.check_expired_snoozes() is False
        clock.advance(hours=2)
        assert engine.check_expired_snoozes() is True
        assert engine.snapshot.suggested_next.id == urgent.id

    def test_completion_momentum(self, engine, make_task):
        finance = make_task(category=TaskCategory.FINANCE)
        before = engine.base_score(finance)
        engine.record_completion(make_task(category=TaskCategory.FINANCE, status=TaskStatus.COMPLETED))
        assert engine.base_score(finance) == pytest.approx(before + 5.0)

    def test_insight_skipped_for_ai_excluded_tasks(self, learning, task_repository, make_task, clock):
        provider = MagicMock()
        provider.generate_suggestion_insight.return_value = "Knock it out before lunch."
        engine = PrioritizationEngine(learning, task_repository.get_all, insight_provider=provider, clock=clock)

        public = engine.get_suggestion(make_task(title="Plan sprint"))
        private = engine.get_suggestion(make_task(title=".Therapy notes"))

        assert public.ai_insight == "Knock it out before lunch."
        assert private.ai_insight is None
        assert provider.generate_suggestion_insight.call_count == 1

    def test_feedback_for_deleted_tasks_is_pruned(self, engine, learning, task_repository, make_task):
        task = task_repository.create(make_task())
        learning.record_feedback("ghost", FeedbackAction.STARTED_IMMEDIATELY, 10.0, TaskCategory.WORK)
        engine.analyze_and_prioritize()
        assert learning.adjustment_for("ghost") == 0.0
        assert task.id in [t.id for t in engine.snapshot.ranked_tasks]
