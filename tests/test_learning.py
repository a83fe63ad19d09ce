"""Tests for the feedback and completion-pattern store."""

import pytest
from datetime import datetime, timedelta

from flowdeck.engine.learning import FEEDBACK_KEY, PATTERNS_KEY, LearningStore
from flowdeck.models.feedback import MAX_FEEDBACK_EVENTS, FeedbackAction, SuggestionFeedback
from flowdeck.models.task import TaskCategory, TaskStatus

from conftest import NOW


class TestSuggestionFeedback:
    """Pure feedback model behavior."""

    def test_skips_clamp_at_minus_fifteen(self):
        feedback = SuggestionFeedback(last_decay_date=NOW)
        for _ in range(10):
            feedback.record_feedback("t1", FeedbackAction.SKIPPED_NOT_RELEVANT, 50.0, TaskCategory.WORK, NOW)
        assert feedback.get_adjustment("t1") == -15.0

    def test_starts_clamp_at_fifteen(self):
        feedback = SuggestionFeedback(last_decay_date=NOW)
        for _ in range(5):
            feedback.record_feedback("t1", FeedbackAction.STARTED_IMMEDIATELY, 50.0, TaskCategory.WORK, NOW)
        assert feedback.get_adjustment("t1") == 15.0

    def test_event_log_is_capped(self):
        feedback = SuggestionFeedback(last_decay_date=NOW)
        for i in range(MAX_FEEDBACK_EVENTS + 25):
            feedback.record_feedback(f"t{i}", FeedbackAction.VIEWED_DETAILS, 10.0, TaskCategory.WORK, NOW)
        assert len(feedback.events) == MAX_FEEDBACK_EVENTS
        assert feedback.events[0].task_id == "t25"

    def test_decay_idempotent_within_week(self):
        feedback = SuggestionFeedback(last_decay_date=NOW, adjustments={"t1": 10.0})
        later = NOW + timedelta(days=8)
        assert feedback.apply_decay_if_needed(later) is True
        assert feedback.get_adjustment("t1") == pytest.approx(9.5)
        assert feedback.apply_decay_if_needed(later + timedelta(days=2)) is False
        assert feedback.get_adjustment("t1") == pytest.approx(9.5)

    def test_decay_prunes_small_adjustments(self):
        feedback = SuggestionFeedback(last_decay_date=NOW, adjustments={"t1": 0.51, "t2": -8.0})
        feedback.apply_decay_if_needed(NOW + timedelta(days=7))
        assert "t1" not in feedback.adjustments
        assert feedback.get_adjustment("t2") == pytest.approx(-7.6)

    def test_snooze_windows(self):
        assert FeedbackAction.SNOOZED_1_HOUR.snooze_until(NOW) == NOW + timedelta(hours=1)
        assert FeedbackAction.SNOOZED_EVENING.snooze_until(NOW) == datetime(2026, 3, 10, 18, 0)
        assert FeedbackAction.SNOOZED_EVENING.snooze_until(datetime(2026, 3, 10, 19, 0)) == datetime(2026, 3, 11, 18, 0)
        assert FeedbackAction.SNOOZED_TOMORROW.snooze_until(NOW) == datetime(2026, 3, 11, 9, 0)
        assert FeedbackAction.SKIPPED_WRONG_TIME.snooze_until(NOW) is None

    def test_clean_expired_snoozes_reports_shrink(self):
        feedback = SuggestionFeedback(last_decay_date=NOW)
        feedback.record_feedback("t1", FeedbackAction.SNOOZED_1_HOUR, 40.0, TaskCategory.WORK, NOW)
        assert feedback.clean_expired_snoozes(NOW + timedelta(minutes=30)) is False
        assert feedback.clean_expired_snoozes(NOW + timedelta(hours=2)) is True
        assert not feedback.is_snoozed("t1", NOW)


class TestLearningStore:
    def test_feedback_persisted_immediately(self, blob_repository, clock):
        store = LearningStore(blob_repository, clock=clock)
        store.record_feedback("t1", FeedbackAction.SNOOZED_TOMORROW, 42.0, TaskCategory.HOME)

        reloaded = LearningStore(blob_repository, clock=clock)
        assert reloaded.adjustment_for("t1") == -3.0
        assert reloaded.is_snoozed("t1")

    def test_corrupt_blob_falls_back_to_defaults(self, blob_repository, clock):
        blob_repository.save(FEEDBACK_KEY, "{not json")
        blob_repository.save(PATTERNS_KEY, '{"category_time_patterns": "oops"}')

        store = LearningStore(blob_repository, clock=clock)
        assert store.feedback.adjustments == {}
        assert store.patterns.last_completed_category is None

    def test_decay_applied_on_load(self, blob_repository, clock):
        feedback = SuggestionFeedback(last_decay_date=NOW - timedelta(days=14), adjustments={"t1": 10.0})
        blob_repository.save(FEEDBACK_KEY, feedback.model_dump_json())

        store = LearningStore(blob_repository, clock=clock)
        assert store.adjustment_for("t1") == pytest.approx(10.0 * 0.95 * 0.95)

    def test_record_completion_updates_patterns(self, blob_repository, clock, make_task):
        store = LearningStore(blob_repository, clock=clock)
        task = make_task(category=TaskCategory.WORK, status=TaskStatus.COMPLETED, completed_at=NOW)
        store.record_completion(task)

        assert store.last_completed_category == TaskCategory.WORK
        assert store.patterns.category_time_patterns["work_9"] == 1
        assert store.patterns.category_day_patterns["work_3"] == 1
        assert LearningStore(blob_repository, clock=clock).last_completed_category == TaskCategory.WORK

    def test_productivity_insights_need_enough_data(self, blob_repository, clock, make_task):
        store = LearningStore(blob_repository, clock=clock)
        task = make_task(category=TaskCategory.WORK)
        for _ in range(3):
            store.record_completion(task)
        assert store.productivity_insights() == []

        store.record_completion(task)
        insights = store.productivity_insights()
        assert [i.title for i in insights] == ["Peak Productivity", "Most Active Day"]
        assert insights[0].description == "You're most productive around 9 AM"
        assert insights[1].description == "Tuesday is your most productive day"

    def test_prune_deleted_tasks(self, blob_repository, clock):
        store = LearningStore(blob_repository, clock=clock)
        store.record_feedback("keep", FeedbackAction.VIEWED_DETAILS, 10.0, TaskCategory.WORK)
        store.record_feedback("gone", FeedbackAction.SNOOZED_1_HOUR, 10.0, TaskCategory.WORK)

        assert store.prune_deleted_tasks(["keep"]) is True
        assert store.adjustment_for("gone") == 0.0
        assert store.snoozed_count() == 0
        assert store.prune_deleted_tasks(["keep"]) is False
