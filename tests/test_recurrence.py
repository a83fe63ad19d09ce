"""Tests for the recurrence engine."""

import pytest
from datetime import date, datetime, time, timedelta
from pydantic import ValidationError

from flowdeck.models.recurrence import RecurringFrequency, RecurringRule
from flowdeck.recurrence.engine import (
    calculate_intraday_times,
    intraday_target_count,
    next_instance_for_completion,
    next_occurrence,
)

from conftest import NOW


class TestRuleValidation:
    def test_weekdays_deduplicated(self):
        rule = RecurringRule(frequency=RecurringFrequency.WEEKLY, days_of_week=[2, 4, 2])
        assert rule.days_of_week == [2, 4]

    def test_weekday_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            RecurringRule(frequency=RecurringFrequency.WEEKLY, days_of_week=[0])

    def test_intraday_rule_rejects_weekdays(self):
        with pytest.raises(ValidationError):
            RecurringRule(frequency=RecurringFrequency.HOURLY, hour_interval=2, days_of_week=[2])

    def test_display_helpers(self):
        rule = RecurringRule(frequency=RecurringFrequency.WEEKLY, days_of_week=[2, 4, 6])
        assert rule.compact_display_format() == "3/wk"
        assert rule.display_description() == "Weekly on Mon, Wed, Fri"
        assert RecurringRule(frequency=RecurringFrequency.TIMES_PER_DAY, times_per_day=3).compact_display_format() == "3x/day"


class TestNextOccurrence:
    """Cadence arithmetic for each frequency."""

    def test_daily_interval(self):
        rule = RecurringRule(frequency=RecurringFrequency.DAILY, interval=3)
        assert next_occurrence(rule, NOW) == NOW + timedelta(days=3)

    def test_biweekly(self):
        rule = RecurringRule(frequency=RecurringFrequency.BIWEEKLY)
        assert next_occurrence(rule, NOW) == NOW + timedelta(weeks=2)

    def test_monthly_clamps_day(self):
        rule = RecurringRule(frequency=RecurringFrequency.MONTHLY)
        assert next_occurrence(rule, datetime(2026, 1, 31, 9, 0)) == datetime(2026, 2, 28, 9, 0)

    def test_weekly_with_weekdays_finds_next_selected_day(self):
        """From Tuesday, a Mon/Fri rule lands on Friday of the same week."""
        rule = RecurringRule(frequency=RecurringFrequency.WEEKLY, days_of_week=[2, 6])
        assert next_occurrence(rule, NOW) == datetime(2026, 3, 13, 9, 0)

    def test_weekly_same_weekday_moves_a_week(self):
        rule = RecurringRule(frequency=RecurringFrequency.WEEKLY, days_of_week=[3])
        assert next_occurrence(rule, NOW) == datetime(2026, 3, 17, 9, 0)

    def test_past_end_date_returns_none(self):
        rule = RecurringRule(frequency=RecurringFrequency.DAILY, end_date=NOW - timedelta(days=1))
        assert next_occurrence(rule, NOW) is None

    def test_occurrence_after_end_date_returns_none(self):
        rule = RecurringRule(frequency=RecurringFrequency.WEEKLY, end_date=NOW + timedelta(days=3))
        assert next_occurrence(rule, NOW) is None

    @pytest.mark.parametrize("frequency", [
        RecurringFrequency.DAILY,
        RecurringFrequency.WEEKLY,
        RecurringFrequency.MONTHLY,
        RecurringFrequency.YEARLY,
        RecurringFrequency.HOURLY,
        RecurringFrequency.TIMES_PER_DAY,
    ])
    def test_strictly_after_reference(self, frequency):
        rule = RecurringRule(frequency=frequency)
        assert next_occurrence(rule, NOW) > NOW


class TestIntradayOccurrences:
    def test_hourly_wraps_to_next_morning(self):
        """19:30 with an 8-20 window every 3 hours goes to 08:00 tomorrow, not 22:30."""
        rule = RecurringRule(
            frequency=RecurringFrequency.HOURLY,
            hour_interval=3,
            active_hours_start=time(8, 0),
            active_hours_end=time(20, 0),
        )
        assert next_occurrence(rule, datetime(2026, 3, 10, 19, 30)) == datetime(2026, 3, 11, 8, 0)

    def test_hourly_within_window(self):
        rule = RecurringRule(frequency=RecurringFrequency.HOURLY, hour_interval=2)
        assert next_occurrence(rule, NOW) == datetime(2026, 3, 10, 11, 0)

    def test_times_per_day_even_distribution(self):
        """3x/day over 8-20 is 8, 12 and 16."""
        rule = RecurringRule(frequency=RecurringFrequency.TIMES_PER_DAY, times_per_day=3)
        assert next_occurrence(rule, NOW) == datetime(2026, 3, 10, 12, 0)
        assert next_occurrence(rule, datetime(2026, 3, 10, 16, 30)) == datetime(2026, 3, 11, 8, 0)

    def test_times_per_day_specific_times(self):
        rule = RecurringRule(
            frequency=RecurringFrequency.TIMES_PER_DAY,
            specific_times=[time(21, 0), time(7, 30)],
        )
        assert next_occurrence(rule, NOW) == datetime(2026, 3, 10, 21, 0)
        assert next_occurrence(rule, datetime(2026, 3, 10, 21, 0)) == datetime(2026, 3, 11, 7, 30)

    def test_calculate_intraday_times_hourly(self):
        rule = RecurringRule(
            frequency=RecurringFrequency.HOURLY,
            hour_interval=3,
            active_hours_start=time(8, 0),
            active_hours_end=time(20, 0),
        )
        times = calculate_intraday_times(rule, date(2026, 3, 10))
        assert [t.hour for t in times] == [8, 11, 14, 17, 20]
        assert intraday_target_count(rule, date(2026, 3, 10)) == 5

    def test_calculate_intraday_times_sorted(self):
        rule = RecurringRule(
            frequency=RecurringFrequency.TIMES_PER_DAY,
            specific_times=[time(18, 0), time(9, 0), time(13, 15)],
        )
        times = calculate_intraday_times(rule, date(2026, 3, 10))
        assert times == sorted(times)
        assert times[0] == datetime(2026, 3, 10, 9, 0)

    def test_non_intraday_rule_has_no_times(self):
        rule = RecurringRule(frequency=RecurringFrequency.DAILY)
        assert calculate_intraday_times(rule, date(2026, 3, 10)) == []


class TestNextInstance:
    def test_next_instance_copies_fields(self, make_task):
        task = make_task(
            title="Water plants",
            due_date=date(2026, 3, 10),
            due_time=time(18, 0),
            recurring_rule=RecurringRule(frequency=RecurringFrequency.DAILY, interval=2),
            linked_event_id="evt-1",
        )
        nxt = next_instance_for_completion(task, NOW)
        assert nxt is not None
        assert nxt.id != task.id
        assert nxt.title == "Water plants"
        assert nxt.due_date == date(2026, 3, 12)
        assert nxt.due_time == time(18, 0)
        assert nxt.linked_event_id is None
        assert nxt.recurring_rule == task.recurring_rule

    def test_no_due_date_no_instance(self, make_task):
        task = make_task(recurring_rule=RecurringRule(frequency=RecurringFrequency.DAILY))
        assert next_instance_for_completion(task, NOW) is None
