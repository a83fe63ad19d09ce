"""Tests for calendar arithmetic helpers."""

from datetime import date, datetime, time, timedelta

from flowdeck.dates import (
    add_months,
    add_years,
    at_time,
    calculate_overlap,
    combine_date_and_time,
    is_same_day,
    merge_intervals,
    start_of_day,
    weekday_number,
)


class TestWeekdayNumber:
    """Weekdays are numbered 1=Sunday .. 7=Saturday."""

    def test_sunday_is_one(self):
        assert weekday_number(date(2026, 3, 8)) == 1

    def test_tuesday_is_three(self):
        assert weekday_number(datetime(2026, 3, 10, 9, 0)) == 3

    def test_saturday_is_seven(self):
        assert weekday_number(date(2026, 3, 14)) == 7


class TestCalendarArithmetic:
    def test_month_end_clamps(self):
        """Jan 31 + 1 month lands on the last day of February."""
        assert add_months(datetime(2026, 1, 31, 10, 0), 1) == datetime(2026, 2, 28, 10, 0)

    def test_leap_day_plus_year(self):
        assert add_years(datetime(2028, 2, 29), 1) == datetime(2029, 2, 28)

    def test_start_of_day(self):
        assert start_of_day(datetime(2026, 3, 10, 17, 45, 12)) == datetime(2026, 3, 10)

    def test_at_time_zeroes_seconds(self):
        assert at_time(datetime(2026, 3, 10, 17, 45, 12), 8) == datetime(2026, 3, 10, 8, 0)

    def test_combine_drops_seconds(self):
        assert combine_date_and_time(date(2026, 3, 10), time(14, 30, 59)) == datetime(2026, 3, 10, 14, 30)

    def test_combine_without_time_is_midnight(self):
        assert combine_date_and_time(date(2026, 3, 10), None) == datetime(2026, 3, 10)

    def test_is_same_day_handles_none(self):
        assert not is_same_day(None, date(2026, 3, 10))
        assert is_same_day(datetime(2026, 3, 10, 23, 59), date(2026, 3, 10))


class TestIntervals:
    def test_partial_overlap(self):
        start = datetime(2026, 3, 10, 14, 0)
        overlap = calculate_overlap(start, start + timedelta(minutes=30),
                                    start + timedelta(minutes=15), start + timedelta(hours=1))
        assert overlap == timedelta(minutes=15)

    def test_touching_intervals_do_not_overlap(self):
        start = datetime(2026, 3, 10, 14, 0)
        mid = start + timedelta(minutes=30)
        assert calculate_overlap(start, mid, mid, mid + timedelta(minutes=30)) == timedelta(0)

    def test_merge_intervals(self):
        t = datetime(2026, 3, 10, 9, 0)
        merged = merge_intervals([
            (t + timedelta(hours=2), t + timedelta(hours=3)),
            (t, t + timedelta(hours=1)),
            (t + timedelta(minutes=30), t + timedelta(hours=2)),
        ])
        assert merged == [(t, t + timedelta(hours=3))]
