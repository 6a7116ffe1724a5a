"""Tests for business hours arithmetic."""

from datetime import datetime, timedelta, timezone

import pytest

from inbox_sla.core import UnschedulableBusinessHoursException
from inbox_sla.sla.domain import BusinessHoursCalculator, BusinessHoursSchedule, DaySchedule

from conftest import weekday_hours

UTC = timezone.utc
calc = BusinessHoursCalculator


def every_day(start: str, end: str, tz: str = "UTC") -> BusinessHoursSchedule:
    return BusinessHoursSchedule(days=tuple(
        DaySchedule(day=d, enabled=True, start_time=start, end_time=end, timezone=tz)
        for d in range(7)
    ))


class TestIsOpen:
    """Tests for is_open."""

    def test_24x7_always_open(self):
        schedule = BusinessHoursSchedule.always_open()
        for hour in (0, 3, 12, 23):
            assert calc.is_open(schedule, datetime(2026, 3, 7, hour, 30, tzinfo=UTC))

    def test_no_schedule_always_open(self):
        assert calc.is_open(None, datetime(2026, 3, 8, 4, 0, tzinfo=UTC))

    def test_24x7_flag_ignores_disabled_days(self):
        schedule = BusinessHoursSchedule(
            days=(DaySchedule(day=3, enabled=False),),
            is_24x7=True,
        )
        assert calc.is_open(schedule, datetime(2026, 3, 4, 12, 0, tzinfo=UTC))

    def test_midnight_crossing_window(self):
        schedule = every_day("22:00", "06:00")
        assert calc.is_open(schedule, datetime(2026, 3, 4, 23, 30, tzinfo=UTC))
        assert calc.is_open(schedule, datetime(2026, 3, 4, 2, 0, tzinfo=UTC))
        assert not calc.is_open(schedule, datetime(2026, 3, 4, 12, 0, tzinfo=UTC))

    def test_bounds_are_inclusive(self):
        schedule = weekday_hours()
        assert calc.is_open(schedule, datetime(2026, 3, 4, 9, 0, tzinfo=UTC))
        assert calc.is_open(schedule, datetime(2026, 3, 4, 18, 0, tzinfo=UTC))
        assert not calc.is_open(schedule, datetime(2026, 3, 4, 18, 1, tzinfo=UTC))
        assert not calc.is_open(schedule, datetime(2026, 3, 4, 8, 59, tzinfo=UTC))

    def test_missing_day_is_closed(self):
        schedule = weekday_hours()
        # Saturday
        assert not calc.is_open(schedule, datetime(2026, 3, 7, 12, 0, tzinfo=UTC))

    def test_evaluated_in_schedule_timezone(self):
        schedule = weekday_hours("09:00", "17:00", tz="America/New_York")
        # 2026-03-04 is EST (UTC-5)
        assert calc.is_open(schedule, datetime(2026, 3, 4, 14, 30, tzinfo=UTC))
        assert not calc.is_open(schedule, datetime(2026, 3, 4, 13, 30, tzinfo=UTC))


class TestInScheduleMinutes:
    """Tests for open-time counting."""

    def test_zero_length_interval(self):
        t = datetime(2026, 3, 4, 10, 0, tzinfo=UTC)
        assert calc.in_schedule_minutes_between(weekday_hours(), t, t) == 0

    def test_reversed_interval_is_zero(self):
        start = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)
        assert calc.in_schedule_minutes_between(weekday_hours(), start, start - timedelta(hours=2)) == 0

    def test_24x7_counts_wall_clock(self):
        start = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)
        assert calc.in_schedule_minutes_between(None, start, start + timedelta(minutes=90)) == 90

    def test_monotonic(self):
        schedule = weekday_hours()
        start = datetime(2026, 3, 4, 8, 0, tzinfo=UTC)
        previous = 0
        for hours in range(0, 72, 5):
            current = calc.in_schedule_minutes_between(schedule, start, start + timedelta(hours=hours))
            assert current >= previous
            previous = current

    def test_skips_weekend(self):
        friday = datetime(2026, 3, 6, 17, 0, tzinfo=UTC)
        monday = datetime(2026, 3, 9, 10, 0, tzinfo=UTC)
        assert calc.in_schedule_minutes_between(weekday_hours(), friday, monday) == 120

    def test_midnight_crossing_counts_evening_part(self):
        schedule = every_day("22:00", "06:00")
        start = datetime(2026, 3, 4, 21, 0, tzinfo=UTC)
        assert calc.in_schedule_minutes_between(schedule, start, start + timedelta(hours=2)) == 60

    def test_midnight_crossing_counts_across_midnight(self):
        schedule = every_day("22:00", "06:00")
        start = datetime(2026, 3, 4, 22, 0, tzinfo=UTC)
        end = datetime(2026, 3, 5, 6, 0, tzinfo=UTC)
        assert calc.in_schedule_minutes_between(schedule, start, end) == 480

    def test_end_of_day_preset_covers_whole_day(self):
        schedule = every_day("00:00", "23:59")
        start = datetime(2026, 3, 4, 0, 0, tzinfo=UTC)
        assert calc.in_schedule_minutes_between(schedule, start, start + timedelta(days=1)) == 1440


class TestAddInScheduleMinutes:
    """Tests for deadline arithmetic."""

    def test_24x7_is_plain_offset(self):
        start = datetime(2026, 3, 7, 23, 50, tzinfo=UTC)
        assert calc.add_in_schedule_minutes(None, start, 30) == start + timedelta(minutes=30)

    def test_within_same_window(self):
        start = datetime(2026, 3, 4, 10, 0, tzinfo=UTC)
        assert calc.add_in_schedule_minutes(weekday_hours(), start, 30) == datetime(2026, 3, 4, 10, 30, tzinfo=UTC)

    def test_friday_overflow_lands_monday(self):
        start = datetime(2026, 3, 6, 17, 50, tzinfo=UTC)
        assert calc.add_in_schedule_minutes(weekday_hours(), start, 30) == datetime(2026, 3, 9, 9, 20, tzinfo=UTC)

    def test_exact_close_returns_close_instant(self):
        start = datetime(2026, 3, 4, 17, 0, tzinfo=UTC)
        assert calc.add_in_schedule_minutes(weekday_hours(), start, 60) == datetime(2026, 3, 4, 18, 0, tzinfo=UTC)

    def test_round_trip_with_counting(self):
        schedule = weekday_hours()
        start = datetime(2026, 3, 5, 16, 15, tzinfo=UTC)
        deadline = calc.add_in_schedule_minutes(schedule, start, 240)
        assert calc.in_schedule_minutes_between(schedule, start, deadline) == 240

    def test_never_open_raises(self):
        schedule = BusinessHoursSchedule(days=tuple(
            DaySchedule(day=d, enabled=False) for d in range(7)
        ))
        with pytest.raises(UnschedulableBusinessHoursException):
            calc.add_in_schedule_minutes(schedule, datetime(2026, 3, 4, tzinfo=UTC), 30, "closed")


class TestNextOpenInstant:
    """Tests for next_open_instant."""

    def test_already_open(self):
        t = datetime(2026, 3, 4, 10, 0, tzinfo=UTC)
        assert calc.next_open_instant(weekday_hours(), t) == t

    def test_saturday_moves_to_monday_opening(self):
        saturday = datetime(2026, 3, 7, 11, 0, tzinfo=UTC)
        assert calc.next_open_instant(weekday_hours(), saturday) == datetime(2026, 3, 9, 9, 0, tzinfo=UTC)

    def test_before_opening_same_day(self):
        early = datetime(2026, 3, 4, 7, 0, tzinfo=UTC)
        assert calc.next_open_instant(weekday_hours(), early) == datetime(2026, 3, 4, 9, 0, tzinfo=UTC)

    def test_never_open_returns_none(self):
        schedule = BusinessHoursSchedule(days=())
        assert calc.next_open_instant(schedule, datetime(2026, 3, 4, tzinfo=UTC)) is None
