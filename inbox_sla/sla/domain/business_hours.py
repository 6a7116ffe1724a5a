"""
Business Hours Calculator
==========================

Pure functions answering "is the schedule open at T" and "how much open
time lies between T1 and T2".

Each calendar day D (in the schedule's timezone) contributes the open
intervals of its DaySchedule entry:
- normal window:            [D start, D end)
- window crossing midnight: [D 00:00, D end) and [D start, D+1 00:00)

Intervals are built from local wall-clock times and converted to UTC, so
durations across DST changes are real elapsed time.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple

from inbox_sla.core import UnschedulableBusinessHoursException
from inbox_sla.sla.domain.entities import (
    MINUTES_PER_DAY,
    BusinessHoursSchedule,
    as_utc,
    weekday_index,
)

DAYS_PER_WEEK = 7

Interval = Tuple[datetime, datetime]


class BusinessHoursCalculator:
    """
    Stateless business-hours arithmetic.

    A `None` schedule behaves exactly like a 24/7 one.
    """

    @staticmethod
    def is_open(schedule: Optional[BusinessHoursSchedule], instant: datetime) -> bool:
        """
        Check whether `instant` falls inside operating hours.

        Bounds are inclusive and compared at minute resolution.
        """
        if schedule is None or schedule.is_24x7:
            return True

        local = as_utc(instant).astimezone(schedule.zone)
        day = schedule.day_for(weekday_index(local))
        if day is None or not day.enabled:
            return False

        minute = local.hour * 60 + local.minute
        if day.start_minute <= day.end_minute:
            return day.start_minute <= minute <= day.end_minute
        return minute >= day.start_minute or minute <= day.end_minute

    @staticmethod
    def open_intervals(schedule: BusinessHoursSchedule, local_date: date) -> List[Interval]:
        """UTC open intervals contributed by one local calendar day."""
        day = schedule.day_for(local_date.isoweekday() % 7)
        if day is None or not day.enabled:
            return []

        zone = schedule.zone

        def at(minute: int) -> datetime:
            day_offset, minute_of_day = divmod(minute, MINUTES_PER_DAY)
            wall = datetime.combine(
                local_date + timedelta(days=day_offset),
                time(minute_of_day // 60, minute_of_day % 60),
                tzinfo=zone,
            )
            return wall.astimezone(timezone.utc)

        if day.crosses_midnight:
            return [(at(0), at(day.end_minute)), (at(day.start_minute), at(MINUTES_PER_DAY))]

        if day.window_end_minute <= day.start_minute:
            return []
        return [(at(day.start_minute), at(day.window_end_minute))]

    @staticmethod
    def next_open_instant(
        schedule: Optional[BusinessHoursSchedule],
        from_instant: datetime
    ) -> Optional[datetime]:
        """
        Get the first instant at or after `from_instant` when the schedule is open.

        Returns:
            `from_instant` when already open (always for 24/7), the start of
            the next open window otherwise, or None when no window opens
            within a week (schedule is unschedulable).
        """
        if schedule is None or schedule.is_24x7:
            return from_instant
        if BusinessHoursCalculator.is_open(schedule, from_instant):
            return from_instant

        start = as_utc(from_instant)
        local_date = start.astimezone(schedule.zone).date()

        # Offset 7 reaches the same weekday next week
        for offset in range(DAYS_PER_WEEK + 1):
            for opens, closes in BusinessHoursCalculator.open_intervals(
                schedule, local_date + timedelta(days=offset)
            ):
                if closes > start and closes > opens:
                    return max(opens, start)
        return None

    @staticmethod
    def in_schedule_seconds_between(
        schedule: Optional[BusinessHoursSchedule],
        start: datetime,
        end: datetime
    ) -> float:
        """Open-time seconds inside [start, end]; 0 when end <= start."""
        start, end = as_utc(start), as_utc(end)
        if end <= start:
            return 0.0
        if schedule is None or schedule.is_24x7:
            return (end - start).total_seconds()

        zone = schedule.zone
        current = start.astimezone(zone).date()
        last = end.astimezone(zone).date()

        total = 0.0
        while current <= last:
            for opens, closes in BusinessHoursCalculator.open_intervals(schedule, current):
                overlap_start = max(opens, start)
                overlap_end = min(closes, end)
                if overlap_end > overlap_start:
                    total += (overlap_end - overlap_start).total_seconds()
            current += timedelta(days=1)
        return total

    @staticmethod
    def in_schedule_minutes_between(
        schedule: Optional[BusinessHoursSchedule],
        start: datetime,
        end: datetime
    ) -> int:
        """Whole open-time minutes between start and end (floored)."""
        seconds = BusinessHoursCalculator.in_schedule_seconds_between(schedule, start, end)
        return int(seconds // 60)

    @staticmethod
    def add_in_schedule_minutes(
        schedule: Optional[BusinessHoursSchedule],
        start: datetime,
        minutes: int,
        policy_id: Optional[str] = None
    ) -> datetime:
        """
        Advance from `start` by `minutes` of open time.

        Walks forward day by day consuming each open window until the
        budget is exhausted. A budget that ends exactly on a window's
        close returns the close instant.

        Raises:
            UnschedulableBusinessHoursException: schedule never opens
        """
        start = as_utc(start)
        budget = timedelta(minutes=minutes)
        if schedule is None or schedule.is_24x7:
            return start + budget
        if not schedule.has_open_time:
            raise UnschedulableBusinessHoursException(policy_id)

        current = start
        local_date = start.astimezone(schedule.zone).date()
        closed_days = 0

        while True:
            intervals = BusinessHoursCalculator.open_intervals(schedule, local_date)
            had_open_time = False
            for opens, closes in intervals:
                if closes <= current:
                    continue
                window_start = max(opens, current)
                available = closes - window_start
                if available <= timedelta(0):
                    continue
                had_open_time = True
                if available >= budget:
                    return window_start + budget
                budget -= available
                current = closes

            closed_days = 0 if had_open_time else closed_days + 1
            if closed_days > DAYS_PER_WEEK:
                raise UnschedulableBusinessHoursException(policy_id)
            local_date += timedelta(days=1)
