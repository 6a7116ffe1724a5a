"""
Deadline Computation & Classification
======================================

Turns an EffectiveSLA plus a reference timestamp into absolute deadlines,
and classifies a thread's position relative to its response deadline.

All durations are minutes as floats rounded to two decimals. When the
policy carries business hours, durations count in-schedule time only.
"""

from datetime import datetime, timedelta
from typing import Optional

from inbox_sla.config import (
    WARNING_LOW, WARNING_MEDIUM, WARNING_HIGH, WARNING_CRITICAL,
    EXPIRED_CRITICAL_MIN, EXPIRED_URGENT_MIN,
    ExpiredSeverity, ReferenceTimestamp, SLAStatus, WarningLevel,
)
from inbox_sla.core import UnschedulableBusinessHoursException
from inbox_sla.sla.domain.business_hours import BusinessHoursCalculator
from inbox_sla.sla.domain.entities import SLAPolicy, ThreadRecord, as_utc
from inbox_sla.sla.domain.value_objects import (
    EffectiveSLA,
    SLADeadlines,
    ThreadSLAState,
)


def _to_minutes(seconds: float) -> float:
    return round(seconds / 60, 2)


class DeadlineComputer:
    """
    Domain service for deadline arithmetic.

    All methods are static - no state.
    """

    @staticmethod
    def compute_deadlines(effective: EffectiveSLA, reference: datetime) -> SLADeadlines:
        """
        Calculate response and resolution deadlines.

        Args:
            effective: Resolved SLA for the thread
            reference: Instant the clock starts from

        Returns:
            SLADeadlines (both None when no SLA applies)

        Raises:
            UnschedulableBusinessHoursException: business hours never open
        """
        if not effective.applies:
            return SLADeadlines()

        policy = effective.policy
        reference = as_utc(reference)

        if policy.is_24x7:
            return SLADeadlines(
                response_deadline=reference + timedelta(minutes=policy.response_time_minutes),
                resolution_deadline=reference + timedelta(hours=policy.resolution_time_hours),
            )

        schedule = policy.business_hours
        window_start = BusinessHoursCalculator.next_open_instant(schedule, reference)
        if window_start is None:
            raise UnschedulableBusinessHoursException(policy.id)

        return SLADeadlines(
            response_deadline=BusinessHoursCalculator.add_in_schedule_minutes(
                schedule, window_start, policy.response_time_minutes, policy.id
            ),
            resolution_deadline=BusinessHoursCalculator.add_in_schedule_minutes(
                schedule, window_start, policy.resolution_time_minutes, policy.id
            ),
        )

    @staticmethod
    def elapsed_minutes(policy: Optional[SLAPolicy], reference: datetime, now: datetime) -> float:
        """Minutes on the SLA clock between reference and now."""
        schedule = policy.business_hours if policy else None
        return _to_minutes(
            BusinessHoursCalculator.in_schedule_seconds_between(schedule, reference, now)
        )

    @staticmethod
    def time_remaining(policy: Optional[SLAPolicy], now: datetime, deadline: datetime) -> float:
        """Minutes left until deadline; 0 once now reaches it."""
        schedule = policy.business_hours if policy else None
        return _to_minutes(
            BusinessHoursCalculator.in_schedule_seconds_between(schedule, now, deadline)
        )

    @staticmethod
    def time_overdue(policy: Optional[SLAPolicy], now: datetime, deadline: datetime) -> float:
        """Minutes past deadline; 0 before it."""
        schedule = policy.business_hours if policy else None
        return _to_minutes(
            BusinessHoursCalculator.in_schedule_seconds_between(schedule, deadline, now)
        )

    @staticmethod
    def reference_timestamp(thread: ThreadRecord, mode: str = ReferenceTimestamp.CREATED_AT) -> datetime:
        """Pick the instant the response clock starts from."""
        if mode == ReferenceTimestamp.LAST_INBOUND_MESSAGE_AT and thread.last_inbound_message_at:
            return as_utc(thread.last_inbound_message_at)
        return as_utc(thread.created_at)


# ========== Classification ==========

def percentage_used(time_remaining: float, response_time_minutes: int) -> float:
    """100 * (1 - remaining / budget), clamped to [0, 100]."""
    used = 100 * (1 - time_remaining / response_time_minutes)
    return round(min(100.0, max(0.0, used)), 2)


def percentage_overdue(time_overdue: float, response_time_minutes: int) -> float:
    return round(100 * time_overdue / response_time_minutes, 2)


def warning_level(used: float) -> WarningLevel:
    """Map percentage of the response budget used to a warning tier."""
    if used >= WARNING_CRITICAL:
        return WarningLevel.CRITICAL
    if used >= WARNING_HIGH:
        return WarningLevel.HIGH
    if used >= WARNING_MEDIUM:
        return WarningLevel.MEDIUM
    if used >= WARNING_LOW:
        return WarningLevel.LOW
    return WarningLevel.NONE


def warning_level_for_remaining(remaining_seconds: float, response_time_minutes: int) -> WarningLevel:
    """
    Warning tier from the exact open-time seconds left.

    Tier T applies when `remaining <= budget * (100 - T) / 100`; the
    rounded `percentage_used` is for display only.
    """
    budget_seconds = response_time_minutes * 60
    for threshold, level in (
        (WARNING_CRITICAL, WarningLevel.CRITICAL),
        (WARNING_HIGH, WarningLevel.HIGH),
        (WARNING_MEDIUM, WarningLevel.MEDIUM),
        (WARNING_LOW, WarningLevel.LOW),
    ):
        if remaining_seconds * 100 <= budget_seconds * (100 - threshold):
            return level
    return WarningLevel.NONE


def expired_severity(overdue_minutes: float) -> ExpiredSeverity:
    """Map minutes past the response deadline to a severity."""
    if overdue_minutes >= EXPIRED_URGENT_MIN:
        return ExpiredSeverity.URGENT
    if overdue_minutes >= EXPIRED_CRITICAL_MIN:
        return ExpiredSeverity.CRITICAL
    return ExpiredSeverity.OVERDUE


def evaluate_thread_state(
    thread: ThreadRecord,
    effective: EffectiveSLA,
    now: datetime,
    reference_mode: str = ReferenceTimestamp.CREATED_AT
) -> ThreadSLAState:
    """
    Compute the SLA health of one thread at `now`.

    A thread is expired once `now` reaches its response deadline; before
    that it is a warning when its percentage used reaches a tier and ok
    otherwise. Threads that already got a reply are ok.
    """
    now = as_utc(now)
    if not effective.applies:
        return ThreadSLAState(thread_id=thread.id, status=SLAStatus.NO_SLA, evaluated_at=now)

    policy = effective.policy
    reference = DeadlineComputer.reference_timestamp(thread, reference_mode)
    base = dict(
        thread_id=thread.id,
        evaluated_at=now,
        source=effective.source,
        sla_id=policy.id,
        sla_name=policy.name,
        reference_at=reference,
    )

    try:
        deadlines = DeadlineComputer.compute_deadlines(effective, reference)
    except UnschedulableBusinessHoursException as e:
        return ThreadSLAState(status=SLAStatus.MISCONFIGURED, error=e.message, **base)

    base.update(
        response_deadline=deadlines.response_deadline,
        resolution_deadline=deadlines.resolution_deadline,
        elapsed_minutes=DeadlineComputer.elapsed_minutes(policy, reference, now),
    )

    if not thread.awaiting_first_response:
        return ThreadSLAState(status=SLAStatus.OK, **base)

    schedule = policy.business_hours
    if now >= deadlines.response_deadline:
        overdue_seconds = BusinessHoursCalculator.in_schedule_seconds_between(
            schedule, deadlines.response_deadline, now
        )
        overdue = _to_minutes(overdue_seconds)
        return ThreadSLAState(
            status=SLAStatus.EXPIRED,
            time_overdue=overdue,
            percentage_used=100.0,
            percentage_overdue=percentage_overdue(overdue, policy.response_time_minutes),
            severity=expired_severity(overdue_seconds / 60),
            **base
        )

    remaining_seconds = BusinessHoursCalculator.in_schedule_seconds_between(
        schedule, now, deadlines.response_deadline
    )
    remaining = _to_minutes(remaining_seconds)
    used = percentage_used(remaining, policy.response_time_minutes)
    level = warning_level_for_remaining(remaining_seconds, policy.response_time_minutes)
    return ThreadSLAState(
        status=SLAStatus.WARNING if level != WarningLevel.NONE else SLAStatus.OK,
        time_remaining=remaining,
        percentage_used=used,
        warning_level=level,
        **base
    )
