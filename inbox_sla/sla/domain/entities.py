"""
SLA Domain Entities
====================

Pure Python domain entities for SLA resolution and monitoring.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cached_property
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo

from inbox_sla.config import (
    DEFAULT_TIMEZONE, OPEN_THREAD_STATUSES,
    PolicyPriority, ThreadStatus,
)

MINUTES_PER_DAY = 24 * 60

# An end time of 23:59 means "until midnight" so all-day presets cover 1440 minutes
END_OF_DAY = "23:59"


def as_utc(value: datetime) -> datetime:
    """Normalise a datetime to aware UTC; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_hhmm(value: str) -> int:
    """Convert "HH:MM" to minutes after midnight."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def weekday_index(value: datetime) -> int:
    """Weekday with Sunday as 0, matching DaySchedule.day."""
    return value.isoweekday() % 7


@dataclass(frozen=True)
class DaySchedule:
    """Opening window for one weekday (0 = Sunday ... 6 = Saturday)."""

    day: int
    enabled: bool
    start_time: str = "09:00"
    end_time: str = "18:00"
    timezone: str = DEFAULT_TIMEZONE

    @property
    def start_minute(self) -> int:
        return parse_hhmm(self.start_time)

    @property
    def end_minute(self) -> int:
        return parse_hhmm(self.end_time)

    @property
    def crosses_midnight(self) -> bool:
        """end < start means the window runs past midnight."""
        return self.end_minute < self.start_minute

    @property
    def window_end_minute(self) -> int:
        """End minute used for counting open time (exclusive)."""
        if self.end_time == END_OF_DAY:
            return MINUTES_PER_DAY
        return self.end_minute

    @property
    def open_minutes(self) -> int:
        """Minutes of open time this entry contributes per week."""
        if not self.enabled:
            return 0
        if self.crosses_midnight:
            return (MINUTES_PER_DAY - self.start_minute) + self.end_minute
        return max(0, self.window_end_minute - self.start_minute)


@dataclass(frozen=True)
class BusinessHoursSchedule:
    """
    Weekly recurring business hours.

    `is_24x7` short-circuits every day entry. Days missing from `days`
    are closed.
    """

    days: Tuple[DaySchedule, ...] = ()
    is_24x7: bool = False

    @property
    def timezone(self) -> str:
        for day in self.days:
            if day.timezone:
                return day.timezone
        return DEFAULT_TIMEZONE

    @cached_property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def day_for(self, weekday: int) -> Optional[DaySchedule]:
        """Get the entry for a weekday (0 = Sunday)."""
        for day in self.days:
            if day.day == weekday:
                return day
        return None

    @property
    def has_open_time(self) -> bool:
        """False when the schedule never opens (all days disabled or empty)."""
        if self.is_24x7:
            return True
        return any(day.open_minutes > 0 for day in self.days)

    @classmethod
    def always_open(cls) -> "BusinessHoursSchedule":
        return cls(days=(), is_24x7=True)


@dataclass
class SLAPolicy:
    """
    Tenant-owned service level policy.

    `business_hours=None` means the clock runs 24/7. `escalation_rules`
    is opaque to the engine and passed through unchanged.
    """

    id: str
    tenant_id: str
    name: str
    response_time_minutes: int
    resolution_time_hours: int
    priority: PolicyPriority = PolicyPriority.MEDIUM
    is_active: bool = True
    is_default: bool = False
    business_hours: Optional[BusinessHoursSchedule] = None
    escalation_rules: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate policy on initialization."""
        if self.response_time_minutes <= 0:
            raise ValueError("response_time_minutes must be greater than 0")
        if self.resolution_time_hours <= 0:
            raise ValueError("resolution_time_hours must be greater than 0")

    @property
    def is_24x7(self) -> bool:
        """True when deadlines are plain wall-clock offsets."""
        return self.business_hours is None or self.business_hours.is_24x7

    @property
    def resolution_time_minutes(self) -> int:
        return self.resolution_time_hours * 60


@dataclass(frozen=True)
class LocalSLAAssignment:
    """(tenant, local) -> policy. `sla_id=None` means explicitly unset."""

    tenant_id: str
    local_id: str
    sla_id: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class ChannelSLAAssignment:
    """(tenant, channel type) -> policy. `sla_id=None` means explicitly unset."""

    tenant_id: str
    channel_type: str
    sla_id: Optional[str] = None
    id: Optional[str] = None


@dataclass
class ThreadRecord:
    """
    A customer conversation as read from the thread store.

    Only the fields the engine needs plus display fields for dashboards.
    """

    id: str
    tenant_id: str
    created_at: datetime
    channel_type: str
    local_id: Optional[str] = None
    assignee_id: Optional[str] = None
    last_inbound_message_at: Optional[datetime] = None
    status: ThreadStatus = ThreadStatus.OPEN
    first_response_at: Optional[datetime] = None

    # Display fields
    subject: Optional[str] = None
    contact_name: Optional[str] = None
    contact_handle: Optional[str] = None
    local_name: Optional[str] = None
    assignee_name: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_THREAD_STATUSES

    @property
    def awaiting_first_response(self) -> bool:
        """Open and no outbound agent reply yet."""
        return self.is_open and self.first_response_at is None

    @property
    def last_message_at(self) -> datetime:
        return self.last_inbound_message_at or self.created_at
