"""Pytest configuration and fixtures."""

import asyncio
import os
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

# Set test environment - only set if not already set
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from inbox_sla.core import StoreUnavailableException
from inbox_sla.sla.application import (
    ExpiredDetector,
    INotificationSink,
    IPolicyStore,
    IThreadStore,
    SLAHierarchyResolver,
    StatsAggregator,
    WarningDetector,
)
from inbox_sla.sla.domain import (
    BusinessHoursSchedule,
    ChannelSLAAssignment,
    DaySchedule,
    LocalSLAAssignment,
    SLAPolicy,
    ThreadRecord,
)

UTC = timezone.utc

# Wednesday
NOW = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)
TENANT = "acme"


def make_policy(
    id: str = "standard",
    tenant_id: str = TENANT,
    response_time_minutes: int = 60,
    resolution_time_hours: int = 24,
    is_default: bool = False,
    is_active: bool = True,
    business_hours: Optional[BusinessHoursSchedule] = None,
    name: Optional[str] = None,
) -> SLAPolicy:
    return SLAPolicy(
        id=id,
        tenant_id=tenant_id,
        name=name or id.title(),
        response_time_minutes=response_time_minutes,
        resolution_time_hours=resolution_time_hours,
        is_default=is_default,
        is_active=is_active,
        business_hours=business_hours,
    )


def make_thread(
    id: str = "t1",
    created_at: datetime = NOW,
    channel_type: str = "WHATSAPP",
    local_id: Optional[str] = None,
    assignee_id: Optional[str] = "agent-1",
    tenant_id: str = TENANT,
    **kwargs,
) -> ThreadRecord:
    return ThreadRecord(
        id=id,
        tenant_id=tenant_id,
        created_at=created_at,
        channel_type=channel_type,
        local_id=local_id,
        assignee_id=assignee_id,
        **kwargs,
    )


def weekday_hours(
    start: str = "09:00",
    end: str = "18:00",
    tz: str = "UTC",
    days=(1, 2, 3, 4, 5),
) -> BusinessHoursSchedule:
    """Mon-Fri (by default) business hours."""
    return BusinessHoursSchedule(days=tuple(
        DaySchedule(day=d, enabled=True, start_time=start, end_time=end, timezone=tz)
        for d in days
    ))


def minutes_ago(minutes: float, now: datetime = NOW) -> datetime:
    return now - timedelta(minutes=minutes)


# ========== In-memory stores ==========

class InMemoryPolicyStore(IPolicyStore):
    """Policy store backed by lists; counts calls per method."""

    def __init__(self):
        self.policies: List[SLAPolicy] = []
        self.local_assignments: List[LocalSLAAssignment] = []
        self.channel_assignments: List[ChannelSLAAssignment] = []
        self.local_ids: Dict[str, List[str]] = {}
        self.calls = Counter()

    def add_policy(self, policy: SLAPolicy) -> SLAPolicy:
        self.policies.append(policy)
        return policy

    def assign_local(self, local_id: str, sla_id: Optional[str], tenant_id: str = TENANT) -> None:
        self.local_assignments.append(LocalSLAAssignment(tenant_id, local_id, sla_id))
        ids = self.local_ids.setdefault(tenant_id, [])
        if local_id not in ids:
            ids.append(local_id)

    def assign_channel(self, channel_type: str, sla_id: Optional[str], tenant_id: str = TENANT) -> None:
        self.channel_assignments.append(ChannelSLAAssignment(tenant_id, channel_type, sla_id))

    async def get_policy(self, policy_id):
        self.calls["get_policy"] += 1
        return next((p for p in self.policies if p.id == policy_id), None)

    async def list_active_policies(self, tenant_id):
        self.calls["list_active_policies"] += 1
        return [p for p in self.policies if p.tenant_id == tenant_id and p.is_active]

    async def get_local_assignment(self, tenant_id, local_id):
        self.calls["get_local_assignment"] += 1
        return next(
            (a for a in self.local_assignments if a.tenant_id == tenant_id and a.local_id == local_id),
            None
        )

    async def get_channel_assignment(self, tenant_id, channel_type):
        self.calls["get_channel_assignment"] += 1
        return next(
            (a for a in self.channel_assignments
             if a.tenant_id == tenant_id and a.channel_type == channel_type),
            None
        )

    async def list_local_assignments(self, tenant_id):
        self.calls["list_local_assignments"] += 1
        return [a for a in self.local_assignments if a.tenant_id == tenant_id]

    async def list_channel_assignments(self, tenant_id):
        self.calls["list_channel_assignments"] += 1
        return [a for a in self.channel_assignments if a.tenant_id == tenant_id]

    async def list_local_ids(self, tenant_id):
        self.calls["list_local_ids"] += 1
        return list(self.local_ids.get(tenant_id, []))

    async def list_tenant_ids(self):
        self.calls["list_tenant_ids"] += 1
        return sorted({p.tenant_id for p in self.policies})


class InMemoryThreadStore(IThreadStore):
    """Thread store backed by a list; optional delay and failing tenants."""

    def __init__(self):
        self.threads: List[ThreadRecord] = []
        self.calls = Counter()
        self.delay: float = 0.0
        self.failing_tenants: set = set()
        self.last_created_before: Optional[datetime] = None

    def add(self, *threads: ThreadRecord) -> None:
        self.threads.extend(threads)

    async def _open_lacking_response(self, tenant_id):
        if tenant_id in self.failing_tenants:
            raise StoreUnavailableException("thread store", "connection refused")
        if self.delay:
            await asyncio.sleep(self.delay)
        return [
            t for t in self.threads
            if t.tenant_id == tenant_id and t.awaiting_first_response
        ]

    async def list_open_threads_lacking_response(self, tenant_id, filters=None):
        self.calls["list_open_threads_lacking_response"] += 1
        return await self._open_lacking_response(tenant_id)

    async def list_open_threads_past_deadline(self, tenant_id, filters=None, created_before=None):
        self.calls["list_open_threads_past_deadline"] += 1
        self.last_created_before = created_before
        threads = await self._open_lacking_response(tenant_id)
        if created_before is not None:
            threads = [t for t in threads if t.created_at <= created_before]
        return threads

    async def get_thread(self, tenant_id, thread_id):
        self.calls["get_thread"] += 1
        return next(
            (t for t in self.threads if t.tenant_id == tenant_id and t.id == thread_id),
            None
        )


class RecordingSink(INotificationSink):
    """Notification sink that records every call."""

    def __init__(self, deliver: bool = True):
        self.deliver = deliver
        self.sent = []

    async def notify(self, recipient_ids, notification_type, payload):
        self.sent.append((list(recipient_ids), notification_type, payload))
        return self.deliver


# ========== Fixtures ==========

@pytest.fixture
def now():
    return NOW


@pytest.fixture
def policy_store():
    return InMemoryPolicyStore()


@pytest.fixture
def thread_store():
    return InMemoryThreadStore()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def resolver(policy_store):
    return SLAHierarchyResolver(policy_store)


@pytest.fixture
def warning_detector(resolver, thread_store):
    return WarningDetector(resolver, thread_store, clock=lambda: NOW)


@pytest.fixture
def expired_detector(resolver, thread_store):
    return ExpiredDetector(resolver, thread_store, clock=lambda: NOW)


@pytest.fixture
def aggregator(warning_detector, expired_detector, resolver, policy_store):
    return StatsAggregator(warning_detector, expired_detector, resolver, policy_store, clock=lambda: NOW)
