"""Tests for the warning and expired detectors."""

from datetime import timedelta

import pytest

from inbox_sla.config import ExpiredSeverity, WarningLevel
from inbox_sla.core import (
    InvalidFilterException,
    ResourceNotFoundException,
    ScanTimeoutException,
    StoreUnavailableException,
)
from inbox_sla.sla.application import ExpiredDetector, ScanFilters
from inbox_sla.sla.application.services import _ResponseDeadlineScanner
from inbox_sla.sla.domain import BusinessHoursSchedule, DaySchedule

from conftest import NOW, TENANT, make_policy, make_thread, minutes_ago


@pytest.fixture
def seeded(policy_store, thread_store):
    """60 minute default policy and threads at every stage."""
    policy_store.add_policy(make_policy("default", response_time_minutes=60, is_default=True))
    thread_store.add(
        make_thread("fresh", minutes_ago(10)),
        make_thread("low", minutes_ago(46), channel_type="INSTAGRAM", assignee_id="agent-2"),
        make_thread("high", minutes_ago(55), local_id="downtown", local_name="Downtown"),
        make_thread("critical", minutes_ago(58), assignee_name="Ana"),
        make_thread("overdue", minutes_ago(70)),
        make_thread("expired-critical", minutes_ago(130), channel_type="INSTAGRAM"),
        make_thread("urgent", minutes_ago(200), assignee_id=None),
        make_thread("replied", minutes_ago(58), first_response_at=minutes_ago(50)),
    )
    return thread_store


class TestWarningDetector:
    """Tests for WarningDetector."""

    async def test_scan_returns_warning_tiers_sorted(self, seeded, warning_detector):
        result = await warning_detector.scan(TENANT)
        assert [w.thread_id for w in result] == ["critical", "high", "low"]
        assert [w.warning_level for w in result] == [
            WarningLevel.CRITICAL, WarningLevel.HIGH, WarningLevel.LOW
        ]
        assert result.scanned_at == NOW
        assert not result.is_partial

    async def test_rows_carry_display_fields(self, seeded, warning_detector):
        result = await warning_detector.scan(TENANT)
        critical = result.items[0]
        assert critical.time_remaining == 2.0
        assert critical.response_deadline == minutes_ago(58) + timedelta(minutes=60)
        assert critical.assigned_to_name == "Ana"
        assert critical.thread_subject == "No subject"
        assert critical.local_name == "Unassigned"
        assert critical.sla_id == "default"

    async def test_scan_is_idempotent(self, seeded, warning_detector):
        first = await warning_detector.scan(TENANT, now=NOW)
        second = await warning_detector.scan(TENANT, now=NOW)
        assert first.items == second.items

    async def test_filters(self, seeded, warning_detector):
        result = await warning_detector.scan(TENANT, ScanFilters.parse(channel_type="instagram"))
        assert [w.thread_id for w in result] == ["low"]

        result = await warning_detector.scan(TENANT, ScanFilters.parse(agent_id="agent-2"))
        assert [w.thread_id for w in result] == ["low"]

    def test_invalid_filters_rejected(self):
        with pytest.raises(InvalidFilterException):
            ScanFilters.parse(channel_type="CARRIER_PIGEON")
        with pytest.raises(InvalidFilterException):
            ScanFilters.parse(created_from=NOW, created_to=NOW - timedelta(days=1))

    async def test_constant_store_round_trips(self, seeded, policy_store, warning_detector):
        for i in range(50):
            seeded.add(make_thread(f"bulk-{i}", minutes_ago(50), local_id=f"local-{i}"))
        await warning_detector.scan(TENANT)

        assert policy_store.calls["list_active_policies"] == 1
        assert policy_store.calls["list_local_assignments"] == 1
        assert policy_store.calls["list_channel_assignments"] == 1
        assert policy_store.calls["get_policy"] == 0
        assert seeded.calls["list_open_threads_lacking_response"] == 1

    async def test_misconfigured_threads_reported_separately(self, seeded, policy_store, warning_detector):
        closed = BusinessHoursSchedule(days=(DaySchedule(day=1, enabled=False),))
        policy_store.add_policy(make_policy("broken", business_hours=closed))
        policy_store.assign_channel("TELEGRAM", "broken")
        seeded.add(make_thread("telegram", minutes_ago(5), channel_type="TELEGRAM"))

        result = await warning_detector.scan(TENANT)
        assert [m.thread_id for m in result.misconfigured] == ["telegram"]
        assert result.misconfigured[0].sla_id == "broken"
        assert "telegram" not in [w.thread_id for w in result]

    async def test_timeout_raises(self, seeded, warning_detector):
        seeded.delay = 0.5
        with pytest.raises(ScanTimeoutException):
            await warning_detector.scan(TENANT, timeout=0.05)

    async def test_timeout_with_partial_results(self, seeded, warning_detector):
        seeded.delay = 0.5
        result = await warning_detector.scan(TENANT, timeout=0.05, allow_partial=True)
        assert result.is_partial
        assert result.items == []

    async def test_store_failure_propagates(self, seeded, warning_detector):
        seeded.failing_tenants.add(TENANT)
        with pytest.raises(StoreUnavailableException):
            await warning_detector.scan(TENANT)

    async def test_stats(self, seeded, warning_detector):
        stats = await warning_detector.get_stats(TENANT)
        assert stats.total == 3
        assert stats.by_level == {
            WarningLevel.LOW: 1, WarningLevel.MEDIUM: 0, WarningLevel.HIGH: 1, WarningLevel.CRITICAL: 1
        }
        assert stats.by_channel == {"WHATSAPP": 2, "INSTAGRAM": 1}
        assert stats.by_local == {"Downtown": 1, "Unassigned": 2}
        assert stats.by_agent == {"Ana": 1, "agent-1": 1, "agent-2": 1}

    async def test_single_thread_helpers(self, seeded, warning_detector):
        remaining = await warning_detector.get_thread_time_remaining(TENANT, "critical")
        assert remaining.is_warning
        assert remaining.time_remaining == 2.0

        fresh = await warning_detector.get_thread_time_remaining(TENANT, "fresh")
        assert not fresh.is_warning
        assert fresh.warning_level == WarningLevel.NONE

        assert await warning_detector.check_thread_warning(TENANT, "missing") is None

    async def test_evaluate_missing_thread(self, seeded, warning_detector):
        with pytest.raises(ResourceNotFoundException):
            await warning_detector.evaluate_thread(TENANT, "missing")


class TestExpiredDetector:
    """Tests for ExpiredDetector."""

    async def test_scan_sorted_by_severity(self, seeded, expired_detector):
        result = await expired_detector.scan(TENANT)
        assert [e.thread_id for e in result] == ["urgent", "expired-critical", "overdue"]
        assert [e.severity for e in result] == [
            ExpiredSeverity.URGENT, ExpiredSeverity.CRITICAL, ExpiredSeverity.OVERDUE
        ]

    async def test_rows(self, seeded, expired_detector):
        result = await expired_detector.scan(TENANT)
        overdue = result.items[-1]
        assert overdue.time_overdue == 10.0
        assert overdue.percentage_overdue == pytest.approx(16.67)
        assert overdue.expired_at == minutes_ago(10)

    async def test_prefilter_uses_shortest_budget(self, seeded, policy_store, expired_detector):
        policy_store.add_policy(make_policy("express", response_time_minutes=15))
        await expired_detector.scan(TENANT)
        assert seeded.last_created_before == NOW - timedelta(minutes=15)

    async def test_prefilter_without_policies(self, seeded, policy_store, expired_detector):
        policy_store.policies.clear()
        result = await expired_detector.scan(TENANT)
        assert seeded.last_created_before == NOW
        assert len(result) == 0

    async def test_stats(self, seeded, expired_detector):
        stats = await expired_detector.get_stats(TENANT)
        assert stats.total == 3
        assert stats.by_severity == {
            ExpiredSeverity.OVERDUE: 1, ExpiredSeverity.CRITICAL: 1, ExpiredSeverity.URGENT: 1
        }
        # urgent thread is unassigned
        assert stats.by_agent == {"agent-1": 2}
        assert stats.max_overdue == 140.0
        assert stats.average_overdue == round((140 + 70 + 10) / 3, 2)

    async def test_empty_stats(self, expired_detector):
        stats = await expired_detector.get_stats(TENANT)
        assert stats.total == 0
        assert stats.average_overdue == 0.0

    async def test_critical_only(self, seeded, expired_detector):
        result = await expired_detector.get_critical(TENANT)
        assert [e.thread_id for e in result] == ["urgent", "expired-critical"]

    async def test_time_range(self, seeded, expired_detector):
        result = await expired_detector.get_by_time_range(TENANT, minutes_ago(80), minutes_ago(60))
        assert [e.thread_id for e in result] == ["expired-critical"]

    async def test_single_thread_helpers(self, seeded, expired_detector):
        overdue = await expired_detector.get_thread_overdue(TENANT, "overdue")
        assert overdue.is_expired
        assert overdue.severity == ExpiredSeverity.OVERDUE

        fresh = await expired_detector.get_thread_overdue(TENANT, "fresh")
        assert not fresh.is_expired
        assert fresh.time_overdue == 0.0

    async def test_default_clock_read_once(self, seeded, resolver, thread_store):
        reads = []

        def clock():
            reads.append(1)
            return NOW

        detector = ExpiredDetector(resolver, thread_store, clock=clock)
        await detector.scan(TENANT)
        assert len(reads) == 1


class TestScannerBase:
    """Tests for the shared scan loop."""

    def test_hooks_must_be_implemented(self, resolver, thread_store):
        class RowlessScanner(_ResponseDeadlineScanner):
            async def _load_candidates(self, tenant_id, filters, snapshot, now):
                return []

        with pytest.raises(TypeError):
            RowlessScanner(resolver, thread_store)
