"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain services and stores.

Following SOLID principles:
- Single Responsibility: resolver, detectors and aggregator each have one purpose
- Dependency Inversion: depend on store abstractions, not concrete implementations

Every public entry point accepts an optional `now`; when omitted it is read
once from the injected clock and reused for the whole call.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from inbox_sla.config import (
    CHANNEL_WEIGHT, LOCAL_WEIGHT, TENANT_WEIGHT,
    SEVERITY_RANK, VALID_CHANNEL_TYPES, WARNING_LEVEL_RANK,
    ExpiredSeverity, ReferenceTimestamp, SLASource, SLAStatus, WarningLevel,
)
from inbox_sla.core import (
    AssignmentConflictException,
    PolicyNotFoundException,
    ResourceNotFoundException,
    ScanTimeoutException,
)
from inbox_sla.sla.application.dto import ScanFilters
from inbox_sla.sla.domain import (
    ChannelSLAAssignment,
    CoverageLevel,
    EffectiveSLA,
    ExpiredStats,
    LocalSLAAssignment,
    PolicySnapshot,
    ScanResult,
    SLAApplicability,
    SLACoverage,
    SLADashboardSummary,
    SLAHierarchyExplanation,
    SLAPolicy,
    SLASimulation,
    SLASimulationEntry,
    ThreadExpired,
    ThreadMisconfigured,
    ThreadOverdue,
    ThreadRecord,
    ThreadSLAState,
    ThreadTimeRemaining,
    ThreadWarning,
    WarningStats,
    as_utc,
    evaluate_thread_state,
    select_tenant_default,
)
from inbox_sla.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


# ========== Store Interfaces (Dependency Inversion) ==========

class IPolicyStore(ABC):
    """Interface for SLA policy and assignment access (read side)."""

    @abstractmethod
    async def get_policy(self, policy_id: str) -> Optional[SLAPolicy]:
        """Get policy by ID regardless of tenant or active flag."""

    @abstractmethod
    async def list_active_policies(self, tenant_id: str) -> List[SLAPolicy]:
        """Active policies owned by a tenant."""

    @abstractmethod
    async def get_local_assignment(
        self,
        tenant_id: str,
        local_id: str
    ) -> Optional[LocalSLAAssignment]:
        """Local assignment row, if any."""

    @abstractmethod
    async def get_channel_assignment(
        self,
        tenant_id: str,
        channel_type: str
    ) -> Optional[ChannelSLAAssignment]:
        """Channel assignment row, if any."""

    @abstractmethod
    async def list_local_assignments(self, tenant_id: str) -> List[LocalSLAAssignment]:
        """All local assignments of a tenant."""

    @abstractmethod
    async def list_channel_assignments(self, tenant_id: str) -> List[ChannelSLAAssignment]:
        """All channel assignments of a tenant."""

    @abstractmethod
    async def list_local_ids(self, tenant_id: str) -> List[str]:
        """IDs of the tenant's locals."""

    @abstractmethod
    async def list_tenant_ids(self) -> List[str]:
        """Tenants known to the store."""


class IThreadStore(ABC):
    """Interface for thread access."""

    @abstractmethod
    async def list_open_threads_lacking_response(
        self,
        tenant_id: str,
        filters: Optional[ScanFilters] = None
    ) -> List[ThreadRecord]:
        """Open threads without a first agent reply."""

    @abstractmethod
    async def list_open_threads_past_deadline(
        self,
        tenant_id: str,
        filters: Optional[ScanFilters] = None,
        created_before: Optional[datetime] = None
    ) -> List[ThreadRecord]:
        """
        Candidate threads for the expired scan.

        `created_before` is a pre-filter only; the detector re-checks
        each thread against its real deadline.
        """

    @abstractmethod
    async def get_thread(self, tenant_id: str, thread_id: str) -> Optional[ThreadRecord]:
        """Get a single thread."""


class INotificationSink(ABC):
    """Interface for delivering SLA notifications."""

    @abstractmethod
    async def notify(
        self,
        recipient_ids: List[str],
        notification_type: str,
        payload: Dict[str, Any]
    ) -> bool:
        """Deliver one notification; False means not delivered."""


# ========== Hierarchy ==========

class SLAHierarchyResolver:
    """
    Resolves the effective SLA for a (tenant, local, channel) context.

    Order: local -> channel -> tenant default -> none. An assignment
    pointing at a missing, inactive or foreign policy falls through.
    """

    def __init__(self, policy_store: IPolicyStore):
        self._policy_store = policy_store

    async def _usable_policy(self, tenant_id: str, sla_id: Optional[str]) -> Optional[SLAPolicy]:
        if sla_id is None:
            return None
        policy = await self._policy_store.get_policy(sla_id)
        if policy is None or not policy.is_active or policy.tenant_id != tenant_id:
            return None
        return policy

    async def resolve(
        self,
        tenant_id: str,
        local_id: Optional[str] = None,
        channel_type: Optional[str] = None
    ) -> EffectiveSLA:
        """
        Resolve the effective SLA with point lookups.

        Raises:
            AssignmentConflictException: tenant has several active defaults
        """
        if local_id:
            assignment = await self._policy_store.get_local_assignment(tenant_id, local_id)
            policy = await self._usable_policy(tenant_id, assignment.sla_id if assignment else None)
            if policy:
                return EffectiveSLA.from_policy(policy, SLASource.LOCAL)

        if channel_type:
            assignment = await self._policy_store.get_channel_assignment(tenant_id, channel_type)
            policy = await self._usable_policy(tenant_id, assignment.sla_id if assignment else None)
            if policy:
                return EffectiveSLA.from_policy(policy, SLASource.CHANNEL)

        policies = await self._policy_store.list_active_policies(tenant_id)
        policy = select_tenant_default(tenant_id, policies)
        if policy:
            return EffectiveSLA.from_policy(policy, SLASource.TENANT)

        return EffectiveSLA.none()

    async def snapshot(self, tenant_id: str) -> PolicySnapshot:
        """Load everything resolution needs for a tenant in three queries."""
        policies = await self._policy_store.list_active_policies(tenant_id)
        local_assignments = await self._policy_store.list_local_assignments(tenant_id)
        channel_assignments = await self._policy_store.list_channel_assignments(tenant_id)
        return PolicySnapshot.build(tenant_id, policies, local_assignments, channel_assignments)

    async def explain(
        self,
        tenant_id: str,
        local_id: Optional[str] = None,
        channel_type: Optional[str] = None
    ) -> SLAHierarchyExplanation:
        """Effective SLA plus what each level would contribute."""
        snapshot = await self.snapshot(tenant_id)
        effective = snapshot.resolve(local_id, channel_type)

        def level(policy: Optional[SLAPolicy], source: str) -> Optional[EffectiveSLA]:
            return EffectiveSLA.from_policy(policy, source) if policy else None

        explanation = SLAHierarchyExplanation(
            effective=effective,
            local=level(snapshot.local_policy(local_id), SLASource.LOCAL),
            channel=level(snapshot.channel_policy(channel_type), SLASource.CHANNEL),
            tenant=level(snapshot.tenant_policy(), SLASource.TENANT),
        )

        recommendations = explanation.recommendations
        if effective.source == SLASource.NONE:
            recommendations.append("No SLA configured - consider configuring a default SLA")
        elif effective.source == SLASource.TENANT:
            recommendations.append("Using the tenant default SLA - consider configuring channel or local SLAs")
        elif effective.source == SLASource.CHANNEL:
            recommendations.append("Using the channel SLA - consider configuring a specific SLA for this local")
        else:
            recommendations.append("Using the local-specific SLA - optimal configuration")

        if snapshot.dangling_local(local_id):
            recommendations.append("This local has a specific SLA that is not in use (inactive or missing policy)")
        if snapshot.dangling_channel(channel_type):
            recommendations.append("This channel has a specific SLA that is not in use (inactive or missing policy)")

        return explanation

    async def validate_applicability(
        self,
        sla_id: str,
        tenant_id: str,
        local_id: Optional[str] = None,
        channel_type: Optional[str] = None
    ) -> SLAApplicability:
        """
        Check whether a specific policy is the one in effect.

        Raises:
            PolicyNotFoundException: no policy with that ID
        """
        policy = await self._policy_store.get_policy(sla_id)
        if policy is None:
            raise PolicyNotFoundException(sla_id)

        effective = await self.resolve(tenant_id, local_id, channel_type)

        if policy.tenant_id != tenant_id:
            return SLAApplicability(False, effective, "SLA policy belongs to another tenant")
        if not policy.is_active:
            return SLAApplicability(False, effective, "SLA policy is inactive")
        if effective.sla_id != sla_id:
            return SLAApplicability(
                False, effective, f"Effective SLA is resolved at the {effective.source} level"
            )
        return SLAApplicability(True, effective)

    async def simulate(self, tenant_id: str) -> SLASimulation:
        """Resolve tenant-only, every channel, every local, and first local + first channel."""
        snapshot = await self.snapshot(tenant_id)
        local_ids = await self._policy_store.list_local_ids(tenant_id)

        simulation = SLASimulation(tenant_id=tenant_id)
        entries = simulation.entries

        entries.append(SLASimulationEntry(
            "Tenant", "No specific local or channel", snapshot.resolve()
        ))
        for channel_type in VALID_CHANNEL_TYPES:
            entries.append(SLASimulationEntry(
                f"Channel {channel_type}", f"SLA for channel {channel_type}",
                snapshot.resolve(channel_type=channel_type)
            ))
        for local_id in local_ids:
            entries.append(SLASimulationEntry(
                f"Local {local_id}", f"SLA for local {local_id}",
                snapshot.resolve(local_id=local_id)
            ))
        if local_ids:
            first_channel = VALID_CHANNEL_TYPES[0]
            entries.append(SLASimulationEntry(
                f"Local {local_ids[0]} + Channel {first_channel}",
                "SLA for a specific local and channel",
                snapshot.resolve(local_ids[0], first_channel)
            ))
        return simulation


# ========== Detectors ==========

class _ResponseDeadlineScanner(ABC):
    """
    Shared scan loop for the warning and expired detectors.

    Loads the policy snapshot once, evaluates every candidate thread
    against a single `now` and collects misconfigured threads separately.
    """

    scan_name = "sla"

    def __init__(
        self,
        resolver: SLAHierarchyResolver,
        thread_store: IThreadStore,
        clock: Clock = utc_now,
        reference_mode: str = ReferenceTimestamp.CREATED_AT,
        default_timeout: Optional[float] = None
    ):
        self._resolver = resolver
        self._thread_store = thread_store
        self._clock = clock
        self._reference_mode = reference_mode
        self._default_timeout = default_timeout

    def _now(self, now: Optional[datetime]) -> datetime:
        return as_utc(now) if now is not None else as_utc(self._clock())

    @staticmethod
    async def _bounded(awaitable: Awaitable[T], deadline: Optional[float]) -> T:
        if deadline is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, max(0.0, deadline - time.monotonic()))

    @abstractmethod
    async def _load_candidates(
        self,
        tenant_id: str,
        filters: ScanFilters,
        snapshot: PolicySnapshot,
        now: datetime
    ) -> List[ThreadRecord]:
        """Candidate threads for this scan."""

    @abstractmethod
    def _build_row(self, thread: ThreadRecord, effective: EffectiveSLA, state: ThreadSLAState, filters: ScanFilters):
        """Display row for one evaluated thread, or None to skip it."""

    def _sort(self, items: List[Any]) -> List[Any]:
        return items

    def _partial_or_raise(self, result: ScanResult, tenant_id: str, timeout: float, allow_partial: bool) -> ScanResult:
        if not allow_partial:
            logger.error(
                "SLA scan timed out",
                extra={"scan": self.scan_name, "tenant_id": tenant_id, "timeout_seconds": timeout}
            )
            raise ScanTimeoutException(tenant_id, timeout)
        logger.warning(
            "SLA scan timed out, returning partial results",
            extra={"scan": self.scan_name, "tenant_id": tenant_id, "items": len(result.items)}
        )
        result.is_partial = True
        result.items = self._sort(result.items)
        return result

    async def scan(
        self,
        tenant_id: str,
        filters: Optional[ScanFilters] = None,
        *,
        now: Optional[datetime] = None,
        timeout: Optional[float] = None,
        allow_partial: bool = False
    ) -> ScanResult:
        """
        Scan a tenant's open threads.

        Args:
            tenant_id: Tenant to scan
            filters: Optional agent/local/channel/date narrowing
            now: Evaluation instant (defaults to the clock, read once)
            timeout: Seconds before the scan gives up
            allow_partial: Return what was gathered on timeout instead of raising

        Raises:
            ScanTimeoutException: timeout without allow_partial
            StoreUnavailableException: a store call failed
        """
        filters = filters or ScanFilters()
        now = self._now(now)
        timeout = timeout if timeout is not None else self._default_timeout
        deadline = time.monotonic() + timeout if timeout else None
        result = ScanResult(tenant_id=tenant_id, scanned_at=now)

        with log_latency(logger, f"{self.scan_name} scan", tenant_id=tenant_id):
            try:
                snapshot = await self._bounded(self._resolver.snapshot(tenant_id), deadline)
                threads = await self._bounded(
                    self._load_candidates(tenant_id, filters, snapshot, now), deadline
                )
            except asyncio.TimeoutError:
                return self._partial_or_raise(result, tenant_id, timeout, allow_partial)

            for thread in threads:
                if deadline is not None and time.monotonic() > deadline:
                    return self._partial_or_raise(result, tenant_id, timeout, allow_partial)
                if not filters.matches(thread):
                    continue
                result.threads_scanned += 1

                try:
                    effective = snapshot.resolve(thread.local_id, thread.channel_type)
                except AssignmentConflictException as e:
                    result.misconfigured.append(self._misconfigured(thread, None, e.message))
                    continue

                state = evaluate_thread_state(thread, effective, now, self._reference_mode)
                if state.status == SLAStatus.MISCONFIGURED:
                    result.misconfigured.append(self._misconfigured(thread, state.sla_id, state.error))
                    continue

                row = self._build_row(thread, effective, state, filters)
                if row is not None:
                    result.items.append(row)

        result.items = self._sort(result.items)
        if result.misconfigured:
            logger.warning(
                "SLA configuration error on threads",
                extra={
                    "scan": self.scan_name,
                    "tenant_id": tenant_id,
                    "thread_ids": [m.thread_id for m in result.misconfigured],
                }
            )
        logger.info(
            "SLA scan finished",
            extra={
                "scan": self.scan_name,
                "tenant_id": tenant_id,
                "threads_scanned": result.threads_scanned,
                "items": len(result.items),
            }
        )
        return result

    @staticmethod
    def _misconfigured(thread: ThreadRecord, sla_id: Optional[str], reason: Optional[str]) -> ThreadMisconfigured:
        return ThreadMisconfigured(
            thread_id=thread.id,
            channel_type=thread.channel_type,
            local_id=thread.local_id,
            sla_id=sla_id,
            reason=reason or "SLA configuration error",
            assigned_to=thread.assignee_id,
        )

    async def evaluate_thread(
        self,
        tenant_id: str,
        thread_id: str,
        *,
        now: Optional[datetime] = None
    ) -> ThreadSLAState:
        """
        Full SLA state of one thread.

        Raises:
            ResourceNotFoundException: thread does not exist
            AssignmentConflictException: tenant has several active defaults
        """
        now = self._now(now)
        thread = await self._thread_store.get_thread(tenant_id, thread_id)
        if thread is None:
            raise ResourceNotFoundException("Thread", thread_id)
        effective = await self._resolver.resolve(tenant_id, thread.local_id, thread.channel_type)
        return evaluate_thread_state(thread, effective, now, self._reference_mode)

    async def _single_row(self, tenant_id: str, thread_id: str, now: Optional[datetime]):
        now = self._now(now)
        thread = await self._thread_store.get_thread(tenant_id, thread_id)
        if thread is None:
            return None
        effective = await self._resolver.resolve(tenant_id, thread.local_id, thread.channel_type)
        state = evaluate_thread_state(thread, effective, now, self._reference_mode)
        return self._build_row(thread, effective, state, ScanFilters())


def _display_fields(thread: ThreadRecord, effective: EffectiveSLA, state: ThreadSLAState) -> Dict[str, Any]:
    policy = effective.policy
    return dict(
        thread_id=thread.id,
        thread_subject=thread.subject or "No subject",
        contact_name=thread.contact_name or "Unknown",
        contact_handle=thread.contact_handle or "",
        channel_type=thread.channel_type,
        local_id=thread.local_id,
        local_name=thread.local_name or "Unassigned",
        sla_id=policy.id,
        sla_name=policy.name,
        source=effective.source,
        response_time_minutes=policy.response_time_minutes,
        resolution_time_hours=policy.resolution_time_hours,
        time_elapsed=state.elapsed_minutes,
        created_at=as_utc(thread.created_at),
        last_message_at=as_utc(thread.last_message_at),
        assigned_to=thread.assignee_id,
        assigned_to_name=thread.assignee_name,
    )


class WarningDetector(_ResponseDeadlineScanner):
    """
    Detects threads nearing their response deadline.

    Only threads still awaiting a first reply and not yet past the
    deadline are reported; tiers are low/medium/high/critical.
    """

    scan_name = "warning"

    async def _load_candidates(self, tenant_id, filters, snapshot, now):
        return await self._thread_store.list_open_threads_lacking_response(tenant_id, filters)

    def _build_row(self, thread, effective, state, filters):
        if state.status != SLAStatus.WARNING:
            return None
        return ThreadWarning(
            time_remaining=state.time_remaining,
            percentage_used=state.percentage_used,
            warning_level=state.warning_level,
            response_deadline=state.response_deadline,
            **_display_fields(thread, effective, state)
        )

    def _sort(self, items: List[ThreadWarning]) -> List[ThreadWarning]:
        return sorted(items, key=lambda w: (-WARNING_LEVEL_RANK[w.warning_level], w.time_remaining))

    async def get_stats(
        self,
        tenant_id: str,
        filters: Optional[ScanFilters] = None,
        *,
        now: Optional[datetime] = None,
        timeout: Optional[float] = None
    ) -> WarningStats:
        result = await self.scan(tenant_id, filters, now=now, timeout=timeout)
        return self.stats_from(result)

    @staticmethod
    def stats_from(result: ScanResult) -> WarningStats:
        """Fold scan rows into per-level/channel/local/agent counts."""
        stats = WarningStats(total=len(result.items))
        for item in result.items:
            stats.by_level[item.warning_level] += 1
            stats.by_channel[item.channel_type] = stats.by_channel.get(item.channel_type, 0) + 1
            stats.by_local[item.local_name] = stats.by_local.get(item.local_name, 0) + 1
            if item.assigned_to:
                agent = item.assigned_to_name or item.assigned_to
                stats.by_agent[agent] = stats.by_agent.get(agent, 0) + 1
        return stats

    async def check_thread_warning(
        self,
        tenant_id: str,
        thread_id: str,
        *,
        now: Optional[datetime] = None
    ) -> Optional[ThreadWarning]:
        """Warning row for one thread, or None if it is not in a warning tier."""
        return await self._single_row(tenant_id, thread_id, now)

    async def get_thread_time_remaining(
        self,
        tenant_id: str,
        thread_id: str,
        *,
        now: Optional[datetime] = None
    ) -> ThreadTimeRemaining:
        warning = await self.check_thread_warning(tenant_id, thread_id, now=now)
        if warning is None:
            return ThreadTimeRemaining(0.0, 0.0, WarningLevel.NONE, False)
        return ThreadTimeRemaining(
            time_remaining=warning.time_remaining,
            percentage_used=warning.percentage_used,
            warning_level=warning.warning_level,
            is_warning=True,
        )


class ExpiredDetector(_ResponseDeadlineScanner):
    """
    Detects threads past their response deadline.

    Severity is driven by minutes overdue: overdue, critical (>= 60),
    urgent (>= 120).
    """

    scan_name = "expired"

    async def _load_candidates(self, tenant_id, filters, snapshot, now):
        # No deadline can fall before reference + the shortest response budget
        if snapshot.policies:
            shortest = min(p.response_time_minutes for p in snapshot.policies.values())
            created_before = now - timedelta(minutes=shortest)
        else:
            created_before = now
        return await self._thread_store.list_open_threads_past_deadline(
            tenant_id, filters, created_before
        )

    def _build_row(self, thread, effective, state, filters):
        if state.status != SLAStatus.EXPIRED:
            return None
        if not filters.matches_expired_at(state.response_deadline):
            return None
        return ThreadExpired(
            time_overdue=state.time_overdue,
            percentage_overdue=state.percentage_overdue,
            severity=state.severity,
            expired_at=state.response_deadline,
            **_display_fields(thread, effective, state)
        )

    def _sort(self, items: List[ThreadExpired]) -> List[ThreadExpired]:
        return sorted(items, key=lambda e: (-SEVERITY_RANK[e.severity], -e.time_overdue))

    async def get_stats(
        self,
        tenant_id: str,
        filters: Optional[ScanFilters] = None,
        *,
        now: Optional[datetime] = None,
        timeout: Optional[float] = None
    ) -> ExpiredStats:
        result = await self.scan(tenant_id, filters, now=now, timeout=timeout)
        return self.stats_from(result)

    @staticmethod
    def stats_from(result: ScanResult) -> ExpiredStats:
        """Fold scan rows into per-severity counts and overdue minutes."""
        stats = ExpiredStats(total=len(result.items))
        if not result.items:
            return stats

        total_overdue = 0.0
        for item in result.items:
            stats.by_severity[item.severity] += 1
            stats.by_channel[item.channel_type] = stats.by_channel.get(item.channel_type, 0) + 1
            stats.by_local[item.local_name] = stats.by_local.get(item.local_name, 0) + 1
            if item.assigned_to:
                agent = item.assigned_to_name or item.assigned_to
                stats.by_agent[agent] = stats.by_agent.get(agent, 0) + 1
            total_overdue += item.time_overdue
            stats.max_overdue = max(stats.max_overdue, item.time_overdue)

        stats.average_overdue = round(total_overdue / len(result.items), 2)
        return stats

    async def check_thread_expired(
        self,
        tenant_id: str,
        thread_id: str,
        *,
        now: Optional[datetime] = None
    ) -> Optional[ThreadExpired]:
        """Expired row for one thread, or None if it is not past its deadline."""
        return await self._single_row(tenant_id, thread_id, now)

    async def get_thread_overdue(
        self,
        tenant_id: str,
        thread_id: str,
        *,
        now: Optional[datetime] = None
    ) -> ThreadOverdue:
        expired = await self.check_thread_expired(tenant_id, thread_id, now=now)
        if expired is None:
            return ThreadOverdue(0.0, 0.0, ExpiredSeverity.NONE, False)
        return ThreadOverdue(
            time_overdue=expired.time_overdue,
            percentage_overdue=expired.percentage_overdue,
            severity=expired.severity,
            is_expired=True,
        )

    async def get_by_time_range(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        *,
        now: Optional[datetime] = None
    ) -> ScanResult:
        """Expired threads whose deadline fell within [start, end]."""
        filters = ScanFilters.parse(expired_from=start, expired_to=end)
        return await self.scan(tenant_id, filters, now=now)

    async def get_critical(
        self,
        tenant_id: str,
        filters: Optional[ScanFilters] = None,
        *,
        now: Optional[datetime] = None
    ) -> ScanResult:
        """Urgent and critical expired threads only."""
        result = await self.scan(tenant_id, filters, now=now)
        result.items = [
            item for item in result.items
            if item.severity in (ExpiredSeverity.URGENT, ExpiredSeverity.CRITICAL)
        ]
        return result


# ========== Aggregation ==========

def _percentage(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def _grade(level: int) -> str:
    if level >= 80:
        return "A"
    if level >= 60:
        return "B"
    if level >= 40:
        return "C"
    return "D"


class StatsAggregator:
    """
    Dashboard aggregation over both detectors and assignment coverage.

    Pure aggregation - no time logic of its own.
    """

    def __init__(
        self,
        warning_detector: WarningDetector,
        expired_detector: ExpiredDetector,
        resolver: SLAHierarchyResolver,
        policy_store: IPolicyStore,
        clock: Clock = utc_now
    ):
        self._warnings = warning_detector
        self._expired = expired_detector
        self._resolver = resolver
        self._policy_store = policy_store
        self._clock = clock

    async def summary(
        self,
        tenant_id: str,
        filters: Optional[ScanFilters] = None,
        *,
        now: Optional[datetime] = None,
        timeout: Optional[float] = None
    ) -> SLADashboardSummary:
        """Warning and expired stats computed against one captured `now`."""
        now = as_utc(now) if now is not None else as_utc(self._clock())

        # Sequential: both scans may share one database session
        warning_result = await self._warnings.scan(tenant_id, filters, now=now, timeout=timeout)
        expired_result = await self._expired.scan(tenant_id, filters, now=now, timeout=timeout)

        warnings = WarningDetector.stats_from(warning_result)
        expired = ExpiredDetector.stats_from(expired_result)
        misconfigured = {
            m.thread_id for m in warning_result.misconfigured + expired_result.misconfigured
        }

        return SLADashboardSummary(
            tenant_id=tenant_id,
            generated_at=now,
            total=warnings.total + expired.total,
            warnings=warnings,
            expired=expired,
            urgent_count=expired.by_severity[ExpiredSeverity.URGENT],
            critical_count=(
                warnings.by_level[WarningLevel.CRITICAL]
                + expired.by_severity[ExpiredSeverity.CRITICAL]
            ),
            misconfigured_count=len(misconfigured),
        )

    async def coverage(self, tenant_id: str) -> SLACoverage:
        """
        Share of locals/channels/tenant with explicit, usable SLA configuration.

        Raises:
            AssignmentConflictException: tenant has several active defaults
        """
        snapshot = await self._resolver.snapshot(tenant_id)
        local_ids = await self._policy_store.list_local_ids(tenant_id)

        configured_locals = set(snapshot.configured_local_ids)
        local_configured = len([lid for lid in local_ids if lid in configured_locals])
        channel_configured = len(set(snapshot.configured_channel_types) & set(VALID_CHANNEL_TYPES))
        tenant_configured = 1 if snapshot.tenant_policy() else 0

        total_locals = len(local_ids)
        total_channels = len(VALID_CHANNEL_TYPES)

        score = (
            local_configured * LOCAL_WEIGHT
            + channel_configured * CHANNEL_WEIGHT
            + tenant_configured * TENANT_WEIGHT
        )
        max_score = total_locals * LOCAL_WEIGHT + total_channels * CHANNEL_WEIGHT + TENANT_WEIGHT
        level = round(score / max_score * 100)

        return SLACoverage(
            tenant_id=tenant_id,
            local=CoverageLevel(local_configured, total_locals, _percentage(local_configured, total_locals)),
            channel=CoverageLevel(channel_configured, total_channels, _percentage(channel_configured, total_channels)),
            tenant=CoverageLevel(tenant_configured, 1, _percentage(tenant_configured, 1)),
            optimization_score=score,
            optimization_max_score=max_score,
            optimization_level=level,
            grade=_grade(level),
        )

    async def recommendations(
        self,
        tenant_id: str,
        coverage: Optional[SLACoverage] = None
    ) -> List[str]:
        """Configuration recommendations derived from coverage."""
        coverage = coverage or await self.coverage(tenant_id)
        local, channel, tenant = coverage.local, coverage.channel, coverage.tenant
        recommendations = []

        if tenant.configured == 0:
            recommendations.append("Configure a default SLA for the tenant")
        if channel.configured < channel.total:
            recommendations.append(
                f"Configure channel-specific SLAs ({channel.total - channel.configured} missing)"
            )
        if local.configured < local.total:
            recommendations.append(
                f"Configure local-specific SLAs ({local.total - local.configured} missing)"
            )
        if local.configured == 0 and channel.configured == 0 and tenant.configured > 0:
            recommendations.append("Consider configuring specific SLAs to improve the experience")
        if local.configured > 0 and channel.configured == 0:
            recommendations.append("Configure per-channel SLAs for better granularity")
        if local.configured > 0 and channel.configured > 0 and tenant.configured == 0:
            recommendations.append("Configure a default SLA as a fallback")
        return recommendations
