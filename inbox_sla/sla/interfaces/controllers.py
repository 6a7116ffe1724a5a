"""
SLA Controllers (API Routes)
=============================

FastAPI routes exposing the SLA engine's read-only queries for dashboards,
plus a manual trigger for the monitor.

Controllers are thin - they delegate to application services.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from inbox_sla.config import settings
from inbox_sla.infrastructure.database import get_session
from inbox_sla.shared.infrastructure.logging import get_logger
from inbox_sla.sla.application import (
    Clock,
    ExpiredDetector,
    INotificationSink,
    IPolicyStore,
    IThreadStore,
    ScanFilters,
    SLAHierarchyResolver,
    StatsAggregator,
    WarningDetector,
    utc_now,
)
from inbox_sla.sla.application.dto import (
    ApplicabilityResponse,
    CoverageResponse,
    DashboardSummaryResponse,
    EffectiveSLAResponse,
    ExpiredScanResponse,
    ExpiredStatsResponse,
    HierarchyExplanationResponse,
    MonitorRunResponse,
    SimulationResponse,
    ThreadSLAStateResponse,
    WarningScanResponse,
    WarningStatsResponse,
)
from inbox_sla.sla.infrastructure import SQLAlchemyPolicyStore, SQLAlchemyThreadStore
from inbox_sla.sla.infrastructure.external import WebhookNotificationSink
from inbox_sla.sla.services import SLAMonitor

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Monitoring"])


# ========== Dependencies ==========

async def get_policy_store(
    request: Request,
    session: AsyncSession = Depends(get_session)
) -> IPolicyStore:
    """YAML policy store when one is configured, the database otherwise."""
    store = getattr(request.app.state, "policy_store", None)
    return store if store is not None else SQLAlchemyPolicyStore(session)


async def get_thread_store(session: AsyncSession = Depends(get_session)) -> IThreadStore:
    return SQLAlchemyThreadStore(session)


def get_clock(request: Request) -> Clock:
    return getattr(request.app.state, "clock", None) or utc_now


def get_notification_sink(request: Request) -> INotificationSink:
    sink = getattr(request.app.state, "notification_sink", None)
    if sink is None:
        sink = WebhookNotificationSink(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds
        )
        request.app.state.notification_sink = sink
    return sink


def get_resolver(policy_store: IPolicyStore = Depends(get_policy_store)) -> SLAHierarchyResolver:
    return SLAHierarchyResolver(policy_store)


def get_warning_detector(
    resolver: SLAHierarchyResolver = Depends(get_resolver),
    thread_store: IThreadStore = Depends(get_thread_store),
    clock: Clock = Depends(get_clock)
) -> WarningDetector:
    return WarningDetector(
        resolver, thread_store, clock,
        reference_mode=settings.sla_reference_timestamp,
        default_timeout=settings.sla_scan_timeout_seconds
    )


def get_expired_detector(
    resolver: SLAHierarchyResolver = Depends(get_resolver),
    thread_store: IThreadStore = Depends(get_thread_store),
    clock: Clock = Depends(get_clock)
) -> ExpiredDetector:
    return ExpiredDetector(
        resolver, thread_store, clock,
        reference_mode=settings.sla_reference_timestamp,
        default_timeout=settings.sla_scan_timeout_seconds
    )


def get_stats_aggregator(
    warning_detector: WarningDetector = Depends(get_warning_detector),
    expired_detector: ExpiredDetector = Depends(get_expired_detector),
    resolver: SLAHierarchyResolver = Depends(get_resolver),
    policy_store: IPolicyStore = Depends(get_policy_store),
    clock: Clock = Depends(get_clock)
) -> StatsAggregator:
    return StatsAggregator(warning_detector, expired_detector, resolver, policy_store, clock)


def get_scan_filters(
    agent_id: Optional[str] = Query(None, description="Assigned agent"),
    local_id: Optional[str] = Query(None, description="Local (branch)"),
    channel_type: Optional[str] = Query(None, description="WHATSAPP, INSTAGRAM, ..."),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    expired_from: Optional[datetime] = Query(None),
    expired_to: Optional[datetime] = Query(None)
) -> ScanFilters:
    return ScanFilters.parse(
        agent_id=agent_id,
        local_id=local_id,
        channel_type=channel_type,
        created_from=created_from,
        created_to=created_to,
        expired_from=expired_from,
        expired_to=expired_to,
    )


def _channel(channel_type: Optional[str]) -> Optional[str]:
    """Validate and normalise a channel type query parameter."""
    return ScanFilters.parse(channel_type=channel_type).channel_type


# ========== Detectors ==========

@router.get(
    "/tenants/{tenant_id}/warnings",
    response_model=WarningScanResponse,
    summary="Threads nearing their response deadline"
)
async def list_warnings(
    tenant_id: str,
    allow_partial: bool = Query(False, description="Return partial results on timeout"),
    filters: ScanFilters = Depends(get_scan_filters),
    detector: WarningDetector = Depends(get_warning_detector)
) -> WarningScanResponse:
    """Sorted by level (critical first), then by time remaining."""
    result = await detector.scan(tenant_id, filters, allow_partial=allow_partial)
    return WarningScanResponse.model_validate(result)


@router.get("/tenants/{tenant_id}/warnings/stats", response_model=WarningStatsResponse)
async def warning_stats(
    tenant_id: str,
    filters: ScanFilters = Depends(get_scan_filters),
    detector: WarningDetector = Depends(get_warning_detector)
) -> WarningStatsResponse:
    return WarningStatsResponse.model_validate(await detector.get_stats(tenant_id, filters))


@router.get(
    "/tenants/{tenant_id}/expired",
    response_model=ExpiredScanResponse,
    summary="Threads past their response deadline"
)
async def list_expired(
    tenant_id: str,
    allow_partial: bool = Query(False, description="Return partial results on timeout"),
    filters: ScanFilters = Depends(get_scan_filters),
    detector: ExpiredDetector = Depends(get_expired_detector)
) -> ExpiredScanResponse:
    """Sorted by severity (urgent first), then by time overdue."""
    result = await detector.scan(tenant_id, filters, allow_partial=allow_partial)
    return ExpiredScanResponse.model_validate(result)


@router.get("/tenants/{tenant_id}/expired/stats", response_model=ExpiredStatsResponse)
async def expired_stats(
    tenant_id: str,
    filters: ScanFilters = Depends(get_scan_filters),
    detector: ExpiredDetector = Depends(get_expired_detector)
) -> ExpiredStatsResponse:
    return ExpiredStatsResponse.model_validate(await detector.get_stats(tenant_id, filters))


@router.get("/tenants/{tenant_id}/expired/critical", response_model=ExpiredScanResponse)
async def list_critical_expired(
    tenant_id: str,
    filters: ScanFilters = Depends(get_scan_filters),
    detector: ExpiredDetector = Depends(get_expired_detector)
) -> ExpiredScanResponse:
    return ExpiredScanResponse.model_validate(await detector.get_critical(tenant_id, filters))


@router.get(
    "/tenants/{tenant_id}/threads/{thread_id}",
    response_model=ThreadSLAStateResponse,
    summary="SLA state of a single thread"
)
async def get_thread_state(
    tenant_id: str,
    thread_id: str,
    detector: WarningDetector = Depends(get_warning_detector)
) -> ThreadSLAStateResponse:
    state = await detector.evaluate_thread(tenant_id, thread_id)
    return ThreadSLAStateResponse.model_validate(state)


# ========== Hierarchy ==========

@router.get("/tenants/{tenant_id}/resolve", response_model=EffectiveSLAResponse)
async def resolve_sla(
    tenant_id: str,
    local_id: Optional[str] = Query(None),
    channel_type: Optional[str] = Query(None),
    resolver: SLAHierarchyResolver = Depends(get_resolver)
) -> EffectiveSLAResponse:
    effective = await resolver.resolve(tenant_id, local_id, _channel(channel_type))
    return EffectiveSLAResponse.from_domain(effective)


@router.get("/tenants/{tenant_id}/hierarchy/explain", response_model=HierarchyExplanationResponse)
async def explain_hierarchy(
    tenant_id: str,
    local_id: Optional[str] = Query(None),
    channel_type: Optional[str] = Query(None),
    resolver: SLAHierarchyResolver = Depends(get_resolver)
) -> HierarchyExplanationResponse:
    explanation = await resolver.explain(tenant_id, local_id, _channel(channel_type))
    return HierarchyExplanationResponse.from_domain(explanation)


@router.get("/tenants/{tenant_id}/hierarchy/simulate", response_model=SimulationResponse)
async def simulate_hierarchy(
    tenant_id: str,
    resolver: SLAHierarchyResolver = Depends(get_resolver)
) -> SimulationResponse:
    return SimulationResponse.from_domain(await resolver.simulate(tenant_id))


@router.get("/tenants/{tenant_id}/policies/{sla_id}/applicability", response_model=ApplicabilityResponse)
async def policy_applicability(
    tenant_id: str,
    sla_id: str,
    local_id: Optional[str] = Query(None),
    channel_type: Optional[str] = Query(None),
    resolver: SLAHierarchyResolver = Depends(get_resolver)
) -> ApplicabilityResponse:
    result = await resolver.validate_applicability(sla_id, tenant_id, local_id, _channel(channel_type))
    return ApplicabilityResponse(
        sla_id=sla_id,
        is_applicable=result.is_applicable,
        effective=EffectiveSLAResponse.from_domain(result.effective),
        reason=result.reason,
    )


# ========== Dashboards ==========

@router.get("/tenants/{tenant_id}/summary", response_model=DashboardSummaryResponse)
async def dashboard_summary(
    tenant_id: str,
    filters: ScanFilters = Depends(get_scan_filters),
    aggregator: StatsAggregator = Depends(get_stats_aggregator)
) -> DashboardSummaryResponse:
    return DashboardSummaryResponse.model_validate(await aggregator.summary(tenant_id, filters))


@router.get("/tenants/{tenant_id}/coverage", response_model=CoverageResponse)
async def sla_coverage(
    tenant_id: str,
    aggregator: StatsAggregator = Depends(get_stats_aggregator)
) -> CoverageResponse:
    coverage = await aggregator.coverage(tenant_id)
    recommendations = await aggregator.recommendations(tenant_id, coverage)
    response = CoverageResponse.model_validate(coverage)
    response.recommendations = recommendations
    return response


# ========== Monitor ==========

@router.post("/tenants/{tenant_id}/monitor", response_model=MonitorRunResponse)
async def run_monitor(
    tenant_id: str,
    request: Request,
    warning_detector: WarningDetector = Depends(get_warning_detector),
    expired_detector: ExpiredDetector = Depends(get_expired_detector),
    sink: INotificationSink = Depends(get_notification_sink),
    clock: Clock = Depends(get_clock)
) -> MonitorRunResponse:
    """Run one monitor pass for a tenant now."""
    if not hasattr(request.app.state, "sla_notified"):
        request.app.state.sla_notified = set()
    monitor = SLAMonitor(
        warning_detector, expired_detector, sink,
        clock=clock,
        notified=request.app.state.sla_notified
    )
    result = await monitor.monitor_tenant(tenant_id)
    logger.info("Manual SLA monitor run", extra={"tenant_id": tenant_id})
    return MonitorRunResponse(
        tenant_id=tenant_id,
        warnings_sent=result.warnings_sent,
        expired_sent=result.expired_sent,
    )


sla_router = router
