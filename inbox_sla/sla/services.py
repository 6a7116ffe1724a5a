"""
SLA Services
============

Background SLA monitoring.

The engine itself only classifies threads. SLAMonitor is the piece of the
host application that turns scan results into `sla_warning` and
`sla_expired` notifications for the assigned agent.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from inbox_sla.config import NotificationType
from inbox_sla.core import ApplicationException
from inbox_sla.shared.infrastructure.logging import get_logger
from inbox_sla.sla.application import (
    Clock,
    ExpiredDetector,
    INotificationSink,
    IPolicyStore,
    WarningDetector,
    utc_now,
)
from inbox_sla.sla.domain import ThreadExpired, ThreadWarning, as_utc

logger = get_logger(__name__)


@dataclass
class MonitorRunResult:
    """Summary of one monitor pass over a tenant."""
    tenant_id: str
    warnings_sent: int = 0
    expired_sent: int = 0
    duplicates_skipped: int = 0
    unassigned_skipped: int = 0
    stale_pruned: int = 0
    misconfigured: int = 0
    is_partial: bool = False


class SLAMonitor:
    """
    Runs both detectors for a tenant and notifies assigned agents.

    This service:
    1. Scans warnings and expired threads with a single captured `now`
    2. Skips threads without an assignee
    3. Sends one notification per (thread, type) while the thread stays flagged
    """

    def __init__(
        self,
        warning_detector: WarningDetector,
        expired_detector: ExpiredDetector,
        notification_sink: INotificationSink,
        policy_store: Optional[IPolicyStore] = None,
        clock: Clock = utc_now,
        tenant_ids: Sequence[str] = (),
        notified: Optional[Set[Tuple[str, str, str]]] = None
    ):
        self._warnings = warning_detector
        self._expired = expired_detector
        self._sink = notification_sink
        self._policy_store = policy_store
        self._clock = clock
        self._tenant_ids = list(tenant_ids)
        # Shared between monitor instances so runs with fresh sessions keep dedup state
        self._notified = notified if notified is not None else set()

    @staticmethod
    def _warning_payload(tenant_id: str, item: ThreadWarning) -> Dict[str, Any]:
        return {
            "tenant_id": tenant_id,
            "thread_id": item.thread_id,
            "thread_contact": item.contact_name or item.contact_handle or "Unknown",
            "sla_id": item.sla_id,
            "sla_minutes": item.response_time_minutes,
            "time_remaining": item.time_remaining,
            "percentage_used": item.percentage_used,
            "warning_level": item.warning_level,
            "response_deadline": item.response_deadline.isoformat(),
        }

    @staticmethod
    def _expired_payload(tenant_id: str, item: ThreadExpired) -> Dict[str, Any]:
        return {
            "tenant_id": tenant_id,
            "thread_id": item.thread_id,
            "thread_contact": item.contact_name or item.contact_handle or "Unknown",
            "sla_id": item.sla_id,
            "sla_minutes": item.response_time_minutes,
            "time_overdue": item.time_overdue,
            "percentage_overdue": item.percentage_overdue,
            "severity": item.severity,
            "expired_at": item.expired_at.isoformat(),
        }

    async def _send(
        self,
        result: MonitorRunResult,
        thread_id: str,
        assignee_id: Optional[str],
        notification_type: str,
        payload: Dict[str, Any]
    ) -> bool:
        if not assignee_id:
            result.unassigned_skipped += 1
            return False
        key = (result.tenant_id, thread_id, notification_type)
        if key in self._notified:
            result.duplicates_skipped += 1
            return False

        delivered = await self._sink.notify([assignee_id], notification_type, payload)
        if delivered is False:
            return False
        self._notified.add(key)
        return True

    def _prune(self, tenant_id: str, flagged_thread_ids: Set[str]) -> int:
        """Forget keys of this tenant's threads that are no longer flagged."""
        stale = {
            key for key in self._notified
            if key[0] == tenant_id and key[1] not in flagged_thread_ids
        }
        self._notified.difference_update(stale)
        return len(stale)

    async def monitor_tenant(self, tenant_id: str, *, now: Optional[datetime] = None) -> MonitorRunResult:
        """
        Scan one tenant and dispatch notifications.

        Raises:
            StoreUnavailableException: a store call failed
        """
        now = as_utc(now) if now is not None else as_utc(self._clock())
        result = MonitorRunResult(tenant_id=tenant_id)

        warnings = await self._warnings.scan(tenant_id, now=now, allow_partial=True)
        expired = await self._expired.scan(tenant_id, now=now, allow_partial=True)
        result.is_partial = warnings.is_partial or expired.is_partial
        result.misconfigured = len(
            {m.thread_id for m in warnings.misconfigured + expired.misconfigured}
        )

        for item in expired.items:
            if await self._send(
                result, item.thread_id, item.assigned_to,
                NotificationType.SLA_EXPIRED, self._expired_payload(tenant_id, item)
            ):
                result.expired_sent += 1

        for item in warnings.items:
            if await self._send(
                result, item.thread_id, item.assigned_to,
                NotificationType.SLA_WARNING, self._warning_payload(tenant_id, item)
            ):
                result.warnings_sent += 1

        # Partial scans do not list every flagged thread
        if not result.is_partial:
            flagged = {item.thread_id for item in warnings.items + expired.items}
            flagged.update(m.thread_id for m in warnings.misconfigured + expired.misconfigured)
            result.stale_pruned = self._prune(tenant_id, flagged)

        logger.info(
            "SLA monitor pass completed",
            extra={
                "tenant_id": tenant_id,
                "warnings_sent": result.warnings_sent,
                "expired_sent": result.expired_sent,
                "duplicates_skipped": result.duplicates_skipped,
                "misconfigured": result.misconfigured,
                "stale_pruned": result.stale_pruned,
            }
        )
        return result

    async def monitor_all(self, *, now: Optional[datetime] = None) -> List[MonitorRunResult]:
        """
        Monitor every configured tenant (or every tenant the store knows).

        A failing tenant is logged and skipped so the others still run.
        """
        now = as_utc(now) if now is not None else as_utc(self._clock())
        tenant_ids = self._tenant_ids
        if not tenant_ids and self._policy_store is not None:
            tenant_ids = await self._policy_store.list_tenant_ids()

        results = []
        for tenant_id in tenant_ids:
            try:
                results.append(await self.monitor_tenant(tenant_id, now=now))
            except ApplicationException as e:
                logger.error(
                    "SLA monitor failed for tenant",
                    extra={"tenant_id": tenant_id, "error": e.message, "details": e.details}
                )
        return results
