"""
SLA Application Layer
======================

Application layer for SLA resolution and monitoring.

Contains:
- Services: hierarchy resolver, warning/expired detectors, stats aggregator
- DTOs: policy definitions, scan filters and API responses

This layer depends on the domain layer and store interfaces,
but not on concrete infrastructure implementations.
"""

from inbox_sla.sla.application.dto import (
    BusinessHoursDTO,
    DayScheduleDTO,
    PolicyFileDTO,
    ScanFilters,
    SLAPolicyDTO,
    TenantPolicyConfigDTO,
)
from inbox_sla.sla.application.services import (
    Clock,
    ExpiredDetector,
    INotificationSink,
    IPolicyStore,
    IThreadStore,
    SLAHierarchyResolver,
    StatsAggregator,
    WarningDetector,
    utc_now,
)

__all__ = [
    # DTOs
    "BusinessHoursDTO",
    "DayScheduleDTO",
    "PolicyFileDTO",
    "ScanFilters",
    "SLAPolicyDTO",
    "TenantPolicyConfigDTO",
    # Services
    "ExpiredDetector",
    "SLAHierarchyResolver",
    "StatsAggregator",
    "WarningDetector",
    "Clock",
    "utc_now",
    # Store Interfaces
    "INotificationSink",
    "IPolicyStore",
    "IThreadStore",
]
