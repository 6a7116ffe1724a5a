"""
SLA Domain Layer
================

Domain layer for SLA resolution and monitoring.

Contains:
- Entities: policies, schedules, assignments and thread records
- Value Objects: derived results (EffectiveSLA, deadlines, scan rows, stats)
- Domain Services: stateless business logic (BusinessHoursCalculator,
  DeadlineComputer, PolicySnapshot)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from inbox_sla.sla.domain.entities import (
    BusinessHoursSchedule,
    ChannelSLAAssignment,
    DaySchedule,
    LocalSLAAssignment,
    SLAPolicy,
    ThreadRecord,
    as_utc,
)
from inbox_sla.sla.domain.value_objects import (
    CoverageLevel,
    EffectiveSLA,
    ExpiredStats,
    ScanResult,
    SLAApplicability,
    SLACoverage,
    SLADashboardSummary,
    SLADeadlines,
    SLAHierarchyExplanation,
    SLASimulation,
    SLASimulationEntry,
    ThreadExpired,
    ThreadMisconfigured,
    ThreadOverdue,
    ThreadSLAState,
    ThreadTimeRemaining,
    ThreadWarning,
    WarningStats,
)
from inbox_sla.sla.domain.business_hours import BusinessHoursCalculator
from inbox_sla.sla.domain.deadlines import (
    DeadlineComputer,
    evaluate_thread_state,
    expired_severity,
    percentage_overdue,
    percentage_used,
    warning_level,
    warning_level_for_remaining,
)
from inbox_sla.sla.domain.hierarchy import (
    PolicySnapshot,
    assert_single_default,
    select_tenant_default,
)

__all__ = [
    # Entities
    "BusinessHoursSchedule",
    "ChannelSLAAssignment",
    "DaySchedule",
    "LocalSLAAssignment",
    "SLAPolicy",
    "ThreadRecord",
    "as_utc",
    # Value Objects
    "CoverageLevel",
    "EffectiveSLA",
    "ExpiredStats",
    "ScanResult",
    "SLAApplicability",
    "SLACoverage",
    "SLADashboardSummary",
    "SLADeadlines",
    "SLAHierarchyExplanation",
    "SLASimulation",
    "SLASimulationEntry",
    "ThreadExpired",
    "ThreadMisconfigured",
    "ThreadOverdue",
    "ThreadSLAState",
    "ThreadTimeRemaining",
    "ThreadWarning",
    "WarningStats",
    # Domain Services
    "BusinessHoursCalculator",
    "DeadlineComputer",
    "PolicySnapshot",
    "evaluate_thread_state",
    "expired_severity",
    "percentage_overdue",
    "percentage_used",
    "warning_level",
    "warning_level_for_remaining",
    "assert_single_default",
    "select_tenant_default",
]
