"""
SLA Value Objects
==================

Immutable value objects derived by the engine.

None of these are persisted. They are recomputed on every resolution,
scan or dashboard request and discarded afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Generic, List, Optional, TypeVar

from inbox_sla.config import SLASource, SLAStatus, WarningLevel, ExpiredSeverity
from inbox_sla.sla.domain.entities import SLAPolicy

T = TypeVar("T")


@dataclass(frozen=True)
class EffectiveSLA:
    """The single policy selected by hierarchy resolution."""

    sla_id: Optional[str]
    source: SLASource
    policy: Optional[SLAPolicy] = None

    @property
    def applies(self) -> bool:
        return self.source != SLASource.NONE and self.policy is not None

    @classmethod
    def none(cls) -> "EffectiveSLA":
        return cls(sla_id=None, source=SLASource.NONE, policy=None)

    @classmethod
    def from_policy(cls, policy: SLAPolicy, source: SLASource) -> "EffectiveSLA":
        return cls(sla_id=policy.id, source=source, policy=policy)


@dataclass(frozen=True)
class SLADeadlines:
    """Absolute deadlines; both None when no SLA applies."""

    response_deadline: Optional[datetime] = None
    resolution_deadline: Optional[datetime] = None


@dataclass(frozen=True)
class ThreadSLAState:
    """SLA health of one thread at one instant."""

    thread_id: str
    status: SLAStatus
    evaluated_at: datetime
    source: SLASource = SLASource.NONE
    sla_id: Optional[str] = None
    sla_name: Optional[str] = None
    reference_at: Optional[datetime] = None
    response_deadline: Optional[datetime] = None
    resolution_deadline: Optional[datetime] = None
    elapsed_minutes: float = 0.0
    time_remaining: float = 0.0
    time_overdue: float = 0.0
    percentage_used: float = 0.0
    percentage_overdue: float = 0.0
    warning_level: WarningLevel = WarningLevel.NONE
    severity: ExpiredSeverity = ExpiredSeverity.NONE
    error: Optional[str] = None


@dataclass
class ThreadWarning:
    """Dashboard row for a thread nearing its response deadline."""

    thread_id: str
    thread_subject: str
    contact_name: str
    contact_handle: str
    channel_type: str
    local_id: Optional[str]
    local_name: str
    sla_id: str
    sla_name: str
    source: SLASource
    response_time_minutes: int
    resolution_time_hours: int
    time_remaining: float
    time_elapsed: float
    percentage_used: float
    warning_level: WarningLevel
    created_at: datetime
    last_message_at: datetime
    response_deadline: datetime
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None


@dataclass
class ThreadExpired:
    """Dashboard row for a thread past its response deadline."""

    thread_id: str
    thread_subject: str
    contact_name: str
    contact_handle: str
    channel_type: str
    local_id: Optional[str]
    local_name: str
    sla_id: str
    sla_name: str
    source: SLASource
    response_time_minutes: int
    resolution_time_hours: int
    time_overdue: float
    time_elapsed: float
    percentage_overdue: float
    severity: ExpiredSeverity
    created_at: datetime
    last_message_at: datetime
    expired_at: datetime
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None


@dataclass
class ThreadMisconfigured:
    """A thread whose effective SLA cannot be evaluated ("SLA configuration error")."""

    thread_id: str
    channel_type: str
    local_id: Optional[str]
    sla_id: Optional[str]
    reason: str
    assigned_to: Optional[str] = None


@dataclass
class ScanResult(Generic[T]):
    """Outcome of one detector scan, evaluated against a single `scanned_at`."""

    tenant_id: str
    scanned_at: datetime
    items: List[T] = field(default_factory=list)
    misconfigured: List[ThreadMisconfigured] = field(default_factory=list)
    threads_scanned: int = 0
    is_partial: bool = False

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


@dataclass
class ThreadTimeRemaining:
    """Per-thread badge data for the warning side."""

    time_remaining: float
    percentage_used: float
    warning_level: WarningLevel
    is_warning: bool


@dataclass
class ThreadOverdue:
    """Per-thread badge data for the expired side."""

    time_overdue: float
    percentage_overdue: float
    severity: ExpiredSeverity
    is_expired: bool


@dataclass
class WarningStats:
    total: int = 0
    by_level: Dict[str, int] = field(default_factory=lambda: {
        WarningLevel.LOW: 0,
        WarningLevel.MEDIUM: 0,
        WarningLevel.HIGH: 0,
        WarningLevel.CRITICAL: 0,
    })
    by_channel: Dict[str, int] = field(default_factory=dict)
    by_local: Dict[str, int] = field(default_factory=dict)
    by_agent: Dict[str, int] = field(default_factory=dict)


@dataclass
class ExpiredStats:
    total: int = 0
    by_severity: Dict[str, int] = field(default_factory=lambda: {
        ExpiredSeverity.OVERDUE: 0,
        ExpiredSeverity.CRITICAL: 0,
        ExpiredSeverity.URGENT: 0,
    })
    by_channel: Dict[str, int] = field(default_factory=dict)
    by_local: Dict[str, int] = field(default_factory=dict)
    by_agent: Dict[str, int] = field(default_factory=dict)
    average_overdue: float = 0.0
    max_overdue: float = 0.0


@dataclass
class SLADashboardSummary:
    """Warning and expired stats for one tenant, computed against one instant."""

    tenant_id: str
    generated_at: datetime
    total: int
    warnings: WarningStats
    expired: ExpiredStats
    urgent_count: int
    critical_count: int
    misconfigured_count: int


@dataclass
class CoverageLevel:
    configured: int
    total: int
    coverage: float


@dataclass
class SLACoverage:
    """How much of a tenant's hierarchy has explicit SLA configuration."""

    tenant_id: str
    local: CoverageLevel
    channel: CoverageLevel
    tenant: CoverageLevel
    optimization_score: int
    optimization_max_score: int
    optimization_level: int
    grade: str


@dataclass
class SLAHierarchyExplanation:
    """Effective SLA plus what is configured at each level."""

    effective: EffectiveSLA
    local: Optional[EffectiveSLA] = None
    channel: Optional[EffectiveSLA] = None
    tenant: Optional[EffectiveSLA] = None
    recommendations: List[str] = field(default_factory=list)


@dataclass
class SLAApplicability:
    is_applicable: bool
    effective: EffectiveSLA
    reason: Optional[str] = None


@dataclass
class SLASimulationEntry:
    context: str
    description: str
    effective: EffectiveSLA


@dataclass
class SLASimulation:
    tenant_id: str
    entries: List[SLASimulationEntry] = field(default_factory=list)

    @property
    def unique_slas(self) -> int:
        return len({entry.effective.sla_id for entry in self.entries})

    @property
    def sources(self) -> Dict[str, int]:
        counts = {SLASource.LOCAL: 0, SLASource.CHANNEL: 0, SLASource.TENANT: 0, SLASource.NONE: 0}
        for entry in self.entries:
            counts[entry.effective.source] += 1
        return counts
