"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer and the YAML policy file.

These Pydantic models handle serialization/deserialization and validation
for policy definitions, scan filters and API responses.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    BaseModel, ConfigDict, Field, ValidationError,
    field_validator, model_validator,
)

from inbox_sla.config import (
    DEFAULT_TIMEZONE, MAX_RESOLUTION_TIME_HOURS, MAX_RESPONSE_TIME_MINUTES,
    VALID_CHANNEL_TYPES, PolicyPriority,
)
from inbox_sla.core import InvalidFilterException
from inbox_sla.sla.domain import (
    BusinessHoursSchedule,
    DaySchedule,
    EffectiveSLA,
    SLAPolicy,
    ThreadRecord,
    as_utc,
)


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]
ChannelTypeStr = Literal["WHATSAPP", "INSTAGRAM", "TIKTOK", "FACEBOOK", "TWITTER", "TELEGRAM"]
SLASourceStr = Literal["local", "channel", "tenant", "none"]
WarningLevelStr = Literal["low", "medium", "high", "critical", "none"]
SeverityStr = Literal["overdue", "critical", "urgent", "none"]
SLAStatusStr = Literal["no_sla", "ok", "warning", "expired", "misconfigured"]

HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ========== Policy DTOs ==========

class DayScheduleDTO(BaseModel):
    """One weekday entry of a business hours schedule (0 = Sunday)."""
    day: int = Field(..., ge=0, le=6, description="Weekday, 0 = Sunday")
    enabled: bool = Field(default=False)
    start_time: str = Field(default="09:00", description="Opening time HH:MM")
    end_time: str = Field(default="18:00", description="Closing time HH:MM")
    timezone: str = Field(default=DEFAULT_TIMEZONE, description="IANA timezone")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA zone names."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone '{v}'") from e
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "DayScheduleDTO":
        """Enabled days need valid, distinct HH:MM bounds."""
        if not self.enabled:
            return self
        for name in ("start_time", "end_time"):
            if not HHMM_PATTERN.match(getattr(self, name)):
                raise ValueError(f"{name} must be HH:MM (24h) for enabled day {self.day}")
        if self.start_time == self.end_time:
            raise ValueError(f"start_time and end_time are equal for day {self.day}")
        return self

    def to_domain(self) -> DaySchedule:
        return DaySchedule(
            day=self.day,
            enabled=self.enabled,
            start_time=self.start_time,
            end_time=self.end_time,
            timezone=self.timezone,
        )


class BusinessHoursDTO(BaseModel):
    """Weekly business hours, or the 24/7 override."""
    is_24x7: bool = Field(default=False, description="Ignore day entries, always open")
    days: List[DayScheduleDTO] = Field(default_factory=list, max_length=7)

    @field_validator("days")
    @classmethod
    def validate_days(cls, v: List[DayScheduleDTO]) -> List[DayScheduleDTO]:
        """One entry per weekday and a single timezone."""
        seen = [d.day for d in v]
        if len(seen) != len(set(seen)):
            raise ValueError("each weekday may appear only once")
        zones = {d.timezone for d in v}
        if len(zones) > 1:
            raise ValueError(f"day entries must share one timezone, got {sorted(zones)}")
        return sorted(v, key=lambda d: d.day)

    def to_domain(self) -> BusinessHoursSchedule:
        return BusinessHoursSchedule(
            days=tuple(d.to_domain() for d in self.days),
            is_24x7=self.is_24x7,
        )

    @classmethod
    def from_domain(cls, schedule: BusinessHoursSchedule) -> "BusinessHoursDTO":
        return cls(
            is_24x7=schedule.is_24x7,
            days=[
                DayScheduleDTO(
                    day=d.day,
                    enabled=d.enabled,
                    start_time=d.start_time,
                    end_time=d.end_time,
                    timezone=d.timezone,
                )
                for d in schedule.days
            ],
        )


class SLAPolicyDTO(BaseModel):
    """
    DTO representing an SLA policy as passed between the policy file,
    the API and the domain layer.
    """
    id: str = Field(..., min_length=1, description="Policy ID")
    tenant_id: Optional[str] = Field(None, description="Owning tenant")
    name: str = Field(..., min_length=1, description="Policy name")
    description: Optional[str] = None
    response_time_minutes: int = Field(..., gt=0, le=MAX_RESPONSE_TIME_MINUTES)
    resolution_time_hours: int = Field(..., gt=0, le=MAX_RESOLUTION_TIME_HOURS)
    priority: PriorityStr = Field(default=PolicyPriority.MEDIUM)
    is_active: bool = True
    is_default: bool = False
    business_hours: Optional[BusinessHoursDTO] = Field(
        None,
        description="Business hours; omitted means the clock runs 24/7"
    )
    escalation_rules: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    def to_domain(self, tenant_id: Optional[str] = None) -> SLAPolicy:
        """Convert to domain entity."""
        owner = tenant_id or self.tenant_id
        if not owner:
            raise ValueError(f"SLA policy '{self.id}' has no tenant")
        return SLAPolicy(
            id=self.id,
            tenant_id=owner,
            name=self.name,
            description=self.description,
            response_time_minutes=self.response_time_minutes,
            resolution_time_hours=self.resolution_time_hours,
            priority=self.priority,
            is_active=self.is_active,
            is_default=self.is_default,
            business_hours=self.business_hours.to_domain() if self.business_hours else None,
            escalation_rules=dict(self.escalation_rules),
            created_at=self.created_at,
        )

    @classmethod
    def from_domain(cls, policy: SLAPolicy) -> "SLAPolicyDTO":
        """Create from domain entity."""
        return cls(
            id=policy.id,
            tenant_id=policy.tenant_id,
            name=policy.name,
            description=policy.description,
            response_time_minutes=policy.response_time_minutes,
            resolution_time_hours=policy.resolution_time_hours,
            priority=policy.priority,
            is_active=policy.is_active,
            is_default=policy.is_default,
            business_hours=(
                BusinessHoursDTO.from_domain(policy.business_hours)
                if policy.business_hours else None
            ),
            escalation_rules=dict(policy.escalation_rules),
            created_at=policy.created_at,
        )


class TenantPolicyConfigDTO(BaseModel):
    """Policies and assignments of one tenant in the YAML policy file."""
    tenant_id: str = Field(..., min_length=1)
    policies: List[SLAPolicyDTO] = Field(default_factory=list)
    local_ids: List[str] = Field(default_factory=list, description="Known local IDs")
    local_assignments: Dict[str, Optional[str]] = Field(
        default_factory=dict,
        description="local_id -> sla_id (null = explicitly unset)"
    )
    channel_assignments: Dict[ChannelTypeStr, Optional[str]] = Field(
        default_factory=dict,
        description="channel type -> sla_id (null = explicitly unset)"
    )


class PolicyFileDTO(BaseModel):
    """Root of the YAML policy file."""
    tenants: List[TenantPolicyConfigDTO] = Field(default_factory=list)

    @field_validator("tenants")
    @classmethod
    def validate_unique_tenants(cls, v: List[TenantPolicyConfigDTO]) -> List[TenantPolicyConfigDTO]:
        ids = [t.tenant_id for t in v]
        if len(ids) != len(set(ids)):
            raise ValueError("tenant_id values must be unique")
        return v


# ========== Query DTOs ==========

class ScanFilters(BaseModel):
    """Optional narrowing of a detector scan."""
    agent_id: Optional[str] = None
    local_id: Optional[str] = None
    channel_type: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    expired_from: Optional[datetime] = None
    expired_to: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("channel_type")
    @classmethod
    def validate_channel_type(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        normalized = v.upper()
        if normalized not in VALID_CHANNEL_TYPES:
            raise ValueError(f"channel_type must be one of {VALID_CHANNEL_TYPES}")
        return normalized

    @field_validator("created_from", "created_to", "expired_from", "expired_to")
    @classmethod
    def normalize_datetime(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else v

    @model_validator(mode="after")
    def validate_ranges(self) -> "ScanFilters":
        if self.created_from and self.created_to and self.created_from > self.created_to:
            raise ValueError("created_from must not be after created_to")
        if self.expired_from and self.expired_to and self.expired_from > self.expired_to:
            raise ValueError("expired_from must not be after expired_to")
        return self

    @classmethod
    def parse(cls, **values: Any) -> "ScanFilters":
        """
        Build filters from loose input.

        Raises:
            InvalidFilterException: malformed values or inverted ranges
        """
        try:
            return cls(**values)
        except ValidationError as e:
            raise InvalidFilterException(
                "Invalid SLA scan filters",
                {"errors": [err["msg"] for err in e.errors()]}
            ) from e

    def matches(self, thread: ThreadRecord) -> bool:
        """Whether a thread passes the agent/local/channel/created filters."""
        if self.agent_id and thread.assignee_id != self.agent_id:
            return False
        if self.local_id and thread.local_id != self.local_id:
            return False
        if self.channel_type and thread.channel_type != self.channel_type:
            return False
        created_at = as_utc(thread.created_at)
        if self.created_from and created_at < self.created_from:
            return False
        if self.created_to and created_at > self.created_to:
            return False
        return True

    def matches_expired_at(self, expired_at: datetime) -> bool:
        expired_at = as_utc(expired_at)
        if self.expired_from and expired_at < self.expired_from:
            return False
        if self.expired_to and expired_at > self.expired_to:
            return False
        return True


# ========== Response DTOs ==========

class ResponseModel(BaseModel):
    """Base for responses built from domain value objects."""
    model_config = ConfigDict(from_attributes=True)


class EffectiveSLAResponse(ResponseModel):
    """Response model for a resolved SLA."""
    sla_id: Optional[str] = None
    source: SLASourceStr
    policy: Optional[SLAPolicyDTO] = None

    @classmethod
    def from_domain(cls, effective: Optional[EffectiveSLA]) -> Optional["EffectiveSLAResponse"]:
        if effective is None:
            return None
        return cls(
            sla_id=effective.sla_id,
            source=effective.source,
            policy=SLAPolicyDTO.from_domain(effective.policy) if effective.policy else None,
        )


class ThreadWarningResponse(ResponseModel):
    thread_id: str
    thread_subject: str
    contact_name: str
    contact_handle: str
    channel_type: str
    local_id: Optional[str] = None
    local_name: str
    sla_id: str
    sla_name: str
    source: SLASourceStr
    response_time_minutes: int
    resolution_time_hours: int
    time_remaining: float = Field(..., description="Minutes until the response deadline")
    time_elapsed: float
    percentage_used: float
    warning_level: WarningLevelStr
    created_at: datetime
    last_message_at: datetime
    response_deadline: datetime
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None


class ThreadExpiredResponse(ResponseModel):
    thread_id: str
    thread_subject: str
    contact_name: str
    contact_handle: str
    channel_type: str
    local_id: Optional[str] = None
    local_name: str
    sla_id: str
    sla_name: str
    source: SLASourceStr
    response_time_minutes: int
    resolution_time_hours: int
    time_overdue: float = Field(..., description="Minutes past the response deadline")
    time_elapsed: float
    percentage_overdue: float
    severity: SeverityStr
    created_at: datetime
    last_message_at: datetime
    expired_at: datetime
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None


class ThreadMisconfiguredResponse(ResponseModel):
    thread_id: str
    channel_type: str
    local_id: Optional[str] = None
    sla_id: Optional[str] = None
    reason: str
    assigned_to: Optional[str] = None


class WarningScanResponse(ResponseModel):
    tenant_id: str
    scanned_at: datetime
    items: List[ThreadWarningResponse]
    misconfigured: List[ThreadMisconfiguredResponse] = Field(default_factory=list)
    threads_scanned: int
    is_partial: bool = False


class ExpiredScanResponse(ResponseModel):
    tenant_id: str
    scanned_at: datetime
    items: List[ThreadExpiredResponse]
    misconfigured: List[ThreadMisconfiguredResponse] = Field(default_factory=list)
    threads_scanned: int
    is_partial: bool = False


class WarningStatsResponse(ResponseModel):
    total: int
    by_level: Dict[str, int]
    by_channel: Dict[str, int]
    by_local: Dict[str, int]
    by_agent: Dict[str, int]


class ExpiredStatsResponse(ResponseModel):
    total: int
    by_severity: Dict[str, int]
    by_channel: Dict[str, int]
    by_local: Dict[str, int]
    by_agent: Dict[str, int]
    average_overdue: float
    max_overdue: float


class ThreadSLAStateResponse(ResponseModel):
    thread_id: str
    status: SLAStatusStr
    evaluated_at: datetime
    source: SLASourceStr
    sla_id: Optional[str] = None
    sla_name: Optional[str] = None
    reference_at: Optional[datetime] = None
    response_deadline: Optional[datetime] = None
    resolution_deadline: Optional[datetime] = None
    elapsed_minutes: float
    time_remaining: float
    time_overdue: float
    percentage_used: float
    percentage_overdue: float
    warning_level: WarningLevelStr
    severity: SeverityStr
    error: Optional[str] = None


class DashboardSummaryResponse(ResponseModel):
    tenant_id: str
    generated_at: datetime
    total: int
    warnings: WarningStatsResponse
    expired: ExpiredStatsResponse
    urgent_count: int
    critical_count: int
    misconfigured_count: int


class CoverageLevelResponse(ResponseModel):
    configured: int
    total: int
    coverage: float


class CoverageResponse(ResponseModel):
    tenant_id: str
    local: CoverageLevelResponse
    channel: CoverageLevelResponse
    tenant: CoverageLevelResponse
    optimization_score: int
    optimization_max_score: int
    optimization_level: int
    grade: Literal["A", "B", "C", "D"]
    recommendations: List[str] = Field(default_factory=list)


class HierarchyExplanationResponse(BaseModel):
    effective: EffectiveSLAResponse
    local: Optional[EffectiveSLAResponse] = None
    channel: Optional[EffectiveSLAResponse] = None
    tenant: Optional[EffectiveSLAResponse] = None
    recommendations: List[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, explanation: Any) -> "HierarchyExplanationResponse":
        return cls(
            effective=EffectiveSLAResponse.from_domain(explanation.effective),
            local=EffectiveSLAResponse.from_domain(explanation.local),
            channel=EffectiveSLAResponse.from_domain(explanation.channel),
            tenant=EffectiveSLAResponse.from_domain(explanation.tenant),
            recommendations=list(explanation.recommendations),
        )


class ApplicabilityResponse(BaseModel):
    sla_id: str
    is_applicable: bool
    effective: EffectiveSLAResponse
    reason: Optional[str] = None


class SimulationEntryResponse(BaseModel):
    context: str
    description: str
    effective: EffectiveSLAResponse


class SimulationResponse(BaseModel):
    tenant_id: str
    entries: List[SimulationEntryResponse]
    unique_slas: int
    sources: Dict[str, int]

    @classmethod
    def from_domain(cls, simulation: Any) -> "SimulationResponse":
        return cls(
            tenant_id=simulation.tenant_id,
            entries=[
                SimulationEntryResponse(
                    context=e.context,
                    description=e.description,
                    effective=EffectiveSLAResponse.from_domain(e.effective),
                )
                for e in simulation.entries
            ],
            unique_slas=simulation.unique_slas,
            sources=simulation.sources,
        )


class MonitorRunResponse(BaseModel):
    tenant_id: str
    warnings_sent: int
    expired_sent: int
