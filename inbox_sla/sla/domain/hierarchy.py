"""
SLA Hierarchy
==============

Scope-priority fallback: local -> channel -> tenant default -> none.

PolicySnapshot holds everything resolution needs for one tenant so a scan
can resolve any number of threads without further store round trips.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from inbox_sla.config import SLASource
from inbox_sla.core import AssignmentConflictException
from inbox_sla.sla.domain.entities import (
    ChannelSLAAssignment,
    LocalSLAAssignment,
    SLAPolicy,
)
from inbox_sla.sla.domain.value_objects import EffectiveSLA
from inbox_sla.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def assert_single_default(tenant_id: str, policies: Iterable[SLAPolicy]) -> None:
    """Raise when more than one active policy is flagged as tenant default."""
    defaults = [p.id for p in policies if p.is_active and p.is_default]
    if len(defaults) > 1:
        raise AssignmentConflictException(tenant_id, defaults)


def select_tenant_default(tenant_id: str, policies: Iterable[SLAPolicy]) -> Optional[SLAPolicy]:
    """
    Pick the tenant-level fallback policy.

    The active policy flagged `is_default` wins. Without a flag, a tenant
    with exactly one active policy uses it. Several unflagged active
    policies give no tenant fallback.

    Raises:
        AssignmentConflictException: more than one active default
    """
    active = [p for p in policies if p.tenant_id == tenant_id and p.is_active]
    assert_single_default(tenant_id, active)

    for policy in active:
        if policy.is_default:
            return policy

    if len(active) == 1:
        return active[0]

    if len(active) > 1:
        logger.warning(
            "No default SLA policy among several active policies",
            extra={"tenant_id": tenant_id, "active_policies": len(active)}
        )
    return None


@dataclass
class PolicySnapshot:
    """Active policies and assignments of one tenant, loaded once."""

    tenant_id: str
    policies: Dict[str, SLAPolicy] = field(default_factory=dict)
    local_assignments: Dict[str, LocalSLAAssignment] = field(default_factory=dict)
    channel_assignments: Dict[str, ChannelSLAAssignment] = field(default_factory=dict)
    _tenant_resolved: bool = field(default=False, init=False, repr=False)
    _tenant_default: Optional[SLAPolicy] = field(default=None, init=False, repr=False)

    @classmethod
    def build(
        cls,
        tenant_id: str,
        policies: Iterable[SLAPolicy],
        local_assignments: Iterable[LocalSLAAssignment] = (),
        channel_assignments: Iterable[ChannelSLAAssignment] = ()
    ) -> "PolicySnapshot":
        return cls(
            tenant_id=tenant_id,
            policies={
                p.id: p for p in policies
                if p.tenant_id == tenant_id and p.is_active
            },
            local_assignments={a.local_id: a for a in local_assignments},
            channel_assignments={a.channel_type: a for a in channel_assignments},
        )

    def _usable(self, sla_id: Optional[str]) -> Optional[SLAPolicy]:
        """Policy for an assignment, or None if unset, missing, inactive or foreign."""
        if sla_id is None:
            return None
        return self.policies.get(sla_id)

    def local_policy(self, local_id: Optional[str]) -> Optional[SLAPolicy]:
        if not local_id:
            return None
        assignment = self.local_assignments.get(local_id)
        return self._usable(assignment.sla_id) if assignment else None

    def channel_policy(self, channel_type: Optional[str]) -> Optional[SLAPolicy]:
        if not channel_type:
            return None
        assignment = self.channel_assignments.get(channel_type)
        return self._usable(assignment.sla_id) if assignment else None

    def tenant_policy(self) -> Optional[SLAPolicy]:
        """Tenant fallback, selected once per snapshot."""
        if not self._tenant_resolved:
            self._tenant_default = select_tenant_default(self.tenant_id, self.policies.values())
            self._tenant_resolved = True
        return self._tenant_default

    def resolve(
        self,
        local_id: Optional[str] = None,
        channel_type: Optional[str] = None
    ) -> EffectiveSLA:
        """
        Resolve the effective SLA for a (local, channel) context.

        Raises:
            AssignmentConflictException: resolution reached the tenant
                level and the tenant has several active defaults
        """
        policy = self.local_policy(local_id)
        if policy:
            return EffectiveSLA.from_policy(policy, SLASource.LOCAL)

        policy = self.channel_policy(channel_type)
        if policy:
            return EffectiveSLA.from_policy(policy, SLASource.CHANNEL)

        policy = self.tenant_policy()
        if policy:
            return EffectiveSLA.from_policy(policy, SLASource.TENANT)

        return EffectiveSLA.none()

    @property
    def configured_local_ids(self) -> List[str]:
        """Locals whose assignment points at a usable policy."""
        return [
            local_id for local_id, a in self.local_assignments.items()
            if self._usable(a.sla_id)
        ]

    @property
    def configured_channel_types(self) -> List[str]:
        return [
            channel for channel, a in self.channel_assignments.items()
            if self._usable(a.sla_id)
        ]

    def dangling_local(self, local_id: Optional[str]) -> bool:
        """Local points at a policy that is missing, inactive or foreign."""
        assignment = self.local_assignments.get(local_id) if local_id else None
        return bool(assignment and assignment.sla_id and not self._usable(assignment.sla_id))

    def dangling_channel(self, channel_type: Optional[str]) -> bool:
        assignment = self.channel_assignments.get(channel_type) if channel_type else None
        return bool(assignment and assignment.sla_id and not self._usable(assignment.sla_id))
