"""
SLA Infrastructure Repositories
=================================

Concrete implementations of the store interfaces.

- SQLAlchemyPolicyStore / SQLAlchemyThreadStore: async SQLAlchemy
- YAMLPolicyStore: policies and assignments from a YAML file, reloadable

Store failures surface as StoreUnavailableException.
"""

import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError
from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inbox_sla.config import OPEN_THREAD_STATUSES
from inbox_sla.core import (
    AssignmentConflictException,
    PolicyNotFoundException,
    StoreUnavailableException,
)
from inbox_sla.shared.infrastructure.logging import get_logger
from inbox_sla.sla.application import (
    BusinessHoursDTO,
    IPolicyStore,
    IThreadStore,
    PolicyFileDTO,
    ScanFilters,
    SLAPolicyDTO,
)
from inbox_sla.sla.domain import (
    BusinessHoursSchedule,
    ChannelSLAAssignment,
    LocalSLAAssignment,
    SLAPolicy,
    ThreadRecord,
    as_utc,
    assert_single_default,
)
from inbox_sla.sla.infrastructure.models import (
    ChannelSLAConfigModel,
    LocalModel,
    LocalSLAConfigModel,
    SLAPolicyModel,
    ThreadModel,
)

logger = get_logger(__name__)


def _optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


class _SQLAlchemyStore:
    """Session holder translating SQLAlchemy errors into StoreUnavailableException."""

    store_name = "store"

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _execute(self, stmt):
        try:
            return await self._session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "Store query failed",
                extra={"store": self.store_name, "error": str(e)}
            )
            raise StoreUnavailableException(self.store_name, str(e)) from e

    async def _flush(self) -> None:
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Store write failed",
                extra={"store": self.store_name, "error": str(e)}
            )
            raise StoreUnavailableException(self.store_name, str(e)) from e


class SQLAlchemyPolicyStore(_SQLAlchemyStore, IPolicyStore):
    """
    SQLAlchemy implementation of the policy store.

    Besides the read interface it offers the admin write operations,
    which enforce a single active default policy per tenant.
    """

    store_name = "policy store"

    @staticmethod
    def _business_hours(model: SLAPolicyModel) -> Optional[BusinessHoursSchedule]:
        """
        Stored schedule as a domain object.

        A row that fails validation loads as a schedule with no open time,
        so scans report its threads as misconfigured.
        """
        if not model.business_hours:
            return None
        try:
            return BusinessHoursDTO.model_validate(model.business_hours).to_domain()
        except ValidationError as e:
            logger.error(
                "Invalid stored business hours for SLA policy",
                extra={"tenant_id": model.tenant_id, "sla_id": model.id, "error": str(e)}
            )
            return BusinessHoursSchedule(days=())

    @classmethod
    def _to_domain(cls, model: SLAPolicyModel) -> SLAPolicy:
        business_hours = cls._business_hours(model)
        return SLAPolicy(
            id=model.id,
            tenant_id=model.tenant_id,
            name=model.name,
            description=model.description,
            response_time_minutes=model.response_time_minutes,
            resolution_time_hours=model.resolution_time_hours,
            priority=model.priority,
            is_active=model.is_active,
            is_default=model.is_default,
            business_hours=business_hours,
            escalation_rules=dict(model.escalation_rules or {}),
            created_at=_optional_utc(model.created_at),
        )

    async def get_policy(self, policy_id: str) -> Optional[SLAPolicy]:
        """Get policy by ID."""
        result = await self._execute(select(SLAPolicyModel).where(SLAPolicyModel.id == policy_id))
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def list_active_policies(self, tenant_id: str) -> List[SLAPolicy]:
        stmt = (
            select(SLAPolicyModel)
            .where(and_(SLAPolicyModel.tenant_id == tenant_id, SLAPolicyModel.is_active.is_(True)))
            .order_by(SLAPolicyModel.created_at.asc())
        )
        result = await self._execute(stmt)
        return [self._to_domain(m) for m in result.scalars().all()]

    async def get_local_assignment(self, tenant_id: str, local_id: str) -> Optional[LocalSLAAssignment]:
        stmt = select(LocalSLAConfigModel).where(and_(
            LocalSLAConfigModel.tenant_id == tenant_id,
            LocalSLAConfigModel.local_id == local_id,
        ))
        result = await self._execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return LocalSLAAssignment(model.tenant_id, model.local_id, model.sla_id, model.id)

    async def get_channel_assignment(self, tenant_id: str, channel_type: str) -> Optional[ChannelSLAAssignment]:
        stmt = select(ChannelSLAConfigModel).where(and_(
            ChannelSLAConfigModel.tenant_id == tenant_id,
            ChannelSLAConfigModel.channel_type == channel_type,
        ))
        result = await self._execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return ChannelSLAAssignment(model.tenant_id, model.channel_type, model.sla_id, model.id)

    async def list_local_assignments(self, tenant_id: str) -> List[LocalSLAAssignment]:
        result = await self._execute(
            select(LocalSLAConfigModel).where(LocalSLAConfigModel.tenant_id == tenant_id)
        )
        return [
            LocalSLAAssignment(m.tenant_id, m.local_id, m.sla_id, m.id)
            for m in result.scalars().all()
        ]

    async def list_channel_assignments(self, tenant_id: str) -> List[ChannelSLAAssignment]:
        result = await self._execute(
            select(ChannelSLAConfigModel).where(ChannelSLAConfigModel.tenant_id == tenant_id)
        )
        return [
            ChannelSLAAssignment(m.tenant_id, m.channel_type, m.sla_id, m.id)
            for m in result.scalars().all()
        ]

    async def list_local_ids(self, tenant_id: str) -> List[str]:
        result = await self._execute(
            select(LocalModel.id).where(LocalModel.tenant_id == tenant_id).order_by(LocalModel.name)
        )
        return list(result.scalars().all())

    async def list_tenant_ids(self) -> List[str]:
        policies = await self._execute(select(SLAPolicyModel.tenant_id).distinct())
        threads = await self._execute(select(ThreadModel.tenant_id).distinct())
        return sorted(set(policies.scalars().all()) | set(threads.scalars().all()))

    # ========== Admin writes ==========

    async def save_policy(self, policy: SLAPolicy) -> SLAPolicy:
        """
        Insert or update a policy.

        Raises:
            AssignmentConflictException: another active default exists
        """
        if policy.is_active and policy.is_default:
            stmt = select(SLAPolicyModel.id).where(and_(
                SLAPolicyModel.tenant_id == policy.tenant_id,
                SLAPolicyModel.is_active.is_(True),
                SLAPolicyModel.is_default.is_(True),
                SLAPolicyModel.id != policy.id,
            ))
            others = list((await self._execute(stmt)).scalars().all())
            if others:
                raise AssignmentConflictException(policy.tenant_id, others + [policy.id])

        dto = SLAPolicyDTO.from_domain(policy)
        values = dict(
            tenant_id=policy.tenant_id,
            name=policy.name,
            description=policy.description,
            response_time_minutes=policy.response_time_minutes,
            resolution_time_hours=policy.resolution_time_hours,
            priority=policy.priority,
            is_active=policy.is_active,
            is_default=policy.is_default,
            business_hours=dto.business_hours.model_dump() if dto.business_hours else None,
            escalation_rules=dict(policy.escalation_rules),
        )

        result = await self._execute(select(SLAPolicyModel).where(SLAPolicyModel.id == policy.id))
        model = result.scalar_one_or_none()
        if model is None:
            model = SLAPolicyModel(id=policy.id, **values)
            if policy.created_at:
                model.created_at = policy.created_at
            self._session.add(model)
        else:
            for key, value in values.items():
                setattr(model, key, value)
        await self._flush()

        logger.info("SLA policy saved", extra={"tenant_id": policy.tenant_id, "sla_id": policy.id})
        return self._to_domain(model)

    async def deactivate_policy(self, policy_id: str) -> None:
        result = await self._execute(
            update(SLAPolicyModel).where(SLAPolicyModel.id == policy_id).values(is_active=False)
        )
        if result.rowcount == 0:
            raise PolicyNotFoundException(policy_id)

    async def _check_assignable(self, tenant_id: str, sla_id: Optional[str]) -> None:
        if sla_id is None:
            return
        policy = await self.get_policy(sla_id)
        if policy is None or policy.tenant_id != tenant_id:
            raise PolicyNotFoundException(sla_id)

    async def set_local_assignment(
        self,
        tenant_id: str,
        local_id: str,
        sla_id: Optional[str]
    ) -> LocalSLAAssignment:
        """Upsert a local assignment; `sla_id=None` explicitly unsets it."""
        await self._check_assignable(tenant_id, sla_id)
        result = await self._execute(select(LocalSLAConfigModel).where(and_(
            LocalSLAConfigModel.tenant_id == tenant_id,
            LocalSLAConfigModel.local_id == local_id,
        )))
        model = result.scalar_one_or_none()
        if model is None:
            model = LocalSLAConfigModel(tenant_id=tenant_id, local_id=local_id, sla_id=sla_id)
            self._session.add(model)
        else:
            model.sla_id = sla_id
        await self._flush()
        return LocalSLAAssignment(tenant_id, local_id, sla_id, model.id)

    async def set_channel_assignment(
        self,
        tenant_id: str,
        channel_type: str,
        sla_id: Optional[str]
    ) -> ChannelSLAAssignment:
        """Upsert a channel assignment; `sla_id=None` explicitly unsets it."""
        await self._check_assignable(tenant_id, sla_id)
        result = await self._execute(select(ChannelSLAConfigModel).where(and_(
            ChannelSLAConfigModel.tenant_id == tenant_id,
            ChannelSLAConfigModel.channel_type == channel_type,
        )))
        model = result.scalar_one_or_none()
        if model is None:
            model = ChannelSLAConfigModel(tenant_id=tenant_id, channel_type=channel_type, sla_id=sla_id)
            self._session.add(model)
        else:
            model.sla_id = sla_id
        await self._flush()
        return ChannelSLAAssignment(tenant_id, channel_type, sla_id, model.id)


class SQLAlchemyThreadStore(_SQLAlchemyStore, IThreadStore):
    """SQLAlchemy implementation of the thread store."""

    store_name = "thread store"

    @staticmethod
    def _to_domain(model: ThreadModel, local_name: Optional[str]) -> ThreadRecord:
        return ThreadRecord(
            id=model.id,
            tenant_id=model.tenant_id,
            created_at=as_utc(model.created_at),
            channel_type=model.channel_type,
            local_id=model.local_id,
            assignee_id=model.assignee_id,
            last_inbound_message_at=_optional_utc(model.last_inbound_message_at),
            status=model.status,
            first_response_at=_optional_utc(model.first_response_at),
            subject=model.subject,
            contact_name=model.contact_name,
            contact_handle=model.contact_handle,
            local_name=local_name,
            assignee_name=model.assignee_name,
        )

    def _open_lacking_response(self, tenant_id: str, filters: Optional[ScanFilters]):
        conditions = [
            ThreadModel.tenant_id == tenant_id,
            ThreadModel.status.in_(OPEN_THREAD_STATUSES),
            ThreadModel.first_response_at.is_(None),
        ]
        if filters:
            if filters.agent_id:
                conditions.append(ThreadModel.assignee_id == filters.agent_id)
            if filters.local_id:
                conditions.append(ThreadModel.local_id == filters.local_id)
            if filters.channel_type:
                conditions.append(ThreadModel.channel_type == filters.channel_type)
            if filters.created_from:
                conditions.append(ThreadModel.created_at >= filters.created_from)
            if filters.created_to:
                conditions.append(ThreadModel.created_at <= filters.created_to)
        return conditions

    async def _list(self, conditions) -> List[ThreadRecord]:
        stmt = (
            select(ThreadModel, LocalModel.name)
            .outerjoin(LocalModel, ThreadModel.local_id == LocalModel.id)
            .where(and_(*conditions))
            .order_by(ThreadModel.created_at.asc())
        )
        result = await self._execute(stmt)
        return [self._to_domain(model, local_name) for model, local_name in result.all()]

    async def list_open_threads_lacking_response(
        self,
        tenant_id: str,
        filters: Optional[ScanFilters] = None
    ) -> List[ThreadRecord]:
        return await self._list(self._open_lacking_response(tenant_id, filters))

    async def list_open_threads_past_deadline(
        self,
        tenant_id: str,
        filters: Optional[ScanFilters] = None,
        created_before: Optional[datetime] = None
    ) -> List[ThreadRecord]:
        conditions = self._open_lacking_response(tenant_id, filters)
        if created_before is not None:
            conditions.append(ThreadModel.created_at <= as_utc(created_before))
        return await self._list(conditions)

    async def get_thread(self, tenant_id: str, thread_id: str) -> Optional[ThreadRecord]:
        threads = await self._list([ThreadModel.tenant_id == tenant_id, ThreadModel.id == thread_id])
        return threads[0] if threads else None


class _TenantPolicies:
    """In-memory view of one tenant from the policy file."""

    def __init__(self):
        self.policies: Dict[str, SLAPolicy] = {}
        self.local_ids: List[str] = []
        self.local_assignments: Dict[str, LocalSLAAssignment] = {}
        self.channel_assignments: Dict[str, ChannelSLAAssignment] = {}


class YAMLPolicyStore(IPolicyStore):
    """
    Policy store that loads policies and assignments from YAML.

    Thread-safe: the file watcher calls `reload()` from its own thread
    while scans read on the event loop. A failed reload keeps the last
    good configuration.

    File layout:
        tenants:
          - tenant_id: acme
            local_ids: [downtown]
            policies:
              - id: standard
                name: Standard
                response_time_minutes: 60
                resolution_time_hours: 24
                is_default: true
            local_assignments: {downtown: standard}
            channel_assignments: {WHATSAPP: null}
    """

    store_name = "yaml policy store"

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()
        self._tenants: Dict[str, _TenantPolicies] = {}
        self._tenants = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, _TenantPolicies]:
        """
        Parse and validate the policy file.

        Raises:
            StoreUnavailableException: unreadable or invalid file
            AssignmentConflictException: several active defaults for a tenant
        """
        try:
            with open(self._path, "r") as f:
                data = yaml.safe_load(f) or {}
            document = PolicyFileDTO.model_validate(data)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            raise StoreUnavailableException(self.store_name, f"cannot load {self._path}: {e}") from e

        tenants: Dict[str, _TenantPolicies] = {}
        for tenant in document.tenants:
            view = _TenantPolicies()
            for policy_dto in tenant.policies:
                policy = policy_dto.to_domain(tenant_id=tenant.tenant_id)
                view.policies[policy.id] = policy
            assert_single_default(tenant.tenant_id, view.policies.values())

            view.local_ids = list(tenant.local_ids)
            for local_id, sla_id in tenant.local_assignments.items():
                view.local_assignments[local_id] = LocalSLAAssignment(tenant.tenant_id, local_id, sla_id)
                if local_id not in view.local_ids:
                    view.local_ids.append(local_id)
            for channel_type, sla_id in tenant.channel_assignments.items():
                view.channel_assignments[channel_type] = ChannelSLAAssignment(
                    tenant.tenant_id, channel_type, sla_id
                )
            tenants[tenant.tenant_id] = view

        logger.info(
            "SLA policy file loaded",
            extra={"path": str(self._path), "tenants": len(tenants)}
        )
        return tenants

    def reload(self) -> bool:
        """Reload from file; returns False and keeps the old data on failure."""
        try:
            tenants = self._load()
        except (StoreUnavailableException, AssignmentConflictException) as e:
            logger.error(
                "Failed to reload SLA policy file, keeping previous configuration",
                extra={"path": str(self._path), "error": e.message}
            )
            return False
        with self._lock:
            self._tenants = tenants
        return True

    def _tenant(self, tenant_id: str) -> _TenantPolicies:
        with self._lock:
            return self._tenants.get(tenant_id) or _TenantPolicies()

    def _all_policies(self) -> Tuple[SLAPolicy, ...]:
        with self._lock:
            return tuple(p for view in self._tenants.values() for p in view.policies.values())

    async def get_policy(self, policy_id: str) -> Optional[SLAPolicy]:
        for policy in self._all_policies():
            if policy.id == policy_id:
                return policy
        return None

    async def list_active_policies(self, tenant_id: str) -> List[SLAPolicy]:
        return [p for p in self._tenant(tenant_id).policies.values() if p.is_active]

    async def get_local_assignment(self, tenant_id: str, local_id: str) -> Optional[LocalSLAAssignment]:
        return self._tenant(tenant_id).local_assignments.get(local_id)

    async def get_channel_assignment(self, tenant_id: str, channel_type: str) -> Optional[ChannelSLAAssignment]:
        return self._tenant(tenant_id).channel_assignments.get(channel_type)

    async def list_local_assignments(self, tenant_id: str) -> List[LocalSLAAssignment]:
        return list(self._tenant(tenant_id).local_assignments.values())

    async def list_channel_assignments(self, tenant_id: str) -> List[ChannelSLAAssignment]:
        return list(self._tenant(tenant_id).channel_assignments.values())

    async def list_local_ids(self, tenant_id: str) -> List[str]:
        return list(self._tenant(tenant_id).local_ids)

    async def list_tenant_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._tenants)
