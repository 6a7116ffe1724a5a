"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.

These are the database representations of policies, assignments, locals
and threads. They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inbox_sla.infrastructure.database import Base
from inbox_sla.config import PolicyPriority, ThreadStatus


def _new_id() -> str:
    return str(uuid4())


class SLAPolicyModel(Base):
    """
    Database model for SLAPolicy.

    Maps to the 'slas' table. Business hours are stored as JSON in the
    shape of BusinessHoursDTO.
    """
    __tablename__ = "slas"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    response_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    resolution_time_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=PolicyPriority.MEDIUM)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    business_hours: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    escalation_rules: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )


class LocalModel(Base):
    """A tenant's physical location. Maps to the 'locals' table."""
    __tablename__ = "locals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")


class LocalSLAConfigModel(Base):
    """(tenant, local) -> SLA. Maps to the 'local_sla_configs' table."""
    __tablename__ = "local_sla_configs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    local_id: Mapped[str] = mapped_column(String(64), ForeignKey("locals.id"), nullable=False)
    sla_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("slas.id"), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "local_id", name="uq_local_sla_config"),
    )


class ChannelSLAConfigModel(Base):
    """(tenant, channel type) -> SLA. Maps to the 'channel_sla_configs' table."""
    __tablename__ = "channel_sla_configs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    channel_type: Mapped[str] = mapped_column(String(20), nullable=False)
    sla_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("slas.id"), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "channel_type", name="uq_channel_sla_config"),
    )


class ThreadModel(Base):
    """
    Database model for a customer conversation.

    Only the columns the SLA engine reads; contact and assignee names are
    denormalised for dashboard rows.
    """
    __tablename__ = "threads"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    local_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("locals.id"), nullable=True)
    channel_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ThreadStatus.OPEN, index=True)

    subject: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_handle: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    assignee_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    assignee_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    last_inbound_message_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
