"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA monitoring:
- Models: SQLAlchemy ORM models
- Repositories: policy and thread stores (SQLAlchemy, YAML)
- External: webhook notifications, policy file watcher, scheduler
"""

from inbox_sla.sla.infrastructure.models import (
    ChannelSLAConfigModel,
    LocalModel,
    LocalSLAConfigModel,
    SLAPolicyModel,
    ThreadModel,
)
from inbox_sla.sla.infrastructure.repositories import (
    SQLAlchemyPolicyStore,
    SQLAlchemyThreadStore,
    YAMLPolicyStore,
)

__all__ = [
    "ChannelSLAConfigModel",
    "LocalModel",
    "LocalSLAConfigModel",
    "SLAPolicyModel",
    "ThreadModel",
    "SQLAlchemyPolicyStore",
    "SQLAlchemyThreadStore",
    "YAMLPolicyStore",
]
