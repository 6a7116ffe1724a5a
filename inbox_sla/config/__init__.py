"""
Configuration Module
====================

Application settings and SLA engine constants.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="inbox-sla", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/inbox",
        description="Connection URL for the policy/thread store (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Engine ==========
    sla_reference_timestamp: str = Field(
        default="created_at",
        description="Thread timestamp the response clock starts from"
    )
    sla_scan_timeout_seconds: Optional[float] = Field(
        default=30.0,
        description="Upper bound for a single warning/expired scan",
        gt=0
    )
    sla_evaluation_interval: int = Field(
        default=60,
        description="Seconds between background SLA monitor runs",
        ge=10
    )
    sla_policy_file: Optional[Path] = Field(
        default=None,
        description="Optional YAML file holding policies and assignments"
    )
    sla_watch_policy_file: bool = Field(
        default=True,
        description="Hot-reload the YAML policy file when it changes"
    )
    sla_monitored_tenants: List[str] = Field(
        default_factory=list,
        description="Tenants scanned by the background monitor (empty = all)"
    )

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook receiving sla_warning/sla_expired notifications"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for notification webhook calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("sla_reference_timestamp")
    @classmethod
    def validate_reference_timestamp(cls, v: str) -> str:
        """Only thread creation or last inbound message can start the clock."""
        if v not in VALID_REFERENCE_TIMESTAMPS:
            raise ValueError(f"sla_reference_timestamp must be one of {VALID_REFERENCE_TIMESTAMPS}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class PolicyPriority(str):
    """SLA policy priority levels."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ChannelType(str):
    """Messaging channels a thread can arrive on."""
    WHATSAPP = "WHATSAPP"
    INSTAGRAM = "INSTAGRAM"
    TIKTOK = "TIKTOK"
    FACEBOOK = "FACEBOOK"
    TWITTER = "TWITTER"
    TELEGRAM = "TELEGRAM"


class ThreadStatus(str):
    """Thread lifecycle statuses."""
    OPEN = "OPEN"
    PENDING = "PENDING"
    CLOSED = "CLOSED"


class SLASource(str):
    """Hierarchy level an effective SLA was resolved from."""
    LOCAL = "local"
    CHANNEL = "channel"
    TENANT = "tenant"
    NONE = "none"


class WarningLevel(str):
    """Pre-breach proximity tiers."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    NONE = "none"


class ExpiredSeverity(str):
    """Post-breach severities."""
    OVERDUE = "overdue"
    CRITICAL = "critical"
    URGENT = "urgent"
    NONE = "none"


class SLAStatus(str):
    """Per-thread SLA health state."""
    NO_SLA = "no_sla"
    OK = "ok"
    WARNING = "warning"
    EXPIRED = "expired"
    MISCONFIGURED = "misconfigured"


class ReferenceTimestamp(str):
    """Thread timestamps the response clock may start from."""
    CREATED_AT = "created_at"
    LAST_INBOUND_MESSAGE_AT = "last_inbound_message_at"


class NotificationType(str):
    """Notification types handed to the notification sink."""
    SLA_WARNING = "sla_warning"
    SLA_EXPIRED = "sla_expired"


# ========== Thresholds (shared by both detectors) ==========

WARNING_LOW = 75
WARNING_MEDIUM = 85
WARNING_HIGH = 90
WARNING_CRITICAL = 95
EXPIRED_CRITICAL_MIN = 60
EXPIRED_URGENT_MIN = 120

MAX_RESPONSE_TIME_MINUTES = 10080  # 7 days
MAX_RESOLUTION_TIME_HOURS = 168

DEFAULT_TIMEZONE = "UTC"

# Optimisation score weights per hierarchy level
LOCAL_WEIGHT = 3
CHANNEL_WEIGHT = 2
TENANT_WEIGHT = 1


# ========== Lists for validation ==========

VALID_POLICY_PRIORITIES = [
    PolicyPriority.LOW, PolicyPriority.MEDIUM,
    PolicyPriority.HIGH, PolicyPriority.URGENT
]
VALID_CHANNEL_TYPES = [
    ChannelType.WHATSAPP, ChannelType.INSTAGRAM, ChannelType.TIKTOK,
    ChannelType.FACEBOOK, ChannelType.TWITTER, ChannelType.TELEGRAM
]
OPEN_THREAD_STATUSES = [ThreadStatus.OPEN, ThreadStatus.PENDING]
VALID_THREAD_STATUSES = [ThreadStatus.OPEN, ThreadStatus.PENDING, ThreadStatus.CLOSED]
VALID_SLA_SOURCES = [SLASource.LOCAL, SLASource.CHANNEL, SLASource.TENANT, SLASource.NONE]
VALID_REFERENCE_TIMESTAMPS = [
    ReferenceTimestamp.CREATED_AT,
    ReferenceTimestamp.LAST_INBOUND_MESSAGE_AT
]

# Sort ranks, most urgent first
WARNING_LEVEL_RANK = {
    WarningLevel.CRITICAL: 4,
    WarningLevel.HIGH: 3,
    WarningLevel.MEDIUM: 2,
    WarningLevel.LOW: 1,
}
SEVERITY_RANK = {
    ExpiredSeverity.URGENT: 3,
    ExpiredSeverity.CRITICAL: 2,
    ExpiredSeverity.OVERDUE: 1,
}


# Global settings instance
settings = get_settings()
