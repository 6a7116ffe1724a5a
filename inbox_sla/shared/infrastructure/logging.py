"""
Structured Logging
==================

JSON-structured logging with correlation ID tracking.

Provides:
- Structured JSON logs (parseable by log aggregators)
- Correlation ID for request and scan tracing
- Contextual loggers for modules
- Latency timing for scans and store calls

Usage:
    from inbox_sla.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Scan finished", extra={"tenant_id": "tenant-1", "warnings": 3})
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

SENSITIVE_KEY_MARKERS = ("password", "api_key", "secret", "webhook_url")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding timestamp, correlation_id, service and environment.

    Values under keys that look like credentials are redacted.
    """

    def __init__(self, *args: Any, service: str = "inbox-sla", environment: str = "development", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.service = service
        self.environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        correlation_id = getattr(record, "correlation_id", None) or message_dict.get("correlation_id")
        if correlation_id:
            log_record["correlation_id"] = correlation_id

        log_record["service"] = self.service
        log_record["environment"] = self.environment

        for key, value in list(log_record.items()):
            lowered = key.lower()
            if not isinstance(value, str):
                continue
            if any(marker in lowered for marker in SENSITIVE_KEY_MARKERS):
                log_record[key] = "***REDACTED***"
            elif "token" in lowered:
                log_record[key] = "***REDACTED***"


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
    service: str = "inbox-sla",
) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: Environment name for log context
        service: Service name stamped on every record
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(
        CustomJsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
            service=service,
            environment=environment,
        )
    )
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)


def get_context_logger(name: str, correlation_id: Optional[str] = None) -> logging.Logger:
    """
    Get a logger bound to a correlation ID.

    Args:
        name: Logger name
        correlation_id: Request or scan correlation ID

    Returns:
        Logger (or LoggerAdapter) carrying correlation_id on every record
    """
    logger = get_logger(name)
    if correlation_id:
        logger = logging.LoggerAdapter(logger, {"correlation_id": correlation_id})
    return logger


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **extra_context: Any):
    """
    Context manager for measuring and logging operation latency.

    Usage:
        with log_latency(logger, "warning_scan", tenant_id=tenant_id):
            ...
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        latency_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round(latency_ms, 2),
                **extra_context,
            },
        )
