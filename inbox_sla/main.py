"""
Inbox SLA - Main Application
==============================

SLA resolution and deadline monitoring engine for a multi-tenant
messaging inbox.

Modules:
- SLA Monitoring: hierarchy resolution, warning/expired detection,
  dashboard statistics and the background notifier

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects and calculators
- Infrastructure: Database, YAML policy file, webhook, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Set, Tuple

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from inbox_sla.config import settings
from inbox_sla.core import ApplicationException

# Infrastructure
from inbox_sla.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)

# SLA Module
from inbox_sla.sla.application import (
    ExpiredDetector,
    SLAHierarchyResolver,
    WarningDetector,
)
from inbox_sla.sla.infrastructure import (
    SQLAlchemyPolicyStore,
    SQLAlchemyThreadStore,
    YAMLPolicyStore,
)
from inbox_sla.sla.infrastructure.external import (
    PolicyFileWatcher,
    SLAScheduler,
    WebhookNotificationSink,
)
from inbox_sla.sla.interfaces import sla_router
from inbox_sla.sla.services import SLAMonitor

# Logging
from inbox_sla.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from inbox_sla.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)

# Global service instances
sla_scheduler = None
policy_watcher = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load the YAML policy file (optional) and watch it
    4. Create the notification sink
    5. Start the SLA monitor scheduler

    SHUTDOWN:
    1. Stop SLA scheduler
    2. Stop policy file watcher
    3. Close notification sink
    4. Close database connections
    """
    global sla_scheduler, policy_watcher

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment, settings.app_name)
    logger.info("Starting SLA engine", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })
    app.state.settings = settings

    logger.info("Initializing database")
    init_database()

    # Create tables (for development - use migrations in production)
    try:
        await create_tables()
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    # Policy file overrides the database policy tables when configured
    policy_store = None
    if settings.sla_policy_file:
        try:
            policy_store = YAMLPolicyStore(settings.sla_policy_file)
        except ApplicationException as e:
            logger.error("SLA policy file not loaded", extra={"error": e.message, "details": e.details})
            raise
        if settings.sla_watch_policy_file:
            policy_watcher = PolicyFileWatcher(policy_store)
            policy_watcher.start()
    app.state.policy_store = policy_store

    notification_sink = WebhookNotificationSink(
        settings.notification_webhook_url,
        timeout_seconds=settings.notification_timeout_seconds
    )
    app.state.notification_sink = notification_sink

    notified: Set[Tuple[str, str, str]] = set()
    app.state.sla_notified = notified

    async def sla_monitor_job():
        """Background SLA monitor job."""
        async with get_session_context() as session:
            store = policy_store or SQLAlchemyPolicyStore(session)
            thread_store = SQLAlchemyThreadStore(session)
            resolver = SLAHierarchyResolver(store)
            monitor = SLAMonitor(
                WarningDetector(
                    resolver, thread_store,
                    reference_mode=settings.sla_reference_timestamp,
                    default_timeout=settings.sla_scan_timeout_seconds
                ),
                ExpiredDetector(
                    resolver, thread_store,
                    reference_mode=settings.sla_reference_timestamp,
                    default_timeout=settings.sla_scan_timeout_seconds
                ),
                notification_sink,
                policy_store=store,
                tenant_ids=settings.sla_monitored_tenants,
                notified=notified
            )
            await monitor.monitor_all()

    try:
        sla_scheduler = SLAScheduler(interval_seconds=settings.sla_evaluation_interval)
        await sla_scheduler.start(sla_monitor_job)
    except Exception as e:
        logger.warning(f"SLA scheduler not started: {e}")
        sla_scheduler = None

    logger.info("SLA engine started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down SLA engine")

    if sla_scheduler:
        await sla_scheduler.stop()

    if policy_watcher:
        policy_watcher.stop()

    await notification_sink.close()
    await close_database()

    logger.info("SLA engine shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Inbox SLA API",
    description="""
    ## SLA Resolution & Deadline Monitoring

    Resolves which SLA policy governs each conversation thread
    (local > channel > tenant default) and reports threads approaching
    or past their first-response deadline, honouring business hours.

    **Endpoints:**
    - `GET /sla/tenants/{tenant_id}/warnings` - Threads nearing their deadline
    - `GET /sla/tenants/{tenant_id}/expired` - Threads past their deadline
    - `GET /sla/tenants/{tenant_id}/threads/{thread_id}` - SLA state of one thread
    - `GET /sla/tenants/{tenant_id}/resolve` - Effective SLA for a local/channel
    - `GET /sla/tenants/{tenant_id}/summary` - Dashboard summary
    - `GET /sla/tenants/{tenant_id}/coverage` - Configuration coverage and grade
    - `POST /sla/tenants/{tenant_id}/monitor` - Run the notifier now

    **Warning levels (% of budget used):** low 75, medium 85, high 90, critical 95

    **Expired severities (minutes overdue):** overdue, critical 60, urgent 120
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(sla_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "policy_source": "database",
                        "policy_watcher": "stopped",
                        "sla_scheduler": "running"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns service health status including:
    - Policy source (database or YAML file)
    - Policy file watcher state
    - Scheduler state
    """
    policy_store = getattr(request.app.state, "policy_store", None)
    checks = {
        "policy_source": f"file ({policy_store.path})" if policy_store else "database",
        "policy_watcher": "watching" if policy_watcher and policy_watcher.is_watching else "stopped",
        "sla_scheduler": "running" if sla_scheduler and sla_scheduler.is_running else "stopped",
    }

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Inbox SLA",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "sla": {
                "prefix": "/sla",
                "endpoints": [
                    "GET /sla/tenants/{tenant_id}/warnings - Warning scan",
                    "GET /sla/tenants/{tenant_id}/expired - Expired scan",
                    "GET /sla/tenants/{tenant_id}/summary - Dashboard summary",
                    "GET /sla/tenants/{tenant_id}/coverage - Coverage report"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "inbox_sla.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
