"""
SLA External Service Integrations
==================================

External services around the SLA engine:
- Webhook notification sink (httpx) with circuit breaker and retry
- YAML policy file watcher (watchdog)
- APScheduler wrapper for the background SLA monitor
"""

import asyncio
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from inbox_sla.shared.infrastructure.logging import get_logger
from inbox_sla.sla.application import INotificationSink
from inbox_sla.sla.infrastructure.repositories import YAMLPolicyStore

logger = get_logger(__name__)


class PolicyFileHandler(FileSystemEventHandler):
    """Watchdog event handler reloading the policy store when its file changes."""

    def __init__(self, store: YAMLPolicyStore):
        self.store = store
        super().__init__()

    def _matches(self, path: str) -> bool:
        return Path(path).resolve() == self.store.path.resolve()

    def on_modified(self, event):
        if event.is_directory or not self._matches(event.src_path):
            return
        logger.info("SLA policy file changed", extra={"path": event.src_path})
        self.store.reload()

    def on_moved(self, event):
        # Editors that save atomically replace the file via rename
        if event.is_directory or not self._matches(event.dest_path):
            return
        logger.info("SLA policy file replaced", extra={"path": event.dest_path})
        self.store.reload()


class PolicyFileWatcher:
    """Hot reload for a YAMLPolicyStore."""

    def __init__(self, store: YAMLPolicyStore):
        self._store = store
        self._observer = None

    def start(self) -> None:
        """
        Start watching the policy file's directory.

        Falls back to a static configuration where inotify is unavailable.
        """
        try:
            self._observer = Observer()
            self._observer.schedule(
                PolicyFileHandler(self._store),
                str(self._store.path.parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching SLA policy file", extra={"path": str(self._store.path)})
        except OSError as e:
            logger.warning(
                "File watching not available, using static SLA policies",
                extra={"error": str(e)}
            )
            self._observer = None

    def stop(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._clock() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookNotificationSink(INotificationSink):
    """
    Posts SLA notifications as JSON to a webhook.

    Handles delivery with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling

    Delivery failures are logged and never propagate into the monitor.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout_seconds: float = 5.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._http_client = client
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    @staticmethod
    def build_message(
        recipient_ids: List[str],
        notification_type: str,
        payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        return {
            "type": notification_type,
            "recipients": list(recipient_ids),
            "sent_at": datetime.now(timezone.utc).isoformat(),
            "data": payload,
        }

    async def notify(
        self,
        recipient_ids: List[str],
        notification_type: str,
        payload: Dict[str, Any]
    ) -> bool:
        """
        Send one notification.

        Returns:
            True if delivered, False otherwise
        """
        if not self._webhook_url:
            logger.debug("Notification webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping notification",
                extra={"notification_type": notification_type, "thread_id": payload.get("thread_id")}
            )
            return False

        message = self.build_message(recipient_ids, notification_type, payload)

        for attempt in range(self._max_retries):
            try:
                response = await self._get_client().post(self._webhook_url, json=message)
                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Notification sent",
                        extra={
                            "notification_type": notification_type,
                            "thread_id": payload.get("thread_id"),
                        }
                    )
                    return True
                logger.warning(
                    "Notification webhook returned error status",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Notification delivery failed",
                    extra={
                        "error": str(e),
                        "attempt": attempt + 1,
                        "thread_id": payload.get("thread_id"),
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_base_delay * 2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class SLAScheduler:
    """
    Wrapper for APScheduler driving the background SLA monitor.

    Manages the lifecycle of the scheduler and its single job.
    """

    def __init__(self, interval_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[Any]]) -> None:
        """Start the scheduler with the given coroutine function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_monitor",
            name="SLA Monitor Job",
            misfire_grace_time=60,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("SLA scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
