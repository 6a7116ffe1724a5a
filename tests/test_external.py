"""Tests for the webhook sink, circuit breaker, file watcher and scheduler."""

import json
from types import SimpleNamespace

import httpx
import pytest
import yaml

from inbox_sla.config import NotificationType
from inbox_sla.sla.infrastructure import YAMLPolicyStore
from inbox_sla.sla.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    PolicyFileHandler,
    SLAScheduler,
    WebhookNotificationSink,
)

WEBHOOK_URL = "https://hooks.example.com/sla"


class FakeClock:
    def __init__(self):
        self.value = 0.0

    def __call__(self):
        return self.value


def make_sink(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("retry_base_delay", 0)
    return WebhookNotificationSink(WEBHOOK_URL, client=client, **kwargs)


class TestWebhookNotificationSink:
    """Tests for WebhookNotificationSink."""

    async def test_delivers_message(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        sink = make_sink(handler)
        delivered = await sink.notify(["agent-1"], NotificationType.SLA_EXPIRED, {"thread_id": "t1"})

        assert delivered is True
        assert len(requests) == 1
        body = json.loads(requests[0].content)
        assert body["type"] == "sla_expired"
        assert body["recipients"] == ["agent-1"]
        assert body["data"] == {"thread_id": "t1"}
        assert "sent_at" in body
        await sink.close()

    async def test_server_error_retried_then_fails(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(500)

        sink = make_sink(handler, max_retries=3)
        assert await sink.notify(["agent-1"], NotificationType.SLA_WARNING, {"thread_id": "t1"}) is False
        assert len(attempts) == 3
        await sink.close()

    async def test_transport_error_does_not_propagate(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        sink = make_sink(handler, max_retries=2)
        assert await sink.notify(["agent-1"], NotificationType.SLA_WARNING, {}) is False
        await sink.close()

    async def test_without_url_skips(self):
        sink = WebhookNotificationSink(None)
        assert await sink.notify(["agent-1"], NotificationType.SLA_WARNING, {}) is False

    async def test_open_circuit_skips_request(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(200)

        breaker = CircuitBreaker(failure_threshold=1)
        breaker.record_failure()
        sink = make_sink(handler, circuit_breaker=breaker)

        assert await sink.notify(["agent-1"], NotificationType.SLA_WARNING, {}) is False
        assert attempts == []
        await sink.close()


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def test_opens_at_threshold(self):
        breaker = CircuitBreaker(failure_threshold=3, clock=FakeClock())
        for _ in range(2):
            breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

    def test_half_open_after_timeout(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30, clock=clock)
        breaker.record_failure()

        clock.value = 29
        assert breaker.state == CircuitState.OPEN
        clock.value = 30
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request()

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_failure_while_half_open_reopens(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=10, clock=clock)
        for _ in range(5):
            breaker.record_failure()
        clock.value = 10
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN


class TestPolicyFileHandler:
    """Tests for the watchdog handler."""

    @pytest.fixture
    def store(self, tmp_path):
        path = tmp_path / "sla.yaml"
        path.write_text(yaml.safe_dump({"tenants": [{"tenant_id": "acme"}]}))
        return YAMLPolicyStore(path)

    async def test_modified_file_reloads(self, store):
        store.path.write_text(yaml.safe_dump({"tenants": [{"tenant_id": "acme"}, {"tenant_id": "globex"}]}))
        handler = PolicyFileHandler(store)
        handler.on_modified(SimpleNamespace(is_directory=False, src_path=str(store.path)))
        assert await store.list_tenant_ids() == ["acme", "globex"]

    async def test_other_files_ignored(self, store, tmp_path):
        store.path.write_text(yaml.safe_dump({"tenants": [{"tenant_id": "globex"}]}))
        handler = PolicyFileHandler(store)
        handler.on_modified(SimpleNamespace(is_directory=False, src_path=str(tmp_path / "other.yaml")))
        assert await store.list_tenant_ids() == ["acme"]

    async def test_atomic_replace_reloads(self, store):
        store.path.write_text(yaml.safe_dump({"tenants": [{"tenant_id": "globex"}]}))
        handler = PolicyFileHandler(store)
        handler.on_moved(SimpleNamespace(
            is_directory=False, src_path=str(store.path) + ".tmp", dest_path=str(store.path)
        ))
        assert await store.list_tenant_ids() == ["globex"]


class TestSLAScheduler:
    """Tests for SLAScheduler."""

    async def test_start_and_stop(self):
        async def job():
            return None

        scheduler = SLAScheduler(interval_seconds=3600)
        await scheduler.start(job)
        assert scheduler.is_running

        # Second start is a no-op
        await scheduler.start(job)
        assert scheduler.is_running

        await scheduler.stop()
        assert not scheduler.is_running
        await scheduler.stop()
