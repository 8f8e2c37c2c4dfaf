"""
Service Registry Tests
======================
Tests for per-dependency instances, protected calls and health wiring.
"""

import asyncio
import uuid

import pytest


class StatusError(Exception):
    def __init__(self, status_code):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def make_registry(**kwargs):
    from integration_core.config import ResilienceSettings
    from integration_core.services import ServiceRegistry

    settings = ResilienceSettings(
        timeout=1.0,
        max_retries=2,
        initial_delay=0.01,
        max_delay=0.02,
        circuit_breaker_threshold=2,
        reset_timeout=60.0,
    )
    return ServiceRegistry(settings, **kwargs)


def make_service_class():
    from integration_core.services import BaseService

    class StorageService(BaseService):
        service_name = "storage"

        def __init__(self, registry, healthy=True):
            self.healthy = healthy
            super().__init__(registry)

        async def ping(self):
            if not self.healthy:
                raise ConnectionError("storage unreachable")

        async def upload(self, path):
            return await self.execute(self._upload, path)

        async def _upload(self, path):
            return f"stored:{path}"

        async def health_check(self):
            return await self.perform_health_check(self.ping)

    return StorageService


class TestInstances:
    """Tests for one-instance-per-dependency semantics."""

    def test_same_breaker_per_name(self):
        """Should return one shared breaker per dependency name."""
        registry = make_registry()

        assert registry.get_circuit_breaker("database") is registry.get_circuit_breaker("database")
        assert registry.get_circuit_breaker("database") is not registry.get_circuit_breaker("gemini")
        assert registry.get_rate_limiter("gemini") is registry.get_rate_limiter("gemini")

    def test_service_config_overrides(self):
        """Per-service overrides should shape that dependency's instances only."""
        from integration_core.config import ServiceConfig

        registry = make_registry(service_configs={
            "gemini": ServiceConfig(circuit_breaker_threshold=9, rate_limit_requests=4),
        })

        assert registry.get_circuit_breaker("gemini").config.failure_threshold == 9
        assert registry.get_circuit_breaker("database").config.failure_threshold == 2
        assert registry.get_rate_limiter("gemini").max_requests == 4
        assert registry.get_rate_limiter("gemini").service_name == "gemini"

    def test_unknown_snapshots_are_none(self):
        """Snapshots for dependencies never used should be None."""
        registry = make_registry()

        assert registry.get_circuit_breaker_state("database") is None
        assert registry.get_rate_limiter_state("database") is None
        assert registry.reset_circuit_breaker("database") is False


class TestCall:
    """Tests for ServiceRegistry.call."""

    @pytest.mark.asyncio
    async def test_call_records_metrics(self):
        """A successful call should return the result and be counted."""
        registry = make_registry()

        async def fetch_rows(table, limit=10):
            return [table] * limit

        result = await registry.call("database", fetch_rows, "entries", limit=2)

        assert result == ["entries", "entries"]
        metrics = registry.metrics_registry
        assert metrics.get_sample("service_requests_total", {"service": "database"}) == 1.0
        assert metrics.get_sample("service_active_requests", {"service": "database"}) == 0.0
        assert metrics.get_sample("service_rate_limit_misses_total", {"service": "database"}) == 1.0
        assert registry.get_rate_limiter_state("database")["remaining_requests"] == 14

    @pytest.mark.asyncio
    async def test_failures_open_breaker(self):
        """Repeated failing calls should open the shared breaker and update the gauge."""
        from integration_core.circuit_breaker import CircuitState
        from integration_core.errors import CircuitOpenError

        changes = []
        registry = make_registry(on_state_change=lambda name, state, reason: changes.append((name, state)))

        async def unavailable():
            raise StatusError(503)

        for _ in range(2):
            with pytest.raises(StatusError):
                await registry.call("database", unavailable)

        with pytest.raises(CircuitOpenError):
            await registry.call("database", unavailable)

        snapshot = registry.get_circuit_breaker_state("database")
        assert snapshot["state"] == CircuitState.OPEN
        assert changes == [("database", CircuitState.OPEN)]
        metrics = registry.metrics_registry
        assert metrics.get_sample("service_circuit_breaker_state", {"service": "database"}) == 1.0
        assert metrics.get_sample(
            "service_errors_total", {"service": "database", "type": "CircuitOpenError"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_reset_breakers(self):
        """Operator reset should close breakers and reset the gauge."""
        from integration_core.circuit_breaker import CircuitState

        registry = make_registry()

        async def bad_request():
            raise StatusError(400)

        for name in ("database", "gemini"):
            for _ in range(2):
                with pytest.raises(StatusError):
                    await registry.call(name, bad_request)

        assert registry.reset_circuit_breaker("database") is True
        assert registry.get_circuit_breaker("database").state == CircuitState.CLOSED
        assert registry.metrics_registry.get_sample(
            "service_circuit_breaker_state", {"service": "database"}
        ) == 0.0

        registry.reset_all_circuit_breakers()

        states = registry.get_all_circuit_breaker_states()
        assert {name: state["state"] for name, state in states.items()} == {
            "database": CircuitState.CLOSED,
            "gemini": CircuitState.CLOSED,
        }

    @pytest.mark.asyncio
    async def test_rate_limit_hit_waits(self):
        """A call over the dependency's limit should wait and count a hit."""
        from integration_core.config import ServiceConfig

        registry = make_registry(service_configs={
            "gemini": ServiceConfig(rate_limit_requests=1, rate_limit_window=0.05),
        })

        async def generate():
            return "text"

        loop = asyncio.get_running_loop()
        start = loop.time()
        await registry.call("gemini", generate)
        await registry.call("gemini", generate)

        assert loop.time() - start >= 0.04
        metrics = registry.metrics_registry
        assert metrics.get_sample("service_rate_limit_hits_total", {"service": "gemini"}) == 1.0
        assert metrics.get_sample("service_rate_limit_misses_total", {"service": "gemini"}) == 1.0

    @pytest.mark.asyncio
    async def test_rate_limiting_disabled(self):
        """rate_limited=False should skip admission control."""
        from integration_core.config import ServiceConfig

        registry = make_registry(service_configs={"database": ServiceConfig(rate_limited=False)})

        async def fetch():
            return "ok"

        assert await registry.call("database", fetch) == "ok"
        assert registry.get_rate_limiter_state("database") is None

    @pytest.mark.asyncio
    async def test_call_idempotent(self):
        """Idempotent calls should execute once per key."""
        registry = make_registry()
        key = str(uuid.uuid4())
        call_count = 0

        async def create_entry(title):
            nonlocal call_count
            call_count += 1
            return {"title": title}

        first = await registry.call_idempotent(key, "database", create_entry, "hello")
        second = await registry.call_idempotent(key, "database", create_entry, "hello")

        assert call_count == 1
        assert first.cached is False
        assert second.cached is True
        assert second.data == {"title": "hello"}

    @pytest.mark.asyncio
    async def test_export_metrics(self):
        """The export should be Prometheus text including request counters."""
        registry = make_registry()

        async def fetch():
            return "ok"

        await registry.call("database", fetch)
        exported = registry.export_metrics()

        assert 'service_requests_total{service="database"} 1.0' in exported
        assert "service_request_duration_seconds_bucket" in exported


class TestServices:
    """Tests for service wrappers and health wiring."""

    @pytest.mark.asyncio
    async def test_register_service_wires_health_probe(self):
        """A registered wrapper's probe should drive its health result."""
        from integration_core.health import HealthStatus

        registry = make_registry()
        StorageService = make_service_class()
        registry.register_service("storage", StorageService(registry))

        result = await registry.check_health("storage")

        assert result.status == HealthStatus.HEALTHY
        assert result.metadata == {"circuit_breaker": "closed"}
        assert registry.list_services() == [{"name": "storage", "type": "StorageService"}]

    @pytest.mark.asyncio
    async def test_failing_probe(self):
        """A failing probe should surface as unhealthy with its error."""
        from integration_core.health import HealthStatus

        registry = make_registry()
        StorageService = make_service_class()
        registry.register_service("storage", StorageService(registry, healthy=False))

        result = await registry.check_health("storage")
        report = await registry.check_all_health()

        assert result.status == HealthStatus.UNHEALTHY
        assert result.message == "storage unreachable"
        assert report.summary.unhealthy == 1

    @pytest.mark.asyncio
    async def test_perform_health_check_reports_latency(self):
        """Probe latency should be measured in milliseconds for both outcomes."""
        registry = make_registry()
        StorageService = make_service_class()

        async def slow_ping():
            await asyncio.sleep(0.02)

        healthy = await StorageService(registry).perform_health_check(slow_ping)
        unhealthy = await StorageService(registry, healthy=False).health_check()

        assert healthy.healthy is True
        assert 15 <= healthy.latency_ms < 1000
        assert healthy.latency_ms == round(healthy.latency_ms, 2)
        assert unhealthy.healthy is False
        assert unhealthy.error == "storage unreachable"
        assert 0 <= unhealthy.latency_ms < 1000

    @pytest.mark.asyncio
    async def test_service_execute(self):
        """BaseService.execute should route through the registry."""
        registry = make_registry()
        StorageService = make_service_class()
        storage = StorageService(registry)

        assert await storage.upload("a.png") == "stored:a.png"
        assert storage.circuit_breaker is registry.get_circuit_breaker("storage")
        assert storage.get_circuit_breaker_state()["metrics"]["success_count"] == 1

    def test_duplicate_service_rejected(self):
        """A name can only be registered once."""
        from integration_core.errors import ValidationError

        registry = make_registry()
        StorageService = make_service_class()
        registry.register_service("storage", StorageService(registry))

        with pytest.raises(ValidationError):
            registry.register_service("storage", StorageService(registry))

    def test_remove_service(self):
        """Removing a service should drop its health check."""
        registry = make_registry()
        StorageService = make_service_class()
        registry.register_service("storage", StorageService(registry))

        assert registry.remove_service("storage") is True
        assert registry.get_service("storage") is None
        assert not registry.health_registry.is_registered("storage")

    @pytest.mark.asyncio
    async def test_probe_dependencies(self):
        """Probes registered with dependencies should roll up their status."""
        from integration_core.health import HealthStatus
        from integration_core.services import ServiceHealth

        registry = make_registry()

        async def database_probe():
            return ServiceHealth(healthy=False, latency_ms=3.0, error="refused")

        async def api_probe():
            return {"healthy": True, "latency_ms": 1.0}

        registry.register_probe("database", database_probe)
        registry.register_probe("api", api_probe, dependencies=["database"])

        result = await registry.check_health("api")

        assert result.status == HealthStatus.UNHEALTHY
        assert result.dependencies["database"].message == "refused"
