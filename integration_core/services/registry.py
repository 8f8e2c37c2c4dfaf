"""
Service Registry
================
One circuit breaker, rate limiter and metrics collector per named dependency.

Construct a single registry at process start and pass it to every consumer.
"""

from functools import partial
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, TypeVar, Union
import structlog

from ..circuit_breaker import CircuitBreaker, CircuitState
from ..config import ResilienceSettings, ServiceConfig
from ..errors import ValidationError
from ..health import (
    AggregateHealthResult,
    HealthCheckConfig,
    HealthCheckFunction,
    HealthCheckRegistry,
    HealthCheckResult,
    HealthStatus,
)
from ..idempotency import IdempotencyManager, IdempotencyResult
from ..metrics import MetricsRegistry, ServiceMetricsCollector
from ..rate_limit import RateLimiter
from ..resilience import ResilienceConfig, ResilienceOptions, ResilienceOrchestrator
from .base import ServiceHealth

logger = structlog.get_logger(__name__)

T = TypeVar("T")

StateObserver = Callable[[str, CircuitState, str], None]
ServiceProbe = Callable[[], Awaitable[Union[ServiceHealth, Mapping[str, Any]]]]


class ServiceRegistry:
    """
    Factory and directory for protected dependencies.

    Example:
        registry = ServiceRegistry(
            ResilienceSettings(),
            service_configs={"gemini": ServiceConfig(rate_limit_requests=15)},
        )

        reply = await registry.call("gemini", client.generate, prompt)
        report = await registry.check_all_health()
    """

    def __init__(
        self,
        settings: Optional[ResilienceSettings] = None,
        service_configs: Optional[Dict[str, ServiceConfig]] = None,
        health_registry: Optional[HealthCheckRegistry] = None,
        metrics_registry: Optional[MetricsRegistry] = None,
        orchestrator: Optional[ResilienceOrchestrator] = None,
        idempotency: Optional[IdempotencyManager] = None,
        on_state_change: Optional[StateObserver] = None,
    ):
        self.settings = settings or ResilienceSettings()
        self.service_configs = dict(service_configs or {})
        self.health_registry = health_registry or HealthCheckRegistry()
        self.metrics_registry = metrics_registry or MetricsRegistry()
        self.orchestrator = orchestrator or ResilienceOrchestrator()
        self.idempotency = idempotency or IdempotencyManager(ttl=self.settings.idempotency_ttl)
        self.on_state_change = on_state_change

        self._circuit_breakers: Dict[str, CircuitBreaker] = {}
        self._rate_limiters: Dict[str, RateLimiter] = {}
        self._services: Dict[str, Any] = {}

    def settings_for(self, name: str) -> ResilienceSettings:
        """Global settings with ``name``'s overrides applied."""
        service_config = self.service_configs.get(name)
        if service_config is None:
            return self.settings
        return service_config.apply(self.settings)

    # Per-dependency instances

    def get_circuit_breaker(self, name: str) -> CircuitBreaker:
        breaker = self._circuit_breakers.get(name)
        if breaker is None:
            config = self.settings_for(name).circuit_breaker_config()
            config.on_state_change = partial(self._handle_state_change, name)
            breaker = CircuitBreaker(name=name, config=config)
            self._circuit_breakers[name] = breaker
            self.get_metrics_collector(name).update_circuit_breaker_state(breaker.state)
            logger.debug("circuit_breaker_created", service=name)
        return breaker

    def get_rate_limiter(self, name: str) -> RateLimiter:
        limiter = self._rate_limiters.get(name)
        if limiter is None:
            limiter = RateLimiter(self.settings_for(name).rate_limiter_config(name))
            self._rate_limiters[name] = limiter
        return limiter

    def get_metrics_collector(self, name: str) -> ServiceMetricsCollector:
        return self.metrics_registry.collector(name)

    def _handle_state_change(self, name: str, state: CircuitState, reason: str) -> None:
        logger.warning("circuit_state_changed", service=name, state=state.value, reason=reason)
        self.get_metrics_collector(name).update_circuit_breaker_state(state)
        if self.on_state_change is not None:
            self.on_state_change(name, state, reason)

    # Services

    def register_service(self, name: str, service: Any, dependencies: Iterable[str] = ()) -> None:
        """
        Register a service wrapper under ``name``.

        A wrapper exposing ``health_check()`` also gets its probe registered
        with the health registry.
        """
        if name in self._services:
            raise ValidationError(f"Service already registered: {name}")
        self._services[name] = service
        if callable(getattr(service, "health_check", None)):
            self.register_probe(name, service.health_check, dependencies)
        logger.info("service_registered", service=name, type=type(service).__name__)

    def get_service(self, name: str) -> Optional[Any]:
        return self._services.get(name)

    def list_services(self) -> List[Dict[str, str]]:
        return [
            {"name": name, "type": type(service).__name__}
            for name, service in self._services.items()
        ]

    def remove_service(self, name: str) -> bool:
        """Forget a service wrapper and its health check; breaker state is kept."""
        if self._services.pop(name, None) is None:
            return False
        self.health_registry.unregister(name)
        return True

    # Health

    def register_health_check(
        self,
        name: str,
        check: HealthCheckFunction,
        config: Optional[HealthCheckConfig] = None,
        **overrides: Any,
    ) -> None:
        if config is None and "timeout" not in overrides:
            overrides["timeout"] = self.settings_for(name).health_check_timeout
        self.health_registry.register(name, check, config, **overrides)

    def register_probe(self, name: str, probe: ServiceProbe, dependencies: Iterable[str] = ()) -> None:
        """Register a ``ServiceHealth`` probe as the health check for ``name``."""

        async def check() -> HealthCheckResult:
            outcome = await probe()
            health = outcome if isinstance(outcome, ServiceHealth) else ServiceHealth.model_validate(outcome)
            metadata = None
            breaker = self._circuit_breakers.get(name)
            if breaker is not None:
                metadata = {"circuit_breaker": breaker.state.value}
            return HealthCheckResult(
                status=HealthStatus.HEALTHY if health.healthy else HealthStatus.UNHEALTHY,
                service=name,
                response_time_ms=health.latency_ms,
                message=health.error,
                metadata=metadata,
            )

        self.register_health_check(name, check, dependencies=list(dependencies))

    async def check_health(self, name: str) -> HealthCheckResult:
        return await self.health_registry.check(name)

    async def check_all_health(self) -> AggregateHealthResult:
        return await self.health_registry.check_all()

    # Calls

    async def call(
        self,
        name: str,
        operation: Callable[..., Awaitable[T]],
        *args,
        options: Optional[ResilienceOptions] = None,
        **kwargs,
    ) -> T:
        """
        Call ``operation(*args, **kwargs)`` against dependency ``name``.

        Admission by the dependency's rate limiter comes first (unless it is
        configured with ``rate_limited=False``), then the orchestrator applies
        timeout, circuit breaker and retry.
        """
        settings = self.settings_for(name)
        collector = self.get_metrics_collector(name)

        service_config = self.service_configs.get(name)
        if service_config is None or service_config.rate_limited:
            await self._admit(name, collector)

        config = ResilienceConfig(
            operation=partial(operation, *args, **kwargs),
            options=options or ResilienceOptions(),
            default_timeout=settings.timeout,
            circuit_breaker=self.get_circuit_breaker(name),
            retry_options=settings.retry_options(),
            operation_name=f"{name}.{getattr(operation, '__name__', 'operation')}",
        )
        async with collector.track():
            return await self.orchestrator.execute_with_resilience(config)

    async def call_idempotent(
        self,
        idempotency_key: str,
        name: str,
        operation: Callable[..., Awaitable[T]],
        *args,
        **kwargs,
    ) -> IdempotencyResult[T]:
        """:meth:`call`, deduplicated by ``idempotency_key``."""
        return await self.idempotency.execute(idempotency_key, self.call, name, operation, *args, **kwargs)

    async def _admit(self, name: str, collector: ServiceMetricsCollector) -> None:
        limiter = self.get_rate_limiter(name)
        if limiter.try_acquire().allowed:
            collector.record_rate_limit_miss()
            return
        collector.record_rate_limit_hit()
        await limiter.check_rate_limit()

    # Snapshots and operator recovery

    def get_circuit_breaker_state(self, name: str) -> Optional[Dict[str, Any]]:
        breaker = self._circuit_breakers.get(name)
        if breaker is None:
            return None
        return {"state": breaker.get_state(), "metrics": breaker.get_metrics()}

    def get_all_circuit_breaker_states(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {"state": breaker.get_state(), "metrics": breaker.get_metrics()}
            for name, breaker in self._circuit_breakers.items()
        }

    def get_rate_limiter_state(self, name: str) -> Optional[Dict[str, Any]]:
        limiter = self._rate_limiters.get(name)
        if limiter is None:
            return None
        return limiter.snapshot()

    def export_metrics(self) -> str:
        return self.metrics_registry.export()

    def reset_circuit_breaker(self, name: str) -> bool:
        breaker = self._circuit_breakers.get(name)
        if breaker is None:
            return False
        breaker.reset()
        logger.warning("circuit_manual_reset", service=name)
        return True

    def reset_all_circuit_breakers(self) -> None:
        for name in list(self._circuit_breakers):
            self.reset_circuit_breaker(name)
