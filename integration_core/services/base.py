"""
Base Service
============
Common plumbing for wrappers around one external dependency.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar
import structlog
from pydantic import BaseModel

from .. import timing

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ServiceHealth(BaseModel):
    """Result of a service's own connectivity probe."""
    healthy: bool
    latency_ms: float
    error: Optional[str] = None


class BaseService(ABC):
    """
    Base class for dependency wrappers.

    Subclasses set ``service_name`` and implement :meth:`health_check`. The
    breaker and metrics collector come from the registry, so every wrapper
    of one dependency shares the same state.

    Example:
        class GeminiService(BaseService):
            service_name = "gemini"

            async def generate(self, prompt: str) -> str:
                return await self.execute(self._client.generate, prompt)

            async def health_check(self) -> ServiceHealth:
                return await self.perform_health_check(self._client.list_models)

        gemini = GeminiService(registry)
        registry.register_service("gemini", gemini)
    """

    service_name: str = "service"

    def __init__(self, registry, name: Optional[str] = None):
        self.name = name or self.service_name
        self.registry = registry
        self.circuit_breaker = registry.get_circuit_breaker(self.name)
        self.metrics = registry.get_metrics_collector(self.name)

    async def execute(
        self,
        operation: Callable[..., Awaitable[T]],
        *args,
        options=None,
        **kwargs,
    ) -> T:
        """Call ``operation`` through the registry's protections for this service."""
        return await self.registry.call(self.name, operation, *args, options=options, **kwargs)

    def get_circuit_breaker_state(self) -> Dict[str, Any]:
        return {
            "state": self.circuit_breaker.get_state(),
            "metrics": self.circuit_breaker.get_metrics(),
        }

    def reset_circuit_breaker(self) -> None:
        logger.warning("circuit_manual_reset", service=self.name)
        self.circuit_breaker.reset()

    async def perform_health_check(self, probe: Callable[[], Awaitable[Any]]) -> ServiceHealth:
        """Time ``probe``; any exception it raises marks the service unhealthy."""
        start = time.perf_counter()
        try:
            await probe()
        except Exception as exc:
            latency_ms = timing.elapsed_ms(start)
            logger.error(
                "service_health_check_failed",
                service=self.name,
                error=str(exc),
                latency_ms=latency_ms,
            )
            return ServiceHealth(healthy=False, latency_ms=latency_ms, error=str(exc) or type(exc).__name__)

        latency_ms = timing.elapsed_ms(start)
        logger.info("service_health_check_passed", service=self.name, latency_ms=latency_ms)
        return ServiceHealth(healthy=True, latency_ms=latency_ms)

    @abstractmethod
    async def health_check(self) -> ServiceHealth:
        ...
