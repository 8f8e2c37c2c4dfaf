"""
Service Metrics
===============
Prometheus metrics for calls made to external dependencies.

Tracks:
- Request counts and in-flight requests
- Request latency (histogram)
- Errors by type
- Circuit breaker state
- Rate limiter hits and misses
"""

import time
from contextlib import asynccontextmanager
from typing import Dict, Optional, Sequence
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from .circuit_breaker import CircuitState
from .config import DEFAULT_LATENCY_HISTOGRAM_BUCKETS

CIRCUIT_STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.OPEN: 1,
    CircuitState.HALF_OPEN: 2,
}


class MetricsRegistry:
    """
    Owns one set of metric families on its own ``CollectorRegistry``.

    Separate instances never share samples, which keeps tests isolated.
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        buckets: Sequence[float] = DEFAULT_LATENCY_HISTOGRAM_BUCKETS,
    ):
        self.registry = registry or CollectorRegistry()
        self._collectors: Dict[str, "ServiceMetricsCollector"] = {}

        self.requests_total = Counter(
            name="service_requests_total",
            documentation="Total requests made to a service",
            labelnames=["service"],
            registry=self.registry,
        )
        self.errors_total = Counter(
            name="service_errors_total",
            documentation="Total failed requests by error type",
            labelnames=["service", "type"],
            registry=self.registry,
        )
        self.request_duration = Histogram(
            name="service_request_duration_seconds",
            documentation="Time spent on requests to a service",
            labelnames=["service"],
            buckets=list(buckets),
            registry=self.registry,
        )
        self.active_requests = Gauge(
            name="service_active_requests",
            documentation="Requests currently in progress",
            labelnames=["service"],
            registry=self.registry,
        )
        self.circuit_breaker_state = Gauge(
            name="service_circuit_breaker_state",
            documentation="Circuit breaker state (0=closed, 1=open, 2=half-open)",
            labelnames=["service"],
            registry=self.registry,
        )
        self.rate_limit_hits = Counter(
            name="service_rate_limit_hits_total",
            documentation="Requests delayed or rejected by the rate limiter",
            labelnames=["service"],
            registry=self.registry,
        )
        self.rate_limit_misses = Counter(
            name="service_rate_limit_misses_total",
            documentation="Requests admitted by the rate limiter without waiting",
            labelnames=["service"],
            registry=self.registry,
        )

    def collector(self, service_name: str) -> "ServiceMetricsCollector":
        """Collector for ``service_name``, created on first use."""
        if service_name not in self._collectors:
            self._collectors[service_name] = ServiceMetricsCollector(service_name, self)
        return self._collectors[service_name]

    def export(self) -> str:
        """Render every family in the Prometheus text exposition format."""
        return generate_latest(self.registry).decode("utf-8")

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def get_sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        return self.registry.get_sample_value(name, labels or {})


class ServiceMetricsCollector:
    """Metric recording bound to one service label."""

    def __init__(self, service_name: str, registry: MetricsRegistry):
        self.service_name = service_name
        self.registry = registry

    def record_request(self) -> None:
        self.registry.requests_total.labels(service=self.service_name).inc()
        self.registry.active_requests.labels(service=self.service_name).inc()

    def record_request_complete(self, duration: float) -> None:
        """Close a request opened with :meth:`record_request`. ``duration`` in seconds."""
        self.registry.request_duration.labels(service=self.service_name).observe(duration)
        self.registry.active_requests.labels(service=self.service_name).dec()

    def record_error(self, error_type: str) -> None:
        self.registry.errors_total.labels(service=self.service_name, type=error_type).inc()

    def update_circuit_breaker_state(self, state: CircuitState) -> None:
        self.registry.circuit_breaker_state.labels(service=self.service_name).set(
            CIRCUIT_STATE_VALUES[state]
        )

    def record_rate_limit_hit(self) -> None:
        self.registry.rate_limit_hits.labels(service=self.service_name).inc()

    def record_rate_limit_miss(self) -> None:
        self.registry.rate_limit_misses.labels(service=self.service_name).inc()

    @asynccontextmanager
    async def track(self):
        """
        Record one request around the enclosed block.

        Usage:
            async with collector.track():
                await client.generate(prompt)
        """
        start = time.perf_counter()
        self.record_request()
        try:
            yield
        except Exception as exc:
            self.record_error(type(exc).__name__)
            raise
        finally:
            self.record_request_complete(time.perf_counter() - start)
