"""
Integration Core
================
Client-side resilience and health orchestration for calls to unreliable
remote services.

Usage:
    from integration_core import ServiceRegistry, setup_logging

    setup_logging("worker")
    registry = ServiceRegistry()
    rows = await registry.call("database", db.fetch_rows, "entries")
"""

__version__ = "1.0.0"

from .errors import (
    AppError,
    CircuitOpenError,
    ErrorCode,
    ErrorSeverity,
    InternalError,
    NotFoundError,
    OperationTimeoutError,
    RateLimitError,
    ServiceUnavailableError,
    ValidationError,
    create_api_error,
    is_operational_error,
)
from .config import ResilienceSettings, ServiceConfig
from .logging_setup import bind_context, setup_logging
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState, circuit_breaker
from .retry import RetryEngine, RetryOptions, retry_with_backoff, with_retry
from .rate_limit import RateLimiter, RateLimiterConfig
from .idempotency import IdempotencyManager, IdempotencyResult, InMemoryIdempotencyStore
from .health import (
    AggregateHealthResult,
    HealthCheckConfig,
    HealthCheckRegistry,
    HealthCheckResult,
    HealthStatus,
)
from .resilience import (
    ResilienceConfig,
    ResilienceOptions,
    ResilienceOrchestrator,
    execute_with_resilience,
)
from .metrics import MetricsRegistry, ServiceMetricsCollector
from .services import BaseService, ServiceHealth, ServiceRegistry

__all__ = [
    "__version__",
    # Errors
    "AppError",
    "CircuitOpenError",
    "ErrorCode",
    "ErrorSeverity",
    "InternalError",
    "NotFoundError",
    "OperationTimeoutError",
    "RateLimitError",
    "ServiceUnavailableError",
    "ValidationError",
    "create_api_error",
    "is_operational_error",
    # Config and logging
    "ResilienceSettings",
    "ServiceConfig",
    "bind_context",
    "setup_logging",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "circuit_breaker",
    # Retry
    "RetryEngine",
    "RetryOptions",
    "retry_with_backoff",
    "with_retry",
    # Rate limiting
    "RateLimiter",
    "RateLimiterConfig",
    # Idempotency
    "IdempotencyManager",
    "IdempotencyResult",
    "InMemoryIdempotencyStore",
    # Health
    "AggregateHealthResult",
    "HealthCheckConfig",
    "HealthCheckRegistry",
    "HealthCheckResult",
    "HealthStatus",
    # Orchestration
    "ResilienceConfig",
    "ResilienceOptions",
    "ResilienceOrchestrator",
    "execute_with_resilience",
    # Metrics
    "MetricsRegistry",
    "ServiceMetricsCollector",
    # Services
    "BaseService",
    "ServiceHealth",
    "ServiceRegistry",
]
