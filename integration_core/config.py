"""
Integration Core Configuration
==============================
Default constants and environment-driven settings for the resilience layer.

All durations are in seconds.
"""

import os
from dataclasses import dataclass, field
from typing import Optional
import structlog

logger = structlog.get_logger(__name__)


# Timeouts
DEFAULT_OPERATION_TIMEOUT = 10.0
HEALTH_CHECK_TIMEOUT = 5.0

# Retry
DEFAULT_MAX_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_INITIAL_DELAY = 1.0
DEFAULT_RETRY_MAX_DELAY = 10.0
DEFAULT_RETRY_BACKOFF_MULTIPLIER = 2.0

RETRYABLE_HTTP_STATUS_CODES = frozenset({
    408,  # Request Timeout
    429,  # Too Many Requests
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
})

RETRYABLE_ERROR_CODES = frozenset({
    "ECONNRESET",
    "ECONNREFUSED",
    "ETIMEDOUT",
    "ENOTFOUND",
})

# Circuit breaker
CIRCUIT_BREAKER_DEFAULT_FAILURE_THRESHOLD = 5
CIRCUIT_BREAKER_DEFAULT_RESET_TIMEOUT = 60.0
CIRCUIT_BREAKER_DEFAULT_HALF_OPEN_MAX_CALLS = 3
CIRCUIT_BREAKER_DEFAULT_MONITOR_WINDOW = 60.0
CIRCUIT_BREAKER_MIN_CLEANUP_THRESHOLD = 50
CIRCUIT_BREAKER_CLEANUP_THRESHOLD_MULTIPLIER = 10

# Rate limiter
RATE_LIMITER_DEFAULT_MAX_REQUESTS = 15
RATE_LIMITER_DEFAULT_WINDOW = 60.0

# Idempotency (24 hours)
IDEMPOTENCY_DEFAULT_TTL = 24 * 60 * 60.0

# Metrics
DEFAULT_LATENCY_HISTOGRAM_BUCKETS = (
    0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0,
)

# Logging
LOGGER_MAX_SANITIZATION_DEPTH = 5
LOGGER_MAX_ARRAY_ITEMS = 10
LOGGER_MAX_OBJECT_KEYS_PER_LEVEL = 50


def parse_env_int(name: str, default: int, minimum: int = 1) -> int:
    """
    Read an integer from the environment.

    Missing values return the default silently; malformed values or values
    below ``minimum`` return the default and log a warning.
    """
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("invalid_env_value", variable=name, value=raw, default=default)
        return default
    if value < minimum:
        logger.warning("env_value_below_minimum", variable=name, value=value, default=default)
        return default
    return value


def parse_env_float(name: str, default: float, minimum: float = 0.0) -> float:
    """Float counterpart of :func:`parse_env_int`; values must exceed ``minimum``."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        logger.warning("invalid_env_value", variable=name, value=raw, default=default)
        return default
    if value <= minimum:
        logger.warning("env_value_below_minimum", variable=name, value=value, default=default)
        return default
    return value


@dataclass
class ResilienceSettings:
    """Process-wide resilience settings, defaulting from the environment."""
    timeout: float = field(default_factory=lambda: parse_env_float(
        "INTEGRATION_TIMEOUT", DEFAULT_OPERATION_TIMEOUT))
    max_retries: int = field(default_factory=lambda: parse_env_int(
        "INTEGRATION_MAX_RETRIES", DEFAULT_MAX_RETRY_ATTEMPTS))
    initial_delay: float = field(default_factory=lambda: parse_env_float(
        "INTEGRATION_RETRY_INITIAL_DELAY", DEFAULT_RETRY_INITIAL_DELAY))
    max_delay: float = field(default_factory=lambda: parse_env_float(
        "INTEGRATION_RETRY_MAX_DELAY", DEFAULT_RETRY_MAX_DELAY))
    backoff_multiplier: float = field(default_factory=lambda: parse_env_float(
        "INTEGRATION_RETRY_BACKOFF_MULTIPLIER", DEFAULT_RETRY_BACKOFF_MULTIPLIER))
    circuit_breaker_threshold: int = field(default_factory=lambda: parse_env_int(
        "INTEGRATION_CB_THRESHOLD", CIRCUIT_BREAKER_DEFAULT_FAILURE_THRESHOLD))
    reset_timeout: float = field(default_factory=lambda: parse_env_float(
        "INTEGRATION_CB_RESET_TIMEOUT", CIRCUIT_BREAKER_DEFAULT_RESET_TIMEOUT))
    half_open_max_calls: int = field(default_factory=lambda: parse_env_int(
        "INTEGRATION_CB_HALF_OPEN_MAX_CALLS", CIRCUIT_BREAKER_DEFAULT_HALF_OPEN_MAX_CALLS))
    monitor_window: float = field(default_factory=lambda: parse_env_float(
        "INTEGRATION_CB_MONITOR_WINDOW", CIRCUIT_BREAKER_DEFAULT_MONITOR_WINDOW))
    rate_limit_requests: int = field(default_factory=lambda: parse_env_int(
        "INTEGRATION_RATE_LIMIT_REQUESTS", RATE_LIMITER_DEFAULT_MAX_REQUESTS))
    rate_limit_window: float = field(default_factory=lambda: parse_env_float(
        "INTEGRATION_RATE_LIMIT_WINDOW", RATE_LIMITER_DEFAULT_WINDOW))
    idempotency_ttl: float = field(default_factory=lambda: parse_env_float(
        "INTEGRATION_IDEMPOTENCY_TTL", IDEMPOTENCY_DEFAULT_TTL))
    health_check_timeout: float = field(default_factory=lambda: parse_env_float(
        "INTEGRATION_HEALTH_CHECK_TIMEOUT", HEALTH_CHECK_TIMEOUT))

    def circuit_breaker_config(self):
        from .circuit_breaker import CircuitBreakerConfig

        return CircuitBreakerConfig(
            failure_threshold=self.circuit_breaker_threshold,
            reset_timeout=self.reset_timeout,
            half_open_max_calls=self.half_open_max_calls,
            monitor_window=self.monitor_window,
        )

    def retry_options(self):
        from .retry import RetryOptions

        return RetryOptions(
            max_attempts=self.max_retries,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            backoff_multiplier=self.backoff_multiplier,
        )

    def rate_limiter_config(self, service_name: str = "RateLimiter"):
        from .rate_limit import RateLimiterConfig

        return RateLimiterConfig(
            max_requests=self.rate_limit_requests,
            window=self.rate_limit_window,
            service_name=service_name,
        )


@dataclass
class ServiceConfig:
    """Per-dependency overrides applied on top of :class:`ResilienceSettings`."""
    timeout: Optional[float] = None
    max_retries: Optional[int] = None
    circuit_breaker_threshold: Optional[int] = None
    reset_timeout: Optional[float] = None
    half_open_max_calls: Optional[int] = None
    monitor_window: Optional[float] = None
    rate_limit_requests: Optional[int] = None
    rate_limit_window: Optional[float] = None
    health_check_timeout: Optional[float] = None
    rate_limited: bool = True

    def apply(self, settings: ResilienceSettings) -> ResilienceSettings:
        """Return a copy of ``settings`` with every non-None override applied."""
        overrides = {
            name: value
            for name, value in vars(self).items()
            if value is not None and name != "rate_limited"
        }
        merged = vars(settings).copy()
        merged.update(overrides)
        return ResilienceSettings(**merged)
