"""
Integration Core - Circuit Breaker
==================================
Async circuit breaker protecting calls to one named dependency.

States:

1. CLOSED: Normal operation, requests flow through
2. OPEN: Dependency is failing, requests are immediately rejected
3. HALF-OPEN: A limited number of probes test whether it recovered

Usage:
    from integration_core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig

    breaker = CircuitBreaker("supabase", CircuitBreakerConfig(failure_threshold=3))
    rows = await breaker.execute(fetch_rows, table="entries")
"""

from .models import (
    CircuitState,
    CircuitBreakerConfig,
    CircuitBreakerState,
    StateChangeCallback,
)

from .breaker import CircuitBreaker

from .decorators import circuit_breaker

__all__ = [
    # Models
    "CircuitState",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "StateChangeCallback",
    # Breaker
    "CircuitBreaker",
    # Decorator
    "circuit_breaker",
]
