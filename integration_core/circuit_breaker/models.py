"""
Circuit Breaker Models
======================
Data models and enums for the circuit breaker pattern.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Optional

from ..config import (
    CIRCUIT_BREAKER_DEFAULT_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_DEFAULT_HALF_OPEN_MAX_CALLS,
    CIRCUIT_BREAKER_DEFAULT_MONITOR_WINDOW,
    CIRCUIT_BREAKER_DEFAULT_RESET_TIMEOUT,
)


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing recovery


StateChangeCallback = Callable[[CircuitState, str], None]


@dataclass
class CircuitBreakerConfig:
    """Configuration for a circuit breaker."""
    failure_threshold: int = CIRCUIT_BREAKER_DEFAULT_FAILURE_THRESHOLD  # Failures in window before opening
    reset_timeout: float = CIRCUIT_BREAKER_DEFAULT_RESET_TIMEOUT        # Seconds open before half-open
    half_open_max_calls: int = CIRCUIT_BREAKER_DEFAULT_HALF_OPEN_MAX_CALLS  # Probes before deciding
    monitor_window: float = CIRCUIT_BREAKER_DEFAULT_MONITOR_WINDOW      # Seconds of history counted
    on_state_change: Optional[StateChangeCallback] = None


@dataclass
class CircuitBreakerState:
    """Runtime state of a circuit breaker."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: Optional[float] = None  # monotonic
    last_failure_at: Optional[float] = None    # wall clock, for reporting
    half_open_calls: int = 0
    half_open_successes: int = 0
    failures: Deque[float] = field(default_factory=deque)
    successes: Deque[float] = field(default_factory=deque)
    last_cleanup_time: float = 0.0
    total_rejections: int = 0
