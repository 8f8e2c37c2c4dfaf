"""
Circuit Breaker Core
====================
The main CircuitBreaker class for the async circuit breaker pattern.
"""

import time
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, TypeVar
import structlog

from ..config import (
    CIRCUIT_BREAKER_CLEANUP_THRESHOLD_MULTIPLIER,
    CIRCUIT_BREAKER_MIN_CLEANUP_THRESHOLD,
)
from ..errors import CircuitOpenError, ValidationError
from .models import CircuitBreakerConfig, CircuitBreakerState, CircuitState

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitBreaker:
    """
    Async circuit breaker guarding one named dependency.

    The failure threshold is evaluated against failures inside
    ``monitor_window`` only, so old, spaced-out failures never trip it.

    Example:
        breaker = CircuitBreaker("gemini")

        try:
            result = await breaker.execute(client.generate, prompt)
        except CircuitOpenError:
            return fallback_value

        # Or with context manager
        async with breaker:
            result = await client.generate(prompt)
    """

    def __init__(
        self,
        name: str = "circuit breaker",
        config: Optional[CircuitBreakerConfig] = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        for field_name in ("failure_threshold", "half_open_max_calls"):
            value = getattr(self.config, field_name)
            if value < 1:
                raise ValidationError(
                    f"{field_name} must be at least 1, got {value}",
                    details={field_name: value},
                )
        self._state = CircuitBreakerState()
        self._cleanup_threshold = max(
            CIRCUIT_BREAKER_MIN_CLEANUP_THRESHOLD,
            self.config.failure_threshold * CIRCUIT_BREAKER_CLEANUP_THRESHOLD_MULTIPLIER,
        )

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state.state

    def get_state(self) -> CircuitState:
        return self._state.state

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of lifetime and windowed counters."""
        now = time.monotonic()
        self._cleanup_lazy(now)
        return {
            "name": self.name,
            "state": self._state.state.value,
            "failure_count": self._state.failure_count,
            "success_count": self._state.success_count,
            "failures_in_window": self._count_in_window(self._state.failures, now),
            "successes_in_window": self._count_in_window(self._state.successes, now),
            "last_failure_time": self._state.last_failure_at,
            "total_rejections": self._state.total_rejections,
        }

    @property
    def metrics(self) -> Dict[str, Any]:
        return self.get_metrics()

    async def execute(self, operation: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Run ``operation`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open (the operation is not called)
        """
        self._before_call()
        try:
            result = await operation(*args, **kwargs)
        except Exception as exc:
            self._record_failure(exc)
            raise
        except BaseException:
            self._release_probe()
            raise
        self._record_success()
        return result

    async def __aenter__(self):
        self._before_call()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self._record_success()
        elif issubclass(exc_type, Exception):
            self._record_failure(exc_val)
        else:
            self._release_probe()
        return False

    def reset(self) -> None:
        """Force the circuit closed and zero every counter."""
        self._state = CircuitBreakerState()
        logger.info("circuit_reset", service=self.name)
        self._notify(CircuitState.CLOSED, "Manual reset")

    # State machine

    def _before_call(self) -> None:
        """Decide whether a call may proceed. Never suspends."""
        now = time.monotonic()
        state = self._state

        if state.state == CircuitState.OPEN:
            if self._should_attempt_reset(now):
                self._transition(CircuitState.HALF_OPEN, "Reset timeout elapsed")
            else:
                state.total_rejections += 1
                raise self._open_error(now)

        if state.state == CircuitState.HALF_OPEN:
            if state.half_open_calls >= self.config.half_open_max_calls:
                state.total_rejections += 1
                raise self._open_error(now)
            state.half_open_calls += 1

    def _should_attempt_reset(self, now: float) -> bool:
        if self._state.last_failure_time is None:
            return True
        return now - self._state.last_failure_time >= self.config.reset_timeout

    def _record_success(self) -> None:
        now = time.monotonic()
        state = self._state
        state.success_count += 1
        state.successes.append(now)

        if state.state == CircuitState.HALF_OPEN:
            state.half_open_successes += 1
            if state.half_open_successes >= self.config.half_open_max_calls:
                self._transition(CircuitState.CLOSED, "Half-open calls succeeded")

        self._cleanup_lazy(now)

    def _record_failure(self, exc: Exception) -> None:
        now = time.monotonic()
        state = self._state
        state.failure_count += 1
        state.last_failure_time = now
        state.last_failure_at = time.time()
        state.failures.append(now)

        if state.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN, f"Half-open call failed: {exc}")
        elif state.state == CircuitState.CLOSED:
            failures = self._count_in_window(state.failures, now)
            if failures >= self.config.failure_threshold:
                self._transition(
                    CircuitState.OPEN,
                    f"Failure threshold ({self.config.failure_threshold}) reached",
                )

        self._cleanup_lazy(now)

    def _release_probe(self) -> None:
        # Cancelled calls neither succeed nor fail; give the probe slot back
        if self._state.state == CircuitState.HALF_OPEN and self._state.half_open_calls > 0:
            self._state.half_open_calls -= 1

    def _transition(self, new_state: CircuitState, reason: str) -> None:
        state = self._state
        if state.state == new_state:
            return

        state.state = new_state
        state.half_open_calls = 0
        state.half_open_successes = 0

        if new_state == CircuitState.CLOSED:
            state.failure_count = 0
            state.failures.clear()
            logger.info("circuit_closed", service=self.name, reason=reason)
        elif new_state == CircuitState.OPEN:
            logger.warning(
                "circuit_opened",
                service=self.name,
                reason=reason,
                failures=state.failure_count,
            )
        else:
            logger.info("circuit_half_open", service=self.name, reason=reason)

        self._notify(new_state, reason)

    def _notify(self, new_state: CircuitState, reason: str) -> None:
        if self.config.on_state_change is not None:
            self.config.on_state_change(new_state, reason)

    def _open_error(self, now: float) -> CircuitOpenError:
        state = self._state
        if state.state == CircuitState.OPEN and state.last_failure_time is not None:
            retry_after = max(0.0, self.config.reset_timeout - (now - state.last_failure_time))
        else:
            retry_after = 0.0
        return CircuitOpenError(
            self.name,
            retry_after,
            details={
                "state": state.state.value,
                "failure_count": state.failure_count,
                "failure_threshold": self.config.failure_threshold,
                "reset_timeout": self.config.reset_timeout,
            },
        )

    # Windowed counters

    def _count_in_window(self, timestamps: Deque[float], now: float) -> int:
        cutoff = now - self.config.monitor_window
        return sum(1 for ts in timestamps if ts > cutoff)

    def _cleanup_lazy(self, now: float) -> None:
        """Prune history outside the window once it grows or half a window passes."""
        state = self._state
        total = len(state.failures) + len(state.successes)
        since_cleanup = now - state.last_cleanup_time
        if total <= self._cleanup_threshold and since_cleanup < self.config.monitor_window / 2:
            return

        cutoff = now - self.config.monitor_window
        for timestamps in (state.failures, state.successes):
            while timestamps and timestamps[0] <= cutoff:
                timestamps.popleft()
        state.last_cleanup_time = now
