"""
Sliding Window Rate Limiter
===========================
In-process sliding window admission control for one dependency.
"""

import time
from collections import deque
from typing import Any, Deque, Dict, Optional
import structlog

from .. import timing
from ..errors import RateLimitError, ValidationError
from .models import RateLimiterConfig, RateLimiterMetrics, RateLimitInfo

logger = structlog.get_logger(__name__)


class RateLimiter:
    """
    Sliding window rate limiter.

    Keeps the admission timestamps of the trailing window; a caller that
    would exceed ``max_requests`` is suspended until the oldest admission
    leaves the window.

    Example:
        limiter = RateLimiter(RateLimiterConfig(max_requests=15, window=60, service_name="gemini"))

        await limiter.check_rate_limit()
        response = await gemini.generate(prompt)
    """

    def __init__(self, config: Optional[RateLimiterConfig] = None):
        self.config = config or RateLimiterConfig()
        if self.config.max_requests < 1:
            raise ValidationError(
                f"max_requests must be at least 1, got {self.config.max_requests}",
                details={"max_requests": self.config.max_requests},
            )
        if self.config.window <= 0:
            raise ValidationError(
                f"window must be positive, got {self.config.window}",
                details={"window": self.config.window},
            )
        self._requests: Deque[float] = deque()
        self._total_requests = 0

    @property
    def max_requests(self) -> int:
        return self.config.max_requests

    @property
    def window(self) -> float:
        return self.config.window

    @property
    def service_name(self) -> str:
        return self.config.service_name

    async def check_rate_limit(self, max_wait: Optional[float] = None) -> None:
        """
        Wait until a request may be admitted, then record it.

        Args:
            max_wait: Upper bound on the suspension in seconds. When the
                required wait is longer, ``RateLimitError`` is raised instead.
        """
        while True:
            now = time.monotonic()
            self._prune(now)

            if len(self._requests) < self.config.max_requests:
                break

            wait_time = self._wait_time(now)
            if max_wait is not None and wait_time > max_wait:
                raise RateLimitError(
                    f"{self.service_name} rate limit exceeded",
                    retry_after=wait_time,
                )

            # Several waiters may wake together; the loop re-evaluates
            if wait_time > 0:
                logger.warning(
                    "rate_limit_reached",
                    service=self.service_name,
                    wait_seconds=round(wait_time, 3),
                )
                await timing.sleep(wait_time)

        self._admit(now)

    def try_acquire(self) -> RateLimitInfo:
        """Admit immediately if possible; never suspends."""
        now = time.monotonic()
        self._prune(now)

        if len(self._requests) >= self.config.max_requests:
            return RateLimitInfo(
                allowed=False,
                remaining=0,
                limit=self.config.max_requests,
                retry_after=self._wait_time(now),
            )

        self._admit(now)
        return RateLimitInfo(
            allowed=True,
            remaining=self.config.max_requests - len(self._requests),
            limit=self.config.max_requests,
        )

    def get_remaining_requests(self) -> int:
        self._prune(time.monotonic())
        return max(0, self.config.max_requests - len(self._requests))

    def get_metrics(self) -> RateLimiterMetrics:
        now = time.monotonic()
        wall_now = time.time()
        self._prune(now)

        active = len(self._requests)
        oldest = self._oldest()
        window_start = wall_now - (now - oldest) if oldest is not None else wall_now

        return RateLimiterMetrics(
            total_requests=self._total_requests,
            active_requests=active,
            remaining_requests=max(0, self.config.max_requests - active),
            window_start=window_start,
            window_end=wall_now,
        )

    def snapshot(self) -> Dict[str, Any]:
        return {
            "remaining_requests": self.get_remaining_requests(),
            "max_requests": self.config.max_requests,
            "window": self.config.window,
        }

    def reset(self) -> None:
        self._requests.clear()
        self._total_requests = 0

    def _admit(self, now: float) -> None:
        self._requests.append(now)
        self._total_requests += 1

    def _prune(self, now: float) -> None:
        requests = self._requests
        while requests and now - requests[0] >= self.config.window:
            requests.popleft()

    def _oldest(self) -> Optional[float]:
        if not self._requests:
            return None
        return self._requests[0]

    def _wait_time(self, now: float) -> float:
        oldest = self._oldest()
        if oldest is None:
            return 0.0
        return max(0.0, self.config.window - (now - oldest))
