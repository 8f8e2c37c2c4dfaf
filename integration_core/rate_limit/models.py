"""
Rate Limit Models
=================
Configuration and result models for rate limiting.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..config import RATE_LIMITER_DEFAULT_MAX_REQUESTS, RATE_LIMITER_DEFAULT_WINDOW


class RateLimitResult(str, Enum):
    """Rate limit decision result."""
    ALLOWED = "allowed"
    BLOCKED = "blocked"


@dataclass
class RateLimiterConfig:
    """Configuration for a sliding window rate limiter."""
    max_requests: int = RATE_LIMITER_DEFAULT_MAX_REQUESTS
    window: float = RATE_LIMITER_DEFAULT_WINDOW  # Seconds
    service_name: str = "RateLimiter"


@dataclass
class RateLimitInfo:
    """Admission decision with quota information."""
    allowed: bool
    remaining: int
    limit: int
    retry_after: Optional[float] = None  # Seconds until a slot frees up

    @property
    def result(self) -> RateLimitResult:
        return RateLimitResult.ALLOWED if self.allowed else RateLimitResult.BLOCKED


@dataclass
class RateLimiterMetrics:
    """Point-in-time view of a limiter's window."""
    total_requests: int       # Admitted since creation or last reset
    active_requests: int      # Admitted within the current window
    remaining_requests: int
    window_start: float       # Unix timestamp of the oldest active admission
    window_end: float         # Unix timestamp of the snapshot
