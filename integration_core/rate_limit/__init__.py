"""
Rate Limiting Module for Integration Core
=========================================
Sliding window admission control, one limiter per dependency.
"""

from .models import RateLimiterConfig, RateLimiterMetrics, RateLimitInfo, RateLimitResult
from .sliding_window import RateLimiter

__all__ = [
    # Models
    "RateLimiterConfig",
    "RateLimiterMetrics",
    "RateLimitInfo",
    "RateLimitResult",
    # Limiter
    "RateLimiter",
]
