"""
Retry Logic with Exponential Backoff
=====================================
Retries transient failures: configured HTTP statuses and network error codes.
"""

from .classify import get_error_code, get_status_code, is_retryable
from .engine import (
    RetryCallback,
    RetryEngine,
    RetryOptions,
    calculate_delay,
    retry_with_backoff,
    with_retry,
)

__all__ = [
    # Classification
    "get_error_code",
    "get_status_code",
    "is_retryable",
    # Engine
    "RetryCallback",
    "RetryEngine",
    "RetryOptions",
    "calculate_delay",
    "retry_with_backoff",
    "with_retry",
]
