"""
Idempotency
===========
In-flight deduplication and response caching keyed by idempotency key.
"""

from .store import IdempotencyStore, InMemoryIdempotencyStore, StoredResponse
from .manager import (
    UUID_PATTERN,
    IdempotencyManager,
    IdempotencyResult,
    validate_idempotency_key,
)

__all__ = [
    # Stores
    "IdempotencyStore",
    "InMemoryIdempotencyStore",
    "StoredResponse",
    # Manager
    "UUID_PATTERN",
    "IdempotencyManager",
    "IdempotencyResult",
    "validate_idempotency_key",
]
