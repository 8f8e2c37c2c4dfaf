"""
Idempotency Stores
==================
Storage backends for cached idempotent responses.

The manager only talks to :class:`IdempotencyStore`; swapping the in-memory
store for a shared backend needs no change to the manager.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


@dataclass
class StoredResponse(Generic[T]):
    """A cached operation result."""
    data: T
    timestamp: float  # Unix timestamp of the original execution


class IdempotencyStore(ABC):
    """Key/value capability used by the idempotency manager."""

    @abstractmethod
    async def get(self, key: str) -> Optional[StoredResponse]:
        """Return the unexpired entry for ``key`` or None."""

    @abstractmethod
    async def set(self, key: str, value: StoredResponse, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...


class InMemoryIdempotencyStore(IdempotencyStore):
    """
    Process-local store.

    Expired entries are treated as misses and evicted when read.
    """

    def __init__(self):
        self._cache: Dict[str, Tuple[StoredResponse, float]] = {}

    async def get(self, key: str) -> Optional[StoredResponse]:
        entry = self._cache.get(key)
        if entry is None:
            return None

        response, expires_at = entry
        if time.time() > expires_at:
            del self._cache[key]
            return None
        return response

    async def set(self, key: str, value: StoredResponse, ttl: float) -> None:
        self._cache[key] = (value, time.time() + ttl)

    async def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    async def clear(self) -> None:
        self._cache.clear()

    @property
    def size(self) -> int:
        return len(self._cache)

    def cleanup(self) -> int:
        """Evict every expired entry; returns how many were removed."""
        now = time.time()
        expired = [key for key, (_, expires_at) in self._cache.items() if now > expires_at]
        for key in expired:
            del self._cache[key]
        return len(expired)
