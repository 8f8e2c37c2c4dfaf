"""
Idempotency Manager
===================
Deduplicates unsafe-to-repeat operations by client-supplied idempotency key.
"""

import asyncio
import re
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar
import structlog

from ..config import IDEMPOTENCY_DEFAULT_TTL
from ..errors import ValidationError
from .store import IdempotencyStore, InMemoryIdempotencyStore, StoredResponse

logger = structlog.get_logger(__name__)

T = TypeVar("T")

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass
class IdempotencyResult(Generic[T]):
    data: T
    cached: bool
    idempotency_key: str
    timestamp: float


def validate_idempotency_key(key: Any) -> str:
    if not isinstance(key, str) or not UUID_PATTERN.match(key):
        raise ValidationError(
            f"Invalid idempotency key: must be a valid UUID, got: {key!r}",
            details={"idempotency_key": key},
        )
    return key


class IdempotencyManager:
    """
    Executes an operation at most once per idempotency key and TTL.

    Lookup order is: cached response, then an in-flight execution for the
    same key, then a fresh execution. Registration of the in-flight task
    happens without any suspension point after the in-flight lookup, so two
    concurrent callers with one key share a single execution. The shared
    task stores the response and leaves the in-flight table itself, so it
    settles even when every caller awaiting it has been cancelled.

    Example:
        manager = IdempotencyManager(ttl=3600)

        result = await manager.execute(request.headers["Idempotency-Key"], create_entry, payload)
        if result.cached:
            ...
    """

    def __init__(
        self,
        ttl: float = IDEMPOTENCY_DEFAULT_TTL,
        store: Optional[IdempotencyStore] = None,
    ):
        self.ttl = ttl
        self.store = store or InMemoryIdempotencyStore()
        self._in_flight: Dict[str, asyncio.Future] = {}

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def execute(
        self,
        idempotency_key: str,
        operation: Callable[..., Awaitable[T]],
        *args,
        **kwargs,
    ) -> IdempotencyResult[T]:
        validate_idempotency_key(idempotency_key)

        cached = await self.store.get(idempotency_key)
        if cached is not None:
            logger.info("idempotency_cache_hit", idempotency_key=idempotency_key)
            return IdempotencyResult(
                data=cached.data,
                cached=True,
                idempotency_key=idempotency_key,
                timestamp=cached.timestamp,
            )

        task = self._in_flight.get(idempotency_key)
        owner = task is None
        if owner:
            task = asyncio.ensure_future(
                self._execute_and_store(idempotency_key, operation, args, kwargs)
            )
            task.add_done_callback(partial(self._log_failure, idempotency_key))
            self._in_flight[idempotency_key] = task
        else:
            logger.info("idempotency_awaiting_in_flight", idempotency_key=idempotency_key)

        # Shielded so a cancelled caller never cancels the shared execution
        stored = await asyncio.shield(task)
        return IdempotencyResult(
            data=stored.data,
            cached=not owner,
            idempotency_key=idempotency_key,
            timestamp=stored.timestamp,
        )

    async def _execute_and_store(
        self,
        idempotency_key: str,
        operation: Callable[..., Awaitable[T]],
        args: Tuple[Any, ...],
        kwargs: Dict[str, Any],
    ) -> StoredResponse:
        try:
            data = await operation(*args, **kwargs)
            stored = StoredResponse(data=data, timestamp=time.time())
            await self.store.set(idempotency_key, stored, self.ttl)
            logger.info("idempotency_response_stored", idempotency_key=idempotency_key)
            return stored
        finally:
            self._in_flight.pop(idempotency_key, None)

    @staticmethod
    def _log_failure(idempotency_key: str, task: asyncio.Future) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.warning(
                "idempotency_execution_failed",
                idempotency_key=idempotency_key,
                error=str(task.exception()),
            )

    async def invalidate(self, idempotency_key: str) -> None:
        validate_idempotency_key(idempotency_key)
        await self.store.delete(idempotency_key)
        logger.info("idempotency_key_invalidated", idempotency_key=idempotency_key)

    async def clear(self) -> None:
        await self.store.clear()
        logger.info("idempotency_keys_cleared")
