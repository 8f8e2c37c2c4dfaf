"""
Timing Utilities
================
Sleeps, cancellable timers and timeout races for async operations.

Timers are event-loop callbacks (``loop.call_later``); they never keep the
process alive on their own and are always cancelled once no longer needed.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar
import structlog

from .errors import OperationTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def sleep(seconds: float) -> None:
    """Suspend the caller for ``seconds``; non-positive values return at once."""
    if seconds <= 0:
        return
    await asyncio.sleep(seconds)


class TimerHandle:
    """Handle returned by :func:`arm`."""

    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()

    def cancel(self) -> None:
        self._handle.cancel()


def arm(delay: float, callback: Callable[[], Any]) -> TimerHandle:
    """Schedule ``callback`` after ``delay`` seconds on the running loop."""
    loop = asyncio.get_running_loop()
    return TimerHandle(loop.call_later(delay, callback))


def _consume_abandoned(task: asyncio.Future) -> None:
    # Keeps asyncio from reporting "exception was never retrieved"
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("abandoned_operation_failed", error=str(exc))


async def with_timeout(
    awaitable: Awaitable[T],
    timeout: float,
    operation_name: str = "operation",
) -> T:
    """
    Race ``awaitable`` against a timer.

    Raises ``OperationTimeoutError`` when the timer fires first. The
    underlying operation is abandoned, not cancelled: it keeps running and its
    eventual result is discarded. A non-positive ``timeout`` disables the race.
    """
    if timeout <= 0:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    expired: asyncio.Future = asyncio.get_running_loop().create_future()

    def _expire() -> None:
        if not expired.done():
            expired.set_result(None)

    timer = arm(timeout, _expire)
    try:
        await asyncio.wait({task, expired}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        timer.cancel()

    if task.done():
        return task.result()

    task.add_done_callback(_consume_abandoned)
    raise OperationTimeoutError(operation_name, timeout)


def elapsed_ms(start: float, end: Optional[float] = None) -> float:
    """Milliseconds between two ``time.perf_counter()`` readings."""
    return round(((end if end is not None else time.perf_counter()) - start) * 1000, 2)
