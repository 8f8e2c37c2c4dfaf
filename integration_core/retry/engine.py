"""
Retry Engine
============
Exponential backoff retry for transient failures, built on tenacity.
"""

from dataclasses import dataclass, replace
from functools import wraps
from typing import AbstractSet, Any, Awaitable, Callable, Optional, TypeVar
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from .. import timing
from ..config import (
    DEFAULT_MAX_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_RETRY_INITIAL_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
    RETRYABLE_ERROR_CODES,
    RETRYABLE_HTTP_STATUS_CODES,
)
from ..errors import ValidationError
from .classify import is_retryable

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, BaseException], None]


@dataclass
class RetryOptions:
    """Tuning for one retried call. Delays are in seconds."""
    max_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS
    initial_delay: float = DEFAULT_RETRY_INITIAL_DELAY
    max_delay: float = DEFAULT_RETRY_MAX_DELAY
    backoff_multiplier: float = DEFAULT_RETRY_BACKOFF_MULTIPLIER
    retryable_status_codes: AbstractSet[int] = RETRYABLE_HTTP_STATUS_CODES
    retryable_error_codes: AbstractSet[str] = RETRYABLE_ERROR_CODES
    on_retry: Optional[RetryCallback] = None
    operation_name: str = "operation"

    def merged(self, **overrides: Any) -> "RetryOptions":
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def calculate_delay(
    attempt: int,
    initial_delay: float,
    backoff_multiplier: float,
    max_delay: float,
) -> float:
    """Delay after the 1-indexed ``attempt`` failed, clamped to ``max_delay``."""
    try:
        delay = initial_delay * (backoff_multiplier ** (attempt - 1))
    except OverflowError:
        return max_delay
    return min(delay, max_delay)


class RetryEngine:
    """
    Retries an async operation on retryable failures.

    The original exception is always re-raised unchanged once attempts are
    exhausted or the failure is not retryable, so callers can branch on the
    error type.

    Example:
        engine = RetryEngine(RetryOptions(max_attempts=5, initial_delay=0.5))
        rows = await engine.retry(client.fetch_rows, "entries")
    """

    def __init__(
        self,
        options: Optional[RetryOptions] = None,
        sleep: Callable[[float], Awaitable[None]] = timing.sleep,
    ):
        self.options = options or RetryOptions()
        self._sleep = sleep

    async def retry(
        self,
        operation: Callable[..., Awaitable[T]],
        *args,
        options: Optional[RetryOptions] = None,
        **kwargs,
    ) -> T:
        opts = options or self.options
        if opts.max_attempts < 1:
            raise ValidationError(
                f"max_attempts must be at least 1, got {opts.max_attempts}",
                details={"max_attempts": opts.max_attempts},
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(opts.max_attempts),
            wait=lambda state: calculate_delay(
                state.attempt_number,
                opts.initial_delay,
                opts.backoff_multiplier,
                opts.max_delay,
            ),
            retry=retry_if_exception(
                lambda exc: is_retryable(
                    exc, opts.retryable_status_codes, opts.retryable_error_codes
                )
            ),
            before_sleep=lambda state: self._before_sleep(opts, state),
            sleep=self._sleep,
            reraise=True,
        )

        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts += 1
                    result = await operation(*args, **kwargs)
        except Exception as exc:
            if attempts >= opts.max_attempts > 1:
                logger.warning(
                    "retry_exhausted",
                    operation=opts.operation_name,
                    attempts=attempts,
                    error=str(exc),
                )
            raise

        if attempts > 1:
            logger.info(
                "retry_recovered",
                operation=opts.operation_name,
                attempts=attempts,
            )
        return result

    @staticmethod
    def _before_sleep(opts: RetryOptions, state: RetryCallState) -> None:
        error = state.outcome.exception()
        delay = state.next_action.sleep if state.next_action else 0
        logger.warning(
            "retrying_after_failure",
            operation=opts.operation_name,
            attempt=state.attempt_number,
            delay=delay,
            error=str(error),
        )
        if opts.on_retry is not None:
            opts.on_retry(state.attempt_number, error)


async def retry_with_backoff(
    operation: Callable[..., Awaitable[T]],
    *args,
    options: Optional[RetryOptions] = None,
    **kwargs,
) -> T:
    """Retry ``operation(*args, **kwargs)`` with ``options`` (defaults if omitted)."""
    return await RetryEngine(options).retry(operation, *args, **kwargs)


def with_retry(
    max_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS,
    initial_delay: float = DEFAULT_RETRY_INITIAL_DELAY,
    max_delay: float = DEFAULT_RETRY_MAX_DELAY,
    backoff_multiplier: float = DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    on_retry: Optional[RetryCallback] = None,
):
    """
    Decorator for retry with exponential backoff.

    Usage:
        @with_retry(max_attempts=5)
        async def fetch_entries():
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        engine = RetryEngine(RetryOptions(
            max_attempts=max_attempts,
            initial_delay=initial_delay,
            max_delay=max_delay,
            backoff_multiplier=backoff_multiplier,
            on_retry=on_retry,
            operation_name=func.__name__,
        ))

        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await engine.retry(func, *args, **kwargs)
        return wrapper
    return decorator
