"""
Resilience Orchestrator
=======================
Composes timeout, circuit breaker and retry into one execution contract.

Layering, outermost first::

    timeout -> circuit breaker -> retry -> operation

The whole retried sequence counts as a single call to the breaker, and a
circuit-open rejection is raised before any attempt is made, so it never
consumes retries.
"""

from dataclasses import dataclass, field
from typing import AbstractSet, Any, Awaitable, Callable, Optional
import structlog

from . import timing
from .circuit_breaker import CircuitBreaker
from .config import DEFAULT_OPERATION_TIMEOUT
from .retry import RetryCallback, RetryEngine, RetryOptions

logger = structlog.get_logger(__name__)


@dataclass
class ResilienceOptions:
    """Per-call switches. ``timeout`` is in seconds; 0 or less disables it."""
    timeout: Optional[float] = None
    use_circuit_breaker: bool = True
    use_retry: bool = True


@dataclass
class ResilienceConfig:
    operation: Callable[[], Awaitable[Any]]
    options: ResilienceOptions = field(default_factory=ResilienceOptions)
    default_timeout: float = DEFAULT_OPERATION_TIMEOUT
    circuit_breaker: Optional[CircuitBreaker] = None
    retry_options: Optional[RetryOptions] = None
    retryable_status_codes: Optional[AbstractSet[int]] = None
    retryable_error_codes: Optional[AbstractSet[str]] = None
    max_retries: Optional[int] = None
    on_retry: Optional[RetryCallback] = None
    timeout_operation_name: Optional[str] = None
    operation_name: str = "operation"

    @property
    def effective_timeout(self) -> float:
        if self.options.timeout is not None:
            return self.options.timeout
        return self.default_timeout

    def effective_retry_options(self) -> RetryOptions:
        """Base retry options with this call's overrides applied."""
        return (self.retry_options or RetryOptions()).merged(
            max_attempts=self.max_retries,
            retryable_status_codes=self.retryable_status_codes,
            retryable_error_codes=self.retryable_error_codes,
            on_retry=self.on_retry,
            operation_name=self.operation_name,
        )


class ResilienceOrchestrator:
    """
    Runs operations under the configured protections.

    A breaker is only applied when the config carries one; service wrappers
    get theirs from the ``ServiceRegistry`` so state is shared per dependency.

    Example:
        orchestrator = ResilienceOrchestrator()
        rows = await orchestrator.execute_with_resilience(ResilienceConfig(
            operation=lambda: client.fetch_rows("entries"),
            circuit_breaker=breaker,
            operation_name="fetch_rows",
        ))
    """

    def __init__(self, retry_engine: Optional[RetryEngine] = None):
        self.retry_engine = retry_engine or RetryEngine()

    async def execute_with_resilience(self, config: ResilienceConfig) -> Any:
        options = config.options
        breaker = config.circuit_breaker if options.use_circuit_breaker else None
        retry_options = config.effective_retry_options() if options.use_retry else None

        async def attempt():
            if retry_options is not None:
                return await self.retry_engine.retry(config.operation, options=retry_options)
            return await config.operation()

        async def guarded():
            if breaker is not None:
                return await breaker.execute(attempt)
            return await attempt()

        logger.debug(
            "resilient_call_started",
            operation=config.operation_name,
            timeout=config.effective_timeout,
            circuit_breaker=breaker.name if breaker is not None else None,
            retry=retry_options is not None,
        )
        return await timing.with_timeout(
            guarded(),
            config.effective_timeout,
            config.timeout_operation_name or config.operation_name,
        )


_default_orchestrator = ResilienceOrchestrator()


async def execute_with_resilience(config: ResilienceConfig) -> Any:
    """Run ``config`` through a shared default orchestrator."""
    return await _default_orchestrator.execute_with_resilience(config)
