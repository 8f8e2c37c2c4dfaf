"""
Circuit Breaker Decorator
=========================
Decorator for wrapping async functions with circuit breaker protection.
"""

from functools import wraps
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import CircuitOpenError
from .breaker import CircuitBreaker

T = TypeVar("T")


def circuit_breaker(
    breaker: CircuitBreaker,
    fallback: Optional[Callable[..., Awaitable[T]]] = None,
):
    """
    Decorator to route an async function through ``breaker``.

    ``fallback`` receives the original arguments and is only used when the
    circuit rejects the call; failures of the function itself propagate.

    Example:
        gemini_breaker = registry.get_circuit_breaker("gemini")

        @circuit_breaker(gemini_breaker)
        async def generate(prompt: str):
            return await gemini.generate(prompt)
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await breaker.execute(func, *args, **kwargs)
            except CircuitOpenError:
                if fallback is None:
                    raise
                return await fallback(*args, **kwargs)

        return wrapper

    return decorator
