"""
Retry Classification
====================
Decides whether a failure is transient and worth another attempt.
"""

import errno
import socket
from typing import AbstractSet, Optional

import httpx

# httpx transport errors expressed as the network error codes callers configure
_HTTPX_ERROR_CODES = (
    (httpx.TimeoutException, "ETIMEDOUT"),
    (httpx.ConnectError, "ECONNREFUSED"),
    (httpx.ReadError, "ECONNRESET"),
    (httpx.WriteError, "ECONNRESET"),
    (httpx.RemoteProtocolError, "ECONNRESET"),
)


def get_status_code(error: BaseException) -> Optional[int]:
    """Numeric status carried by ``error``, if any."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def get_error_code(error: BaseException) -> Optional[str]:
    """String error code carried by ``error``, if any."""
    code = getattr(error, "code", None)
    if isinstance(code, str):
        return code

    for exc_type, mapped in _HTTPX_ERROR_CODES:
        if isinstance(error, exc_type):
            return mapped

    if isinstance(error, socket.gaierror):
        return "ENOTFOUND"
    if isinstance(error, OSError) and error.errno is not None:
        return errno.errorcode.get(error.errno)
    if isinstance(error, TimeoutError):
        return "ETIMEDOUT"
    return None


def is_retryable(
    error: BaseException,
    retryable_status_codes: AbstractSet[int],
    retryable_error_codes: AbstractSet[str],
) -> bool:
    """
    True if ``error`` is operational and its status or code is retryable.

    Errors flagged ``is_operational = False`` are never retried, whatever
    their status or code.
    """
    if getattr(error, "is_operational", True) is False:
        return False

    status = get_status_code(error)
    if status is not None and status in retryable_status_codes:
        return True

    code = get_error_code(error)
    if code is not None and code in retryable_error_codes:
        return True

    return False
