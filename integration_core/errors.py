"""
Integration Errors
==================
Error taxonomy shared by every resilience component.

Every error carries an ``ErrorCode``, an HTTP-ish ``status_code``, a severity
and an ``is_operational`` flag. Operational errors are expected failures of a
dependency and may be retried; non-operational errors never are.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppError(Exception):
    """Base exception for all integration errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 500,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        is_operational: bool = True,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.severity = severity
        self.is_operational = is_operational
        self.details = details
        self.suggestion = suggestion
        self.request_id = str(uuid.uuid4())
        super().__init__(message)


class ValidationError(AppError):
    """Raised on malformed input, e.g. a bad idempotency key."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorCode.VALIDATION_ERROR,
            message,
            status_code=422,
            severity=ErrorSeverity.LOW,
            details=details,
            suggestion="Check the input format and ensure required fields are valid.",
        )


class NotFoundError(AppError):
    """Raised when a named resource (e.g. a health check) does not exist."""

    def __init__(self, resource: str, message: Optional[str] = None):
        super().__init__(
            ErrorCode.NOT_FOUND,
            message or f"{resource} not found",
            status_code=404,
            severity=ErrorSeverity.LOW,
            details={"resource": resource},
        )


class RateLimitError(AppError):
    """Raised when admission is denied. ``retry_after`` is in seconds."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: Optional[float] = None):
        self.retry_after = retry_after
        if retry_after:
            suggestion = f"Wait {retry_after:.1f}s before retrying."
        else:
            suggestion = "Reduce request frequency or batch requests."
        super().__init__(
            ErrorCode.RATE_LIMIT_EXCEEDED,
            message,
            status_code=429,
            details={"retry_after": retry_after},
            suggestion=suggestion,
        )


class ServiceUnavailableError(AppError):
    """Raised when a dependency is unreachable or being protected."""

    def __init__(self, service: str, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.service = service
        super().__init__(
            ErrorCode.SERVICE_UNAVAILABLE,
            message or f"{service} is currently unavailable",
            status_code=503,
            severity=ErrorSeverity.HIGH,
            details={"service": service, **(details or {})},
            suggestion=f"The {service} service may be down. Retry later or use a fallback.",
        )


class CircuitOpenError(ServiceUnavailableError):
    """Raised immediately, without calling the dependency, while a circuit is open."""

    def __init__(self, service: str, retry_after: float, details: Optional[Dict[str, Any]] = None):
        self.retry_after = retry_after
        super().__init__(
            service,
            f"Circuit breaker for '{service}' is open. "
            f"Requests are temporarily blocked. Retry after {retry_after:.1f}s",
            details={"retry_after": retry_after, **(details or {})},
        )


class OperationTimeoutError(AppError):
    """Raised when an operation exceeds its deadline."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(
            ErrorCode.TIMEOUT,
            f"{operation} timed out after {timeout}s",
            status_code=504,
            severity=ErrorSeverity.HIGH,
            details={"operation": operation, "timeout": timeout},
            suggestion=f"Increase the timeout or check connectivity for {operation}.",
        )


class InternalError(AppError):
    """Unexpected failure. Never retried."""

    def __init__(self, message: str = "An unexpected error occurred", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            ErrorCode.INTERNAL_ERROR,
            message,
            status_code=500,
            severity=ErrorSeverity.HIGH,
            is_operational=False,
            details=details,
        )


def is_operational_error(error: BaseException) -> bool:
    """True only for ``AppError`` instances flagged operational."""
    if isinstance(error, AppError):
        return error.is_operational
    return False


_STATUS_TO_CODE = {
    400: ErrorCode.INVALID_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    408: ErrorCode.TIMEOUT,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
    503: ErrorCode.SERVICE_UNAVAILABLE,
    504: ErrorCode.TIMEOUT,
}


def map_status_to_error_code(status_code: int) -> ErrorCode:
    return _STATUS_TO_CODE.get(status_code, ErrorCode.INTERNAL_ERROR)


def create_api_error(error: BaseException, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build the structured error payload returned to collaborators.

    Non-``AppError`` exceptions are reported as ``INTERNAL_ERROR`` with a
    fresh request id.
    """
    if isinstance(error, AppError):
        code = error.code
        message = error.message
        suggestion = error.suggestion
        details = error.details or context
        request_id = error.request_id
        severity = error.severity
    else:
        code = ErrorCode.INTERNAL_ERROR
        message = str(error) or "An unexpected error occurred"
        suggestion = None
        details = context
        request_id = str(uuid.uuid4())
        severity = ErrorSeverity.MEDIUM

    return {
        "error": {
            "code": code.value,
            "message": message,
            "suggestion": suggestion,
            "details": details,
            "request_id": request_id,
            "severity": severity.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }
