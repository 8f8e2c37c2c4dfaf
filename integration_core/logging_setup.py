"""
Integration Core Logging
========================
Structured logging setup for services consuming the resilience layer.

Usage:
    from integration_core.logging_setup import setup_logging

    setup_logging(service_name="content-api")

    logger = structlog.get_logger(__name__)
    logger.info("entry.created", entry_id="123", api_key="sk-...")  # api_key is redacted
"""

import logging
import re
import sys
from typing import Any, Dict, MutableMapping
import structlog

from .config import (
    LOGGER_MAX_ARRAY_ITEMS,
    LOGGER_MAX_OBJECT_KEYS_PER_LEVEL,
    LOGGER_MAX_SANITIZATION_DEPTH,
)

SENSITIVE_FIELD_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"password",
        r"passwd",
        r"secret",
        r"token",
        r"api[_-]?key",
        r"authorization",
        r"cookie",
        r"credential",
        r"private[_-]?key",
    )
)

# Structlog's own keys are never redacted
_RESERVED_KEYS = frozenset({"event", "level", "timestamp", "logger", "exception"})


def is_sensitive_key(key: str) -> bool:
    return any(pattern.search(key) for pattern in SENSITIVE_FIELD_PATTERNS)


def _redaction_marker(key: str) -> str:
    return f"[REDACTED:{key}]"


def sanitize(value: Any, key: str = "", depth: int = 0) -> Any:
    """Recursively redact sensitive keys and bound the size of nested data."""
    if key and is_sensitive_key(key):
        return _redaction_marker(key)

    if depth > LOGGER_MAX_SANITIZATION_DEPTH:
        return f"[depth exceeds {LOGGER_MAX_SANITIZATION_DEPTH} levels - truncated]"

    if isinstance(value, dict):
        sanitized = {}
        for index, (nested_key, nested_value) in enumerate(value.items()):
            if index >= LOGGER_MAX_OBJECT_KEYS_PER_LEVEL:
                break
            sanitized[nested_key] = sanitize(nested_value, str(nested_key), depth + 1)
        return sanitized

    if isinstance(value, (list, tuple)):
        return [sanitize(item, "", depth + 1) for item in value[:LOGGER_MAX_ARRAY_ITEMS]]

    return value


def redact_sensitive(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor that redacts secrets from the event dict."""
    for key in list(event_dict.keys()):
        if key in _RESERVED_KEYS:
            continue
        event_dict[key] = sanitize(event_dict[key], key)
    return event_dict


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure structlog (and the stdlib root logger it renders through).

    Args:
        service_name: Name bound into every log line as ``service``
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines for production, console output otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(level=log_level, stream=sys.stdout, format="%(message)s", force=True)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)

    structlog.get_logger(__name__).info("logging_configured", service=service_name, level=level.upper())


def bind_context(**values: Any) -> Dict[str, Any]:
    """Bind request-scoped values (request id, operation) into the log context."""
    structlog.contextvars.bind_contextvars(**values)
    return structlog.contextvars.get_contextvars()
