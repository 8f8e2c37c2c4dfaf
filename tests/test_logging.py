"""
Logging Tests
=============
Tests for structured logging setup and secret redaction.
"""

import json

import pytest
import structlog


@pytest.fixture
def reset_structlog():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


class TestRedaction:
    """Tests for the redaction processor."""

    def test_redacts_sensitive_keys(self):
        """Top-level and nested secrets should be replaced."""
        from integration_core.logging_setup import redact_sensitive

        event = redact_sensitive(None, "info", {
            "event": "request_sent",
            "api_key": "sk-live-123",
            "headers": {"Authorization": "Bearer abc", "accept": "application/json"},
            "attempt": 2,
        })

        assert event["event"] == "request_sent"
        assert event["api_key"] == "[REDACTED:api_key]"
        assert event["headers"]["Authorization"] == "[REDACTED:Authorization]"
        assert event["headers"]["accept"] == "application/json"
        assert event["attempt"] == 2

    def test_truncates_large_structures(self):
        """Lists and deep nesting should be bounded."""
        from integration_core.logging_setup import sanitize

        assert len(sanitize(list(range(50)))) == 10

        deep = {"level": 0}
        for level in range(1, 10):
            deep = {"level": level, "child": deep}
        sanitized = sanitize(deep)

        node = sanitized
        for _ in range(5):
            node = node["child"]
        assert "truncated" in node["child"]

    def test_sensitive_key_patterns(self):
        """Common secret key spellings should match."""
        from integration_core.logging_setup import is_sensitive_key

        for key in ("password", "client_secret", "refresh_token", "apiKey", "private-key", "Cookie"):
            assert is_sensitive_key(key), key
        assert not is_sensitive_key("service")


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_output_with_service_and_redaction(self, capsys, reset_structlog):
        """Log lines should be JSON with the service bound and secrets redacted."""
        from integration_core.logging_setup import setup_logging

        setup_logging("content-api", level="INFO")
        capsys.readouterr()

        structlog.get_logger("tests").info("entry_created", entry_id="42", password="hunter2")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "entry_created"
        assert record["service"] == "content-api"
        assert record["password"] == "[REDACTED:password]"
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_level_filtering(self, capsys, reset_structlog):
        """Messages below the configured level should be dropped."""
        from integration_core.logging_setup import setup_logging

        setup_logging("content-api", level="WARNING")
        capsys.readouterr()

        logger = structlog.get_logger("tests")
        logger.info("quiet")
        logger.warning("loud")

        out = capsys.readouterr().out
        assert "quiet" not in out
        assert "loud" in out

    def test_bind_context(self, reset_structlog):
        """bind_context should add values to the log context."""
        from integration_core.logging_setup import bind_context

        context = bind_context(request_id="req-1")

        assert context["request_id"] == "req-1"
