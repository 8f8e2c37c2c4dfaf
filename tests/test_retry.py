"""
Retry Engine Tests
==================
Tests for retry classification and exponential backoff.
"""

import errno

import pytest


class StatusError(Exception):
    """Error carrying an HTTP status, like a client SDK would raise."""

    def __init__(self, status_code, message="request failed"):
        super().__init__(message)
        self.status_code = status_code


class CodeError(Exception):
    def __init__(self, code):
        super().__init__(code)
        self.code = code


def recording_sleep():
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    return delays, sleep


class TestRetryEngine:
    """Tests for RetryEngine.retry."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        """Should not retry or sleep when the first attempt works."""
        from integration_core.retry import RetryEngine

        delays, sleep = recording_sleep()
        call_count = 0

        async def succeed():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await RetryEngine(sleep=sleep).retry(succeed)

        assert result == "success"
        assert call_count == 1
        assert delays == []

    @pytest.mark.asyncio
    async def test_retries_retryable_status_with_backoff(self):
        """Should retry 503s with exponentially growing delays."""
        from integration_core.retry import RetryEngine, RetryOptions

        delays, sleep = recording_sleep()
        call_count = 0

        async def flaky():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise StatusError(503)
            return "success"

        engine = RetryEngine(RetryOptions(max_attempts=5, initial_delay=0.1), sleep=sleep)
        result = await engine.retry(flaky)

        assert result == "success"
        assert call_count == 3
        assert delays == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_exhausted_reraises_original_error(self):
        """Should re-raise the last error unchanged after max_attempts."""
        from integration_core.retry import RetryEngine, RetryOptions

        delays, sleep = recording_sleep()
        call_count = 0
        error = StatusError(502)

        async def always_fail():
            nonlocal call_count
            call_count += 1
            raise error

        engine = RetryEngine(RetryOptions(max_attempts=3, initial_delay=1.0), sleep=sleep)

        with pytest.raises(StatusError) as exc_info:
            await engine.retry(always_fail)

        assert exc_info.value is error
        assert call_count == 3
        assert delays == pytest.approx([1.0, 2.0])

    @pytest.mark.asyncio
    async def test_delay_clamped_to_max(self):
        """Backoff should never exceed max_delay."""
        from integration_core.retry import RetryEngine, RetryOptions

        delays, sleep = recording_sleep()

        async def always_fail():
            raise StatusError(503)

        engine = RetryEngine(
            RetryOptions(max_attempts=4, initial_delay=1.0, max_delay=3.0, backoff_multiplier=4.0),
            sleep=sleep,
        )
        with pytest.raises(StatusError):
            await engine.retry(always_fail)

        assert delays == pytest.approx([1.0, 3.0, 3.0])

    @pytest.mark.asyncio
    async def test_non_retryable_status_not_retried(self):
        """A 400 should propagate after one attempt."""
        from integration_core.retry import RetryEngine

        delays, sleep = recording_sleep()
        call_count = 0

        async def bad_request():
            nonlocal call_count
            call_count += 1
            raise StatusError(400)

        with pytest.raises(StatusError):
            await RetryEngine(sleep=sleep).retry(bad_request)

        assert call_count == 1
        assert delays == []

    @pytest.mark.asyncio
    async def test_non_operational_error_never_retried(self):
        """Errors flagged non-operational should not be retried even with a retryable status."""
        from integration_core.errors import InternalError
        from integration_core.retry import RetryEngine

        delays, sleep = recording_sleep()
        call_count = 0

        async def broken():
            nonlocal call_count
            call_count += 1
            raise InternalError("invariant violated")

        with pytest.raises(InternalError):
            await RetryEngine(sleep=sleep).retry(broken)

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retries_network_error_codes(self):
        """Errors carrying a retryable network code should be retried."""
        from integration_core.retry import RetryEngine

        delays, sleep = recording_sleep()
        call_count = 0

        async def reset_then_ok():
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise CodeError("ECONNRESET")
            return "ok"

        assert await RetryEngine(sleep=sleep).retry(reset_then_ok) == "ok"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_on_retry_callback(self):
        """on_retry should receive the failed attempt number and error."""
        from integration_core.retry import RetryEngine, RetryOptions

        delays, sleep = recording_sleep()
        seen = []

        async def always_fail():
            raise StatusError(429)

        engine = RetryEngine(
            RetryOptions(max_attempts=3, on_retry=lambda attempt, error: seen.append((attempt, error.status_code))),
            sleep=sleep,
        )
        with pytest.raises(StatusError):
            await engine.retry(always_fail)

        assert seen == [(1, 429), (2, 429)]

    @pytest.mark.asyncio
    async def test_invalid_max_attempts(self):
        """max_attempts below 1 should be rejected."""
        from integration_core.errors import ValidationError
        from integration_core.retry import RetryEngine, RetryOptions

        async def succeed():
            return "ok"

        with pytest.raises(ValidationError):
            await RetryEngine().retry(succeed, options=RetryOptions(max_attempts=0))

    @pytest.mark.asyncio
    async def test_with_retry_decorator(self):
        """The decorator should retry the wrapped coroutine."""
        from integration_core.retry import with_retry

        call_count = 0

        @with_retry(max_attempts=3, initial_delay=0.01)
        async def fetch(value):
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise StatusError(504)
            return value

        assert await fetch("entries") == "entries"
        assert call_count == 2
        assert fetch.__name__ == "fetch"

    @pytest.mark.asyncio
    async def test_retry_with_backoff_passes_arguments(self):
        """retry_with_backoff should forward positional and keyword arguments."""
        from integration_core.retry import RetryOptions, retry_with_backoff

        async def join(a, b, sep="-"):
            return f"{a}{sep}{b}"

        result = await retry_with_backoff(join, "x", "y", sep="+", options=RetryOptions(max_attempts=1))

        assert result == "x+y"


class TestClassification:
    """Tests for retryability classification."""

    def test_calculate_delay(self):
        """Delay should grow by the multiplier and clamp to max."""
        from integration_core.retry import calculate_delay

        assert calculate_delay(1, 1.0, 2.0, 10.0) == 1.0
        assert calculate_delay(3, 1.0, 2.0, 10.0) == 4.0
        assert calculate_delay(10, 1.0, 2.0, 10.0) == 10.0
        assert calculate_delay(5000, 1.0, 2.0, 10.0) == 10.0

    def test_httpx_status_error(self):
        """httpx status errors should expose the response status."""
        import httpx
        from integration_core.retry import get_status_code, is_retryable
        from integration_core.config import RETRYABLE_ERROR_CODES, RETRYABLE_HTTP_STATUS_CODES

        request = httpx.Request("GET", "https://api.example.test/v1/entries")
        response = httpx.Response(503, request=request)
        error = httpx.HTTPStatusError("unavailable", request=request, response=response)

        assert get_status_code(error) == 503
        assert is_retryable(error, RETRYABLE_HTTP_STATUS_CODES, RETRYABLE_ERROR_CODES)

    def test_httpx_transport_errors(self):
        """httpx transport errors should map to network error codes."""
        import httpx
        from integration_core.retry import get_error_code

        assert get_error_code(httpx.ConnectError("refused")) == "ECONNREFUSED"
        assert get_error_code(httpx.ReadTimeout("slow")) == "ETIMEDOUT"
        assert get_error_code(httpx.ReadError("reset")) == "ECONNRESET"

    def test_os_errors(self):
        """OS errors should map through their errno."""
        import socket
        from integration_core.retry import get_error_code

        assert get_error_code(ConnectionResetError(errno.ECONNRESET, "reset")) == "ECONNRESET"
        assert get_error_code(socket.gaierror(-2, "Name or service not known")) == "ENOTFOUND"
        assert get_error_code(ValueError("nope")) is None

    def test_custom_retryable_sets(self):
        """Caller-supplied status and code sets should be honoured."""
        from integration_core.retry import is_retryable

        assert is_retryable(StatusError(418), {418}, set())
        assert not is_retryable(StatusError(503), {418}, set())
        assert is_retryable(CodeError("EPIPE"), set(), {"EPIPE"})
