"""Tests for retry utilities."""

from unittest.mock import Mock

import httpx
import pytest

from tuido.core.errors import AuthError, ProtocolError, SyncCancelled, TransientError
from tuido.core.retry import RetryConfig, is_retryable_error, with_retry


class TestRetryConfig:
    """Tests for the backoff settings."""

    def test_defaults(self) -> None:
        config = RetryConfig()
        assert (config.max_retries, config.base_delay, config.multiplier) == (3, 1.0, 2.0)
        assert config.jitter is True
        assert config.jitter_ratio == 0.2
        assert config.max_delay == 300.0

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"max_retries": -1}, "max_retries must be non-negative"),
            ({"base_delay": 0}, "base_delay must be positive"),
            ({"multiplier": 0.5}, "multiplier must be >= 1.0"),
            ({"jitter_ratio": 1.5}, "jitter_ratio must be between"),
            ({"base_delay": 10.0, "max_delay": 5.0}, "max_delay must be >= base_delay"),
        ],
    )
    def test_rejects_invalid_settings(self, kwargs, message) -> None:
        """Test that out-of-range settings fail at construction."""
        with pytest.raises(ValueError, match=message):
            RetryConfig(**kwargs)

    def test_delay_doubles_per_attempt(self) -> None:
        """Test exponential growth when jitter is off."""
        config = RetryConfig(jitter=False)
        assert [config.calculate_delay(n) for n in range(3)] == [1.0, 2.0, 4.0]

    def test_calculate_delay_capped(self) -> None:
        """Test that delays never exceed max_delay."""
        config = RetryConfig(base_delay=1.0, jitter=False, max_delay=5.0)
        assert config.calculate_delay(10) == 5.0

    def test_calculate_delay_with_jitter(self) -> None:
        """Test that jitter stays within the configured ratio."""
        config = RetryConfig(base_delay=10.0, jitter=True, jitter_ratio=0.2)
        for _ in range(50):
            assert 8.0 <= config.calculate_delay(0) <= 12.0

    def test_delays_schedule(self) -> None:
        """Test that delays() yields one wait per retry."""
        config = RetryConfig(max_retries=3, base_delay=1.0, jitter=False, max_delay=3.0)
        assert list(config.delays()) == [1.0, 2.0, 3.0]
        assert list(RetryConfig(max_retries=0).delays()) == []


class TestIsRetryableError:
    """Test suite for is_retryable_error."""

    def test_sync_errors(self) -> None:
        """Test that only transient sync errors are retried."""
        assert is_retryable_error(TransientError("offline")) is True
        assert is_retryable_error(AuthError("bad token")) is False
        assert is_retryable_error(ProtocolError("garbage")) is False
        assert is_retryable_error(SyncCancelled("stop")) is False

    @pytest.mark.parametrize(
        ("status", "expected"),
        [(500, True), (503, True), (408, True), (429, True), (400, False), (404, False)],
    )
    def test_http_status_errors(self, status, expected) -> None:
        """Test retryability by HTTP status."""
        request = httpx.Request("POST", "https://example.com/sync")
        response = httpx.Response(status, request=request)
        error = httpx.HTTPStatusError("error", request=request, response=response)

        assert is_retryable_error(error) is expected

    def test_network_errors(self) -> None:
        """Test that timeouts and connection failures are retried."""
        request = httpx.Request("POST", "https://example.com/sync")
        assert is_retryable_error(httpx.ReadTimeout("slow", request=request)) is True
        assert is_retryable_error(httpx.ConnectError("refused", request=request)) is True

    def test_other_errors(self) -> None:
        """Test that programming errors are never retried."""
        assert is_retryable_error(ValueError("bug")) is False


class TestWithRetry:
    """Test suite for the with_retry decorator."""

    def test_success_first_try(self) -> None:
        """Test that a successful call is not retried."""
        func = Mock(return_value="ok")
        sleep = Mock()

        assert with_retry(sleep=sleep)(func)() == "ok"
        assert func.call_count == 1
        sleep.assert_not_called()

    def test_retries_transient_then_succeeds(self) -> None:
        """Test that transient failures are retried with backoff."""
        func = Mock(side_effect=[TransientError("offline"), TransientError("offline"), "ok"])
        sleep = Mock()

        result = with_retry(max_retries=3, base_delay=1.0, jitter=False, sleep=sleep)(func)()

        assert result == "ok"
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_gives_up_after_max_retries(self) -> None:
        """Test that the last error is raised once retries run out."""
        func = Mock(side_effect=TransientError("offline"))

        with pytest.raises(TransientError):
            with_retry(max_retries=2, sleep=Mock())(func)()

        assert func.call_count == 3

    def test_non_retryable_raised_immediately(self) -> None:
        """Test that an auth failure is not retried."""
        func = Mock(side_effect=AuthError("bad token"))

        with pytest.raises(AuthError):
            with_retry(sleep=Mock())(func)()

        assert func.call_count == 1

    def test_custom_predicate(self) -> None:
        """Test that callers can narrow what is retried."""
        func = Mock(side_effect=ValueError("flaky"))

        with pytest.raises(ValueError):
            with_retry(max_retries=1, is_retryable=lambda e: False, sleep=Mock())(func)()

        assert func.call_count == 1

