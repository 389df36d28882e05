"""Tests for retry module."""

from unittest.mock import MagicMock, call

import pytest

from cos_client.errors import (
    AuthenticationError,
    DecodeError,
    ProtocolError,
    ResponseError,
    TransportError,
)
from cos_client.retry import (
    is_retryable_error,
    retry_with_backoff,
    RetryExhausted,
)


class TestIsRetryableError:
    """Tests for error classification."""

    def test_transport_error_is_retryable(self):
        """Connection failures and timeouts should trigger retry."""
        assert is_retryable_error(TransportError("Connection refused")) is True

    @pytest.mark.parametrize("status_code", [429, 500, 502, 503, 504])
    def test_transient_status_is_retryable(self, status_code):
        """Server errors and rate limiting should trigger retry."""
        assert is_retryable_error(ResponseError(status_code, "SlowDown")) is True

    @pytest.mark.parametrize("status_code", [400, 404, 409, 501])
    def test_client_status_is_not_retryable(self, status_code):
        """Other statuses should NOT trigger retry."""
        assert is_retryable_error(ResponseError(status_code, "Nope")) is False

    def test_signature_mismatch_is_not_retryable(self):
        """HTTP 403 (signature mismatch) should NOT trigger retry."""
        error = AuthenticationError(403, "SignatureDoesNotMatch")
        assert is_retryable_error(error) is False

    def test_decode_error_is_not_retryable(self):
        assert is_retryable_error(DecodeError("bad xml")) is False

    def test_protocol_error_is_not_retryable(self):
        assert is_retryable_error(ProtocolError("wrong state")) is False

    def test_generic_exception_is_not_retryable(self):
        """Generic exceptions should NOT trigger retry by default."""
        assert is_retryable_error(ValueError("Some error")) is False


class TestRetryWithBackoff:
    """Tests for retry_with_backoff function."""

    def test_success_on_first_attempt(self):
        """Succeed immediately without retrying."""
        mock_func = MagicMock(return_value="success")
        sleep = MagicMock()

        result = retry_with_backoff(mock_func, max_attempts=3, delays=[1, 2, 4], sleep=sleep)

        assert result == "success"
        assert mock_func.call_count == 1
        sleep.assert_not_called()

    def test_success_after_two_retries(self):
        """Succeed after two retries."""
        mock_func = MagicMock(
            side_effect=[
                TransportError("fail1"),
                ResponseError(503, "fail2"),
                "success",
            ]
        )

        result = retry_with_backoff(mock_func, max_attempts=3, sleep=MagicMock())

        assert result == "success"
        assert mock_func.call_count == 3

    def test_failure_after_max_retries_exceeded(self):
        """Raise RetryExhausted after all attempts fail."""
        mock_func = MagicMock(side_effect=TransportError("Always fails"))

        with pytest.raises(RetryExhausted) as exc_info:
            retry_with_backoff(mock_func, max_attempts=3, sleep=MagicMock())

        assert mock_func.call_count == 3
        assert exc_info.value.attempts == 3
        assert "3 attempts" in str(exc_info.value)

    def test_correct_delays_between_retries(self):
        """Delays are taken in order, the last one repeating."""
        mock_func = MagicMock(side_effect=TransportError("fail"))
        sleep = MagicMock()

        with pytest.raises(RetryExhausted):
            retry_with_backoff(mock_func, max_attempts=4, delays=[0.1, 0.2], sleep=sleep)

        assert sleep.call_args_list == [call(0.1), call(0.2), call(0.2)]

    def test_non_retryable_error_raises_immediately(self):
        """Non-retryable errors should raise without retry."""
        error = AuthenticationError(403, "Forbidden")
        mock_func = MagicMock(side_effect=error)

        with pytest.raises(AuthenticationError):
            retry_with_backoff(mock_func, max_attempts=3, sleep=MagicMock())

        # Should only be called once - no retries
        assert mock_func.call_count == 1

    def test_non_client_errors_propagate(self):
        mock_func = MagicMock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            retry_with_backoff(mock_func, max_attempts=3, sleep=MagicMock())
        assert mock_func.call_count == 1

    def test_passes_args_and_kwargs_to_function(self):
        """Arguments and keyword arguments are passed through."""
        mock_func = MagicMock(return_value="success")

        retry_with_backoff(
            mock_func,
            max_attempts=3,
            delays=[0.01],
            args=("arg1", "arg2"),
            kwargs={"key1": "value1"},
        )

        mock_func.assert_called_with("arg1", "arg2", key1="value1")

    def test_last_error_preserved_in_retry_exhausted(self):
        """RetryExhausted should contain the last error."""
        last_error = TransportError("Final timeout")
        mock_func = MagicMock(
            side_effect=[
                TransportError("First"),
                ResponseError(500, "Second"),
                last_error,
            ]
        )

        with pytest.raises(RetryExhausted) as exc_info:
            retry_with_backoff(mock_func, max_attempts=3, sleep=MagicMock())

        assert exc_info.value.last_error is last_error
        assert exc_info.value.__cause__ is last_error

    def test_retries_are_logged(self, caplog):
        mock_func = MagicMock(side_effect=[TransportError("reset"), "ok"])

        with caplog.at_level("WARNING", logger="cos_client.retry"):
            retry_with_backoff(mock_func, max_attempts=2, delays=[0.5], sleep=MagicMock())

        assert "Attempt 1/2 failed (reset); retrying in 0.5s" in caplog.text
