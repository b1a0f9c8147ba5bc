"""Tests for the HTTP retry policy."""

from unittest.mock import Mock

import pytest
from ota_partfetch.common import CancellationToken, ExtractionCancelledError, NetworkError
from ota_partfetch.remote.retry import RetryPolicy


class TestRetryPolicy:
    """Test capped exponential backoff."""

    def test_default_delays(self):
        """Test the default policy waits 1s then 2s."""
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.delay_for(0) == 1.0
        assert policy.delay_for(1) == 2.0

    def test_delay_is_capped(self):
        """Test no delay exceeds max_delay."""
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0)
        assert policy.delay_for(10) == 5.0

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"base_delay": -1.0},
        {"max_delay": -0.5},
    ])
    def test_invalid_policy_rejected(self, kwargs):
        """Test nonsensical parameters raise ValueError."""
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_success_after_transient_failures(self):
        """Test N-1 failures followed by success returns the result."""
        sleep = Mock()
        operation = Mock(side_effect=[TimeoutError("t1"), TimeoutError("t2"), "data"])

        result = RetryPolicy().call(operation, "Range read", (TimeoutError,), sleep=sleep)

        assert result == "data"
        assert operation.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]

    def test_exhaustion_raises_network_error(self):
        """Test the last cause is chained after all attempts fail."""
        sleep = Mock()
        cause = ConnectionError("reset")
        operation = Mock(side_effect=cause)

        with pytest.raises(NetworkError) as exc_info:
            RetryPolicy().call(operation, "Metadata probe", (ConnectionError,), sleep=sleep)

        assert operation.call_count == 3
        assert sleep.call_count == 2
        assert exc_info.value.__cause__ is cause
        assert exc_info.value.context["attempts"] == 3
        assert "Metadata probe failed after 3 attempts" in exc_info.value.message

    def test_non_retryable_error_propagates(self):
        """Test exceptions outside retry_on are raised on the first attempt."""
        sleep = Mock()
        operation = Mock(side_effect=ValueError("bad"))

        with pytest.raises(ValueError):
            RetryPolicy().call(operation, "Range read", (TimeoutError,), sleep=sleep)

        assert operation.call_count == 1
        sleep.assert_not_called()

    def test_logs_each_retry(self, caplog):
        """Test a warning is logged per failed attempt with the wait time."""
        operation = Mock(side_effect=[TimeoutError("slow"), "ok"])

        with caplog.at_level("WARNING"):
            RetryPolicy().call(operation, "Range read", (TimeoutError,), sleep=Mock())

        assert "Range read failed (attempt 1/3): slow. Retrying in 1s..." in caplog.text

    def test_cancelled_token_stops_before_first_attempt(self):
        """Test a cancelled token prevents any attempt."""
        token = CancellationToken()
        token.cancel()
        operation = Mock()

        with pytest.raises(ExtractionCancelledError):
            RetryPolicy().call(operation, "Download", (TimeoutError,), cancel_token=token)

        operation.assert_not_called()

    def test_cancel_during_backoff(self):
        """Test cancellation while waiting aborts the retry loop."""
        token = Mock(spec=CancellationToken)
        token.wait.return_value = True
        token.raise_if_cancelled.side_effect = [None, ExtractionCancelledError("Download cancelled")]
        operation = Mock(side_effect=TimeoutError("slow"))

        with pytest.raises(ExtractionCancelledError):
            RetryPolicy().call(operation, "Download", (TimeoutError,), cancel_token=token)

        assert operation.call_count == 1
        token.wait.assert_called_once_with(1.0)
