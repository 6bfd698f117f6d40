"""Unit tests for the retry utility."""
from __future__ import annotations

import pytest

from docquery.utils.retry import RetryError, RetryStrategy, retry


@pytest.mark.unit
class TestRetryDecorator:
    """Test suite for retry decorator."""

    async def test_retry_succeeds_first_attempt(self):
        """Test that retry decorator doesn't retry on success."""
        call_count = 0

        @retry(max_attempts=3)
        async def successful_func():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await successful_func()
        assert result == "success"
        assert call_count == 1  # Only called once

    async def test_retry_succeeds_after_retries(self):
        """Test that retry decorator retries until success."""
        call_count = 0

        @retry(max_attempts=3, initial_delay=0.01)
        async def eventually_successful():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError("Not yet")
            return "success"

        result = await eventually_successful()
        assert result == "success"
        assert call_count == 3

    async def test_retry_fails_after_max_attempts(self):
        """Test that retry raises RetryError after max attempts."""
        call_count = 0

        @retry(max_attempts=3, initial_delay=0.01)
        async def always_fails():
            nonlocal call_count
            call_count += 1
            raise ConnectionError("Always fails")

        with pytest.raises(RetryError) as exc_info:
            await always_fails()

        assert call_count == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, ConnectionError)
        assert "after 3 attempts" in str(exc_info.value)

    async def test_retry_only_retries_specified_exceptions(self):
        """Test that retry only retries specified exception types."""
        call_count = 0

        @retry(max_attempts=3, initial_delay=0.01, exceptions=(ConnectionError,))
        async def raises_value_error():
            nonlocal call_count
            call_count += 1
            raise ValueError("Not retryable")

        # Should raise ValueError immediately, not retry
        with pytest.raises(ValueError, match="Not retryable"):
            await raises_value_error()

        assert call_count == 1


@pytest.mark.unit
class TestRetryStrategy:
    """Test suite for backoff calculation."""

    def test_delay_grows_exponentially(self):
        """Test delays double per attempt without jitter."""
        strategy = RetryStrategy(initial_delay=0.1, jitter=False)

        assert strategy.calculate_delay(0) == pytest.approx(0.1)
        assert strategy.calculate_delay(2) == pytest.approx(0.4)

    def test_delay_is_capped(self):
        """Test delays never exceed max_delay."""
        strategy = RetryStrategy(initial_delay=1.0, max_delay=2.0, jitter=False)

        assert strategy.calculate_delay(10) == 2.0

    def test_jitter_stays_within_bounds(self):
        """Test jitter keeps the delay between 50% and 150%."""
        strategy = RetryStrategy(initial_delay=1.0, jitter=True)

        for _ in range(20):
            assert 0.5 <= strategy.calculate_delay(0) <= 1.5
