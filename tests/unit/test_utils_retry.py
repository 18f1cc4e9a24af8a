"""Tests for linear_flow.utils.retry."""

from unittest.mock import AsyncMock, patch

import pytest

from linear_flow.utils.retry import async_retry


class TestAsyncRetry:
    """Test async_retry decorator."""

    @pytest.mark.asyncio
    async def test_successful_call_no_retry(self):
        """Test successful call does not retry."""
        call_count = 0

        @async_retry(max_attempts=3)
        async def successful_func():
            nonlocal call_count
            call_count += 1
            return "success"

        assert await successful_func() == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_on_exception(self):
        """Test retry occurs on exception."""
        call_count = 0

        @async_retry(max_attempts=3, exceptions=(ValueError,))
        async def failing_then_success():
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise ValueError("Temporary failure")
            return "success"

        with patch("asyncio.sleep", new_callable=AsyncMock):
            result = await failing_then_success()

        assert result == "success"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_exponential_backoff(self):
        """Test delays grow as backoff_factor ** attempt."""
        sleep_times = []

        @async_retry(max_attempts=4, backoff_factor=2.0, exceptions=(ValueError,))
        async def always_fails():
            raise ValueError("Failure")

        async def mock_sleep(delay):
            sleep_times.append(delay)

        with patch("asyncio.sleep", side_effect=mock_sleep):
            with pytest.raises(ValueError, match="Failure"):
                await always_fails()

        assert sleep_times == [2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_other_exceptions_propagate_immediately(self):
        call_count = 0

        @async_retry(max_attempts=3, exceptions=(ValueError,))
        async def wrong_type():
            nonlocal call_count
            call_count += 1
            raise KeyError("nope")

        with pytest.raises(KeyError):
            await wrong_type()

        assert call_count == 1

    @pytest.mark.asyncio
    async def test_should_retry_predicate(self):
        """Errors the predicate rejects are re-raised without retrying."""
        call_count = 0

        @async_retry(max_attempts=3, exceptions=(ValueError,), should_retry=lambda e: "transient" in str(e))
        async def permanent():
            nonlocal call_count
            call_count += 1
            raise ValueError("permanent")

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(ValueError, match="permanent"):
                await permanent()

        assert call_count == 1
        mock_sleep.assert_not_awaited()

    def test_preserves_function_metadata(self):
        @async_retry()
        async def fetch_checks():
            """Fetch checks."""

        assert fetch_checks.__name__ == "fetch_checks"
        assert fetch_checks.__doc__ == "Fetch checks."
