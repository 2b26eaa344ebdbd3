"""Tests for provider call timeouts and retry backoff."""

import asyncio
import time
from unittest.mock import AsyncMock, patch

import pytest

from facility.errors import ChannelUnavailable, ProviderError
from facility.notifications.retry import call_provider, get_retry_delay


class TestGetRetryDelay:
    """Test retry delay calculation."""

    def test_first_retry_is_base_delay(self):
        assert get_retry_delay(0, base_delay=1.0, include_jitter=False) == 1.0

    def test_exponential_backoff(self):
        delays = [get_retry_delay(i, base_delay=1.0, include_jitter=False) for i in range(4)]
        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_30_seconds(self):
        assert get_retry_delay(10, base_delay=1.0, include_jitter=False) == 30.0

    def test_jitter_adds_up_to_ten_percent(self):
        for _ in range(20):
            delay = get_retry_delay(2, base_delay=1.0)
            assert 4.0 <= delay <= 4.4

    def test_zero_base_delay(self):
        assert get_retry_delay(3, base_delay=0) == 0.0


class TestCallProvider:
    @pytest.mark.asyncio
    async def test_returns_result(self):
        result = await call_provider(lambda x: x * 2, 21, operation="op", timeout=1)
        assert result == 42

    @pytest.mark.asyncio
    async def test_timeout_raises_provider_error(self):
        def slow():
            time.sleep(0.5)

        with pytest.raises(ProviderError) as exc_info:
            await call_provider(slow, operation="calendar.create_event", timeout=0.05)

        assert exc_info.value.operation == "calendar.create_event"
        assert isinstance(exc_info.value.cause, asyncio.TimeoutError)

    @pytest.mark.asyncio
    async def test_channel_unavailable_passes_through(self):
        def unconfigured():
            raise ChannelUnavailable("sms")

        with pytest.raises(ChannelUnavailable):
            await call_provider(unconfigured, operation="sms.send", timeout=1, max_retries=2)

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_not_retried(self):
        calls = []

        def bad_request():
            calls.append(1)
            raise ValueError("bad request")

        with pytest.raises(ProviderError):
            await call_provider(bad_request, operation="op", timeout=1, max_retries=2)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transient_error_retried_with_backoff(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "ok"

        with patch(
            "facility.notifications.retry.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            result = await call_provider(
                flaky, operation="op", timeout=1, max_retries=2, backoff=1.0
            )

        assert result == "ok"
        assert len(calls) == 3
        delays = [c.args[0] for c in mock_sleep.await_args_list]
        assert len(delays) == 2
        assert 1.0 <= delays[0] <= 1.1
        assert 2.0 <= delays[1] <= 2.2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        def down():
            calls.append(1)
            raise ConnectionError("refused")

        with pytest.raises(ProviderError):
            await call_provider(down, operation="op", timeout=1, max_retries=2, backoff=0)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_custom_retry_predicate(self):
        calls = []

        def quota():
            calls.append(1)
            raise RuntimeError("429")

        with pytest.raises(ProviderError):
            await call_provider(
                quota,
                operation="op",
                timeout=1,
                max_retries=1,
                backoff=0,
                retryable=lambda e: "429" in str(e),
            )
        assert len(calls) == 2
