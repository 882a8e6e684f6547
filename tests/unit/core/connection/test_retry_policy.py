"""Unit tests for the exponential backoff executor."""

import asyncio

import pytest

from pos_devices.core.connection import RetryError, RetryOptions, with_exponential_backoff


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def flaky(failures, result="ok", error=OSError("port busy")):
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise error
        return result

    return operation, calls


class TestRetryOptions:
    """Test RetryOptions validation."""

    def test_defaults(self):
        options = RetryOptions()
        assert options.max_attempts == 10
        assert options.base_delay == 0.2
        assert options.max_delay == 10.0
        assert options.multiplier == 1.5

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"base_delay": -1},
        {"multiplier": 0.5},
    ])
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(ValueError):
            RetryOptions(**kwargs)

    def test_merged_ignores_none(self):
        options = RetryOptions().merged(max_attempts=3, base_delay=None)
        assert options.max_attempts == 3
        assert options.base_delay == 0.2


class TestWithExponentialBackoff:
    """Test with_exponential_backoff."""

    @pytest.mark.asyncio
    async def test_first_attempt_success_does_not_sleep(self):
        sleep = RecordingSleep()
        operation, calls = flaky(0)

        assert await with_exponential_backoff(operation, sleep=sleep) == "ok"
        assert calls["count"] == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_delays_grow_and_cap(self):
        sleep = RecordingSleep()
        options = RetryOptions(max_attempts=5, base_delay=1.0, max_delay=3.0, multiplier=2.0)
        operation, calls = flaky(4)

        assert await with_exponential_backoff(operation, options, sleep=sleep) == "ok"
        assert calls["count"] == 5
        assert sleep.delays == [1.0, 2.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_exhausted_raises_retry_error(self):
        sleep = RecordingSleep()
        error = OSError("gone")
        options = RetryOptions(max_attempts=3, base_delay=0.1)
        operation, calls = flaky(10, error=error)

        with pytest.raises(RetryError) as exc_info:
            await with_exponential_backoff(operation, options, sleep=sleep)

        assert calls["count"] == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is error
        assert len(exc_info.value.history) == 3
        # No sleep after the final failure
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_on_retry_hook(self):
        seen = []
        options = RetryOptions(max_attempts=3, base_delay=0.5, multiplier=1.0)
        operation, _ = flaky(2)

        await with_exponential_backoff(
            operation, options,
            on_retry=lambda attempt, exc, delay: seen.append((attempt, delay)),
            sleep=RecordingSleep(),
        )

        assert seen == [(1, 0.5), (2, 0.5)]

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        calls = {"count": 0}

        async def operation():
            calls["count"] += 1
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await with_exponential_backoff(operation, sleep=RecordingSleep())
        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_jitter_stays_within_spread(self):
        sleep = RecordingSleep()
        options = RetryOptions(max_attempts=4, base_delay=1.0, multiplier=1.0, jitter=0.1)
        operation, _ = flaky(3)

        await with_exponential_backoff(operation, options, sleep=sleep)

        assert all(0.9 <= delay <= 1.1 for delay in sleep.delays)
