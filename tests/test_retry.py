"""Tests for the retry-with-backoff combinator."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ticketbridge.core.retry import RetryPolicy, retry


def flaky(failures: int, value: str = "ok"):
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise ConnectionError(f"failure {calls['count']}")
        return value

    return operation, calls


class TestRetryPolicy:
    def test_exponential_with_cap(self):
        policy = RetryPolicy(max_attempts=5, base_delay=1000, max_delay=5000)
        assert [policy.delay_for(n) for n in range(1, 6)] == [1000, 2000, 4000, 5000, 5000]


class TestRetry:
    async def test_succeeds_first_time(self):
        sleep = AsyncMock()
        operation, calls = flaky(0)
        outcome = await retry(operation, RetryPolicy(), sleep=sleep)
        assert outcome.success is True
        assert outcome.value == "ok"
        assert outcome.attempts == 1
        assert outcome.delays == []
        sleep.assert_not_awaited()

    async def test_fails_twice_then_succeeds(self):
        sleep = AsyncMock()
        operation, calls = flaky(2)
        outcome = await retry(operation, RetryPolicy(), sleep=sleep)

        assert outcome.success is True
        assert outcome.attempts == 3
        assert calls["count"] == 3
        assert outcome.delays == [1000, 2000]
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    async def test_exhausted(self):
        sleep = AsyncMock()
        operation, calls = flaky(10)
        outcome = await retry(operation, RetryPolicy(), sleep=sleep)

        assert outcome.success is False
        assert outcome.attempts == 3
        assert isinstance(outcome.error, ConnectionError)
        assert str(outcome.error) == "failure 3"
        # No sleep after the final attempt
        assert outcome.delays == [1000, 2000]

    async def test_delay_capped(self):
        sleep = AsyncMock()
        operation, _ = flaky(10)
        policy = RetryPolicy(max_attempts=5, base_delay=1000, max_delay=3000)
        outcome = await retry(operation, policy, sleep=sleep)
        assert outcome.delays == [1000, 2000, 3000, 3000]

    async def test_terminal_error_stops(self):
        sleep = AsyncMock()
        operation, calls = flaky(10)
        outcome = await retry(
            operation, RetryPolicy(), is_retryable=lambda e: False, sleep=sleep
        )
        assert outcome.success is False
        assert outcome.attempts == 1
        assert calls["count"] == 1
        sleep.assert_not_awaited()

    async def test_cancellation_propagates(self):
        async def operation():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await retry(operation, RetryPolicy(), sleep=AsyncMock())
