"""Tests for async retry with backoff."""

from typing import List

import pytest

from utils.retry import (
    NonRetryableError,
    RetryableError,
    RetryConfig,
    _backoff_delay,
    async_retry_with_backoff,
    with_async_retry,
)

NO_WAIT = RetryConfig(max_attempts=3, initial_delay=0.0, jitter=False)


class _Flaky:
    def __init__(self, failures: int, error: Exception):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self, value: str = "ok") -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return value


class TestAsyncRetryWithBackoff:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self) -> None:
        func = _Flaky(2, ConnectionError("reset"))
        retries: List[int] = []

        result = await async_retry_with_backoff(
            func,
            kwargs={"value": "done"},
            config=NO_WAIT,
            on_retry=lambda e, attempt: retries.append(attempt),
        )

        assert result == "done"
        assert func.calls == 3
        assert retries == [1, 2]

    @pytest.mark.asyncio
    async def test_raises_after_max_attempts(self) -> None:
        func = _Flaky(5, TimeoutError("slow"))
        with pytest.raises(TimeoutError):
            await async_retry_with_backoff(func, config=NO_WAIT)
        assert func.calls == 3

    @pytest.mark.asyncio
    async def test_non_transient_error_not_retried(self) -> None:
        func = _Flaky(1, ValueError("bad input"))
        with pytest.raises(ValueError):
            await async_retry_with_backoff(func, config=NO_WAIT)
        assert func.calls == 1

    @pytest.mark.asyncio
    async def test_non_retryable_short_circuits(self) -> None:
        func = _Flaky(1, NonRetryableError("stop"))
        with pytest.raises(NonRetryableError):
            await async_retry_with_backoff(func, config=NO_WAIT, retryable_exceptions=(Exception,))
        assert func.calls == 1

    @pytest.mark.asyncio
    async def test_retryable_marker(self) -> None:
        func = _Flaky(1, RetryableError("try again"))
        assert await async_retry_with_backoff(func, config=NO_WAIT) == "ok"

    @pytest.mark.asyncio
    async def test_invalid_attempts(self) -> None:
        with pytest.raises(ValueError):
            await async_retry_with_backoff(_Flaky(0, ValueError()), config=RetryConfig(max_attempts=0))

    @pytest.mark.asyncio
    async def test_decorator(self) -> None:
        calls = []

        @with_async_retry(NO_WAIT)
        async def fetch(x: int) -> int:
            calls.append(x)
            if len(calls) < 2:
                raise ConnectionError("reset")
            return x * 2

        assert await fetch(21) == 42
        assert fetch.__name__ == "fetch"
        assert calls == [21, 21]


class TestBackoffDelay:
    def test_exponential_growth_capped(self) -> None:
        config = RetryConfig(initial_delay=1.0, max_delay=5.0, jitter=False)
        assert [_backoff_delay(n, config) for n in range(1, 5)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_within_range(self) -> None:
        config = RetryConfig(initial_delay=10.0, jitter=True, jitter_factor=0.1)
        for _ in range(20):
            assert 9.0 <= _backoff_delay(1, config) <= 11.0
