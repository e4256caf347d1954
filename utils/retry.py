"""
Async retry logic with exponential backoff.

Handles transient failures in scoring backend calls (embeddings, judge),
which are rate-sensitive and fail intermittently under load.
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1


TRANSIENT_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


class RetryableError(Exception):
    """Mark an error as retryable."""

    pass


class NonRetryableError(Exception):
    """Mark an error as non-retryable (fail immediately)."""

    pass


def _backoff_delay(attempt: int, config: RetryConfig) -> float:
    delay = min(config.initial_delay * (config.exponential_base ** (attempt - 1)), config.max_delay)
    if config.jitter:
        jitter_range = delay * config.jitter_factor
        delay += random.uniform(-jitter_range, jitter_range)
    return max(delay, 0.0)


async def async_retry_with_backoff(
    func: Callable[..., Awaitable[Any]],
    args: tuple = (),
    kwargs: Optional[dict] = None,
    config: Optional[RetryConfig] = None,
    retryable_exceptions: Tuple[Type[Exception], ...] = TRANSIENT_EXCEPTIONS,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> Any:
    """
    Await a coroutine function with exponential backoff retry.

    Args:
        func: Coroutine function to execute
        args: Positional arguments
        kwargs: Keyword arguments
        config: Retry behavior (attempts, delays, jitter)
        retryable_exceptions: Exception types that trigger retry
        on_retry: Callback on each retry (exception, attempt_number)

    Returns:
        Result of func

    Raises:
        Last exception if all retries exhausted
    """
    kwargs = kwargs or {}
    config = config or RetryConfig()
    if config.max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    name = getattr(func, "__name__", repr(func))
    retry_on = retryable_exceptions + (RetryableError,)

    for attempt in range(1, config.max_attempts + 1):
        try:
            return await func(*args, **kwargs)

        except NonRetryableError:
            raise

        except retry_on as e:
            if attempt == config.max_attempts:
                logger.error(f"All {config.max_attempts} attempts failed for {name}: {e}")
                raise

            delay = _backoff_delay(attempt, config)
            logger.warning(
                f"Attempt {attempt}/{config.max_attempts} failed for {name}: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            if on_retry:
                on_retry(e, attempt)
            await asyncio.sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError(f"retry loop exited without result for {name}")


def with_async_retry(
    config: Optional[RetryConfig] = None,
    retryable_exceptions: Tuple[Type[Exception], ...] = TRANSIENT_EXCEPTIONS,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
):
    """
    Decorator for adding retry logic to coroutine functions.

    Usage:
        @with_async_retry(RetryConfig(max_attempts=3))
        async def call_api():
            return await api.request()
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await async_retry_with_backoff(
                func,
                args=args,
                kwargs=kwargs,
                config=config,
                retryable_exceptions=retryable_exceptions,
                on_retry=on_retry,
            )

        return wrapper

    return decorator
