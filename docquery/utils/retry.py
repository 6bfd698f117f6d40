"""Retry with exponential backoff for transient backend failures.

Only infrastructure clients (the Redis cache backend) use this; the query
engine itself never retries and leaves retry policy to its callers.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryError(Exception):
    """Exception raised when all retry attempts are exhausted."""

    def __init__(self, last_exception: Exception, attempts: int) -> None:
        """Initialize retry error.

        Args:
            last_exception: The final exception that caused failure.
            attempts: Number of attempts made.
        """
        self.last_exception = last_exception
        self.attempts = attempts
        super().__init__(f"Failed after {attempts} attempts. Last error: {last_exception}")


class RetryStrategy:
    """Backoff policy: which exceptions to retry and how long to wait."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 0.1,
        max_delay: float = 5.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        exceptions: tuple[type[Exception], ...] = (Exception,),
    ) -> None:
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.exceptions = exceptions

    def should_retry(self, exception: Exception) -> bool:
        return isinstance(exception, self.exceptions)

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt number.

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            Delay in seconds.
        """
        delay = min(self.initial_delay * (self.exponential_base**attempt), self.max_delay)
        if self.jitter:
            delay = delay * (0.5 + random.random())
        return delay


def retry(
    max_attempts: int = 3,
    initial_delay: float = 0.1,
    max_delay: float = 5.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator for retrying async functions with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts.
        initial_delay: Initial delay in seconds before first retry.
        max_delay: Maximum delay in seconds between retries.
        exponential_base: Base for exponential backoff calculation.
        jitter: Whether to add random jitter to delays.
        exceptions: Tuple of exception types to retry on.

    Returns:
        Decorator function.

    Raises:
        RetryError: When every attempt failed with a retryable exception.

    Example:
        ```python
        @retry(max_attempts=3, exceptions=(RedisConnectionError,))
        async def get(self, key: str) -> Any:
            return await self._client.get(key)
        ```
    """
    strategy = RetryStrategy(
        max_attempts=max_attempts,
        initial_delay=initial_delay,
        max_delay=max_delay,
        exponential_base=exponential_base,
        jitter=jitter,
        exceptions=exceptions,
    )

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not strategy.should_retry(e):
                        raise

                    if attempt >= max_attempts - 1:
                        logger.error(
                            f"All retry attempts exhausted for {func.__name__}",
                            extra={
                                "function": func.__name__,
                                "attempts": max_attempts,
                                "last_exception": str(e),
                            },
                        )
                        raise RetryError(e, max_attempts) from e

                    delay = strategy.calculate_delay(attempt)
                    logger.warning(
                        f"Retrying {func.__name__} after {delay:.2f}s (attempt {attempt + 1}/{max_attempts})",
                        extra={
                            "function": func.__name__,
                            "attempt": attempt + 1,
                            "max_attempts": max_attempts,
                            "delay": delay,
                            "exception": str(e),
                        },
                    )
                    await asyncio.sleep(delay)

            msg = "Retry logic error: no attempt was made"
            raise RuntimeError(msg)

        return wrapper

    return decorator


__all__ = ["RetryError", "RetryStrategy", "retry"]
