"""Retry utilities for store operations that may fail transiently."""

import asyncio
import logging
import random
from functools import wraps
from typing import Callable, List, Optional, Type


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Optional[List[Type[Exception]]] = None,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions or [
            ConnectionError,
            TimeoutError,
            OSError,
        ]

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given zero-based attempt."""
        delay = min(
            self.base_delay * (self.exponential_base**attempt),
            self.max_delay,
        )
        # Add jitter to prevent thundering herd
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay

    def is_retryable(self, error: Exception) -> bool:
        """Check if this exception is retryable."""
        return any(isinstance(error, exc_type) for exc_type in self.retryable_exceptions)


def async_retry_with_backoff(config: Optional[RetryConfig] = None):
    """Decorator to add retry logic with exponential backoff for async functions."""
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(config.max_attempts):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    last_exception = e

                    if not config.is_retryable(e):
                        raise

                    # Don't retry on the last attempt
                    if attempt == config.max_attempts - 1:
                        break

                    delay = config.delay_for(attempt)

                    logger = logging.getLogger(func.__module__)
                    logger.warning(
                        f"Attempt {attempt + 1}/{config.max_attempts} failed for {func.__name__}: {e}. "
                        f"Retrying in {delay:.2f}s"
                    )

                    await asyncio.sleep(delay)

            # All attempts failed
            raise last_exception

        return wrapper

    return decorator
