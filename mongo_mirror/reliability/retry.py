"""
Retry — Bounded retry with exponential backoff for idempotent reads.

Only reads are retried (count, find). Writes go through once: an upsert
retry would be safe, a bulk insert retry would duplicate documents, so the
writer never retries either.

## Usage

    from mongo_mirror.reliability.retry import RetryConfig, retry_call

    count = retry_call(
        store.count_documents, db, name, flt,
        config=RetryConfig(max_retries=2, retryable_exceptions=(TransientStoreError,)),
    )
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from .deadline import Deadline

T = TypeVar("T")
logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 2
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    jitter: float = 0.1
    retryable_exceptions: Tuple[Type[BaseException], ...] = (ConnectionError, TimeoutError)

    def calculate_delay(self, attempt: int) -> float:
        """Delay before the next attempt: exponential backoff plus jitter."""
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        jitter_range = delay * self.jitter
        delay += random.uniform(-jitter_range, jitter_range)
        return max(0.0, delay)


def with_retry(
    config: Optional[RetryConfig] = None,
    deadline: Optional[Deadline] = None,
    sleep: Optional[Callable[[float], None]] = None,
):
    """
    Decorator retrying a synchronous function on retryable exceptions.

    Never sleeps past ``deadline``: when the backoff would outlast the
    remaining run time, the last error is re-raised instead.
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            for attempt in range(config.max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except config.retryable_exceptions as e:
                    if attempt == config.max_retries:
                        logger.error(
                            f"{func.__name__} failed after {config.max_retries} retries: {e}"
                        )
                        raise

                    delay = config.calculate_delay(attempt)
                    remaining = deadline.remaining() if deadline else None
                    if remaining is not None and delay >= remaining:
                        logger.error(f"{func.__name__} failed, no time left to retry: {e}")
                        raise

                    logger.warning(
                        f"Attempt {attempt + 1}/{config.max_retries + 1} failed "
                        f"for {func.__name__}, retrying in {delay:.2f}s: {e}"
                    )
                    (sleep or time.sleep)(delay)

            raise RuntimeError("Unexpected state in retry logic")

        return wrapper

    return decorator


def retry_call(
    func: Callable[..., T],
    *args: Any,
    config: Optional[RetryConfig] = None,
    deadline: Optional[Deadline] = None,
    sleep: Optional[Callable[[float], None]] = None,
    **kwargs: Any,
) -> T:
    """Call ``func`` once with retry behavior, without decorating it."""
    return with_retry(config, deadline, sleep)(func)(*args, **kwargs)
