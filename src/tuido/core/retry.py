"""
Backoff policy for repeated sync attempts.

A sync pass never retries on its own: a transient failure aborts the pass
and leaves the store and queue as they were. ``tuido sync --retries`` and
``tuido sync --watch`` decide when to try again using the helpers here.

Example:
    >>> policy = RetryConfig(max_retries=2, jitter=False)
    >>> list(policy.delays())
    [1.0, 2.0]
"""

import functools
import logging
import random
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

from tuido.core.errors import SyncError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Client statuses worth another attempt; all 5xx are retried too
_RETRYABLE_STATUSES = frozenset({408, 429})


@dataclass(frozen=True)
class RetryConfig:
    """
    Exponential backoff settings.

    The n-th retry waits ``base_delay * multiplier**n`` seconds, capped at
    ``max_delay`` and spread by ``jitter_ratio`` in either direction when
    ``jitter`` is on.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_ratio: float = 0.2
    max_delay: float = 300.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not 0.0 <= self.jitter_ratio <= 1.0:
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")

    def calculate_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (0-indexed)."""
        delay = min(self.base_delay * self.multiplier**attempt, self.max_delay)
        if not self.jitter:
            return delay
        spread = delay * self.jitter_ratio
        return max(0.0, delay + random.uniform(-spread, spread))

    def delays(self) -> Iterator[float]:
        """Yield the wait before each of the ``max_retries`` retries."""
        for attempt in range(self.max_retries):
            yield self.calculate_delay(attempt)


def is_retryable_error(exception: BaseException) -> bool:
    """
    Whether another attempt could succeed where this one failed.

    Sync errors carry their own ``retryable`` flag. Raw httpx errors are
    retryable when they are network-level failures, or status errors for
    408, 429 and 5xx. Everything else is a bug or a refusal and is not.
    """
    if isinstance(exception, SyncError):
        return exception.retryable
    if isinstance(exception, httpx.HTTPStatusError):
        status = exception.response.status_code
        return status in _RETRYABLE_STATUSES or status >= 500
    return isinstance(exception, httpx.HTTPError)


def with_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    multiplier: float = 2.0,
    jitter: bool = True,
    jitter_ratio: float = 0.2,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorate ``func`` so retryable failures are tried again with backoff.

    The last error is re-raised once ``max_retries`` retries are used up.
    Errors for which ``is_retryable`` returns False propagate immediately.
    """
    policy = RetryConfig(
        max_retries=max_retries,
        base_delay=base_delay,
        multiplier=multiplier,
        jitter=jitter,
        jitter_ratio=jitter_ratio,
        max_delay=max(base_delay, RetryConfig.max_delay),
    )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = getattr(func, "__name__", repr(func))

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            schedule = policy.delays()
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not is_retryable(e):
                        raise
                    delay = next(schedule, None)
                    if delay is None:
                        logger.warning("%s failed after %d retries: %s", name, max_retries, e)
                        raise
                    logger.info("%s failed (%s), retrying in %.2fs", name, e, delay)
                    sleep(delay)

        return wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "is_retryable_error",
    "with_retry",
]
