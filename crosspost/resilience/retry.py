"""Retry policies with exponential backoff.

Used by the platform adapters to absorb rate limits and transient 5xx
responses inside a single publish/fetch call. Anything still failing after
the policy is exhausted surfaces to the dispatcher, which records it on the
post target.

Usage:
    policy = RetryPolicy(max_retries=2, backoff_base=1.0)

    @with_retry(policy)
    async def call_platform():
        return await client.post(...)
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from functools import wraps
from typing import Awaitable, Callable, Optional, Type, TypeVar

from crosspost.config import PLATFORM_HTTP_MAX_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableError(Exception):
    """Base class for errors that may trigger a retry.

    ``retriable`` is False for permanent failures (auth revoked, content
    rejected) so the same exception type can carry both outcomes.
    """

    def __init__(
        self, message: str, retriable: bool = True, retry_after: Optional[float] = None
    ):
        super().__init__(message)
        self.retriable = retriable
        self.retry_after = retry_after  # Hint from server (e.g., Retry-After)


RETRYABLE_EXCEPTIONS: tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    RetryableError,
)


@dataclass
class RetryPolicy:
    """Configuration for retry behavior.

    Attributes:
        max_retries: Maximum number of retry attempts
        backoff_base: Base delay in seconds
        backoff_factor: Multiplier for exponential backoff
        backoff_max: Maximum delay in seconds (also caps Retry-After hints)
        jitter: Add random jitter to delays
        retryable_exceptions: Exception types to retry on
        retry_if: Extra predicate an exception must also pass to be retried
    """

    max_retries: int = 3
    backoff_base: float = 1.0
    backoff_factor: float = 2.0
    backoff_max: float = 60.0
    jitter: bool = True
    retryable_exceptions: tuple[Type[Exception], ...] = RETRYABLE_EXCEPTIONS
    retry_if: Optional[Callable[[Exception], bool]] = None

    def get_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Calculate delay for a given attempt number (0-indexed)."""
        if retry_after:
            return min(retry_after, self.backoff_max)

        delay = self.backoff_base * (self.backoff_factor**attempt)
        delay = min(delay, self.backoff_max)

        if self.jitter:
            # Up to 25% jitter either way
            delay = delay * (0.75 + random.random() * 0.5)

        return delay

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if we should retry for this exception."""
        if attempt >= self.max_retries:
            return False

        if self.retry_if is not None and not self.retry_if(exception):
            return False

        if isinstance(exception, RetryableError):
            return exception.retriable

        return isinstance(exception, self.retryable_exceptions)


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``func()`` until it succeeds or the policy gives up."""
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as e:
            if not policy.should_retry(e, attempt):
                raise

            retry_after = e.retry_after if isinstance(e, RetryableError) else None
            delay = policy.get_delay(attempt, retry_after)

            if on_retry:
                on_retry(e, attempt)

            logger.warning(
                "Retry %d/%d in %.2fs: %s", attempt + 1, policy.max_retries, delay, e
            )
            await sleep(delay)
            attempt += 1


def with_retry(
    policy: Optional[RetryPolicy] = None,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
):
    """Decorator to add retry behavior to async functions.

    Usage:
        @with_retry(RetryPolicy(max_retries=3))
        async def fetch_insights():
            ...
    """
    policy = policy or RetryPolicy()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await call_with_retry(
                lambda: func(*args, **kwargs), policy, on_retry=on_retry
            )

        return wrapper

    return decorator


# Pre-configured policies
DEFAULT_POLICY = RetryPolicy()

# Platform REST calls: short in-call retries, the dispatcher owns longer retries
PLATFORM_POLICY = RetryPolicy(
    max_retries=PLATFORM_HTTP_MAX_RETRIES,
    backoff_base=1.0,
    backoff_factor=2.0,
    backoff_max=30.0,
    jitter=True,
)

# No retries at all (tests, one-shot calls)
NO_RETRY_POLICY = RetryPolicy(max_retries=0)
