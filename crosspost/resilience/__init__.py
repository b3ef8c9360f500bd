"""Resilience helpers for outbound platform calls.

Usage:
    from crosspost.resilience import RetryPolicy, call_with_retry

    policy = RetryPolicy(max_retries=2, backoff_base=1.0)
    result = await call_with_retry(lambda: client.get(url), policy)
"""

from crosspost.resilience.retry import (
    NO_RETRY_POLICY,
    PLATFORM_POLICY,
    RetryPolicy,
    RetryableError,
    call_with_retry,
    with_retry,
)

__all__ = [
    "NO_RETRY_POLICY",
    "PLATFORM_POLICY",
    "RetryPolicy",
    "RetryableError",
    "call_with_retry",
    "with_retry",
]
