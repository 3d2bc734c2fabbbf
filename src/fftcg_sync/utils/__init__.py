"""Shared utilities for configuration, logging, retries and rate limiting"""

from fftcg_sync.utils.rate_limiter import RateLimiter
from fftcg_sync.utils.retry import CircuitBreaker, RetryExecutor, RetryPolicy, exponential_backoff_retry

__all__ = [
    "CircuitBreaker",
    "RateLimiter",
    "RetryExecutor",
    "RetryPolicy",
    "exponential_backoff_retry",
]
