"""Retry utilities with exponential backoff and a circuit breaker."""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Awaitable, Callable, Protocol, TypeVar

import structlog

from fftcg_sync.utils.errors import CircuitOpenError, ErrorKind, classify_error, is_retryable

log = structlog.stdlib.get_logger()

T = TypeVar("T")


def exponential_backoff_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    retry_if: Callable[[Exception], bool] = is_retryable,
) -> Callable:
    """
    Decorator that retries a blocking function with exponential backoff.

    Used by the HTTP clients, whose calls run in worker threads.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        retry_if: Predicate deciding whether a raised exception is retried

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not retry_if(e):
                        raise

                    if attempt == max_retries:
                        log.error(
                            "max_retries_reached",
                            function=func.__name__,
                            max_retries=max_retries,
                            error=str(e),
                        )
                        raise

                    delay = min(base_delay * (2**attempt), max_delay)

                    log.warning(
                        "retrying_after_error",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay_seconds=delay,
                        error=str(e),
                    )

                    time.sleep(delay)

        return wrapper

    return decorator


@dataclass(frozen=True)
class RetryPolicy:
    """Pure backoff policy: maps an attempt number to a delay."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds to sleep after failed attempt number ``attempt`` (0-based)."""
        return min(self.initial_delay * (self.backoff_factor**attempt), self.max_delay)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Guards a dependency after repeated failures.

    CLOSED -> OPEN after ``failure_threshold`` consecutive failures. While OPEN
    calls fail fast for ``reset_timeout`` seconds, then one trial call is let
    through (HALF_OPEN). The trial closes the circuit on success and reopens
    it on failure.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self._failure_threshold = failure_threshold
        self._reset_timeout = reset_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: float | None = None
        self._trial_in_flight = False
        self.trips = 0

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._reset_elapsed():
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def _reset_elapsed(self) -> bool:
        return self._opened_at is not None and self._clock() - self._opened_at >= self._reset_timeout

    def before_call(self) -> None:
        """Raise CircuitOpenError if a call is not allowed right now."""
        if self._state is CircuitState.CLOSED:
            return

        if self._state is CircuitState.OPEN:
            if not self._reset_elapsed():
                remaining = self._reset_timeout - (self._clock() - (self._opened_at or 0.0))
                raise CircuitOpenError(f"Circuit open, retry in {remaining:.1f}s")
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = False
            log.info("circuit_half_open")

        # HALF_OPEN: exactly one trial call
        if self._trial_in_flight:
            raise CircuitOpenError("Circuit half-open, trial call already in flight")
        self._trial_in_flight = True

    def record_success(self) -> None:
        if self._state is not CircuitState.CLOSED:
            log.info("circuit_closed")
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = None
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._state is CircuitState.HALF_OPEN or (
            self._state is CircuitState.CLOSED
            and self._consecutive_failures >= self._failure_threshold
        ):
            self._open()

    def release_trial(self) -> None:
        """Give back a half-open trial slot when the outcome says nothing about the dependency."""
        self._trial_in_flight = False

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._trial_in_flight = False
        self.trips += 1
        log.warning(
            "circuit_opened",
            consecutive_failures=self._consecutive_failures,
            reset_timeout=self._reset_timeout,
        )


@dataclass
class RetryStats:
    """Counters accumulated by a RetryExecutor."""

    attempts: int = 0
    retries: int = 0
    successes: int = 0
    failures: int = 0
    circuit_breaker_trips: int = 0
    quota_retries: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "attempts": self.attempts,
            "retries": self.retries,
            "successes": self.successes,
            "failures": self.failures,
            "circuit_breaker_trips": self.circuit_breaker_trips,
            "quota_retries": self.quota_retries,
        }


class RetryStatsListener(Protocol):
    def on_retry_stats(self, stats: dict[str, int]) -> None: ...


@dataclass
class RetryExecutor:
    """
    Runs async operations with classified retries, backoff and a circuit breaker.

    Transient failures are retried following ``policy``; quota failures
    follow ``quota_policy`` (longer delays, own ceiling); anything else is
    raised immediately. Statistics are emitted to ``stats_listener`` at most
    once every ``stats_interval`` seconds.
    """

    policy: RetryPolicy = field(default_factory=RetryPolicy)
    quota_policy: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(max_retries=3, initial_delay=2.0, max_delay=10.0)
    )
    circuit_breaker: CircuitBreaker = field(default_factory=CircuitBreaker)
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    clock: Callable[[], float] = time.monotonic
    stats_listener: RetryStatsListener | None = None
    stats_interval: float = 60.0
    stats: RetryStats = field(default_factory=RetryStats)

    def __post_init__(self) -> None:
        self._last_stats_emit = self.clock()

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Execute ``operation`` until it succeeds or retries are exhausted.

        Raises:
            CircuitOpenError: If the circuit breaker rejects the call
            Exception: The last error raised by the operation
        """
        attempt = 0
        quota_attempt = 0
        try:
            while True:
                self.circuit_breaker.before_call()
                self.stats.attempts += 1
                try:
                    result = await operation()
                except Exception as e:
                    kind = classify_error(e)
                    if kind is ErrorKind.NON_RETRYABLE:
                        self.circuit_breaker.release_trial()
                        self.stats.failures += 1
                        raise

                    self._record_dependency_failure()

                    if kind is ErrorKind.QUOTA:
                        if quota_attempt >= self.quota_policy.max_retries:
                            self.stats.failures += 1
                            raise
                        delay = self.quota_policy.delay_for(quota_attempt)
                        quota_attempt += 1
                        self.stats.quota_retries += 1
                    else:
                        if attempt >= self.policy.max_retries:
                            self.stats.failures += 1
                            raise
                        delay = self.policy.delay_for(attempt)
                        attempt += 1

                    self.stats.retries += 1
                    log.info(
                        "retry_scheduled",
                        attempt=attempt + quota_attempt,
                        kind=kind.value,
                        delay_seconds=delay,
                        error=str(e),
                    )
                    await self.sleep(delay)
                    continue

                self.circuit_breaker.record_success()
                self.stats.successes += 1
                return result
        finally:
            self._maybe_emit_stats()

    def _record_dependency_failure(self) -> None:
        trips_before = self.circuit_breaker.trips
        self.circuit_breaker.record_failure()
        if self.circuit_breaker.trips != trips_before:
            self.stats.circuit_breaker_trips += 1

    def _maybe_emit_stats(self) -> None:
        now = self.clock()
        if now - self._last_stats_emit < self.stats_interval:
            return
        self._last_stats_emit = now
        self.emit_stats()

    def emit_stats(self) -> None:
        """Publish the current counters. Listener failures are logged, never raised."""
        snapshot = self.stats.as_dict()
        log.info("retry_stats", **snapshot)
        if self.stats_listener is None:
            return
        try:
            self.stats_listener.on_retry_stats(snapshot)
        except Exception as e:
            log.warning("retry_stats_listener_failed", error=str(e))
