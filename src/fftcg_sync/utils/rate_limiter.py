"""Interval-based rate limiter for outbound requests and store writes."""

import asyncio
import math
import time
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

import structlog

log = structlog.stdlib.get_logger()

T = TypeVar("T")


class RateLimiter:
    """
    Queues async operations and releases them in interval-sized batches.

    Each interval at most ``ceil(max_rate * interval)`` queued operations are
    started together and awaited concurrently; at most
    ``max_concurrent_batches`` such batches are in flight. The queue is FIFO.
    A failing operation only fails its own caller.
    """

    def __init__(
        self,
        max_rate: float = 500,
        interval: float = 1.0,
        max_concurrent_batches: int = 3,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_rate <= 0 or interval <= 0:
            raise ValueError("max_rate and interval must be positive")
        if max_concurrent_batches < 1:
            raise ValueError("max_concurrent_batches must be at least 1")

        self._interval = interval
        self._batch_size = max(1, math.ceil(max_rate * interval))
        self._sleep = sleep
        self._clock = clock
        self._queue: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._slots = asyncio.Semaphore(max_concurrent_batches)
        self._worker: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()

    @property
    def batch_size(self) -> int:
        """Number of operations released per interval."""
        return self._batch_size

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def add(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Queue ``operation`` and wait for its result.

        Args:
            operation: Zero-argument callable returning an awaitable

        Returns:
            Whatever the operation returns

        Raises:
            Exception: Whatever the operation raises
        """
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._queue.append((operation, future))

        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._process())

        return await future

    async def drain(self) -> None:
        """Wait until the queue is empty and every released batch has finished."""
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def _process(self) -> None:
        while self._queue:
            started = self._clock()
            batch = [self._queue.popleft() for _ in range(min(self._batch_size, len(self._queue)))]

            await self._slots.acquire()
            task = asyncio.create_task(self._run_batch(batch))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)

            if self._queue:
                remaining = self._interval - (self._clock() - started)
                if remaining > 0:
                    await self._sleep(remaining)

    async def _run_batch(self, batch: list[tuple[Callable[[], Awaitable[Any]], asyncio.Future]]) -> None:
        try:
            results = await asyncio.gather(
                *(self._run_one(operation) for operation, _ in batch),
                return_exceptions=True,
            )
            failed = 0
            for (_, future), result in zip(batch, results):
                if future.done():
                    continue
                if isinstance(result, asyncio.CancelledError):
                    future.cancel()
                elif isinstance(result, BaseException):
                    failed += 1
                    future.set_exception(result)
                else:
                    future.set_result(result)

            if failed:
                log.warning("rate_limited_batch_had_failures", batch_size=len(batch), failed=failed)
        finally:
            self._slots.release()

    @staticmethod
    async def _run_one(operation: Callable[[], Awaitable[Any]]) -> Any:
        return await operation()
