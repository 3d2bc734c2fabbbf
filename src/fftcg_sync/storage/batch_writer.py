"""Accumulates store mutations and commits them in bounded atomic batches."""

from collections.abc import Sequence
from typing import Optional

import structlog

from fftcg_sync.storage.document_store import DocumentStore, Mutation
from fftcg_sync.utils.rate_limiter import RateLimiter
from fftcg_sync.utils.retry import RetryExecutor

log = structlog.stdlib.get_logger()


class BatchWriter:
    """
    Groups mutations into the fewest atomic batches the store ceiling allows.

    A batch is flushed as soon as it reaches the ceiling; ``commit_all``
    flushes the remainder. Each commit runs through the rate limiter and the
    retry executor when they are given. A failed commit propagates to the
    caller and none of that batch's mutations are applied; the writer does
    not retry on its own.
    """

    def __init__(
        self,
        store: DocumentStore,
        max_operations: Optional[int] = None,
        retry_executor: Optional[RetryExecutor] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        ceiling = store.max_batch_operations
        if max_operations is not None:
            if max_operations < 1:
                raise ValueError("max_operations must be at least 1")
            ceiling = min(max_operations, ceiling)

        self._store = store
        self._ceiling = ceiling
        self._retry = retry_executor
        self._rate_limiter = rate_limiter
        self._pending: list[Mutation] = []
        self.batches_committed = 0
        self.operations_committed = 0

    @property
    def max_operations(self) -> int:
        return self._ceiling

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def add_operation(self, mutation: Mutation) -> None:
        self._pending.append(mutation)
        if len(self._pending) >= self._ceiling:
            await self.flush()

    async def add_operations(self, mutations: Sequence[Mutation]) -> None:
        """
        Add mutations that must land in the same atomic batch.

        The current batch is flushed first if the group would not fit in it.

        Raises:
            ValueError: If the group alone exceeds the batch ceiling
        """
        if len(mutations) > self._ceiling:
            raise ValueError(
                f"{len(mutations)} mutations cannot share one batch (limit {self._ceiling})"
            )
        if len(self._pending) + len(mutations) > self._ceiling:
            await self.flush()
        self._pending.extend(mutations)
        if len(self._pending) >= self._ceiling:
            await self.flush()

    async def flush(self) -> None:
        """Commit the pending mutations as one batch."""
        if not self._pending:
            return

        mutations, self._pending = self._pending, []
        batch = self._store.batch()
        for mutation in mutations:
            batch.add(mutation)

        try:
            if self._retry is not None and self._rate_limiter is not None:
                await self._rate_limiter.add(lambda: self._retry.execute(batch.commit))
            elif self._retry is not None:
                await self._retry.execute(batch.commit)
            elif self._rate_limiter is not None:
                await self._rate_limiter.add(batch.commit)
            else:
                await batch.commit()
        except Exception as e:
            log.error("batch_commit_failed", operations=len(mutations), error=str(e))
            raise

        self.batches_committed += 1
        self.operations_committed += len(mutations)
        log.debug("batch_committed", operations=len(mutations), batches=self.batches_committed)

    async def commit_all(self) -> None:
        await self.flush()

    def discard(self) -> int:
        """Drop uncommitted mutations and return how many were dropped."""
        dropped = len(self._pending)
        self._pending = []
        return dropped
