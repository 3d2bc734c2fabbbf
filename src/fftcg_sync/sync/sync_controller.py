"""Checkpointed, timeout-aware incremental sync of the card catalog."""

import asyncio
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Protocol

import structlog

from fftcg_sync.matching.matcher import CardMatcher
from fftcg_sync.models.card import ExternalRecord, Group, PriceRecord
from fftcg_sync.models.config import SyncConfig
from fftcg_sync.sync.card_processor import CardBatchProcessor
from fftcg_sync.sync.checkpoint_tracker import CheckpointTracker
from fftcg_sync.sync.metadata_tracker import MetadataTracker
from fftcg_sync.sync.models import (
    BatchResult,
    SyncCheckpoint,
    SyncOptions,
    SyncReport,
    SyncState,
    SyncStatus,
    SyncTiming,
    utc_now,
)
from fftcg_sync.sync.observer import SyncObserver
from fftcg_sync.utils.errors import CheckpointCorruptedError, CheckpointError, ErrorKind, classify_error
from fftcg_sync.utils.logging_config import bind_run_context
from fftcg_sync.utils.retry import RetryPolicy

log = structlog.stdlib.get_logger()


class CatalogSource(Protocol):
    async def get_groups(self) -> list[Group]: ...

    async def get_products(self, group_id: int | str) -> list[dict[str, Any]]: ...

    async def get_prices(self, group_id: int | str) -> list[PriceRecord]: ...


class OfficialSource(Protocol):
    async def get_all_cards(self) -> list[ExternalRecord]: ...


class _RunTotals:
    def __init__(self) -> None:
        self.processed = 0
        self.updated = 0
        self.skipped = 0
        self.matched = 0
        self.prices_updated = 0
        self.images_pending = 0
        self.groups_processed = 0
        self.errors: list[str] = []

    def add(self, result: BatchResult) -> None:
        self.processed += result.processed
        self.updated += result.updated
        self.skipped += result.skipped
        self.matched += result.matched
        self.images_pending += result.images_pending
        self.errors.extend(result.errors)


class _LimitReached(Exception):
    pass


class _PauseRequested(Exception):
    pass


def _rewound(checkpoint: SyncCheckpoint, position: tuple[int, int]) -> SyncCheckpoint:
    """A copy of ``checkpoint`` whose cursors point back at ``position``."""
    group_index, card_index = position
    return SyncCheckpoint(
        run_id=checkpoint.run_id,
        current_group_index=group_index,
        current_card_index=card_index,
        total_groups=checkpoint.total_groups,
        total_cards_processed=checkpoint.total_cards_processed,
        start_time=checkpoint.start_time,
    )


class CheckpointedSyncController:
    """
    Walks groups and their records in fixed-size sub-batches.

    Progress is checkpointed every ``checkpoint_interval`` processed items.
    Before each group and each sub-batch the elapsed time of this invocation
    is checked against ``max_execution_seconds - safety_margin_seconds``;
    when exceeded, the position is checkpointed and a paused report is
    returned. A group that fails is recorded and skipped; the checkpoint is
    kept so a later ``resume`` can retry it.
    """

    def __init__(
        self,
        catalog: CatalogSource,
        processor: CardBatchProcessor,
        checkpoints: CheckpointTracker,
        metadata: Optional[MetadataTracker] = None,
        official: Optional[OfficialSource] = None,
        config: Optional[SyncConfig] = None,
        observer: Optional[SyncObserver] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
    ):
        self._catalog = catalog
        self._processor = processor
        self._checkpoints = checkpoints
        self._metadata = metadata
        self._official = official
        self._config = config or SyncConfig()
        self._observer = observer or SyncObserver()
        self._sleep = sleep
        self._clock = clock
        self._now = now
        self._batch_retry = RetryPolicy(
            max_retries=self._config.max_batch_attempts - 1,
            initial_delay=2.0,
            max_delay=self._config.batch_backoff_max_seconds,
        )
        self._started = 0.0
        self.state = SyncState.INITIALIZING

    @property
    def execution_budget(self) -> float:
        return max(0.0, self._config.max_execution_seconds - self._config.safety_margin_seconds)

    def _transition(self, state: SyncState, **context: Any) -> None:
        self.state = state
        self._observer.on_state_change(state, **context)

    def _timed_out(self) -> bool:
        return self._clock() - self._started >= self.execution_budget

    async def run(self, options: Optional[SyncOptions] = None) -> SyncReport:
        """
        Run (or resume) a sync.

        Returns:
            SyncReport; ``status`` is ``paused`` when the execution budget ran
            out and ``failed`` when groups could not be enumerated

        Raises:
            CheckpointCorruptedError: If the stored checkpoint is unreadable
        """
        options = options or SyncOptions()
        run_id = options.effective_run_id
        bind_run_context(run_id=run_id)
        self._started = self._clock()
        start_time = self._now()
        totals = _RunTotals()

        self._transition(SyncState.INITIALIZING, resume=options.resume, dry_run=options.dry_run)
        log.info("sync_started", options=options.model_dump())

        checkpoint: Optional[SyncCheckpoint] = None
        if options.resume:
            try:
                checkpoint = await self._checkpoints.load(run_id)
            except CheckpointCorruptedError:
                self._transition(SyncState.FAILED)
                raise
            except CheckpointError as e:
                totals.errors.append(str(e))
                return await self._finish(
                    run_id, SyncStatus.FAILED, totals, start_time, options, None, 0
                )
        if checkpoint is None:
            checkpoint = SyncCheckpoint(run_id=run_id, start_time=start_time)

        if self._metadata is not None and not options.dry_run:
            await self._metadata.mark_started(run_id, start_time)

        self._transition(SyncState.ENUMERATING_GROUPS)
        try:
            groups = await self._catalog.get_groups()
        except Exception as e:
            log.error("failed_to_enumerate_groups", error=str(e))
            totals.errors.append(f"Failed to enumerate groups: {e}")
            return await self._finish(run_id, SyncStatus.FAILED, totals, start_time, options, None, 0)

        if options.group_id is not None:
            groups = [g for g in groups if str(g.group_id) == str(options.group_id)]
            if not groups:
                totals.errors.append(f"Group {options.group_id} not found")
                return await self._finish(
                    run_id, SyncStatus.FAILED, totals, start_time, options, None, 0
                )
        checkpoint.total_groups = len(groups)

        try:
            await self._processor.process_groups(groups, options)
        except Exception as e:
            self._processor.discard_pending()
            log.warning("failed_to_write_groups", error=str(e))
            totals.errors.append(f"Failed to write groups: {e}")

        matcher = await self._load_matcher(options, totals)

        since_checkpoint = 0
        failures: list[tuple[int, int]] = []
        first_group = checkpoint.current_group_index

        try:
            for group_index in range(first_group, len(groups)):
                group = groups[group_index]
                card_index = checkpoint.current_card_index if group_index == first_group else 0
                checkpoint.advance(group_index, card_index)

                if self._timed_out():
                    return await self._pause(
                        checkpoint, totals, start_time, options, len(groups), failures
                    )

                self._transition(
                    SyncState.PROCESSING_GROUP, group_id=group.group_id, group_index=group_index
                )
                try:
                    since_checkpoint = await self._sync_group(
                        group, group_index, checkpoint, options, matcher, totals, since_checkpoint
                    )
                except _PauseRequested:
                    return await self._pause(
                        checkpoint, totals, start_time, options, len(groups), failures
                    )
                except (CheckpointCorruptedError, _LimitReached):
                    raise
                except Exception as e:
                    self._transition(SyncState.FAILED, group_id=group.group_id)
                    self._processor.discard_pending()
                    self._observer.on_group_failed(group.group_id, e)
                    totals.errors.append(f"Group {group.group_id}: {e}")
                    failures.append((group_index, checkpoint.current_card_index))
                    await self._save_quietly(checkpoint, options, totals)
                else:
                    totals.groups_processed += 1
                    log.info(
                        "group_processed",
                        group_id=group.group_id,
                        group_index=group_index,
                        processed=totals.processed,
                    )
                checkpoint.advance(group_index + 1, 0)
        except _LimitReached:
            log.info("sync_limit_reached", limit=options.limit, processed=totals.processed)

        status = SyncStatus.COMPLETED_WITH_ERRORS if totals.errors else SyncStatus.COMPLETED
        remaining: Optional[SyncCheckpoint] = None
        if not options.dry_run:
            if failures:
                remaining = _rewound(checkpoint, failures[0])
                await self._save_quietly(remaining, options, totals)
            else:
                try:
                    await self._checkpoints.delete(run_id)
                except CheckpointError as e:
                    totals.errors.append(str(e))
                    status = SyncStatus.COMPLETED_WITH_ERRORS

        self._transition(SyncState.COMPLETED)
        return await self._finish(run_id, status, totals, start_time, options, remaining, len(groups))

    async def _sync_group(
        self,
        group: Group,
        group_index: int,
        checkpoint: SyncCheckpoint,
        options: SyncOptions,
        matcher: Optional[CardMatcher],
        totals: _RunTotals,
        since_checkpoint: int,
    ) -> int:
        products = await self._catalog.get_products(group.group_id)
        batch_size = self._config.cards_per_batch
        start = checkpoint.current_card_index

        while start < len(products):
            if self._timed_out():
                raise _PauseRequested()

            end = min(start + batch_size, len(products))
            if options.limit is not None:
                end = min(end, start + options.limit - totals.processed)
            batch = products[start:end]

            self._transition(
                SyncState.PROCESSING_BATCH, group_id=group.group_id, batch_start=start
            )
            result = await self._process_with_retry(batch, options, matcher)
            totals.add(result)
            self._observer.on_batch_completed(group.group_id, start, result)

            checkpoint.total_cards_processed += result.processed
            checkpoint.advance(group_index, end)
            since_checkpoint += result.processed

            if since_checkpoint >= self._config.checkpoint_interval:
                self._transition(SyncState.CHECKPOINTING)
                if not options.dry_run:
                    await self._checkpoints.save(checkpoint)
                    self._observer.on_checkpoint_saved(checkpoint)
                since_checkpoint = 0

            if options.limit is not None and totals.processed >= options.limit:
                raise _LimitReached()

            start = end
            if start < len(products) and self._config.delay_between_batches > 0:
                await self._sleep(self._config.delay_between_batches)

        prices = await self._catalog.get_prices(group.group_id)
        totals.prices_updated += await self._processor.process_prices(prices, options)
        return since_checkpoint

    async def _process_with_retry(
        self,
        batch: list[dict[str, Any]],
        options: SyncOptions,
        matcher: Optional[CardMatcher],
    ) -> BatchResult:
        attempt = 0
        while True:
            try:
                return await self._processor.process_cards(batch, options, matcher)
            except Exception as e:
                self._processor.discard_pending()
                kind = classify_error(e)
                if kind is ErrorKind.NON_RETRYABLE or attempt >= self._batch_retry.max_retries:
                    raise
                delay = self._batch_retry.delay_for(attempt)
                attempt += 1
                log.warning(
                    "batch_retry_scheduled",
                    attempt=attempt,
                    kind=kind.value,
                    delay_seconds=delay,
                    error=str(e),
                )
                await self._sleep(delay)

    async def _load_matcher(self, options: SyncOptions, totals: _RunTotals) -> Optional[CardMatcher]:
        if (
            options.skip_enrichment
            or not self._config.enrich_with_official_data
            or self._official is None
        ):
            return None
        try:
            externals = await self._official.get_all_cards()
        except Exception as e:
            log.warning("official_data_unavailable", error=str(e))
            totals.errors.append(f"Official data unavailable, enrichment skipped: {e}")
            return None
        log.info("official_data_loaded", count=len(externals))
        try:
            await self._processor.process_official_cards(externals, options)
        except Exception as e:
            self._processor.discard_pending()
            log.warning("failed_to_write_official_cards", error=str(e))
            totals.errors.append(f"Failed to write official cards: {e}")
        return CardMatcher(externals)

    def close(self) -> None:
        """Release the HTTP sessions held by the catalog and official clients."""
        for client in (self._catalog, self._official):
            close = getattr(client, "close", None)
            if close is not None:
                close()

    async def _save_quietly(
        self, checkpoint: SyncCheckpoint, options: SyncOptions, totals: _RunTotals
    ) -> None:
        if options.dry_run:
            return
        try:
            await self._checkpoints.save(checkpoint)
        except CheckpointError as e:
            totals.errors.append(str(e))
        else:
            self._observer.on_checkpoint_saved(checkpoint)

    async def _pause(
        self,
        checkpoint: SyncCheckpoint,
        totals: _RunTotals,
        start_time: datetime,
        options: SyncOptions,
        group_count: int,
        failures: list[tuple[int, int]],
    ) -> SyncReport:
        self._transition(
            SyncState.PAUSED_ON_TIMEOUT,
            group_index=checkpoint.current_group_index,
            card_index=checkpoint.current_card_index,
        )
        log.warning(
            "sync_paused_on_timeout",
            elapsed_seconds=self._clock() - self._started,
            budget_seconds=self.execution_budget,
            group_index=checkpoint.current_group_index,
            card_index=checkpoint.current_card_index,
            failed_groups=len(failures),
        )
        if failures:
            # Resume must retry the earliest failed group
            checkpoint = _rewound(checkpoint, failures[0])
        status = SyncStatus.PAUSED
        if not options.dry_run:
            try:
                await self._checkpoints.save(checkpoint)
            except CheckpointError as e:
                # Without a checkpoint the pause cannot be resumed
                totals.errors.append(str(e))
                status = SyncStatus.FAILED
            else:
                self._observer.on_checkpoint_saved(checkpoint)
        return await self._finish(
            checkpoint.run_id, status, totals, start_time, options, checkpoint, group_count
        )

    async def _finish(
        self,
        run_id: str,
        status: SyncStatus,
        totals: _RunTotals,
        start_time: datetime,
        options: SyncOptions,
        checkpoint: Optional[SyncCheckpoint],
        group_count: int,
    ) -> SyncReport:
        if status is SyncStatus.FAILED:
            self._transition(SyncState.FAILED)

        end_time = self._now()
        report = SyncReport(
            run_id=run_id,
            status=status,
            items_processed=totals.processed,
            items_updated=totals.updated,
            items_skipped=totals.skipped,
            matches_found=totals.matched,
            prices_updated=totals.prices_updated,
            images_pending=totals.images_pending,
            groups_processed=totals.groups_processed,
            errors=list(totals.errors),
            timing=SyncTiming(
                start_time=start_time,
                end_time=end_time,
                duration_seconds=(end_time - start_time).total_seconds(),
            ),
            checkpoint=checkpoint,
        )

        if self._metadata is not None and not options.dry_run:
            await self._metadata.mark_finished(report, group_count)
        self._observer.on_run_finished(report)
        return report

