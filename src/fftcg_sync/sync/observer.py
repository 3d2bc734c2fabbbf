"""Decision-point callbacks of the sync engine."""

from typing import Any

import structlog

from fftcg_sync.sync.models import BatchResult, SyncCheckpoint, SyncReport, SyncState

log = structlog.stdlib.get_logger()


class SyncObserver:
    """No-op base observer. Override the callbacks you care about.

    The engine calls these after each decision; an observer must not raise.
    """

    def on_state_change(self, state: SyncState, **context: Any) -> None:
        pass

    def on_record_decision(self, record_id: str, decision: str, **context: Any) -> None:
        pass

    def on_batch_completed(self, group_id: int, batch_start: int, result: BatchResult) -> None:
        pass

    def on_checkpoint_saved(self, checkpoint: SyncCheckpoint) -> None:
        pass

    def on_group_failed(self, group_id: int, error: BaseException) -> None:
        pass

    def on_run_finished(self, report: SyncReport) -> None:
        pass

    def on_retry_stats(self, stats: dict[str, int]) -> None:
        pass


class LoggingSyncObserver(SyncObserver):
    """Forwards engine decisions to structlog."""

    def on_state_change(self, state: SyncState, **context: Any) -> None:
        log.debug("sync_state_changed", state=state.value, **context)

    def on_record_decision(self, record_id: str, decision: str, **context: Any) -> None:
        log.debug("record_decision", record_id=record_id, decision=decision, **context)

    def on_batch_completed(self, group_id: int, batch_start: int, result: BatchResult) -> None:
        log.info(
            "batch_completed",
            group_id=group_id,
            batch_start=batch_start,
            processed=result.processed,
            updated=result.updated,
            skipped=result.skipped,
            matched=result.matched,
            errors=len(result.errors),
        )

    def on_checkpoint_saved(self, checkpoint: SyncCheckpoint) -> None:
        log.info(
            "progress_checkpointed",
            group_index=checkpoint.current_group_index,
            card_index=checkpoint.current_card_index,
            total_processed=checkpoint.total_cards_processed,
        )

    def on_group_failed(self, group_id: int, error: BaseException) -> None:
        log.error("group_failed", group_id=group_id, error=str(error), error_type=type(error).__name__)

    def on_run_finished(self, report: SyncReport) -> None:
        log.info("sync_finished", **report.summary())

    def on_retry_stats(self, stats: dict[str, int]) -> None:
        log.info("retry_statistics", **stats)
