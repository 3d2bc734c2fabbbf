"""Run metadata kept in ``syncMetadata/cards``."""

from datetime import datetime
from typing import Callable

import structlog

from fftcg_sync.storage.collections import CARDS, SYNC_METADATA
from fftcg_sync.storage.document_store import DocumentStore
from fftcg_sync.sync.models import SyncReport, utc_now

log = structlog.stdlib.get_logger()

METADATA_DOCUMENT_ID = "cards"
IN_PROGRESS = "in-progress"


class MetadataTracker:
    """Records the status of the latest run.

    Metadata is informational: store failures are logged and never abort
    a sync.
    """

    def __init__(self, store: DocumentStore, now: Callable[[], datetime] = utc_now):
        self._store = store
        self._now = now

    async def _merge(self, data: dict) -> bool:
        try:
            await self._store.set(SYNC_METADATA, METADATA_DOCUMENT_ID, data, merge=True)
        except Exception as e:
            log.warning("failed_to_update_sync_metadata", error=str(e))
            return False
        return True

    async def mark_started(self, run_id: str, start_time: datetime) -> bool:
        return await self._merge(
            {
                "syncStatus": IN_PROGRESS,
                "runId": run_id,
                "startTime": start_time.isoformat(),
                "endTime": None,
                "errors": [],
            }
        )

    async def mark_finished(self, report: SyncReport, group_count: int) -> bool:
        try:
            card_count = await self._store.count(CARDS)
        except Exception as e:
            log.warning("failed_to_count_cards", error=str(e))
            card_count = None

        end_time = report.timing.end_time or self._now()
        written = await self._merge(
            {
                "syncStatus": report.status.value,
                "runId": report.run_id,
                "startTime": report.timing.start_time.isoformat(),
                "endTime": end_time.isoformat(),
                "duration": report.timing.duration_seconds,
                "cardCount": card_count,
                "groupCount": group_count,
                "itemsProcessed": report.items_processed,
                "itemsUpdated": report.items_updated,
                "errors": list(report.errors),
            }
        )
        if written:
            log.info(
                "sync_metadata_updated",
                status=report.status.value,
                card_count=card_count,
                group_count=group_count,
            )
        return written

    async def load(self) -> dict | None:
        return await self._store.get(SYNC_METADATA, METADATA_DOCUMENT_ID)
