"""Persistence of sync checkpoints in the document store."""

from datetime import datetime
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from fftcg_sync.storage.collections import SYNC_METADATA
from fftcg_sync.storage.document_store import DocumentStore
from fftcg_sync.sync.models import SyncCheckpoint, utc_now
from fftcg_sync.utils.errors import CheckpointCorruptedError, CheckpointError

log = structlog.stdlib.get_logger()


class CheckpointTracker:
    """Reads, writes and deletes the ``progress_{run_id}`` checkpoint document."""

    def __init__(
        self,
        store: DocumentStore,
        collection: str = SYNC_METADATA,
        now: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._collection = collection
        self._now = now
        log.debug("checkpoint_tracker_initialized", collection=collection)

    @staticmethod
    def document_id(run_id: str) -> str:
        return f"progress_{run_id}"

    async def load(self, run_id: str) -> Optional[SyncCheckpoint]:
        """
        Load the checkpoint of ``run_id``.

        Returns:
            The stored checkpoint, or None if the run has none

        Raises:
            CheckpointError: If the store read fails
            CheckpointCorruptedError: If the stored document cannot be parsed
        """
        doc_id = self.document_id(run_id)
        try:
            document = await self._store.get(self._collection, doc_id)
        except Exception as e:
            log.error("failed_to_load_checkpoint", run_id=run_id, error=str(e))
            raise CheckpointError(f"Failed to load checkpoint {doc_id}: {e}") from e

        if document is None:
            log.info("no_checkpoint_found", run_id=run_id)
            return None

        try:
            checkpoint = SyncCheckpoint.model_validate(document)
        except ValidationError as e:
            log.error("checkpoint_corrupted", run_id=run_id, error=str(e))
            raise CheckpointCorruptedError(f"Checkpoint {doc_id} is corrupted: {e}") from e

        if checkpoint.run_id != run_id:
            raise CheckpointCorruptedError(
                f"Checkpoint {doc_id} belongs to run {checkpoint.run_id!r}, not {run_id!r}"
            )

        log.info(
            "checkpoint_loaded",
            run_id=run_id,
            group_index=checkpoint.current_group_index,
            card_index=checkpoint.current_card_index,
            total_processed=checkpoint.total_cards_processed,
        )
        return checkpoint

    async def save(self, checkpoint: SyncCheckpoint) -> None:
        """
        Persist ``checkpoint`` (stamping ``last_checkpoint``).

        Raises:
            CheckpointError: If the store write fails
        """
        checkpoint.last_checkpoint = self._now()
        doc_id = self.document_id(checkpoint.run_id)
        try:
            await self._store.set(self._collection, doc_id, checkpoint.to_document())
        except Exception as e:
            log.error("failed_to_save_checkpoint", run_id=checkpoint.run_id, error=str(e))
            raise CheckpointError(f"Failed to save checkpoint {doc_id}: {e}") from e

        log.info(
            "checkpoint_saved",
            run_id=checkpoint.run_id,
            group_index=checkpoint.current_group_index,
            card_index=checkpoint.current_card_index,
            total_processed=checkpoint.total_cards_processed,
        )

    async def delete(self, run_id: str) -> None:
        """
        Raises:
            CheckpointError: If the store delete fails
        """
        doc_id = self.document_id(run_id)
        try:
            await self._store.delete(self._collection, doc_id)
        except Exception as e:
            log.error("failed_to_delete_checkpoint", run_id=run_id, error=str(e))
            raise CheckpointError(f"Failed to delete checkpoint {doc_id}: {e}") from e
        log.info("checkpoint_deleted", run_id=run_id)
