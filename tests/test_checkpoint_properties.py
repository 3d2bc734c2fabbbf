"""Tests for checkpoint persistence and run metadata."""

from datetime import datetime, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from fftcg_sync.storage.collections import CARDS, SYNC_METADATA
from fftcg_sync.storage.document_store import InMemoryDocumentStore
from fftcg_sync.sync.checkpoint_tracker import CheckpointTracker
from fftcg_sync.sync.metadata_tracker import MetadataTracker
from fftcg_sync.sync.models import SyncCheckpoint, SyncReport, SyncStatus, SyncTiming
from fftcg_sync.utils.errors import CheckpointCorruptedError, CheckpointError

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class BrokenStore(InMemoryDocumentStore):
    async def get(self, collection, doc_id):
        raise ConnectionError("store offline")

    async def set(self, collection, doc_id, data, merge=False):
        raise ConnectionError("store offline")


class TestSyncCheckpoint:
    """Property: cursors never move backwards."""

    @given(
        start=st.tuples(st.integers(0, 50), st.integers(0, 500)),
        target=st.tuples(st.integers(0, 50), st.integers(0, 500)),
    )
    @settings(max_examples=200)
    def test_advance_is_monotonic(self, start: tuple[int, int], target: tuple[int, int]) -> None:
        checkpoint = SyncCheckpoint(
            run_id="r", current_group_index=start[0], current_card_index=start[1]
        )
        if target < start:
            with pytest.raises(ValueError):
                checkpoint.advance(*target)
            assert (checkpoint.current_group_index, checkpoint.current_card_index) == start
        else:
            checkpoint.advance(*target)
            assert (checkpoint.current_group_index, checkpoint.current_card_index) == target

    def test_document_uses_camel_case(self) -> None:
        document = SyncCheckpoint(run_id="r", start_time=FIXED_NOW).to_document()
        assert set(document) == {
            "runId",
            "currentGroupIndex",
            "currentCardIndex",
            "totalGroups",
            "totalCardsProcessed",
            "startTime",
            "lastCheckpoint",
        }
        assert SyncCheckpoint.model_validate(document).start_time == FIXED_NOW


class TestCheckpointTracker:
    async def test_save_load_delete(self) -> None:
        store = InMemoryDocumentStore()
        tracker = CheckpointTracker(store, now=lambda: FIXED_NOW)
        checkpoint = SyncCheckpoint(
            run_id="incremental_all", current_group_index=2, current_card_index=50
        )

        await tracker.save(checkpoint)
        stored = await store.get(SYNC_METADATA, "progress_incremental_all")
        assert stored["currentGroupIndex"] == 2
        assert stored["lastCheckpoint"] == FIXED_NOW.isoformat().replace("+00:00", "Z")

        loaded = await tracker.load("incremental_all")
        assert loaded.current_card_index == 50
        assert loaded.last_checkpoint == FIXED_NOW

        await tracker.delete("incremental_all")
        assert await tracker.load("incremental_all") is None

    async def test_corrupted_checkpoint_is_a_hard_failure(self) -> None:
        store = InMemoryDocumentStore()
        await store.set(SYNC_METADATA, "progress_r", {"runId": "r", "currentGroupIndex": "many"})
        with pytest.raises(CheckpointCorruptedError):
            await CheckpointTracker(store).load("r")

    async def test_checkpoint_of_another_run_is_corrupted(self) -> None:
        store = InMemoryDocumentStore()
        await store.set(SYNC_METADATA, "progress_r", {"runId": "other"})
        with pytest.raises(CheckpointCorruptedError):
            await CheckpointTracker(store).load("r")

    async def test_store_failures_are_checkpoint_errors(self) -> None:
        tracker = CheckpointTracker(BrokenStore())
        with pytest.raises(CheckpointError):
            await tracker.load("r")
        with pytest.raises(CheckpointError):
            await tracker.save(SyncCheckpoint(run_id="r"))


def make_report(status: SyncStatus = SyncStatus.COMPLETED, errors: list[str] | None = None) -> SyncReport:
    return SyncReport(
        run_id="incremental_all",
        status=status,
        items_processed=3,
        items_updated=2,
        errors=errors or [],
        timing=SyncTiming(start_time=FIXED_NOW, end_time=FIXED_NOW, duration_seconds=0.0),
    )


class TestMetadataTracker:
    async def test_run_lifecycle(self) -> None:
        store = InMemoryDocumentStore()
        await store.set(CARDS, "1", {"name": "Cloud"})
        tracker = MetadataTracker(store)

        assert await tracker.mark_started("incremental_all", FIXED_NOW)
        assert (await tracker.load())["syncStatus"] == "in-progress"

        assert await tracker.mark_finished(make_report(errors=["Group 3: boom"]), group_count=4)
        metadata = await tracker.load()
        assert metadata["syncStatus"] == "completed"
        assert metadata["cardCount"] == 1
        assert metadata["groupCount"] == 4
        assert metadata["itemsUpdated"] == 2
        assert metadata["errors"] == ["Group 3: boom"]

    async def test_store_failures_are_not_raised(self) -> None:
        tracker = MetadataTracker(BrokenStore())
        assert not await tracker.mark_started("r", FIXED_NOW)
        assert not await tracker.mark_finished(make_report(SyncStatus.FAILED), group_count=0)


class TestSyncReport:
    @pytest.mark.parametrize(
        "status, success",
        [
            (SyncStatus.COMPLETED, True),
            (SyncStatus.PAUSED, True),
            (SyncStatus.COMPLETED_WITH_ERRORS, False),
            (SyncStatus.FAILED, False),
        ],
    )
    def test_success_flag(self, status: SyncStatus, success: bool) -> None:
        report = make_report(status)
        assert report.success is success
        assert report.summary()["success"] is success
        assert report.summary()["itemsUpdated"] == 2

    def test_paused_run_with_errors_is_not_successful(self) -> None:
        report = make_report(SyncStatus.PAUSED, errors=["Group 100: products unavailable"])
        assert report.paused
        assert not report.success
        assert report.summary()["success"] is False
