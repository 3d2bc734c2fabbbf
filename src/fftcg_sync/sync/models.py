"""Data models for synchronization operations."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncState(str, Enum):
    """States of the checkpointed sync controller."""

    INITIALIZING = "initializing"
    ENUMERATING_GROUPS = "enumerating_groups"
    PROCESSING_GROUP = "processing_group"
    PROCESSING_BATCH = "processing_batch"
    CHECKPOINTING = "checkpointing"
    COMPLETED = "completed"
    PAUSED_ON_TIMEOUT = "paused_on_timeout"
    FAILED = "failed"


class SyncStatus(str, Enum):
    """Outcome of a run as reported to callers."""

    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    PAUSED = "paused"
    FAILED = "failed"


class SyncCheckpoint(BaseModel):
    """Persisted cursor state of a run. Stored with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    run_id: str = Field(default=..., description="Run identity the checkpoint belongs to")
    current_group_index: int = Field(default=0, ge=0, description="Next group to process")
    current_card_index: int = Field(default=0, ge=0, description="Next record within that group")
    total_groups: int = Field(default=0, ge=0, description="Groups enumerated for the run")
    total_cards_processed: int = Field(default=0, ge=0, description="Records processed so far")
    start_time: datetime = Field(default_factory=utc_now, description="When the run started")
    last_checkpoint: datetime = Field(default_factory=utc_now, description="Last persisted at")

    def advance(self, group_index: int, card_index: int) -> None:
        """
        Move the cursors forward.

        Raises:
            ValueError: If the new position is behind the current one
        """
        if (group_index, card_index) < (self.current_group_index, self.current_card_index):
            raise ValueError(
                f"Checkpoint cursors must not move backwards: "
                f"({self.current_group_index}, {self.current_card_index}) -> "
                f"({group_index}, {card_index})"
            )
        self.current_group_index = group_index
        self.current_card_index = card_index

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SyncOptions(BaseModel):
    """Caller-supplied options for one sync invocation."""

    dry_run: bool = Field(default=False, description="Decide everything, write nothing")
    limit: int | None = Field(default=None, ge=1, description="Stop after this many records")
    group_id: str | None = Field(default=None, description="Only sync this group")
    force_update: bool = Field(default=False, description="Write even when fingerprints match")
    resume: bool = Field(default=False, description="Continue from a stored checkpoint")
    run_id: str | None = Field(default=None, description="Explicit run identity")
    skip_enrichment: bool = Field(
        default=False, description="Do not cross-reference the official source"
    )

    @property
    def effective_run_id(self) -> str:
        return self.run_id or f"incremental_{self.group_id or 'all'}"


class ChangeSet(BaseModel):
    """Ids split by whether their fingerprint changed."""

    changed_ids: list[str] = Field(default_factory=list, description="Ids that need a write")
    unchanged_ids: list[str] = Field(default_factory=list, description="Ids to skip")

    @property
    def has_changes(self) -> bool:
        return bool(self.changed_ids)


class BatchResult(BaseModel):
    """Outcome of one processed sub-batch."""

    processed: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    matched: int = Field(default=0, ge=0)
    prices_updated: int = Field(default=0, ge=0)
    images_pending: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)


class SyncTiming(BaseModel):
    start_time: datetime
    end_time: datetime | None = None
    duration_seconds: float | None = None


class SyncReport(BaseModel):
    """Structured result of a run, returned even on partial failure."""

    run_id: str = Field(default=..., description="Run identity")
    status: SyncStatus = Field(default=..., description="Overall outcome")
    items_processed: int = Field(default=0, ge=0, description="Records examined")
    items_updated: int = Field(default=0, ge=0, description="Records written")
    items_skipped: int = Field(default=0, ge=0, description="Records with unchanged fingerprint")
    matches_found: int = Field(default=0, ge=0, description="Records enriched from official data")
    prices_updated: int = Field(default=0, ge=0, description="Price documents written")
    images_pending: int = Field(default=0, ge=0, description="Records needing image work")
    groups_processed: int = Field(default=0, ge=0, description="Groups finished in this run")
    errors: list[str] = Field(default_factory=list, description="Errors encountered")
    timing: SyncTiming
    checkpoint: SyncCheckpoint | None = Field(
        default=None, description="Checkpoint left behind (paused or failed runs)"
    )

    @property
    def success(self) -> bool:
        """True for completed runs and for paused runs that have not recorded errors."""
        if self.status is SyncStatus.PAUSED:
            return not self.errors
        return self.status is SyncStatus.COMPLETED

    @property
    def paused(self) -> bool:
        return self.status is SyncStatus.PAUSED

    def summary(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "runId": self.run_id,
            "itemsProcessed": self.items_processed,
            "itemsUpdated": self.items_updated,
            "itemsSkipped": self.items_skipped,
            "matchesFound": self.matches_found,
            "pricesUpdated": self.prices_updated,
            "imagesPending": self.images_pending,
            "errors": list(self.errors),
            "timing": self.timing.model_dump(mode="json"),
        }
