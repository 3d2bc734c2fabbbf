"""Synchronization components for checkpointed incremental updates."""

from fftcg_sync.sync.card_processor import CardBatchProcessor
from fftcg_sync.sync.change_detector import ChangeDetector
from fftcg_sync.sync.checkpoint_tracker import CheckpointTracker
from fftcg_sync.sync.fingerprint_cache import FingerprintCache
from fftcg_sync.sync.hasher import fingerprint
from fftcg_sync.sync.metadata_tracker import MetadataTracker
from fftcg_sync.sync.models import SyncCheckpoint, SyncOptions, SyncReport, SyncState, SyncStatus
from fftcg_sync.sync.observer import LoggingSyncObserver, SyncObserver
from fftcg_sync.sync.sync_controller import CheckpointedSyncController

__all__ = [
    "CardBatchProcessor",
    "ChangeDetector",
    "CheckpointTracker",
    "CheckpointedSyncController",
    "FingerprintCache",
    "LoggingSyncObserver",
    "MetadataTracker",
    "SyncCheckpoint",
    "SyncObserver",
    "SyncOptions",
    "SyncReport",
    "SyncState",
    "SyncStatus",
    "fingerprint",
]
