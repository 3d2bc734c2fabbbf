"""Centralized provider module for stores and the wired sync controller.

This module provides factory functions for the document store, the blob
store and a fully assembled CheckpointedSyncController. Developers can
modify these functions to swap implementations without changing other code.

Default implementations:
- DocumentStore: InMemoryDocumentStore (no external services required)
- BlobStore: InMemoryBlobStore
"""

from typing import Optional

import structlog

from fftcg_sync.ingestion.square_enix_client import OfficialCardClient
from fftcg_sync.ingestion.tcgcsv_client import TcgcsvClient
from fftcg_sync.models.config import AppConfig, StoreConfig
from fftcg_sync.processing.image_planner import ImagePlanner, ImageProcessor
from fftcg_sync.storage.batch_writer import BatchWriter
from fftcg_sync.storage.blob_store import BlobStore, InMemoryBlobStore
from fftcg_sync.storage.collections import (
    CARD_HASHES,
    GROUP_HASHES,
    OFFICIAL_CARD_HASHES,
    PRICE_HASHES,
)
from fftcg_sync.storage.document_store import DocumentStore, InMemoryDocumentStore
from fftcg_sync.sync.card_processor import CardBatchProcessor
from fftcg_sync.sync.change_detector import ChangeDetector
from fftcg_sync.sync.checkpoint_tracker import CheckpointTracker
from fftcg_sync.sync.fingerprint_cache import FingerprintCache
from fftcg_sync.sync.metadata_tracker import MetadataTracker
from fftcg_sync.sync.observer import LoggingSyncObserver, SyncObserver
from fftcg_sync.sync.sync_controller import CheckpointedSyncController
from fftcg_sync.utils.rate_limiter import RateLimiter
from fftcg_sync.utils.retry import CircuitBreaker, RetryExecutor, RetryPolicy

log = structlog.stdlib.get_logger()


def get_document_store(config: StoreConfig) -> DocumentStore:
    """Get the configured document store implementation.

    Developers: Add a branch here to plug in a hosted document database.
    The implementation must honour the atomic batch contract of
    :class:`~fftcg_sync.storage.document_store.WriteBatch`.

    Args:
        config: Store configuration

    Returns:
        DocumentStore instance

    Raises:
        ValueError: If the configured store type is unknown
    """
    if config.type == "memory":
        log.info(
            "initializing_document_store",
            provider="memory",
            max_batch_operations=config.max_batch_operations,
        )
        return InMemoryDocumentStore(max_batch_operations=config.max_batch_operations)

    error_msg = f"Unsupported document store type: {config.type}"
    log.error("get_document_store_failed", error=error_msg)
    raise ValueError(error_msg)


def get_blob_store(config: StoreConfig) -> BlobStore:
    """Get the configured blob store implementation.

    Raises:
        ValueError: If the configured blob store type is unknown
    """
    if config.blob_type == "memory":
        log.info("initializing_blob_store", provider="memory")
        return InMemoryBlobStore(public_base_url=config.public_base_url)

    error_msg = f"Unsupported blob store type: {config.blob_type}"
    log.error("get_blob_store_failed", error=error_msg)
    raise ValueError(error_msg)


def get_retry_executor(config: AppConfig, observer: Optional[SyncObserver] = None) -> RetryExecutor:
    retry = config.retry
    return RetryExecutor(
        policy=RetryPolicy(
            max_retries=retry.max_retries,
            initial_delay=retry.initial_delay,
            max_delay=retry.max_delay,
            backoff_factor=retry.backoff_factor,
        ),
        quota_policy=RetryPolicy(
            max_retries=retry.quota_max_retries,
            initial_delay=retry.quota_initial_delay,
            max_delay=retry.quota_max_delay,
            backoff_factor=retry.backoff_factor,
        ),
        circuit_breaker=CircuitBreaker(
            failure_threshold=retry.failure_threshold,
            reset_timeout=retry.reset_timeout,
        ),
        stats_listener=observer,
        stats_interval=retry.stats_interval,
    )


def build_sync_controller(
    config: AppConfig,
    store: Optional[DocumentStore] = None,
    blob_store: Optional[BlobStore] = None,
    image_processor: Optional[ImageProcessor] = None,
    observer: Optional[SyncObserver] = None,
) -> CheckpointedSyncController:
    """Assemble a controller with run-scoped cache, rate limiter and retry executor.

    Every collaborator is constructed here and owned by the returned
    controller; nothing is shared through module-level state.
    """
    observer = observer or LoggingSyncObserver()
    store = store or get_document_store(config.store)
    blob_store = blob_store or get_blob_store(config.store)

    retry_executor = get_retry_executor(config, observer)
    rate_limiter = RateLimiter(
        max_rate=config.rate_limit.max_rate,
        interval=config.rate_limit.interval_seconds,
        max_concurrent_batches=config.rate_limit.max_concurrent_batches,
    )
    cache = FingerprintCache(max_size=config.cache.max_size, ttl_seconds=config.cache.ttl_seconds)

    def detector(collection: str) -> ChangeDetector:
        return ChangeDetector(
            store,
            collection,
            cache=cache,
            lookup_batch_size=config.store.lookup_batch_size,
            retry_executor=retry_executor,
        )

    writer = BatchWriter(
        store,
        max_operations=config.store.max_batch_operations,
        retry_executor=retry_executor,
        rate_limiter=rate_limiter,
    )
    processor = CardBatchProcessor(
        writer,
        card_detector=detector(CARD_HASHES),
        price_detector=detector(PRICE_HASHES),
        group_detector=detector(GROUP_HASHES),
        image_planner=ImagePlanner(blob_store),
        image_processor=image_processor,
        observer=observer,
        official_detector=(
            detector(OFFICIAL_CARD_HASHES) if config.sync.store_official_cards else None
        ),
        record_price_history=config.sync.record_price_history,
    )

    catalog = TcgcsvClient(
        base_url=str(config.tcgcsv.base_url),
        category_id=config.tcgcsv.category_id,
        timeout=config.tcgcsv.timeout,
        user_agent=config.tcgcsv.user_agent,
    )
    official = OfficialCardClient(
        base_url=str(config.official.base_url),
        timeout=config.official.timeout,
        language=config.official.language,
    )

    log.info("sync_controller_assembled", store=config.store.type, blob_store=config.store.blob_type)
    return CheckpointedSyncController(
        catalog=catalog,
        processor=processor,
        checkpoints=CheckpointTracker(store),
        metadata=MetadataTracker(store),
        official=official,
        config=config.sync,
        observer=observer,
    )
