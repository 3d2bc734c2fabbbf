"""Property-based tests for the provider module."""

from unittest.mock import patch

import pytest
import requests
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from fftcg_sync.models.config import AppConfig, RetryConfig, StoreConfig
from fftcg_sync.providers import (
    build_sync_controller,
    get_blob_store,
    get_document_store,
    get_retry_executor,
)
from fftcg_sync.storage.blob_store import BlobStore, InMemoryBlobStore
from fftcg_sync.storage.document_store import DocumentStore, InMemoryDocumentStore
from fftcg_sync.sync.models import SyncState
from fftcg_sync.sync.sync_controller import CheckpointedSyncController

log = structlog.stdlib.get_logger()


@given(st.integers(min_value=1, max_value=500))
@settings(max_examples=25)
def test_document_store_honours_batch_limit(max_batch_operations: int):
    """Property: the memory provider returns a DocumentStore carrying the configured ceiling."""
    store = get_document_store(StoreConfig(max_batch_operations=max_batch_operations))

    assert isinstance(store, DocumentStore)
    assert isinstance(store, InMemoryDocumentStore)
    assert store.max_batch_operations == max_batch_operations


def test_blob_store_uses_public_base_url():
    blob_store = get_blob_store(StoreConfig(public_base_url="https://cdn.example.com"))
    assert isinstance(blob_store, BlobStore)
    assert isinstance(blob_store, InMemoryBlobStore)
    assert blob_store.public_url("card-images/1.jpg") == "https://cdn.example.com/card-images/1.jpg"


@pytest.mark.parametrize("field", ["type", "blob_type"])
def test_unknown_store_types_are_rejected(field: str):
    config = StoreConfig(**{field: "firestore"})
    provider = get_document_store if field == "type" else get_blob_store
    with pytest.raises(ValueError, match="firestore"):
        provider(config)


def test_retry_executor_reflects_configuration():
    config = AppConfig(
        retry=RetryConfig(
            max_retries=4,
            initial_delay=0.5,
            max_delay=8.0,
            quota_max_retries=2,
            quota_initial_delay=3.0,
            failure_threshold=7,
            stats_interval=15.0,
        )
    )
    executor = get_retry_executor(config)

    assert executor.policy.max_retries == 4
    assert [executor.policy.delay_for(n) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]
    assert executor.quota_policy.max_retries == 2
    assert executor.quota_policy.initial_delay == 3.0
    assert executor.stats_interval == 15.0
    assert executor.stats_listener is None


def test_build_sync_controller_assembles_without_network():
    controller = build_sync_controller(AppConfig())
    assert isinstance(controller, CheckpointedSyncController)
    assert controller.state is SyncState.INITIALIZING


def test_build_sync_controller_rejects_unknown_store():
    with pytest.raises(ValueError):
        build_sync_controller(AppConfig(store=StoreConfig(type="unknown")))


def test_closing_the_controller_closes_both_http_sessions():
    controller = build_sync_controller(AppConfig())
    with patch.object(requests.Session, "close") as close:
        controller.close()
    assert close.call_count == 2
