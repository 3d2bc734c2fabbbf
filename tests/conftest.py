"""Shared fixtures and fakes for the sync service tests."""

from datetime import datetime
from typing import Any, Callable

import pytest

from fftcg_sync.models.card import ExternalRecord, Group, PriceRecord
from fftcg_sync.storage.batch_writer import BatchWriter
from fftcg_sync.storage.blob_store import InMemoryBlobStore
from fftcg_sync.storage.collections import (
    CARD_HASHES,
    GROUP_HASHES,
    OFFICIAL_CARD_HASHES,
    PRICE_HASHES,
)
from fftcg_sync.storage.document_store import InMemoryDocumentStore
from fftcg_sync.processing.image_planner import ImagePlanner, ImageProcessor
from fftcg_sync.sync.card_processor import CardBatchProcessor
from fftcg_sync.sync.change_detector import ChangeDetector
from fftcg_sync.sync.fingerprint_cache import FingerprintCache
from fftcg_sync.sync.models import utc_now


def make_product(
    product_id: int,
    group_id: int = 100,
    number: str | None = "1-001H",
    name: str = "Cloud",
    image_url: str | None = None,
    **extended: str,
) -> dict[str, Any]:
    """A raw catalog product as returned by the products endpoint."""
    data = {"Rarity": "Hero", "Cost": "5", "Power": "9000", "Job": "SOLDIER", "Element": "Fire"}
    if number is not None:
        data["Number"] = number
    data.update(extended)
    return {
        "productId": product_id,
        "groupId": group_id,
        "name": name,
        "cleanName": name,
        "imageUrl": image_url,
        "modifiedOn": "2024-01-01T00:00:00",
        "extendedData": [{"name": key, "value": value} for key, value in data.items()],
    }


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCatalog:
    """In-process stand-in for the catalog client."""

    def __init__(
        self,
        groups: list[Group],
        products: dict[int, list[dict[str, Any]]],
        prices: dict[int, list[PriceRecord]] | None = None,
    ):
        self.groups = groups
        self.products = products
        self.prices = prices or {}
        self.failing_groups: set[int] = set()
        self.fail_enumeration = False
        self.product_calls: list[int] = []
        self.on_products = None
        self.closed = False

    async def get_groups(self) -> list[Group]:
        if self.fail_enumeration:
            raise ConnectionError("catalog unreachable")
        return list(self.groups)

    async def get_products(self, group_id: int | str) -> list[dict[str, Any]]:
        group_id = int(group_id)
        self.product_calls.append(group_id)
        if self.on_products is not None:
            self.on_products(group_id)
        if group_id in self.failing_groups:
            raise RuntimeError(f"products of group {group_id} unavailable")
        return list(self.products.get(group_id, []))

    async def get_prices(self, group_id: int | str) -> list[PriceRecord]:
        return list(self.prices.get(int(group_id), []))

    def close(self) -> None:
        self.closed = True


class FakeOfficial:
    def __init__(self, records: list[ExternalRecord] | None = None, error: Exception | None = None):
        self.records = records or []
        self.error = error
        self.calls = 0
        self.closed = False

    async def get_all_cards(self) -> list[ExternalRecord]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.records)

    def close(self) -> None:
        self.closed = True


async def no_sleep(_seconds: float) -> None:
    return None


def build_processor(
    store: InMemoryDocumentStore,
    blob_store: InMemoryBlobStore | None = None,
    cache: FingerprintCache | None = None,
    image_processor: ImageProcessor | None = None,
    store_official_cards: bool = False,
    now: Callable[[], datetime] = utc_now,
) -> CardBatchProcessor:
    cache = cache or FingerprintCache()
    return CardBatchProcessor(
        BatchWriter(store),
        card_detector=ChangeDetector(store, CARD_HASHES, cache=cache),
        price_detector=ChangeDetector(store, PRICE_HASHES, cache=cache),
        group_detector=ChangeDetector(store, GROUP_HASHES, cache=cache),
        image_planner=ImagePlanner(blob_store) if blob_store is not None else None,
        image_processor=image_processor,
        official_detector=(
            ChangeDetector(store, OFFICIAL_CARD_HASHES, cache=cache) if store_official_cards else None
        ),
        now=now,
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore(public_base_url="https://blobs.example.com")
