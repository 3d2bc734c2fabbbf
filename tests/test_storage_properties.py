"""Tests for the document store, blob store, batch writer and rate limiter."""

import asyncio
import math

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import FakeClock
from fftcg_sync.storage.batch_writer import BatchWriter
from fftcg_sync.storage.blob_store import InMemoryBlobStore
from fftcg_sync.storage.document_store import InMemoryDocumentStore, Mutation
from fftcg_sync.utils.errors import BatchCommitError, TransientError
from fftcg_sync.utils.rate_limiter import RateLimiter
from fftcg_sync.utils.retry import RetryExecutor, RetryPolicy


class RecordingStore(InMemoryDocumentStore):
    """In-memory store that remembers the size of every committed batch."""

    def __init__(self, max_batch_operations: int = 500):
        super().__init__(max_batch_operations)
        self.batch_sizes: list[int] = []
        self.fail_next_commits = 0

    async def _apply(self, mutations, counted=True):
        if counted and self.fail_next_commits:
            self.fail_next_commits -= 1
            raise TransientError("14 UNAVAILABLE")
        await super()._apply(mutations, counted)
        if counted:
            self.batch_sizes.append(len(mutations))


def set_mutation(i: int) -> Mutation:
    return Mutation("set", "cards", str(i), {"n": i})


class TestBatchWriter:
    """Property: k operations under ceiling c commit in exactly ceil(k/c) batches."""

    @given(k=st.integers(min_value=0, max_value=120), c=st.integers(min_value=1, max_value=25))
    @settings(max_examples=100, deadline=None)
    def test_batch_count_and_last_batch_size(self, k: int, c: int) -> None:
        async def scenario() -> RecordingStore:
            store = RecordingStore(max_batch_operations=c)
            writer = BatchWriter(store)
            for i in range(k):
                await writer.add_operation(set_mutation(i))
            await writer.commit_all()
            return store

        store = asyncio.run(scenario())
        assert len(store.batch_sizes) == math.ceil(k / c)
        if k:
            assert store.batch_sizes[-1] == (k % c or c)
            assert all(size == c for size in store.batch_sizes[:-1])
        assert len(store.snapshot("cards")) == k

    async def test_ceiling_is_the_smaller_limit(self) -> None:
        writer = BatchWriter(InMemoryDocumentStore(max_batch_operations=500), max_operations=20)
        assert writer.max_operations == 20
        with pytest.raises(ValueError):
            BatchWriter(InMemoryDocumentStore(), max_operations=0)

    async def test_grouped_mutations_share_a_batch(self) -> None:
        store = RecordingStore(max_batch_operations=5)
        writer = BatchWriter(store)
        for i in range(4):
            await writer.add_operation(set_mutation(i))
        await writer.add_operations([set_mutation(10), set_mutation(11)])
        await writer.commit_all()

        assert store.batch_sizes == [4, 2]

    async def test_oversized_group_is_rejected(self) -> None:
        writer = BatchWriter(RecordingStore(max_batch_operations=2))
        with pytest.raises(ValueError):
            await writer.add_operations([set_mutation(i) for i in range(3)])

    async def test_failed_commit_propagates_and_applies_nothing(self) -> None:
        store = RecordingStore()
        store.fail_next_commits = 1
        writer = BatchWriter(store)
        await writer.add_operations([set_mutation(1), set_mutation(2)])

        with pytest.raises(TransientError):
            await writer.commit_all()
        assert store.snapshot("cards") == {}
        assert writer.pending == 0
        assert writer.batches_committed == 0

    async def test_commit_goes_through_retry_and_rate_limiter(self) -> None:
        async def no_sleep(_):
            return None

        store = RecordingStore()
        store.fail_next_commits = 2
        writer = BatchWriter(
            store,
            retry_executor=RetryExecutor(policy=RetryPolicy(max_retries=3), sleep=no_sleep),
            rate_limiter=RateLimiter(max_rate=10, sleep=no_sleep),
        )
        await writer.add_operation(set_mutation(1))
        await writer.commit_all()

        assert store.batch_sizes == [1]
        assert writer.operations_committed == 1

    async def test_discard_drops_pending_mutations(self) -> None:
        writer = BatchWriter(RecordingStore())
        await writer.add_operation(set_mutation(1))
        assert writer.discard() == 1
        await writer.commit_all()
        assert writer.batches_committed == 0


class TestInMemoryDocumentStore:
    async def test_batch_is_all_or_nothing(self) -> None:
        store = InMemoryDocumentStore()
        batch = store.batch()
        batch.set("cards", "1", {"name": "Cloud"})
        batch.update("cards", "missing", {"name": "Tifa"})

        with pytest.raises(BatchCommitError):
            await batch.commit()
        assert await store.get("cards", "1") is None
        assert store.commit_count == 0

    async def test_batch_limit_is_enforced(self) -> None:
        store = InMemoryDocumentStore(max_batch_operations=2)
        batch = store.batch()
        batch.set("cards", "1", {})
        batch.set("cards", "2", {})
        with pytest.raises(ValueError):
            batch.set("cards", "3", {})

    async def test_merge_set_keeps_other_fields(self) -> None:
        store = InMemoryDocumentStore()
        await store.set("cards", "1", {"name": "Cloud", "cost": "5"})
        await store.set("cards", "1", {"cost": "6"}, merge=True)
        assert await store.get("cards", "1") == {"name": "Cloud", "cost": "6"}

        await store.set("cards", "1", {"cost": "7"})
        assert await store.get("cards", "1") == {"cost": "7"}

    async def test_update_requires_existing_document(self) -> None:
        store = InMemoryDocumentStore()
        with pytest.raises(KeyError):
            await store.update("cards", "1", {"cost": "5"})

    async def test_documents_are_copied(self) -> None:
        store = InMemoryDocumentStore()
        data = {"elements": ["Fire"]}
        await store.set("cards", "1", data)
        data["elements"].append("Ice")
        fetched = await store.get("cards", "1")
        fetched["elements"].append("Wind")
        assert await store.get("cards", "1") == {"elements": ["Fire"]}

    async def test_scan_orders_and_paginates(self) -> None:
        store = InMemoryDocumentStore()
        for doc_id, rank in [("a", 3), ("b", 1), ("c", 2), ("d", None)]:
            await store.set("cards", doc_id, {"rank": rank})

        page = await store.scan("cards", order_by="rank", limit=2)
        assert [doc_id for doc_id, _ in page] == ["b", "c"]
        rest = await store.scan("cards", order_by="rank", start_after=2)
        assert [doc_id for doc_id, _ in rest] == ["a"]
        by_id = await store.scan("cards")
        assert [doc_id for doc_id, _ in by_id] == ["a", "b", "c", "d"]

    async def test_get_many_and_count(self) -> None:
        store = InMemoryDocumentStore()
        await store.set("cards", "1", {"n": 1})
        assert await store.get_many("cards", ["1", "2"]) == {"1": {"n": 1}, "2": None}
        assert await store.count("cards") == 1
        await store.delete("cards", "1")
        assert await store.count("cards") == 0


class TestInMemoryBlobStore:
    async def test_upload_and_exists(self) -> None:
        blobs = InMemoryBlobStore(public_base_url="https://cdn.example.com/")
        assert not await blobs.exists("a.jpg")

        url = await blobs.upload("a.jpg", b"data", {"contentType": "image/jpeg"})
        assert url == "https://cdn.example.com/a.jpg"
        assert await blobs.exists("a.jpg")
        assert blobs.metadata("a.jpg") == {"contentType": "image/jpeg"}
        assert len(blobs) == 1


class TestRateLimiter:
    async def test_releases_interval_sized_batches(self) -> None:
        sleeps: list[float] = []
        started: list[int] = []

        async def record_sleep(seconds: float) -> None:
            sleeps.append(seconds)

        limiter = RateLimiter(max_rate=2, interval=1.0, sleep=record_sleep, clock=FakeClock())

        def operation(i: int):
            async def run() -> int:
                started.append(i)
                return i * 10

            return run

        results = await asyncio.gather(*(limiter.add(operation(i)) for i in range(5)))
        await limiter.drain()

        assert limiter.batch_size == 2
        assert results == [0, 10, 20, 30, 40]
        assert started == [0, 1, 2, 3, 4]
        assert sleeps == [1.0, 1.0]
        assert limiter.pending == 0

    async def test_failure_only_fails_its_caller(self) -> None:
        async def no_sleep(_):
            return None

        limiter = RateLimiter(max_rate=10, sleep=no_sleep)

        async def ok() -> str:
            return "ok"

        async def broken() -> str:
            raise TransientError("boom")

        results = await asyncio.gather(limiter.add(ok), limiter.add(broken), return_exceptions=True)
        assert results[0] == "ok"
        assert isinstance(results[1], TransientError)

    def test_rejects_invalid_configuration(self) -> None:
        with pytest.raises(ValueError):
            RateLimiter(max_rate=0)
        with pytest.raises(ValueError):
            RateLimiter(max_concurrent_batches=0)
