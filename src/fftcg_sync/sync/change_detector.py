"""Change detection by comparing fresh fingerprints with stored ones."""

import asyncio
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Optional

import structlog

from fftcg_sync.storage.document_store import DocumentStore, Mutation
from fftcg_sync.sync.fingerprint_cache import FingerprintCache
from fftcg_sync.sync.models import ChangeSet
from fftcg_sync.utils.retry import RetryExecutor

log = structlog.stdlib.get_logger()

DEFAULT_LOOKUP_BATCH_SIZE = 10


class ChangeDetector:
    """
    Decides skip-versus-update for records of one entity type.

    Stored fingerprints live in ``hash_collection`` (document id = record id,
    field ``hash``) and are read through a bounded TTL cache. The caller must
    write a record and its new fingerprint in the same atomic batch (see
    :meth:`fingerprint_mutation`) and call :meth:`remember` once that batch
    has committed.
    """

    def __init__(
        self,
        store: DocumentStore,
        hash_collection: str,
        cache: Optional[FingerprintCache] = None,
        lookup_batch_size: int = DEFAULT_LOOKUP_BATCH_SIZE,
        retry_executor: Optional[RetryExecutor] = None,
    ):
        if lookup_batch_size < 1:
            raise ValueError("lookup_batch_size must be at least 1")
        self._store = store
        self._collection = hash_collection
        self._cache = cache if cache is not None else FingerprintCache()
        self._lookup_batch_size = lookup_batch_size
        self._retry = retry_executor
        self.store_reads = 0

    @property
    def hash_collection(self) -> str:
        return self._collection

    def _cache_key(self, record_id: str) -> str:
        return f"{self._collection}/{record_id}"

    async def get_stored_fingerprints(self, record_ids: Iterable[str]) -> dict[str, Optional[str]]:
        """
        Resolve stored fingerprints for ``record_ids``.

        Cache hits are answered locally; misses are fetched from the store in
        concurrent sub-batches of ``lookup_batch_size`` ids.

        Returns:
            Mapping of id to stored fingerprint (None when never stored)
        """
        ids = list(dict.fromkeys(record_ids))
        result: dict[str, Optional[str]] = {}
        misses: list[str] = []

        for record_id in ids:
            cached = self._cache.get(self._cache_key(record_id))
            if cached is None:
                misses.append(record_id)
            else:
                result[record_id] = cached

        if misses:
            chunks = [
                misses[i : i + self._lookup_batch_size]
                for i in range(0, len(misses), self._lookup_batch_size)
            ]
            fetched = await asyncio.gather(*(self._fetch(chunk) for chunk in chunks))
            for documents in fetched:
                for record_id, document in documents.items():
                    stored = document.get("hash") if document else None
                    result[record_id] = stored
                    if stored:
                        self._cache.set(self._cache_key(record_id), stored)

        log.debug(
            "stored_fingerprints_resolved",
            collection=self._collection,
            requested=len(ids),
            cache_hits=len(ids) - len(misses),
            fetched=len(misses),
        )
        return result

    async def _fetch(self, record_ids: list[str]) -> dict[str, Optional[dict]]:
        self.store_reads += 1
        if self._retry is None:
            return await self._store.get_many(self._collection, record_ids)
        return await self._retry.execute(lambda: self._store.get_many(self._collection, record_ids))

    async def should_update(self, record_id: str, fingerprint: str, force_update: bool = False) -> bool:
        """True if forced, never stored, or the stored fingerprint differs."""
        if force_update:
            return True
        stored = (await self.get_stored_fingerprints([record_id])).get(record_id)
        return stored is None or stored != fingerprint

    async def filter_changed(
        self, fingerprints: Mapping[str, str], force_update: bool = False
    ) -> ChangeSet:
        """Split ``fingerprints`` (id -> fresh fingerprint) into changed and unchanged ids."""
        if force_update:
            return ChangeSet(changed_ids=list(fingerprints))

        stored = await self.get_stored_fingerprints(fingerprints)
        change_set = ChangeSet()
        for record_id, fingerprint in fingerprints.items():
            if stored.get(record_id) == fingerprint:
                change_set.unchanged_ids.append(record_id)
            else:
                change_set.changed_ids.append(record_id)

        log.debug(
            "changes_detected",
            collection=self._collection,
            changed=len(change_set.changed_ids),
            unchanged=len(change_set.unchanged_ids),
        )
        return change_set

    def fingerprint_mutation(self, record_id: str, fingerprint: str) -> Mutation:
        """The fingerprint write to batch together with the record write."""
        return Mutation(
            "set",
            self._collection,
            record_id,
            {"hash": fingerprint, "lastUpdated": datetime.now(timezone.utc).isoformat()},
        )

    def clear_mutation(self, record_id: str) -> Mutation:
        """Deletes the stored fingerprint so the record counts as changed again."""
        return Mutation("delete", self._collection, record_id)

    def remember(self, record_id: str, fingerprint: str) -> None:
        """Record a committed fingerprint in the cache."""
        self._cache.set(self._cache_key(record_id), fingerprint)

    def forget(self, record_id: str) -> None:
        self._cache.invalidate(self._cache_key(record_id))
