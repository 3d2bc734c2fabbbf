"""Document store interface and the bundled in-memory implementation."""

import asyncio
import copy
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

import structlog

from fftcg_sync.utils.errors import BatchCommitError

log = structlog.stdlib.get_logger()

Document = dict[str, Any]

DEFAULT_MAX_BATCH_OPERATIONS = 500


@dataclass
class Mutation:
    """One write queued in a batch."""

    kind: Literal["set", "update", "delete"]
    collection: str
    doc_id: str
    data: Document = field(default_factory=dict)
    merge: bool = False


class WriteBatch(ABC):
    """An atomic group of mutations: either all are applied or none are.

    Implementations reject a commit with more than ``max_operations``
    mutations.
    """

    def __init__(self, max_operations: int = DEFAULT_MAX_BATCH_OPERATIONS):
        self.max_operations = max_operations
        self._mutations: list[Mutation] = []

    def set(self, collection: str, doc_id: str, data: Document, merge: bool = False) -> None:
        self.add(Mutation("set", collection, doc_id, dict(data), merge))

    def update(self, collection: str, doc_id: str, data: Document) -> None:
        self.add(Mutation("update", collection, doc_id, dict(data)))

    def delete(self, collection: str, doc_id: str) -> None:
        self.add(Mutation("delete", collection, doc_id))

    def add(self, mutation: Mutation) -> None:
        if len(self._mutations) >= self.max_operations:
            raise ValueError(
                f"Batch already holds {self.max_operations} operations; commit it first"
            )
        self._mutations.append(mutation)

    @property
    def mutations(self) -> list[Mutation]:
        return list(self._mutations)

    def __len__(self) -> int:
        return len(self._mutations)

    @abstractmethod
    async def commit(self) -> None:
        """Apply every queued mutation atomically.

        Raises:
            BatchCommitError: If the store rejects the batch; nothing was applied
        """
        pass


class DocumentStore(ABC):
    """Abstract interface for the document store.

    The store is the source of truth for records, fingerprints, checkpoints
    and run metadata. Its batch primitive is the only atomicity guarantee
    the sync engine relies on.
    """

    max_batch_operations: int = DEFAULT_MAX_BATCH_OPERATIONS

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        """Point read. Returns None when the document does not exist."""
        pass

    async def get_many(self, collection: str, doc_ids: Iterable[str]) -> dict[str, Optional[Document]]:
        """Read several documents. Missing documents map to None."""
        ids = list(doc_ids)
        documents = await asyncio.gather(*(self.get(collection, doc_id) for doc_id in ids))
        return dict(zip(ids, documents))

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Document, merge: bool = False) -> None:
        """Create or overwrite a document (or merge into it when ``merge`` is set)."""
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: Document) -> None:
        """Update fields of an existing document.

        Raises:
            KeyError: If the document does not exist
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        pass

    @abstractmethod
    async def scan(
        self,
        collection: str,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        start_after: Any = None,
    ) -> list[tuple[str, Document]]:
        """Ordered, paginated collection scan.

        Args:
            collection: Collection to scan
            order_by: Field to order by; document id when None
            limit: Maximum number of documents to return
            start_after: Return only documents ordered after this key value

        Returns:
            List of (document id, document) pairs
        """
        pass

    @abstractmethod
    async def count(self, collection: str) -> int:
        pass

    @abstractmethod
    def batch(self) -> WriteBatch:
        """Start a new atomic batch."""
        pass


class InMemoryWriteBatch(WriteBatch):
    def __init__(self, store: "InMemoryDocumentStore"):
        super().__init__(store.max_batch_operations)
        self._store = store

    async def commit(self) -> None:
        await self._store._apply(self._mutations)


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed document store with atomic batch commits.

    Suitable for local runs, dry runs and tests. Documents are copied on the
    way in and on the way out so callers never share state with the store.
    """

    def __init__(self, max_batch_operations: int = DEFAULT_MAX_BATCH_OPERATIONS):
        if max_batch_operations < 1:
            raise ValueError("max_batch_operations must be at least 1")
        self.max_batch_operations = max_batch_operations
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = asyncio.Lock()
        self.commit_count = 0

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        document = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def get_many(self, collection: str, doc_ids: Iterable[str]) -> dict[str, Optional[Document]]:
        documents = self._collections.get(collection, {})
        return {
            doc_id: copy.deepcopy(documents[doc_id]) if doc_id in documents else None
            for doc_id in doc_ids
        }

    async def set(self, collection: str, doc_id: str, data: Document, merge: bool = False) -> None:
        await self._apply([Mutation("set", collection, doc_id, dict(data), merge)], counted=False)

    async def update(self, collection: str, doc_id: str, data: Document) -> None:
        if doc_id not in self._collections.get(collection, {}):
            raise KeyError(f"No document {collection}/{doc_id}")
        await self._apply([Mutation("update", collection, doc_id, dict(data))], counted=False)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._apply([Mutation("delete", collection, doc_id)], counted=False)

    async def scan(
        self,
        collection: str,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        start_after: Any = None,
    ) -> list[tuple[str, Document]]:
        def sort_key(item: tuple[str, Document]) -> Any:
            doc_id, document = item
            return doc_id if order_by is None else document.get(order_by)

        items = [
            item
            for item in self._collections.get(collection, {}).items()
            if order_by is None or item[1].get(order_by) is not None
        ]
        items.sort(key=sort_key)

        if start_after is not None:
            items = [item for item in items if sort_key(item) > start_after]
        if limit is not None:
            items = items[:limit]

        return [(doc_id, copy.deepcopy(document)) for doc_id, document in items]

    async def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))

    def batch(self) -> WriteBatch:
        return InMemoryWriteBatch(self)

    async def _apply(self, mutations: list[Mutation], counted: bool = True) -> None:
        if len(mutations) > self.max_batch_operations:
            raise BatchCommitError(
                f"Batch of {len(mutations)} operations exceeds the limit of "
                f"{self.max_batch_operations}"
            )

        async with self._lock:
            # Stage against copies of the touched collections, then swap in
            staged: dict[str, dict[str, Document]] = {}
            for mutation in mutations:
                if mutation.collection not in staged:
                    staged[mutation.collection] = dict(self._collection(mutation.collection))
                documents = staged[mutation.collection]

                if mutation.kind == "delete":
                    documents.pop(mutation.doc_id, None)
                elif mutation.kind == "update":
                    if mutation.doc_id not in documents:
                        raise BatchCommitError(
                            f"Cannot update missing document "
                            f"{mutation.collection}/{mutation.doc_id}"
                        )
                    documents[mutation.doc_id] = {
                        **documents[mutation.doc_id],
                        **copy.deepcopy(mutation.data),
                    }
                elif mutation.merge and mutation.doc_id in documents:
                    documents[mutation.doc_id] = {
                        **documents[mutation.doc_id],
                        **copy.deepcopy(mutation.data),
                    }
                else:
                    documents[mutation.doc_id] = copy.deepcopy(mutation.data)

            self._collections.update(staged)
            if counted:
                self.commit_count += 1

        log.debug("batch_applied", operations=len(mutations), counted=counted)

    def snapshot(self, collection: str) -> dict[str, Document]:
        """Copy of a whole collection, for inspection."""
        return copy.deepcopy(self._collections.get(collection, {}))
