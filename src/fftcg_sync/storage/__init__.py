"""Document and blob storage interfaces."""

from fftcg_sync.storage.batch_writer import BatchWriter
from fftcg_sync.storage.blob_store import BlobStore, InMemoryBlobStore
from fftcg_sync.storage.document_store import (
    DocumentStore,
    InMemoryDocumentStore,
    Mutation,
    WriteBatch,
)

__all__ = [
    "BatchWriter",
    "BlobStore",
    "DocumentStore",
    "InMemoryBlobStore",
    "InMemoryDocumentStore",
    "Mutation",
    "WriteBatch",
]
