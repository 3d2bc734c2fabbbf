"""Blob storage interface used for processed card images."""

from abc import ABC, abstractmethod
from typing import Optional

import structlog

log = structlog.stdlib.get_logger()


class BlobStore(ABC):
    """Abstract interface for blob storage.

    The sync engine only asks whether a key exists and what its public URL
    is; uploads are performed by an external image processor.
    """

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    @abstractmethod
    async def upload(self, key: str, data: bytes, metadata: Optional[dict[str, str]] = None) -> str:
        """Store ``data`` under ``key``.

        Returns:
            Public URL of the stored object
        """
        pass

    @abstractmethod
    def public_url(self, key: str) -> str:
        pass


class InMemoryBlobStore(BlobStore):
    """Dictionary-backed blob store."""

    def __init__(self, public_base_url: str = "memory://blobs"):
        self._public_base_url = public_base_url.rstrip("/")
        self._objects: dict[str, tuple[bytes, dict[str, str]]] = {}

    async def exists(self, key: str) -> bool:
        return key in self._objects

    async def upload(self, key: str, data: bytes, metadata: Optional[dict[str, str]] = None) -> str:
        self._objects[key] = (bytes(data), dict(metadata or {}))
        log.debug("blob_uploaded", key=key, size=len(data))
        return self.public_url(key)

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}/{key}"

    def metadata(self, key: str) -> dict[str, str]:
        return dict(self._objects[key][1])

    def __len__(self) -> int:
        return len(self._objects)
