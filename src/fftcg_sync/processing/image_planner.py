"""Decides whether a record's images need (re)processing.

Downloading, resizing and uploading are the job of an external
``ImageProcessor``; this module only plans the work.
"""

import asyncio
from typing import Optional, Protocol

import structlog
from pydantic import BaseModel, Field

from fftcg_sync.models.card import CatalogRecord
from fftcg_sync.storage.blob_store import BlobStore

log = structlog.stdlib.get_logger()

IMAGE_PREFIX = "card-images"
PLACEHOLDER_URL = "https://fftcgcompanion.com/card-images/image-coming-soon.jpeg"
VALID_IMAGE_PATTERNS = ("_200w.", "_400w.", "_1000x1000.")


class ImageTask(BaseModel):
    """Image work for one record."""

    product_id: int
    group_id: int
    card_number: str
    source_url: str
    high_res_key: str
    low_res_key: str


class ImageDecision(BaseModel):
    """Outcome of planning: either URLs to use now, or a task to run."""

    high_res_url: Optional[str] = Field(default=None, description="URL to store on the record")
    low_res_url: Optional[str] = Field(default=None, description="URL to store on the record")
    task: Optional[ImageTask] = Field(default=None, description="Work to hand to the processor")

    @property
    def needs_processing(self) -> bool:
        return self.task is not None


class ImageProcessor(Protocol):
    async def process(self, tasks: list[ImageTask]) -> None: ...


def storage_key(group_id: int, product_id: int, card_number: str, width: int) -> str:
    """``card-images/{group}/{product}_{number}_{width}w.jpg`` with ``/`` in the number replaced."""
    sanitized = card_number.replace("/", "_")
    return f"{IMAGE_PREFIX}/{group_id}/{product_id}_{sanitized}_{width}w.jpg"


def is_valid_image_url(url: Optional[str]) -> bool:
    if not url or "image-missing.svg" in url:
        return False
    return any(pattern in url for pattern in VALID_IMAGE_PATTERNS)


class ImagePlanner:
    """Plans image work against the blob store."""

    def __init__(self, blob_store: BlobStore):
        self._blob_store = blob_store

    async def plan(self, record: CatalogRecord, force_update: bool = False) -> ImageDecision:
        """
        Decide what to do with ``record``'s images.

        A record without a usable upstream URL gets the placeholder. When both
        stored sizes exist (and the update is not forced) the record gets
        their public URLs and no work is scheduled.
        """
        if not is_valid_image_url(record.image_url):
            return ImageDecision(high_res_url=PLACEHOLDER_URL, low_res_url=PLACEHOLDER_URL)

        card_number = record.primary_card_number or str(record.id)
        high_key = storage_key(record.group_id, record.id, card_number, 400)
        low_key = storage_key(record.group_id, record.id, card_number, 200)

        if not force_update:
            high_exists, low_exists = await asyncio.gather(
                self._blob_store.exists(high_key), self._blob_store.exists(low_key)
            )
            if high_exists and low_exists:
                return ImageDecision(
                    high_res_url=self._blob_store.public_url(high_key),
                    low_res_url=self._blob_store.public_url(low_key),
                )

        log.debug("image_work_planned", product_id=record.id, forced=force_update)
        return ImageDecision(
            task=ImageTask(
                product_id=record.id,
                group_id=record.group_id,
                card_number=card_number,
                source_url=record.image_url,
                high_res_key=high_key,
                low_res_key=low_key,
            )
        )
