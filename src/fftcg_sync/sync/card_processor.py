"""Processing of one sub-batch of catalog products, plus group, price and official records."""

import asyncio
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from fftcg_sync.ingestion.tcgcsv_client import to_catalog_record
from fftcg_sync.matching.matcher import CardMatcher
from fftcg_sync.models.card import CatalogRecord, ExternalRecord, Group, PriceRecord
from fftcg_sync.processing.field_enricher import build_field_updates
from fftcg_sync.processing.image_planner import ImageDecision, ImagePlanner, ImageProcessor, ImageTask
from fftcg_sync.storage.batch_writer import BatchWriter
from fftcg_sync.storage.collections import CARDS, GROUPS, HISTORICAL_PRICES, OFFICIAL_CARDS, PRICES
from fftcg_sync.storage.document_store import Mutation
from fftcg_sync.sync.change_detector import ChangeDetector
from fftcg_sync.sync.hasher import fingerprint
from fftcg_sync.sync.models import BatchResult, SyncOptions, utc_now
from fftcg_sync.sync.observer import SyncObserver
from fftcg_sync.utils.errors import InvalidRecordError

log = structlog.stdlib.get_logger()

Writable = PriceRecord | Group | ExternalRecord


class CardBatchProcessor:
    """
    Fingerprints, filters, enriches and writes catalog records.

    Every record write is batched together with its fingerprint write, and
    fingerprints are only cached once that batch has committed. With
    ``options.dry_run`` every decision is computed but nothing is written.
    Official cards are only persisted when an ``official_detector`` is given.
    """

    def __init__(
        self,
        writer: BatchWriter,
        card_detector: ChangeDetector,
        price_detector: ChangeDetector,
        group_detector: ChangeDetector,
        image_planner: Optional[ImagePlanner] = None,
        image_processor: Optional[ImageProcessor] = None,
        observer: Optional[SyncObserver] = None,
        official_detector: Optional[ChangeDetector] = None,
        record_price_history: bool = True,
        now: Callable[[], datetime] = utc_now,
    ):
        self._writer = writer
        self._cards = card_detector
        self._prices = price_detector
        self._groups = group_detector
        self._official = official_detector
        self._image_planner = image_planner
        self._image_processor = image_processor
        self._observer = observer or SyncObserver()
        self._record_price_history = record_price_history
        self._now = now

    async def process_cards(
        self,
        products: Sequence[dict[str, Any]],
        options: SyncOptions,
        matcher: Optional[CardMatcher] = None,
    ) -> BatchResult:
        """
        Process one sub-batch of raw products.

        Invalid products are recorded in the result and skipped; any other
        failure (notably a rejected commit) propagates so the caller can
        retry the whole sub-batch.
        """
        result = BatchResult(processed=len(products))
        records: list[CatalogRecord] = []
        for product in products:
            try:
                records.append(to_catalog_record(product))
            except InvalidRecordError as e:
                result.errors.append(str(e))
                self._observer.on_record_decision(str(e.record_id), "invalid", reason=e.reason)

        fingerprints: dict[str, str] = {}
        by_id: dict[str, CatalogRecord] = {}
        for record in records:
            record.content_fingerprint = fingerprint(record)
            fingerprints[record.document_id()] = record.content_fingerprint
            by_id[record.document_id()] = record

        changes = await self._cards.filter_changed(fingerprints, options.force_update)
        result.skipped = len(changes.unchanged_ids)
        for record_id in changes.unchanged_ids:
            self._observer.on_record_decision(record_id, "skip")

        changed = [by_id[record_id] for record_id in changes.changed_ids]
        decisions = await self._plan_images(changed, options.force_update)

        written: list[tuple[str, str]] = []
        tasks: list[ImageTask] = []
        for record, decision in zip(changed, decisions):
            document = record.to_document()
            if matcher is not None and not options.skip_enrichment:
                match = matcher.match(record)
                if match is not None:
                    external = matcher.get(match.external_code)
                    document.update(build_field_updates(record, external))
                    result.matched += 1
                    self._observer.on_record_decision(
                        record.document_id(),
                        "matched",
                        external_code=match.external_code,
                        score=match.score,
                    )

            if decision is not None:
                document["highResUrl"] = decision.high_res_url or document.get("highResUrl")
                document["lowResUrl"] = decision.low_res_url or document.get("lowResUrl")
                if decision.task is not None:
                    tasks.append(decision.task)

            self._observer.on_record_decision(record.document_id(), "update")
            if not options.dry_run:
                await self._writer.add_operations(
                    [
                        Mutation("set", CARDS, record.document_id(), document, merge=True),
                        self._cards.fingerprint_mutation(
                            record.document_id(), record.content_fingerprint
                        ),
                    ]
                )
            written.append((record.document_id(), record.content_fingerprint))

        if not options.dry_run:
            await self._writer.commit_all()
            for record_id, record_fingerprint in written:
                self._cards.remember(record_id, record_fingerprint)

        result.updated = len(written)
        result.images_pending = len(tasks)
        if tasks and self._image_processor is not None and not options.dry_run:
            await self._process_images(tasks, result)
        return result

    async def _process_images(self, tasks: list[ImageTask], result: BatchResult) -> None:
        """
        Hand image work to the processor.

        A failure is recorded in ``result`` and the affected records'
        fingerprints are cleared, so the next run treats them as changed and
        schedules the image work again.
        """
        try:
            await self._image_processor.process(tasks)
        except Exception as e:
            record_ids = [str(task.product_id) for task in tasks]
            log.error("failed_to_process_images", count=len(tasks), error=str(e))
            result.errors.append(f"Image processing failed for {len(tasks)} records: {e}")
            for record_id in record_ids:
                self._cards.forget(record_id)
            await self._writer.add_operations(
                [self._cards.clear_mutation(record_id) for record_id in record_ids]
            )
            await self._writer.commit_all()

    async def _plan_images(
        self, records: list[CatalogRecord], force_update: bool
    ) -> list[Optional[ImageDecision]]:
        if self._image_planner is None or not records:
            return [None] * len(records)
        return list(
            await asyncio.gather(
                *(self._image_planner.plan(record, force_update) for record in records)
            )
        )

    async def process_prices(self, prices: Sequence[PriceRecord], options: SyncOptions) -> int:
        """
        Write changed price records. Returns how many were (or would be) written.

        Each changed record also gets a snapshot in the price history,
        keyed by product and UTC day, so repeated runs on one day overwrite
        that day's snapshot.
        """
        by_id = {price.document_id(): price for price in prices}
        day = self._now().date()

        def history(item_id: str) -> list[Mutation]:
            if not self._record_price_history:
                return []
            price = by_id[item_id]
            return [
                Mutation(
                    "set",
                    HISTORICAL_PRICES,
                    price.history_document_id(day),
                    price.to_history_document(day),
                    merge=True,
                )
            ]

        return await self._write_changed(by_id, self._prices, PRICES, options, extra=history)

    async def process_groups(self, groups: Sequence[Group], options: SyncOptions) -> int:
        """Write changed group records. Returns how many were (or would be) written."""
        return await self._write_changed(
            {str(group.group_id): group for group in groups},
            self._groups,
            GROUPS,
            options,
        )

    async def process_official_cards(
        self, externals: Sequence[ExternalRecord], options: SyncOptions
    ) -> int:
        """Write changed official cards into their own collection."""
        if self._official is None:
            return 0
        return await self._write_changed(
            {external.document_id(): external for external in externals},
            self._official,
            OFFICIAL_CARDS,
            options,
        )

    async def _write_changed(
        self,
        items: dict[str, Writable],
        detector: ChangeDetector,
        collection: str,
        options: SyncOptions,
        extra: Optional[Callable[[str], list[Mutation]]] = None,
    ) -> int:
        fingerprints = {item_id: fingerprint(item) for item_id, item in items.items()}
        changes = await detector.filter_changed(fingerprints, options.force_update)
        if options.dry_run or not changes.has_changes:
            return len(changes.changed_ids)

        for item_id in changes.changed_ids:
            document = items[item_id].to_document()
            document["dataHash"] = fingerprints[item_id]
            await self._writer.add_operations(
                [
                    Mutation("set", collection, item_id, document, merge=True),
                    detector.fingerprint_mutation(item_id, fingerprints[item_id]),
                    *(extra(item_id) if extra is not None else []),
                ]
            )
        await self._writer.commit_all()

        for item_id in changes.changed_ids:
            detector.remember(item_id, fingerprints[item_id])
        log.info("records_written", collection=collection, count=len(changes.changed_ids))
        return len(changes.changed_ids)

    def discard_pending(self) -> int:
        """Drop writes queued by a failed sub-batch before it is retried."""
        return self._writer.discard()
