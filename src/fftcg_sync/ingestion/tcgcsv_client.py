"""Client for the primary catalog API (tcgcsv.com)."""

import asyncio
import re
from collections import defaultdict
from typing import Any, Optional

import requests
import structlog
from pydantic import ValidationError
from requests.exceptions import ConnectionError, JSONDecodeError, Timeout

from fftcg_sync.models.card import CatalogRecord, Group, PriceRecord, PriceVariant
from fftcg_sync.processing.product_validation import (
    extract_card_numbers,
    non_card_keyword,
)
from fftcg_sync.utils.errors import (
    InvalidRecordError,
    NonRetryableError,
    QuotaExceededError,
    TransientError,
)
from fftcg_sync.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()

TRANSIENT_STATUS_CODES = frozenset({408, 500, 502, 503, 504})
ELEMENT_SEPARATORS = re.compile(r"[;,]")

# Extended data fields mapped onto CatalogRecord attributes
EXTENDED_FIELDS = {
    "Cost": "cost",
    "Power": "power",
    "Rarity": "rarity",
    "Job": "job",
    "Category": "category",
    "CardType": "card_type",
    "Description": "description",
}


def check_response(response: requests.Response, url: str) -> None:
    """Translate an HTTP error status into the sync error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    if status == 403:
        raise NonRetryableError(f"Access denied (status 403) for {url}")
    if status == 429:
        raise QuotaExceededError(f"Rate limited (status 429) for {url}")
    if status in TRANSIENT_STATUS_CODES:
        raise TransientError(f"Upstream unavailable (status {status}) for {url}")
    raise NonRetryableError(f"Request failed (status {status}) for {url}")


def _extended_data(product: dict[str, Any]) -> dict[str, str]:
    values: dict[str, str] = {}
    for entry in product.get("extendedData") or []:
        if not isinstance(entry, dict):
            raise TypeError(f"extendedData entry is {type(entry).__name__}, not an object")
        name = entry.get("name")
        value = entry.get("value")
        if name and value is not None:
            values[str(name)] = str(value)
    return values


def to_catalog_record(product: dict[str, Any]) -> CatalogRecord:
    """
    Map a raw product into a CatalogRecord.

    Raises:
        InvalidRecordError: If the product is malformed or is a card without
            an identifiable card number
    """
    if not isinstance(product, dict):
        raise InvalidRecordError(None, f"product is {type(product).__name__}, not an object")
    product_id = product.get("productId")
    if product_id is None or product.get("groupId") is None:
        raise InvalidRecordError(product_id, "missing productId or groupId")

    try:
        record_id = int(product_id)
        group_id = int(product["groupId"])
    except (TypeError, ValueError) as e:
        raise InvalidRecordError(product_id, f"non-numeric productId or groupId: {e}") from e

    try:
        extended = _extended_data(product)
    except (AttributeError, TypeError) as e:
        raise InvalidRecordError(product_id, f"malformed extendedData: {e}") from e

    name = str(product.get("name") or "")
    keyword = non_card_keyword(name)

    numbers: list[str] = []
    if keyword is None:
        numbers = extract_card_numbers(extended)
        if not numbers:
            raise InvalidRecordError(product_id, "no identifiable card number")

    attributes: dict[str, Any] = {
        field: extended[key] for key, field in EXTENDED_FIELDS.items() if extended.get(key)
    }
    elements = [
        part.strip() for part in ELEMENT_SEPARATORS.split(extended.get("Element", "")) if part.strip()
    ]
    remaining = {
        key: value
        for key, value in extended.items()
        if key not in EXTENDED_FIELDS and key not in ("Element", "Number", "extNumber")
    }

    try:
        return CatalogRecord(
            id=record_id,
            name=name,
            clean_name=str(product.get("cleanName") or ""),
            group_id=group_id,
            card_numbers=numbers,
            elements=elements,
            image_url=product.get("imageUrl") or None,
            modified_on=str(product.get("modifiedOn") or ""),
            is_non_card=keyword is not None,
            extended_attributes=remaining,
            **attributes,
        )
    except ValidationError as e:
        raise InvalidRecordError(product_id, f"invalid field values: {e}") from e


def _price(value: Any) -> float:
    return float(value) if value is not None else 0.0


def _price_variant(row: dict[str, Any], sub_type: str) -> PriceVariant:
    direct_low = row.get("directLowPrice")
    return PriceVariant(
        direct_low_price=float(direct_low) if direct_low is not None else None,
        high_price=_price(row.get("highPrice")),
        low_price=_price(row.get("lowPrice")),
        market_price=_price(row.get("marketPrice")),
        mid_price=_price(row.get("midPrice")),
        sub_type_name=sub_type,
    )


def to_price_records(rows: list[dict[str, Any]], group_id: int) -> list[PriceRecord]:
    """
    Group price rows by product into Normal/Foil variants, in upstream order.

    A row with a non-numeric product id or price is logged and skipped; the
    rest of the group is still mapped.
    """
    variants: dict[int, dict[str, PriceVariant]] = defaultdict(dict)
    for row in rows:
        if not isinstance(row, dict) or row.get("productId") is None:
            continue
        sub_type = str(row.get("subTypeName") or "Normal")
        if sub_type not in ("Normal", "Foil"):
            continue
        try:
            product_id = int(row["productId"])
            variant = _price_variant(row, sub_type)
        except (TypeError, ValueError) as e:
            log.warning(
                "invalid_price_row",
                group_id=group_id,
                product_id=row.get("productId"),
                sub_type=sub_type,
                error=str(e),
            )
            continue
        variants[product_id][sub_type] = variant

    return [
        PriceRecord(
            product_id=product_id,
            group_id=group_id,
            normal=by_type.get("Normal"),
            foil=by_type.get("Foil"),
        )
        for product_id, by_type in variants.items()
    ]


class TcgcsvClient:
    """Catalog client over a requests session.

    Blocking HTTP calls are retried with exponential backoff; the public
    coroutine methods run them in a worker thread.
    """

    def __init__(
        self,
        base_url: str = "https://tcgcsv.com/tcgplayer",
        category_id: str = "24",
        timeout: float = 30.0,
        user_agent: str = "FFTCG-Sync-Service/1.0",
        session: Optional[requests.Session] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._category_id = category_id
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
        log.info("tcgcsv_client_initialized", base_url=self._base_url, category_id=category_id)

    def _url(self, *parts: Any) -> str:
        return "/".join([self._base_url, self._category_id, *(str(p) for p in parts)])

    @exponential_backoff_retry(max_retries=3, base_delay=1.0, max_delay=10.0)
    def _get_results(self, url: str) -> list[dict[str, Any]]:
        try:
            response = self._session.get(url, timeout=self._timeout)
        except (Timeout, ConnectionError) as e:
            raise TransientError(f"Request to {url} failed: {e}") from e

        check_response(response, url)

        try:
            payload = response.json()
        except (JSONDecodeError, ValueError) as e:
            raise NonRetryableError(f"Malformed JSON from {url}: {e}") from e

        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            raise NonRetryableError(f"Response from {url} has no results array")
        return results

    def fetch_groups(self) -> list[Group]:
        url = self._url("groups")
        log.info("fetching_groups", url=url)
        try:
            rows = self._get_results(url)
        except Exception as e:
            log.error("failed_to_fetch_groups", url=url, error=str(e))
            raise

        groups = [
            Group(
                group_id=int(row["groupId"]),
                name=str(row.get("name") or ""),
                abbreviation=str(row.get("abbreviation") or ""),
                published_on=str(row.get("publishedOn") or ""),
                modified_on=str(row.get("modifiedOn") or ""),
            )
            for row in rows
            if row.get("groupId") is not None
        ]
        log.info("groups_fetched", count=len(groups))
        return groups

    def fetch_products(self, group_id: int | str) -> list[dict[str, Any]]:
        """Raw products of a group; mapping happens per item so one bad product cannot fail the group."""
        url = self._url(group_id, "products")
        try:
            products = self._get_results(url)
        except Exception as e:
            log.error("failed_to_fetch_products", group_id=group_id, error=str(e))
            raise
        log.info("products_fetched", group_id=group_id, count=len(products))
        return products

    def fetch_prices(self, group_id: int | str) -> list[PriceRecord]:
        url = self._url(group_id, "prices")
        try:
            rows = self._get_results(url)
        except Exception as e:
            log.error("failed_to_fetch_prices", group_id=group_id, error=str(e))
            raise
        prices = to_price_records(rows, int(group_id))
        log.info("prices_fetched", group_id=group_id, count=len(prices))
        return prices

    async def get_groups(self) -> list[Group]:
        return await asyncio.to_thread(self.fetch_groups)

    async def get_products(self, group_id: int | str) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self.fetch_products, group_id)

    async def get_prices(self, group_id: int | str) -> list[PriceRecord]:
        return await asyncio.to_thread(self.fetch_prices, group_id)

    def close(self) -> None:
        self._session.close()
