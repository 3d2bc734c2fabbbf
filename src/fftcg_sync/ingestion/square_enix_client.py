"""Client for the official card browser API."""

import asyncio
from typing import Any, Optional

import requests
import structlog
from requests.exceptions import ConnectionError, JSONDecodeError, Timeout

from fftcg_sync.ingestion.tcgcsv_client import check_response
from fftcg_sync.models.card import ExternalImages, ExternalRecord
from fftcg_sync.utils.errors import NonRetryableError, TransientError
from fftcg_sync.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/132.0.0.0 Safari/537.36"
)


def search_filter(language: str = "en") -> dict[str, Any]:
    """The empty search filter: every card."""
    return {
        "language": language,
        "text": "",
        "type": [],
        "element": [],
        "cost": [],
        "rarity": [],
        "power": [],
        "category_1": [],
        "set": [],
        "multicard": "",
        "ex_burst": "",
        "code": "",
        "special": "",
        "exactmatch": 0,
    }


def _flag(value: Any) -> bool:
    return str(value).strip() in ("1", "true", "True")


def to_external_record(card: dict[str, Any], language: str = "en") -> ExternalRecord:
    """Map one raw official card onto ExternalRecord."""
    images = card.get("images") or {}
    return ExternalRecord(
        code=str(card["code"]),
        name=str(card.get(f"name_{language}") or ""),
        card_type=str(card.get(f"type_{language}") or ""),
        job=str(card.get(f"job_{language}") or ""),
        text=str(card.get(f"text_{language}") or ""),
        elements=[str(e) for e in card.get("element") or []],
        rarity=str(card.get("rarity") or ""),
        cost=card.get("cost"),
        power=card.get("power"),
        category_1=str(card.get("category_1") or ""),
        category_2=card.get("category_2") or None,
        multicard=_flag(card.get("multicard")),
        ex_burst=_flag(card.get("ex_burst")),
        sets=[str(s) for s in card.get("set") or []],
        images=ExternalImages(
            thumbs=list(images.get("thumbs") or []),
            full=list(images.get("full") or []),
        ),
    )


class OfficialCardClient:
    """Fetches the complete official card list.

    The card endpoint only answers requests carrying the cookies of a
    card-browser page visit, so every fetch first establishes a session.
    """

    def __init__(
        self,
        base_url: str = "https://fftcg.square-enix-games.com/en",
        timeout: float = 60.0,
        language: str = "en",
        session: Optional[requests.Session] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._language = language
        self._session = session or requests.Session()
        self._session.headers.update(
            {"User-Agent": BROWSER_USER_AGENT, "Accept-Language": "en-US,en;q=0.9"}
        )
        log.info("official_card_client_initialized", base_url=self._base_url)

    @exponential_backoff_retry(max_retries=3, base_delay=1.0, max_delay=10.0)
    def _establish_session(self) -> None:
        url = f"{self._base_url}/card-browser"
        try:
            response = self._session.get(url, timeout=self._timeout)
        except (Timeout, ConnectionError) as e:
            raise TransientError(f"Session request to {url} failed: {e}") from e
        check_response(response, url)
        log.debug("official_session_established", cookies=len(self._session.cookies))

    @exponential_backoff_retry(max_retries=3, base_delay=1.0, max_delay=10.0)
    def _post_cards(self) -> dict[str, Any]:
        url = f"{self._base_url}/get-cards"
        try:
            response = self._session.post(
                url,
                json=search_filter(self._language),
                headers={
                    "Origin": self._base_url,
                    "Referer": f"{self._base_url}/card-browser",
                    "X-Requested-With": "XMLHttpRequest",
                },
                timeout=self._timeout,
            )
        except (Timeout, ConnectionError) as e:
            raise TransientError(f"Card request to {url} failed: {e}") from e
        check_response(response, url)

        try:
            payload = response.json()
        except (JSONDecodeError, ValueError) as e:
            raise NonRetryableError(f"Malformed JSON from {url}: {e}") from e
        if not isinstance(payload, dict):
            raise NonRetryableError(f"Unexpected payload from {url}")
        return payload

    def fetch_all_cards(self) -> list[ExternalRecord]:
        """
        Fetch and map every official card.

        Raises:
            NonRetryableError: If the response carries no cards array
        """
        log.info("fetching_official_cards", base_url=self._base_url)
        try:
            self._establish_session()
            payload = self._post_cards()
        except Exception as e:
            log.error("failed_to_fetch_official_cards", error=str(e))
            raise

        cards = payload.get("cards")
        if not isinstance(cards, list):
            log.error("failed_to_fetch_official_cards", error="cards array not found")
            raise NonRetryableError("Invalid response format: cards array not found")

        records: list[ExternalRecord] = []
        for card in cards:
            try:
                records.append(to_external_record(card, self._language))
            except (KeyError, ValueError) as e:
                log.warning("failed_to_convert_official_card", code=card.get("code"), error=str(e))

        log.info("official_cards_fetched", count=len(records), reported=payload.get("count"))
        return records

    async def get_all_cards(self) -> list[ExternalRecord]:
        return await asyncio.to_thread(self.fetch_all_cards)

    def close(self) -> None:
        self._session.close()
