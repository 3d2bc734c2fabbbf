"""Classification of catalog products and extraction of their card numbers."""

from collections.abc import Mapping

NON_CARD_KEYWORDS = (
    "booster",
    "box",
    "pack",
    "bundle",
    "collection",
    "starter deck",
    "boss deck",
    "display",
    "case",
    "kit",
)


def non_card_keyword(name: str) -> str | None:
    """The first sealed-product keyword found in ``name``, if any."""
    lowered = name.lower()
    for keyword in NON_CARD_KEYWORDS:
        if keyword in lowered:
            return keyword
    return None


def is_non_card_product(name: str) -> bool:
    return non_card_keyword(name) is not None


def extract_card_numbers(extended: Mapping[str, str]) -> list[str]:
    """
    Card numbers carried by a product's extended data.

    Promo products report their numbers in ``extNumber`` (``PR-001/1-001H``),
    regular cards in ``Number``. Packed values are split on ``/``; the result
    is de-duplicated in upstream order.
    """
    raw = extended.get("extNumber") or extended.get("Number") or ""
    numbers = [part.strip() for part in raw.split("/") if part.strip()]
    return list(dict.fromkeys(numbers))
