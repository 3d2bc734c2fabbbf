"""Field updates derived from a matched official record."""

import re
from typing import Any

import structlog

from fftcg_sync.models.card import CatalogRecord, ExternalRecord
from fftcg_sync.processing.translator import (
    card_elements,
    is_crystal,
    rarity_name,
    translate_description,
)

log = structlog.stdlib.get_logger()

MIDDOT = "·"

VALID_CARD_NUMBER = re.compile(r"^(?:PR-\d{3}|[1-9]\d?-\d{3}[A-Z]|[A-C]-\d{3}|Re-\d{3}[A-Z])$")
PARENTHESIZED = re.compile(r"\((.*?)\)")
SPECIAL_NAME_TERMS = tuple(
    re.compile(term, re.IGNORECASE)
    for term in ("Full Art", ".*Promo.*", "Road.*", "Champion.*", ".*Anniversary.*")
)

NUMBER_FIELDS = ("cardNumbers", "fullCardNumber", "primaryCardNumber", "number")


def has_special_name(name: str) -> bool:
    """True for variant names such as ``Cloud (Full Art)`` that must be kept."""
    return bool(PARENTHESIZED.search(name)) and any(term.search(name) for term in SPECIAL_NAME_TERMS)


def split_categories(*values: str | None) -> list[str]:
    """Split middot-joined category strings; DFF categories first, duplicates removed."""
    categories: list[str] = []
    for value in values:
        if not value:
            continue
        text = value.replace("&middot;", MIDDOT)
        categories.extend(part.strip() for part in text.split(MIDDOT) if part.strip())

    unique = list(dict.fromkeys(categories))
    return [c for c in unique if "DFF" in c] + [c for c in unique if "DFF" not in c]


def _number_updates(record: CatalogRecord, external: ExternalRecord) -> dict[str, Any]:
    official = [n for n in external.code_fragments if VALID_CARD_NUMBER.match(n)]
    if not official:
        return dict.fromkeys(NUMBER_FIELDS)

    # Re- numbers only exist upstream in the catalog
    reprints = [n for n in record.card_numbers if n.startswith("Re-")]
    merged = list(dict.fromkeys(official + reprints))
    primary = next((n for n in official if not n.startswith("Re-")), official[0])
    return {
        "cardNumbers": merged,
        "fullCardNumber": "/".join(merged),
        "primaryCardNumber": primary,
        "number": primary,
    }


def build_field_updates(record: CatalogRecord, external: ExternalRecord) -> dict[str, Any]:
    """
    Compute the document fields the official record overrides.

    Only values that differ from what ``record`` already carries are
    returned. Non-card products only get their number fields cleared.

    Args:
        record: The catalog record being written
        external: Its validated official counterpart

    Returns:
        Partial document (camelCase keys) to merge over ``record.to_document()``
    """
    if record.is_non_card:
        return dict.fromkeys(NUMBER_FIELDS)

    current = record.to_document()
    categories = split_categories(external.category_1, external.category_2)
    crystal = is_crystal(external.card_type, external.code)

    candidates: dict[str, Any] = {
        "elements": card_elements(external.card_type, external.code, external.elements),
        "cardType": "Crystal" if crystal else external.card_type,
        "job": "" if external.card_type == "Summon" else external.job,
        "rarity": rarity_name(external.rarity, is_promo=record.is_promo),
        "cost": external.cost,
        "power": external.power,
        "description": translate_description(external.text),
        "set": list(external.sets),
        "categories": categories,
        "category": MIDDOT.join(categories),
    }
    if not record.is_promo and not has_special_name(record.name):
        candidates["name"] = external.name
    candidates.update(_number_updates(record, external))

    updates = {key: value for key, value in candidates.items() if current.get(key) != value}
    # Cost and power always follow the official record
    updates["cost"] = external.cost
    updates["power"] = external.power

    log.debug(
        "field_updates_built",
        catalog_id=record.id,
        external_code=external.code,
        fields=sorted(updates),
    )
    return updates
