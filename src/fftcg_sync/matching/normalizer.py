"""Canonical card-number forms for comparing identifiers across sources."""

import re

SEPARATORS = re.compile(r"[-\s.,;/]")

# Checked in order against the separator-free, upper-cased number
LETTER_PREFIX = re.compile(r"^([A-Z]{2,3})([0-9]+)([A-Z])?$")
SINGLE_LETTER_PREFIX = re.compile(r"^([A-Z])([0-9]{3})([A-Z])?$")
NUMERIC_PREFIX = re.compile(r"^([0-9]{1,2})([0-9]{3})([A-Z])?$")

TRAILING_RARITY = re.compile(r"(?<=[0-9])[A-Z]$")


def clean(raw: str | None) -> str:
    """Upper-case and drop every separator character."""
    if not raw:
        return ""
    return SEPARATORS.sub("", str(raw).upper())


def normalize(raw: str | None) -> str:
    """
    Normalize a raw card number to its canonical form.

    ``"1001h"``, ``"1-001H"`` and ``" 1.001-h "`` all become ``"1-001H"``;
    ``"PR1"`` becomes ``"PR-001"``; ``"a001"`` becomes ``"A-001"``. Shapes that
    are not recognized come back cleaned but otherwise unchanged. Never raises.
    """
    value = clean(raw)

    match = LETTER_PREFIX.match(value)
    if match:
        prefix, digits, letter = match.groups()
        return f"{prefix}-{digits.zfill(3)}{letter or ''}"

    match = SINGLE_LETTER_PREFIX.match(value)
    if match:
        prefix, digits, letter = match.groups()
        return f"{prefix}-{digits}{letter or ''}"

    match = NUMERIC_PREFIX.match(value)
    if match:
        prefix, digits, letter = match.groups()
        return f"{prefix}-{digits}{letter or ''}"

    return value


def without_rarity(number: str) -> str:
    """Drop a trailing rarity letter from a normalized number (``1-001H`` -> ``1-001``)."""
    return TRAILING_RARITY.sub("", number)


def split_numbers(raw: str | None) -> list[str]:
    """Split a packed ``a/b`` code and normalize each fragment."""
    if not raw:
        return []
    return [normalize(part) for part in raw.split("/") if part.strip()]
