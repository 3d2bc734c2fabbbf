"""Translation of the official source's vocabulary and text markup."""

import re
from collections.abc import Iterable
from typing import Optional

ELEMENT_NAMES = {
    "火": "Fire",
    "氷": "Ice",
    "風": "Wind",
    "土": "Earth",
    "雷": "Lightning",
    "水": "Water",
    "光": "Light",
    "闇": "Dark",
}

RARITY_NAMES = {
    "C": "Common",
    "R": "Rare",
    "H": "Hero",
    "L": "Legend",
    "S": "Starter",
}

ELEMENT_GLYPH = re.compile(r"《(" + "|".join(ELEMENT_NAMES) + r")》")
NUMBER_GLYPH = re.compile(r"《(\d+)》")
EX_BURST = re.compile(r"\bex burst\b", re.IGNORECASE)
WRAPPED_DULL = re.compile(r"<[^>]+>Dull</[^>]+>")
COST_SEPARATOR = re.compile(r"\s*:\s*")
BARE_DULL = re.compile(r"\bDull\b")
DOUBLED_DULL = re.compile(r"\bDull\s+Dull\b")

PROTECTED_DULL = "\x00DULL\x00"


def translate_elements(elements: Iterable[str]) -> list[str]:
    return [ELEMENT_NAMES.get(element, element) for element in elements]


def is_crystal(card_type: Optional[str], code: str) -> bool:
    return card_type == "Crystal" or code.startswith("C-")


def card_elements(card_type: Optional[str], code: str, elements: Iterable[str]) -> list[str]:
    """English element names; Crystal cards are always ``["Crystal"]``."""
    if is_crystal(card_type, code):
        return ["Crystal"]
    return translate_elements(elements)


def rarity_name(letter: Optional[str], is_promo: bool = False) -> Optional[str]:
    if is_promo:
        return "Promo"
    if not letter:
        return letter
    return RARITY_NAMES.get(letter.upper(), letter)


def translate_description(description: Optional[str]) -> Optional[str]:
    """
    Convert official rules-text markup to the catalog's format.

    ``[[br]]`` becomes a newline, ``[[i]]``/``[[/]]`` become ``<em>``/``</em>``,
    element glyphs such as ``《火》`` become ``{F}`` and cost glyphs such as
    ``《3》`` become ``{3}``. When the text has exactly one cost/effect colon,
    stray ``Dull`` words are cleaned up on both sides.
    """
    if not description:
        return None

    text = (
        description.replace("[[br]]", "\n")
        .replace("[[i]]", "<em>")
        .replace("[[/]]", "</em>")
    )
    text = ELEMENT_GLYPH.sub(lambda m: "{" + ELEMENT_NAMES[m.group(1)][0] + "}", text)
    text = NUMBER_GLYPH.sub(r"{\1}", text)
    text = EX_BURST.sub("EX BURST", text)
    text = WRAPPED_DULL.sub("Dull", text)

    parts = COST_SEPARATOR.split(text)
    if len(parts) != 2:
        return text

    cost, effect = parts
    # A cost that is only "Dull" is kept as is
    if cost.strip() != "Dull":
        cost = cost.replace("[Dull]", PROTECTED_DULL)
        cost = BARE_DULL.sub("", cost)
        cost = cost.replace(PROTECTED_DULL, "[Dull]")

    effect = DOUBLED_DULL.sub("Dull", effect)
    effect = effect.replace("[Dull]", "Dull")
    return f"{cost}: {effect}"
