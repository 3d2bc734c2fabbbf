"""Cross-source matching of catalog records against official records."""

from collections import defaultdict
from collections.abc import Iterable, Sequence

import structlog

from fftcg_sync.matching.normalizer import normalize, split_numbers, without_rarity
from fftcg_sync.models.card import CatalogRecord, ExternalRecord, MatchResult
from fftcg_sync.processing.translator import RARITY_NAMES

log = structlog.stdlib.get_logger()

MIN_AGREEING_ATTRIBUTES = 2


def _comparable(value: str | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text.casefold() if text else None


def _rarity_name(value: str | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return RARITY_NAMES.get(text.upper(), text)


def _attribute_pairs(
    record: CatalogRecord, external: ExternalRecord
) -> list[tuple[str, str | None, str | None]]:
    # Job lines are compared when both sides have one, categories otherwise
    if record.job and external.job:
        job = (record.job, external.job)
    else:
        job = (record.category, external.category_1)
    return [
        ("power", record.power, external.power),
        ("cost", record.cost, external.cost),
        ("job", *job),
        ("rarity", _rarity_name(record.rarity), _rarity_name(external.rarity)),
    ]


def catalog_keys(record: CatalogRecord) -> set[str]:
    """Normalized numbers of a catalog record, with and without rarity letter."""
    keys: set[str] = set()
    for raw in record.card_numbers:
        for number in split_numbers(raw):
            keys.add(number)
            keys.add(without_rarity(number))
    return keys


def numbers_overlap(record: CatalogRecord, external: ExternalRecord) -> bool:
    """True when any external code fragment equals a catalog number, exactly or ignoring rarity."""
    keys = catalog_keys(record)
    for fragment in external.code_fragments:
        number = normalize(fragment)
        if number in keys or without_rarity(number) in keys:
            return True
    return False


def score(record: CatalogRecord, external: ExternalRecord) -> MatchResult:
    """
    Count attribute agreement between two records.

    An attribute is checked only when both sides carry a value; values are
    compared case-insensitively, with rarity letters expanded to names.
    """
    checked: list[str] = []
    matched: list[str] = []
    for attribute, ours, theirs in _attribute_pairs(record, external):
        left = _comparable(ours)
        right = _comparable(theirs)
        if left is None or right is None:
            continue
        checked.append(attribute)
        if left == right:
            matched.append(attribute)

    return MatchResult(
        catalog_id=record.id,
        external_code=external.code,
        score=len(matched),
        matched_attributes=matched,
        checked_attributes=checked,
    )


def match(record: CatalogRecord, externals: Iterable[ExternalRecord]) -> MatchResult | None:
    """
    Find the official record describing the same card.

    Candidates must share a normalized number; the first candidate (in the
    order given) with at least two agreeing attributes wins.

    Returns:
        The accepted MatchResult, or None if no candidate validates
    """
    if record.is_non_card or not record.card_numbers:
        return None

    for external in externals:
        if not numbers_overlap(record, external):
            continue
        result = score(record, external)
        if result.score >= MIN_AGREEING_ATTRIBUTES:
            return result
        log.debug(
            "match_candidate_rejected",
            catalog_id=record.id,
            external_code=external.code,
            score=result.score,
            checked=result.checked_attributes,
        )
    return None


class CardMatcher:
    """
    Matches catalog records against a fixed set of official records.

    Candidates are looked up through an index keyed by normalized number, so
    a full catalog pass does not rescan every official record. Results are
    identical to :func:`match` over the same sequence.
    """

    def __init__(self, externals: Sequence[ExternalRecord]):
        self._externals = list(externals)
        self._by_code = {external.code: external for external in reversed(self._externals)}
        self._index: dict[str, list[int]] = defaultdict(list)
        for position, external in enumerate(self._externals):
            seen: set[str] = set()
            for fragment in external.code_fragments:
                number = normalize(fragment)
                for key in (number, without_rarity(number)):
                    if key not in seen:
                        seen.add(key)
                        self._index[key].append(position)

    def __len__(self) -> int:
        return len(self._externals)

    def candidates(self, record: CatalogRecord) -> list[ExternalRecord]:
        """Number-sharing official records, in their original order."""
        positions: set[int] = set()
        for key in catalog_keys(record):
            positions.update(self._index.get(key, ()))
        return [self._externals[position] for position in sorted(positions)]

    def match(self, record: CatalogRecord) -> MatchResult | None:
        if record.is_non_card or not record.card_numbers:
            return None
        return match(record, self.candidates(record))

    def get(self, code: str) -> ExternalRecord | None:
        return self._by_code.get(code)
