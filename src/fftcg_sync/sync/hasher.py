"""Deterministic content fingerprints over canonical record projections."""

import hashlib
import json
from collections.abc import Mapping
from typing import Any, Protocol


class Fingerprintable(Protocol):
    def hash_projection(self) -> dict[str, Any]: ...


def canonicalize(value: Any) -> Any:
    """
    Normalize a projection so that ordering never affects the hash.

    Mapping keys are sorted (by json.dumps later) and every list is sorted by
    the canonical JSON of its elements, recursively.
    """
    if isinstance(value, Mapping):
        return {str(key): canonicalize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [canonicalize(item) for item in value]
        return sorted(items, key=_canonical_json)
    return value


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def fingerprint(record: Fingerprintable | Mapping[str, Any]) -> str:
    """
    Fingerprint a record (or an already projected mapping).

    Args:
        record: A model exposing ``hash_projection()`` or a plain mapping

    Returns:
        32 character hex digest
    """
    projection = record if isinstance(record, Mapping) else record.hash_projection()
    payload = _canonical_json(canonicalize(projection))
    return hashlib.md5(payload.encode("utf-8")).hexdigest()
