"""Card-number normalization and cross-source matching."""

from fftcg_sync.matching.matcher import CardMatcher, match, score
from fftcg_sync.matching.normalizer import normalize, split_numbers, without_rarity

__all__ = [
    "CardMatcher",
    "match",
    "normalize",
    "score",
    "split_numbers",
    "without_rarity",
]
