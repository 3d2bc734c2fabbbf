"""Data models for catalog records and configuration."""

from fftcg_sync.models.card import (
    CatalogRecord,
    ExternalRecord,
    Group,
    MatchResult,
    PriceRecord,
    PriceVariant,
)
from fftcg_sync.models.config import AppConfig

__all__ = [
    "AppConfig",
    "CatalogRecord",
    "ExternalRecord",
    "Group",
    "MatchResult",
    "PriceRecord",
    "PriceVariant",
]
