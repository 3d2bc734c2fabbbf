"""Pydantic models for catalog records, official records, prices and matches."""

import re
from datetime import date
from typing import Any

from pydantic import BaseModel, Field, field_validator

PROMO_NUMBER = re.compile(r"^(?:PR?|A)-?\d{3}", re.IGNORECASE)


class Group(BaseModel):
    """A set/expansion in the primary catalog."""

    group_id: int = Field(default=..., description="Catalog group identifier")
    name: str = Field(default="", description="Group display name")
    abbreviation: str = Field(default="", description="Short set code")
    published_on: str = Field(default="", description="Release date as reported upstream")
    modified_on: str = Field(default="", description="Last upstream modification timestamp")

    def hash_projection(self) -> dict[str, Any]:
        return {"groupId": self.group_id, "modifiedOn": self.modified_on}

    def to_document(self) -> dict[str, Any]:
        return {
            "groupId": self.group_id,
            "name": self.name,
            "abbreviation": self.abbreviation,
            "publishedOn": self.published_on,
            "modifiedOn": self.modified_on,
        }


class CatalogRecord(BaseModel):
    """One card or product from the primary catalog."""

    id: int = Field(default=..., description="Stable catalog product id")
    name: str = Field(default=..., description="Display name")
    clean_name: str = Field(default="", description="Name without punctuation")
    group_id: int = Field(default=..., description="Set/expansion the record belongs to")
    card_numbers: list[str] = Field(
        default_factory=list, description="Raw card-number strings as reported upstream"
    )
    cost: str | None = Field(default=None, description="Card cost")
    power: str | None = Field(default=None, description="Card power")
    rarity: str | None = Field(default=None, description="Rarity name or letter")
    job: str | None = Field(default=None, description="Job line")
    category: str | None = Field(default=None, description="Category string")
    card_type: str | None = Field(default=None, description="Forward, Backup, Summon, ...")
    elements: list[str] = Field(default_factory=list, description="Element names")
    description: str | None = Field(default=None, description="Rules text")
    image_url: str | None = Field(default=None, description="Upstream image URL")
    high_res_url: str | None = Field(default=None, description="Stored high resolution image")
    low_res_url: str | None = Field(default=None, description="Stored low resolution image")
    modified_on: str = Field(default="", description="Upstream modification timestamp")
    is_non_card: bool = Field(default=False, description="Sealed product rather than a card")
    extended_attributes: dict[str, str] = Field(
        default_factory=dict, description="Remaining upstream extended data, keyed by name"
    )
    content_fingerprint: str | None = Field(default=None, description="Last computed fingerprint")

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": 477236,
                "name": "Cloud",
                "clean_name": "Cloud",
                "group_id": 23244,
                "card_numbers": ["1-001H"],
                "cost": "5",
                "power": "9000",
                "rarity": "Hero",
                "job": "SOLDIER",
                "category": "VII",
                "card_type": "Forward",
                "elements": ["Fire"],
            }
        }
    }

    @property
    def primary_card_number(self) -> str | None:
        """First non-promo number, falling back to the first number."""
        for number in self.card_numbers:
            if not PROMO_NUMBER.match(number):
                return number
        return self.card_numbers[0] if self.card_numbers else None

    @property
    def is_promo(self) -> bool:
        return any(PROMO_NUMBER.match(number) for number in self.card_numbers)

    def document_id(self) -> str:
        """Document id used in the store (numbers may contain '/', which ids cannot)."""
        return str(self.id)

    def hash_projection(self) -> dict[str, Any]:
        """Fields that affect downstream consumers. Timestamps are excluded."""
        return {
            "name": self.name,
            "cleanName": self.clean_name,
            "groupId": self.group_id,
            "cardNumbers": list(self.card_numbers),
            "cost": self.cost,
            "power": self.power,
            "rarity": self.rarity,
            "job": self.job,
            "category": self.category,
            "cardType": self.card_type,
            "elements": list(self.elements),
            "description": self.description,
            "imageUrl": self.image_url,
            "isNonCard": self.is_non_card,
            "extendedData": dict(self.extended_attributes),
        }

    def to_document(self) -> dict[str, Any]:
        numbers = list(self.card_numbers) if not self.is_non_card else None
        primary = self.primary_card_number if not self.is_non_card else None
        return {
            "productId": self.id,
            "name": self.name,
            "cleanName": self.clean_name,
            "groupId": self.group_id,
            "cardNumbers": numbers,
            "primaryCardNumber": primary,
            "fullCardNumber": "/".join(numbers) if numbers else None,
            "number": primary,
            "cost": self.cost,
            "power": self.power,
            "rarity": self.rarity,
            "job": self.job,
            "category": self.category,
            "cardType": self.card_type,
            "elements": list(self.elements),
            "description": self.description,
            "imageUrl": self.image_url,
            "highResUrl": self.high_res_url,
            "lowResUrl": self.low_res_url,
            "modifiedOn": self.modified_on,
            "isNonCard": self.is_non_card,
            "extendedData": dict(self.extended_attributes),
            "dataHash": self.content_fingerprint,
        }


class ExternalImages(BaseModel):
    thumbs: list[str] = Field(default_factory=list)
    full: list[str] = Field(default_factory=list)


class ExternalRecord(BaseModel):
    """The official card browser's representation of a card."""

    code: str = Field(default=..., description="Card code, may pack several numbers joined by '/'")
    name: str = Field(default="", description="Localized name")
    card_type: str = Field(default="", description="Localized type")
    job: str = Field(default="", description="Localized job")
    text: str = Field(default="", description="Rules text in the official markup")
    elements: list[str] = Field(default_factory=list, description="Untranslated element glyphs")
    rarity: str = Field(default="", description="Rarity letter (C, R, H, L, S)")
    cost: str | None = Field(default=None, description="Card cost")
    power: str | None = Field(default=None, description="Card power")
    category_1: str = Field(default="", description="Primary category")
    category_2: str | None = Field(default=None, description="Secondary category")
    multicard: bool = Field(default=False)
    ex_burst: bool = Field(default=False)
    sets: list[str] = Field(default_factory=list, description="Sets the card was printed in")
    images: ExternalImages = Field(default_factory=ExternalImages)

    @field_validator("cost", "power", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> str | None:
        if v is None:
            return None
        value = str(v).strip()
        return value or None

    @property
    def code_fragments(self) -> list[str]:
        """Individual card numbers packed in ``code``."""
        return [part.strip() for part in self.code.split("/") if part.strip()]

    def document_id(self) -> str:
        return self.code.replace("/", ";")

    def hash_projection(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "type": self.card_type,
            "job": self.job,
            "text": self.text,
            "element": list(self.elements),
            "rarity": self.rarity,
            "cost": self.cost,
            "power": self.power,
            "category_1": self.category_1,
            "category_2": self.category_2,
            "multicard": self.multicard,
            "ex_burst": self.ex_burst,
            "set": list(self.sets),
        }

    def to_document(self) -> dict[str, Any]:
        """Stored form; catalog linkage is filled in later by matching."""
        document = self.hash_projection()
        document["id"] = self.document_id()
        document["images"] = self.images.model_dump()
        return document


class PriceVariant(BaseModel):
    """Price block for one printing variant (Normal or Foil)."""

    direct_low_price: float | None = None
    high_price: float = 0.0
    low_price: float = 0.0
    market_price: float = 0.0
    mid_price: float = 0.0
    sub_type_name: str = "Normal"

    def to_document(self) -> dict[str, Any]:
        return {
            "directLowPrice": self.direct_low_price,
            "highPrice": self.high_price,
            "lowPrice": self.low_price,
            "marketPrice": self.market_price,
            "midPrice": self.mid_price,
            "subTypeName": self.sub_type_name,
        }


class PriceRecord(BaseModel):
    """Market prices for one catalog product."""

    product_id: int
    group_id: int
    normal: PriceVariant | None = None
    foil: PriceVariant | None = None

    def document_id(self) -> str:
        return str(self.product_id)

    def hash_projection(self) -> dict[str, Any]:
        return {
            "productId": self.product_id,
            "normal": self.normal.to_document() if self.normal else None,
            "foil": self.foil.to_document() if self.foil else None,
        }

    def to_document(self) -> dict[str, Any]:
        document = self.hash_projection()
        document["groupId"] = self.group_id
        return document

    def history_document_id(self, day: date) -> str:
        return f"{self.product_id}_{day.isoformat()}"

    def to_history_document(self, day: date) -> dict[str, Any]:
        """One day's snapshot of this record's prices."""
        prices: dict[str, Any] = {}
        for key, variant in (("normal", self.normal), ("foil", self.foil)):
            if variant is not None:
                prices[key] = {
                    "low": variant.low_price,
                    "mid": variant.mid_price,
                    "high": variant.high_price,
                    "market": variant.market_price,
                    "directLow": variant.direct_low_price,
                }
        return {
            "productId": self.product_id,
            "groupId": self.group_id,
            "date": day.isoformat(),
            "prices": prices,
        }


class MatchResult(BaseModel):
    """A scored association between a catalog record and an official record."""

    catalog_id: int
    external_code: str
    score: int = Field(default=0, ge=0, description="Number of agreeing attributes")
    matched_attributes: list[str] = Field(default_factory=list)
    checked_attributes: list[str] = Field(default_factory=list)
