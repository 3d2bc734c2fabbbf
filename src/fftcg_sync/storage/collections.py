"""Collection names used in the document store."""

CARDS = "cards"
CARD_HASHES = "cardHashes"
PRICES = "prices"
PRICE_HASHES = "priceHashes"
GROUPS = "groups"
GROUP_HASHES = "groupHashes"
SYNC_METADATA = "syncMetadata"
OFFICIAL_CARDS = "squareEnixCards"
OFFICIAL_CARD_HASHES = "squareEnixHashes"
HISTORICAL_PRICES = "historicalPrices"
