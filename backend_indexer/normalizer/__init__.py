"""
Payload normalizer: raw Helius enhanced-transaction dicts -> typed records.

normalize() never raises on malformed input; missing data becomes the field's
typed default.
"""

from __future__ import annotations

from typing import Any

from backend_indexer.core.categories import EventCategory
from backend_indexer.core.exceptions import UnsupportedCategory
from backend_indexer.normalizer.compressed_mint import normalize_compressed_mint
from backend_indexer.normalizer.listing import normalize_listing
from backend_indexer.normalizer.mint import normalize_mint
from backend_indexer.normalizer.models import (
    CompressedNFTMintRecord,
    NFTListingRecord,
    NFTMintRecord,
    NFTSaleRecord,
    NormalizedRecord,
    record_class_for,
)
from backend_indexer.normalizer.sale import normalize_sale


def normalize(category: EventCategory | str, raw: Any) -> NormalizedRecord:
    """
    Normalize one raw event for a category.

    Raises UnsupportedCategory only for an unknown category; the payload itself
    is never rejected.
    """
    parsed = category if isinstance(category, EventCategory) else EventCategory.parse(category)
    match parsed:
        case EventCategory.NFT_MINT:
            return normalize_mint(raw)
        case EventCategory.NFT_SALE:
            return normalize_sale(raw)
        case EventCategory.NFT_LISTING:
            return normalize_listing(raw)
        case EventCategory.COMPRESSED_NFT_MINT:
            return normalize_compressed_mint(raw)
    raise UnsupportedCategory(str(category))


__all__ = [
    "CompressedNFTMintRecord",
    "NFTListingRecord",
    "NFTMintRecord",
    "NFTSaleRecord",
    "NormalizedRecord",
    "normalize",
    "record_class_for",
]
