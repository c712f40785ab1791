"""
Event categories handled by the indexer.

Each member carries its wire value (URL segment, control-plane `type`
column, cache key suffix), its durable queue name and its tenant table name.
"""

from __future__ import annotations

from enum import Enum


class EventCategory(str, Enum):
    NFT_MINT = "nft_mint"
    NFT_SALE = "nft_sale"
    NFT_LISTING = "nft_listing"
    COMPRESSED_NFT_MINT = "compressed_nft_mint"

    @property
    def queue_name(self) -> str:
        """Queue/topic name, e.g. nft-mint-queue."""
        return self.value.replace("_", "-") + "-queue"

    @property
    def table_name(self) -> str:
        match self:
            case EventCategory.NFT_MINT:
                return "nft_mints"
            case EventCategory.NFT_SALE:
                return "nft_sales"
            case EventCategory.NFT_LISTING:
                return "nft_listings"
            case EventCategory.COMPRESSED_NFT_MINT:
                return "compressed_nft_mints"

    @property
    def label(self) -> str:
        """Upper-case label used in audit messages (NFT_MINT, ...)."""
        return self.value.upper()

    @classmethod
    def parse(cls, value: object) -> EventCategory | None:
        """
        Resolve a category from a wire value or Helius type name, case-insensitive.
        Returns None for anything unsupported.
        """
        if isinstance(value, EventCategory):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().lower().replace("-", "_")
        for member in cls:
            if member.value == key:
                return member
        return None


ALL_CATEGORIES: tuple[EventCategory, ...] = tuple(EventCategory)
