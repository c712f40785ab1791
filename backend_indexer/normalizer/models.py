"""
Normalized record shapes, one per event category.

Every field carries a typed default so a record is always fully populated:
'' for text, 0 / 0.0 for numbers, False for flags, [] / {} for JSON blobs.
Field names are the Python-side keys; the tenant table maps them to the
camelCase column names tenants query (see database/tenant_schema.py).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar

from backend_indexer.core.categories import EventCategory


@dataclass
class NormalizedRecord:
    """Fields shared by every category: natural key, instruction audit fields, envelope passthrough."""

    category: ClassVar[EventCategory]

    signature: str = ""
    slot: int = 0
    block_time: int = 0
    fee_payer: str = ""
    program_id: str = ""
    inner_instructions: list[Any] = field(default_factory=list)
    accounts: list[Any] = field(default_factory=list)
    data: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    events: dict[str, Any] = field(default_factory=dict)
    fee: int = 0
    native_transfers: list[Any] = field(default_factory=list)
    source: str = ""
    timestamp: int = 0
    token_transfers: list[Any] = field(default_factory=list)
    transaction_error: str = ""
    type: str = ""

    def to_row(self) -> dict[str, Any]:
        """Column-key -> value mapping for the tenant insert (deep copy)."""
        return asdict(self)


@dataclass
class NFTMintRecord(NormalizedRecord):
    category: ClassVar[EventCategory] = EventCategory.NFT_MINT

    mint: str = ""
    token_standard: str = ""
    mint_authority: str = ""
    owner: str = ""
    collection: str = ""
    collection_verified: bool = False
    creators: list[Any] = field(default_factory=list)
    royalties: float = 0.0
    name: str = ""
    symbol: str = ""
    uri: str = ""
    tx_fee: float = 0.0
    seller_fee_basis_points: int = 0


@dataclass
class NFTSaleRecord(NormalizedRecord):
    category: ClassVar[EventCategory] = EventCategory.NFT_SALE

    mint: str = ""
    seller: str = ""
    buyer: str = ""
    marketplace: str = ""
    price: float = 0.0
    currency: str = ""
    auction_house: str = ""
    token_standard: str = ""
    tx_fee: float = 0.0
    royalty_fee: float = 0.0
    marketplace_fee: float = 0.0
    account_data: list[Any] = field(default_factory=list)
    instructions: list[Any] = field(default_factory=list)
    sale_type: str = ""


@dataclass
class NFTListingRecord(NormalizedRecord):
    category: ClassVar[EventCategory] = EventCategory.NFT_LISTING

    mint: str = ""
    seller: str = ""
    marketplace: str = ""
    price: float = 0.0
    currency: str = ""
    auction_house: str = ""
    token_size: int = 1
    expiry: int = 0
    listing_time: int = 0
    listing_state: str = "active"
    token_account: str = ""
    account_data: list[Any] = field(default_factory=list)
    instructions: list[Any] = field(default_factory=list)


@dataclass
class CompressedNFTMintRecord(NFTMintRecord):
    category: ClassVar[EventCategory] = EventCategory.COMPRESSED_NFT_MINT

    merkle_tree: str = ""
    leaf_index: int = 0
    tree_authority: str = ""
    compression_program: str = ""
    asset_id: str = ""
    compressed_nft_metadata: dict[str, Any] = field(default_factory=dict)
    canopy_depth: int = 0
    proof_path: list[Any] = field(default_factory=list)
    account_data: list[Any] = field(default_factory=list)
    instructions: list[Any] = field(default_factory=list)


def record_class_for(category: EventCategory) -> type[NormalizedRecord]:
    match category:
        case EventCategory.NFT_MINT:
            return NFTMintRecord
        case EventCategory.NFT_SALE:
            return NFTSaleRecord
        case EventCategory.NFT_LISTING:
            return NFTListingRecord
        case EventCategory.COMPRESSED_NFT_MINT:
            return CompressedNFTMintRecord
    raise ValueError(f"no record type for {category!r}")
