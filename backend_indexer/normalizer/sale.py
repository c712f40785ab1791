"""NFT sale normalizer: events.nft first, token transfers as fallback for the parties and mint."""

from __future__ import annotations

from typing import Any

from backend_indexer.normalizer.extract import (
    NATIVE_CURRENCY,
    Envelope,
    as_dict,
    first_dict,
    first_of,
    instruction_at,
    instruction_field,
    lamports_to_sol,
    text,
)
from backend_indexer.normalizer.models import NFTSaleRecord


def normalize_sale(raw: Any) -> NFTSaleRecord:
    env = Envelope.from_raw(raw)
    nft = as_dict(env.events.get("nft"))
    nft_info = first_dict(nft.get("nfts"))
    first_transfer = first_dict(env.token_transfers)

    mint = first_of(
        lambda: text(nft_info.get("mint")),
        lambda: text(first_transfer.get("mint")),
    ) or ""
    token_standard = first_of(
        lambda: text(nft_info.get("tokenStandard")),
        lambda: text(first_transfer.get("tokenStandard")) if mint == first_transfer.get("mint") else None,
    ) or ""
    seller = first_of(
        lambda: text(nft.get("seller")),
        lambda: text(first_transfer.get("fromUserAccount")),
    ) or ""
    buyer = first_of(
        lambda: text(nft.get("buyer")),
        lambda: text(first_transfer.get("toUserAccount")),
    ) or ""
    marketplace = first_of(
        lambda: text(nft.get("source")),
        lambda: env.source,
    ) or ""

    primary = instruction_at(env.instructions, 0)
    metadata = {
        **as_dict(nft_info.get("metadata")),
        "nftInfo": nft_info,
        "tokenStandard": token_standard,
    }

    return NFTSaleRecord(
        **env.common_fields(),
        program_id=instruction_field(primary, "programId"),
        data=instruction_field(primary, "data"),
        metadata=metadata,
        mint=mint,
        seller=seller,
        buyer=buyer,
        marketplace=marketplace,
        price=lamports_to_sol(nft.get("amount")),
        currency=NATIVE_CURRENCY,
        auction_house=text(nft.get("auctionHouse")) or "",
        token_standard=token_standard,
        tx_fee=lamports_to_sol(env.fee),
        royalty_fee=lamports_to_sol(nft.get("royaltyFee")),
        marketplace_fee=lamports_to_sol(nft.get("marketplaceFee")),
        account_data=env.account_data,
        instructions=env.instructions,
        sale_type=text(nft.get("saleType")) or "",
    )
