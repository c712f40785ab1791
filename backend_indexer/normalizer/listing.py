"""
NFT listing normalizer.

Listings rarely carry events.nft.nfts; the mint is then read from the listing
program instruction, which by marketplace convention is instruction index 2
with the mint as its fifth account.
"""

from __future__ import annotations

from typing import Any

from backend_indexer.normalizer.extract import (
    NATIVE_CURRENCY,
    Envelope,
    accounts_of,
    as_dict,
    as_list,
    dict_items,
    first_dict,
    first_of,
    instruction_at,
    instruction_field,
    integer,
    lamports_to_sol,
    number,
    text,
    token_identifier,
)
from backend_indexer.normalizer.models import NFTListingRecord

LISTING_INSTRUCTION_INDEX = 2
LISTING_MINT_ACCOUNT_INDEX = 4
# Listing instruction must have more accounts than this for the mint position to hold
LISTING_MIN_ACCOUNTS = 5


def mint_from_listing_instruction(instructions: list[dict[str, Any]]) -> str | None:
    accounts = accounts_of(instruction_at(instructions, LISTING_INSTRUCTION_INDEX))
    if len(accounts) <= LISTING_MIN_ACCOUNTS:
        return None
    return text(accounts[LISTING_MINT_ACCOUNT_INDEX])


def _listing_instruction(instructions: list[dict[str, Any]]) -> dict[str, Any] | None:
    if len(instructions) > LISTING_INSTRUCTION_INDEX:
        return instructions[LISTING_INSTRUCTION_INDEX]
    return instruction_at(instructions, 0)


def _price(nft: dict[str, Any]) -> float:
    """amount first, then price; both in lamports."""
    lamports = first_of(
        lambda: nft.get("amount") if number(nft.get("amount")) else None,
        lambda: nft.get("price") if number(nft.get("price")) else None,
    )
    return lamports_to_sol(lamports)


def normalize_listing(raw: Any) -> NFTListingRecord:
    env = Envelope.from_raw(raw)
    nft = as_dict(env.events.get("nft"))
    nft_info = first_dict(nft.get("nfts"))

    mint = first_of(
        lambda: text(nft_info.get("mint")),
        lambda: text(nft.get("mint")),
        lambda: mint_from_listing_instruction(env.instructions),
    ) or ""
    token_standard = text(nft_info.get("tokenStandard")) or ""

    listing_instr = _listing_instruction(env.instructions)
    program_id = instruction_field(listing_instr, "programId")

    metadata: dict[str, Any] = {
        "tokenStandard": token_standard,
        "source": env.source,
        "saleType": text(nft.get("saleType")) or "",
        "listingProgram": program_id,
        "listedAt": env.timestamp,
        "tokenIdentifier": token_identifier(env.description) or "",
    }
    if nft.get("metadata"):
        metadata["nftMetadata"] = nft["metadata"]
    token_accounts = [
        acc for acc in dict_items(env.account_data) if as_list(acc.get("tokenBalanceChanges"))
    ]
    if token_accounts:
        metadata["tokenAccounts"] = token_accounts

    return NFTListingRecord(
        **env.common_fields(),
        program_id=program_id,
        data=instruction_field(listing_instr, "data"),
        metadata=metadata,
        mint=mint,
        seller=text(nft.get("seller")) or "",
        marketplace=first_of(lambda: text(nft.get("marketplace")), lambda: env.source) or "",
        price=_price(nft),
        currency=NATIVE_CURRENCY,
        auction_house=text(nft.get("auctionHouse")) or "",
        token_size=integer(nft.get("tokenSize")) or 1,
        expiry=integer(nft.get("expiry")) or 0,
        listing_time=env.timestamp,
        listing_state="active",
        token_account=text(nft.get("tokenAccount")) or "",
        account_data=env.account_data,
        instructions=env.instructions,
    )
