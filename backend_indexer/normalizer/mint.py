"""
NFT mint normalizer.

Helius mint payloads are the least uniform of the four categories: some carry a
full events.nft object with metadata, others only token transfers and a
Token Metadata instruction. Each field walks its own fallback chain:
events.nft -> token transfers / setAuthority events -> instruction conventions
-> description and instruction-data scraping -> synthesized value -> default.
"""

from __future__ import annotations

from typing import Any

from backend_indexer.normalizer.extract import (
    DEFAULT_TOKEN_STANDARD,
    SYSTEM_ADDRESSES,
    TOKEN_METADATA_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    Envelope,
    accounts_of,
    as_dict,
    as_list,
    bps_to_percent,
    collection_ref,
    dict_items,
    first_dict,
    first_of,
    flag,
    flatten_inner_instructions,
    inner_instructions_of,
    instruction_at,
    instruction_data_field,
    instruction_field,
    instructions_for_programs,
    integer,
    lamports_to_sol,
    minted_collection,
    minted_word,
    number,
    program_id_of,
    symbol_from_name,
    synthetic_name,
    text,
    token_identifier,
    token_number_name,
)
from backend_indexer.normalizer.models import NFTMintRecord

ARWEAVE_URI_PREFIX = "https://arweave.net/"

# The 4th instruction of a Metaplex mint usually carries the authority/owner accounts
MAIN_MINT_INSTRUCTION_INDEX = 3


def _mint_source(nft: dict[str, Any], token_transfers: list[Any]) -> dict[str, Any]:
    """Dict that names the mint: events.nft.nfts[0], then events.nft, then the first token transfer."""
    for candidate in (first_dict(nft.get("nfts")), nft, first_dict(token_transfers)):
        if text(candidate.get("mint")):
            return candidate
    return {}


def _set_authority_from(events: dict[str, Any], mint: str) -> str | None:
    """Previous authority recorded by a setAuthority event on the mint account (last one wins)."""
    if not mint:
        return None
    found = None
    for event in dict_items(events.get("setAuthority")):
        if event.get("account") == mint and text(event.get("from")):
            found = event["from"]
    return found


def _token_inner_instructions(instruction: dict[str, Any] | None) -> list[dict[str, Any]]:
    """SPL Token inner instructions with at least mint/authority/owner accounts."""
    return [
        inner
        for inner in inner_instructions_of(instruction)
        if program_id_of(inner) == TOKEN_PROGRAM_ID and len(accounts_of(inner)) >= 3
    ]


def creators_from_token_instructions(
    instructions: list[dict[str, Any]],
    mint: str,
) -> list[dict[str, Any]] | None:
    """
    Creator guess from SPL Token inner instructions across all instructions:
    unique non-system accounts other than the mint, first one primary.
    """
    addresses: list[str] = []
    for inner in flatten_inner_instructions(instructions):
        if not isinstance(inner, dict) or program_id_of(inner) != TOKEN_PROGRAM_ID:
            continue
        accounts = accounts_of(inner)
        if len(accounts) < 3:
            continue
        for addr in accounts:
            if isinstance(addr, str) and addr and addr not in addresses:
                addresses.append(addr)
    filtered = [a for a in addresses if a not in SYSTEM_ADDRESSES and a != mint]
    if not filtered:
        return None
    return [
        {"address": addr, "share": 100 if i == 0 else 0, "verified": i == 0}
        for i, addr in enumerate(filtered)
    ]


def fee_payer_creator(fee_payer: str) -> list[dict[str, Any]] | None:
    """In most Metaplex mints the fee payer is the primary creator."""
    if not fee_payer:
        return None
    return [{"address": fee_payer, "share": 100, "verified": True}]


def _collection(nft: dict[str, Any], metadata: dict[str, Any]) -> tuple[str, bool]:
    from_event = collection_ref(nft.get("collection"))
    if from_event:
        return from_event, bool(flag(nft.get("collectionVerified")))
    from_metadata = collection_ref(metadata.get("collection"))
    if from_metadata:
        return from_metadata, bool(flag(metadata.get("collectionVerified")))
    return "", False


def _royalties(nft: dict[str, Any], metadata: dict[str, Any]) -> tuple[float, int]:
    """(royalties percent, seller fee basis points). Event royalties are kept as reported."""
    reported = number(nft.get("royalties"))
    if reported is not None:
        return reported, 0
    bps = integer(
        first_of(
            lambda: metadata.get("seller_fee_basis_points"),
            lambda: metadata.get("sellerFeeBasisPoints"),
        )
    )
    if bps is None:
        return 0.0, 0
    return bps_to_percent(bps) or 0.0, bps


def normalize_mint(raw: Any) -> NFTMintRecord:
    env = Envelope.from_raw(raw)
    nft = as_dict(env.events.get("nft"))
    metadata = as_dict(nft.get("metadata"))
    first_transfer = first_dict(env.token_transfers)

    mint_src = _mint_source(nft, env.token_transfers)
    mint = text(mint_src.get("mint")) or ""
    token_standard = text(mint_src.get("tokenStandard")) or DEFAULT_TOKEN_STANDARD

    metaplex = instructions_for_programs(env.instructions, {TOKEN_METADATA_PROGRAM_ID})
    metadata_instr = metaplex[0] if metaplex else None
    if len(env.instructions) > MAIN_MINT_INSTRUCTION_INDEX:
        main_instr = instruction_at(env.instructions, MAIN_MINT_INSTRUCTION_INDEX)
    else:
        main_instr = metadata_instr
    token_inner = _token_inner_instructions(main_instr)
    metadata_data = instruction_field(metadata_instr, "data")

    owner = first_of(
        lambda: text(nft.get("owner")),
        lambda: text(first_transfer.get("toUserAccount")),
        lambda: text(nft.get("buyer")),
        lambda: text(accounts_of(token_inner[0])[2]) if token_inner else None,
    ) or ""

    mint_authority = first_of(
        lambda: _set_authority_from(env.events, mint),
        lambda: env.fee_payer,
        lambda: text(accounts_of(main_instr)[0]) if accounts_of(main_instr) else None,
        lambda: text(accounts_of(token_inner[0])[1]) if token_inner else None,
    ) or ""

    name = first_of(
        lambda: text(metadata.get("name")),
        lambda: text(nft.get("name")),
        lambda: instruction_data_field(metadata_data, "name"),
        lambda: token_number_name(env.description),
        lambda: minted_word(env.description),
        lambda: synthetic_name(mint),
    ) or ""

    symbol = first_of(
        lambda: text(metadata.get("symbol")),
        lambda: text(nft.get("symbol")),
        lambda: instruction_data_field(metadata_data, "symbol"),
        lambda: minted_collection(env.description),
        lambda: symbol_from_name(name),
    ) or ""

    is_metaplex_standard = bool(metaplex) and bool(
        instructions_for_programs(env.instructions, {TOKEN_PROGRAM_ID})
    )
    uri = first_of(
        lambda: text(metadata.get("uri")),
        lambda: text(nft.get("uri")),
        lambda: instruction_data_field(metadata_data, "uri"),
        lambda: f"{ARWEAVE_URI_PREFIX}{mint}" if mint and is_metaplex_standard else None,
    ) or ""

    creators = first_of(
        lambda: dict_items(nft.get("creators")),
        lambda: dict_items(metadata.get("creators")),
        lambda: creators_from_token_instructions(env.instructions, mint),
        lambda: fee_payer_creator(env.fee_payer),
    ) or []

    collection, collection_verified = _collection(nft, metadata)
    royalties, seller_fee_basis_points = _royalties(nft, metadata)

    primary = metadata_instr or instruction_at(env.instructions, 0)
    stored_metadata = {
        **metadata,
        "tokenStandard": token_standard,
        "source": env.source,
        "mintedAt": env.timestamp,
        "mintAuthority": mint_authority,
        "owner": owner,
        "tokenIdentifier": token_identifier(env.description) or "",
    }

    return NFTMintRecord(
        **env.common_fields(),
        program_id=instruction_field(primary, "programId"),
        data=instruction_field(primary, "data"),
        metadata=stored_metadata,
        mint=mint,
        token_standard=token_standard,
        mint_authority=mint_authority,
        owner=owner,
        collection=collection,
        collection_verified=collection_verified,
        creators=list(as_list(creators)),
        royalties=royalties,
        name=name,
        symbol=symbol,
        uri=uri,
        tx_fee=lamports_to_sol(env.fee),
        seller_fee_basis_points=seller_fee_basis_points,
    )
