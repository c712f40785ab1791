"""Compressed (Bubblegum) NFT mint normalizer. Reads events.compressed[0] and its metadata."""

from __future__ import annotations

from typing import Any

from backend_indexer.normalizer.extract import (
    COMPRESSION_PROGRAM_IDS,
    DEFAULT_TOKEN_STANDARD,
    Envelope,
    as_dict,
    as_list,
    bps_to_percent,
    collection_ref,
    dict_items,
    first_dict,
    first_of,
    first_program_in,
    flag,
    inner_instructions_of,
    instruction_at,
    instruction_field,
    integer,
    lamports_to_sol,
    program_id_of,
    text,
    token_identifier,
)
from backend_indexer.normalizer.models import CompressedNFTMintRecord

COMPRESSED_MAIN_INSTRUCTION_INDEX = 2


def _main_instruction(instructions: list[dict[str, Any]]) -> dict[str, Any] | None:
    if len(instructions) > COMPRESSED_MAIN_INSTRUCTION_INDEX:
        return instructions[COMPRESSED_MAIN_INSTRUCTION_INDEX]
    return instruction_at(instructions, 0)


def compression_program_of(
    main_instr: dict[str, Any] | None,
    instructions: list[dict[str, Any]],
) -> str | None:
    """Compression / no-op program: main instruction's inner instructions first, then anywhere."""
    for inner in inner_instructions_of(main_instr):
        pid = program_id_of(inner)
        if pid in COMPRESSION_PROGRAM_IDS:
            return pid
    return first_program_in(instructions, COMPRESSION_PROGRAM_IDS)


def normalize_compressed_mint(raw: Any) -> CompressedNFTMintRecord:
    env = Envelope.from_raw(raw)
    event = first_dict(env.events.get("compressed"))
    metadata = as_dict(event.get("metadata"))

    asset_id = text(event.get("assetId")) or ""
    merkle_tree = text(event.get("treeId")) or ""
    tree_delegate = text(event.get("treeDelegate")) or ""
    owner = text(event.get("newLeafOwner")) or ""
    leaf_index = integer(event.get("leafIndex")) or 0
    token_standard = text(metadata.get("tokenStandard")) or DEFAULT_TOKEN_STANDARD

    mint_authority = first_of(lambda: tree_delegate, lambda: env.fee_payer) or ""

    bps = integer(
        first_of(
            lambda: metadata.get("sellerFeeBasisPoints"),
            lambda: metadata.get("seller_fee_basis_points"),
        )
    ) or 0
    collection_obj = metadata.get("collection")
    collection = collection_ref(collection_obj, keys=("key", "name")) or ""
    collection_verified = bool(flag(as_dict(collection_obj).get("verified")))

    main_instr = _main_instruction(env.instructions)
    compression_program = compression_program_of(main_instr, env.instructions) or ""

    stored_metadata = {
        **metadata,
        "assetId": asset_id,
        "tokenStandard": token_standard,
        "source": env.source,
        "mintedAt": env.timestamp,
        "mintAuthority": mint_authority,
        "owner": owner,
        "leafIndex": leaf_index,
        "treeId": merkle_tree,
        "merkleTree": merkle_tree,
        "tokenIdentifier": token_identifier(env.description) or "",
    }

    return CompressedNFTMintRecord(
        **env.common_fields(),
        program_id=instruction_field(main_instr, "programId"),
        data=instruction_field(main_instr, "data"),
        metadata=stored_metadata,
        mint=asset_id,
        token_standard=token_standard,
        mint_authority=mint_authority,
        owner=owner,
        collection=collection,
        collection_verified=collection_verified,
        creators=dict_items(metadata.get("creators")),
        royalties=bps_to_percent(bps) or 0.0,
        name=text(metadata.get("name")) or "",
        symbol=text(metadata.get("symbol")) or "",
        uri=text(metadata.get("uri")) or "",
        tx_fee=lamports_to_sol(env.fee),
        seller_fee_basis_points=bps,
        merkle_tree=merkle_tree,
        leaf_index=leaf_index,
        tree_authority=tree_delegate,
        compression_program=compression_program,
        asset_id=asset_id,
        compressed_nft_metadata=metadata,
        canopy_depth=integer(event.get("canopyDepth")) or 0,
        proof_path=as_list(event.get("proofPath")),
        account_data=env.account_data,
        instructions=env.instructions,
    )
