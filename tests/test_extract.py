"""
Pytest tests for normalizer extraction primitives (pure, total helpers).
"""

from __future__ import annotations

import pytest

from backend_indexer.normalizer.extract import (
    Envelope,
    collection_ref,
    dig,
    error_text,
    first_of,
    first_program_in,
    instruction_data_field,
    integer,
    is_present,
    lamports_to_sol,
    minted_collection,
    minted_word,
    number,
    symbol_from_name,
    synthetic_name,
    token_identifier,
    token_number_name,
)


def test_is_present():
    """None, blank strings and empty containers are absent; 0 and False are present."""
    assert not is_present(None)
    assert not is_present("   ")
    assert not is_present([])
    assert not is_present({})
    assert is_present(0)
    assert is_present(False)
    assert is_present("x")


def test_first_of_is_lazy():
    """Steps after the first present value are never evaluated."""
    calls = []

    def step(value):
        def _run():
            calls.append(value)
            return value

        return _run

    assert first_of(step(None), step(""), step("found"), step("never")) == "found"
    assert calls == [None, "", "found"]
    assert first_of(step(None)) is None


def test_number_coercion():
    assert number(5) == 5.0
    assert number("1.5") == 1.5
    assert number(True) is None
    assert number("abc") is None
    assert number(float("nan")) is None
    assert integer("42") == 42
    assert integer(None) is None


def test_lamports_to_sol():
    """Fixed 10**9 scale; non-numeric input becomes 0.0."""
    assert lamports_to_sol(1_500_000_000) == 1.5
    assert lamports_to_sol("2000000000") == 2.0
    assert lamports_to_sol(None) == 0.0
    assert lamports_to_sol("abc") == 0.0
    assert lamports_to_sol(5000) == pytest.approx(0.000005)


def test_error_text():
    assert error_text(None) == ""
    assert error_text("InstructionError") == "InstructionError"
    assert error_text({"InstructionError": [0, "Custom"]}) == '{"InstructionError": [0, "Custom"]}'


def test_dig():
    obj = {"events": {"nft": {"nfts": [{"mint": "M"}]}}}
    assert dig(obj, "events", "nft", "nfts", 0, "mint") == "M"
    assert dig(obj, "events", "nft", "nfts", 3, "mint") is None
    assert dig(obj, "events", "missing", "x") is None
    assert dig("not-a-dict", "a") is None


def test_description_scraping():
    """Token number, minted word and collection from a Helius description."""
    description = "User minted CoolCat #42 for 1.5 SOL"
    assert token_identifier(description) == "#42"
    assert token_number_name(description) == "Token #42"
    assert minted_word(description) == "CoolCat"
    assert minted_collection(description) == "CoolCat"
    assert token_identifier("no number here") is None
    assert minted_collection("User minted something") is None
    assert token_number_name(None) is None


def test_instruction_data_field():
    """Only payloads longer than the minimum are scraped; uri falls back to any URL."""
    payload = "x" * 40 + '"name":"CoolCats","symbol":"CC","uri":"https://x.io/1.json"'
    assert instruction_data_field(payload, "name") == "CoolCats"
    assert instruction_data_field(payload, "symbol") == "CC"
    assert instruction_data_field(payload, "uri") == "https://x.io/1.json"
    assert instruction_data_field('"name":"Short"', "name") is None
    assert instruction_data_field(payload, "creator") is None


def test_synthetic_name_and_symbol():
    assert synthetic_name("MintAddr1111") == "NFT MintAddr"
    assert synthetic_name("") is None
    assert symbol_from_name("Cool Cats Club") == "CCC"
    assert symbol_from_name("degen") == "DEGE"
    assert symbol_from_name(None) is None


def test_collection_ref():
    assert collection_ref("Coll") == "Coll"
    assert collection_ref({"name": "Named", "key": "Key"}) == "Named"
    assert collection_ref({"name": "Named", "key": "Key"}, keys=("key", "name")) == "Key"
    assert collection_ref({"verified": True}) is None
    assert collection_ref(None) is None


def test_first_program_in_checks_outer_before_inner():
    instructions = [
        {"programId": "A", "innerInstructions": [{"programId": "C"}]},
        {"programId": "B"},
    ]
    assert first_program_in(instructions, {"B", "C"}) == "C"
    assert first_program_in(instructions, {"B"}) == "B"
    assert first_program_in(instructions, {"Z"}) is None


def test_envelope_from_garbage():
    """Wrong types coerce to typed defaults; nothing raises."""
    env = Envelope.from_raw(
        {
            "signature": 123,
            "slot": True,
            "fee": "abc",
            "events": "bad",
            "instructions": [1, None, {"programId": "P", "accounts": "bad"}],
            "tokenTransfers": "x",
        }
    )
    assert env.signature == ""
    assert env.slot == 0
    assert env.fee == 0
    assert env.events == {}
    assert env.instructions == [{"programId": "P", "accounts": "bad"}]
    assert env.token_transfers == []
    assert Envelope.from_raw(None) == Envelope()
