"""
Extraction primitives for webhook normalization.

Every function here is pure and total: it takes any value (including None,
wrong types or partially populated dicts) and returns either a usable value
or None. Per-category normalizers compose them into ordered fallback chains
with first_of(), so each heuristic stays independently testable.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, TypeVar

T = TypeVar("T")

LAMPORTS_PER_SOL = 1_000_000_000
NATIVE_CURRENCY = "SOL"
DEFAULT_TOKEN_STANDARD = "NonFungible"

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_METADATA_PROGRAM_ID = "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
ACCOUNT_COMPRESSION_PROGRAM_ID = "cmtDvXumGCrqC1Age74AVPhSRVXJMd8PJS91L8KbNCK"
NOOP_PROGRAM_ID = "noopb9bkMVfRPU8AsbpTUg8AQkHtKwMYZiFUjNRtMmV"

# Never reported as creators
SYSTEM_ADDRESSES = frozenset({TOKEN_PROGRAM_ID, TOKEN_METADATA_PROGRAM_ID, SYSTEM_PROGRAM_ID})
COMPRESSION_PROGRAM_IDS = (ACCOUNT_COMPRESSION_PROGRAM_ID, NOOP_PROGRAM_ID)

# Metadata instruction payloads shorter than this never carry name/symbol/uri
MIN_METADATA_DATA_LEN = 50

_TOKEN_NUMBER_RE = re.compile(r"#(\d+)")
_MINTED_WORD_RE = re.compile(r"minted\s+([^#\s]+)", re.IGNORECASE)
_MINTED_COLLECTION_RE = re.compile(r"minted\s+([^#\s]+)\s+#\d+", re.IGNORECASE)
_DATA_NAME_RE = re.compile(r"name[^\w]+([a-zA-Z0-9_\s]+)", re.IGNORECASE)
_DATA_SYMBOL_RE = re.compile(r"symbol[^\w]+([a-zA-Z0-9_\s]+)", re.IGNORECASE)
_DATA_URI_RE = re.compile(r"uri[^\w]+(https?://[^\s\"]+)", re.IGNORECASE)
_URL_RE = re.compile(r"(https?://[^\s\"]+)", re.IGNORECASE)


# -----------------------------------------------------------------------------
# Combinators and coercion
# -----------------------------------------------------------------------------


def is_present(value: Any) -> bool:
    """None, empty strings and empty containers are absent; 0 and False are present."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, dict, tuple)):
        return len(value) > 0
    return True


def first_of(*steps: Callable[[], T | None]) -> T | None:
    """Run steps lazily in order; return the first present result, else None."""
    for step in steps:
        value = step()
        if is_present(value):
            return value
    return None


def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def dict_items(value: Any) -> list[dict[str, Any]]:
    """List elements that are dicts; anything else is dropped."""
    return [item for item in as_list(value) if isinstance(item, dict)]


def first_dict(value: Any) -> dict[str, Any]:
    items = dict_items(value)
    return items[0] if items else {}


def text(value: Any) -> str | None:
    """Non-blank string or None."""
    if isinstance(value, str) and value.strip():
        return value
    return None


def number(value: Any) -> float | None:
    """Finite int/float (bools excluded) or numeric string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def integer(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    parsed = number(value)
    return int(parsed) if parsed is not None else None


def flag(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


def dig(obj: Any, *path: str | int) -> Any:
    """Walk dict keys / list indexes; None on the first miss."""
    current = obj
    for key in path:
        if isinstance(key, int) and isinstance(current, list):
            if not -len(current) <= key < len(current):
                return None
            current = current[key]
        elif isinstance(key, str) and isinstance(current, dict):
            current = current.get(key)
        else:
            return None
    return current


def lamports_to_sol(value: Any) -> float:
    """Smallest native unit to whole SOL (fixed 10**9 scale). Non-numeric -> 0.0."""
    lamports = number(value)
    if not lamports:
        return 0.0
    return round(lamports / LAMPORTS_PER_SOL, 9)


def bps_to_percent(value: Any) -> float | None:
    bps = number(value)
    return bps / 100 if bps is not None else None


def error_text(value: Any) -> str:
    """transactionError as text: strings kept, structures JSON-encoded, absent -> ''."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


# -----------------------------------------------------------------------------
# Envelope
# -----------------------------------------------------------------------------


@dataclass
class Envelope:
    """Top-level webhook fields shared by every category, already coerced."""

    signature: str = ""
    slot: int = 0
    timestamp: int = 0
    fee_payer: str = ""
    fee: int = 0
    source: str = ""
    type: str = ""
    description: str = ""
    transaction_error: str = ""
    events: dict[str, Any] = field(default_factory=dict)
    instructions: list[dict[str, Any]] = field(default_factory=list)
    account_data: list[Any] = field(default_factory=list)
    native_transfers: list[Any] = field(default_factory=list)
    token_transfers: list[Any] = field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Any) -> Envelope:
        raw = as_dict(raw)
        return cls(
            signature=text(raw.get("signature")) or "",
            slot=integer(raw.get("slot")) or 0,
            timestamp=integer(raw.get("timestamp")) or 0,
            fee_payer=text(raw.get("feePayer")) or "",
            fee=integer(raw.get("fee")) or 0,
            source=text(raw.get("source")) or "",
            type=text(raw.get("type")) or "",
            description=text(raw.get("description")) or "",
            transaction_error=error_text(raw.get("transactionError")),
            events=as_dict(raw.get("events")),
            instructions=dict_items(raw.get("instructions")),
            account_data=as_list(raw.get("accountData")),
            native_transfers=as_list(raw.get("nativeTransfers")),
            token_transfers=as_list(raw.get("tokenTransfers")),
        )

    def common_fields(self) -> dict[str, Any]:
        """Kwargs for the NormalizedRecord base fields."""
        return {
            "signature": self.signature,
            "slot": self.slot,
            "block_time": self.timestamp,
            "fee_payer": self.fee_payer,
            "description": self.description,
            "events": self.events,
            "fee": self.fee,
            "native_transfers": self.native_transfers,
            "source": self.source,
            "timestamp": self.timestamp,
            "token_transfers": self.token_transfers,
            "transaction_error": self.transaction_error,
            "type": self.type,
            "inner_instructions": flatten_inner_instructions(self.instructions),
            "accounts": flatten_accounts(self.instructions),
        }


# -----------------------------------------------------------------------------
# Instructions
# -----------------------------------------------------------------------------


def instruction_at(instructions: list[dict[str, Any]], index: int) -> dict[str, Any] | None:
    if 0 <= index < len(instructions):
        return instructions[index]
    return None


def program_id_of(instruction: Any) -> str | None:
    return text(as_dict(instruction).get("programId"))


def accounts_of(instruction: Any) -> list[Any]:
    return as_list(as_dict(instruction).get("accounts"))


def inner_instructions_of(instruction: Any) -> list[dict[str, Any]]:
    return dict_items(as_dict(instruction).get("innerInstructions"))


def instructions_for_programs(
    instructions: Iterable[dict[str, Any]],
    program_ids: Iterable[str],
) -> list[dict[str, Any]]:
    allowed = set(program_ids)
    return [instr for instr in instructions if program_id_of(instr) in allowed]


def flatten_accounts(instructions: list[dict[str, Any]]) -> list[Any]:
    """Accounts of every instruction, in order, duplicates kept (audit field)."""
    out: list[Any] = []
    for instr in instructions:
        out.extend(accounts_of(instr))
    return out


def flatten_inner_instructions(instructions: list[dict[str, Any]]) -> list[Any]:
    out: list[Any] = []
    for instr in instructions:
        out.extend(as_list(instr.get("innerInstructions")))
    return out


def first_program_in(
    instructions: list[dict[str, Any]],
    allowed: Iterable[str],
) -> str | None:
    """First allow-listed program id among instructions, each checked before its inner instructions."""
    allowed_set = set(allowed)
    for instr in instructions:
        pid = program_id_of(instr)
        if pid in allowed_set:
            return pid
        for inner in inner_instructions_of(instr):
            inner_pid = program_id_of(inner)
            if inner_pid in allowed_set:
                return inner_pid
    return None


def instruction_field(instruction: dict[str, Any] | None, key: str) -> str:
    """programId / data of a selected instruction, '' when absent."""
    if instruction is None:
        return ""
    return text(instruction.get(key)) or ""


# -----------------------------------------------------------------------------
# Free-text and synthetic fallbacks
# -----------------------------------------------------------------------------


def token_identifier(description: str | None) -> str | None:
    """'#42' from 'User minted CoolCat #42 for 1.5 SOL'."""
    if not description:
        return None
    match = _TOKEN_NUMBER_RE.search(description)
    return match.group(0) if match else None


def token_number_name(description: str | None) -> str | None:
    """'Token #42' when the description carries a token sequence number."""
    if not description:
        return None
    match = _TOKEN_NUMBER_RE.search(description)
    return f"Token #{match.group(1)}" if match else None


def minted_word(description: str | None) -> str | None:
    """Word following 'minted'."""
    if not description:
        return None
    match = _MINTED_WORD_RE.search(description)
    return match.group(1).strip() if match else None


def minted_collection(description: str | None) -> str | None:
    """Word between 'minted' and '#<n>': the collection symbol."""
    if not description:
        return None
    match = _MINTED_COLLECTION_RE.search(description)
    return match.group(1).strip() if match else None


def instruction_data_field(data: str | None, key: str) -> str | None:
    """
    Best-effort scrape of name/symbol/uri from a metadata instruction payload.
    Only payloads longer than MIN_METADATA_DATA_LEN that mention the key are inspected;
    uri falls back to any http(s) URL in the payload.
    """
    if not data or len(data) <= MIN_METADATA_DATA_LEN:
        return None
    if key == "uri":
        if "uri" not in data:
            return None
        match = _DATA_URI_RE.search(data) or _URL_RE.search(data)
    elif key == "name":
        match = _DATA_NAME_RE.search(data) if "name" in data else None
    elif key == "symbol":
        match = _DATA_SYMBOL_RE.search(data) if "symbol" in data else None
    else:
        return None
    if not match:
        return None
    return match.group(1).strip() or None


def synthetic_name(mint: str | None) -> str | None:
    """Display name from a truncated mint address."""
    return f"NFT {mint[:8]}" if mint else None


def symbol_from_name(name: str | None) -> str | None:
    """Initials of a multi-word name, else its first four characters, upper-cased."""
    if not name:
        return None
    words = name.split()
    if len(words) > 1:
        return "".join(word[0].upper() for word in words)
    return name[:4].upper()


def collection_ref(value: Any, keys: tuple[str, ...] = ("name", "key")) -> str | None:
    """Collection as a string, or the first present key of a collection object."""
    if isinstance(value, str):
        return text(value)
    obj = as_dict(value)
    for key in keys:
        found = text(obj.get(key))
        if found:
            return found
    return None
