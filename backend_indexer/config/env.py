"""
Environment variable loading for the indexer.

- DATABASE_URL: control-plane store (PostgreSQL in production; SQLite fallback)
- REDIS_URL: job cache and durable queue backend
- ENABLE_QUEUE: "false" forces synchronous (inline) dispatch
- WEBHOOK_AUTH_TOKEN: shared secret expected in the webhook Authorization header
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is backend_indexer/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_DATABASE_URL = "sqlite:///indexer.db"
DEFAULT_REDIS_URL = "redis://localhost:6379/0"

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")


def load_indexer_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env wins."""
    if _ENV_PATH.is_file():
        load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str = "") -> str:
    """Return a stripped env var, or default when unset/blank."""
    return (os.getenv(name) or "").strip() or default


def env_int(name: str, default: int) -> int:
    raw = env_str(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = env_str(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_flag(name: str, default: bool) -> bool:
    """
    Parse a boolean flag. Unknown values keep the default, so ENABLE_QUEUE
    stays on unless explicitly disabled.
    """
    raw = env_str(name).lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    return default


def get_database_url() -> str:
    """Control-plane URL: INDEXER_DB_URL > DATABASE_URL > local SQLite file."""
    load_indexer_env()
    return env_str("INDEXER_DB_URL") or env_str("DATABASE_URL") or DEFAULT_DATABASE_URL


def get_redis_url() -> str:
    """Redis URL; REDIS_HOST/REDIS_PORT/REDIS_PASSWORD are honoured when REDIS_URL is unset."""
    load_indexer_env()
    url = env_str("REDIS_URL")
    if url:
        return url
    host = env_str("REDIS_HOST")
    if not host:
        return DEFAULT_REDIS_URL
    port = env_int("REDIS_PORT", 6379)
    password = env_str("REDIS_PASSWORD")
    auth = f":{password}@" if password else ""
    return f"redis://{auth}{host}:{port}/0"


def mask_url(url: str) -> str:
    """Hide credentials in a connection URL for logs."""
    if "@" not in url or "//" not in url:
        return url
    scheme, rest = url.split("//", 1)
    return f"{scheme}//***@{rest.split('@', 1)[1]}"
