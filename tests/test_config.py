"""
Pytest tests for categories, settings and environment helpers.

Environment is isolated with monkeypatch; get_settings cache is cleared around each test.
"""

from __future__ import annotations

import dataclasses

import pytest

from backend_indexer.config.env import env_flag, mask_url
from backend_indexer.config.settings import Settings, get_settings, load_settings
from backend_indexer.core.categories import ALL_CATEGORIES, EventCategory

SETTINGS_ENV = (
    "INDEXER_DB_URL",
    "DATABASE_URL",
    "REDIS_URL",
    "REDIS_HOST",
    "ENABLE_QUEUE",
    "WEBHOOK_AUTH_TOKEN",
    "JOB_CACHE_TTL_SEC",
    "QUEUE_ATTEMPTS",
    "WORKER_CONCURRENCY",
    "APP_ENV",
    "NODE_ENV",
    "API_PORT",
    "PORT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


# --- Categories ---


def test_category_names():
    assert EventCategory.NFT_MINT.queue_name == "nft-mint-queue"
    assert EventCategory.COMPRESSED_NFT_MINT.queue_name == "compressed-nft-mint-queue"
    assert EventCategory.NFT_SALE.table_name == "nft_sales"
    assert EventCategory.COMPRESSED_NFT_MINT.table_name == "compressed_nft_mints"
    assert EventCategory.NFT_LISTING.label == "NFT_LISTING"
    assert len(ALL_CATEGORIES) == 4


def test_category_parse():
    """Wire values and Helius type names parse case-insensitively; anything else is None."""
    assert EventCategory.parse("nft_mint") is EventCategory.NFT_MINT
    assert EventCategory.parse("NFT_SALE") is EventCategory.NFT_SALE
    assert EventCategory.parse("compressed-nft-mint") is EventCategory.COMPRESSED_NFT_MINT
    assert EventCategory.parse(EventCategory.NFT_LISTING) is EventCategory.NFT_LISTING
    assert EventCategory.parse("nft_burn") is None
    assert EventCategory.parse(None) is None
    assert EventCategory.parse(3) is None


# --- Settings ---


def test_load_settings_defaults(clean_env):
    settings = load_settings()
    assert settings.database_url == "sqlite:///indexer.db"
    assert settings.redis_url == "redis://localhost:6379/0"
    assert settings.enable_queue is True
    assert settings.webhook_auth_token == ""
    assert settings.job_cache_ttl_sec == 3600
    assert settings.queue_attempts == 3
    assert settings.api_port == 4000
    assert settings.is_production is False


def test_load_settings_from_env(clean_env):
    clean_env.setenv("DATABASE_URL", "postgresql://u:p@db:5432/indexer")
    clean_env.setenv("ENABLE_QUEUE", "false")
    clean_env.setenv("WEBHOOK_AUTH_TOKEN", "  secret  ")
    clean_env.setenv("JOB_CACHE_TTL_SEC", "0")
    clean_env.setenv("QUEUE_ATTEMPTS", "not-a-number")
    clean_env.setenv("NODE_ENV", "Production")
    clean_env.setenv("PORT", "8080")
    settings = load_settings()
    assert settings.database_url == "postgresql://u:p@db:5432/indexer"
    assert settings.enable_queue is False
    assert settings.webhook_auth_token == "secret"
    # Clamped to at least one second
    assert settings.job_cache_ttl_sec == 1
    assert settings.queue_attempts == 3
    assert settings.api_port == 8080
    assert settings.is_production is True


def test_indexer_db_url_takes_precedence(clean_env):
    clean_env.setenv("DATABASE_URL", "postgresql://a/a")
    clean_env.setenv("INDEXER_DB_URL", "postgresql://b/b")
    assert load_settings().database_url == "postgresql://b/b"


def test_get_settings_is_cached(clean_env):
    first = get_settings()
    clean_env.setenv("WEBHOOK_AUTH_TOKEN", "changed")
    assert get_settings() is first
    get_settings.cache_clear()
    assert get_settings().webhook_auth_token == "changed"


def test_settings_frozen():
    settings = Settings(database_url="sqlite://", redis_url="redis://")
    with pytest.raises(dataclasses.FrozenInstanceError):
        settings.enable_queue = False


def test_env_flag(monkeypatch):
    monkeypatch.setenv("FLAG_UNDER_TEST", "off")
    assert env_flag("FLAG_UNDER_TEST", True) is False
    monkeypatch.setenv("FLAG_UNDER_TEST", "maybe")
    assert env_flag("FLAG_UNDER_TEST", True) is True
    monkeypatch.delenv("FLAG_UNDER_TEST")
    assert env_flag("FLAG_UNDER_TEST", False) is False


def test_mask_url_hides_password():
    masked = mask_url("postgresql://user:hunter2@db:5432/indexer")
    assert "hunter2" not in masked
    assert "db:5432" in masked
