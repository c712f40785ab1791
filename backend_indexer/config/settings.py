"""
Application settings and environment configuration.

Loads configuration from environment variables (and .env via env.py),
applies defaults for optional values, and exposes a typed, immutable
Settings object for the API server, dispatcher and queue workers.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass

from backend_indexer.config.env import (
    env_flag,
    env_float,
    env_int,
    env_str,
    get_database_url,
    get_redis_url,
    load_indexer_env,
)

DEFAULT_JOB_CACHE_TTL_SEC = 3600
DEFAULT_QUEUE_ATTEMPTS = 3
DEFAULT_QUEUE_BACKOFF_SEC = 1.0
DEFAULT_WORKER_CONCURRENCY = 25
DEFAULT_FANOUT_CONCURRENCY = 16
DEFAULT_TENANT_CONNECT_TIMEOUT_SEC = 30
DEFAULT_API_PORT = 4000


@dataclass(frozen=True)
class Settings:
    """Typed view of the process environment."""

    database_url: str
    redis_url: str
    enable_queue: bool = True
    webhook_auth_token: str = ""
    job_cache_ttl_sec: int = DEFAULT_JOB_CACHE_TTL_SEC
    queue_attempts: int = DEFAULT_QUEUE_ATTEMPTS
    queue_backoff_sec: float = DEFAULT_QUEUE_BACKOFF_SEC
    worker_concurrency: int = DEFAULT_WORKER_CONCURRENCY
    fanout_concurrency: int = DEFAULT_FANOUT_CONCURRENCY
    tenant_connect_timeout_sec: int = DEFAULT_TENANT_CONNECT_TIMEOUT_SEC
    api_host: str = "0.0.0.0"
    api_port: int = DEFAULT_API_PORT
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


def load_settings() -> Settings:
    """Build Settings from the current environment (no caching)."""
    load_indexer_env()
    return Settings(
        database_url=get_database_url(),
        redis_url=get_redis_url(),
        enable_queue=env_flag("ENABLE_QUEUE", True),
        webhook_auth_token=env_str("WEBHOOK_AUTH_TOKEN"),
        job_cache_ttl_sec=max(1, env_int("JOB_CACHE_TTL_SEC", DEFAULT_JOB_CACHE_TTL_SEC)),
        queue_attempts=max(1, env_int("QUEUE_ATTEMPTS", DEFAULT_QUEUE_ATTEMPTS)),
        queue_backoff_sec=max(0.0, env_float("QUEUE_BACKOFF_SEC", DEFAULT_QUEUE_BACKOFF_SEC)),
        worker_concurrency=max(1, env_int("WORKER_CONCURRENCY", DEFAULT_WORKER_CONCURRENCY)),
        fanout_concurrency=max(1, env_int("FANOUT_CONCURRENCY", DEFAULT_FANOUT_CONCURRENCY)),
        tenant_connect_timeout_sec=max(
            1, env_int("TENANT_CONNECT_TIMEOUT_SEC", DEFAULT_TENANT_CONNECT_TIMEOUT_SEC)
        ),
        api_host=env_str("API_HOST", "0.0.0.0"),
        api_port=env_int("API_PORT", env_int("PORT", DEFAULT_API_PORT)),
        app_env=env_str("APP_ENV", env_str("NODE_ENV", "development")).lower(),
        log_level=env_str("LOG_LEVEL", "INFO").upper(),
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the current application settings (cached for the process).

    Tests that change the environment should call get_settings.cache_clear().
    """
    return load_settings()
