"""
Startup wiring: decide once which capabilities the dispatcher gets.

Redis backs both the job cache and the durable queue. If it cannot be reached
at startup the dispatcher runs without a cache and in synchronous mode;
ENABLE_QUEUE=false forces synchronous mode but keeps the cache.
"""

from __future__ import annotations

from typing import Any

import redis
from sqlalchemy.exc import SQLAlchemyError

from backend_indexer.cache.job_cache import JobRegistryCache
from backend_indexer.config.env import mask_url
from backend_indexer.config.settings import Settings
from backend_indexer.database.control_plane import ControlPlaneStore
from backend_indexer.database.tenant_writer import TenantWriter
from backend_indexer.dispatcher.dispatcher import DispatcherConfig
from backend_indexer.indexer_logging import get_logger
from backend_indexer.job_queue.queue import WebhookQueue

logger = get_logger(__name__)

REDIS_CONNECT_TIMEOUT_SEC = 10


def connect_redis(url: str) -> redis.Redis | None:
    """Redis client if the server answers PING, else None (logged)."""
    try:
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=REDIS_CONNECT_TIMEOUT_SEC,
        )
        client.ping()
    except redis.RedisError as e:
        logger.warning("redis_unavailable", url=mask_url(url), error=str(e))
        return None
    logger.info("redis_connected", url=mask_url(url))
    return client


def build_dispatcher_config(
    settings: Settings,
    *,
    store: ControlPlaneStore | None = None,
    writer: TenantWriter | None = None,
    redis_client: Any = None,
    connect: bool = True,
) -> DispatcherConfig:
    """
    Build the DispatcherConfig for this process.

    redis_client overrides the connection made from settings.redis_url (tests
    pass a fakeredis client); connect=False skips Redis entirely.
    """
    if store is None:
        store = ControlPlaneStore(settings.database_url)
        try:
            store.init_db()
        except SQLAlchemyError as e:
            # Dispatch degrades to cached subscribers (or 503) until the store is back
            logger.warning("control_plane_init_skip", error=str(e))
    if writer is None:
        writer = TenantWriter(connect_timeout_sec=settings.tenant_connect_timeout_sec)

    client = redis_client
    if client is None and connect:
        client = connect_redis(settings.redis_url)

    cache = JobRegistryCache(client, default_ttl_sec=settings.job_cache_ttl_sec) if client is not None else None
    queue = WebhookQueue(client) if client is not None and settings.enable_queue else None

    config = DispatcherConfig(
        store=store,
        writer=writer,
        cache=cache,
        queue=queue,
        cache_ttl_sec=settings.job_cache_ttl_sec,
        fanout_concurrency=settings.fanout_concurrency,
        queue_attempts=settings.queue_attempts,
        queue_backoff_sec=settings.queue_backoff_sec,
    )
    logger.info(
        "dispatcher_configured",
        mode=config.mode,
        cache_enabled=cache is not None,
        queue_requested=settings.enable_queue,
    )
    return config
