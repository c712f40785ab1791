"""Liveness probes: GET / and GET /health."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import redis
from fastapi import APIRouter, Request

from backend_indexer import __version__
from backend_indexer.core.categories import ALL_CATEGORIES
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])

SERVICE_NAME = "Solana NFT Indexer"


def _queue_mode(request: Request) -> str:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    enabled = dispatcher is not None and dispatcher.config.queue is not None
    return "enabled" if enabled else "disabled"


def _cache_status(request: Request) -> str:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    cache = dispatcher.config.cache if dispatcher is not None else None
    if cache is None:
        return "disabled"
    return "up" if cache.ping() else "down"


def _queue_depths(request: Request) -> dict[str, dict[str, int]]:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    queue = dispatcher.config.queue if dispatcher is not None else None
    if queue is None:
        return {}
    try:
        return {category.value: queue.depth(category) for category in ALL_CATEGORIES}
    except redis.RedisError as e:
        logger.warning("health_queue_depth_failed", error=str(e))
        return {}


@router.get("/")
def root(request: Request) -> dict[str, Any]:
    return {
        "message": f"Welcome to the {SERVICE_NAME}",
        "version": __version__,
        "queue_mode": _queue_mode(request),
    }


@router.get("/health")
def health(request: Request) -> dict[str, Any]:
    """Liveness probe: API is up. Cache and queue state are reported, never fatal."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(request.app.state.uptime(), 3),
        "queue_mode": _queue_mode(request),
        "cache": _cache_status(request),
        "queues": _queue_depths(request),
        "env": request.app.state.settings.app_env,
    }
