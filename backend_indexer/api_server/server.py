"""
FastAPI server: webhook receipt, job provisioning and liveness probes.

The lifespan builds the dispatcher once (store, tenant writer, Redis-backed
cache and queue when reachable) and, in queue mode, starts one consumer
thread per category; they are signalled to stop on shutdown.
"""

from __future__ import annotations

import threading
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from backend_indexer import __version__
from backend_indexer.api_server.health import router as health_router
from backend_indexer.api_server.jobs import router as jobs_router
from backend_indexer.api_server.webhooks import router as webhooks_router
from backend_indexer.config.settings import Settings, get_settings
from backend_indexer.dispatcher.capabilities import build_dispatcher_config
from backend_indexer.dispatcher.dispatcher import Dispatcher, DispatcherConfig
from backend_indexer.indexer_logging import get_logger
from backend_indexer.job_queue.worker import join_workers, start_workers

logger = get_logger(__name__)


def create_app(
    *,
    settings: Settings | None = None,
    config: DispatcherConfig | None = None,
    run_workers: bool = True,
) -> FastAPI:
    """
    Build the ASGI app. settings/config default to the process environment;
    tests pass their own and usually run_workers=False.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build the dispatcher, start queue consumers in background threads; signal stop on shutdown."""
        app_settings = settings or get_settings()
        dispatcher_config = config or build_dispatcher_config(app_settings)
        started = time.monotonic()
        app.state.settings = app_settings
        app.state.dispatcher = Dispatcher(dispatcher_config)
        app.state.uptime = lambda: time.monotonic() - started

        stop_event = threading.Event()
        threads: list[threading.Thread] = []
        if run_workers:
            threads = start_workers(
                dispatcher_config,
                stop_event,
                concurrency=app_settings.worker_concurrency,
            )
        if not app_settings.webhook_auth_token:
            logger.warning("webhook_auth_disabled", env=app_settings.app_env)
        logger.info(
            "api_started",
            mode=dispatcher_config.mode,
            workers=len(threads),
            env=app_settings.app_env,
        )

        yield

        stop_event.set()
        join_workers(threads)
        logger.info("api_stopped")

    app = FastAPI(
        title="Solana NFT Indexer",
        description="Receives Helius NFT webhooks and writes normalized records into subscriber databases.",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(health_router)
    app.include_router(webhooks_router)
    app.include_router(jobs_router)

    @app.exception_handler(HTTPException)
    def http_exception_handler(request: Any, exc: HTTPException) -> JSONResponse:
        """Consistent JSON error response for HTTPException."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "detail": exc.detail},
        )

    return app
