"""FastAPI dependencies: app-scoped dispatcher and settings (set up in the lifespan)."""

from __future__ import annotations

from fastapi import HTTPException, Request

from backend_indexer.config.settings import Settings
from backend_indexer.dispatcher.dispatcher import Dispatcher


def get_dispatcher(request: Request) -> Dispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Dispatcher not ready")
    return dispatcher


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
