"""
FastAPI router: POST /webhooks/{category}.

Receives Helius enhanced-transaction webhooks. The body is a JSON array whose
first element is the event envelope. The Authorization header must carry the
shared secret (a "Bearer " prefix is accepted) and is checked before anything
else is read.
"""

from __future__ import annotations

import hmac
import json
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from backend_indexer.api_server.deps import get_app_settings, get_dispatcher
from backend_indexer.config.settings import Settings
from backend_indexer.dispatcher.dispatcher import Dispatcher
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

BEARER_PREFIX = "bearer "


def _presented_token(authorization: str | None) -> str:
    value = (authorization or "").strip()
    if value.lower().startswith(BEARER_PREFIX):
        value = value[len(BEARER_PREFIX):].strip()
    return value


def verify_webhook_auth(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """401 unless the Authorization header matches WEBHOOK_AUTH_TOKEN (constant-time compare)."""
    expected = settings.webhook_auth_token
    if not expected:
        if settings.is_production:
            logger.error("webhook_auth_token_missing")
            raise HTTPException(status_code=401, detail="Unauthorized")
        return
    presented = _presented_token(authorization)
    if not hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("webhook_auth_rejected", has_header=authorization is not None)
        raise HTTPException(status_code=401, detail="Unauthorized")


def extract_envelope(body: Any) -> dict[str, Any]:
    """First element of the webhook array; 400 for anything else."""
    if not isinstance(body, list):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON array")
    if not body:
        raise HTTPException(status_code=400, detail="Webhook body is empty")
    envelope = body[0]
    if not isinstance(envelope, dict):
        raise HTTPException(status_code=400, detail="Webhook event must be a JSON object")
    return envelope


@router.post("/{category}", dependencies=[Depends(verify_webhook_auth)])
async def receive_webhook(
    category: str,
    request: Request,
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> JSONResponse:
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else None
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON") from e
    envelope = extract_envelope(body)

    result = await run_in_threadpool(dispatcher.dispatch, category, envelope)
    if result.status_code == 400:
        raise HTTPException(status_code=400, detail=result.message)
    return JSONResponse(status_code=result.status_code, content=result.to_dict())
