"""
FastAPI router: POST /jobs/create, POST /jobs/stop.

Called by the dashboard after it inserts or stops an indexer job. Creation
verifies the tenant database and prepares its destination table.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from backend_indexer.api_server.deps import get_dispatcher
from backend_indexer.core.exceptions import JobNotFound
from backend_indexer.dispatcher.dispatcher import Dispatcher
from backend_indexer.dispatcher.provisioning import provision_job, stop_job
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


class JobRequest(BaseModel):
    """POST /jobs/* body."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: int = Field(..., alias="jobId", description="indexer_jobs.id")


@router.post("/create")
def create_job(body: JobRequest, request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)) -> JSONResponse:
    """Connect to the job's database, create its table, mark it running."""
    cfg = dispatcher.config
    logger.info("job_create_called", job_id=body.job_id)
    try:
        result = provision_job(body.job_id, cfg.store, cfg.writer, cfg.cache)
    except JobNotFound as e:
        raise HTTPException(status_code=404, detail="Job not found") from e
    content = result.to_dict()
    if result.status_code == 200:
        content["timestamp"] = datetime.now(timezone.utc).isoformat()
        content["uptime"] = round(request.app.state.uptime(), 3)
    return JSONResponse(status_code=result.status_code, content=content)


@router.post("/stop")
def stop(body: JobRequest, dispatcher: Dispatcher = Depends(get_dispatcher)) -> JSONResponse:
    cfg = dispatcher.config
    try:
        result = stop_job(body.job_id, cfg.store, cfg.cache)
    except JobNotFound as e:
        raise HTTPException(status_code=404, detail="Job not found") from e
    return JSONResponse(status_code=result.status_code, content=result.to_dict())
