"""
Job provisioning: bring a subscriber job online or take it offline.

provision_job connects to the tenant's database, ensures the destination
table for the job's category exists, marks the job running and adds it to the
subscriber cache. stop_job reverses the last two steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from backend_indexer.cache.job_cache import JobRegistryCache
from backend_indexer.core.categories import EventCategory
from backend_indexer.core.exceptions import SchemaError, TenantConnectionError
from backend_indexer.database.control_plane import ControlPlaneStore
from backend_indexer.database.models import (
    JOB_STATUS_FAILED,
    JOB_STATUS_RUNNING,
    JOB_STATUS_STOPPED,
    LOG_TAG_ERROR,
    LOG_TAG_INFO,
)
from backend_indexer.database.tenant_writer import TenantWriter
from backend_indexer.indexer_logging import bind_job


@dataclass
class ProvisionResult:
    status_code: int
    message: str
    job_id: int
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "ok" if self.status_code < 400 else "error",
            "message": self.message,
            "job_id": self.job_id,
            **self.details,
        }


def provision_job(
    job_id: int,
    store: ControlPlaneStore,
    writer: TenantWriter,
    cache: JobRegistryCache | None = None,
) -> ProvisionResult:
    """
    Raises JobNotFound for an unknown id. Connection failures mark the job
    failed, write an ERROR audit entry and come back as a 500 result.
    """
    job = store.get_job(job_id)
    log = bind_job(job.id, job.category)
    category = EventCategory.parse(job.category)
    if category is None:
        message = f"Unsupported job type: {job.category.upper()}"
        store.set_status(job.id, JOB_STATUS_FAILED)
        store.add_log(job.id, message, LOG_TAG_ERROR)
        log.warning("job_provision_unsupported_type")
        return ProvisionResult(status_code=400, message=message, job_id=job.id)

    label = category.label
    log.info("job_provision_connecting", job=job.redacted())
    try:
        writer.ensure_table(job, category)
    except (TenantConnectionError, SchemaError) as e:
        message = e.diagnose() if isinstance(e, TenantConnectionError) else str(e)
        store.set_status(job.id, JOB_STATUS_FAILED)
        store.add_log(job.id, f"{message} for Job Type: {label}", LOG_TAG_ERROR)
        log.warning("job_provision_failed", error=str(e))
        return ProvisionResult(
            status_code=500,
            message=message,
            job_id=job.id,
            details={"error": str(e)},
        )

    store.set_status(job.id, JOB_STATUS_RUNNING)
    store.add_log(
        job.id,
        f"Job with id {job.id} and name {job.name} of type {label} started successfully",
        LOG_TAG_INFO,
    )
    job.status = JOB_STATUS_RUNNING
    if cache is not None:
        cache.append(category, job)
    log.info("job_provisioned", table=category.table_name)
    return ProvisionResult(
        status_code=200,
        message="Job started",
        job_id=job.id,
        details={"db_connected": True, "table_created": True, "table": category.table_name},
    )


def stop_job(
    job_id: int,
    store: ControlPlaneStore,
    cache: JobRegistryCache | None = None,
) -> ProvisionResult:
    """Mark a job stopped and drop it from the subscriber cache. Raises JobNotFound."""
    job = store.get_job(job_id)
    store.set_status(job.id, JOB_STATUS_STOPPED)
    category = EventCategory.parse(job.category)
    label = category.label if category is not None else job.category.upper()
    store.add_log(
        job.id,
        f"Job with id {job.id} and name {job.name} of type {label} stopped",
        LOG_TAG_INFO,
    )
    removed = False
    if cache is not None and category is not None:
        removed = cache.remove(category, job.id)
    bind_job(job.id, job.category).info("job_stopped", removed_from_cache=removed)
    return ProvisionResult(status_code=200, message="Job stopped", job_id=job.id)
