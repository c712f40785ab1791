"""
Per-subscriber processing: normalize (if needed), write to the tenant database,
then bookkeeping in the control-plane store.

This is the single code path shared by the inline dispatcher and the queue
workers, so both produce the same rows, counters and audit entries.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from backend_indexer.cache.job_cache import JobRegistryCache
from backend_indexer.core.categories import EventCategory
from backend_indexer.core.exceptions import ConstraintError, IndexerError, TenantConnectionError
from backend_indexer.database.control_plane import ControlPlaneStore
from backend_indexer.database.models import LOG_TAG_ERROR, LOG_TAG_INFO, LOG_TAG_WARNING, SubscriberJob
from backend_indexer.database.tenant_writer import TenantWriter
from backend_indexer.indexer_logging import bind_job
from backend_indexer.normalizer import normalize
from backend_indexer.normalizer.models import NormalizedRecord

STATUS_QUEUED = "queued"
STATUS_SUCCESS = "success"
STATUS_DUPLICATE = "duplicate"
STATUS_ERROR = "error"


@dataclass
class SubscriberResult:
    """Outcome of one subscriber's delivery."""

    job_id: int
    status: str
    record_id: int | None = None
    queue_entry_id: str | None = None
    error: str | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (STATUS_QUEUED, STATUS_SUCCESS, STATUS_DUPLICATE)

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def diagnose(exc: BaseException) -> str:
    if isinstance(exc, TenantConnectionError):
        return exc.diagnose()
    return str(exc) or exc.__class__.__name__


def _audit(store: ControlPlaneStore, job: SubscriberJob, message: str, tag: str, log: Any) -> None:
    """Audit entries never fail a delivery; a store outage is logged and skipped."""
    try:
        store.add_log(job.id, message, tag)
    except SQLAlchemyError as e:
        log.warning("audit_log_write_failed", tag=tag, error=str(e))


def process_webhook_data(
    category: EventCategory,
    webhook_data: Any,
    job: SubscriberJob,
    *,
    store: ControlPlaneStore,
    writer: TenantWriter,
    cache: JobRegistryCache | None = None,
    cache_ttl_sec: int | None = None,
    record: NormalizedRecord | None = None,
) -> SubscriberResult:
    """
    Write one event for one subscriber.

    Returns success (with record_id) or duplicate. Any other failure is
    audit-logged as ERROR and re-raised so the caller (dispatcher or queue
    worker) decides whether to report or retry it.
    """
    log = bind_job(job.id, category.value)
    if record is None:
        record = normalize(category, webhook_data)
    signature = record.signature or "N/A"

    try:
        record_id = writer.write(job, category, record)
    except ConstraintError as e:
        log.info("tenant_write_duplicate", signature=signature)
        _audit(
            store,
            job,
            f"Skipped duplicate {category.value} with signature: {signature}",
            LOG_TAG_WARNING,
            log,
        )
        return SubscriberResult(job_id=job.id, status=STATUS_DUPLICATE, error=str(e), reason="DUPLICATE")
    except Exception as e:
        message = diagnose(e)
        log.warning("tenant_write_failed", signature=signature, error=message)
        _audit(store, job, f"Error processing {category.value}: {message}", LOG_TAG_ERROR, log)
        raise

    try:
        store.increment_entries_processed(job.id)
    except SQLAlchemyError as e:
        log.warning("entries_processed_update_failed", error=str(e))
    _audit(
        store,
        job,
        f"Successfully processed {category.value} with signature: {signature}",
        LOG_TAG_INFO,
        log,
    )
    if cache is not None:
        cache.touch_ttl(category, cache_ttl_sec)
    log.info("webhook_processed", signature=signature, record_id=record_id)
    return SubscriberResult(job_id=job.id, status=STATUS_SUCCESS, record_id=record_id)


def error_reason(exc: BaseException) -> str:
    """OTHER, TIMEOUT, ... for connection failures; the domain code for other IndexerErrors; ERROR otherwise."""
    if isinstance(exc, TenantConnectionError):
        return exc.reason.value
    if isinstance(exc, IndexerError):
        return exc.code.upper()
    return "ERROR"


def error_result(job: SubscriberJob, exc: BaseException) -> SubscriberResult:
    return SubscriberResult(job_id=job.id, status=STATUS_ERROR, error=diagnose(exc), reason=error_reason(exc))
