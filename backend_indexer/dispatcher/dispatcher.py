"""
Webhook dispatcher: one incoming event -> every active subscriber of its category.

Flow: parse category -> normalize once -> resolve subscribers (cache reconciled
against the control-plane store) -> fan out one task per subscriber on a thread
pool and join them all. In queue mode each task enqueues; otherwise (or when
an enqueue fails) it runs the processing routine inline.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any

from backend_indexer.cache.job_cache import DEFAULT_TTL_SEC, JobRegistryCache
from backend_indexer.core.categories import EventCategory
from backend_indexer.core.exceptions import QueueError, SubscriberResolutionError
from backend_indexer.database.control_plane import ControlPlaneStore
from backend_indexer.database.models import SubscriberJob
from backend_indexer.database.tenant_writer import TenantWriter
from backend_indexer.dispatcher.processing import (
    STATUS_QUEUED,
    SubscriberResult,
    error_result,
    process_webhook_data,
)
from backend_indexer.indexer_logging import get_logger
from backend_indexer.job_queue.queue import WebhookQueue
from backend_indexer.normalizer import normalize
from backend_indexer.normalizer.models import NormalizedRecord

logger = get_logger(__name__)

MODE_QUEUE = "queue"
MODE_SYNC = "sync"

DEFAULT_FANOUT_CONCURRENCY = 16


@dataclass
class DispatcherConfig:
    """Capabilities available to the dispatcher, decided once at startup."""

    store: ControlPlaneStore
    writer: TenantWriter
    cache: JobRegistryCache | None = None
    queue: WebhookQueue | None = None
    cache_ttl_sec: int = DEFAULT_TTL_SEC
    fanout_concurrency: int = DEFAULT_FANOUT_CONCURRENCY
    queue_attempts: int = 3
    queue_backoff_sec: float = 1.0

    @property
    def mode(self) -> str:
        return MODE_QUEUE if self.queue is not None else MODE_SYNC


@dataclass
class DispatchResult:
    status_code: int
    message: str
    signature: str = ""
    mode: str = MODE_SYNC
    results: list[SubscriberResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "ok" if self.status_code < 400 else "error",
            "message": self.message,
            "signature": self.signature,
            "mode": self.mode,
            "subscribers": len(self.results),
            "results": [r.to_dict() for r in self.results],
        }


class Dispatcher:
    def __init__(self, config: DispatcherConfig) -> None:
        self.config = config

    @property
    def mode(self) -> str:
        return self.config.mode

    # -- subscriber resolution -------------------------------------------------

    def resolve_subscribers(self, category: EventCategory) -> list[SubscriberJob] | None:
        """
        Active jobs for the category, or None when neither the store nor the
        cache can say.

        The store is authoritative: on a cache miss its answer is cached with
        put(); on a hit the cache is reconciled field by field (new jobs
        appended, stale ones removed) and the store's set is returned, so newly
        discovered jobs are dispatched once in this same pass.
        """
        cfg = self.config
        cached = cfg.cache.get(category) if cfg.cache is not None else None
        try:
            active = cfg.store.list_active_jobs(category.value)
        except SubscriberResolutionError as e:
            if cached:
                logger.warning(
                    "subscribers_from_cache_only",
                    category=category.value,
                    jobs=len(cached),
                    error=str(e),
                )
                return cached
            logger.error("subscribers_unresolvable", category=category.value, error=str(e))
            return None

        if cfg.cache is None:
            return active
        if cached is None:
            cfg.cache.put(category, active, cfg.cache_ttl_sec)
            return active

        cached_ids = {job.id for job in cached}
        active_ids = {job.id for job in active}
        for job in active:
            if job.id not in cached_ids:
                cfg.cache.append(category, job, cfg.cache_ttl_sec)
                logger.info("subscriber_discovered", category=category.value, job_id=job.id)
        for job in cached:
            if job.id not in active_ids:
                cfg.cache.remove(category, job.id)
                logger.info("subscriber_evicted", category=category.value, job_id=job.id)
        return active

    # -- delivery -------------------------------------------------------------

    def _process_inline(
        self,
        category: EventCategory,
        raw_event: Any,
        record: NormalizedRecord,
        job: SubscriberJob,
    ) -> SubscriberResult:
        cfg = self.config
        try:
            return process_webhook_data(
                category,
                raw_event,
                job,
                store=cfg.store,
                writer=cfg.writer,
                cache=cfg.cache,
                cache_ttl_sec=cfg.cache_ttl_sec,
                record=record,
            )
        except Exception as e:
            return error_result(job, e)

    def _deliver(
        self,
        category: EventCategory,
        raw_event: Any,
        record: NormalizedRecord,
        job: SubscriberJob,
    ) -> SubscriberResult:
        cfg = self.config
        if cfg.queue is not None:
            try:
                entry_id = cfg.queue.enqueue(
                    category,
                    {"webhook_data": raw_event, "job": job.to_dict()},
                    attempts=cfg.queue_attempts,
                    backoff_sec=cfg.queue_backoff_sec,
                )
                return SubscriberResult(job_id=job.id, status=STATUS_QUEUED, queue_entry_id=entry_id)
            except QueueError as e:
                logger.warning(
                    "enqueue_failed_processing_inline",
                    category=category.value,
                    job_id=job.id,
                    error=str(e),
                )
        return self._process_inline(category, raw_event, record, job)

    def _fan_out(
        self,
        category: EventCategory,
        raw_event: Any,
        record: NormalizedRecord,
        jobs: list[SubscriberJob],
    ) -> list[SubscriberResult]:
        results: list[SubscriberResult | None] = [None] * len(jobs)
        max_workers = max(1, min(self.config.fanout_concurrency, len(jobs)))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_index = {
                executor.submit(self._deliver, category, raw_event, record, job): i
                for i, job in enumerate(jobs)
            }
            for future in as_completed(future_to_index):
                i = future_to_index[future]
                try:
                    results[i] = future.result()
                except Exception as e:
                    logger.exception("subscriber_task_failed", job_id=jobs[i].id, error=str(e))
                    results[i] = error_result(jobs[i], e)
        return [r for r in results if r is not None]

    def dispatch(self, category: EventCategory | str, raw_event: Any) -> DispatchResult:
        parsed = EventCategory.parse(category)
        if parsed is None:
            logger.info("dispatch_rejected_category", category=str(category))
            return DispatchResult(
                status_code=400,
                message=f"unsupported transaction type: {category}",
                mode=self.mode,
            )

        record = normalize(parsed, raw_event)
        jobs = self.resolve_subscribers(parsed)
        if jobs is None:
            return DispatchResult(
                status_code=503,
                message="subscriber registry unavailable",
                signature=record.signature,
                mode=self.mode,
            )
        if not jobs:
            logger.info("dispatch_no_subscribers", category=parsed.value, signature=record.signature)
            return DispatchResult(
                status_code=200,
                message="No active subscribers",
                signature=record.signature,
                mode=self.mode,
            )

        results = self._fan_out(parsed, raw_event, record, jobs)
        if self.config.cache is not None and any(r.ok for r in results):
            self.config.cache.touch_ttl(parsed, self.config.cache_ttl_sec)

        queued = sum(1 for r in results if r.status == STATUS_QUEUED)
        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "dispatch_done",
            category=parsed.value,
            signature=record.signature,
            subscribers=len(jobs),
            queued=queued,
            failed=failed,
            mode=self.mode,
        )
        message = "Webhook queued for processing" if queued else "Webhook processed"
        return DispatchResult(
            status_code=200,
            message=message,
            signature=record.signature,
            mode=self.mode,
            results=results,
        )
