"""
Queue workers: one CategoryWorker thread per event category.

Each worker reads its category stream and hands entries to its own bounded
ThreadPoolExecutor, so a burst in one category never starves another.
Entries run through the same processing routine as inline dispatch; success
acknowledges the entry and refreshes the category's cache TTL, failure
schedules a retry or dead-letters it. Exceptions are isolated per entry and
the loop never crashes.
"""

from __future__ import annotations

import os
import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import redis

from backend_indexer.cache.job_cache import DEFAULT_TTL_SEC, JobRegistryCache
from backend_indexer.core.categories import ALL_CATEGORIES, EventCategory
from backend_indexer.database.control_plane import ControlPlaneStore
from backend_indexer.database.models import SubscriberJob
from backend_indexer.database.tenant_writer import TenantWriter
from backend_indexer.dispatcher.dispatcher import DispatcherConfig
from backend_indexer.dispatcher.processing import SubscriberResult, diagnose, process_webhook_data
from backend_indexer.indexer_logging import get_logger
from backend_indexer.job_queue.queue import DEFAULT_RECLAIM_IDLE_MS, QueueItem, WebhookQueue

logger = get_logger(__name__)

DEFAULT_WORKER_CONCURRENCY = 25
DEFAULT_BLOCK_MS = 2000
DEFAULT_RECLAIM_INTERVAL_SEC = 30.0
# Back-off after a Redis read error before polling again
READ_ERROR_PAUSE_SEC = 1.0
SHUTDOWN_JOIN_TIMEOUT_SEC = 15.0


def consumer_name(category: EventCategory) -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{category.value}"


@dataclass
class WorkerState:
    """Counters for heartbeat logs and health reporting."""

    processed: int = 0
    retried: int = 0
    dead_lettered: int = 0
    last_error: str | None = None
    last_processed_at: float | None = None


class CategoryWorker:
    """Consumes one category queue with bounded concurrency."""

    def __init__(
        self,
        category: EventCategory,
        queue: WebhookQueue,
        store: ControlPlaneStore,
        writer: TenantWriter,
        cache: JobRegistryCache | None = None,
        *,
        cache_ttl_sec: int = DEFAULT_TTL_SEC,
        concurrency: int = DEFAULT_WORKER_CONCURRENCY,
        block_ms: int = DEFAULT_BLOCK_MS,
        reclaim_interval_sec: float = DEFAULT_RECLAIM_INTERVAL_SEC,
        reclaim_idle_ms: int = DEFAULT_RECLAIM_IDLE_MS,
        consumer: str | None = None,
    ) -> None:
        self.category = category
        self.queue = queue
        self.store = store
        self.writer = writer
        self.cache = cache
        self.cache_ttl_sec = cache_ttl_sec
        self.concurrency = max(1, concurrency)
        self.block_ms = block_ms
        self.reclaim_interval_sec = reclaim_interval_sec
        self.reclaim_idle_ms = reclaim_idle_ms
        self.consumer = consumer or consumer_name(category)
        self.state = WorkerState()
        self._slots = threading.BoundedSemaphore(self.concurrency)
        self._inflight = 0
        self._lock = threading.Lock()

    # -- single entry ---------------------------------------------------------

    def handle(self, item: QueueItem) -> SubscriberResult | None:
        """Process one entry. Returns the result, or None when the attempt failed."""
        try:
            job = SubscriberJob.from_dict(item.payload["job"])
        except (KeyError, TypeError, ValueError) as e:
            # Malformed payloads cannot succeed on retry
            item.attempt = item.max_attempts
            self.queue.fail(item, f"invalid payload: {e}")
            with self._lock:
                self.state.dead_lettered += 1
                self.state.last_error = str(e)
            return None

        try:
            result = process_webhook_data(
                self.category,
                item.payload.get("webhook_data"),
                job,
                store=self.store,
                writer=self.writer,
                cache=self.cache,
                cache_ttl_sec=self.cache_ttl_sec,
            )
        except Exception as e:
            error = diagnose(e)
            retried = self.queue.fail(item, error)
            with self._lock:
                if retried:
                    self.state.retried += 1
                else:
                    self.state.dead_lettered += 1
                self.state.last_error = error
            logger.warning(
                "queue_item_failed",
                category=self.category.value,
                job_id=job.id,
                attempt=item.attempt,
                max_attempts=item.max_attempts,
                retried=retried,
                error=error,
            )
            return None

        self.queue.complete(item)
        if self.cache is not None:
            self.cache.touch_ttl(self.category, self.cache_ttl_sec)
        with self._lock:
            self.state.processed += 1
            self.state.last_processed_at = time.time()
        logger.debug(
            "queue_item_completed",
            category=self.category.value,
            job_id=job.id,
            status=result.status,
        )
        return result

    def run_once(self, block_ms: int | None = None) -> list[SubscriberResult | None]:
        """Read one batch and process it in the calling thread."""
        items = self.queue.read(self.category, self.consumer, count=self.concurrency, block_ms=block_ms)
        return [self.handle(item) for item in items]

    # -- loop -----------------------------------------------------------------

    def _run_item(self, item: QueueItem) -> None:
        try:
            self.handle(item)
        except Exception as e:
            logger.exception("queue_item_crashed", category=self.category.value, error=str(e))
        finally:
            with self._lock:
                self._inflight -= 1
            self._slots.release()

    def _submit(self, executor: ThreadPoolExecutor, items: list[QueueItem]) -> None:
        for item in items:
            self._slots.acquire()
            with self._lock:
                self._inflight += 1
            executor.submit(self._run_item, item)

    def run(self, stop_event: threading.Event) -> None:
        """Consume until stop_event is set; in-flight entries finish before returning."""
        logger.info(
            "category_worker_started",
            category=self.category.value,
            queue=self.category.queue_name,
            consumer=self.consumer,
            concurrency=self.concurrency,
        )
        last_reclaim = 0.0
        with ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix=f"{self.category.queue_name}-worker",
        ) as executor:
            while not stop_event.is_set():
                try:
                    now = time.monotonic()
                    if now - last_reclaim >= self.reclaim_interval_sec:
                        last_reclaim = now
                        self._submit(
                            executor,
                            self.queue.claim_stale(
                                self.category,
                                self.consumer,
                                min_idle_ms=self.reclaim_idle_ms,
                                count=self.concurrency,
                            ),
                        )
                    with self._lock:
                        free = self.concurrency - self._inflight
                    items = self.queue.read(
                        self.category,
                        self.consumer,
                        count=max(1, free),
                        block_ms=self.block_ms,
                    )
                    self._submit(executor, items)
                except redis.RedisError as e:
                    logger.warning("category_worker_read_failed", category=self.category.value, error=str(e))
                    stop_event.wait(READ_ERROR_PAUSE_SEC)
                except Exception as e:
                    logger.exception("category_worker_loop_error", category=self.category.value, error=str(e))
                    stop_event.wait(READ_ERROR_PAUSE_SEC)
        logger.info(
            "category_worker_stopped",
            category=self.category.value,
            processed=self.state.processed,
            retried=self.state.retried,
            dead_lettered=self.state.dead_lettered,
        )


def build_workers(
    config: DispatcherConfig,
    *,
    concurrency: int = DEFAULT_WORKER_CONCURRENCY,
    categories: tuple[EventCategory, ...] = ALL_CATEGORIES,
) -> list[CategoryWorker]:
    if config.queue is None:
        return []
    return [
        CategoryWorker(
            category,
            config.queue,
            config.store,
            config.writer,
            config.cache,
            cache_ttl_sec=config.cache_ttl_sec,
            concurrency=concurrency,
        )
        for category in categories
    ]


def start_workers(
    config: DispatcherConfig,
    stop_event: threading.Event,
    *,
    concurrency: int = DEFAULT_WORKER_CONCURRENCY,
) -> list[threading.Thread]:
    """Start one daemon thread per category worker. Empty when the queue is disabled."""
    threads: list[threading.Thread] = []
    for worker in build_workers(config, concurrency=concurrency):
        thread = threading.Thread(
            target=worker.run,
            args=(stop_event,),
            name=f"{worker.category.queue_name}-consumer",
            daemon=True,
        )
        thread.start()
        threads.append(thread)
    if threads:
        logger.info("queue_workers_started", workers=len(threads), concurrency=concurrency)
    else:
        logger.warning("queue_workers_skipped", reason="queue disabled")
    return threads


def join_workers(threads: list[threading.Thread], timeout_sec: float = SHUTDOWN_JOIN_TIMEOUT_SEC) -> None:
    for thread in threads:
        thread.join(timeout=timeout_sec)
        if thread.is_alive():
            logger.warning("queue_worker_shutdown_timeout", thread=thread.name, timeout_sec=timeout_sec)
