"""
Worker-only process: consume the category queues without serving HTTP.

Usage: python -m backend_indexer.job_queue.runtime
"""

from __future__ import annotations

import signal
import sys
import threading
from typing import Any

from backend_indexer.config import get_settings
from backend_indexer.dispatcher.capabilities import build_dispatcher_config
from backend_indexer.indexer_logging import get_logger
from backend_indexer.job_queue.worker import join_workers, start_workers

logger = get_logger(__name__)


def run_workers(stop_event: threading.Event) -> int:
    settings = get_settings()
    config = build_dispatcher_config(settings)
    if config.queue is None:
        logger.error("runtime_queue_unavailable", enable_queue=settings.enable_queue)
        return 1
    threads = start_workers(config, stop_event, concurrency=settings.worker_concurrency)
    logger.info("runtime_worker_started", workers=len(threads), concurrency=settings.worker_concurrency)
    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    finally:
        stop_event.set()
        join_workers(threads)
        config.store.dispose()
        logger.info("runtime_worker_stopped")
    return 0


def main() -> int:
    """CLI entrypoint: run category workers until SIGINT/SIGTERM."""
    stop_event = threading.Event()

    def request_shutdown(*args: Any) -> None:
        stop_event.set()

    try:
        signal.signal(signal.SIGTERM, request_shutdown)
    except (AttributeError, ValueError):
        # Windows or not the main thread
        pass

    try:
        return run_workers(stop_event)
    except KeyboardInterrupt:
        logger.info("runtime_shutdown_signal")
        stop_event.set()
        return 0
    except Exception as e:
        logger.exception("runtime_fatal", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
