"""
Pytest tests for the webhook dispatcher (fan-out, subscriber resolution, modes).

Sync mode writes straight into per-job SQLite tenant databases; queue mode
enqueues onto fakeredis streams that a CategoryWorker then drains.
"""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from backend_indexer.cache.job_cache import JobRegistryCache
from backend_indexer.core.categories import EventCategory
from backend_indexer.core.exceptions import (
    ConnectionReason,
    QueueError,
    SchemaError,
    SubscriberResolutionError,
    TenantConnectionError,
)
from backend_indexer.database.control_plane import ControlPlaneStore
from backend_indexer.database.models import JOB_STATUS_STOPPED, LOG_TAG_ERROR, LOG_TAG_INFO, LOG_TAG_WARNING
from backend_indexer.dispatcher.capabilities import build_dispatcher_config, connect_redis
from backend_indexer.dispatcher.dispatcher import MODE_QUEUE, MODE_SYNC, Dispatcher, DispatcherConfig
from backend_indexer.dispatcher.processing import (
    STATUS_DUPLICATE,
    STATUS_ERROR,
    STATUS_QUEUED,
    STATUS_SUCCESS,
    error_reason,
    error_result,
)
from backend_indexer.job_queue.worker import CategoryWorker
from payloads import BROKEN_DB_NAME, MINT, mint_event, sale_event

SALE = EventCategory.NFT_SALE


# --- Sync mode ---


def test_sync_dispatch_writes_every_subscriber(sync_dispatcher, store, writer, make_job):
    a = make_job("nft_sale")
    b = make_job("nft_sale")
    make_job("nft_mint")
    result = sync_dispatcher.dispatch("nft_sale", sale_event())
    assert result.status_code == 200
    assert result.mode == MODE_SYNC
    assert result.message == "Webhook processed"
    assert result.signature == "sigSale1"
    assert [r.job_id for r in result.results] == [a.id, b.id]
    assert all(r.status == STATUS_SUCCESS for r in result.results)
    for job in (a, b):
        assert writer.read_by_signature(job, SALE, "sigSale1")["mint"] == MINT
        assert store.get_job(job.id).entries_processed == 1
        logs = store.list_logs(job.id)
        assert logs[0].tag == LOG_TAG_INFO
        assert logs[0].message == "Successfully processed nft_sale with signature: sigSale1"


def test_duplicate_delivery_is_reported_not_written(sync_dispatcher, store, writer, make_job):
    job = make_job("nft_sale")
    sync_dispatcher.dispatch("nft_sale", sale_event())
    result = sync_dispatcher.dispatch("nft_sale", sale_event())
    assert result.status_code == 200
    assert result.results[0].status == STATUS_DUPLICATE
    assert store.get_job(job.id).entries_processed == 1
    logs = store.list_logs(job.id)
    assert logs[0].tag == LOG_TAG_WARNING
    assert logs[0].message == "Skipped duplicate nft_sale with signature: sigSale1"


def test_failing_subscriber_does_not_affect_others(sync_dispatcher, store, writer, make_job):
    """One unreachable tenant gets an error result and audit entry; the rest succeed."""
    good = make_job("nft_sale")
    bad = make_job("nft_sale", db_name=BROKEN_DB_NAME)
    other = make_job("nft_sale")
    result = sync_dispatcher.dispatch("nft_sale", sale_event())
    assert result.status_code == 200
    by_job = {r.job_id: r for r in result.results}
    assert by_job[good.id].status == STATUS_SUCCESS
    assert by_job[other.id].status == STATUS_SUCCESS
    assert by_job[bad.id].status == STATUS_ERROR
    assert by_job[bad.id].error == "Unable to connect to the database"
    assert by_job[bad.id].reason == "OTHER"
    assert store.get_job(bad.id).entries_processed == 0
    assert store.list_logs(bad.id)[0].tag == LOG_TAG_ERROR
    assert store.list_logs(bad.id)[0].message == "Error processing nft_sale: Unable to connect to the database"
    assert writer.read_by_signature(good, SALE, "sigSale1") is not None


def test_unsupported_category_rejected_before_resolution():
    """No subscriber lookup and no audit entry for an unknown category."""
    store = MagicMock(spec=ControlPlaneStore)
    dispatcher = Dispatcher(DispatcherConfig(store=store, writer=MagicMock()))
    result = dispatcher.dispatch("nft_burn", sale_event())
    assert result.status_code == 400
    assert result.message == "unsupported transaction type: nft_burn"
    store.list_active_jobs.assert_not_called()
    store.add_log.assert_not_called()


def test_no_subscribers(sync_dispatcher):
    result = sync_dispatcher.dispatch("nft_mint", mint_event())
    assert result.status_code == 200
    assert result.message == "No active subscribers"
    assert result.results == []
    assert result.to_dict()["subscribers"] == 0


def test_malformed_event_still_dispatched(sync_dispatcher, writer, make_job):
    """Normalization never rejects a payload; defaults are written."""
    job = make_job("nft_mint")
    result = sync_dispatcher.dispatch("nft_mint", {"signature": "bare"})
    assert result.results[0].status == STATUS_SUCCESS
    row = writer.read_by_signature(job, EventCategory.NFT_MINT, "bare")
    assert row["token_standard"] == "NonFungible"
    assert row["mint"] == ""
    assert row["creators"] == []


def test_result_to_dict(sync_dispatcher, make_job):
    job = make_job("nft_sale")
    body = sync_dispatcher.dispatch("nft_sale", sale_event()).to_dict()
    assert body["status"] == "ok"
    assert body["mode"] == "sync"
    assert body["subscribers"] == 1
    assert body["results"][0]["job_id"] == job.id
    assert body["results"][0]["status"] == "success"
    assert "error" not in body["results"][0]


@pytest.mark.parametrize(
    "exc,reason",
    [
        (TenantConnectionError(ConnectionReason.TIMEOUT, "timed out"), "TIMEOUT"),
        (SchemaError("no table"), "SCHEMA_ERROR"),
        (OperationalError("INSERT ...", {}, Exception("disk I/O error")), "ERROR"),
        (RuntimeError("boom"), "ERROR"),
    ],
)
def test_error_reason(exc, reason):
    """Driver exceptions carrying their own `code` attribute still map to ERROR."""
    assert error_reason(exc) == reason


def test_error_result_for_driver_error(make_job):
    job = make_job("nft_sale")
    exc = OperationalError("INSERT ...", {}, Exception("disk I/O error"))
    result = error_result(job, exc)
    assert result.status == STATUS_ERROR
    assert result.reason == "ERROR"


# --- Subscriber resolution ---


def test_cache_miss_populates_cache(sync_dispatcher, cache, make_job):
    job = make_job("nft_sale")
    assert cache.get(SALE) is None
    sync_dispatcher.dispatch("nft_sale", sale_event())
    assert [j.id for j in cache.get(SALE)] == [job.id]


def test_cache_reconciled_with_store(sync_dispatcher, store, cache, make_job):
    """Jobs the cache missed are appended and dispatched once; stale cached jobs are evicted."""
    cached = make_job("nft_sale")
    stale = make_job("nft_sale")
    cache.put(SALE, [cached, stale])
    store.set_status(stale.id, JOB_STATUS_STOPPED)
    discovered = make_job("nft_sale")

    result = sync_dispatcher.dispatch("nft_sale", sale_event())
    assert sorted(r.job_id for r in result.results) == [cached.id, discovered.id]
    assert [j.id for j in cache.get(SALE)] == [cached.id, discovered.id]


def test_store_failure_falls_back_to_cache(sync_config, cache, make_job):
    job = make_job("nft_sale")
    cache.put(SALE, [job])
    dispatcher = Dispatcher(sync_config)
    with patch.object(sync_config.store, "list_active_jobs", side_effect=SubscriberResolutionError("down")):
        result = dispatcher.dispatch("nft_sale", sale_event())
    assert result.status_code == 200
    assert [r.job_id for r in result.results] == [job.id]
    assert result.results[0].status == STATUS_SUCCESS


def test_store_failure_without_cache_is_503(store, writer):
    dispatcher = Dispatcher(DispatcherConfig(store=store, writer=writer, cache=None))
    with patch.object(store, "list_active_jobs", side_effect=SubscriberResolutionError("down")):
        result = dispatcher.dispatch("nft_sale", sale_event())
    assert result.status_code == 503
    assert result.message == "subscriber registry unavailable"
    assert result.to_dict()["status"] == "error"


def test_dispatch_without_cache(store, writer, make_job):
    job = make_job("nft_sale")
    dispatcher = Dispatcher(DispatcherConfig(store=store, writer=writer, cache=JobRegistryCache(None)))
    result = dispatcher.dispatch("nft_sale", sale_event())
    assert [r.job_id for r in result.results] == [job.id]


# --- Queue mode ---


def test_queue_mode_enqueues_per_subscriber(queue_config, webhook_queue, writer, store, cache, make_job):
    a = make_job("nft_sale")
    b = make_job("nft_sale")
    dispatcher = Dispatcher(queue_config)
    result = dispatcher.dispatch("nft_sale", sale_event())
    assert result.status_code == 200
    assert result.mode == MODE_QUEUE
    assert result.message == "Webhook queued for processing"
    assert all(r.status == STATUS_QUEUED and r.queue_entry_id for r in result.results)
    assert webhook_queue.depth(SALE)["waiting"] == 2
    # Nothing written until a worker consumes the queue
    assert writer.read_by_signature(a, SALE, "sigSale1") is None

    worker = CategoryWorker(SALE, webhook_queue, store, writer, cache, consumer="c1")
    results = worker.run_once()
    assert sorted(r.job_id for r in results) == [a.id, b.id]
    for job in (a, b):
        assert writer.read_by_signature(job, SALE, "sigSale1") is not None
        assert store.get_job(job.id).entries_processed == 1
    assert webhook_queue.depth(SALE)["waiting"] == 0


def test_enqueue_failure_processes_inline(store, writer, cache, make_job):
    job = make_job("nft_sale")
    queue = MagicMock()
    queue.enqueue.side_effect = QueueError("redis down")
    dispatcher = Dispatcher(DispatcherConfig(store=store, writer=writer, cache=cache, queue=queue))
    result = dispatcher.dispatch("nft_sale", sale_event())
    assert result.results[0].status == STATUS_SUCCESS
    assert writer.read_by_signature(job, SALE, "sigSale1") is not None


# --- Startup wiring ---


def test_build_config_queue_mode(settings, store, writer, redis_client):
    config = build_dispatcher_config(
        replace(settings, enable_queue=True),
        store=store,
        writer=writer,
        redis_client=redis_client,
    )
    assert config.mode == MODE_QUEUE
    assert config.cache is not None


def test_build_config_queue_disabled_keeps_cache(settings, store, writer, redis_client):
    config = build_dispatcher_config(settings, store=store, writer=writer, redis_client=redis_client)
    assert config.mode == MODE_SYNC
    assert config.cache is not None


def test_build_config_without_redis(settings, store, writer):
    config = build_dispatcher_config(settings, store=store, writer=writer, connect=False)
    assert config.mode == MODE_SYNC
    assert config.cache is None


def test_connect_redis_unreachable():
    assert connect_redis("redis://127.0.0.1:1/0") is None


@pytest.mark.parametrize("category", ["nft_mint", "NFT_MINT"])
def test_category_parsed_case_insensitively(sync_dispatcher, make_job, category):
    make_job("nft_mint")
    assert sync_dispatcher.dispatch(category, mint_event()).status_code == 200
