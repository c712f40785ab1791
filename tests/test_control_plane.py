"""
Pytest tests for the control-plane store (jobs + audit log) on temporary SQLite.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from backend_indexer.core.exceptions import JobNotFound, SubscriberResolutionError
from backend_indexer.database.models import (
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    JOB_STATUS_STOPPED,
    LOG_TAG_ERROR,
    LOG_TAG_INFO,
    SubscriberJob,
)


def test_create_and_get_job(store):
    job = store.create_job(
        "sales feed",
        "nft_sale",
        db_host="db.example.com",
        db_port=6543,
        db_name="tenant",
        db_user="u",
        db_password="p",
    )
    assert job.id > 0
    assert job.status == JOB_STATUS_PENDING
    loaded = store.get_job(job.id)
    assert loaded.name == "sales feed"
    assert loaded.category == "nft_sale"
    assert loaded.db_host == "db.example.com"
    assert loaded.db_port == 6543
    assert loaded.entries_processed == 0


def test_get_job_not_found(store):
    with pytest.raises(JobNotFound):
        store.get_job(999)


def test_create_job_rejects_unknown_status(store):
    with pytest.raises(ValueError, match="invalid job status"):
        store.create_job("x", "nft_sale", status="paused")


def test_list_active_jobs_filters_and_orders(store, make_job):
    """Only running jobs of the category, ordered by id."""
    a = make_job("nft_sale")
    make_job("nft_sale", status=JOB_STATUS_STOPPED)
    make_job("nft_mint")
    b = make_job("nft_sale")
    active = store.list_active_jobs("nft_sale")
    assert [j.id for j in active] == [a.id, b.id]
    assert all(isinstance(j, SubscriberJob) for j in active)
    assert store.list_active_jobs("nft_listing") == []


def test_list_active_jobs_store_failure(store):
    """Database errors surface as SubscriberResolutionError."""
    with patch.object(store, "_session_factory", side_effect=OperationalError("SELECT", {}, Exception("down"))):
        with pytest.raises(SubscriberResolutionError):
            store.list_active_jobs("nft_sale")


def test_set_status(store, make_job):
    job = make_job("nft_mint", status=JOB_STATUS_PENDING)
    store.set_status(job.id, JOB_STATUS_RUNNING)
    assert store.get_job(job.id).status == JOB_STATUS_RUNNING
    with pytest.raises(JobNotFound):
        store.set_status(12345, JOB_STATUS_RUNNING)
    with pytest.raises(ValueError):
        store.set_status(job.id, "bogus")


def test_increment_entries_processed_is_atomic(store, make_job):
    """Concurrent increments from many threads are never lost."""
    job = make_job("nft_sale")
    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(lambda _: store.increment_entries_processed(job.id), range(20)))
    assert store.get_job(job.id).entries_processed == 20


def test_reset_entries_processed(store, make_job):
    a = make_job("nft_sale")
    b = make_job("nft_mint")
    make_job("nft_listing")
    store.increment_entries_processed(a.id)
    store.increment_entries_processed(b.id)
    store.increment_entries_processed(b.id)
    assert store.reset_entries_processed() == 2
    assert store.get_job(a.id).entries_processed == 0
    assert store.get_job(b.id).entries_processed == 0


def test_audit_log_newest_first(store, make_job):
    job = make_job("nft_sale")
    other = make_job("nft_mint")
    store.add_log(job.id, "first", LOG_TAG_INFO)
    store.add_log(job.id, "second", LOG_TAG_ERROR)
    store.add_log(other.id, "unrelated", LOG_TAG_INFO)
    entries = store.list_logs(job.id)
    assert [e.message for e in entries] == ["second", "first"]
    assert entries[0].tag == LOG_TAG_ERROR
    assert len(store.list_logs()) == 3
    assert len(store.list_logs(limit=1)) == 1


def test_ping(store):
    assert store.ping() is True


def test_job_redacted_and_round_trip(make_job):
    job = make_job("nft_sale")
    assert job.redacted()["db_password"] == "***"
    assert SubscriberJob.from_dict(job.to_dict()) == job
