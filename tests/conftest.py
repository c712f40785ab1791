"""
Pytest fixtures for indexer tests.

Control-plane store and tenant databases are temporary SQLite files (one per
job); Redis is fakeredis so cache and queue tests need no server.
"""

from __future__ import annotations

import itertools

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

from backend_indexer.cache.job_cache import JobRegistryCache
from backend_indexer.config.settings import Settings
from backend_indexer.database.control_plane import ControlPlaneStore
from backend_indexer.database.models import JOB_STATUS_RUNNING
from backend_indexer.database.tenant_writer import TenantWriter
from backend_indexer.dispatcher.dispatcher import Dispatcher, DispatcherConfig
from backend_indexer.job_queue.queue import WebhookQueue

from payloads import BROKEN_DB_NAME, WEBHOOK_TOKEN


# -----------------------------------------------------------------------------
# Stores, writer, Redis
# -----------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path):
    """Control-plane store on a temporary SQLite file."""
    s = ControlPlaneStore(f"sqlite:///{tmp_path / 'control_plane.db'}")
    s.init_db()
    yield s
    s.dispose()


@pytest.fixture
def tenant_engine_factory(tmp_path):
    """One SQLite file per tenant job, non-pooled like the PostgreSQL engines."""

    def factory(job):
        if job.db_name == BROKEN_DB_NAME:
            path = tmp_path / "missing-dir" / "tenant.db"
        else:
            path = tmp_path / f"tenant_{job.db_name or job.id}.db"
        return create_engine(f"sqlite:///{path}", poolclass=NullPool)

    return factory


@pytest.fixture
def writer(tenant_engine_factory):
    return TenantWriter(connect_timeout_sec=5, engine_factory=tenant_engine_factory)


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def cache(redis_client):
    return JobRegistryCache(redis_client, default_ttl_sec=3600)


@pytest.fixture
def webhook_queue(redis_client):
    return WebhookQueue(redis_client)


@pytest.fixture
def make_job(store):
    """Factory for jobs in the control-plane store (running by default)."""
    counter = itertools.count(1)

    def _make(category: str = "nft_sale", name: str = "", *, db_name: str = "", status: str = JOB_STATUS_RUNNING):
        n = next(counter)
        return store.create_job(
            name or f"{category}-job-{n}",
            category,
            db_host="localhost",
            db_port=5432,
            db_name=db_name or f"tenant_{n}",
            db_user="indexer",
            db_password="secret",
            status=status,
        )

    return _make


@pytest.fixture
def sync_config(store, writer, cache):
    return DispatcherConfig(store=store, writer=writer, cache=cache, queue=None, fanout_concurrency=4)


@pytest.fixture
def sync_dispatcher(sync_config):
    return Dispatcher(sync_config)


@pytest.fixture
def queue_config(store, writer, cache, webhook_queue):
    return DispatcherConfig(
        store=store,
        writer=writer,
        cache=cache,
        queue=webhook_queue,
        fanout_concurrency=4,
        queue_attempts=3,
        queue_backoff_sec=1.0,
    )


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        redis_url="redis://localhost:6379/0",
        enable_queue=False,
        webhook_auth_token=WEBHOOK_TOKEN,
        app_env="test",
    )


@pytest.fixture
def client(settings, sync_config):
    """FastAPI TestClient with the lifespan run against temp stores; workers not started."""
    from fastapi.testclient import TestClient

    from backend_indexer.api_server.server import create_app

    app = create_app(settings=settings, config=sync_config, run_workers=False)
    with TestClient(app) as test_client:
        yield test_client
