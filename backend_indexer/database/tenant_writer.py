"""
Tenant database writer.

Each write opens a fresh, non-pooled engine for the job's own PostgreSQL
database, makes sure the category's destination table exists (never
destructive), inserts one record and disposes the engine. Connection failures
are classified so the audit log can tell the tenant what to fix.
"""

from __future__ import annotations

from typing import Any, Callable

from sqlalchemy import create_engine, select
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from backend_indexer.core.categories import EventCategory
from backend_indexer.core.exceptions import (
    ConnectionReason,
    ConstraintError,
    SchemaError,
    TenantConnectionError,
)
from backend_indexer.database.models import SubscriberJob
from backend_indexer.database.tenant_schema import table_for
from backend_indexer.indexer_logging import get_logger
from backend_indexer.normalizer.models import NormalizedRecord

logger = get_logger(__name__)

DEFAULT_CONNECT_TIMEOUT_SEC = 30

EngineFactory = Callable[[SubscriberJob], Engine]

# Driver message fragments -> reason. Checked in order.
_REASON_MARKERS: tuple[tuple[ConnectionReason, tuple[str, ...]], ...] = (
    (
        ConnectionReason.NOT_FOUND,
        (
            "could not translate host name",
            "name or service not known",
            "nodename nor servname",
            "getaddrinfo",
            "enotfound",
            "unknown host",
        ),
    ),
    (ConnectionReason.TIMEOUT, ("timeout expired", "timed out", "etimedout")),
    (ConnectionReason.REFUSED, ("connection refused", "econnrefused")),
)


def classify_connection_error(message: str) -> ConnectionReason:
    lowered = (message or "").lower()
    for reason, markers in _REASON_MARKERS:
        if any(marker in lowered for marker in markers):
            return reason
    return ConnectionReason.OTHER


def tenant_url(job: SubscriberJob) -> URL:
    return URL.create(
        "postgresql+psycopg2",
        username=job.db_user or None,
        password=job.db_password or None,
        host=job.db_host or None,
        port=job.db_port or None,
        database=job.db_name or None,
    )


class TenantWriter:
    """Writes normalized records into subscriber-owned databases."""

    def __init__(
        self,
        connect_timeout_sec: int = DEFAULT_CONNECT_TIMEOUT_SEC,
        engine_factory: EngineFactory | None = None,
    ) -> None:
        self.connect_timeout_sec = connect_timeout_sec
        self._engine_factory = engine_factory or self._postgres_engine

    def _postgres_engine(self, job: SubscriberJob) -> Engine:
        return create_engine(
            tenant_url(job),
            poolclass=NullPool,
            connect_args={"connect_timeout": self.connect_timeout_sec},
        )

    def _connect(self, engine: Engine, job: SubscriberJob):
        try:
            return engine.connect()
        except SQLAlchemyError as e:
            reason = classify_connection_error(str(e))
            logger.warning(
                "tenant_connect_failed",
                job_id=job.id,
                host=job.db_host,
                port=job.db_port,
                reason=reason.value,
                error=str(e),
            )
            raise TenantConnectionError(reason, str(e), host=job.db_host, port=job.db_port) from e

    @staticmethod
    def _table(category: EventCategory | str):
        parsed = EventCategory.parse(category)
        table = table_for(parsed) if parsed else None
        if table is None:
            raise SchemaError(f"no destination table for category {category!r}")
        return table

    def ensure_table(self, job: SubscriberJob, category: EventCategory | str) -> None:
        """CREATE TABLE IF NOT EXISTS for the category's destination table."""
        table = self._table(category)
        engine = self._engine_factory(job)
        try:
            with self._connect(engine, job) as conn:
                table.create(conn, checkfirst=True)
                conn.commit()
            logger.info("tenant_table_ready", job_id=job.id, table=table.name)
        finally:
            engine.dispose()

    def write(self, job: SubscriberJob, category: EventCategory | str, record: NormalizedRecord) -> int:
        """
        Insert one record. Returns the new row id.

        Raises TenantConnectionError (unreachable), ConstraintError (duplicate
        signature) or SchemaError (unknown category).
        """
        table = self._table(category)
        engine = self._engine_factory(job)
        try:
            with self._connect(engine, job) as conn:
                table.create(conn, checkfirst=True)
                try:
                    result = conn.execute(table.insert().values(**record.to_row()))
                    conn.commit()
                except IntegrityError as e:
                    conn.rollback()
                    raise ConstraintError(record.signature, str(e.orig)) from e
                record_id = result.inserted_primary_key[0]
            logger.debug(
                "tenant_write_ok",
                job_id=job.id,
                table=table.name,
                signature=record.signature,
                record_id=record_id,
            )
            return record_id
        finally:
            engine.dispose()

    def read_by_signature(
        self,
        job: SubscriberJob,
        category: EventCategory | str,
        signature: str,
    ) -> dict[str, Any] | None:
        """Stored row keyed by Python field names, or None."""
        table = self._table(category)
        engine = self._engine_factory(job)
        try:
            with self._connect(engine, job) as conn:
                if not engine.dialect.has_table(conn, table.name):
                    return None
                row = conn.execute(select(table).where(table.c.signature == signature)).first()
                if row is None:
                    return None
                return {col.key: row._mapping[col] for col in table.columns}
        finally:
            engine.dispose()
