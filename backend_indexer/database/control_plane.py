"""
Control-plane store: subscriber jobs and their user-facing audit log.

SQLAlchemy ORM over DATABASE_URL (PostgreSQL in production, SQLite for local
runs and tests). One engine per store instance; every operation runs in its
own session scope that commits on success and rolls back on error.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import Column, Integer, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from backend_indexer.config.env import mask_url
from backend_indexer.core.exceptions import JobNotFound, SubscriberResolutionError
from backend_indexer.database.models import (
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    JOB_STATUSES,
    JobLogEntry,
    SubscriberJob,
)
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()

# -----------------------------------------------------------------------------
# SQLAlchemy models
# -----------------------------------------------------------------------------


class IndexerJob(Base):
    """One subscriber job: category, status, destination database and counter."""

    __tablename__ = "indexer_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(256), nullable=False, default="")
    type = Column(String(64), nullable=False, index=True)  # category wire value
    status = Column(String(32), nullable=False, default=JOB_STATUS_PENDING, index=True)
    db_host = Column(String(256), nullable=False, default="")
    db_port = Column(Integer, nullable=False, default=5432)
    db_name = Column(String(256), nullable=False, default="")
    db_user = Column(String(256), nullable=False, default="")
    db_password = Column(String(256), nullable=False, default="")
    entries_processed = Column(Integer, nullable=False, default=0)
    last_updated = Column(Integer, nullable=True)  # Unix
    created_at = Column(Integer, nullable=True)  # Unix

    def to_job(self) -> SubscriberJob:
        return SubscriberJob(
            id=self.id,
            name=self.name or "",
            category=self.type,
            status=self.status,
            db_host=self.db_host or "",
            db_port=self.db_port or 5432,
            db_name=self.db_name or "",
            db_user=self.db_user or "",
            db_password=self.db_password or "",
            entries_processed=self.entries_processed or 0,
            last_updated=self.last_updated,
        )


class JobLog(Base):
    """Append-only audit trail shown to tenants (tag INFO / WARNING / ERROR)."""

    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, nullable=False, index=True)
    message = Column(Text, nullable=False)
    tag = Column(String(16), nullable=False)
    created_at = Column(Integer, nullable=False, index=True)  # Unix

    def to_entry(self) -> JobLogEntry:
        return JobLogEntry(
            id=self.id,
            job_id=self.job_id,
            message=self.message,
            tag=self.tag,
            created_at=self.created_at,
        )


# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------


class ControlPlaneStore:
    """Jobs and audit log over one SQLAlchemy engine."""

    def __init__(self, database_url: str, *, engine: Any = None) -> None:
        self._url = database_url
        if engine is None:
            connect_args = {}
            if database_url.startswith("sqlite"):
                connect_args["check_same_thread"] = False
            engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)
        self._engine = engine
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    @property
    def engine(self) -> Any:
        return self._engine

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Context manager for a single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        """Create control-plane tables if they do not exist. Safe to call on every startup."""
        try:
            Base.metadata.create_all(bind=self._engine)
            logger.info("control_plane_init_db", url=mask_url(self._url))
        except Exception as e:
            logger.exception("control_plane_init_db_failed", error=str(e))
            raise

    def ping(self) -> bool:
        try:
            with self._engine.connect():
                return True
        except SQLAlchemyError as e:
            logger.warning("control_plane_ping_failed", error=str(e))
            return False

    def dispose(self) -> None:
        self._engine.dispose()

    # -- jobs -----------------------------------------------------------------

    def create_job(
        self,
        name: str,
        category: str,
        *,
        db_host: str = "",
        db_port: int = 5432,
        db_name: str = "",
        db_user: str = "",
        db_password: str = "",
        status: str = JOB_STATUS_PENDING,
    ) -> SubscriberJob:
        """Insert a job row. Jobs are normally created by the dashboard; used by tests and tooling."""
        if status not in JOB_STATUSES:
            raise ValueError(f"invalid job status: {status!r}")
        now = int(time.time())
        with self._session_scope() as session:
            row = IndexerJob(
                name=name,
                type=category,
                status=status,
                db_host=db_host,
                db_port=db_port,
                db_name=db_name,
                db_user=db_user,
                db_password=db_password,
                entries_processed=0,
                last_updated=now,
                created_at=now,
            )
            session.add(row)
            session.flush()
            job = row.to_job()
        logger.info("job_created", job_id=job.id, category=category)
        return job

    def get_job(self, job_id: int) -> SubscriberJob:
        """Return the job or raise JobNotFound."""
        with self._session_scope() as session:
            row = session.get(IndexerJob, job_id)
            if row is None:
                raise JobNotFound(job_id)
            return row.to_job()

    def list_active_jobs(self, category: str) -> list[SubscriberJob]:
        """
        Running jobs subscribed to a category, ordered by id.
        Raises SubscriberResolutionError when the store cannot be queried.
        """
        try:
            with self._session_scope() as session:
                rows = (
                    session.query(IndexerJob)
                    .filter(IndexerJob.type == category, IndexerJob.status == JOB_STATUS_RUNNING)
                    .order_by(IndexerJob.id)
                    .all()
                )
                return [r.to_job() for r in rows]
        except SQLAlchemyError as e:
            logger.warning("control_plane_list_active_failed", category=category, error=str(e))
            raise SubscriberResolutionError(str(e)) from e

    def set_status(self, job_id: int, status: str) -> None:
        if status not in JOB_STATUSES:
            raise ValueError(f"invalid job status: {status!r}")
        with self._session_scope() as session:
            updated = (
                session.query(IndexerJob)
                .filter(IndexerJob.id == job_id)
                .update({"status": status, "last_updated": int(time.time())})
            )
            if not updated:
                raise JobNotFound(job_id)
        logger.info("job_status_updated", job_id=job_id, status=status)

    def increment_entries_processed(self, job_id: int) -> None:
        """Atomic `entries_processed = entries_processed + 1` in the database."""
        with self._session_scope() as session:
            session.query(IndexerJob).filter(IndexerJob.id == job_id).update(
                {
                    IndexerJob.entries_processed: IndexerJob.entries_processed + 1,
                    IndexerJob.last_updated: int(time.time()),
                },
                synchronize_session=False,
            )

    def reset_entries_processed(self) -> int:
        """Zero every non-zero counter (billing period rollover). Returns rows updated."""
        with self._session_scope() as session:
            count = (
                session.query(IndexerJob)
                .filter(IndexerJob.entries_processed != 0)
                .update({"entries_processed": 0}, synchronize_session=False)
            )
        logger.info("entries_processed_reset", jobs=count)
        return count

    # -- audit log ------------------------------------------------------------

    def add_log(self, job_id: int, message: str, tag: str) -> int:
        """Append an audit entry. Returns the new row id."""
        with self._session_scope() as session:
            row = JobLog(job_id=job_id, message=message, tag=tag, created_at=int(time.time()))
            session.add(row)
            session.flush()
            return row.id

    def list_logs(self, job_id: int | None = None, *, limit: int = 100) -> list[JobLogEntry]:
        """Audit entries, newest first, optionally for one job."""
        with self._session_scope() as session:
            q = session.query(JobLog)
            if job_id is not None:
                q = q.filter(JobLog.job_id == job_id)
            rows = q.order_by(JobLog.id.desc()).limit(limit).all()
            return [r.to_entry() for r in rows]
