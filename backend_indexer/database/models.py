"""
Domain models for control-plane entities.

Subscriber jobs and their audit log entries. Plain dataclasses so the cache,
queue payloads and dispatcher can pass them around without ORM sessions.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

JOB_STATUS_PENDING = "pending"
JOB_STATUS_RUNNING = "running"
JOB_STATUS_FAILED = "failed"
JOB_STATUS_STOPPED = "stopped"

JOB_STATUSES = (JOB_STATUS_PENDING, JOB_STATUS_RUNNING, JOB_STATUS_FAILED, JOB_STATUS_STOPPED)

LOG_TAG_INFO = "INFO"
LOG_TAG_WARNING = "WARNING"
LOG_TAG_ERROR = "ERROR"


@dataclass
class SubscriberJob:
    """A tenant's subscription to one event category, with its destination database."""

    id: int
    name: str
    category: str
    """Wire value of the event category (nft_mint, ...)."""
    status: str = JOB_STATUS_PENDING
    db_host: str = ""
    db_port: int = 5432
    db_name: str = ""
    db_user: str = ""
    db_password: str = ""
    entries_processed: int = 0
    last_updated: int | None = None
    """Unix timestamp (seconds) of the last status or counter change."""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SubscriberJob:
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            category=str(data.get("category") or ""),
            status=str(data.get("status") or JOB_STATUS_PENDING),
            db_host=str(data.get("db_host") or ""),
            db_port=int(data.get("db_port") or 5432),
            db_name=str(data.get("db_name") or ""),
            db_user=str(data.get("db_user") or ""),
            db_password=str(data.get("db_password") or ""),
            entries_processed=int(data.get("entries_processed") or 0),
            last_updated=data.get("last_updated"),
        )

    def redacted(self) -> dict[str, Any]:
        """to_dict() without the database password, for API responses and logs."""
        out = self.to_dict()
        out["db_password"] = "***" if self.db_password else ""
        return out


@dataclass
class JobLogEntry:
    """Single user-facing audit log row for a job."""

    id: int | None
    job_id: int
    message: str
    tag: str
    """INFO, WARNING or ERROR."""
    created_at: int | None = None
