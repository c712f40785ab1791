"""
Application-level exceptions.

Domain exceptions for the dispatch pipeline with consistent codes and
messages for API and worker error handling. Everything derives from
IndexerError so callers at isolation boundaries can catch one type.
"""

from __future__ import annotations

from enum import Enum


class IndexerError(Exception):
    """Base class for all indexer errors."""

    code = "indexer_error"


class UnsupportedCategory(IndexerError):
    """Client sent an event category the indexer does not handle."""

    code = "unsupported_category"

    def __init__(self, category: object) -> None:
        self.category = category
        super().__init__(f"unsupported transaction type: {category!r}")


class SubscriberResolutionError(IndexerError):
    """Control-plane store could not be queried for subscriber jobs."""

    code = "subscriber_resolution_failed"


class ConnectionReason(str, Enum):
    """Why a tenant database connection failed."""

    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    REFUSED = "REFUSED"
    OTHER = "OTHER"


class TenantConnectionError(IndexerError):
    """
    Tenant database unreachable. `reason` tags the failure so the audit log
    can carry a human-readable diagnosis (see diagnose()).
    """

    code = "tenant_connection_failed"

    def __init__(
        self,
        reason: ConnectionReason,
        message: str,
        *,
        host: str = "",
        port: int | str = "",
    ) -> None:
        self.reason = reason
        self.host = host
        self.port = port
        super().__init__(message)

    def diagnose(self) -> str:
        """User-facing explanation for the audit log and API responses."""
        if self.reason is ConnectionReason.NOT_FOUND:
            return "Database host not found. Please check the hostname is correct"
        if self.reason is ConnectionReason.TIMEOUT:
            return (
                "Connection to database timed out. Please check firewall settings "
                "or network connection"
            )
        if self.reason is ConnectionReason.REFUSED:
            return (
                f"Connection to database at {self.host}:{self.port} was refused. "
                "Please check the port is open and the service is running"
            )
        return "Unable to connect to the database"


class SchemaError(IndexerError):
    """A category without a destination schema reached the tenant writer."""

    code = "schema_error"


class ConstraintError(IndexerError):
    """Insert rejected by a uniqueness constraint (duplicate signature)."""

    code = "duplicate_record"

    def __init__(self, signature: str, message: str = "") -> None:
        self.signature = signature
        super().__init__(message or f"record with signature {signature!r} already exists")


class QueueError(IndexerError):
    """Durable queue rejected an operation (Redis unreachable, etc.)."""

    code = "queue_error"


class JobNotFound(IndexerError):
    """No subscriber job with the requested id in the control-plane store."""

    code = "job_not_found"

    def __init__(self, job_id: object) -> None:
        self.job_id = job_id
        super().__init__(f"job {job_id!r} not found")
