"""
Persistence: control-plane store (jobs, audit log) and tenant database writer.
"""

from backend_indexer.database.control_plane import ControlPlaneStore
from backend_indexer.database.models import (
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    JOB_STATUS_STOPPED,
    LOG_TAG_ERROR,
    LOG_TAG_INFO,
    LOG_TAG_WARNING,
    JobLogEntry,
    SubscriberJob,
)
from backend_indexer.database.tenant_writer import TenantWriter

__all__ = [
    "ControlPlaneStore",
    "JOB_STATUS_FAILED",
    "JOB_STATUS_PENDING",
    "JOB_STATUS_RUNNING",
    "JOB_STATUS_STOPPED",
    "JobLogEntry",
    "LOG_TAG_ERROR",
    "LOG_TAG_INFO",
    "LOG_TAG_WARNING",
    "SubscriberJob",
    "TenantWriter",
]
