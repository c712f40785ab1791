"""Core types shared by every layer: event categories and domain exceptions."""

from backend_indexer.core.categories import ALL_CATEGORIES, EventCategory
from backend_indexer.core.exceptions import (
    ConnectionReason,
    ConstraintError,
    IndexerError,
    JobNotFound,
    QueueError,
    SchemaError,
    SubscriberResolutionError,
    TenantConnectionError,
    UnsupportedCategory,
)

__all__ = [
    "ALL_CATEGORIES",
    "EventCategory",
    "ConnectionReason",
    "ConstraintError",
    "IndexerError",
    "JobNotFound",
    "QueueError",
    "SchemaError",
    "SubscriberResolutionError",
    "TenantConnectionError",
    "UnsupportedCategory",
]
