"""
Structured logging for Backend Indexer.

JSON logs with timestamp, job_id, category, event_type.
Use get_logger() in all modules for production-ready, aggregation-friendly output.
"""

from backend_indexer.indexer_logging.logger import bind_job, get_logger

__all__ = ["bind_job", "get_logger"]
