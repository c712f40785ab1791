"""
Durable per-category webhook queues (Redis Streams) and their consumers.

Workers live in backend_indexer.job_queue.worker; import them from there.
"""

from backend_indexer.job_queue.queue import QueueItem, WebhookQueue

__all__ = ["QueueItem", "WebhookQueue"]
