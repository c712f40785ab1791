"""
Job registry cache: category -> active subscriber jobs, in Redis.

One hash per category (job_subscriptions:<category>): field = job id,
value = job JSON, plus a marker field so an authoritatively empty set is
still a cache hit. append/remove touch single fields; only put() replaces.

If Redis is unreachable every call degrades to a miss / False and logs a
warning (fail-open); callers fall back to the control-plane store.
"""

from __future__ import annotations

import json
import redis

from backend_indexer.core.categories import EventCategory
from backend_indexer.database.models import SubscriberJob
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SEC = 3600
KEY_PREFIX = "job_subscriptions:"
POPULATED_FIELD = "__populated__"


def cache_key(category: EventCategory | str) -> str:
    value = category.value if isinstance(category, EventCategory) else str(category)
    return f"{KEY_PREFIX}{value.lower()}"


def _remove_field(pipe: redis.client.Pipeline, key: str, field_name: str) -> bool:
    """
    WATCH-guarded HDEL. The key is dropped with its last job; a concurrent
    write to the key aborts EXEC and redis-py retries from the top.
    """
    if not pipe.hexists(key, field_name):
        return False
    remaining = pipe.hlen(key) - int(bool(pipe.hexists(key, POPULATED_FIELD)))
    last_job = remaining <= 1
    pipe.multi()
    if last_job:
        pipe.delete(key)
    else:
        pipe.hdel(key, field_name)
    return True


class JobRegistryCache:
    """Redis-backed subscriber cache. `client` may be None (cache disabled)."""

    def __init__(self, client: redis.Redis | None, *, default_ttl_sec: int = DEFAULT_TTL_SEC) -> None:
        self._client = client
        self.default_ttl_sec = default_ttl_sec

    def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            logger.warning("job_cache_ping_failed", error=str(e))
            return False

    def get(self, category: EventCategory | str) -> list[SubscriberJob] | None:
        """Cached jobs ordered by id; None on a miss or when Redis is unavailable."""
        if self._client is None:
            return None
        key = cache_key(category)
        try:
            raw = self._client.hgetall(key)
        except redis.RedisError as e:
            logger.warning("job_cache_get_failed", key=key, error=str(e))
            return None
        if not raw:
            return None
        jobs: list[SubscriberJob] = []
        for field_name, value in raw.items():
            if field_name == POPULATED_FIELD:
                continue
            try:
                jobs.append(SubscriberJob.from_dict(json.loads(value)))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("job_cache_entry_invalid", key=key, field=field_name, error=str(e))
        jobs.sort(key=lambda job: job.id)
        return jobs

    def put(self, category: EventCategory | str, jobs: list[SubscriberJob], ttl: int | None = None) -> bool:
        """Authoritative replace of the category's set (MULTI/EXEC)."""
        if self._client is None:
            return False
        key = cache_key(category)
        mapping = {POPULATED_FIELD: "1"}
        mapping.update({str(job.id): json.dumps(job.to_dict(), default=str) for job in jobs})
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.delete(key)
            pipe.hset(key, mapping=mapping)
            pipe.expire(key, ttl or self.default_ttl_sec)
            pipe.execute()
            return True
        except redis.RedisError as e:
            logger.warning("job_cache_put_failed", key=key, jobs=len(jobs), error=str(e))
            return False

    def touch_ttl(self, category: EventCategory | str, ttl: int | None = None) -> bool:
        """Refresh the TTL. False when the key does not exist or Redis is unavailable."""
        if self._client is None:
            return False
        key = cache_key(category)
        try:
            return bool(self._client.expire(key, ttl or self.default_ttl_sec))
        except redis.RedisError as e:
            logger.warning("job_cache_touch_failed", key=key, error=str(e))
            return False

    def append(self, category: EventCategory | str, job: SubscriberJob, ttl: int | None = None) -> bool:
        """Add one job if not already cached (HSETNX). True when the job is cached afterwards."""
        if self._client is None:
            return False
        key = cache_key(category)
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.hsetnx(key, str(job.id), json.dumps(job.to_dict(), default=str))
            pipe.hsetnx(key, POPULATED_FIELD, "1")
            pipe.expire(key, ttl or self.default_ttl_sec)
            pipe.execute()
            return True
        except redis.RedisError as e:
            logger.warning("job_cache_append_failed", key=key, job_id=job.id, error=str(e))
            return False

    def remove(self, category: EventCategory | str, job_id: int) -> bool:
        """Drop one job (HDEL). True when something was removed; the key goes with the last job."""
        if self._client is None:
            return False
        key = cache_key(category)
        try:
            return self._client.transaction(
                lambda pipe: _remove_field(pipe, key, str(job_id)),
                key,
                value_from_callable=True,
            )
        except redis.RedisError as e:
            logger.warning("job_cache_remove_failed", key=key, job_id=job_id, error=str(e))
            return False

