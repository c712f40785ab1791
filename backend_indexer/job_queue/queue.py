"""
Durable webhook queue on Redis Streams.

One stream per category (nft-mint-queue, ...) read through a single consumer
group. Each entry carries the JSON payload plus its attempt bookkeeping:

- enqueue: XADD
- complete: XACK + XDEL (nothing kept on success)
- fail with attempts left: parked in <stream>:delayed (sorted set scored by the
  due time, backoff * 2**(attempt - 1)) and promoted back into the stream when due
- fail with no attempts left: copied to <stream>:failed, trimmed to the last 100
- entries left pending by a dead consumer are reclaimed with XAUTOCLAIM
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import redis

from backend_indexer.core.categories import EventCategory
from backend_indexer.core.exceptions import QueueError
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

CONSUMER_GROUP = "indexer-workers"
DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF_SEC = 1.0
DEAD_LETTER_MAXLEN = 100
DEFAULT_RECLAIM_IDLE_MS = 60_000


@dataclass
class QueueItem:
    """One delivered stream entry."""

    entry_id: str
    category: EventCategory
    payload: dict[str, Any]
    attempt: int = 1
    max_attempts: int = DEFAULT_ATTEMPTS
    backoff_sec: float = DEFAULT_BACKOFF_SEC
    enqueued_at: float = field(default_factory=time.time)

    @property
    def attempts_left(self) -> int:
        return max(0, self.max_attempts - self.attempt)

    def retry_delay_sec(self) -> float:
        """Exponential backoff: backoff, 2*backoff, 4*backoff, ..."""
        return self.backoff_sec * (2 ** (self.attempt - 1))

    def to_fields(self) -> dict[str, str]:
        return {
            "payload": json.dumps(self.payload, default=str),
            "attempt": str(self.attempt),
            "max_attempts": str(self.max_attempts),
            "backoff_sec": str(self.backoff_sec),
            "enqueued_at": str(self.enqueued_at),
        }

    @classmethod
    def from_fields(cls, entry_id: str, category: EventCategory, fields: dict[str, str]) -> QueueItem:
        return cls(
            entry_id=entry_id,
            category=category,
            payload=json.loads(fields.get("payload") or "{}"),
            attempt=int(fields.get("attempt") or 1),
            max_attempts=int(fields.get("max_attempts") or DEFAULT_ATTEMPTS),
            backoff_sec=float(fields.get("backoff_sec") or DEFAULT_BACKOFF_SEC),
            enqueued_at=float(fields.get("enqueued_at") or time.time()),
        )


def stream_name(category: EventCategory) -> str:
    return category.queue_name


def delayed_key(category: EventCategory) -> str:
    return f"{category.queue_name}:delayed"


def dead_letter_key(category: EventCategory) -> str:
    return f"{category.queue_name}:failed"


class WebhookQueue:
    """Per-category Redis Streams queues sharing one client and consumer group."""

    def __init__(
        self,
        client: redis.Redis,
        *,
        group: str = CONSUMER_GROUP,
        dead_letter_maxlen: int = DEAD_LETTER_MAXLEN,
    ) -> None:
        self._client = client
        self.group = group
        self.dead_letter_maxlen = dead_letter_maxlen
        self._groups_ready: set[str] = set()

    # -- consumer groups ------------------------------------------------------

    def ensure_group(self, category: EventCategory) -> None:
        """Create the consumer group (and stream) if missing. Idempotent."""
        stream = stream_name(category)
        if stream in self._groups_ready:
            return
        try:
            self._client.xgroup_create(stream, self.group, id="0", mkstream=True)
            logger.info("queue_group_created", stream=stream, group=self.group)
        except redis.ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise
        self._groups_ready.add(stream)

    # -- producer -------------------------------------------------------------

    def enqueue(
        self,
        category: EventCategory,
        payload: dict[str, Any],
        *,
        attempts: int = DEFAULT_ATTEMPTS,
        backoff_sec: float = DEFAULT_BACKOFF_SEC,
    ) -> str:
        """Add one payload to the category stream. Returns the entry id; raises QueueError."""
        item = QueueItem(
            entry_id="",
            category=category,
            payload=payload,
            attempt=1,
            max_attempts=max(1, attempts),
            backoff_sec=backoff_sec,
        )
        try:
            self.ensure_group(category)
            return self._client.xadd(stream_name(category), item.to_fields())
        except redis.RedisError as e:
            logger.warning("queue_enqueue_failed", stream=stream_name(category), error=str(e))
            raise QueueError(str(e)) from e

    # -- consumer -------------------------------------------------------------

    def promote_due(self, category: EventCategory, now: float | None = None) -> int:
        """Move delayed retries whose due time has passed back into the stream."""
        key = delayed_key(category)
        now = time.time() if now is None else now
        due = self._client.zrangebyscore(key, "-inf", now)
        promoted = 0
        for member in due:
            # ZREM wins exactly once across competing consumers
            if not self._client.zrem(key, member):
                continue
            fields = json.loads(member)
            fields.pop("retry_id", None)
            self._client.xadd(stream_name(category), fields)
            promoted += 1
        if promoted:
            logger.debug("queue_retries_promoted", stream=stream_name(category), count=promoted)
        return promoted

    def read(
        self,
        category: EventCategory,
        consumer: str,
        *,
        count: int = 10,
        block_ms: int | None = 2000,
    ) -> list[QueueItem]:
        """New entries for this consumer (XREADGROUP >). Due retries are promoted first."""
        self.ensure_group(category)
        self.promote_due(category)
        stream = stream_name(category)
        result = self._client.xreadgroup(
            self.group,
            consumer,
            {stream: ">"},
            count=count,
            block=block_ms,
        )
        if not result:
            return []
        # result is [(stream_name, [(entry_id, fields), ...])]
        return self._decode(category, result[0][1])

    def claim_stale(
        self,
        category: EventCategory,
        consumer: str,
        *,
        min_idle_ms: int = DEFAULT_RECLAIM_IDLE_MS,
        count: int = 10,
    ) -> list[QueueItem]:
        """Reclaim entries another consumer read but never acknowledged."""
        stream = stream_name(category)
        try:
            # XAUTOCLAIM returns (next_start_id, [(entry_id, fields), ...], deleted_ids)
            reply = self._client.xautoclaim(
                stream,
                self.group,
                consumer,
                min_idle_time=min_idle_ms,
                count=count,
            )
        except redis.ResponseError as e:
            logger.warning("queue_claim_stale_failed", stream=stream, error=str(e))
            return []
        entries = reply[1] if len(reply) > 1 else []
        if entries:
            logger.info("queue_stale_claimed", stream=stream, count=len(entries), min_idle_ms=min_idle_ms)
        return self._decode(category, entries)

    def _decode(self, category: EventCategory, entries: list[Any]) -> list[QueueItem]:
        items: list[QueueItem] = []
        for entry_id, fields in entries:
            if not fields:
                continue
            try:
                items.append(QueueItem.from_fields(entry_id, category, fields))
            except (ValueError, TypeError) as e:
                logger.error("queue_entry_invalid", entry_id=entry_id, error=str(e))
                self._to_dead_letter(category, entry_id, dict(fields), f"invalid entry: {e}")
                self._ack_delete(category, entry_id)
        return items

    def _ack_delete(self, category: EventCategory, entry_id: str) -> None:
        stream = stream_name(category)
        pipe = self._client.pipeline(transaction=True)
        pipe.xack(stream, self.group, entry_id)
        pipe.xdel(stream, entry_id)
        pipe.execute()

    def _to_dead_letter(
        self,
        category: EventCategory,
        entry_id: str,
        fields: dict[str, str],
        error: str,
    ) -> None:
        record = {**fields, "entry_id": entry_id, "error": error, "failed_at": str(time.time())}
        self._client.xadd(
            dead_letter_key(category),
            record,
            maxlen=self.dead_letter_maxlen,
            approximate=False,
        )

    def complete(self, item: QueueItem) -> None:
        """Acknowledge and delete a processed entry."""
        self._ack_delete(item.category, item.entry_id)

    def fail(self, item: QueueItem, error: str) -> bool:
        """
        Record a failed attempt. Returns True when a retry was scheduled, False when
        the entry was dead-lettered.
        """
        if item.attempts_left > 0:
            delay = item.retry_delay_sec()
            retry = QueueItem(
                entry_id="",
                category=item.category,
                payload=item.payload,
                attempt=item.attempt + 1,
                max_attempts=item.max_attempts,
                backoff_sec=item.backoff_sec,
                enqueued_at=item.enqueued_at,
            )
            member = json.dumps({**retry.to_fields(), "retry_id": uuid.uuid4().hex})
            self._client.zadd(delayed_key(item.category), {member: time.time() + delay})
            self._ack_delete(item.category, item.entry_id)
            logger.info(
                "queue_retry_scheduled",
                stream=stream_name(item.category),
                attempt=retry.attempt,
                max_attempts=item.max_attempts,
                delay_sec=delay,
                error=error,
            )
            return True
        self._to_dead_letter(item.category, item.entry_id, item.to_fields(), error)
        self._ack_delete(item.category, item.entry_id)
        logger.warning(
            "queue_dead_lettered",
            stream=stream_name(item.category),
            attempts=item.attempt,
            error=error,
        )
        return False

    # -- introspection --------------------------------------------------------

    def dead_letters(self, category: EventCategory, count: int = DEAD_LETTER_MAXLEN) -> list[dict[str, str]]:
        entries = self._client.xrevrange(dead_letter_key(category), count=count)
        return [dict(fields) for _, fields in entries]

    def depth(self, category: EventCategory) -> dict[str, int]:
        """Entry counts for health reporting: waiting in stream, delayed retries, dead letters."""
        return {
            "waiting": int(self._client.xlen(stream_name(category))),
            "delayed": int(self._client.zcard(delayed_key(category))),
            "failed": int(self._client.xlen(dead_letter_key(category))),
        }
