"""Process-wide table of batch progress records."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from .models import BatchRecord

if TYPE_CHECKING:
    from pagecapture.cache.redis import RedisStatusMirror

logger = logging.getLogger(__name__)

BatchMutation = Callable[[BatchRecord], None]


class BatchStatusStore:
    """Owns every ``BatchRecord``; all writes go through one lock.

    Readers get deep copies, so a snapshot never changes under them. Mirror
    writes happen after that lock is released, one at a time, and always carry
    the newest local state, so a slow Redis never stalls readers. Completed
    records older than ``ttl_seconds`` are evicted lazily; ``0`` keeps them for
    the life of the process.
    """

    def __init__(self, ttl_seconds: int = 0, mirror: RedisStatusMirror | None = None) -> None:
        self._records: dict[str, BatchRecord] = {}
        self._lock = asyncio.Lock()
        self._mirror_lock = asyncio.Lock()
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds > 0 else None
        self._mirror = mirror

    def __len__(self) -> int:
        return len(self._records)

    async def put(self, batch_id: str, record: BatchRecord) -> None:
        async with self._lock:
            self._evict_expired()
            self._records[batch_id] = record
        await self._publish(batch_id)
        logger.debug("batch record stored", extra={"batch_id": batch_id, "total": record.total})

    async def get(self, batch_id: str) -> BatchRecord | None:
        """Return a snapshot of the record, or ``None`` if the batch is unknown."""
        async with self._lock:
            self._evict_expired()
            record = self._records.get(batch_id)
            if record is not None:
                return record.model_copy(deep=True)
        if self._mirror is not None:
            return await self._mirror.fetch(batch_id)
        return None

    async def update(self, batch_id: str, mutation: BatchMutation) -> BatchRecord:
        """Apply *mutation* atomically and return the resulting snapshot.

        Raises ``KeyError`` for an unknown batch.
        """
        async with self._lock:
            record = self._records[batch_id]
            mutation(record)
            snapshot = record.model_copy(deep=True)
        await self._publish(batch_id)
        return snapshot

    def evict_expired(self, now: datetime | None = None) -> int:
        """Drop completed records past the TTL. Returns how many were removed."""
        return self._evict_expired(now)

    def _evict_expired(self, now: datetime | None = None) -> int:
        if self._ttl is None:
            return 0
        cutoff = (now or datetime.now(timezone.utc)) - self._ttl
        expired = [
            batch_id
            for batch_id, record in self._records.items()
            if record.is_completed and record.end_time is not None and record.end_time < cutoff
        ]
        for batch_id in expired:
            del self._records[batch_id]
        if expired:
            logger.info("evicted expired batch records", extra={"count": len(expired)})
        return len(expired)

    async def _publish(self, batch_id: str) -> None:
        if self._mirror is None:
            return
        async with self._mirror_lock:
            record = self._records.get(batch_id)
            if record is not None:
                await self._mirror.publish(record.model_copy(deep=True))
