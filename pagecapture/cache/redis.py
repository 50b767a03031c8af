"""Redis mirror for batch status snapshots — get/set with TTL."""

from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.backoff import ExponentialBackoff
from redis.retry import Retry

from pagecapture.batch.models import BatchRecord

logger = logging.getLogger(__name__)

KEY_PREFIX = "batch:"


class RedisStatusMirror:
    """Publishes batch snapshots so other workers can answer status polls."""

    def __init__(self, client: redis.Redis, default_ttl: int = 86400) -> None:
        self._client = client
        self._default_ttl = default_ttl

    async def fetch(self, batch_id: str) -> BatchRecord | None:
        """Return the mirrored snapshot, or ``None`` on miss / error."""
        try:
            raw = await self._client.get(f"{KEY_PREFIX}{batch_id}")
            if raw is None:
                logger.debug("mirror miss", extra={"batch_id": batch_id})
                return None
            logger.debug("mirror hit", extra={"batch_id": batch_id})
            return BatchRecord.model_validate_json(raw)
        except redis.RedisError:
            logger.warning("mirror fetch failed", extra={"batch_id": batch_id}, exc_info=True)
            return None

    async def publish(self, record: BatchRecord, ttl: int | None = None) -> bool:
        """Store a snapshot of *record* with a TTL. Returns ``False`` on error."""
        effective_ttl = ttl if ttl is not None else self._default_ttl
        try:
            await self._client.set(
                f"{KEY_PREFIX}{record.batch_id}",
                record.model_dump_json(),
                ex=effective_ttl or None,
            )
            logger.debug(
                "mirror set",
                extra={"batch_id": record.batch_id, "status": record.status.value, "ttl": effective_ttl},
            )
            return True
        except redis.RedisError:
            logger.warning("mirror publish failed", extra={"batch_id": record.batch_id}, exc_info=True)
            return False


async def create_redis_client(redis_url: str) -> redis.Redis:
    # Strip credentials for logging (everything before @ if present)
    safe_url = redis_url.split("@")[-1] if "@" in redis_url else redis_url
    logger.info("connecting to redis", extra={"redis_url": safe_url})
    retry = Retry(ExponentialBackoff(), retries=3)
    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        health_check_interval=30,
        retry=retry,
        retry_on_error=[redis.ConnectionError, redis.TimeoutError],
    )
