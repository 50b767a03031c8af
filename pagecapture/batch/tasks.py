"""Background batch runner and the completion webhook it fires."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable
from urllib.parse import urlparse

import httpx

from pagecapture.capture.retry import RetryConfig

from .dispatcher import BatchDispatcher
from .models import BatchRecord

logger = logging.getLogger(__name__)

NOTIFY_RETRY = RetryConfig(max_attempts=4, base_delay=1.0, max_delay=30.0)
NOTIFY_TIMEOUT = 10.0


def parse_allowed_hosts(raw: str) -> frozenset[str]:
    """Split a comma-separated host list into lower-cased names."""
    return frozenset(part.strip().lower() for part in raw.split(",") if part.strip())


def callback_allowed(url: str, allowed_hosts: Iterable[str]) -> bool:
    """True when *url* is plain http(s) to one of *allowed_hosts*.

    URLs carrying credentials are refused; so is everything when the
    allow-list is empty.
    """
    allowed = frozenset(allowed_hosts)
    if not allowed:
        return False
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or parsed.username or parsed.password:
        return False
    return (parsed.hostname or "").lower() in allowed


def completion_payload(record: BatchRecord) -> dict[str, Any]:
    return {
        "batch_id": record.batch_id,
        "status": record.status.value,
        "total": record.total,
        "successful": record.successful,
        "failed": record.failed,
        "failed_ids": [item.id for item in record.results.failed],
        "duration_ms": record.duration_ms,
        "status_url": f"/api/batch/{record.batch_id}/status",
    }


async def notify_completion(
    url: str,
    record: BatchRecord,
    retry: RetryConfig = NOTIFY_RETRY,
) -> bool:
    """POST the batch summary to *url*; returns whether it was accepted.

    Transport errors and 5xx answers are retried with ``retry``'s backoff.
    A 4xx answer means the receiver rejected the payload and is final.
    """
    payload = completion_payload(record)
    attempts = max(1, retry.max_attempts)
    async with httpx.AsyncClient(timeout=NOTIFY_TIMEOUT) as client:
        for attempt in range(1, attempts + 1):
            try:
                response = await client.post(url, json=payload)
            except httpx.TransportError as exc:
                reason = f"{type(exc).__name__}: {exc}"
            else:
                if response.is_success:
                    logger.info(
                        "completion callback delivered",
                        extra={"batch_id": record.batch_id, "attempt": attempt, "status_code": response.status_code},
                    )
                    return True
                if response.is_client_error:
                    logger.warning(
                        "completion callback rejected",
                        extra={"batch_id": record.batch_id, "status_code": response.status_code},
                    )
                    return False
                reason = f"HTTP {response.status_code}"

            logger.warning(
                "completion callback attempt failed",
                extra={"batch_id": record.batch_id, "attempt": attempt, "max_attempts": attempts, "error": reason},
            )
            if attempt < attempts:
                await asyncio.sleep(retry.delay_for(attempt))
    return False


async def run_batch(
    dispatcher: BatchDispatcher,
    batch_id: str,
    callback_url: str | None = None,
) -> None:
    """Drive one batch to completion, then notify *callback_url* if given."""
    try:
        record = await dispatcher.run()
    except asyncio.CancelledError:
        logger.warning("background batch cancelled", extra={"batch_id": batch_id})
        raise
    except Exception:
        logger.exception("background batch failed", extra={"batch_id": batch_id})
        return

    if callback_url and record is not None:
        await notify_completion(callback_url, record)
