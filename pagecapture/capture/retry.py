"""Bounded retry around a single capture attempt."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Coroutine

from .errors import CaptureError, ErrorKind
from .models import CaptureResult

logger = logging.getLogger(__name__)

AttemptOperation = Callable[[int], Awaitable[CaptureResult]]
AttemptHook = Callable[[int, CaptureResult], Coroutine[Any, Any, None]]


@dataclass(frozen=True)
class RetryConfig:
    """How many attempts to make and how long to wait between them."""

    max_attempts: int = 3
    base_delay: float = 0.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following *attempt* (numbered from 1)."""
        if self.base_delay <= 0:
            return 0.0
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


async def with_retry(
    item_id: str,
    operation: AttemptOperation,
    config: RetryConfig = RetryConfig(),
    on_attempt: AttemptHook | None = None,
) -> CaptureResult:
    """Run *operation* until it succeeds or ``config.max_attempts`` is spent.

    Attempts are strictly sequential. A raised exception counts as a failed
    attempt. After the final failure the returned result carries a
    ``RetriesExhausted`` error wrapping the last underlying one.
    """
    max_attempts = max(1, config.max_attempts)
    result: CaptureResult | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = await operation(attempt)
        except Exception as exc:
            logger.warning(
                "capture attempt raised",
                extra={"item_id": item_id, "attempt": attempt, "max_attempts": max_attempts},
                exc_info=True,
            )
            result = CaptureResult.failure(item_id, ErrorKind.UNEXPECTED, str(exc) or type(exc).__name__)

        result = replace(result, attempts=attempt)
        if on_attempt is not None:
            await on_attempt(attempt, result)

        if result.success:
            return result

        if attempt < max_attempts:
            delay = config.delay_for(attempt)
            logger.info(
                "retrying capture",
                extra={
                    "item_id": item_id,
                    "attempt": attempt,
                    "remaining": max_attempts - attempt,
                    "delay": delay,
                },
            )
            if delay:
                await asyncio.sleep(delay)

    assert result is not None
    last_error = result.error or CaptureError(ErrorKind.UNEXPECTED, "capture failed")
    logger.error(
        "capture retries exhausted",
        extra={"item_id": item_id, "attempts": max_attempts, "kind": last_error.kind.value},
    )
    return replace(
        result,
        error=CaptureError(ErrorKind.RETRIES_EXHAUSTED, last_error.message, cause=last_error),
    )
