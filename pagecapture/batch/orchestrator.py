"""Orchestration facade — submit batches, poll their status, capture single pages."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Sequence
from functools import partial
from pathlib import Path
from typing import Any

from pagecapture.capture.client import CaptureClient
from pagecapture.capture.errors import ErrorKind, InvalidInput
from pagecapture.capture.models import CaptureOptions, CaptureResult, validate_item_id
from pagecapture.capture.retry import RetryConfig, with_retry

from .dispatcher import BatchDispatcher
from .events import EventCallback, EventHub, emit_event
from .models import BatchRecord
from .store import BatchStatusStore
from .tasks import run_batch

logger = logging.getLogger(__name__)


def _generate_batch_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def validate_ids(ids: Any) -> list[str]:
    """Check that *ids* is a non-empty sequence of valid item identifiers."""
    if isinstance(ids, (str, bytes)) or not isinstance(ids, Sequence):
        raise InvalidInput("ids must be a list of strings")
    if not ids:
        raise InvalidInput("ids must not be empty")
    return [validate_item_id(item_id) for item_id in ids]


class BatchOrchestrator:
    """Entry point for the HTTP and CLI layers."""

    def __init__(
        self,
        store: BatchStatusStore,
        client: CaptureClient,
        output_dir: str | Path,
        default_options: CaptureOptions | None = None,
        retry_config: RetryConfig = RetryConfig(),
        events: EventHub | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._output_dir = Path(output_dir)
        self._default_options = default_options or CaptureOptions()
        self._retry_config = retry_config
        self.events = events or EventHub()
        self._running: dict[str, asyncio.Task[None]] = {}

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def output_path_for(self, item_id: str) -> Path:
        return self._output_dir / f"{item_id}.png"

    async def submit_batch(
        self,
        ids: Sequence[str],
        concurrency: int = 1,
        retries: int | None = None,
        *,
        options: CaptureOptions | None = None,
        callback_url: str | None = None,
    ) -> str:
        """Register a batch and start dispatching it without waiting for it."""
        item_ids = validate_ids(ids)
        batch_id = _generate_batch_id()
        options = options or self._default_options
        retry_config = RetryConfig(
            max_attempts=max(1, retries if retries is not None else self._retry_config.max_attempts),
            base_delay=self._retry_config.base_delay,
            max_delay=self._retry_config.max_delay,
        )

        self._output_dir.mkdir(parents=True, exist_ok=True)
        await self._store.put(batch_id, BatchRecord.start(batch_id, total=len(item_ids)))

        on_event = self.events.callback_for(batch_id)
        dispatcher = BatchDispatcher(
            self._store,
            batch_id,
            item_ids,
            run_item=partial(self._run_item, options=options, retry_config=retry_config, on_event=on_event),
            concurrency=concurrency,
            on_event=on_event,
        )
        task = asyncio.create_task(run_batch(dispatcher, batch_id, callback_url))
        self._running[batch_id] = task
        task.add_done_callback(lambda _: self._running.pop(batch_id, None))

        logger.info(
            "batch submitted",
            extra={
                "batch_id": batch_id,
                "total": len(item_ids),
                "concurrency": dispatcher.concurrency,
                "retries": retry_config.max_attempts,
                "sectioned": options.sectioned,
            },
        )
        return batch_id

    async def get_batch_status(self, batch_id: str) -> BatchRecord | None:
        return await self._store.get(batch_id)

    async def capture_one(
        self,
        item_id: str,
        output_path: str | Path,
        options: CaptureOptions | None = None,
    ) -> CaptureResult:
        """Capture a single page synchronously, outside any batch."""
        validate_item_id(item_id)
        try:
            return await self._client.capture(item_id, output_path, options or self._default_options)
        except Exception as exc:
            logger.exception("single capture raised", extra={"item_id": item_id})
            return CaptureResult.failure(item_id, ErrorKind.UNEXPECTED, str(exc))

    async def wait_for(self, batch_id: str) -> BatchRecord | None:
        """Block until *batch_id* has finished dispatching and return its record."""
        task = self._running.get(batch_id)
        if task is not None:
            await asyncio.shield(task)
        return await self._store.get(batch_id)

    async def aclose(self) -> None:
        """Cancel batches still in flight."""
        tasks = list(self._running.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("cancelled running batches", extra={"count": len(tasks)})

    async def _run_item(
        self,
        item_id: str,
        *,
        options: CaptureOptions,
        retry_config: RetryConfig,
        on_event: EventCallback | None,
    ) -> CaptureResult:
        output_path = self.output_path_for(item_id)

        async def attempt_once(attempt: int) -> CaptureResult:
            logger.info(
                "processing item",
                extra={"item_id": item_id, "attempt": attempt, "max_attempts": retry_config.max_attempts},
            )
            return await self._client.capture(item_id, output_path, options)

        async def report_attempt(attempt: int, result: CaptureResult) -> None:
            await emit_event(
                on_event,
                "attempt",
                {
                    "id": item_id,
                    "attempt": attempt,
                    "success": result.success,
                    "error": result.error.to_dict() if result.error else None,
                },
            )

        return await with_retry(item_id, attempt_once, retry_config, on_attempt=report_attempt)
