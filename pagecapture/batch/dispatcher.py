"""Concurrency-bounded dispatch of one batch's items."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from functools import partial
from typing import Awaitable, Callable, Iterable

from pagecapture.capture.errors import ErrorKind
from pagecapture.capture.models import CaptureResult

from .events import EventCallback, emit_event
from .models import BatchRecord, FailedItem, SucceededItem
from .store import BatchStatusStore

logger = logging.getLogger(__name__)

ItemRunner = Callable[[str], Awaitable[CaptureResult]]


def _record_outcome(result: CaptureResult, record: BatchRecord) -> None:
    if result.success:
        record.record_success(
            SucceededItem(id=result.item_id, path=str(result.output_path), attempts=result.attempts)
        )
        return
    kind = result.error.kind.value if result.error else ErrorKind.UNEXPECTED.value
    message = result.error.message if result.error else "capture failed"
    record.record_failure(
        FailedItem(id=result.item_id, error=message, kind=kind, attempts=result.attempts)
    )


def _mark_completed(record: BatchRecord) -> None:
    record.mark_completed()


class BatchDispatcher:
    """Runs a FIFO of item ids with at most ``concurrency`` in flight.

    Every completion updates the status store, frees its slot and admits the
    next pending id. The batch is marked completed exactly once, when the
    queue is empty and nothing is active.
    """

    def __init__(
        self,
        store: BatchStatusStore,
        batch_id: str,
        ids: Iterable[str],
        run_item: ItemRunner,
        concurrency: int = 1,
        on_event: EventCallback | None = None,
    ) -> None:
        if concurrency < 1:
            logger.warning(
                "concurrency clamped to 1",
                extra={"batch_id": batch_id, "requested": concurrency},
            )
            concurrency = 1
        self._store = store
        self._batch_id = batch_id
        self._pending: deque[str] = deque(ids)
        self._run_item = run_item
        self._concurrency = concurrency
        self._on_event = on_event

        self._active = 0
        self.peak_active = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._completing = False
        self._cancelled = False
        self._done = asyncio.Event()
        self._final: BatchRecord | None = None

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def active(self) -> int:
        return self._active

    async def run(self) -> BatchRecord | None:
        """Dispatch every pending id; returns the final snapshot once the batch is completed."""
        logger.info(
            "batch dispatch started",
            extra={
                "batch_id": self._batch_id,
                "total": len(self._pending),
                "concurrency": self._concurrency,
            },
        )
        if not self._pending:
            await self._complete()
        else:
            self._admit()

        try:
            await self._done.wait()
        finally:
            if not self._done.is_set():
                self._cancelled = True
                for task in list(self._tasks):
                    task.cancel()
                logger.warning(
                    "batch dispatch cancelled",
                    extra={"batch_id": self._batch_id, "in_flight": len(self._tasks)},
                )
        return self._final

    def _admit(self) -> None:
        while self._pending and self._active < self._concurrency and not self._cancelled:
            item_id = self._pending.popleft()
            self._active += 1
            self.peak_active = max(self.peak_active, self._active)
            task = asyncio.create_task(self._process(item_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            logger.debug(
                "item admitted",
                extra={
                    "batch_id": self._batch_id,
                    "item_id": item_id,
                    "active": self._active,
                    "pending": len(self._pending),
                },
            )

    async def _process(self, item_id: str) -> None:
        try:
            try:
                result = await self._run_item(item_id)
            except Exception as exc:
                logger.exception(
                    "item runner raised", extra={"batch_id": self._batch_id, "item_id": item_id}
                )
                result = CaptureResult.failure(item_id, ErrorKind.UNEXPECTED, str(exc))

            snapshot = await self._store.update(self._batch_id, partial(_record_outcome, result))
            await emit_event(
                self._on_event,
                "item_completed",
                {
                    "batch_id": self._batch_id,
                    "id": item_id,
                    "success": result.success,
                    "attempts": result.attempts,
                    "completed": snapshot.completed,
                    "successful": snapshot.successful,
                    "failed": snapshot.failed,
                    "total": snapshot.total,
                },
            )
        finally:
            self._active -= 1
            if not self._cancelled:
                if self._pending:
                    self._admit()
                elif self._active == 0 and not self._completing:
                    await self._complete()

    async def _complete(self) -> None:
        self._completing = True
        try:
            snapshot = await self._store.update(self._batch_id, _mark_completed)
        except BaseException:
            self._done.set()
            raise
        self._final = snapshot
        logger.info(
            "batch completed",
            extra={
                "batch_id": self._batch_id,
                "successful": snapshot.successful,
                "failed": snapshot.failed,
                "duration_ms": snapshot.duration_ms,
                "peak_active": self.peak_active,
            },
        )
        await emit_event(self._on_event, "batch_completed", snapshot.model_dump(mode="json"))
        self._done.set()
