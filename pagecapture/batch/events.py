"""Event handling helpers for batch progress."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

# Type alias for the progress callback used across the batch layer.
EventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]

BatchEvent = tuple[str, dict[str, Any]]

TERMINAL_EVENT = "batch_completed"


async def emit_event(
    on_event: EventCallback | None,
    event: str,
    data: dict[str, Any] | None = None,
) -> None:
    """Emit a batch event if a callback is registered."""
    if on_event:
        logger.debug("batch event emitted", extra={"event": event})
        await on_event(event, data or {})


class EventHub:
    """Fans batch events out to per-batch subscriber queues.

    A subscriber queue receives ``None`` after the terminal event so stream
    readers know when to stop.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, set[asyncio.Queue[BatchEvent | None]]] = defaultdict(set)

    def subscribe(self, batch_id: str) -> asyncio.Queue[BatchEvent | None]:
        queue: asyncio.Queue[BatchEvent | None] = asyncio.Queue()
        self._subscribers[batch_id].add(queue)
        return queue

    def unsubscribe(self, batch_id: str, queue: asyncio.Queue[BatchEvent | None]) -> None:
        queues = self._subscribers.get(batch_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[batch_id]

    def callback_for(self, batch_id: str) -> EventCallback:
        """Return an ``EventCallback`` that publishes into *batch_id*'s subscribers."""

        async def publish(event: str, data: dict[str, Any]) -> None:
            self.publish(batch_id, event, data)

        return publish

    def publish(self, batch_id: str, event: str, data: dict[str, Any]) -> None:
        for queue in list(self._subscribers.get(batch_id, ())):
            queue.put_nowait((event, data))
            if event == TERMINAL_EVENT:
                queue.put_nowait(None)
