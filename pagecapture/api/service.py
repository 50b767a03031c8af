"""Service layer — translates API requests into orchestrator calls."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import AsyncGenerator

from pagecapture.api.schemas import BatchAccepted, BatchRequest, ScreenshotRequest
from pagecapture.batch.orchestrator import BatchOrchestrator
from pagecapture.capture.models import CaptureResult, validate_item_id
from pagecapture.capture.profiles import resolve_options
from pagecapture.config import Settings

logger = logging.getLogger(__name__)


def screenshot_url(item_id: str) -> str:
    return f"/screenshots/{item_id}.png"


async def capture_single(
    orchestrator: BatchOrchestrator,
    settings: Settings,
    body: ScreenshotRequest,
) -> CaptureResult:
    """Capture one page into the shared output directory."""
    item_id = validate_item_id(body.id)
    options = resolve_options(body.profile or settings.capture_profile, **body.option_overrides())
    output_path = Path(settings.output_dir) / f"{item_id}.png"
    logger.info(
        "single capture requested",
        extra={"item_id": item_id, "profile": body.profile or settings.capture_profile},
    )
    return await orchestrator.capture_one(item_id, output_path, options)


async def start_batch(
    orchestrator: BatchOrchestrator,
    settings: Settings,
    body: BatchRequest,
) -> BatchAccepted:
    """Submit a batch and return the acceptance payload with its batch_id."""
    options = resolve_options(body.profile or settings.capture_profile)
    concurrency = body.concurrency if body.concurrency is not None else settings.default_concurrency
    retries = body.retries if body.retries is not None else settings.default_retries
    concurrency = min(concurrency, settings.max_concurrency)
    retries = min(max(retries, 1), settings.max_retries)

    batch_id = await orchestrator.submit_batch(
        body.ids,
        concurrency=concurrency,
        retries=retries,
        options=options,
        callback_url=body.callback_url,
    )
    return BatchAccepted(
        batch_id=batch_id,
        total_items=len(body.ids),
        status_url=f"/api/batch/{batch_id}/status",
    )


async def stream_batch_events(
    orchestrator: BatchOrchestrator,
    batch_id: str,
) -> AsyncGenerator[dict[str, str], None]:
    """Yield SSE-formatted progress events until the batch completes."""
    queue = orchestrator.events.subscribe(batch_id)
    try:
        snapshot = await orchestrator.get_batch_status(batch_id)
        if snapshot is None:
            return
        yield {"event": "snapshot", "data": snapshot.model_dump_json()}
        if snapshot.is_completed:
            return

        while True:
            item = await queue.get()
            if item is None:
                break
            event, data = item
            yield {"event": event, "data": json.dumps(data)}
    finally:
        orchestrator.events.unsubscribe(batch_id, queue)
