"""Screenshot and batch endpoint handlers."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from pagecapture.api.schemas import (
    BatchAccepted,
    BatchRequest,
    N8nScreenshotResponse,
    ScreenshotRequest,
    ScreenshotResponse,
)
from pagecapture.api.service import capture_single, screenshot_url, start_batch, stream_batch_events
from pagecapture.batch.models import BatchRecord
from pagecapture.batch.orchestrator import BatchOrchestrator
from pagecapture.batch.tasks import callback_allowed, parse_allowed_hosts
from pagecapture.capture.errors import InvalidInput
from pagecapture.config import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def _get_orchestrator(request: Request) -> BatchOrchestrator:
    return request.app.state.orchestrator


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.post("/screenshot", response_model=ScreenshotResponse)
async def create_screenshot(
    body: ScreenshotRequest,
    request: Request,
    orchestrator: BatchOrchestrator = Depends(_get_orchestrator),
    settings: Settings = Depends(_get_settings),
):
    try:
        result = await capture_single(orchestrator, settings, body)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=exc.message)

    if not result.success:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Failed to capture screenshot",
                "error": result.error.to_dict() if result.error else None,
            },
        )

    url = screenshot_url(result.item_id)
    return ScreenshotResponse(
        id=result.item_id,
        url=url,
        full_url=f"{str(request.base_url).rstrip('/')}{url}",
    )


@router.post("/n8n/screenshot", response_model=N8nScreenshotResponse)
async def create_n8n_screenshot(
    body: ScreenshotRequest,
    request: Request,
    orchestrator: BatchOrchestrator = Depends(_get_orchestrator),
    settings: Settings = Depends(_get_settings),
):
    try:
        result = await capture_single(orchestrator, settings, body)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=exc.message)

    if not result.success:
        message = result.error.message if result.error else "Failed to capture screenshot"
        return JSONResponse(status_code=500, content={"error": message})

    return N8nScreenshotResponse(
        id=result.item_id,
        screenshotUrl=f"{str(request.base_url).rstrip('/')}{screenshot_url(result.item_id)}",
    )


@router.post("/batch", response_model=BatchAccepted)
async def create_batch(
    body: BatchRequest,
    orchestrator: BatchOrchestrator = Depends(_get_orchestrator),
    settings: Settings = Depends(_get_settings),
):
    if body.callback_url:
        if not callback_allowed(body.callback_url, parse_allowed_hosts(settings.allowed_callback_hosts)):
            raise HTTPException(
                status_code=422,
                detail="callback_url host not in ALLOWED_CALLBACK_HOSTS",
            )

    try:
        return await start_batch(orchestrator, settings, body)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=exc.message)


@router.get("/batch/{batch_id}/status", response_model=BatchRecord)
async def get_batch_status(
    batch_id: str,
    orchestrator: BatchOrchestrator = Depends(_get_orchestrator),
):
    record = await orchestrator.get_batch_status(batch_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Batch not found")
    return record


@router.get("/batch/{batch_id}/events")
async def get_batch_events(
    batch_id: str,
    orchestrator: BatchOrchestrator = Depends(_get_orchestrator),
):
    if await orchestrator.get_batch_status(batch_id) is None:
        raise HTTPException(status_code=404, detail="Batch not found")
    return EventSourceResponse(stream_batch_events(orchestrator, batch_id))
