"""Request/response Pydantic models."""

from typing import Any

from pydantic import BaseModel


class CaptureOptionsBody(BaseModel):
    profile: str | None = None
    timeout: float | None = None
    wait_time: float | None = None
    headless: bool | None = None
    content_height: int | None = None
    section_height: int | None = None

    def option_overrides(self) -> dict[str, Any]:
        return self.model_dump(exclude={"profile"}, exclude_none=True)


class ScreenshotRequest(CaptureOptionsBody):
    id: str | None = None


class ScreenshotResponse(BaseModel):
    success: bool = True
    message: str = "Screenshot captured successfully"
    id: str
    url: str
    full_url: str


class N8nScreenshotResponse(BaseModel):
    id: str
    screenshotUrl: str


class BatchRequest(BaseModel):
    ids: Any = None
    concurrency: int | None = None
    retries: int | None = None
    profile: str | None = None
    callback_url: str | None = None


class BatchAccepted(BaseModel):
    success: bool = True
    message: str = "Batch processing started"
    batch_id: str
    total_items: int
    status_url: str
