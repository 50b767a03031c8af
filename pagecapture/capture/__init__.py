"""Page capture submodule with pluggable rendering sessions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .client import CaptureClient
from .errors import BatchStateError, CaptureError, ErrorKind, InvalidInput
from .models import CaptureOptions, CaptureResult, Section, target_url, validate_item_id
from .profiles import CAPTURE_PROFILES, resolve_options
from .retry import RetryConfig, with_retry
from .session import RenderSession, SessionConfig, open_playwright_session

if TYPE_CHECKING:
    from pagecapture.config import Settings

__all__ = [
    "BatchStateError",
    "CAPTURE_PROFILES",
    "CaptureClient",
    "CaptureError",
    "CaptureOptions",
    "CaptureResult",
    "ErrorKind",
    "InvalidInput",
    "RenderSession",
    "RetryConfig",
    "Section",
    "SessionConfig",
    "build_capture_client",
    "open_playwright_session",
    "resolve_options",
    "target_url",
    "validate_item_id",
    "with_retry",
]

logger = logging.getLogger(__name__)


def build_capture_client(settings: Settings) -> CaptureClient:
    """Build the default Playwright-backed capture client from settings."""
    logger.debug(
        "building capture client",
        extra={"url_template": settings.target_url_template, "chrome_path": settings.chrome_path or None},
    )
    return CaptureClient(
        open_session=open_playwright_session,
        url_template=settings.target_url_template,
        executable_path=settings.chrome_path,
    )
