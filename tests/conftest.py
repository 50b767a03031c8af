"""Fixtures — fake rendering sessions, fake capture clients, mock Redis."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from PIL import Image

from pagecapture.cache.redis import RedisStatusMirror
from pagecapture.capture.client import SCROLL_METRICS_JS
from pagecapture.capture.errors import ErrorKind
from pagecapture.capture.height import DOCUMENT_HEIGHT_JS, LOWEST_ELEMENT_JS, STRUCTURAL_JS
from pagecapture.capture.models import CaptureOptions, CaptureResult
from pagecapture.capture.session import SessionConfig


class FakeSession:
    """In-memory stand-in for a browser page that records every call."""

    def __init__(
        self,
        *,
        doc_height: int = 1000,
        viewport_height: int = 400,
        lowest: int | None = None,
        structural: int = 0,
        fail_navigations: int = 0,
        navigate_delay: float = 0.0,
        document_error: Exception | None = None,
        scroll_error: Exception | None = None,
        capture_error: Exception | None = None,
        close_error: Exception | None = None,
    ) -> None:
        self.doc_height = doc_height
        self.viewport_height = viewport_height
        self.lowest = doc_height if lowest is None else lowest
        self.structural = structural
        self.fail_navigations = fail_navigations
        self.navigate_delay = navigate_delay
        self.document_error = document_error
        self.scroll_error = scroll_error
        self.capture_error = capture_error
        self.close_error = close_error

        self.navigations: list[tuple[str, str]] = []
        self.scrolls: list[int] = []
        self.resizes: list[tuple[int, int]] = []
        self.captures: list[tuple[Path, bool]] = []
        self.closed = False

    async def navigate(self, url: str, timeout: float, wait_until: str) -> None:
        self.navigations.append((url, wait_until))
        if self.navigate_delay:
            await asyncio.sleep(self.navigate_delay)
        if len(self.navigations) <= self.fail_navigations:
            raise RuntimeError("net::ERR_TIMED_OUT")

    async def evaluate(self, script: str):
        if script == SCROLL_METRICS_JS:
            if self.scroll_error:
                raise self.scroll_error
            return [self.doc_height, self.viewport_height]
        if script == DOCUMENT_HEIGHT_JS:
            if self.document_error:
                raise self.document_error
            return self.doc_height
        if script == LOWEST_ELEMENT_JS:
            return self.lowest
        if script == STRUCTURAL_JS:
            return self.structural
        if script.startswith("window.scrollTo"):
            self.scrolls.append(int(script.rstrip(")").split(",")[1]))
            return None
        raise AssertionError(f"unexpected script: {script[:40]}")

    async def resize(self, width: int, height: int) -> None:
        self.resizes.append((width, height))

    async def capture_image(self, path: Path, full_extent: bool) -> None:
        if self.capture_error:
            raise self.capture_error
        self.captures.append((Path(path), full_extent))
        width, height = self.resizes[-1] if self.resizes else (100, 100)
        shade = (len(self.captures) * 40) % 256
        Image.new("RGB", (width, height), (shade, shade, shade)).save(path)

    async def close(self) -> None:
        self.closed = True
        if self.close_error:
            raise self.close_error


class FakeSessionFactory:
    """Session factory that hands out ``FakeSession`` objects."""

    def __init__(self, **session_kwargs) -> None:
        self._kwargs = session_kwargs
        self.sessions: list[FakeSession] = []
        self.configs: list[SessionConfig] = []

    async def __call__(self, config: SessionConfig) -> FakeSession:
        session = FakeSession(**self._kwargs)
        self.sessions.append(session)
        self.configs.append(config)
        return session


class FakeCaptureClient:
    """Capture client double: succeeds, or fails with *fail_kind*."""

    def __init__(
        self,
        fail_kind: ErrorKind | None = None,
        delay: float = 0.0,
        fail_ids: set[str] | None = None,
    ) -> None:
        self.fail_kind = fail_kind
        self.delay = delay
        self.fail_ids = fail_ids
        self.calls: list[str] = []
        self.active = 0
        self.peak = 0

    async def capture(self, item_id: str, output_path, options=None) -> CaptureResult:
        self.calls.append(item_id)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        should_fail = self.fail_kind is not None and (self.fail_ids is None or item_id in self.fail_ids)
        if should_fail:
            return CaptureResult.failure(item_id, self.fail_kind, f"{self.fail_kind.value} for {item_id}")
        return CaptureResult(item_id=item_id, success=True, output_path=Path(output_path))


@pytest.fixture
def fast_options() -> CaptureOptions:
    """Options with every wait zeroed and a small canvas."""
    return CaptureOptions(
        timeout=5.0,
        width=200,
        initial_height=400,
        wait_time=0.0,
        settle_time=0.0,
        scroll_pause=0.0,
        section_pause=0.0,
        navigation_backoff=0.0,
        height_padding=100,
    )


@pytest_asyncio.fixture
async def redis_mirror():
    """RedisStatusMirror backed by an in-memory FakeRedis instance."""
    client = FakeRedis(decode_responses=True)
    mirror = RedisStatusMirror(client, default_ttl=3600)
    yield mirror
    await client.aclose()
