"""Capture client — renders one page per call and writes one PNG."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Tuple

from .errors import CaptureError, ErrorKind
from .height import detect_content_height
from .models import CaptureOptions, CaptureRequest, CaptureResult, Section, target_url
from .sections import partial_path, plan_sections, stitch_sections
from .session import RenderSession, SessionConfig, SessionFactory, open_playwright_session

logger = logging.getLogger(__name__)

Band = Tuple[Section, Path]

DEFAULT_URL_TEMPLATE = "https://app.landingsite.ai/website-preview?id={id}"

PRIMARY_WAIT_UNTIL = "networkidle"
FALLBACK_WAIT_UNTIL = "domcontentloaded"

SCROLL_METRICS_JS = "() => [document.body.scrollHeight, window.innerHeight]"


def _scroll_to(top: int) -> str:
    return f"window.scrollTo(0, {int(top)})"


class CaptureClient:
    """Captures full-page renderings, either in one shot or as stitched sections."""

    def __init__(
        self,
        open_session: SessionFactory = open_playwright_session,
        url_template: str = DEFAULT_URL_TEMPLATE,
        executable_path: str = "",
    ) -> None:
        self._open_session = open_session
        self._url_template = url_template
        self._executable_path = executable_path

    async def capture(
        self,
        item_id: str,
        output_path: str | Path,
        options: CaptureOptions | None = None,
    ) -> CaptureResult:
        """Run one capture attempt.

        Browser work is bounded by ``options.timeout``. Sectioned bands are
        stitched afterwards, once the browser is gone and outside that bound.
        Classified failures come back as a failed ``CaptureResult``; anything
        unexpected propagates to the caller after the session is torn down.
        """
        options = options or CaptureOptions()
        request = CaptureRequest(
            item_id=item_id,
            output_path=Path(output_path),
            options=options,
            url=target_url(self._url_template, item_id),
        )
        logger.info(
            "capture started",
            extra={
                "item_id": item_id,
                "url": request.url,
                "sectioned": options.sectioned,
                "timeout": options.timeout,
            },
        )
        started = time.monotonic()
        with tempfile.TemporaryDirectory(prefix="pagecapture-") as workdir:
            try:
                height, bands = await asyncio.wait_for(
                    self._run(request, Path(workdir)), timeout=options.timeout
                )
                if bands:
                    await self._stitch(request, bands, height)
            except CaptureError as exc:
                elapsed = time.monotonic() - started
                logger.warning(
                    "capture failed",
                    extra={"item_id": item_id, "kind": exc.kind.value, "error": exc.message, "elapsed": elapsed},
                )
                return CaptureResult(item_id=item_id, success=False, elapsed=elapsed, error=exc)
            except asyncio.TimeoutError:
                elapsed = time.monotonic() - started
                logger.warning(
                    "capture timed out",
                    extra={"item_id": item_id, "kind": ErrorKind.RENDER_TIMEOUT.value, "elapsed": elapsed},
                )
                return CaptureResult.failure(
                    item_id,
                    ErrorKind.RENDER_TIMEOUT,
                    f"capture exceeded {options.timeout:g}s",
                    elapsed=elapsed,
                )

        elapsed = time.monotonic() - started
        logger.info(
            "capture completed",
            extra={"item_id": item_id, "output": str(request.output_path), "height": height, "elapsed": elapsed},
        )
        return CaptureResult(
            item_id=item_id,
            success=True,
            output_path=request.output_path,
            elapsed=elapsed,
            height=height,
        )

    async def _run(self, request: CaptureRequest, workdir: Path) -> tuple[int, list[Band]]:
        """Do the browser work; returns the content height and any bands still to stitch."""
        request.output_path.parent.mkdir(parents=True, exist_ok=True)
        section_height = request.options.section_height
        if section_height is not None:
            return await self._capture_sections(request, section_height, workdir)
        return await self._capture_full_page(request), []

    @asynccontextmanager
    async def _session(self, options: CaptureOptions, height: int) -> AsyncIterator[RenderSession]:
        session = await self._open_session(
            SessionConfig(
                width=options.width,
                height=height,
                headless=options.headless,
                low_memory=options.low_memory,
                executable_path=self._executable_path,
            )
        )
        try:
            yield session
        finally:
            try:
                await session.close()
            except Exception:
                logger.warning("session close failed", exc_info=True)

    async def _capture_full_page(self, request: CaptureRequest) -> int:
        options = request.options
        async with self._session(options, options.initial_height) as session:
            await self._prepare(session, request)
            estimate = await detect_content_height(
                session,
                tolerance=options.height_tolerance,
                padding=options.height_padding,
                fallback=options.content_height or options.initial_height,
            )
            await session.resize(options.width, estimate.height)

            tmp_path = partial_path(request.output_path, "capture")
            try:
                await self._capture_image(session, tmp_path, full_extent=True)
                os.replace(tmp_path, request.output_path)
            except OSError as exc:
                raise CaptureError(ErrorKind.CAPTURE_WRITE_FAILED, f"could not write output: {exc}") from exc
            finally:
                tmp_path.unlink(missing_ok=True)
        return estimate.height

    async def _capture_sections(
        self, request: CaptureRequest, section_height: int, workdir: Path
    ) -> tuple[int, list[Band]]:
        options = request.options
        bands: list[Band] = []
        async with self._session(options, section_height) as session:
            await self._prepare(session, request)
            if options.content_height:
                total_height = options.content_height
            else:
                estimate = await detect_content_height(
                    session,
                    tolerance=options.height_tolerance,
                    padding=options.height_padding,
                    fallback=options.initial_height,
                )
                total_height = estimate.height

            sections = plan_sections(total_height, section_height)
            logger.debug(
                "capturing sections",
                extra={"item_id": request.item_id, "sections": len(sections), "total_height": total_height},
            )
            for section in sections:
                await session.resize(options.width, section.height)
                await session.evaluate(_scroll_to(section.top))
                await asyncio.sleep(options.section_pause)
                band_path = workdir / f"section-{section.index:03d}.png"
                await self._capture_image(session, band_path, full_extent=False)
                bands.append((section, band_path))
        return total_height, bands

    async def _stitch(self, request: CaptureRequest, bands: list[Band], total_height: int) -> None:
        # Runs after the session is closed so only one of browser or canvas is resident
        try:
            await asyncio.to_thread(
                stitch_sections, bands, request.options.width, total_height, request.output_path
            )
        except OSError as exc:
            raise CaptureError(ErrorKind.CAPTURE_WRITE_FAILED, f"stitching failed: {exc}") from exc

    async def _prepare(self, session: RenderSession, request: CaptureRequest) -> None:
        """Navigate, let the page settle and scroll through it to trigger lazy content."""
        options = request.options
        await self._navigate(session, request.url, options)
        await asyncio.sleep(options.wait_time)
        await self._scroll_through(session, options)
        await asyncio.sleep(options.settle_time)

    async def _navigate(self, session: RenderSession, url: str, options: CaptureOptions) -> None:
        for attempt in range(1, options.navigation_attempts + 1):
            try:
                await session.navigate(url, options.timeout, PRIMARY_WAIT_UNTIL)
                return
            except Exception as exc:
                logger.warning(
                    "navigation attempt failed",
                    extra={
                        "url": url,
                        "attempt": attempt,
                        "max_attempts": options.navigation_attempts,
                        "wait_until": PRIMARY_WAIT_UNTIL,
                        "error": str(exc),
                    },
                )
                if attempt < options.navigation_attempts:
                    await asyncio.sleep(options.navigation_backoff)

        try:
            await session.navigate(url, options.timeout, FALLBACK_WAIT_UNTIL)
        except Exception as exc:
            raise CaptureError(ErrorKind.NAVIGATION_FAILED, f"navigation to {url} failed: {exc}") from exc
        logger.info("navigation succeeded with fallback readiness", extra={"url": url})

    async def _scroll_through(self, session: RenderSession, options: CaptureOptions) -> None:
        for _ in range(options.scroll_passes):
            total_height, viewport_height = await session.evaluate(SCROLL_METRICS_JS)
            step = max(int(viewport_height) // 2, 1)
            for top in range(0, int(total_height), step):
                await session.evaluate(_scroll_to(top))
                await asyncio.sleep(options.scroll_pause)
        await session.evaluate(_scroll_to(0))

    async def _capture_image(self, session: RenderSession, path: Path, full_extent: bool) -> None:
        try:
            await session.capture_image(path, full_extent=full_extent)
        except Exception as exc:
            raise CaptureError(ErrorKind.CAPTURE_WRITE_FAILED, f"screenshot failed: {exc}") from exc
