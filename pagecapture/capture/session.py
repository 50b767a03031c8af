"""Rendering sessions — the browser collaborator behind the capture client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

BASE_LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--hide-scrollbars",
    "--mute-audio",
)

LOW_MEMORY_LAUNCH_ARGS: tuple[str, ...] = (
    "--disable-accelerated-2d-canvas",
    "--disable-extensions",
    "--disable-component-extensions-with-background-pages",
    "--disable-default-apps",
    "--js-flags=--max-old-space-size=512",
    "--single-process",
    "--disable-features=site-per-process",
    "--disable-translate",
    "--disable-sync",
)


@dataclass(frozen=True)
class SessionConfig:
    """Launch parameters for one rendering session."""

    width: int
    height: int
    headless: bool = True
    low_memory: bool = False
    executable_path: str = ""


class RenderSession(Protocol):
    """Protocol for an isolated, disposable rendering session."""

    async def navigate(self, url: str, timeout: float, wait_until: str) -> None: ...

    async def evaluate(self, script: str) -> Any: ...

    async def resize(self, width: int, height: int) -> None: ...

    async def capture_image(self, path: Path, full_extent: bool) -> None: ...

    async def close(self) -> None: ...


SessionFactory = Callable[[SessionConfig], Awaitable[RenderSession]]


class PlaywrightSession:
    """A Chromium browser with a single page, owned by one capture attempt."""

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        context: BrowserContext,
        page: Page,
    ) -> None:
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._page = page

    async def navigate(self, url: str, timeout: float, wait_until: str) -> None:
        await self._page.goto(url, wait_until=wait_until, timeout=timeout * 1000)

    async def evaluate(self, script: str) -> Any:
        return await self._page.evaluate(script)

    async def resize(self, width: int, height: int) -> None:
        await self._page.set_viewport_size({"width": width, "height": height})

    async def capture_image(self, path: Path, full_extent: bool) -> None:
        await self._page.screenshot(path=str(path), full_page=full_extent, type="png")

    async def close(self) -> None:
        try:
            await self._browser.close()
        finally:
            await self._playwright.stop()


async def open_playwright_session(config: SessionConfig) -> PlaywrightSession:
    """Launch Chromium and open a page sized to *config*."""
    args = list(BASE_LAUNCH_ARGS)
    if config.low_memory:
        args.extend(LOW_MEMORY_LAUNCH_ARGS)
    args.append(f"--window-size={config.width},{config.height}")

    launch_kwargs: dict[str, Any] = {"headless": config.headless, "args": args}
    if config.executable_path:
        launch_kwargs["executable_path"] = config.executable_path

    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(**launch_kwargs)
        context = await browser.new_context(
            viewport={"width": config.width, "height": config.height},
            device_scale_factor=1,
            user_agent=DESKTOP_USER_AGENT,
            ignore_https_errors=True,
        )
        page = await context.new_page()
    except BaseException:
        await playwright.stop()
        raise

    page.on("pageerror", lambda exc: logger.debug("page error", extra={"error": str(exc)}))
    logger.debug(
        "browser launched",
        extra={
            "width": config.width,
            "height": config.height,
            "headless": config.headless,
            "low_memory": config.low_memory,
        },
    )
    return PlaywrightSession(playwright, browser, context, page)
