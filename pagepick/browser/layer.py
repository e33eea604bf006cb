"""Browser Layer — Playwright-based browser that renders the page being worked on.

The Browser Layer has no decision-making authority. It loads pages, scrolls
lazy lists into view, and hands a static ``PageDocument`` copy of the DOM to
the extraction engine.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from pagepick.config.settings import BrowserConfig
from pagepick.dom.document import COMPUTED_BACKGROUND_ATTR, COMPUTED_DISPLAY_ATTR, PageDocument
from pagepick.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

# Live computed display and background-image are stamped onto the clone
# before scripts are dropped; clone and live tree share element order.
_CAPTURE_SCRIPT = (
    """() => {
    const root = document.documentElement;
    const live = [root, ...root.querySelectorAll('*')];
    const clone = root.cloneNode(true);
    const copies = [clone, ...clone.querySelectorAll('*')];
    live.forEach((el, i) => {
        const style = window.getComputedStyle(el);
        copies[i].setAttribute('__DISPLAY_ATTR__', style.display);
        copies[i].setAttribute('__BACKGROUND_ATTR__', style.backgroundImage);
    });
    clone.querySelectorAll('script, noscript').forEach(el => el.remove());
    return clone.outerHTML;
}"""
    .replace("__DISPLAY_ATTR__", COMPUTED_DISPLAY_ATTR)
    .replace("__BACKGROUND_ATTR__", COMPUTED_BACKGROUND_ATTR)
)


class ActionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass
class ActionResult:
    """Result of a browser action."""

    status: ActionStatus
    detail: str = ""


def snapshot_hash(html: str) -> str:
    return hashlib.sha256(html.encode()).hexdigest()[:16]


class BrowserLayer:
    """Playwright-based browser layer.

    Contract:
    - Navigates only when asked to
    - Returns typed results (PageDocument, ActionResult)
    - Never raises from navigation; failures come back as ``ActionResult``
    """

    def __init__(self, config: BrowserConfig | None = None) -> None:
        self._config = config or BrowserConfig()
        self._playwright: Any = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page | None:
        return self._page

    @property
    def is_started(self) -> bool:
        return self._page is not None

    async def start(self) -> None:
        """Launch browser and create an isolated context."""
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._config.headless,
        )
        self._context = await self._browser.new_context(
            viewport={
                "width": self._config.viewport_width,
                "height": self._config.viewport_height,
            },
            user_agent=self._config.user_agent,
            locale=self._config.locale,
        )
        self._page = await self._context.new_page()
        logger.info("Browser started (headless=%s)", self._config.headless)

    async def stop(self) -> None:
        """Clean up browser resources."""
        if self._context:
            await self._context.close()
            self._context = None
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        self._page = None

    async def navigate(self, url: str) -> ActionResult:
        """Navigate to a URL and wait for the DOM to be ready."""
        if not self._page:
            return ActionResult(status=ActionStatus.FAILURE, detail="Browser not started")
        try:
            await self._page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self._config.navigation_timeout_ms,
            )
            return ActionResult(status=ActionStatus.SUCCESS, detail=f"Navigated to {url}")
        except Exception as e:
            return ActionResult(status=ActionStatus.FAILURE, detail=str(e))

    async def scroll_to_end(self, settle_ms: int = 500) -> ActionResult:
        """Scroll to the bottom so lazy-loaded cards are in the DOM before capture."""
        if not self._page:
            return ActionResult(status=ActionStatus.FAILURE, detail="Browser not started")
        try:
            await self._page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
            await self._page.wait_for_timeout(settle_ms)
            return ActionResult(status=ActionStatus.SUCCESS, detail="Scrolled to end")
        except Exception as e:
            return ActionResult(status=ActionStatus.FAILURE, detail=str(e))

    async def capture_page(self) -> PageDocument | None:
        """Capture the live DOM as a ``PageDocument`` for the extraction engine."""
        if not self._page:
            return None
        try:
            html = await self._page.evaluate(_CAPTURE_SCRIPT)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.BROWSER_CAPTURE_FAILED,
                message=str(exc),
                suppressed=True,
                page_url=self._page.url,
            )
            return None

        url = self._page.url
        logger.info("Captured %s (%s)", url, snapshot_hash(html))
        return PageDocument.from_html(html, url=url)
