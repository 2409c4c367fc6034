"""Browser Layer — Playwright-based headless browser used by the page acquirer.

The Browser Layer has no decision-making authority. It renders pages,
executes interactions, and returns captured page state. One shared
browser is launched per run; every entity task gets its own context.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from campwatch.acquire.page import Anchor, CapturedPage, parse_json_ld
from campwatch.browser.obstruction import (
    CONSENT_SELECTORS,
    CONTENT_REVEAL_SELECTORS,
    MAX_REVEAL_CLICKS_PER_SELECTOR,
)
from campwatch.config.settings import BrowserConfig
from campwatch.extraction.structured import StructuredFragments
from campwatch.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

_CAPTURE_JS = """() => {
    const cellText = c => (c.innerText || c.textContent || '').trim();
    const jsonLd = Array.from(document.querySelectorAll('script[type="application/ld+json"]'))
        .map(s => s.textContent || '');
    const tables = Array.from(document.querySelectorAll('table')).map(t =>
        Array.from(t.querySelectorAll('tr'))
            .map(tr => Array.from(tr.querySelectorAll('th, td')).map(cellText))
            .filter(row => row.some(c => c)));
    const anchors = Array.from(document.querySelectorAll('a[href]')).map(a => ({
        href: a.href,
        text: (a.innerText || '').trim(),
        aria: a.getAttribute('aria-label') || '',
    }));
    return {
        title: document.title,
        text: document.body ? document.body.innerText : '',
        jsonLd,
        tables,
        anchors,
    };
}"""

_TREE_WALKER_JS = """() => {
    const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT, {
        acceptNode: node => {
            const parent = node.parentElement;
            if (!parent) return NodeFilter.FILTER_REJECT;
            if (['SCRIPT', 'STYLE', 'NOSCRIPT'].includes(parent.tagName)) {
                return NodeFilter.FILTER_REJECT;
            }
            const style = window.getComputedStyle(parent);
            if (style.display === 'none' || style.visibility === 'hidden') {
                return NodeFilter.FILTER_REJECT;
            }
            return NodeFilter.FILTER_ACCEPT;
        },
    });
    const texts = [];
    let node;
    while ((node = walker.nextNode())) {
        const text = node.textContent.trim();
        if (text) texts.push(text);
    }
    return texts.join(' ');
}"""

_AUTO_SCROLL_JS = """async (maxMs) => {
    await new Promise(resolve => {
        let total = 0;
        const timer = setInterval(() => {
            window.scrollBy(0, 400);
            total += 400;
            if (total >= document.body.scrollHeight) {
                clearInterval(timer);
                resolve();
            }
        }, 100);
        setTimeout(() => { clearInterval(timer); resolve(); }, maxMs);
    });
    window.scrollTo(0, 0);
}"""

_CLEAN_DOM_JS = """() => {
    const clone = document.documentElement.cloneNode(true);
    clone.querySelectorAll('script, style, noscript, link[rel=stylesheet]')
        .forEach(el => el.remove());
    return clone.outerHTML;
}"""


class ActionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass
class ActionResult:
    """Result of a browser action."""

    status: ActionStatus
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ActionStatus.SUCCESS


@dataclass
class DOMSnapshot:
    """Cleaned DOM snapshot from the browser."""

    html: str
    url: str
    title: str
    dom_hash: str

    @staticmethod
    def compute_hash(html: str) -> str:
        return hashlib.sha256(html.encode()).hexdigest()[:16]


class BrowserSession:
    """One isolated browser context and page, owned by a single entity task."""

    def __init__(self, context: BrowserContext, page: Page, config: BrowserConfig) -> None:
        self._context = context
        self._page = page
        self._config = config

    @property
    def page(self) -> Page:
        return self._page

    async def close(self) -> None:
        try:
            await self._context.close()
        except PlaywrightError as e:
            emit_structured_error(
                logger,
                code=ErrorCode.BROWSER_CLEANUP_FAILED,
                message=str(e),
                suppressed=True,
            )

    async def navigate(self, url: str, timeout_ms: int = 30000) -> ActionResult:
        """Navigate to a URL and wait for ``domcontentloaded``."""
        try:
            response = await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            return ActionResult(status=ActionStatus.TIMEOUT, detail=str(e))
        except PlaywrightError as e:
            return ActionResult(status=ActionStatus.FAILURE, detail=str(e))
        if response is not None and response.status >= 400:
            return ActionResult(status=ActionStatus.FAILURE, detail=f"HTTP {response.status} for {url}")
        return ActionResult(status=ActionStatus.SUCCESS, detail=f"Navigated to {url}")

    async def settle(self, ms: int) -> None:
        if ms > 0:
            await self._page.wait_for_timeout(ms)

    async def scroll(self, steps: int | None = None, pixels: int | None = None) -> ActionResult:
        """Wheel-scroll the viewport to trigger lazy loads."""
        steps = self._config.scroll_steps if steps is None else steps
        pixels = self._config.scroll_px if pixels is None else pixels
        try:
            for _ in range(steps):
                await self._page.mouse.wheel(0, pixels)
                await self._page.wait_for_timeout(500)
        except PlaywrightError as e:
            return ActionResult(status=ActionStatus.FAILURE, detail=str(e))
        return ActionResult(status=ActionStatus.SUCCESS, detail=f"Scrolled {steps}x{pixels}px")

    async def auto_scroll(self, max_ms: int = 3000) -> ActionResult:
        """Scroll to the bottom in small steps, then return to the top."""
        try:
            await self._page.evaluate(_AUTO_SCROLL_JS, max_ms)
        except PlaywrightError as e:
            return ActionResult(status=ActionStatus.FAILURE, detail=str(e))
        return ActionResult(status=ActionStatus.SUCCESS, detail="Auto-scrolled")

    async def dismiss_consent(self) -> str | None:
        """Click the first visible consent button; returns its selector."""
        for selector in CONSENT_SELECTORS:
            try:
                locator = self._page.locator(selector).first
                if await locator.count() and await locator.is_visible():
                    await locator.click(timeout=2000)
                    logger.debug("Dismissed consent banner via %s", selector)
                    return selector
            except PlaywrightError:
                continue
        return None

    async def expand_content(self) -> int:
        """Open tabs, accordions, and FAQ toggles; returns the click count."""
        clicks = 0
        for selector in CONTENT_REVEAL_SELECTORS:
            try:
                handles = await self._page.query_selector_all(selector)
            except PlaywrightError:
                continue
            for handle in handles[:MAX_REVEAL_CLICKS_PER_SELECTOR]:
                try:
                    await handle.click(timeout=1000)
                    await self._page.wait_for_timeout(200)
                    clicks += 1
                except PlaywrightError:
                    continue
        return clicks

    async def capture_dom(self) -> DOMSnapshot:
        """Capture the DOM with scripts and styles removed."""
        html = await self._page.evaluate(_CLEAN_DOM_JS)
        return DOMSnapshot(
            html=html,
            url=self._page.url,
            title=await self._page.title(),
            dom_hash=DOMSnapshot.compute_hash(html),
        )

    async def capture_page(self) -> CapturedPage:
        """Visible text, JSON-LD blocks, tables, and anchors of the current page."""
        data: dict[str, Any] = await self._page.evaluate(_CAPTURE_JS)
        anchors = [
            Anchor(href=a.get("href", ""), text=a.get("text", ""), aria_label=a.get("aria", ""))
            for a in data.get("anchors", [])
            if a.get("href")
        ]
        return CapturedPage(
            url=self._page.url,
            title=data.get("title", ""),
            text=data.get("text", ""),
            structured=StructuredFragments(
                json_ld=parse_json_ld(data.get("jsonLd", [])),
                tables=[rows for rows in data.get("tables", []) if rows],
            ),
            anchors=anchors,
        )

    async def visible_text(self) -> str:
        """Text of visible nodes only, collected with a DOM TreeWalker."""
        return await self._page.evaluate(_TREE_WALKER_JS)

    async def accessibility_snapshot(self) -> str | None:
        """ARIA snapshot of the page body, or None when the browser has none."""
        try:
            return await self._page.locator("body").aria_snapshot()
        except (PlaywrightError, AttributeError) as e:
            logger.debug("Accessibility snapshot unavailable: %s", e)
            return None

    async def screenshot_full(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        await self._page.screenshot(path=str(path), full_page=True, type="png")
        return path


class BrowserLayer:
    """Owns the Playwright driver and the shared browser process.

    Contract:
    - ``start`` launches one browser for the run
    - ``new_session`` opens an isolated context per entity task
    - ``stop`` releases every resource; cleanup errors are logged, not raised
    """

    def __init__(self, config: BrowserConfig | None = None) -> None:
        self._config = config or BrowserConfig()
        self._playwright: Any = None
        self._browser: Browser | None = None
        self._start_lock = asyncio.Lock()

    @property
    def started(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        async with self._start_lock:
            if self._browser is not None:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self._config.headless)
        logger.info("Browser started (headless=%s)", self._config.headless)

    async def stop(self) -> None:
        try:
            if self._browser:
                await self._browser.close()
            if self._playwright:
                await self._playwright.stop()
        except PlaywrightError as e:
            emit_structured_error(
                logger,
                code=ErrorCode.BROWSER_CLEANUP_FAILED,
                message=str(e),
                suppressed=True,
            )
        finally:
            self._browser = None
            self._playwright = None

    async def new_session(self) -> BrowserSession:
        """Create an isolated context; starts the browser on first use."""
        if self._browser is None:
            await self.start()
        context = await self._browser.new_context(
            viewport={
                "width": self._config.viewport_width,
                "height": self._config.viewport_height,
            },
            user_agent=self._config.user_agent,
            locale=self._config.locale,
        )
        page = await context.new_page()
        return BrowserSession(context, page, self._config)

    async def __aenter__(self) -> BrowserLayer:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
