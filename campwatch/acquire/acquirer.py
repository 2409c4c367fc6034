"""Page acquirer — turns a URL and an acquisition mode into a PageBundle.

One handler per ``AcquireMode``; ``fetch`` is the only place the mode is
inspected. Browser modes open a fresh context per call and always close
it, so no context outlives the strategy that opened it.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path

from playwright.async_api import Error as PlaywrightError

from campwatch.acquire.discovery import PageDiscoverer, collect_pdf_links
from campwatch.acquire.page import CapturedPage, PageBundle
from campwatch.acquire.rate_limiter import RateLimiter
from campwatch.acquire.static_fetch import StaticFetcher
from campwatch.ai_engine.engine import UNAVAILABLE, AIEngine
from campwatch.browser.layer import ActionStatus, BrowserLayer, BrowserSession
from campwatch.browser.obstruction import ObstructionType, detect_obstruction
from campwatch.config.settings import CampwatchConfig
from campwatch.config.url_policy import validate_target_url
from campwatch.extraction.models import AcquireMode, CampRecord
from campwatch.signals.emitter import SignalEmitter
from campwatch.signals.types import SignalType
from campwatch.telemetry.errors import (
    RETRYABLE_ERRORS,
    ErrorCode,
    FetchTimeout,
    NetworkError,
    emit_structured_error,
)

logger = logging.getLogger(__name__)

Handler = Callable[[str, CampRecord, "PageBundle | None"], Awaitable[PageBundle]]


class PageAcquirer:
    """Dispatches acquisitions to the static fetcher, the browser, or the LLM."""

    def __init__(
        self,
        fetcher: StaticFetcher,
        rate_limiter: RateLimiter,
        discoverer: PageDiscoverer,
        config: CampwatchConfig,
        *,
        browser: BrowserLayer | None = None,
        ai_engine: AIEngine | None = None,
        emitter: SignalEmitter | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._rate_limiter = rate_limiter
        self._discoverer = discoverer
        self._config = config
        self._browser = browser
        self._ai_engine = ai_engine
        self._emitter = emitter
        self._handlers: dict[AcquireMode, Handler] = {
            AcquireMode.STATIC_FETCH: self._static_fetch,
            AcquireMode.RENDERED: self._rendered,
            AcquireMode.ACCESSIBILITY: self._accessibility,
            AcquireMode.SCREENSHOT: self._screenshot,
            AcquireMode.LLM: self._llm,
        }

    async def fetch(
        self,
        url: str,
        mode: AcquireMode,
        *,
        entity: CampRecord,
        source: PageBundle | None = None,
    ) -> PageBundle:
        """Acquire ``url`` with ``mode``.

        Raises NetworkError or FetchTimeout for the runner to retry.
        ``source`` is the bundle of an earlier text strategy, reused by
        the LLM handler. A URL on a local or private address is refused
        with an error bundle and never requested.
        """
        verdict = validate_target_url(url)
        if not verdict.allowed:
            emit_structured_error(
                logger,
                code=ErrorCode.URL_REJECTED,
                message=verdict.reason,
                suppressed=True,
                entity_id=entity.id,
                strategy=mode.value,
                details={"url": url},
            )
            return PageBundle(url=url, mode=mode, error=f"URL rejected: {verdict.reason}")
        handler = self._handlers[mode]
        return await handler(url, entity, source)

    # --- Static ---

    async def _static_fetch(self, url: str, entity: CampRecord, source: PageBundle | None) -> PageBundle:
        await self._rate_limiter.acquire(url)
        page = await self._fetcher.fetch(url)
        bundle = PageBundle.from_pages(AcquireMode.STATIC_FETCH, [page])
        bundle.pdf_links = collect_pdf_links(page.anchors, url)
        return bundle

    # --- Browser ---

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[BrowserSession]:
        if self._browser is None:
            raise NetworkError("browser strategies are disabled for this run")
        session = await self._browser.new_session()
        try:
            yield session
        finally:
            await session.close()

    async def _load(self, session: BrowserSession, url: str) -> None:
        await self._rate_limiter.acquire(url)
        result = await session.navigate(url, timeout_ms=int(self._config.timeouts.page_load_s * 1000))
        if result.status == ActionStatus.TIMEOUT:
            raise FetchTimeout(f"Page load timed out for {url}")
        if not result.ok:
            raise NetworkError(result.detail)
        await session.settle(self._config.timeouts.settle_ms)

    async def _capture(self, session: BrowserSession, entity: CampRecord) -> CapturedPage:
        """Clear obstructions, scroll, then capture the loaded page."""
        await session.dismiss_consent()
        await session.expand_content()
        await session.scroll()
        page = await session.capture_page()

        dom = await session.capture_dom()
        obstruction = detect_obstruction(dom.html, page.text)
        if obstruction.obstruction_type == ObstructionType.HARD_BLOCK:
            if self._emitter is not None:
                await self._emitter.emit(
                    SignalType.OBSTRUCTION_DETECTED,
                    {
                        "entity_id": entity.id,
                        "url": page.url,
                        "obstruction_type": obstruction.obstruction_type.value,
                        "selector": obstruction.selector,
                    },
                )
            emit_structured_error(
                logger,
                code=ErrorCode.HARD_BLOCK_DETECTED,
                message=f"{page.url} is behind {obstruction.selector}",
                suppressed=False,
                entity_id=entity.id,
            )
            raise NetworkError(f"Hard block at {page.url}")
        return page

    async def _rendered(self, url: str, entity: CampRecord, source: PageBundle | None) -> PageBundle:
        try:
            async with self._session() as session:
                await self._load(session, url)
                main = await self._capture(session, entity)
                discovery = await self._discoverer.discover(main.url, main.anchors)

                pages = [main]
                for subpage in discovery.urls:
                    if subpage in (url, main.url) or not validate_target_url(subpage).allowed:
                        continue
                    try:
                        await self._load(session, subpage)
                        pages.append(await self._capture(session, entity))
                    except (*RETRYABLE_ERRORS, PlaywrightError) as exc:
                        emit_structured_error(
                            logger,
                            code=ErrorCode.SUBPAGE_FAILED,
                            message=str(exc),
                            suppressed=True,
                            entity_id=entity.id,
                            strategy=AcquireMode.RENDERED.value,
                            details={"url": subpage},
                        )
        except PlaywrightError as exc:
            raise NetworkError(f"Browser capture failed for {url}: {exc}") from exc

        bundle = PageBundle.from_pages(AcquireMode.RENDERED, pages)
        bundle.pdf_links = discovery.pdf_links
        logger.debug("Rendered %s: %d page(s), %d chars", url, len(pages), len(bundle.text))
        return bundle

    async def _accessibility(self, url: str, entity: CampRecord, source: PageBundle | None) -> PageBundle:
        try:
            async with self._session() as session:
                await self._load(session, url)
                text = await session.visible_text()
                tree = await session.accessibility_snapshot()
                final_url = session.page.url
        except PlaywrightError as exc:
            raise NetworkError(f"Accessibility capture failed for {url}: {exc}") from exc
        return PageBundle(
            url=final_url,
            mode=AcquireMode.ACCESSIBILITY,
            text=text,
            pages=[final_url],
            accessibility=tree,
        )

    async def _screenshot(self, url: str, entity: CampRecord, source: PageBundle | None) -> PageBundle:
        artifact_dir: Path = self._config.pipeline.resolved_artifact_dir
        try:
            async with self._session() as session:
                await self._load(session, url)
                await session.auto_scroll()
                dom = await session.capture_dom()
                path = await session.screenshot_full(artifact_dir / f"{entity.id}_{dom.dom_hash}.png")
        except PlaywrightError as exc:
            raise NetworkError(f"Screenshot failed for {url}: {exc}") from exc
        return PageBundle(
            url=dom.url,
            mode=AcquireMode.SCREENSHOT,
            title=dom.title,
            artifacts=[str(path)],
            pages=[dom.url],
        )

    # --- Semantic ---

    async def _llm(self, url: str, entity: CampRecord, source: PageBundle | None) -> PageBundle:
        if self._ai_engine is None or not await self._ai_engine.initialize():
            return PageBundle(url=url, mode=AcquireMode.LLM, error=UNAVAILABLE)

        if source is None or not source.text:
            source = await self._static_fetch(url, entity, None)

        extraction = await self._ai_engine.extract_camp_facts(
            entity, source, timeout_s=self._config.timeouts.llm_s
        )
        return PageBundle(
            url=source.url,
            mode=AcquireMode.LLM,
            text=source.text,
            title=source.title,
            structured=source.structured,
            pages=list(source.pages),
            pdf_links=list(source.pdf_links),
            facts=extraction.facts,
            error=extraction.error,
        )
