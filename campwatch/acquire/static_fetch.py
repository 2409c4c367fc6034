"""Static fetch: a plain HTTP GET with no JavaScript execution."""

from __future__ import annotations

import logging

import httpx
from bs4 import BeautifulSoup

from campwatch.acquire.page import Anchor, CapturedPage, parse_json_ld
from campwatch.config.settings import DESKTOP_USER_AGENT
from campwatch.extraction.structured import StructuredFragments
from campwatch.telemetry.errors import FetchTimeout, NetworkError

logger = logging.getLogger(__name__)

STRIPPED_TAGS = ("script", "style", "noscript")


def html_to_page(html: str, url: str) -> CapturedPage:
    """Turn raw HTML into visible text, JSON-LD blocks, tables, and anchors."""
    soup = BeautifulSoup(html, "html.parser")

    json_ld = parse_json_ld(
        [tag.string or tag.get_text() for tag in soup.find_all("script", type="application/ld+json")]
    )

    tables = []
    for table in soup.find_all("table"):
        rows = []
        for tr in table.find_all("tr"):
            cells = [cell.get_text(" ", strip=True) for cell in tr.find_all(["td", "th"])]
            if any(cells):
                rows.append(cells)
        if rows:
            tables.append(rows)

    anchors = [
        Anchor(
            href=a["href"],
            text=a.get_text(" ", strip=True),
            aria_label=a.get("aria-label", "") or "",
        )
        for a in soup.find_all("a", href=True)
    ]

    title = soup.title.get_text(strip=True) if soup.title else ""

    for tag in soup(STRIPPED_TAGS):
        tag.decompose()
    body = soup.body or soup
    text = "\n".join(body.stripped_strings)

    return CapturedPage(
        url=url,
        title=title,
        text=text,
        structured=StructuredFragments(json_ld=json_ld, tables=tables),
        anchors=anchors,
    )


class StaticFetcher:
    """Async HTTP client wrapper that maps transport failures to campwatch errors."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout_s: float = 20,
        user_agent: str = DESKTOP_USER_AGENT,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        )
        self._timeout_s = timeout_s

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> StaticFetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def get_text(self, url: str, timeout_s: float | None = None) -> str:
        """GET ``url`` and return the body; raises NetworkError or FetchTimeout."""
        try:
            response = await self._client.get(url, timeout=timeout_s or self._timeout_s)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise FetchTimeout(f"Timed out fetching {url}") from exc
        except httpx.HTTPStatusError as exc:
            raise NetworkError(f"HTTP {exc.response.status_code} for {url}") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Request to {url} failed: {exc}") from exc
        return response.text

    async def fetch(self, url: str) -> CapturedPage:
        html = await self.get_text(url)
        page = html_to_page(html, url)
        logger.debug("Static fetch %s: %d chars", url, len(page.text))
        return page
