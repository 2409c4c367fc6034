"""Picks the subpages worth capturing for one camp site.

Anchors are scored against keyword lexicons for five categories. The best
link per category is kept, then sitemap URLs fill any remaining slots.
PDF links are collected and classified separately.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from bs4 import BeautifulSoup

from campwatch.acquire.page import Anchor
from campwatch.acquire.rate_limiter import RateLimiter
from campwatch.acquire.static_fetch import StaticFetcher
from campwatch.config.settings import DiscoveryConfig
from campwatch.config.url_policy import absolutize, is_crawlable_link, same_site
from campwatch.extraction.models import PdfLink
from campwatch.telemetry.errors import RETRYABLE_ERRORS

logger = logging.getLogger(__name__)

LEXICONS: dict[str, tuple[str, ...]] = {
    "pricing": (
        "price", "pricing", "cost", "fee", "rate", "tuition", "payment", "pay",
        "how much", "investment", "scholarship", "financial", "afford", "$",
    ),
    "schedule": (
        "schedule", "session", "date", "calendar", "week", "summer 2026", "summer 2025",
        "summer camp", "when", "june", "july", "august", "availability",
    ),
    "faq": (
        "faq", "question", "info", "parent", "detail", "about", "learn more", "what to",
        "prepare", "expect", "policy",
    ),
    "register": (
        "register", "sign up", "enroll", "apply", "book", "reserve", "registration",
        "signup", "join", "get started",
    ),
    "camps": ("camp", "program", "summer", "youth", "kids", "children", "activities", "offerings"),
}
CATEGORY_PRIORITY = ("pricing", "camps", "schedule", "register", "faq")

PDF_HREF = re.compile(r"\.pdf(?:$|[?#])", re.IGNORECASE)
PDF_KINDS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("handbook", re.compile(r"handbook|parent|guide|manual", re.IGNORECASE)),
    ("schedule", re.compile(r"schedule|calendar|dates", re.IGNORECASE)),
    ("registration", re.compile(r"registration|form|application", re.IGNORECASE)),
    ("policy", re.compile(r"policy|waiver|agreement", re.IGNORECASE)),
    ("packing-list", re.compile(r"packing|supply|list", re.IGNORECASE)),
)
SITEMAP_LEXICON = re.compile(r"camp|summer|program|session|register|schedule|faq|policy", re.IGNORECASE)


@dataclass
class DiscoveryResult:
    urls: list[str] = field(default_factory=list)
    pdf_links: list[PdfLink] = field(default_factory=list)


def is_pdf(href: str) -> bool:
    return bool(PDF_HREF.search(href))


def score_anchor(anchor: Anchor, keywords: Iterable[str]) -> int:
    label = f"{anchor.text} {anchor.aria_label}".lower()
    href = anchor.href.lower()
    score = 0
    for keyword in keywords:
        if keyword in label:
            score += 2
        if keyword.replace(" ", "") in href:
            score += 1
        if keyword.replace(" ", "-") in href:
            score += 1
    return score


def rank_links(anchors: Iterable[Anchor], base_url: str) -> dict[str, str]:
    """Best same-site href per category (first seen wins ties)."""
    best: dict[str, tuple[int, str]] = {}
    for anchor in anchors:
        url = absolutize(anchor.href, base_url)
        if is_pdf(url) or not is_crawlable_link(url, base_url):
            continue
        for category, keywords in LEXICONS.items():
            score = score_anchor(anchor, keywords)
            if score > 0 and score > best.get(category, (0, ""))[0]:
                best[category] = (score, url)
    return {category: url for category, (_, url) in best.items()}


def classify_pdf(href: str, text: str = "") -> str:
    haystack = f"{href} {text}"
    for kind, pattern in PDF_KINDS:
        if pattern.search(haystack):
            return kind
    return "other"


def collect_pdf_links(anchors: Iterable[Anchor], base_url: str) -> list[PdfLink]:
    links: list[PdfLink] = []
    seen: set[str] = set()
    for anchor in anchors:
        url = absolutize(anchor.href, base_url)
        if not is_pdf(url) or url in seen:
            continue
        seen.add(url)
        links.append(PdfLink(url=url, text=anchor.text, kind=classify_pdf(url, anchor.text)))
    return links


def parse_sitemap(xml: str, base_url: str, limit: int = 10) -> list[str]:
    """``<loc>`` entries on the camp's host that look camp-related."""
    soup = BeautifulSoup(xml, "html.parser")
    urls: list[str] = []
    for loc in soup.find_all("loc"):
        url = loc.get_text(strip=True)
        if not url or url in urls or is_pdf(url):
            continue
        if same_site(url, base_url) and SITEMAP_LEXICON.search(url):
            urls.append(url)
            if len(urls) >= limit:
                break
    return urls


def select_urls(
    main_url: str,
    category_links: dict[str, str],
    sitemap_urls: Iterable[str],
    max_pages: int = 5,
) -> list[str]:
    ordered = [main_url]
    ordered.extend(category_links[c] for c in CATEGORY_PRIORITY if c in category_links)
    ordered.extend(sitemap_urls)

    selected: list[str] = []
    for url in ordered:
        if url not in selected and not is_pdf(url):
            selected.append(url)
        if len(selected) >= max_pages:
            break
    return selected


class PageDiscoverer:
    """Ranks a loaded page's anchors and mines the site's sitemap."""

    def __init__(
        self,
        fetcher: StaticFetcher,
        rate_limiter: RateLimiter,
        config: DiscoveryConfig | None = None,
        *,
        sitemap_timeout_s: float = 5,
    ) -> None:
        self._fetcher = fetcher
        self._rate_limiter = rate_limiter
        self._config = config or DiscoveryConfig()
        self._sitemap_timeout_s = sitemap_timeout_s

    async def sitemap_urls(self, base_url: str) -> list[str]:
        sitemap = absolutize("/sitemap.xml", base_url)
        await self._rate_limiter.acquire(sitemap)
        try:
            xml = await self._fetcher.get_text(sitemap, timeout_s=self._sitemap_timeout_s)
        except RETRYABLE_ERRORS as exc:
            logger.debug("No usable sitemap at %s: %s", sitemap, exc)
            return []
        return parse_sitemap(xml, base_url, self._config.max_sitemap_urls)

    async def discover(self, main_url: str, anchors: list[Anchor]) -> DiscoveryResult:
        category_links = rank_links(anchors, main_url)
        sitemap = await self.sitemap_urls(main_url)
        urls = select_urls(main_url, category_links, sitemap, self._config.max_pages)
        logger.debug(
            "Discovered %d page(s) for %s (categories: %s)",
            len(urls),
            main_url,
            ",".join(c for c in CATEGORY_PRIORITY if c in category_links) or "none",
        )
        return DiscoveryResult(urls=urls, pdf_links=collect_pdf_links(anchors, main_url))
