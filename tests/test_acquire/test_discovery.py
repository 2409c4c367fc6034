"""Tests for subpage discovery and PDF classification."""

import httpx
import pytest

from campwatch.acquire.discovery import (
    PageDiscoverer,
    classify_pdf,
    collect_pdf_links,
    parse_sitemap,
    rank_links,
    select_urls,
)
from campwatch.acquire.page import Anchor
from campwatch.acquire.rate_limiter import RateLimiter
from campwatch.acquire.static_fetch import StaticFetcher
from campwatch.config.settings import RateLimitConfig

BASE = "https://zoo.example/camp"

ANCHORS = [
    Anchor(href="/pricing", text="Tuition & Fees"),
    Anchor(href="https://www.facebook.com/zoo", text="Summer camp on Facebook"),
    Anchor(href="/files/parent-handbook.pdf", text="Parent Handbook"),
    Anchor(href="/register", text="Register now"),
    Anchor(href="/summer-camps", text="Summer Camps"),
]

SITEMAP = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://zoo.example/summer/schedule</loc></url>
  <url><loc>https://other.example/camp</loc></url>
  <url><loc>https://zoo.example/about-us</loc></url>
  <url><loc>https://zoo.example/files/camp-dates.pdf</loc></url>
</urlset>
"""


async def _no_sleep(seconds):
    return None


def _discoverer(handler):
    fetcher = StaticFetcher(httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    limiter = RateLimiter(RateLimitConfig(base_delay_ms=0), sleep=_no_sleep)
    return PageDiscoverer(fetcher, limiter)


class TestRanking:
    def test_best_link_per_category(self):
        links = rank_links(ANCHORS, BASE)
        assert links["pricing"] == "https://zoo.example/pricing"
        assert links["register"] == "https://zoo.example/register"
        assert links["camps"] == "https://zoo.example/summer-camps"
        assert all("facebook" not in url for url in links.values())
        assert all(not url.endswith(".pdf") for url in links.values())

    def test_select_urls_dedupes_and_caps(self):
        urls = select_urls(
            BASE,
            {"pricing": "https://zoo.example/pricing", "schedule": "https://zoo.example/pricing"},
            ["https://zoo.example/a", "https://zoo.example/b", "https://zoo.example/c", "https://zoo.example/d"],
            max_pages=4,
        )
        assert urls == [
            BASE,
            "https://zoo.example/pricing",
            "https://zoo.example/a",
            "https://zoo.example/b",
        ]


class TestPdfLinks:
    def test_collect_and_classify(self):
        [link] = collect_pdf_links(ANCHORS, BASE)
        assert link.url == "https://zoo.example/files/parent-handbook.pdf"
        assert link.kind == "handbook"

    def test_classify_kinds(self):
        assert classify_pdf("/docs/2026-calendar.pdf") == "schedule"
        assert classify_pdf("/docs/waiver.pdf") == "policy"
        assert classify_pdf("/docs/flyer.pdf") == "other"


class TestSitemap:
    def test_parse_keeps_same_site_camp_urls(self):
        assert parse_sitemap(SITEMAP, BASE) == ["https://zoo.example/summer/schedule"]

    @pytest.mark.asyncio
    async def test_discover(self):
        def handler(request):
            assert request.url.path == "/sitemap.xml"
            return httpx.Response(200, text=SITEMAP)

        result = await _discoverer(handler).discover(BASE, ANCHORS)
        assert result.urls == [
            BASE,
            "https://zoo.example/pricing",
            "https://zoo.example/summer-camps",
            "https://zoo.example/register",
            "https://zoo.example/summer/schedule",
        ]
        assert [link.kind for link in result.pdf_links] == ["handbook"]

    @pytest.mark.asyncio
    async def test_missing_sitemap(self):
        discoverer = _discoverer(lambda request: httpx.Response(404))
        assert await discoverer.sitemap_urls(BASE) == []
