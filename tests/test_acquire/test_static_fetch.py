"""Tests for the static HTTP fetcher."""

import httpx
import pytest

from campwatch.acquire.static_fetch import StaticFetcher, html_to_page
from campwatch.telemetry.errors import FetchTimeout, NetworkError

ZOO_HTML = """
<html>
  <head>
    <title>Zoo Camp</title>
    <script type="application/ld+json">{"@type": "Event", "name": "Explorer Week"}</script>
    <style>p { color: red; }</style>
  </head>
  <body>
    <h1>Zoo Camp</h1>
    <p>$350/week</p>
    <script>var tracking = 1;</script>
    <table>
      <tr><th>Option</th><th>Price</th></tr>
      <tr><td>Members</td><td>$300</td></tr>
    </table>
    <a href="/register" aria-label="Register for camp">Register</a>
  </body>
</html>
"""


def _fetcher(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StaticFetcher(client)


class TestHtmlToPage:
    def test_visible_text_only(self):
        page = html_to_page(ZOO_HTML, "https://zoo.example")
        assert "$350/week" in page.text
        assert "tracking" not in page.text
        assert "color" not in page.text
        assert page.title == "Zoo Camp"

    def test_structured_fragments(self):
        page = html_to_page(ZOO_HTML, "https://zoo.example")
        assert page.structured.json_ld == [{"@type": "Event", "name": "Explorer Week"}]
        assert page.structured.tables == [[["Option", "Price"], ["Members", "$300"]]]

    def test_anchors(self):
        page = html_to_page(ZOO_HTML, "https://zoo.example")
        [anchor] = page.anchors
        assert anchor.href == "/register"
        assert anchor.text == "Register"
        assert anchor.aria_label == "Register for camp"


class TestStaticFetcher:
    @pytest.mark.asyncio
    async def test_fetch(self):
        fetcher = _fetcher(lambda request: httpx.Response(200, text=ZOO_HTML))
        page = await fetcher.fetch("https://zoo.example")
        assert page.url == "https://zoo.example"
        assert "$350/week" in page.text
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        fetcher = _fetcher(lambda request: httpx.Response(503))
        with pytest.raises(NetworkError, match="HTTP 503"):
            await fetcher.fetch("https://zoo.example")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        fetcher = _fetcher(handler)
        with pytest.raises(FetchTimeout):
            await fetcher.get_text("https://zoo.example")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        fetcher = _fetcher(handler)
        with pytest.raises(NetworkError, match="failed"):
            await fetcher.get_text("https://zoo.example")
