"""Page capture types shared by the static fetcher, browser layer, and acquirer."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from campwatch.extraction.models import AcquireMode, CanonicalFacts, PdfLink
from campwatch.extraction.structured import StructuredFragments

logger = logging.getLogger(__name__)

PAGE_MARKER = "=== PAGE: {url} ==="


@dataclass(frozen=True)
class Anchor:
    href: str
    text: str = ""
    aria_label: str = ""


@dataclass
class CapturedPage:
    """Everything captured from one loaded page."""

    url: str
    title: str = ""
    text: str = ""
    structured: StructuredFragments = field(default_factory=StructuredFragments)
    anchors: list[Anchor] = field(default_factory=list)


@dataclass
class PageBundle:
    """Result of one acquisition: text plus structured fragments for a camp."""

    url: str
    mode: AcquireMode
    text: str = ""
    title: str = ""
    structured: StructuredFragments = field(default_factory=StructuredFragments)
    artifacts: list[str] = field(default_factory=list)
    pages: list[str] = field(default_factory=list)
    pdf_links: list[PdfLink] = field(default_factory=list)
    accessibility: str | None = None
    facts: CanonicalFacts | None = None
    error: str | None = None

    @classmethod
    def from_pages(cls, mode: AcquireMode, pages: list[CapturedPage]) -> PageBundle:
        """Concatenate captured pages; more than one page gets boundary markers."""
        if not pages:
            raise ValueError("from_pages needs at least one page")
        structured = StructuredFragments()
        for page in pages:
            structured.extend(page.structured)
        if len(pages) == 1:
            text = pages[0].text
        else:
            text = "\n\n".join(
                f"{PAGE_MARKER.format(url=page.url)}\n{page.text}" for page in pages
            )
        return cls(
            url=pages[0].url,
            mode=mode,
            text=text,
            title=pages[0].title,
            structured=structured,
            pages=[page.url for page in pages],
        )


def parse_json_ld(bodies: list[str]) -> list[dict[str, Any]]:
    """Parse JSON-LD script bodies; invalid entries are dropped."""
    blocks: list[dict[str, Any]] = []
    for body in bodies:
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, TypeError):
            logger.debug("Dropping invalid JSON-LD block")
            continue
        if isinstance(data, dict):
            blocks.append(data)
        elif isinstance(data, list):
            blocks.extend(item for item in data if isinstance(item, dict))
    return blocks
