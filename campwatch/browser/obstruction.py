"""Heuristic obstruction detection — DOM pattern matching on captured HTML.

Consent banners are dismissed and collapsed content is expanded before
capture. Hard blocks (CAPTCHA, login walls) are only reported.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

# A hard-block marker on a page with this much visible text is treated as an
# embedded widget (e.g. a contact-form CAPTCHA) rather than a wall.
HARD_BLOCK_MAX_TEXT = 500


class ObstructionType(str, Enum):
    CONSENT_GATE = "CONSENT_GATE"
    CONTENT_REVEAL = "CONTENT_REVEAL"
    HARD_BLOCK = "HARD_BLOCK"
    NONE = "NONE"


@dataclass
class ObstructionResult:
    """Result of obstruction detection."""

    obstruction_type: ObstructionType
    confidence: float
    selector: str | None = None


# Known cookie/consent banner selectors (common patterns)
CONSENT_SELECTORS = [
    "#onetrust-accept-btn-handler",
    ".onetrust-accept-btn-handler",
    "#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll",
    '[id*="cookie"] [class*="accept"]',
    '[id*="consent"] [class*="accept"]',
    '[class*="cookie-banner"] button',
    '[class*="cookie-consent"] button',
    'button[class*="accept-cookie"]',
    'button[class*="cookie-accept"]',
]

HARD_BLOCK_INDICATORS = [
    '[class*="captcha"]',
    '[id*="captcha"]',
    'iframe[src*="recaptcha"]',
    'iframe[src*="hcaptcha"]',
    '[class*="login-wall"]',
    '[class*="paywall"]',
    '[id*="login-gate"]',
]

# Tabs, accordions, and FAQ toggles hiding schedule or pricing text.
CONTENT_REVEAL_SELECTORS = [
    '[role="tab"]:not([aria-selected="true"])',
    ".accordion-header:not(.active)",
    ".faq-question",
    ".toggle-content",
    "details:not([open]) > summary",
    '[data-toggle="collapse"]',
]
MAX_REVEAL_CLICKS_PER_SELECTOR = 5


def _selector_to_html_pattern(selector: str) -> str:
    """Normalize a CSS selector to a substring that can be found in raw HTML.

    - #id            -> id="id"
    - .class         -> class (partial, for substring matching)
    - [attr*="val"]  -> val
    - [attr="val"]   -> attr="val"
    - tag:pseudo     -> <tag
    """
    s = selector.lower().strip()
    if s.startswith("#"):
        return f'id="{s[1:]}"'
    if s.startswith("."):
        return s[1:].split(":")[0]
    tag = re.match(r"[a-z]*", s).group(0)
    rest = s[len(tag):]
    if rest.startswith("["):
        attribute = rest[1:].split("]")[0]
        if "*=" in attribute:
            return attribute.split("*=")[-1].strip("\"'")
        return attribute
    return f"<{tag}"


def detect_obstruction(html: str, visible_text: str | None = None) -> ObstructionResult:
    """Classify the most severe obstruction present in ``html``.

    When ``visible_text`` is given, a hard-block marker only counts if the
    page shows little text of its own.
    """
    html_lower = html.lower()

    sparse = visible_text is None or len(visible_text.strip()) < HARD_BLOCK_MAX_TEXT
    if sparse:
        for indicator in HARD_BLOCK_INDICATORS:
            if _selector_to_html_pattern(indicator) in html_lower:
                return ObstructionResult(
                    obstruction_type=ObstructionType.HARD_BLOCK,
                    confidence=0.8,
                    selector=indicator,
                )

    for selector in CONSENT_SELECTORS:
        if _selector_to_html_pattern(selector) in html_lower:
            return ObstructionResult(
                obstruction_type=ObstructionType.CONSENT_GATE,
                confidence=0.7,
                selector=selector,
            )

    for selector in CONTENT_REVEAL_SELECTORS:
        if _selector_to_html_pattern(selector) in html_lower:
            return ObstructionResult(
                obstruction_type=ObstructionType.CONTENT_REVEAL,
                confidence=0.6,
                selector=selector,
            )

    return ObstructionResult(obstruction_type=ObstructionType.NONE, confidence=1.0)
