"""AI Engine — semantic camp-fact extraction backed by Gemini (Vertex AI or API key).

The AI Engine provides intelligence without authority. The acquirer hands
it page text already fetched by another strategy plus the camp's baseline
facts; it returns a JSON object that is mapped onto CanonicalFacts. It
never fetches pages or writes state.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from campwatch.acquire.page import PageBundle
from campwatch.config.settings import LLMConfig
from campwatch.extraction.heuristic import extract_age_groups, format_time_range, normalize_time
from campwatch.extraction.models import (
    MAX_AGE,
    MAX_PRICE,
    MIN_AGE,
    AgeGroup,
    Ages,
    CampRecord,
    CanonicalFacts,
    Contact,
    ExtendedCare,
    Hours,
    Pricing,
    Registration,
    Session,
    plausible_price,
)
from campwatch.extraction.patterns import ACTIVITY_PATTERNS
from campwatch.telemetry.errors import ErrorCode, ParseError, emit_structured_error

logger = logging.getLogger(__name__)

UNAVAILABLE = "llm unavailable"

# LLM pricing key -> Pricing tier
PRICE_KEYS = {
    "weekly_rate": "weekly",
    "daily_rate": "daily",
    "session_rate": "session",
    "half_day_rate": "half_day",
    "full_day_rate": "full_day",
    "early_bird_rate": "early_bird",
    "member_rate": "member",
    "non_member_rate": "non_member",
    "extended_care_rate": "extended_care",
}

# LLM confidence key -> field groups it covers
CONFIDENCE_KEYS = {
    "pricing": ("pricing",),
    "schedule": ("sessions",),
    "hours": ("hours", "extended_care"),
    "age_groups": ("ages",),
    "activities": ("activities",),
    "registration": ("registration",),
    "contact": ("contact",),
}

REGISTRATION_STATUSES = {
    "open": "open",
    "closed": "closed",
    "full": "closed",
    "sold out": "closed",
    "waitlist": "waitlist",
    "upcoming": "upcoming",
    "not yet open": "upcoming",
}

RESPONSE_TEMPLATE = """{
  "pricing": {"weekly_rate": null, "daily_rate": null, "session_rate": null,
              "half_day_rate": null, "full_day_rate": null, "early_bird_rate": null,
              "member_rate": null, "non_member_rate": null},
  "schedule": {"sessions": [{"name": "Week 1", "dates": "June 16-20", "theme": null}]},
  "hours": {"standard_start": null, "standard_end": null, "drop_off_window": null,
            "pick_up_window": null, "has_extended_care": null, "extended_care_before": null,
            "extended_care_after": null, "extended_care_cost": null},
  "age_groups": {"min_age": null, "max_age": null,
                 "named_groups": [{"name": null, "min_age": null, "max_age": null}]},
  "activities": [],
  "policies": {"cancellation": null, "refund_policy": null},
  "registration": {"status": null, "opens_date": null, "waitlist_available": null},
  "contact": {"email": null, "phone": null, "address": null},
  "confidence": {"pricing": 0, "schedule": 0, "hours": 0, "age_groups": 0,
                 "activities": 0, "registration": 0, "contact": 0},
  "extraction_notes": ""
}"""

_PAGE_SPLIT = re.compile(r"^=== PAGE: (.+?) ===$", re.MULTILINE)


@dataclass
class LLMExtraction:
    """Mapped facts plus the error, if any, that left them empty."""

    facts: CanonicalFacts = field(default_factory=CanonicalFacts)
    error: str | None = None


def split_pages(text: str) -> list[tuple[str, str]]:
    """Split bundle text on page markers into ``(url, content)`` pairs."""
    parts = _PAGE_SPLIT.split(text)
    if len(parts) == 1:
        return [("main", text)]
    pages = []
    if parts[0].strip():
        pages.append(("main", parts[0]))
    for i in range(1, len(parts), 2):
        pages.append((parts[i], parts[i + 1]))
    return pages


def build_extraction_prompt(camp: CampRecord, bundle: PageBundle, max_chars_per_page: int = 6000) -> str:
    baseline = camp.baseline
    content = "\n\n---\n\n".join(
        f"=== PAGE {url} ===\n{body.strip()[:max_chars_per_page]}"
        for url, body in split_pages(bundle.text)
    )
    return (
        "You are extracting summer camp data from website content. Be thorough and accurate.\n\n"
        f"CAMP: {camp.name}\n\n"
        "BASELINE DATA (from our records - may be outdated):\n"
        f"- Price: ${baseline.price_min or '?'} - ${baseline.price_max or '?'}\n"
        f"- Ages: {baseline.min_age or '?'} - {baseline.max_age or '?'}\n"
        f"- Hours: {baseline.hours or 'Unknown'}\n"
        f"- Extended Care: {baseline.extended_care or 'Unknown'}\n\n"
        f"WEBSITE CONTENT:\n\n{content}\n\n"
        "Extract ALL available information with confidence scores (0-100):\n"
        "  90-100 explicitly stated; 70-89 strongly implied; 50-69 inferred; below 50 uncertain.\n"
        "Use null for anything not on the page. Prices are whole US dollars.\n"
        "For hours.has_extended_care look for early drop-off, late pick-up, before care, "
        "after care, extended day, AM care, PM care.\n\n"
        f"Return ONLY a JSON object with this structure:\n{RESPONSE_TEMPLATE}"
    )


def parse_llm_response(text: str) -> dict[str, Any]:
    """Parse the outermost JSON object, tolerating markdown fences and prose."""
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        raise ParseError("No JSON object in LLM response")
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON in LLM response: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError("LLM response is not a JSON object")
    return data


def _as_int(value: Any) -> int | None:
    """Whole-number view of a reply value; non-finite or unparsable is None."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(str(value).replace("$", "").replace(",", "").strip())
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number)


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _map_pricing(section: dict[str, Any]) -> Pricing:
    tiers = {}
    for key, tier in PRICE_KEYS.items():
        value = _as_int(section.get(key))
        if plausible_price(value):
            tiers[tier] = value
    return Pricing(**tiers)


def _map_sessions(section: dict[str, Any]) -> list[Session]:
    sessions = []
    raw = section.get("sessions")
    for i, item in enumerate(raw if isinstance(raw, list) else [], start=1):
        if not isinstance(item, dict) or not _as_str(item.get("dates")):
            continue
        sessions.append(
            Session(
                name=_as_str(item.get("name")) or f"Session {i}",
                dates=_as_str(item["dates"]),
                theme=_as_str(item.get("theme")),
            )
        )
    return sessions


def _map_hours(section: dict[str, Any]) -> tuple[Hours, ExtendedCare]:
    start, end = _as_str(section.get("standard_start")), _as_str(section.get("standard_end"))
    before = _as_str(section.get("extended_care_before"))
    after = _as_str(section.get("extended_care_after"))
    hours = Hours(
        standard_range=format_time_range(start, end) if start and end else None,
        drop_off=_as_str(section.get("drop_off_window")),
        pick_up=_as_str(section.get("pick_up_window")),
        extended_before=normalize_time(before) if before else None,
        extended_after=normalize_time(after) if after else None,
    )

    available = section.get("has_extended_care")
    cost = _as_int(section.get("extended_care_cost"))
    times = " – ".join(normalize_time(t) for t in (before, after) if t) or None
    care = ExtendedCare(
        available=available if isinstance(available, bool) else None,
        cost=cost if cost is not None and 0 <= cost <= MAX_PRICE else None,
        times=times,
    )
    return hours, care


def _map_ages(section: dict[str, Any]) -> Ages:
    low, high = _as_int(section.get("min_age")), _as_int(section.get("max_age"))
    if low is not None and not MIN_AGE <= low <= MAX_AGE:
        low = None
    if high is not None and not MIN_AGE <= high <= MAX_AGE:
        high = None
    if low is not None and high is not None and low > high:
        low = high = None

    groups: list[AgeGroup] = []
    raw = section.get("named_groups")
    for item in raw if isinstance(raw, list) else []:
        if isinstance(item, str):
            groups.extend(extract_age_groups(item))
            continue
        if not isinstance(item, dict):
            continue
        name = _as_str(item.get("name"))
        g_low, g_high = _as_int(item.get("min_age")), _as_int(item.get("max_age"))
        if name and g_low is not None and g_high is not None and 0 <= g_low <= g_high <= MAX_AGE:
            groups.append(AgeGroup(name=name, min_age=g_low, max_age=g_high))
    return Ages(min_age=low, max_age=high, groups=groups[:10])


def _map_activities(raw: Any) -> list[str]:
    labels: set[str] = set()
    for item in raw if isinstance(raw, list) else []:
        text = _as_str(item)
        if not text:
            continue
        labels.update(label for pattern, label in ACTIVITY_PATTERNS if pattern.search(text))
    return sorted(labels)


def _map_registration(section: dict[str, Any]) -> Registration:
    status_raw = (_as_str(section.get("status")) or "").lower()
    status = next((v for k, v in REGISTRATION_STATUSES.items() if k in status_raw), None)
    waitlist = section.get("waitlist_available")
    return Registration(
        status=status,
        opens_date=_as_str(section.get("opens_date")),
        waitlist=waitlist if isinstance(waitlist, bool) else None,
    )


def _map_confidence(section: dict[str, Any]) -> dict[str, int]:
    confidence: dict[str, int] = {}
    for key, groups in CONFIDENCE_KEYS.items():
        value = _as_int(section.get(key))
        if value is None:
            continue
        for group in groups:
            confidence[group] = value
    return confidence


def map_llm_payload(data: dict[str, Any]) -> CanonicalFacts:
    """Map the LLM's JSON object onto CanonicalFacts.

    Unknown keys are ignored, absent keys mean "not present", and
    implausible values are dropped rather than rejected.
    """
    hours, care = _map_hours(_section(data, "hours"))
    contact = _section(data, "contact")
    notes = _as_str(data.get("extraction_notes"))
    return CanonicalFacts(
        pricing=_map_pricing(_section(data, "pricing")),
        sessions=_map_sessions(_section(data, "schedule")),
        hours=hours,
        extended_care=care,
        ages=_map_ages(_section(data, "age_groups")),
        activities=_map_activities(data.get("activities")),
        registration=_map_registration(_section(data, "registration")),
        contact=Contact(
            email=_as_str(contact.get("email")),
            phone=_as_str(contact.get("phone")),
            address=_as_str(contact.get("address")),
        ),
        confidence=_map_confidence(_section(data, "confidence")),
        notes=[notes] if notes else [],
    )


class AIEngine:
    """AI Engine client for Gemini through the google-genai SDK.

    Stateless between calls. Optional: without credentials the ``llm``
    strategy reports itself unavailable and the run continues.
    """

    def __init__(self, config: LLMConfig | None = None, client: Any = None) -> None:
        self._config = config or LLMConfig()
        self._client: Any = client
        self._initialized = client is not None

    async def initialize(self) -> bool:
        """Initialize the Gemini client; returns False when unconfigured or failing."""
        if self._initialized:
            return True
        if not self._config.configured:
            return False

        try:
            from google import genai

            if self._config.project_id:
                self._client = genai.Client(
                    vertexai=True,
                    project=self._config.project_id,
                    location=self._config.location,
                )
            else:
                self._client = genai.Client(api_key=self._config.api_key)
            self._initialized = True
            return True
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.LLM_INITIALIZATION_FAILED,
                message=str(exc),
                suppressed=True,
            )
            self._initialized = False
            return False

    @property
    def is_available(self) -> bool:
        return self._initialized and self._client is not None

    async def _generate(self, prompt: str, timeout_s: float) -> str:
        from google.genai import types

        response = await asyncio.wait_for(
            self._client.aio.models.generate_content(
                model=self._config.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    temperature=0,
                ),
            ),
            timeout=timeout_s,
        )
        return response.text or ""

    async def extract_camp_facts(
        self, camp: CampRecord, bundle: PageBundle, *, timeout_s: float = 60
    ) -> LLMExtraction:
        """Send page text and baseline facts to Gemini; map the JSON reply."""
        if not self.is_available:
            return LLMExtraction(error=UNAVAILABLE)

        prompt = build_extraction_prompt(camp, bundle, self._config.max_chars_per_page)
        try:
            text = await self._generate(prompt, timeout_s)
        except Exception as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.LLM_EXTRACTION_FAILED,
                message=str(exc) or type(exc).__name__,
                suppressed=True,
                entity_id=camp.id,
                strategy="llm",
            )
            return LLMExtraction(error=f"llm request failed: {exc or type(exc).__name__}")

        try:
            facts = map_llm_payload(parse_llm_response(text))
        except (ParseError, ValidationError) as exc:
            emit_structured_error(
                logger,
                code=ErrorCode.LLM_RESPONSE_INVALID,
                message=str(exc),
                suppressed=True,
                entity_id=camp.id,
                strategy="llm",
            )
            return LLMExtraction(error=str(exc))

        logger.info("LLM extracted %s for %s", ",".join(facts.present_groups()) or "nothing", camp.id)
        return LLMExtraction(facts=facts)
