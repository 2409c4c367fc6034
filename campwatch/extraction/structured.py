"""Extraction from structured page fragments: JSON-LD blocks and HTML tables.

Structured values only fill gaps left by the text extractor.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from campwatch.extraction.dates import format_date_range, format_iso_range, month_name
from campwatch.extraction.models import (
    CanonicalFacts,
    Contact,
    Pricing,
    Session,
    plausible_price,
)

EVENT_TYPES = frozenset({"Event", "Course", "ChildCare", "EducationEvent", "CourseInstance"})
ORGANIZATION_TYPES = frozenset(
    {
        "Organization",
        "LocalBusiness",
        "ChildCare",
        "EducationalOrganization",
        "SportsActivityLocation",
        "Campground",
    }
)

TABLE_PRICE_RANGE = (50, 2000)
_TABLE_PRICE = re.compile(r"\$\s*(\d{2,4})")
_TABLE_DATES = re.compile(r"([A-Z][a-z]+)\s+(\d{1,2})\s*[-–]\s*(?:([A-Z][a-z]+)\s+)?(\d{1,2})")


@dataclass
class StructuredFragments:
    """Machine-readable fragments captured alongside page text."""

    json_ld: list[dict[str, Any]] = field(default_factory=list)
    tables: list[list[list[str]]] = field(default_factory=list)

    def extend(self, other: StructuredFragments) -> None:
        self.json_ld.extend(other.json_ld)
        self.tables.extend(other.tables)

    def is_empty(self) -> bool:
        return not self.json_ld and not self.tables


def _flatten_json_ld(items: list[Any]) -> list[dict[str, Any]]:
    nodes: list[dict[str, Any]] = []
    for item in items:
        if isinstance(item, list):
            nodes.extend(_flatten_json_ld(item))
        elif isinstance(item, dict):
            nodes.append(item)
            graph = item.get("@graph")
            if isinstance(graph, list):
                nodes.extend(_flatten_json_ld(graph))
    return nodes


def _types(node: dict[str, Any]) -> set[str]:
    raw = node.get("@type", [])
    if isinstance(raw, str):
        return {raw}
    return {t for t in raw if isinstance(t, str)} if isinstance(raw, list) else set()


def _offer_price(offer: Any) -> int | None:
    if not isinstance(offer, dict):
        return None
    raw = offer.get("price") or offer.get("lowPrice")
    try:
        value = int(float(str(raw).replace("$", "").replace(",", "")))
    except (TypeError, ValueError):
        return None
    return value if plausible_price(value) else None


def _address(raw: Any) -> str | None:
    if isinstance(raw, str):
        return raw.strip() or None
    if isinstance(raw, dict):
        parts = [
            raw.get("streetAddress"),
            raw.get("addressLocality"),
            raw.get("addressRegion"),
            raw.get("postalCode"),
        ]
        joined = ", ".join(str(p).strip() for p in parts if p)
        return joined or None
    return None


def facts_from_json_ld(blocks: list[dict[str, Any]]) -> CanonicalFacts:
    weekly: int | None = None
    sessions: list[Session] = []
    contact: dict[str, str] = {}

    for node in _flatten_json_ld(blocks):
        types = _types(node)
        if types & EVENT_TYPES:
            offers = node.get("offers")
            for offer in offers if isinstance(offers, list) else [offers]:
                price = _offer_price(offer)
                if price is not None and weekly is None:
                    weekly = price
            start = node.get("startDate")
            if isinstance(start, str):
                end = node.get("endDate") if isinstance(node.get("endDate"), str) else None
                dates = format_iso_range(start, end) or (f"{start} - {end}" if end else start)
                sessions.append(Session(name=str(node.get("name") or "Session"), dates=dates))
        if types & ORGANIZATION_TYPES:
            email = node.get("email")
            if isinstance(email, str) and email and "email" not in contact:
                contact["email"] = email.removeprefix("mailto:")
            phone = node.get("telephone")
            if isinstance(phone, str) and phone and "phone" not in contact:
                contact["phone"] = phone
            address = _address(node.get("address"))
            if address and "address" not in contact:
                contact["address"] = address

    return CanonicalFacts(
        pricing=Pricing(weekly=weekly),
        sessions=sessions,
        contact=Contact(**contact),
    )


def _table_tier(label: str) -> str:
    if "early" in label or "bird" in label:
        return "early_bird"
    if "member" in label and "non" not in label:
        return "member"
    if "non-member" in label or "non member" in label or "nonmember" in label:
        return "non_member"
    if "half" in label:
        return "half_day"
    if "full" in label:
        return "full_day"
    return "weekly"


def facts_from_tables(tables: list[list[list[str]]], expected_year: int) -> CanonicalFacts:
    tiers: dict[str, int] = {}
    sessions: list[Session] = []
    low, high = TABLE_PRICE_RANGE

    for rows in tables:
        if not rows:
            continue
        flat = " ".join(" ".join(row) for row in rows).lower()

        if any(k in flat for k in ("$", "price", "rate", "fee")):
            for row in rows:
                label = (row[0] if row else "").lower()
                for cell in row:
                    match = _TABLE_PRICE.search(cell)
                    if not match:
                        continue
                    price = int(match.group(1))
                    if not low <= price <= high:
                        continue
                    tier = _table_tier(label)
                    if tier == "weekly" and "weekly" in tiers and "week" not in label:
                        continue
                    tiers[tier] = price

        if any(k in flat for k in ("week", "session", "june", "july", "august")):
            for row in rows:
                match = _TABLE_DATES.search(" ".join(row))
                if not match:
                    continue
                start_month = month_name(match.group(1))
                if start_month is None:
                    continue
                end_month = month_name(match.group(3)) if match.group(3) else start_month
                dates = format_date_range(
                    start_month,
                    int(match.group(2)),
                    int(match.group(4)),
                    expected_year,
                    end_month,
                )
                name = row[0].strip() if row and row[0].strip() and not _TABLE_DATES.search(row[0]) else ""
                sessions.append(Session(name=name or f"Session {len(sessions) + 1}", dates=dates))

    return CanonicalFacts(pricing=Pricing(**tiers), sessions=sessions)
