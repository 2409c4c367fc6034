"""Heuristic extraction engine — pattern library over page text.

Fast, deterministic, no AI cost. Each sub-extractor is a pure function of
the text that returns its field group or None; ``build_facts`` folds the
partial results into one CanonicalFacts. No extractor raises on odd input:
an un-extractable field is simply absent.
"""

from __future__ import annotations

import logging
import re

from pydantic import ValidationError

from campwatch.extraction import patterns as p
from campwatch.extraction.dates import (
    format_date_range,
    month_from_number,
    month_name,
    normalize_year,
)
from campwatch.extraction.models import (
    MAX_AGE,
    MIN_AGE,
    AgeGroup,
    Ages,
    CanonicalFacts,
    Contact,
    ExtendedCare,
    Hours,
    Pricing,
    Registration,
    Session,
)
from campwatch.extraction.structured import (
    StructuredFragments,
    facts_from_json_ld,
    facts_from_tables,
)

logger = logging.getLogger(__name__)

DEFAULT_EXPECTED_YEAR = 2026
MAX_SUMMER_SESSIONS = 5


# --- Pricing ---


def extract_pricing(text: str) -> Pricing | None:
    """Labelled pass, then contextual and median fallbacks for the base rate."""
    if not text:
        return None

    tiers: dict[str, int] = {}
    for entry in p.PRICE_PATTERNS:
        if entry.tier in tiers:
            continue
        value = entry.first_value(text)
        if value is not None:
            tiers[entry.tier] = value

    if "weekly" not in tiers and "session" not in tiers:
        fallback = _contextual_price(text)
        if fallback is None:
            fallback = _median_price(text)
        if fallback is not None:
            tiers["weekly"] = fallback

    return Pricing(**tiers) if tiers else None


def _contextual_price(text: str) -> int | None:
    match = p.CONTEXTUAL_PRICE.search(text)
    if not match:
        return None
    value = p.dollars(match.group(1))
    low, high = p.CONTEXTUAL_PRICE_RANGE
    return value if low <= value <= high else None


def _median_price(text: str) -> int | None:
    low, high = p.MEDIAN_PRICE_RANGE
    amounts = (p.dollars(m.group(1)) for m in p.ANY_PRICE.finditer(text))
    values = sorted(v for v in amounts if low <= v <= high)
    if not values:
        return None
    return values[len(values) // 2]


# --- Sessions ---


def extract_sessions(text: str, expected_year: int = DEFAULT_EXPECTED_YEAR) -> list[Session] | None:
    if not text:
        return None

    sessions: list[Session] = []
    seen: set[str] = set()

    def add(session: Session) -> None:
        if session.dates not in seen:
            seen.add(session.dates)
            sessions.append(session)

    for match in p.WEEK_SESSION.finditer(text):
        start_month = month_name(match.group(2))
        if start_month is None:
            continue
        end_month = month_name(match.group(4)) if match.group(4) else start_month
        if end_month is None:
            continue
        dates = format_date_range(
            start_month,
            int(match.group(3)),
            int(match.group(5)),
            normalize_year(match.group(6), expected_year),
            end_month,
        )
        add(Session(name=f"Session {match.group(1)}", dates=dates))

    for match in p.SHORT_RANGE.finditer(text):
        dates = format_date_range(
            match.group(1).capitalize(),
            int(match.group(2)),
            int(match.group(3)),
            normalize_year(match.group(4), expected_year),
        )
        add(Session(name=f"Session {len(sessions) + 1}", dates=dates))

    for match in p.NUMERIC_RANGE.finditer(text):
        start_month = month_from_number(int(match.group(1)))
        end_month = month_from_number(int(match.group(3)))
        if start_month is None or end_month is None:
            continue
        dates = format_date_range(
            start_month,
            int(match.group(2)),
            int(match.group(4)),
            normalize_year(match.group(5), expected_year),
            end_month,
        )
        add(Session(name=f"Session {len(sessions) + 1}", dates=dates))

    if not sessions and p.summer_year_pattern(expected_year).search(text):
        for match in p.SUMMER_START.finditer(text):
            if len(sessions) >= MAX_SUMMER_SESSIONS:
                break
            month, day = match.group(1).split()
            if month_name(month) is None:
                continue
            add(Session(name="Summer Session", dates=f"{month_name(month)} {day}, {expected_year}"))

    for match in p.REGISTRATION_OPENS.finditer(text):
        if month_name(match.group(1).split()[0]) is None:
            continue
        add(Session(name="Registration Opens", dates=match.group(1), kind="registration"))

    return sessions or None


# --- Hours ---


def normalize_time(raw: str) -> str:
    """``9 a.m.`` -> ``9AM``; ``3:30 pm`` -> ``3:30PM``."""
    return re.sub(r"\s+", "", raw.replace(".", "")).upper()


def format_time_range(start: str, end: str) -> str:
    return f"{normalize_time(start)} – {normalize_time(end)}"


def extract_hours(text: str) -> Hours | None:
    if not text:
        return None

    fields: dict[str, str] = {}
    if match := p.STANDARD_HOURS.search(text):
        fields["standard_range"] = format_time_range(match.group(1), match.group(2))
    if match := p.DROP_OFF.search(text):
        fields["drop_off"] = format_time_range(match.group(1), match.group(2))
    if match := p.PICK_UP.search(text):
        fields["pick_up"] = format_time_range(match.group(1), match.group(2))
    if match := p.EXTENDED_BEFORE.search(text):
        fields["extended_before"] = normalize_time(match.group(1))
    if match := p.EXTENDED_AFTER.search(text):
        fields["extended_after"] = normalize_time(match.group(1))

    return Hours(**fields) if fields else None


# --- Extended care ---


def detect_extended_care(text: str) -> ExtendedCare | None:
    """Negative phrases win; otherwise the first positive phrase and its context."""
    if not text:
        return None

    lower = text.lower()
    for term in p.CARE_NEGATIVE_TERMS:
        if term in lower:
            return ExtendedCare(available=False, details="Not offered")

    for term in p.CARE_POSITIVE_TERMS:
        index = lower.find(term)
        if index == -1:
            continue
        start = max(0, index - p.CARE_CONTEXT_BEFORE)
        end = min(len(text), index + len(term) + p.CARE_CONTEXT_AFTER)
        context = text[start:end]
        cost_match = p.CARE_COST.search(context)
        times = [normalize_time(t) for t in p.TIME_TOKEN.findall(text[index:end])]
        return ExtendedCare(
            available=True,
            details=" ".join(context.split()),
            cost=p.dollars(cost_match.group(1)) if cost_match else None,
            times=" – ".join(times) if times else None,
        )

    return None


# --- Activities ---


def extract_activities(text: str) -> list[str] | None:
    if not text:
        return None
    found = [label for pattern, label in p.ACTIVITY_PATTERNS if pattern.search(text)]
    return found or None


# --- Ages ---


def extract_age_groups(text: str) -> list[AgeGroup]:
    groups: list[AgeGroup] = []
    for match in p.AGE_GROUP.finditer(text):
        name = " ".join(match.group(1).split())
        low, high = int(match.group(2)), int(match.group(3))
        if len(name) < 3 or name.isdigit():
            continue
        if name.split()[0].lower() in p.AGE_GROUP_REJECT_WORDS:
            continue
        if low > MAX_AGE or high > MAX_AGE or low >= high:
            continue
        if any(g.name.lower() == name.lower() for g in groups):
            continue
        groups.append(AgeGroup(name=name, min_age=low, max_age=high))
        if len(groups) >= p.MAX_AGE_GROUPS:
            break
    return groups


def extract_ages(text: str) -> Ages | None:
    if not text:
        return None

    bounds: tuple[int, int] | None = None
    for pattern in p.AGE_RANGE_PATTERNS:
        for match in pattern.finditer(text):
            low, high = int(match.group(1)), int(match.group(2))
            if MIN_AGE <= low <= high <= MAX_AGE:
                bounds = (low, high)
                break
        if bounds:
            break

    if bounds is None and (match := p.AGE_AND_UP.search(text)):
        low = int(match.group(1))
        if MIN_AGE <= low <= MAX_AGE:
            bounds = (low, MAX_AGE)

    groups = extract_age_groups(text)
    if bounds is None and groups:
        low = max(MIN_AGE, min(g.min_age for g in groups))
        high = min(MAX_AGE, max(g.max_age for g in groups))
        if low <= high:
            bounds = (low, high)

    if bounds is None and not groups:
        return None
    return Ages(
        min_age=bounds[0] if bounds else None,
        max_age=bounds[1] if bounds else None,
        groups=groups,
    )


# --- Registration ---


def extract_registration(text: str) -> Registration | None:
    if not text:
        return None

    opens_date = None
    if match := p.OPENING_DATE.search(text):
        if month_name(match.group(1).split()[0]) is not None:
            opens_date = match.group(1)

    waitlist = True if p.WAITLIST.search(text) else None

    if p.REGISTRATION_OPEN.search(text):
        status = "open"
    elif waitlist:
        status = "waitlist"
    elif p.REGISTRATION_CLOSED.search(text):
        status = "closed"
    elif opens_date:
        status = "upcoming"
    else:
        status = None

    registration = Registration(status=status, opens_date=opens_date, waitlist=waitlist)
    return None if registration.is_empty() else registration


# --- Contact ---


def extract_contact(text: str) -> Contact | None:
    if not text:
        return None

    email = None
    emails = [e for e in p.EMAIL.findall(text) if not p.IGNORED_EMAIL.search(e)]
    if emails:
        email = next((e for e in emails if p.PREFERRED_EMAIL.search(e)), emails[0])

    phone_match = p.PHONE.search(text)
    contact = Contact(email=email, phone=phone_match.group(0).strip() if phone_match else None)
    return None if contact.is_empty() else contact


# --- Builder ---


def build_facts(
    *,
    pricing: Pricing | None = None,
    sessions: list[Session] | None = None,
    hours: Hours | None = None,
    extended_care: ExtendedCare | None = None,
    ages: Ages | None = None,
    activities: list[str] | None = None,
    registration: Registration | None = None,
    contact: Contact | None = None,
) -> CanonicalFacts:
    """Fold partial sub-extractor results into one record."""
    parts = {
        "pricing": pricing,
        "sessions": sessions,
        "hours": hours,
        "extended_care": extended_care,
        "ages": ages,
        "activities": activities,
        "registration": registration,
        "contact": contact,
    }
    return CanonicalFacts(**{k: v for k, v in parts.items() if v is not None})


def fill_gaps(primary: CanonicalFacts, secondary: CanonicalFacts) -> CanonicalFacts:
    """Copy values from ``secondary`` only where ``primary`` has none."""
    pricing = {**secondary.pricing.tiers(), **primary.pricing.tiers()}
    contact = {
        **secondary.contact.model_dump(exclude_none=True),
        **primary.contact.model_dump(exclude_none=True),
    }
    return primary.model_copy(
        update={
            "pricing": Pricing(**pricing),
            "sessions": CanonicalFacts(sessions=primary.sessions + secondary.sessions).sessions,
            "contact": Contact(**contact),
        }
    )


def extract_facts(
    text: str,
    structured: StructuredFragments | None = None,
    *,
    expected_year: int = DEFAULT_EXPECTED_YEAR,
) -> CanonicalFacts:
    """Convert raw page text and structured fragments into canonical facts."""
    facts = build_facts(
        pricing=extract_pricing(text),
        sessions=extract_sessions(text, expected_year),
        hours=extract_hours(text),
        extended_care=detect_extended_care(text),
        ages=extract_ages(text),
        activities=extract_activities(text),
        registration=extract_registration(text),
        contact=extract_contact(text),
    )
    if structured is None or structured.is_empty():
        return facts

    try:
        secondary = facts_from_json_ld(structured.json_ld)
        secondary = fill_gaps(secondary, facts_from_tables(structured.tables, expected_year))
    except (ValidationError, ValueError, TypeError) as exc:
        logger.debug("Ignoring unusable structured fragments: %s", exc)
        return facts
    return fill_gaps(facts, secondary)
