"""Deterministic weighted field-presence score in [0, 100]."""

from __future__ import annotations

from campwatch.extraction.models import CanonicalFacts

DEFAULT_EXPECTED_YEAR = 2026

BASE_RATE_TIERS = ("weekly", "session")
TIER_RATE_TIERS = ("early_bird", "member", "non_member", "extended_care")
SPLIT_RATE_TIERS = ("half_day", "full_day", "daily")


def _pricing_score(facts: CanonicalFacts) -> int:
    tiers = facts.pricing.tiers()
    score = 0
    if any(t in tiers for t in BASE_RATE_TIERS):
        score += 15
    if any(t in tiers for t in TIER_RATE_TIERS):
        score += 8
    if any(t in tiers for t in SPLIT_RATE_TIERS):
        score += 7
    return score


def _sessions_score(facts: CanonicalFacts, expected_year: int) -> int:
    sessions = facts.sessions
    if not sessions:
        return 0
    score = 10
    if len(sessions) >= 5:
        score += 5
    if any(str(expected_year) in s.dates for s in sessions):
        score += 5
    return score


def _hours_score(facts: CanonicalFacts) -> int:
    hours = facts.hours
    score = 10 if hours.standard_range else 0
    if hours.drop_off or hours.pick_up:
        score += 5
    return score


def _extended_care_score(facts: CanonicalFacts) -> int:
    care = facts.extended_care
    if care.available is None:
        return 0
    score = 8 if care.available else 5
    if care.cost is not None or facts.pricing.extended_care is not None:
        score += 3
    if care.times or facts.hours.extended_before or facts.hours.extended_after:
        score += 4
    return score


def _activities_score(facts: CanonicalFacts) -> int:
    count = len(facts.activities)
    score = 5 if count else 0
    if count >= 5:
        score += 3
    if count >= 10:
        score += 2
    return score


def _registration_score(facts: CanonicalFacts) -> int:
    score = 3 if facts.registration.status else 0
    if facts.registration.opens_date:
        score += 2
    return score


def score_breakdown(
    facts: CanonicalFacts | None, expected_year: int = DEFAULT_EXPECTED_YEAR
) -> dict[str, int]:
    """Per-group credit, keyed by field group."""
    if facts is None:
        return {}
    return {
        "pricing": _pricing_score(facts),
        "sessions": _sessions_score(facts, expected_year),
        "hours": _hours_score(facts),
        "extended_care": _extended_care_score(facts),
        "ages": 10 if facts.has_group("ages") else 0,
        "activities": _activities_score(facts),
        "registration": _registration_score(facts),
    }


def score_quality(facts: CanonicalFacts | None, expected_year: int = DEFAULT_EXPECTED_YEAR) -> int:
    """Weighted score: an ordering device for the merger and a health metric."""
    total = sum(score_breakdown(facts, expected_year).values())
    return max(0, min(100, total))
