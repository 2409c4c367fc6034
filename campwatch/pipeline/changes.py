"""Diffs a merged record against the prior snapshot.

Only values present on both sides are compared, so a field that appears or
disappears between runs is not reported as a change.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from campwatch.extraction.models import CanonicalFacts, Change, ChangeSet

logger = logging.getLogger(__name__)


def _weekly_price(facts: CanonicalFacts) -> int | None:
    return facts.pricing.weekly


def _standard_hours(facts: CanonicalFacts) -> str | None:
    return facts.hours.standard_range


def _care_available(facts: CanonicalFacts) -> bool | None:
    return facts.extended_care.available


def _session_count(facts: CanonicalFacts) -> int | None:
    return len(facts.sessions) if facts.sessions else None


def _registration_open(facts: CanonicalFacts) -> bool | None:
    return facts.registration.is_open


# (field, accessor, significance)
TRACKED_FIELDS: tuple[tuple[str, Callable[[CanonicalFacts], Any], str], ...] = (
    ("price", _weekly_price, "high"),
    ("hours", _standard_hours, "medium"),
    ("extended_care", _care_available, "high"),
    ("session_count", _session_count, "medium"),
    ("registration_open", _registration_open, "high"),
)


def detect_changes(
    prior: CanonicalFacts | None,
    current: CanonicalFacts | None,
    entity_id: str,
    *,
    now: datetime | None = None,
) -> ChangeSet:
    detected_at = now or datetime.now(timezone.utc)
    if prior is None or current is None:
        return ChangeSet(entity_id=entity_id, detected_at=detected_at)

    changes: list[Change] = []
    for field, accessor, significance in TRACKED_FIELDS:
        old, new = accessor(prior), accessor(current)
        if old is None or new is None:
            continue
        if old != new:
            changes.append(Change(field=field, old=old, new=new, significance=significance))

    if changes:
        logger.info(
            "Detected %d change(s) for %s: %s",
            len(changes),
            entity_id,
            ", ".join(c.field for c in changes),
        )
    return ChangeSet(
        entity_id=entity_id,
        has_changes=bool(changes),
        changes=changes,
        detected_at=detected_at,
    )
