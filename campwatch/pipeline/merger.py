"""Merger — reconciles competing strategy outputs into one record.

The highest-quality result seeds the record; lower-ranked results only fill
field groups the record still lacks. Activities are unioned and sessions
with unseen dates are appended. ``sources`` records which strategy supplied
each group.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from campwatch.extraction.models import FIELD_GROUPS, CanonicalFacts, StrategyResult

logger = logging.getLogger(__name__)


def usable_results(results: Sequence[StrategyResult]) -> list[StrategyResult]:
    """Successful, non-empty results ranked by quality (stable on ties)."""
    usable = [r for r in results if r.success and not r.extracted.is_empty()]
    return sorted(usable, key=lambda r: r.quality, reverse=True)


def merge(results: Sequence[StrategyResult]) -> CanonicalFacts | None:
    ranked = usable_results(results)
    if not ranked:
        return None

    best = ranked[0]
    data: dict[str, Any] = best.extracted.model_dump()
    present = set(best.extracted.present_groups())
    sources = {group: best.strategy.value for group in present}
    confidence = {
        group: value for group, value in best.extracted.confidence.items() if group in present
    }
    pdf_urls = {link["url"] for link in data["pdf_links"]}

    for result in ranked[1:]:
        facts = result.extracted
        strategy = result.strategy.value
        incoming = facts.model_dump()

        for group in facts.present_groups():
            if group == "activities" and group in present:
                data["activities"] = sorted(set(data["activities"]) | set(incoming["activities"]))
            elif group == "sessions" and group in present:
                seen = {s["dates"] for s in data["sessions"]}
                data["sessions"].extend(s for s in incoming["sessions"] if s["dates"] not in seen)
            elif group not in present:
                data[group] = incoming[group]
                present.add(group)
                sources[group] = strategy
                if group in facts.confidence:
                    confidence[group] = facts.confidence[group]

        for link in incoming["pdf_links"]:
            if link["url"] not in pdf_urls:
                pdf_urls.add(link["url"])
                data["pdf_links"].append(link)
        data["notes"].extend(n for n in incoming["notes"] if n not in data["notes"])

    data["sources"] = {g: sources[g] for g in FIELD_GROUPS if g in sources}
    data["confidence"] = confidence
    data["quality_scores"] = {r.strategy.value: r.quality for r in ranked}

    merged = CanonicalFacts.model_validate(data)
    logger.debug(
        "Merged %d results; best=%s groups=%s",
        len(ranked),
        best.strategy.value,
        ",".join(merged.present_groups()),
    )
    return merged
