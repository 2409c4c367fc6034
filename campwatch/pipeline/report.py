"""Weekly report assembly."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from campwatch.extraction.models import CampRecord, ChangeSet
from campwatch.pipeline.manager import EntitySummary

SUCCESS_THRESHOLD = 60
ATTENTION_LIMIT = 10


class ChangeTotals(BaseModel):
    total: int = 0
    price_changes: int = 0
    registration_changes: int = 0


class AttentionEntry(BaseModel):
    entity_id: str
    name: str
    quality: int
    best_strategy: str | None = None


class WeeklyReport(BaseModel):
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str | None = None
    total_entities: int = 0
    successful: int = 0
    needs_review: int = 0
    failed: int = 0
    avg_quality: int = 0
    changes: ChangeTotals = Field(default_factory=ChangeTotals)
    strategy_effectiveness: dict[str, dict[str, float]] = Field(default_factory=dict)
    entities_needing_attention: list[AttentionEntry] = Field(default_factory=list)


def count_changes(change_sets: Iterable[ChangeSet]) -> ChangeTotals:
    """Count camps, not individual changes: one camp counts once per kind."""
    totals = ChangeTotals()
    for change_set in change_sets:
        if change_set.has_changes:
            totals.total += 1
        if change_set.has_field("price"):
            totals.price_changes += 1
        if change_set.has_field("registration_open"):
            totals.registration_changes += 1
    return totals


def build_weekly_report(
    summaries: Sequence[EntitySummary],
    change_sets: Iterable[ChangeSet],
    effectiveness: dict[str, dict[str, float]],
    *,
    run_id: str | None = None,
) -> WeeklyReport:
    qualities = [s.quality for s in summaries]
    attention = sorted(
        (s for s in summaries if s.quality < SUCCESS_THRESHOLD),
        key=lambda s: s.quality,
    )[:ATTENTION_LIMIT]

    return WeeklyReport(
        run_id=run_id,
        total_entities=len(summaries),
        successful=sum(1 for q in qualities if q >= SUCCESS_THRESHOLD),
        needs_review=sum(1 for q in qualities if 0 < q < SUCCESS_THRESHOLD),
        failed=sum(1 for q in qualities if q == 0),
        avg_quality=round(sum(qualities) / len(qualities)) if qualities else 0,
        changes=count_changes(change_sets),
        strategy_effectiveness=effectiveness,
        entities_needing_attention=[
            AttentionEntry(
                entity_id=s.entity_id,
                name=s.name,
                quality=s.quality,
                best_strategy=s.best_strategy,
            )
            for s in attention
        ],
    )


def summaries_from_records(records: Iterable[CampRecord]) -> list[EntitySummary]:
    """Report lines from a persisted snapshot, for report-only runs."""
    return [
        EntitySummary(
            entity_id=r.id,
            name=r.name,
            status="success" if r.last_quality else "failed",
            quality=r.last_quality or 0,
            best_strategy=r.last_strategy,
        )
        for r in records
    ]


def change_sets_for_run(entries: Iterable[dict[str, Any]], run_id: str) -> list[ChangeSet]:
    """Change-log entries written by run ``run_id``."""
    change_sets = []
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("run_id") != run_id:
            continue
        try:
            change_sets.append(ChangeSet.model_validate(entry))
        except ValidationError:
            continue
    return change_sets
