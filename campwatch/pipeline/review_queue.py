"""Camps whose latest extraction needs a human look.

An entry is added when quality falls below the threshold or the validator
reports an error; at most one entry per camp is kept (latest wins).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from campwatch.extraction.models import (
    FIELD_GROUPS,
    CanonicalFacts,
    ValidationIssue,
    ValidationReport,
)
from campwatch.pipeline.manager import atomic_write_json, read_json

logger = logging.getLogger(__name__)


class FieldConfidence(BaseModel):
    name: str
    confidence: int = Field(ge=0, le=100)


class ReviewEntry(BaseModel):
    entity_id: str
    name: str = ""
    quality: int = 0
    fields: list[FieldConfidence] = Field(default_factory=list)
    issues: list[ValidationIssue] = Field(default_factory=list)
    extracted: CanonicalFacts | None = None
    urls: list[str] = Field(default_factory=list)
    added_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def field_confidences(facts: CanonicalFacts | None) -> list[FieldConfidence]:
    """Explicit confidence where a strategy reported one, else 100 present / 0 absent."""
    fields = []
    for group in FIELD_GROUPS:
        if facts is None:
            confidence = 0
        elif group in facts.confidence:
            confidence = facts.confidence[group]
        else:
            confidence = 100 if facts.has_group(group) else 0
        fields.append(FieldConfidence(name=group, confidence=confidence))
    return fields


def needs_review(quality: int, validation: ValidationReport | None, threshold: int) -> bool:
    return quality < threshold or (validation is not None and not validation.is_valid)


class ReviewQueue:
    """JSON-file-backed queue keyed by entity id."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._entries: dict[str, ReviewEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entries

    @property
    def entries(self) -> list[ReviewEntry]:
        return list(self._entries.values())

    def add(
        self,
        entity_id: str,
        *,
        name: str,
        quality: int,
        extracted: CanonicalFacts | None,
        urls: list[str],
        validation: ValidationReport | None = None,
    ) -> ReviewEntry:
        entry = ReviewEntry(
            entity_id=entity_id,
            name=name,
            quality=quality,
            fields=field_confidences(extracted),
            issues=list(validation.issues) if validation else [],
            extracted=extracted,
            urls=urls,
        )
        # Re-insert so the newest entry is last in file order.
        self._entries.pop(entity_id, None)
        self._entries[entity_id] = entry
        logger.info("Queued %s for review (quality %d)", entity_id, quality)
        return entry

    def remove(self, entity_id: str) -> bool:
        return self._entries.pop(entity_id, None) is not None

    def load(self) -> int:
        self._entries = {}
        if self._path is None:
            return 0
        raw = read_json(self._path, [])
        for item in raw if isinstance(raw, list) else []:
            try:
                entry = ReviewEntry.model_validate(item)
            except ValidationError as exc:
                logger.warning("Skipping malformed review entry: %s", exc)
                continue
            self._entries[entry.entity_id] = entry
        return len(self._entries)

    def save(self) -> None:
        if self._path is None:
            return
        atomic_write_json(self._path, [e.model_dump(mode="json") for e in self._entries.values()])
