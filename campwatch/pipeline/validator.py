"""Sanity checks on a merged record, flagged by severity."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from campwatch.extraction.models import (
    FIELD_GROUPS,
    CanonicalFacts,
    ValidationIssue,
    ValidationReport,
)

logger = logging.getLogger(__name__)

PRICE_WARN_LOW = 50
PRICE_WARN_HIGH = 2000
HOURS_SHAPE = re.compile(
    r"^\d{1,2}(?::\d{2})?\s*(?:AM|PM)?\s*[-–]\s*\d{1,2}(?::\d{2})?\s*(?:AM|PM)?$",
    re.IGNORECASE,
)


def load_camp_config(config_dir: Path | None, entity_id: str) -> dict[str, Any]:
    """Read ``<config_dir>/<entity_id>.json``; a missing or bad file means no config."""
    if config_dir is None:
        return {}
    path = config_dir / f"{entity_id}.json"
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable camp config %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def required_fields(config: dict[str, Any]) -> list[str]:
    validation = config.get("validation")
    if not isinstance(validation, dict):
        return []
    required = validation.get("required", [])
    return [str(f) for f in required] if isinstance(required, list) else []


def entry_url(config: dict[str, Any], default: str) -> str:
    """First http(s) URL under ``pages``, else ``default``."""
    pages = config.get("pages")
    if isinstance(pages, dict):
        for url in pages.values():
            if isinstance(url, str) and url.startswith("http"):
                return url
    return default


def field_present(facts: CanonicalFacts, path: str) -> bool:
    """Resolve a field group name or a ``group.attribute`` path."""
    group, _, attribute = path.partition(".")
    if group not in FIELD_GROUPS:
        return False
    if not attribute:
        return facts.has_group(group)
    value = getattr(getattr(facts, group), attribute, None)
    return value not in (None, "", [])


def validate(facts: CanonicalFacts | None, required: list[str] | None = None) -> ValidationReport:
    issues: list[ValidationIssue] = []

    if facts is None:
        for path in required or []:
            issues.append(
                ValidationIssue(field=path, severity="error", message="required field missing")
            )
        return ValidationReport(issues=issues)

    for tier, value in facts.pricing.tiers().items():
        if value < PRICE_WARN_LOW or value > PRICE_WARN_HIGH:
            issues.append(
                ValidationIssue(
                    field=f"pricing.{tier}",
                    severity="warning",
                    message=f"unusual price ${value}",
                )
            )

    ages = facts.ages
    if ages.min_age is not None and (ages.min_age < 3 or ages.min_age > 14):
        issues.append(
            ValidationIssue(field="ages.min_age", severity="warning", message=f"unusual minimum age {ages.min_age}")
        )
    if ages.max_age is not None and (ages.max_age < 8 or ages.max_age > 18):
        issues.append(
            ValidationIssue(field="ages.max_age", severity="warning", message=f"unusual maximum age {ages.max_age}")
        )

    standard = facts.hours.standard_range
    if standard and not HOURS_SHAPE.match(standard.strip()):
        issues.append(
            ValidationIssue(
                field="hours.standard_range",
                severity="info",
                message=f"unrecognized hours format {standard!r}",
            )
        )

    for path in required or []:
        if not field_present(facts, path):
            issues.append(
                ValidationIssue(field=path, severity="error", message="required field missing")
            )

    return ValidationReport(issues=issues)
