"""Load the camp population from the baseline spreadsheet export."""

from __future__ import annotations

import csv
import logging
import re
from pathlib import Path

from campwatch.config.url_policy import normalize_website
from campwatch.extraction.models import BaselineFacts, CampRecord
from campwatch.telemetry.errors import ParseError

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = (
    "camp_name",
    "website",
    "min_age",
    "max_age",
    "price_min",
    "price_max",
    "hours",
    "extended_care",
    "contact_email",
    "contact_phone",
)
INT_COLUMNS = ("min_age", "max_age", "price_min", "price_max")


def slugify(name: str) -> str:
    """``"Bob's Zoo Camp!"`` -> ``"bob-s-zoo-camp"``."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _parse_int(raw: str, column: str, camp: str) -> int | None:
    cleaned = raw.replace("$", "").replace(",", "").strip()
    if not cleaned:
        return None
    try:
        return int(float(cleaned))
    except ValueError:
        logger.warning("Ignoring unparsable %s %r for %s", column, raw, camp)
        return None


def parse_row(row: dict[str, str | None]) -> CampRecord | None:
    cells = {k.strip(): (v or "").strip() for k, v in row.items() if k}
    name = cells.get("camp_name", "")
    if not name:
        return None

    facts: dict[str, int | str | None] = {}
    for column in INT_COLUMNS:
        facts[column] = _parse_int(cells.get(column, ""), column, name)
    for column in ("hours", "extended_care", "contact_email", "contact_phone"):
        facts[column] = cells.get(column) or None

    return CampRecord(
        id=slugify(name),
        name=name,
        base_url=normalize_website(cells.get("website", "")),
        baseline=BaselineFacts(**facts),
    )


def load_baseline(path: Path) -> list[CampRecord]:
    """Read the baseline CSV; rows without a camp name are skipped."""
    try:
        with open(path, newline="", encoding="utf-8-sig") as f:
            reader = csv.DictReader(f)
            header = [h.strip() for h in reader.fieldnames or []]
            missing = [c for c in REQUIRED_COLUMNS if c not in header]
            if missing:
                raise ParseError(f"Baseline {path} is missing columns: {', '.join(missing)}")
            records = [r for r in (parse_row(row) for row in reader) if r is not None]
    except (OSError, csv.Error, UnicodeDecodeError) as exc:
        raise ParseError(f"Baseline {path} is unreadable: {exc}") from exc

    seen: set[str] = set()
    unique = []
    for record in records:
        if record.id in seen:
            logger.warning("Duplicate camp %s in baseline; keeping the first row", record.id)
            continue
        seen.add(record.id)
        unique.append(record)
    logger.info("Loaded %d camps from %s", len(unique), path)
    return unique
