"""Session date normalization shared by the text and structured extractors.

Every session pattern renders its dates as ``"June 16-20, 2026"`` or
``"June 30-July 3, 2026"`` so sessions found by different patterns
deduplicate on the same string.
"""

from __future__ import annotations

from datetime import date

from campwatch.extraction.patterns import MONTHS

_ABBREVIATIONS = {m[:3]: m for m in MONTHS} | {"sept": "september"}


def month_name(word: str | None) -> str | None:
    """Return the capitalized month for a full or abbreviated name."""
    if not word:
        return None
    key = word.strip().rstrip(".").lower()
    if key in MONTHS:
        return key.capitalize()
    full = _ABBREVIATIONS.get(key)
    return full.capitalize() if full else None


def month_from_number(number: int) -> str | None:
    if 1 <= number <= 12:
        return MONTHS[number - 1].capitalize()
    return None


def normalize_year(raw: str | None, default: int) -> int:
    if not raw:
        return default
    year = int(raw)
    return year + 2000 if year < 100 else year


def format_date_range(
    start_month: str,
    start_day: int,
    end_day: int,
    year: int,
    end_month: str | None = None,
) -> str:
    end_month = end_month or start_month
    end = f"{end_month} {end_day}" if end_month != start_month else str(end_day)
    return f"{start_month} {start_day}-{end}, {year}"


def format_iso_range(start: str, end: str | None = None) -> str | None:
    """Render ISO ``YYYY-MM-DD`` bounds in session form; None if unparsable."""
    try:
        first = date.fromisoformat(start[:10])
        last = date.fromisoformat(end[:10]) if end else first
    except ValueError:
        return None
    start_month = month_from_number(first.month)
    end_month = month_from_number(last.month)
    if start_month is None or end_month is None:
        return None
    if first == last:
        return f"{start_month} {first.day}, {first.year}"
    return format_date_range(start_month, first.day, last.day, first.year, end_month)
