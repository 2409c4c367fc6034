"""Pattern registry for heuristic camp-fact extraction.

Every regex used by the heuristic extractor lives here so each one can be
exercised in isolation. Price patterns are registry entries carrying the
tier they fill and the postcondition a matched number must satisfy.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from campwatch.extraction.models import MAX_PRICE, MIN_PRICE

_I = re.IGNORECASE


def in_price_range(value: int) -> bool:
    return MIN_PRICE <= value <= MAX_PRICE


def dollars(amount: str) -> int:
    """Whole dollars from a captured amount such as "350" or "1,200"."""
    return int(amount.replace(",", ""))


@dataclass(frozen=True)
class PricePattern:
    """One labelled price pattern; group 1 captures the dollar amount."""

    name: str
    pattern: re.Pattern[str]
    tier: str
    postcondition: Callable[[int], bool] = in_price_range

    def first_value(self, text: str) -> int | None:
        """Apply the pattern first-match-only and check the postcondition."""
        match = self.pattern.search(text)
        if not match:
            return None
        value = dollars(match.group(1))
        return value if self.postcondition(value) else None


def _price(name: str, regex: str, tier: str) -> PricePattern:
    return PricePattern(name=name, pattern=re.compile(regex, _I), tier=tier)


# Order matters: more specific patterns first, first accepted value per tier wins.
PRICE_PATTERNS: tuple[PricePattern, ...] = (
    _price("per-week", r"\$\s*(\d{1,2},\d{3}|\d{2,4})(?:\s*[-/]|\s+(?:per|a|each)\s+)week", "weekly"),
    _price("weekly-label", r"weekly(?:\s+rate)?[:\s]+\$?\s*(\d{1,2},\d{3}|\d{2,4})", "weekly"),
    _price("for-the-week", r"\$\s*(\d{1,2},\d{3}|\d{2,4})\s+(?:for\s+)?(?:the\s+|one\s+|each\s+)?week", "weekly"),
    _price("cost-with-week", r"cost[:\s]+\$?\s*(\d{1,2},\d{3}|\d{2,4})(?=.*week)", "weekly"),
    _price("per-day", r"\$\s*(\d{1,2},\d{3}|\d{2,4})(?:\s*[-/]|\s+(?:per|a)\s+)day", "daily"),
    _price("per-session", r"\$\s*(\d{1,2},\d{3}|\d{2,4})(?:\s*[-/]|\s+(?:per|a)\s+)session", "session"),
    _price("session-fee", r"session\s+(?:fee|cost|price)[:\s]+\$?\s*(\d{1,2},\d{3}|\d{2,4})", "session"),
    _price(
        "half-day-label",
        r"(?:half[-\s]?day|am\s+session|pm\s+session|morning|afternoon)[:\s]*\$?\s*(\d{1,2},\d{3}|\d{2,4})",
        "half_day",
    ),
    _price("half-day-suffix", r"\$\s*(\d{1,2},\d{3}|\d{2,4})\s+(?:for\s+)?half[-\s]?day", "half_day"),
    _price("full-day-label", r"(?:full[-\s]?day|all[-\s]?day)[:\s]*\$?\s*(\d{1,2},\d{3}|\d{2,4})", "full_day"),
    _price("full-day-suffix", r"\$\s*(\d{1,2},\d{3}|\d{2,4})\s+(?:for\s+)?(?:full|all)[-\s]?day", "full_day"),
    _price(
        "early-bird-label",
        r"early\s*(?:bird|registration|pricing)?[:\s]*\$?\s*(\d{1,2},\d{3}|\d{2,4})",
        "early_bird",
    ),
    _price("save-amount", r"\$\s*(\d{1,2},\d{3}|\d{2,4}).*save\s+\$", "early_bird"),
    _price("member-label", r"(?<!non-)(?<!non )\bmembers?\s*(?:price|rate|fee)?[:\s]+\$?\s*(\d{1,2},\d{3}|\d{2,4})", "member"),
    _price("member-suffix", r"\$\s*(\d{1,2},\d{3}|\d{2,4})\s+(?:for\s+)?members?", "member"),
    _price(
        "non-member-label",
        r"(?:non[-\s]?members?|general\s+public)[:\s]+\$?\s*(\d{1,2},\d{3}|\d{2,4})",
        "non_member",
    ),
    _price(
        "extended-care-fee",
        r"(?:extended|before|after)[-\s]?care[:\s]*\$?\s*(\d{1,2},\d{3}|\d{2,4})",
        "extended_care",
    ),
    _price("early-drop-late-pick", r"(?:early\s+drop|late\s+pick)[:\s-]*\$?\s*(\d{1,2},\d{3}|\d{2,4})", "extended_care"),
)

# Fallbacks used only when neither a weekly nor a session rate was found.
CONTEXTUAL_PRICE = re.compile(
    r"(?:camp|week|session|program|tuition|fee|cost|rate)[^$]{0,40}\$\s*(\d{1,2},\d{3}|\d{2,4})", _I
)
CONTEXTUAL_PRICE_RANGE = (100, 2000)
ANY_PRICE = re.compile(r"\$\s*(\d{1,2},\d{3}|\d{3,4})(?!\d)")
MEDIAN_PRICE_RANGE = (150, 800)

# --- Sessions ---

MONTHS = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)

WEEK_SESSION = re.compile(
    r"(?:week|session)\s*#?\s*(\d+)[:\s]+([A-Z][a-z]+)\s+(\d{1,2})\s*[-–]\s*"
    r"(?:([A-Z][a-z]+)\s+)?(\d{1,2})(?:,?\s*(\d{4}))?",
    _I,
)
SHORT_RANGE = re.compile(
    r"(June|July|August)\s+(\d{1,2})\s*[-–]\s*(\d{1,2})(?:,?\s*(\d{4}))?", _I
)
NUMERIC_RANGE = re.compile(r"(\d{1,2})/(\d{1,2})\s*[-–]\s*(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?")


def summer_year_pattern(year: int) -> re.Pattern[str]:
    return re.compile(rf"summer\s*(?:camp)?\s*{year}", _I)


SUMMER_START = re.compile(r"(?:begins?|starts?|runs?|from)\s*(?:on\s+)?([A-Z][a-z]+\s+\d{1,2})", _I)
REGISTRATION_OPENS = re.compile(
    r"registration\s+(?:opens?|begins?|starts?)\s*(?:on\s+)?([A-Z][a-z]+\s+\d{1,2}(?:,?\s*\d{4})?)",
    _I,
)

# --- Hours ---

_AM = r"(?:am|a\.m\.?)"
_PM = r"(?:pm|p\.m\.?)"
_CLOCK = r"\d{1,2}(?::\d{2})?"

STANDARD_HOURS = re.compile(rf"({_CLOCK}\s*{_AM})\s*[-–to]+\s*({_CLOCK}\s*{_PM})", _I)
DROP_OFF = re.compile(
    rf"drop[-\s]?off[:\s]+({_CLOCK}\s*{_AM}?)\s*[-–to]+\s*({_CLOCK}\s*{_AM}?)", _I
)
PICK_UP = re.compile(
    rf"pick[-\s]?up[:\s]+({_CLOCK}\s*{_PM}?)\s*[-–to]+\s*({_CLOCK}\s*{_PM}?)", _I
)
EXTENDED_BEFORE = re.compile(
    rf"(?:early\s+drop[-\s]?off|before[-\s]?care|am\s+care)[:\s]+(?:from\s+|starting\s+at\s+)?"
    rf"({_CLOCK}\s*{_AM}?)",
    _I,
)
EXTENDED_AFTER = re.compile(
    rf"(?:extended\s+(?:day|care)|late\s+pick[-\s]?up|after[-\s]?care|pm\s+care)"
    rf"(?:[:\s]+|[^.\d]{{0,30}}?\b(?:until|till|to)\s+)({_CLOCK}\s*{_PM})",
    _I,
)
TIME_TOKEN = re.compile(rf"{_CLOCK}\s*(?:{_AM}|{_PM})", _I)

# --- Extended care ---

CARE_NEGATIVE_TERMS = (
    "no extended",
    "not available",
    "no before",
    "no after",
    "does not offer extended",
    "no early drop",
)
CARE_POSITIVE_TERMS = (
    "extended care",
    "extended day",
    "before care",
    "after care",
    "aftercare",
    "beforecare",
    "early drop-off",
    "late pick-up",
    "am care",
    "pm care",
    "before school",
    "after school",
    "early bird drop",
    "extended hours",
    "wrap-around care",
)
CARE_CONTEXT_BEFORE = 20
CARE_CONTEXT_AFTER = 100
CARE_COST = re.compile(r"\$\s*(\d{1,2},\d{3}|\d{2,4})")

# --- Activities (closed vocabulary) ---

ACTIVITY_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(regex, _I), label)
    for regex, label in (
        # Sports
        (r"\b(?:swimming|swim lessons?)\b", "Swimming"),
        (r"\bsoccer\b", "Soccer"),
        (r"\bbasketball\b", "Basketball"),
        (r"\btennis\b", "Tennis"),
        (r"\bgolf\b", "Golf"),
        (r"\barchery\b", "Archery"),
        (r"\b(?:rock climbing|climbing wall)\b", "Rock Climbing"),
        (r"\b(?:kayaking|canoeing|paddling)\b", "Kayaking"),
        (r"\b(?:surfing|boogie board)\b", "Surfing"),
        (r"\b(?:horseback|horse riding|equestrian)\b", "Horseback Riding"),
        # Arts
        (r"\barts?\s*(?:&|and)?\s*crafts?\b", "Arts & Crafts"),
        (r"\b(?:painting|drawing|art class)\b", "Visual Arts"),
        (r"\b(?:pottery|ceramics)\b", "Pottery"),
        (r"\b(?:music|singing|instruments?)\b", "Music"),
        (r"\b(?:dance|dancing|ballet|hip hop)\b", "Dance"),
        (r"\b(?:theater|theatre|drama|acting)\b", "Theater"),
        (r"\b(?:photography|filmmaking|video)\b", "Photography/Film"),
        # STEM
        (r"\b(?:coding|programming|computer)\b", "Coding"),
        (r"\b(?:robotics|robots?)\b", "Robotics"),
        (r"\b(?:science|experiments?|lab)\b", "Science"),
        (r"\b(?:stem|steam)\b", "STEM"),
        (r"\b(?:engineering|building|construction)\b", "Engineering"),
        # Nature
        (r"\b(?:hiking|hikes?|nature walks?|trails?)\b", "Hiking"),
        (r"\b(?:camping|outdoor adventure)\b", "Camping"),
        (r"\b(?:gardening|farming|agriculture)\b", "Gardening"),
        (r"\b(?:animals?|wildlife|zoo)\b", "Animal Education"),
        (r"\b(?:marine|ocean|beach)\b", "Marine Science"),
        # Other
        (r"\b(?:cooking|culinary|baking)\b", "Cooking"),
        (r"\b(?:yoga|meditation|mindfulness)\b", "Yoga/Mindfulness"),
        (r"\b(?:martial arts?|karate|judo)\b", "Martial Arts"),
        (r"\b(?:field trips?|excursions?)\b", "Field Trips"),
        (r"\b(?:games?|play|recreation)\b", "Games & Recreation"),
    )
)
ACTIVITY_CATEGORIES = frozenset(label for _, label in ACTIVITY_PATTERNS)

# --- Ages ---

AGE_RANGE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"ages?\s*(\d{1,2})\s*[-–—to]+\s*(\d{1,2})", _I),
    re.compile(r"(\d{1,2})\s*(?:to|[-–—])\s*(\d{1,2})\s*years?\s*old", _I),
    re.compile(r"(?:children|kids?|campers?)\s*(?:ages?)?\s*(\d{1,2})\s*(?:to|[-–—])\s*(\d{1,2})", _I),
    re.compile(r"(\d{1,2})\s*[-–—]\s*(\d{1,2})\s*(?:yrs?|years?)\b", _I),
)
AGE_AND_UP = re.compile(r"ages?\s*(\d{1,2})\s*(?:and\s*(?:up|older)|\+)", _I)
AGE_GROUP = re.compile(
    r"([A-Za-z]+(?:\s+[A-Za-z]+)?)\s*[:\s]+\s*(?:ages?\s*)?(\d{1,2})\s*[-–to]\s*(\d{1,2})(?:\s*years?)?",
    _I,
)
AGE_GROUP_REJECT_WORDS = frozenset(
    MONTHS + ("session", "week", "day", "pm", "am", "hours", "image", "age", "ages", "grades")
)
MAX_AGE_GROUPS = 10

# --- Registration / availability ---

REGISTRATION_OPEN = re.compile(
    r"register\s*now|registration\s*(?:is\s+)?open\b|sign\s*up\s*today|enroll\s*now|book\s*now", _I
)
REGISTRATION_CLOSED = re.compile(
    r"registration\s*(?:is\s+)?closed|all\s+sessions\s+(?:are\s+)?(?:sold\s*out|full)", _I
)
WAITLIST = re.compile(r"waitlist|wait\s*list|waiting\s*list", _I)
OPENING_DATE = re.compile(
    r"registration\s*(?:opens?|begins?|starts?)[:\s]*(?:on\s+)?([A-Za-z]+\s+\d{1,2}(?:,?\s*\d{4})?)", _I
)

# --- Contact ---

EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PREFERRED_EMAIL = re.compile(r"camp|summer|info|contact|register|enroll|admin", _I)
IGNORED_EMAIL = re.compile(
    r"unsubscribe|noreply|no-reply|privacy|support@google|support@facebook", _I
)
PHONE = re.compile(r"\(?\b\d{3}\)?[-.\s]?\d{3}[-.\s]\d{4}\b")
