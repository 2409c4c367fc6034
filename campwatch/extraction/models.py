"""Extraction data models — canonical camp facts with provenance.

CanonicalFacts is a closed schema: every field group is typed, optional
values are explicit None, and the plausibility bounds (prices, ages,
session uniqueness) are enforced at construction so no component can
hold an out-of-range record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

MIN_PRICE = 20
MAX_PRICE = 3000
MIN_AGE = 3
MAX_AGE = 18
MAX_SESSIONS = 15

PRICE_TIERS = (
    "weekly",
    "daily",
    "session",
    "half_day",
    "full_day",
    "early_bird",
    "member",
    "non_member",
    "extended_care",
)

FIELD_GROUPS = (
    "pricing",
    "sessions",
    "hours",
    "extended_care",
    "ages",
    "activities",
    "registration",
    "contact",
)


class AcquireMode(str, Enum):
    """The five acquisition + extraction strategies."""

    STATIC_FETCH = "static-fetch"
    RENDERED = "rendered"
    ACCESSIBILITY = "accessibility"
    SCREENSHOT = "screenshot"
    LLM = "llm"


def plausible_price(value: int | None) -> bool:
    return value is not None and MIN_PRICE <= value <= MAX_PRICE


class Pricing(BaseModel):
    """Price tiers in whole dollars."""

    weekly: int | None = None
    daily: int | None = None
    session: int | None = None
    half_day: int | None = None
    full_day: int | None = None
    early_bird: int | None = None
    member: int | None = None
    non_member: int | None = None
    extended_care: int | None = None

    @field_validator(*PRICE_TIERS)
    @classmethod
    def _validate_range(cls, value: int | None) -> int | None:
        if value is not None and not plausible_price(value):
            raise ValueError(f"price {value} outside [{MIN_PRICE}, {MAX_PRICE}]")
        return value

    def tiers(self) -> dict[str, int]:
        """Return only the tiers that are present."""
        return {k: v for k, v in self.model_dump().items() if v is not None}

    def is_empty(self) -> bool:
        return not self.tiers()


class Session(BaseModel):
    name: str
    dates: str
    theme: str | None = None
    kind: Literal["session", "registration"] = "session"


class Hours(BaseModel):
    standard_range: str | None = None
    drop_off: str | None = None
    pick_up: str | None = None
    extended_before: str | None = None
    extended_after: str | None = None

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class ExtendedCare(BaseModel):
    """Extended care policy. ``available`` is None when unknown."""

    available: bool | None = None
    details: str | None = None
    cost: int | None = Field(default=None, ge=0)
    times: str | None = None


class AgeGroup(BaseModel):
    name: str
    min_age: int = Field(ge=0, le=MAX_AGE)
    max_age: int = Field(ge=0, le=MAX_AGE)


class Ages(BaseModel):
    min_age: int | None = Field(default=None, ge=MIN_AGE, le=MAX_AGE)
    max_age: int | None = Field(default=None, ge=MIN_AGE, le=MAX_AGE)
    groups: list[AgeGroup] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_order(self) -> Ages:
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("min_age must be <= max_age")
        return self

    def is_empty(self) -> bool:
        return self.min_age is None and self.max_age is None and not self.groups


class Registration(BaseModel):
    status: Literal["open", "closed", "waitlist", "upcoming"] | None = None
    opens_date: str | None = None
    waitlist: bool | None = None

    @property
    def is_open(self) -> bool | None:
        if self.status is None:
            return None
        return self.status == "open"

    def is_empty(self) -> bool:
        return self.status is None and self.opens_date is None and self.waitlist is None


class Contact(BaseModel):
    email: str | None = None
    phone: str | None = None
    address: str | None = None

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class PdfLink(BaseModel):
    url: str
    text: str = ""
    kind: Literal["handbook", "schedule", "registration", "policy", "packing-list", "other"] = "other"


class CanonicalFacts(BaseModel):
    """The normalized fact bundle for one camp."""

    pricing: Pricing = Field(default_factory=Pricing)
    sessions: list[Session] = Field(default_factory=list)
    hours: Hours = Field(default_factory=Hours)
    extended_care: ExtendedCare = Field(default_factory=ExtendedCare)
    ages: Ages = Field(default_factory=Ages)
    activities: list[str] = Field(default_factory=list)
    registration: Registration = Field(default_factory=Registration)
    contact: Contact = Field(default_factory=Contact)

    # Provenance
    sources: dict[str, str] = Field(default_factory=dict)
    confidence: dict[str, int] = Field(default_factory=dict)
    quality_scores: dict[str, int] = Field(default_factory=dict)
    pdf_links: list[PdfLink] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    @field_validator("sessions")
    @classmethod
    def _dedupe_sessions(cls, value: list[Session]) -> list[Session]:
        seen: set[str] = set()
        unique: list[Session] = []
        for session in value:
            if session.dates in seen:
                continue
            seen.add(session.dates)
            unique.append(session)
        return unique[:MAX_SESSIONS]

    @field_validator("activities")
    @classmethod
    def _unique_activities(cls, value: list[str]) -> list[str]:
        return sorted(set(value))

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: dict[str, int]) -> dict[str, int]:
        return {k: max(0, min(100, int(v))) for k, v in value.items()}

    def has_group(self, group: str) -> bool:
        """Whether a field group carries any extracted value."""
        if group == "pricing":
            return not self.pricing.is_empty()
        if group == "sessions":
            return bool(self.sessions)
        if group == "hours":
            return not self.hours.is_empty()
        if group == "extended_care":
            return self.extended_care.available is not None
        if group == "ages":
            return not self.ages.is_empty()
        if group == "activities":
            return bool(self.activities)
        if group == "registration":
            return not self.registration.is_empty()
        if group == "contact":
            return not self.contact.is_empty()
        raise KeyError(group)

    def present_groups(self) -> list[str]:
        return [g for g in FIELD_GROUPS if self.has_group(g)]

    def is_empty(self) -> bool:
        return not self.present_groups()


class StrategyResult(BaseModel):
    """Outcome of one strategy on one camp. Immutable once produced."""

    strategy: AcquireMode
    success: bool
    error: str | None = None
    text_length: int = 0
    extracted: CanonicalFacts = Field(default_factory=CanonicalFacts)
    quality: int = Field(default=0, ge=0, le=100)
    urls: list[str] = Field(default_factory=list)
    artifacts: list[str] = Field(default_factory=list)
    attempts: int = 1

    model_config = {"frozen": True}


class ValidationIssue(BaseModel):
    field: str
    severity: Literal["info", "warning", "error"]
    message: str


class ValidationReport(BaseModel):
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def is_valid(self) -> bool:
        return not self.errors


class Change(BaseModel):
    field: str
    old: Any = None
    new: Any = None
    significance: Literal["low", "medium", "high"]


class ChangeSet(BaseModel):
    entity_id: str
    has_changes: bool = False
    changes: list[Change] = Field(default_factory=list)
    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str | None = None

    def has_field(self, name: str) -> bool:
        return any(change.field == name for change in self.changes)


class BaselineFacts(BaseModel):
    """Facts from the baseline spreadsheet; any column may be blank."""

    min_age: int | None = None
    max_age: int | None = None
    price_min: int | None = None
    price_max: int | None = None
    hours: str | None = None
    extended_care: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None


class CampRecord(BaseModel):
    """One camp operator and the latest merged facts about it."""

    id: str
    name: str
    base_url: str
    baseline: BaselineFacts = Field(default_factory=BaselineFacts)
    extracted: CanonicalFacts | None = None
    last_quality: int | None = None
    last_strategy: str | None = None
    last_run_at: datetime | None = None
    content_hash: str | None = None
    validation: list[ValidationIssue] = Field(default_factory=list)


class RunStatus(str, Enum):
    SUCCESS = "success"
    CACHED = "cached"
    FAILED = "failed"


class RunResult(BaseModel):
    """Per-camp outcome of one run."""

    entity_id: str
    name: str
    status: RunStatus
    quality: int = 0
    best_strategy: str | None = None
    strategy_results: list[StrategyResult] = Field(default_factory=list)
    merged: CanonicalFacts | None = None
    validation: ValidationReport | None = None
    changes: ChangeSet | None = None
    urls: list[str] = Field(default_factory=list)
    content_hash: str | None = None
    error: str | None = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
