"""Signal type definitions for campwatch run observability."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SignalType(str, Enum):
    """All signal types emitted during a pipeline run."""

    PHASE_TRANSITION = "PHASE_TRANSITION"
    STRATEGY_STARTED = "STRATEGY_STARTED"
    STRATEGY_COMPLETE = "STRATEGY_COMPLETE"
    RETRY_ATTEMPT = "RETRY_ATTEMPT"
    OBSTRUCTION_DETECTED = "OBSTRUCTION_DETECTED"
    ENTITY_COMPLETE = "ENTITY_COMPLETE"
    CHANGE_DETECTED = "CHANGE_DETECTED"
    RUN_COMPLETE = "RUN_COMPLETE"
    RUN_FAILED = "RUN_FAILED"


class Signal(BaseModel):
    """An immutable event emitted during a run.

    Signals are append-only and cannot be modified after emission.
    """

    sequence: int = Field(description="Monotonic sequence number within the run")
    signal_type: SignalType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}
