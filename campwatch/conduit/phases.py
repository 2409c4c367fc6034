"""Entity lifecycle phases — the finite state machine of one entity task."""

from __future__ import annotations

from enum import Enum

from campwatch.telemetry.errors import InvariantViolation


class EntityPhase(str, Enum):
    """Phases an entity task moves through during a run."""

    PENDING = "PENDING"
    ACQUIRE = "ACQUIRE"
    MERGE = "MERGE"
    VALIDATE = "VALIDATE"
    DETECT = "DETECT"
    COMPLETE = "COMPLETE"
    CACHED = "CACHED"
    FAIL = "FAIL"


# Valid phase transitions. Each key maps to a set of phases it can transition to.
VALID_TRANSITIONS: dict[EntityPhase, set[EntityPhase]] = {
    EntityPhase.PENDING: {EntityPhase.ACQUIRE, EntityPhase.CACHED, EntityPhase.FAIL},
    EntityPhase.ACQUIRE: {EntityPhase.MERGE, EntityPhase.FAIL},
    EntityPhase.MERGE: {EntityPhase.VALIDATE, EntityPhase.FAIL},
    EntityPhase.VALIDATE: {EntityPhase.DETECT, EntityPhase.FAIL},
    EntityPhase.DETECT: {EntityPhase.COMPLETE, EntityPhase.FAIL},
    EntityPhase.COMPLETE: set(),  # terminal
    EntityPhase.CACHED: set(),  # terminal
    EntityPhase.FAIL: set(),  # terminal
}

TERMINAL_PHASES = {EntityPhase.COMPLETE, EntityPhase.CACHED, EntityPhase.FAIL}


def check_transition(from_phase: EntityPhase, to_phase: EntityPhase) -> None:
    """Raise InvariantViolation unless ``from_phase -> to_phase`` is allowed."""
    if to_phase not in VALID_TRANSITIONS.get(from_phase, set()):
        raise InvariantViolation(
            f"Invalid transition: {from_phase.value} -> {to_phase.value}"
        )
