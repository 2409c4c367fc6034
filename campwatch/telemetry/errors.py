"""Error taxonomy and structured error telemetry helpers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Canonical error codes for operational telemetry."""

    FETCH_NETWORK_ERROR = "FETCH_NETWORK_ERROR"
    FETCH_TIMEOUT = "FETCH_TIMEOUT"
    URL_REJECTED = "URL_REJECTED"
    SUBPAGE_FAILED = "SUBPAGE_FAILED"
    HARD_BLOCK_DETECTED = "HARD_BLOCK_DETECTED"
    STRATEGY_EXHAUSTED = "STRATEGY_EXHAUSTED"
    STRATEGY_FAILED = "STRATEGY_FAILED"
    ENTITY_FAILED = "ENTITY_FAILED"
    LLM_INITIALIZATION_FAILED = "LLM_INITIALIZATION_FAILED"
    LLM_EXTRACTION_FAILED = "LLM_EXTRACTION_FAILED"
    LLM_RESPONSE_INVALID = "LLM_RESPONSE_INVALID"
    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    CACHE_LOAD_FAILED = "CACHE_LOAD_FAILED"
    SIGNAL_SUBSCRIBER_FAILURE = "SIGNAL_SUBSCRIBER_FAILURE"
    BROWSER_CLEANUP_FAILED = "BROWSER_CLEANUP_FAILED"


class CampwatchError(Exception):
    """Base class for campwatch errors."""


class NetworkError(CampwatchError):
    """DNS, TCP, TLS, or HTTP status failure while loading a page."""


class FetchTimeout(CampwatchError):
    """A page load or request exceeded its timeout budget."""


class ParseError(CampwatchError):
    """Unexpected JSON, HTML, CSV, or accessibility-tree content."""


class InvariantViolation(CampwatchError):
    """An impossible state was reached; aborts the current entity task."""


class PersistenceError(CampwatchError):
    """A snapshot, log, or report file could not be written."""


RETRYABLE_ERRORS = (NetworkError, FetchTimeout)


def emit_structured_error(
    logger: logging.Logger,
    *,
    code: ErrorCode,
    message: str,
    suppressed: bool,
    run_id: str | None = None,
    entity_id: str | None = None,
    strategy: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a structured telemetry event via logging."""
    logger.error(
        "campwatch_error %s: %s",
        code.value,
        message,
        extra={
            "error_code": code,
            "error_message": message,
            "suppressed": suppressed,
            "run_id": run_id,
            "entity_id": entity_id,
            "strategy": strategy,
            "details": details or {},
        },
    )
