"""Per-camp memo of the last run result, tagged with a content hash.

An entry is served while it is younger than the TTL. Each successful
run replaces it, recording the hash of the page text it was built from.
"""

from __future__ import annotations

import hashlib
import logging
import time
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

from campwatch.pipeline.manager import atomic_write_json, read_json
from campwatch.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


def content_hash(text: str) -> str:
    """Collision-resistant digest of accumulated page text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


class CacheEntry(BaseModel):
    hash: str
    timestamp_ms: int
    payload: dict[str, Any] = Field(default_factory=dict)


class ContentCache:
    """Whole-map JSON cache, loaded once per run and saved at shutdown."""

    def __init__(
        self,
        path: Path | None = None,
        ttl_hours: float = 24,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = path
        self._ttl_ms = int(ttl_hours * 3600 * 1000)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _age_ok(self, entry: CacheEntry) -> bool:
        return self._now_ms() - entry.timestamp_ms <= self._ttl_ms

    def get(self, entity_id: str) -> dict[str, Any] | None:
        """Return the cached payload iff the entry is within TTL."""
        entry = self._entries.get(entity_id)
        if entry is None or not self._age_ok(entry):
            return None
        return entry.payload

    def put(self, entity_id: str, digest: str, payload: dict[str, Any]) -> None:
        self._entries[entity_id] = CacheEntry(
            hash=digest,
            timestamp_ms=self._now_ms(),
            payload=payload,
        )

    def invalidate(self, entity_id: str) -> None:
        self._entries.pop(entity_id, None)

    def load(self) -> int:
        """Best-effort load: a missing or corrupt file yields an empty cache."""
        self._entries = {}
        if self._path is None:
            return 0
        raw = read_json(self._path, {})
        if not isinstance(raw, dict):
            emit_structured_error(
                logger,
                code=ErrorCode.CACHE_LOAD_FAILED,
                message="cache file is not a JSON object",
                suppressed=True,
                details={"path": str(self._path)},
            )
            return 0
        for entity_id, item in raw.items():
            try:
                self._entries[entity_id] = CacheEntry.model_validate(item)
            except ValidationError:
                logger.debug("Dropping malformed cache entry for %s", entity_id)
        logger.info("Loaded %d cached entries", len(self._entries))
        return len(self._entries)

    def save(self) -> None:
        if self._path is None:
            return
        atomic_write_json(
            self._path,
            {k: v.model_dump(mode="json") for k, v in self._entries.items()},
        )
