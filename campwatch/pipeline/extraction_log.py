"""Per-strategy extraction effectiveness across runs."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from campwatch.extraction.models import StrategyResult
from campwatch.pipeline.manager import atomic_write_json, read_json

logger = logging.getLogger(__name__)

MAX_ATTEMPTS_PER_CAMP = 20


class StrategyStats(BaseModel):
    attempts: int = 0
    successes: int = 0
    avg_quality: float = 0.0


class Attempt(BaseModel):
    strategy: str
    success: bool
    quality: int = 0
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CampHistory(BaseModel):
    attempts: list[Attempt] = Field(default_factory=list)
    best_strategy: str | None = None
    best_quality: int = 0


class ExtractionLogData(BaseModel):
    strategies: dict[str, StrategyStats] = Field(default_factory=dict)
    camps: dict[str, CampHistory] = Field(default_factory=dict)
    last_updated: datetime | None = None


class ExtractionLog:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._data = ExtractionLogData()

    @property
    def data(self) -> ExtractionLogData:
        return self._data

    def record(self, entity_id: str, result: StrategyResult) -> None:
        strategy = result.strategy.value
        stats = self._data.strategies.setdefault(strategy, StrategyStats())
        # Running mean over all attempts, failures count as quality 0.
        stats.avg_quality = (stats.avg_quality * stats.attempts + result.quality) / (stats.attempts + 1)
        stats.attempts += 1
        if result.success:
            stats.successes += 1

        history = self._data.camps.setdefault(entity_id, CampHistory())
        history.attempts.append(
            Attempt(strategy=strategy, success=result.success, quality=result.quality)
        )
        history.attempts = history.attempts[-MAX_ATTEMPTS_PER_CAMP:]
        if result.success and result.quality > history.best_quality:
            history.best_quality = result.quality
            history.best_strategy = strategy

        self._data.last_updated = datetime.now(timezone.utc)

    def effectiveness(self) -> dict[str, dict[str, float]]:
        """``{strategy: {attempts, avg_quality}}`` as reported weekly."""
        return {
            name: {"attempts": stats.attempts, "avg_quality": round(stats.avg_quality, 1)}
            for name, stats in sorted(self._data.strategies.items())
        }

    def load(self) -> None:
        self._data = ExtractionLogData()
        if self._path is None:
            return
        raw = read_json(self._path, {})
        try:
            self._data = ExtractionLogData.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Starting a fresh extraction log: %s", exc)

    def save(self) -> None:
        if self._path is None:
            return
        atomic_write_json(self._path, self._data.model_dump(mode="json"))
