"""Pipeline store — persisted state of the camp pipeline.

Owns every file a run reads or writes under the data directory:

1. Snapshot: ``camps.json``, the full set of CampRecords
2. Change log: ``change-log.json``, pruned to the retention window
3. Pipeline log: ``pipeline-log.json``, one summary per run
4. Weekly report: ``reports/report-YYYY-MM-DD.json``
5. Review queue, extraction log, and content cache files

Contract: every write is atomic. A temp file is written and renamed over
the target, so readers see either the previous or the new document.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from campwatch.extraction.models import CampRecord, ChangeSet
from campwatch.telemetry.errors import ErrorCode, ParseError, PersistenceError, emit_structured_error

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` via temp file + rename.

    Raises PersistenceError if the file cannot be written; the previous
    content of ``path`` is left untouched.
    """
    temp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(text)
        temp_path.replace(path)
    except OSError as exc:
        if temp_path.exists():
            temp_path.unlink()
        emit_structured_error(
            logger,
            code=ErrorCode.PERSISTENCE_FAILED,
            message=str(exc),
            suppressed=False,
            details={"path": str(path)},
        )
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc


def atomic_write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2, default=str))


def read_json(path: Path, default: Any) -> Any:
    """Best-effort JSON load: a missing or corrupt file yields ``default``."""
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable %s: %s", path, exc)
        return default


class EntitySummary(BaseModel):
    """Per-camp line of a pipeline run, enough to rebuild its report."""

    entity_id: str
    name: str
    status: str
    quality: int = 0
    best_strategy: str | None = None
    strategy_qualities: dict[str, int] = Field(default_factory=dict)


class RunMetadata(BaseModel):
    """Summary of a completed run, appended to the pipeline log."""

    run_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime
    duration_s: float = 0.0
    strategies: list[str] = Field(default_factory=list)
    total_entities: int = 0
    successful: int = 0
    cached: int = 0
    failed: int = 0
    avg_quality: int = 0
    changes_detected: int = 0
    results: list[EntitySummary] = Field(default_factory=list)


class PipelineStore:
    """File-backed persistence for snapshots, logs, and reports."""

    def __init__(
        self,
        data_dir: Path,
        change_log_days: int = 90,
        pipeline_log_days: int = 30,
    ) -> None:
        self._data_dir = data_dir
        self._change_log_days = change_log_days
        self._pipeline_log_days = pipeline_log_days

        self.snapshot_path = data_dir / "camps.json"
        self.change_log_path = data_dir / "change-log.json"
        self.pipeline_log_path = data_dir / "pipeline-log.json"
        self.review_queue_path = data_dir / "review-queue.json"
        self.cache_path = data_dir / "scrape-cache.json"
        self.extraction_log_path = data_dir / "extraction-log.json"
        self.reports_dir = data_dir / "reports"
        self.runs_dir = data_dir / "runs"

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def ledger_path(self, run_id: str) -> Path:
        return self.runs_dir / run_id / "signals.jsonl"

    def report_path(self, day: date) -> Path:
        return self.reports_dir / f"report-{day.isoformat()}.json"

    # --- Snapshot ---

    def load_snapshot(self) -> list[CampRecord]:
        """Load the previous snapshot.

        A missing file is an empty snapshot. A corrupt one raises ParseError
        so the run stops before it could overwrite it.
        """
        if not self.snapshot_path.exists():
            return []
        try:
            raw = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
            return [CampRecord.model_validate(item) for item in raw]
        except (OSError, json.JSONDecodeError, ValidationError, TypeError) as exc:
            raise ParseError(f"Snapshot {self.snapshot_path} is unreadable: {exc}") from exc

    def save_snapshot(self, records: list[CampRecord]) -> None:
        atomic_write_json(
            self.snapshot_path,
            [record.model_dump(mode="json") for record in records],
        )

    # --- Change log ---

    def load_change_log(self) -> list[dict[str, Any]]:
        return read_json(self.change_log_path, [])

    def append_changes(self, change_sets: list[ChangeSet], now: datetime | None = None) -> int:
        """Append change sets with changes, pruning entries past retention.

        Returns the number of entries appended.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self._change_log_days)
        log = [
            entry
            for entry in self.load_change_log()
            if _parse_ts(entry.get("detected_at")) > cutoff
        ]
        new_entries = [cs.model_dump(mode="json") for cs in change_sets if cs.has_changes]
        log.extend(new_entries)
        atomic_write_json(self.change_log_path, log)
        return len(new_entries)

    # --- Pipeline log ---

    def load_pipeline_log(self) -> list[RunMetadata]:
        entries = []
        for item in read_json(self.pipeline_log_path, []):
            try:
                entries.append(RunMetadata.model_validate(item))
            except ValidationError as exc:
                logger.warning("Skipping malformed pipeline log entry: %s", exc)
        return entries

    def append_pipeline_run(self, metadata: RunMetadata, now: datetime | None = None) -> None:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self._pipeline_log_days)
        log = [
            entry.model_dump(mode="json")
            for entry in self.load_pipeline_log()
            if entry.timestamp > cutoff
        ]
        log.append(metadata.model_dump(mode="json"))
        atomic_write_json(self.pipeline_log_path, log)

    # --- Report ---

    def write_report(self, report: BaseModel, day: date | None = None) -> Path:
        path = self.report_path(day or datetime.now(timezone.utc).date())
        atomic_write_text(path, report.model_dump_json(indent=2))
        return path


def _parse_ts(value: Any) -> datetime:
    """Parse an ISO timestamp; unparsable values sort as the epoch."""
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return datetime.fromtimestamp(0, tz=timezone.utc)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return datetime.fromtimestamp(0, tz=timezone.utc)
