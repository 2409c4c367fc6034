"""Tests for pipeline store persistence and retention."""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone

import pytest

from campwatch.extraction.models import CampRecord, Change, ChangeSet
from campwatch.pipeline.manager import PipelineStore, RunMetadata, atomic_write_json, read_json
from campwatch.pipeline.report import WeeklyReport
from campwatch.telemetry.errors import ParseError

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _change_set(entity_id: str, detected_at: datetime) -> ChangeSet:
    return ChangeSet(
        entity_id=entity_id,
        has_changes=True,
        changes=[Change(field="price", old=350, new=375, significance="high")],
        detected_at=detected_at,
    )


def test_snapshot_round_trip(tmp_path) -> None:
    store = PipelineStore(tmp_path)
    records = [CampRecord(id="zoo-camp", name="Zoo Camp", base_url="https://zoo.example", last_quality=75)]

    store.save_snapshot(records)

    assert store.load_snapshot() == records
    assert not (tmp_path / "camps.json.tmp").exists()


def test_missing_snapshot_is_empty(tmp_path) -> None:
    assert PipelineStore(tmp_path).load_snapshot() == []


def test_corrupt_snapshot_raises(tmp_path) -> None:
    (tmp_path / "camps.json").write_text("[{broken")

    with pytest.raises(ParseError):
        PipelineStore(tmp_path).load_snapshot()


def test_change_log_prunes_past_retention(tmp_path) -> None:
    store = PipelineStore(tmp_path, change_log_days=90)
    store.append_changes([_change_set("old-camp", NOW - timedelta(days=120))], now=NOW - timedelta(days=100))

    appended = store.append_changes(
        [_change_set("zoo-camp", NOW), ChangeSet(entity_id="quiet-camp")],
        now=NOW,
    )

    assert appended == 1
    assert [entry["entity_id"] for entry in store.load_change_log()] == ["zoo-camp"]


def test_pipeline_log_prunes_past_retention(tmp_path) -> None:
    store = PipelineStore(tmp_path, pipeline_log_days=30)
    old = RunMetadata(run_id="run_old", started_at=NOW, timestamp=NOW - timedelta(days=45))
    store.append_pipeline_run(old, now=NOW - timedelta(days=45))

    store.append_pipeline_run(RunMetadata(run_id="run_new", started_at=NOW, timestamp=NOW), now=NOW)

    assert [entry.run_id for entry in store.load_pipeline_log()] == ["run_new"]


def test_report_is_written_by_day(tmp_path) -> None:
    store = PipelineStore(tmp_path)

    path = store.write_report(WeeklyReport(total_entities=3), day=date(2026, 6, 1))

    assert path == tmp_path / "reports" / "report-2026-06-01.json"
    assert json.loads(path.read_text())["total_entities"] == 3


def test_read_json_tolerates_corruption(tmp_path) -> None:
    path = tmp_path / "queue.json"
    path.write_text("not json")

    assert read_json(path, []) == []
    atomic_write_json(path, [1, 2])
    assert read_json(path, []) == [1, 2]
