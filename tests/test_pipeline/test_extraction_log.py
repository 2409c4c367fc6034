"""Tests for per-strategy effectiveness tracking."""

from campwatch.extraction.models import AcquireMode, StrategyResult
from campwatch.pipeline.extraction_log import MAX_ATTEMPTS_PER_CAMP, ExtractionLog


def _result(mode, quality, success=True):
    return StrategyResult(strategy=mode, success=success, quality=quality)


class TestExtractionLog:
    def test_running_average_counts_failures_as_zero(self):
        log = ExtractionLog()
        log.record("zoo-camp", _result(AcquireMode.RENDERED, 80))
        log.record("art-camp", _result(AcquireMode.RENDERED, 0, success=False))
        log.record("zoo-camp", _result(AcquireMode.STATIC_FETCH, 45))

        assert log.effectiveness() == {
            "rendered": {"attempts": 2, "avg_quality": 40.0},
            "static-fetch": {"attempts": 1, "avg_quality": 45.0},
        }
        assert log.data.strategies["rendered"].successes == 1

    def test_best_strategy_per_camp(self):
        log = ExtractionLog()
        log.record("zoo-camp", _result(AcquireMode.STATIC_FETCH, 45))
        log.record("zoo-camp", _result(AcquireMode.RENDERED, 75))
        log.record("zoo-camp", _result(AcquireMode.LLM, 60))
        history = log.data.camps["zoo-camp"]
        assert history.best_strategy == "rendered"
        assert history.best_quality == 75
        assert "unknown" not in log.data.camps

    def test_history_is_bounded(self):
        log = ExtractionLog()
        for _ in range(MAX_ATTEMPTS_PER_CAMP + 5):
            log.record("zoo-camp", _result(AcquireMode.RENDERED, 50))
        assert len(log.data.camps["zoo-camp"].attempts) == MAX_ATTEMPTS_PER_CAMP

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "extraction-log.json"
        log = ExtractionLog(path)
        log.record("zoo-camp", _result(AcquireMode.RENDERED, 70))
        log.save()

        reloaded = ExtractionLog(path)
        reloaded.load()
        assert reloaded.effectiveness() == {"rendered": {"attempts": 1, "avg_quality": 70.0}}

    def test_corrupt_file_starts_fresh(self, tmp_path):
        path = tmp_path / "extraction-log.json"
        path.write_text('{"strategies": "oops"}')
        log = ExtractionLog(path)
        log.load()
        assert log.effectiveness() == {}
