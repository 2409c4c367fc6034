"""Tests for configuration validation and environment defaults."""

from pathlib import Path

import pytest

from campwatch.config.settings import CampwatchConfig, PipelineConfig, RateLimitConfig


def test_default_strategies():
    assert CampwatchConfig().strategies == ["static-fetch", "rendered"]


def test_rejects_unknown_strategy():
    with pytest.raises(ValueError):
        CampwatchConfig(strategies=["vision"])


def test_rejects_empty_strategy_list():
    with pytest.raises(ValueError):
        CampwatchConfig(strategies=[])


def test_rejects_negative_delay():
    with pytest.raises(ValueError):
        RateLimitConfig(base_delay_ms=-1)


def test_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        PipelineConfig(concurrency=0)


def test_data_dir_from_environment(monkeypatch):
    monkeypatch.setenv("CAMPWATCH_DATA_DIR", "/srv/campwatch")
    monkeypatch.setenv("CAMPWATCH_BASELINE", "/srv/baseline.csv")
    pipeline = PipelineConfig()
    assert pipeline.data_dir == Path("/srv/campwatch")
    assert pipeline.baseline_path == Path("/srv/baseline.csv")
    assert pipeline.resolved_artifact_dir == Path("/srv/campwatch/screenshots")
    assert pipeline.resolved_camp_config_dir == Path("/srv/campwatch/camp-configs")


def test_llm_configured_only_with_credentials(monkeypatch):
    for var in ("CAMPWATCH_LLM_API_KEY", "GOOGLE_API_KEY", "VERTEX_PROJECT_ID"):
        monkeypatch.delenv(var, raising=False)
    assert CampwatchConfig().llm.configured is False
    monkeypatch.setenv("GOOGLE_API_KEY", "key")
    assert CampwatchConfig().llm.configured is True
