"""campwatch configuration settings."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

ALL_STRATEGIES = ("static-fetch", "rendered", "accessibility", "screenshot", "llm")
DEFAULT_STRATEGIES = ("static-fetch", "rendered")


def _optional_int_env(var_name: str) -> int | None:
    raw = os.getenv(var_name, "").strip()
    return int(raw) if raw else None


class RateLimitConfig(BaseModel):
    """Per-host politeness delays."""

    base_delay_ms: int = 500
    max_delay_ms: int = 30000
    max_failure_exponent: int = 5

    @field_validator("base_delay_ms", "max_delay_ms")
    @classmethod
    def _validate_delay(cls, value: int) -> int:
        if value < 0:
            raise ValueError("delays must be >= 0")
        return value


class CacheConfig(BaseModel):
    """Content cache configuration."""

    enabled: bool = True
    ttl_hours: float = Field(
        default_factory=lambda: float(os.getenv("CAMPWATCH_CACHE_TTL_HOURS", "24"))
    )


class RetryConfig(BaseModel):
    """Retry budget per strategy attempt."""

    static_retries: int = 1
    default_retries: int = 2
    backoff_ms: int = 2000


class TimeoutConfig(BaseModel):
    """Timeout budgets per request and per run."""

    static_fetch_s: float = 20
    page_load_s: float = 30
    sitemap_s: float = 5
    settle_ms: int = 3000
    llm_s: float = 60
    run_deadline_s: int | None = Field(
        default_factory=lambda: _optional_int_env("CAMPWATCH_RUN_DEADLINE_S")
    )


class BrowserConfig(BaseModel):
    """Browser layer configuration."""

    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 800
    user_agent: str = DESKTOP_USER_AGENT
    locale: str = "en-US"
    scroll_steps: int = 3
    scroll_px: int = 500


class DiscoveryConfig(BaseModel):
    """Subpage discovery limits."""

    max_pages: int = 5
    max_sitemap_urls: int = 10


class LLMConfig(BaseModel):
    """Gemini configuration for the semantic extractor."""

    api_key: str = Field(
        default_factory=lambda: os.getenv("CAMPWATCH_LLM_API_KEY", "")
        or os.getenv("GOOGLE_API_KEY", "")
    )
    project_id: str = Field(default_factory=lambda: os.getenv("VERTEX_PROJECT_ID", ""))
    location: str = Field(default_factory=lambda: os.getenv("VERTEX_LOCATION", "us-central1"))
    model: str = "gemini-2.5-flash"
    max_chars_per_page: int = 6000

    @property
    def configured(self) -> bool:
        return bool(self.api_key or self.project_id)


class PipelineConfig(BaseModel):
    """Data pipeline configuration."""

    data_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("CAMPWATCH_DATA_DIR", "./data"))
    )
    baseline_path: Path | None = Field(
        default_factory=lambda: Path(p) if (p := os.getenv("CAMPWATCH_BASELINE")) else None
    )
    camp_config_dir: Path | None = None
    artifact_dir: Path | None = None
    concurrency: int = 3
    review_threshold: int = 60
    change_log_days: int = 90
    pipeline_log_days: int = 30
    artifact_max_age_days: int = 7
    expected_year: int = 2026

    @field_validator("concurrency")
    @classmethod
    def _validate_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("concurrency must be >= 1")
        return value

    @property
    def resolved_camp_config_dir(self) -> Path:
        return self.camp_config_dir or self.data_dir / "camp-configs"

    @property
    def resolved_artifact_dir(self) -> Path:
        return self.artifact_dir or self.data_dir / "screenshots"


class CampwatchConfig(BaseModel):
    """Root configuration for a campwatch run."""

    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    strategies: list[str] = Field(default_factory=lambda: list(DEFAULT_STRATEGIES))
    log_level: str = Field(default_factory=lambda: os.getenv("CAMPWATCH_LOG_LEVEL", "INFO"))

    @field_validator("strategies")
    @classmethod
    def _validate_strategies(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one strategy is required")
        unknown = [s for s in value if s not in ALL_STRATEGIES]
        if unknown:
            raise ValueError(f"Unknown strategies: {', '.join(unknown)}")
        return value
