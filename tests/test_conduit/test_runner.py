"""Tests for the strategy runner: retries, scoring, and source hand-off."""

import pytest

from campwatch.acquire.page import PageBundle
from campwatch.acquire.rate_limiter import RateLimiter
from campwatch.ai_engine.engine import UNAVAILABLE
from campwatch.conduit.runner import StrategyRun, StrategyRunner
from campwatch.config.settings import RetryConfig
from campwatch.extraction.models import AcquireMode, CampRecord, CanonicalFacts, Pricing
from campwatch.pipeline.extraction_log import ExtractionLog
from campwatch.signals.emitter import SignalEmitter
from campwatch.signals.types import SignalType
from campwatch.telemetry.errors import FetchTimeout, InvariantViolation, NetworkError

URL = "https://zoo.example/camp"
CAMP = CampRecord(id="zoo-camp", name="Zoo Camp", base_url=URL)


class ScriptedAcquirer:
    """Pops one scripted outcome per call for each mode; exceptions are raised."""

    def __init__(self, script):
        self.script = {mode: list(outcomes) for mode, outcomes in script.items()}
        self.sources = []

    async def fetch(self, url, mode, *, entity, source=None):
        self.sources.append((mode, source))
        outcome = self.script[mode].pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class Sleeps:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def _bundle(mode, text="", **kwargs):
    return PageBundle(url=URL, mode=mode, text=text, pages=[URL], **kwargs)


def _runner(acquirer, *, emitter=None, limiter=None, log=None, sleep=None):
    return StrategyRunner(
        acquirer,
        limiter or RateLimiter(),
        log or ExtractionLog(),
        retry=RetryConfig(static_retries=1, default_retries=2, backoff_ms=2000),
        emitter=emitter,
        sleep=sleep or Sleeps(),
    )


class TestRunStrategy:
    @pytest.mark.asyncio
    async def test_scores_extracted_text(self):
        acquirer = ScriptedAcquirer({AcquireMode.STATIC_FETCH: [_bundle(AcquireMode.STATIC_FETCH, "$350/week")]})
        result, bundle = await _runner(acquirer).run_strategy(CAMP, URL, AcquireMode.STATIC_FETCH)
        assert result.success is True
        assert result.extracted.pricing.weekly == 350
        assert result.quality == 15
        assert result.attempts == 1
        assert result.urls == [URL]
        assert bundle.text == "$350/week"

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        limiter = RateLimiter()
        sleeps = Sleeps()
        acquirer = ScriptedAcquirer(
            {AcquireMode.RENDERED: [NetworkError("HTTP 503"), _bundle(AcquireMode.RENDERED, "$350/week")]}
        )
        result, _ = await _runner(acquirer, limiter=limiter, sleep=sleeps).run_strategy(
            CAMP, URL, AcquireMode.RENDERED
        )
        assert result.success is True
        assert result.attempts == 2
        assert sleeps.calls == [2.0]
        assert limiter.state(URL).failure_count == 0

    @pytest.mark.asyncio
    async def test_exhausted_retries_yield_failed_result(self):
        limiter = RateLimiter()
        sleeps = Sleeps()
        emitter = SignalEmitter("run_test")
        log = ExtractionLog()
        acquirer = ScriptedAcquirer(
            {AcquireMode.RENDERED: [FetchTimeout("slow"), NetworkError("HTTP 503"), NetworkError("HTTP 502")]}
        )
        result, bundle = await _runner(
            acquirer, emitter=emitter, limiter=limiter, log=log, sleep=sleeps
        ).run_strategy(CAMP, URL, AcquireMode.RENDERED)

        assert bundle is None
        assert result.success is False
        assert result.error == "HTTP 502"
        assert result.attempts == 3
        assert sleeps.calls == [2.0, 2.0]
        assert limiter.state(URL).failure_count == 3
        assert log.effectiveness() == {"rendered": {"attempts": 1, "avg_quality": 0.0}}
        assert [s.signal_type for s in emitter.signals] == [
            SignalType.STRATEGY_STARTED,
            SignalType.RETRY_ATTEMPT,
            SignalType.RETRY_ATTEMPT,
            SignalType.STRATEGY_COMPLETE,
        ]

    @pytest.mark.asyncio
    async def test_static_fetch_has_a_smaller_retry_budget(self):
        acquirer = ScriptedAcquirer(
            {AcquireMode.STATIC_FETCH: [NetworkError("refused"), NetworkError("refused")]}
        )
        result, _ = await _runner(acquirer).run_strategy(CAMP, URL, AcquireMode.STATIC_FETCH)
        assert result.attempts == 2
        assert result.success is False

    @pytest.mark.asyncio
    async def test_invariant_violation_propagates(self):
        acquirer = ScriptedAcquirer({AcquireMode.STATIC_FETCH: [InvariantViolation("clock went backwards")]})
        with pytest.raises(InvariantViolation):
            await _runner(acquirer).run_strategy(CAMP, URL, AcquireMode.STATIC_FETCH)

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_without_retry(self):
        limiter = RateLimiter()
        sleeps = Sleeps()
        emitter = SignalEmitter("run_test")
        log = ExtractionLog()
        acquirer = ScriptedAcquirer({AcquireMode.RENDERED: [RuntimeError("browser crashed")]})
        result, bundle = await _runner(
            acquirer, emitter=emitter, limiter=limiter, log=log, sleep=sleeps
        ).run_strategy(CAMP, URL, AcquireMode.RENDERED)

        assert bundle is None
        assert result.success is False
        assert result.error == "unexpected error: browser crashed"
        assert result.quality == 0
        assert sleeps.calls == []
        assert limiter.state(URL).failure_count == 0
        assert log.effectiveness() == {"rendered": {"attempts": 1, "avg_quality": 0.0}}
        assert [s.signal_type for s in emitter.signals] == [
            SignalType.STRATEGY_STARTED,
            SignalType.STRATEGY_COMPLETE,
        ]

    @pytest.mark.asyncio
    async def test_error_without_message_is_named_by_type(self):
        acquirer = ScriptedAcquirer({AcquireMode.STATIC_FETCH: [OverflowError()]})
        result, _ = await _runner(acquirer).run_strategy(CAMP, URL, AcquireMode.STATIC_FETCH)
        assert result.error == "unexpected error: OverflowError"


class TestScoreBundle:
    def test_screenshot_scores_zero(self):
        bundle = _bundle(AcquireMode.SCREENSHOT, artifacts=["/tmp/zoo-camp_abc.png"])
        result = _runner(None).score_bundle(AcquireMode.SCREENSHOT, bundle)
        assert result.success is True
        assert result.quality == 0
        assert result.artifacts == ["/tmp/zoo-camp_abc.png"]

    def test_llm_uses_mapped_facts(self):
        bundle = _bundle(
            AcquireMode.LLM,
            "irrelevant text",
            facts=CanonicalFacts(pricing=Pricing(weekly=400), confidence={"pricing": 92}),
        )
        result = _runner(None).score_bundle(AcquireMode.LLM, bundle)
        assert result.extracted.pricing.weekly == 400
        assert result.quality == 15

    def test_llm_unavailable_is_a_failed_result(self):
        bundle = _bundle(AcquireMode.LLM, error=UNAVAILABLE)
        result = _runner(None).score_bundle(AcquireMode.LLM, bundle)
        assert result.success is False
        assert result.error == UNAVAILABLE
        assert result.quality == 0


class TestRun:
    @pytest.mark.asyncio
    async def test_text_bundle_is_handed_to_later_strategies(self):
        static = _bundle(AcquireMode.STATIC_FETCH, "$350/week")
        acquirer = ScriptedAcquirer(
            {
                AcquireMode.STATIC_FETCH: [static],
                AcquireMode.LLM: [_bundle(AcquireMode.LLM, error=UNAVAILABLE)],
            }
        )
        run = await _runner(acquirer).run(CAMP, URL, [AcquireMode.STATIC_FETCH, AcquireMode.LLM])

        assert [r.strategy for r in run.results] == [AcquireMode.STATIC_FETCH, AcquireMode.LLM]
        assert acquirer.sources == [(AcquireMode.STATIC_FETCH, None), (AcquireMode.LLM, static)]
        assert run.texts == ["$350/week"]
        assert run.content_hash is not None

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_stop_later_strategies(self):
        acquirer = ScriptedAcquirer(
            {
                AcquireMode.STATIC_FETCH: [OverflowError("cannot convert float infinity to integer")],
                AcquireMode.RENDERED: [_bundle(AcquireMode.RENDERED, "$350/week")],
            }
        )
        run = await _runner(acquirer).run(CAMP, URL, [AcquireMode.STATIC_FETCH, AcquireMode.RENDERED])

        assert [(r.strategy, r.success) for r in run.results] == [
            (AcquireMode.STATIC_FETCH, False),
            (AcquireMode.RENDERED, True),
        ]
        assert run.texts == ["$350/week"]

    def test_empty_run_has_no_hash(self):
        assert StrategyRun().content_hash is None
