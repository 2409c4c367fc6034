"""Strategy runner: runs each selected acquisition mode for one camp.

Strategies run one after another so their results merge in a known
order. Network failures are retried with a fixed backoff; once the
budget is spent the strategy yields an unsuccessful result instead of
raising. Any other error fails the strategy at once, without a retry.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from campwatch.acquire.acquirer import PageAcquirer
from campwatch.acquire.cache import content_hash
from campwatch.acquire.page import PageBundle
from campwatch.acquire.rate_limiter import RateLimiter
from campwatch.config.settings import RetryConfig
from campwatch.extraction.heuristic import DEFAULT_EXPECTED_YEAR, extract_facts
from campwatch.extraction.models import AcquireMode, CampRecord, CanonicalFacts, StrategyResult
from campwatch.pipeline.extraction_log import ExtractionLog
from campwatch.pipeline.quality import score_quality
from campwatch.signals.emitter import SignalEmitter
from campwatch.signals.types import SignalType
from campwatch.telemetry.errors import (
    RETRYABLE_ERRORS,
    ErrorCode,
    FetchTimeout,
    InvariantViolation,
    emit_structured_error,
)

logger = logging.getLogger(__name__)

TEXT_MODES = (AcquireMode.STATIC_FETCH, AcquireMode.RENDERED, AcquireMode.ACCESSIBILITY)


@dataclass
class StrategyRun:
    results: list[StrategyResult] = field(default_factory=list)
    texts: list[str] = field(default_factory=list)

    @property
    def content_hash(self) -> str | None:
        return content_hash("\n".join(self.texts)) if self.texts else None


class StrategyRunner:
    """Acquire, extract, and score one camp under each strategy in turn."""

    def __init__(
        self,
        acquirer: PageAcquirer,
        rate_limiter: RateLimiter,
        extraction_log: ExtractionLog,
        *,
        retry: RetryConfig | None = None,
        expected_year: int = DEFAULT_EXPECTED_YEAR,
        emitter: SignalEmitter | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._acquirer = acquirer
        self._rate_limiter = rate_limiter
        self._extraction_log = extraction_log
        self._retry = retry or RetryConfig()
        self._expected_year = expected_year
        self._emitter = emitter
        self._sleep = sleep

    def max_retries(self, mode: AcquireMode) -> int:
        if mode == AcquireMode.STATIC_FETCH:
            return self._retry.static_retries
        return self._retry.default_retries

    async def _emit(self, signal_type: SignalType, payload: dict) -> None:
        if self._emitter is not None:
            await self._emitter.emit(signal_type, payload)

    async def run(
        self, camp: CampRecord, url: str, modes: Sequence[AcquireMode]
    ) -> StrategyRun:
        """One result per mode, in the order given, plus the text they read."""
        run = StrategyRun()
        source: PageBundle | None = None
        for mode in modes:
            result, bundle = await self.run_strategy(camp, url, mode, source=source)
            if bundle is not None and bundle.text and mode in TEXT_MODES:
                source = bundle
                run.texts.append(bundle.text)
            run.results.append(result)
        return run

    async def run_strategy(
        self,
        camp: CampRecord,
        url: str,
        mode: AcquireMode,
        *,
        source: PageBundle | None = None,
    ) -> tuple[StrategyResult, PageBundle | None]:
        """Run ``mode`` with retries. Any failure becomes an unsuccessful result.

        InvariantViolation still propagates so the orchestrator can abort
        the entity task.
        """
        try:
            return await self._run_with_retries(camp, url, mode, source)
        except InvariantViolation:
            raise
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            emit_structured_error(
                logger,
                code=ErrorCode.STRATEGY_FAILED,
                message=message,
                suppressed=True,
                entity_id=camp.id,
                strategy=mode.value,
                details={"exception": type(exc).__name__},
            )
            result = StrategyResult(strategy=mode, success=False, error=f"unexpected error: {message}")
            await self._finish(camp, result)
            return result, None

    async def _run_with_retries(
        self,
        camp: CampRecord,
        url: str,
        mode: AcquireMode,
        source: PageBundle | None,
    ) -> tuple[StrategyResult, PageBundle | None]:
        await self._emit(
            SignalType.STRATEGY_STARTED, {"entity_id": camp.id, "strategy": mode.value, "url": url}
        )

        retries = self.max_retries(mode)
        attempt = 0
        bundle: PageBundle | None = None
        while bundle is None:
            attempt += 1
            try:
                bundle = await self._acquirer.fetch(url, mode, entity=camp, source=source)
            except RETRYABLE_ERRORS as exc:
                self._rate_limiter.record_failure(url)
                emit_structured_error(
                    logger,
                    code=ErrorCode.FETCH_TIMEOUT if isinstance(exc, FetchTimeout) else ErrorCode.FETCH_NETWORK_ERROR,
                    message=str(exc),
                    suppressed=True,
                    entity_id=camp.id,
                    strategy=mode.value,
                    details={"url": url, "attempt": attempt},
                )
                if attempt > retries:
                    emit_structured_error(
                        logger,
                        code=ErrorCode.STRATEGY_EXHAUSTED,
                        message=str(exc),
                        suppressed=True,
                        entity_id=camp.id,
                        strategy=mode.value,
                        details={"attempts": attempt},
                    )
                    result = StrategyResult(
                        strategy=mode, success=False, error=str(exc), attempts=attempt
                    )
                    await self._finish(camp, result)
                    return result, None
                await self._emit(
                    SignalType.RETRY_ATTEMPT,
                    {
                        "entity_id": camp.id,
                        "strategy": mode.value,
                        "attempt": attempt,
                        "error": str(exc),
                    },
                )
                logger.info("Retrying %s for %s (%d/%d)", mode.value, camp.id, attempt, retries)
                await self._sleep(self._retry.backoff_ms / 1000.0)

        self._rate_limiter.record_success(url)
        result = self.score_bundle(mode, bundle, attempt)
        await self._finish(camp, result)
        return result, bundle

    def score_bundle(self, mode: AcquireMode, bundle: PageBundle, attempts: int = 1) -> StrategyResult:
        """Extract and score the facts carried by an acquired bundle."""
        if mode == AcquireMode.LLM:
            facts = bundle.facts or CanonicalFacts()
        elif mode == AcquireMode.SCREENSHOT:
            facts = CanonicalFacts()
        else:
            facts = extract_facts(bundle.text, bundle.structured, expected_year=self._expected_year)

        if bundle.pdf_links:
            facts = facts.model_copy(update={"pdf_links": bundle.pdf_links})

        # Screenshots carry no text until a vision pass reads them.
        quality = 0 if mode == AcquireMode.SCREENSHOT else score_quality(facts, self._expected_year)

        return StrategyResult(
            strategy=mode,
            success=bundle.error is None,
            error=bundle.error,
            text_length=len(bundle.text),
            extracted=facts,
            quality=quality if bundle.error is None else 0,
            urls=bundle.pages or [bundle.url],
            artifacts=bundle.artifacts,
            attempts=attempts,
        )

    async def _finish(self, camp: CampRecord, result: StrategyResult) -> None:
        self._extraction_log.record(camp.id, result)
        await self._emit(
            SignalType.STRATEGY_COMPLETE,
            {
                "entity_id": camp.id,
                "strategy": result.strategy.value,
                "success": result.success,
                "quality": result.quality,
                "error": result.error,
            },
        )
        logger.debug(
            "%s on %s: success=%s quality=%d", result.strategy.value, camp.id, result.success, result.quality
        )
