"""The Conduit: campwatch run orchestrator.

The Conduit owns the camp records for the duration of a run. It does not
parse pages or score facts itself; it schedules entity tasks and moves
each one through explicit lifecycle phases.

Responsibilities:
- Load the baseline, prior snapshot, cache, review queue, and extraction log
- Dispatch up to ``concurrency`` entity tasks; none start after the deadline
- Per entity: cache lookup, strategies, merge, validate, change detection
- Persist every output file in a fixed order once all tasks have resolved
- Emit Signals at every phase boundary

MUST NOT:
- Write anything during a dry run
- Let one entity's failure abort the run
- Overwrite a snapshot it could not read
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from contextlib import AsyncExitStack
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from campwatch.acquire.acquirer import PageAcquirer
from campwatch.acquire.cache import ContentCache
from campwatch.acquire.discovery import PageDiscoverer
from campwatch.acquire.rate_limiter import RateLimiter
from campwatch.acquire.static_fetch import StaticFetcher
from campwatch.ai_engine.engine import AIEngine
from campwatch.browser.layer import BrowserLayer
from campwatch.conduit.phases import EntityPhase, check_transition
from campwatch.conduit.runner import StrategyRunner
from campwatch.config.settings import ALL_STRATEGIES, CampwatchConfig
from campwatch.extraction.models import (
    AcquireMode,
    CampRecord,
    ChangeSet,
    RunResult,
    RunStatus,
)
from campwatch.pipeline.baseline import load_baseline
from campwatch.pipeline.changes import detect_changes
from campwatch.pipeline.extraction_log import ExtractionLog
from campwatch.pipeline.manager import EntitySummary, PipelineStore, RunMetadata
from campwatch.pipeline.merger import merge, usable_results
from campwatch.pipeline.quality import score_quality
from campwatch.pipeline.report import (
    WeeklyReport,
    build_weekly_report,
    change_sets_for_run,
    summaries_from_records,
)
from campwatch.pipeline.review_queue import ReviewQueue, needs_review
from campwatch.pipeline.validator import entry_url, load_camp_config, required_fields, validate
from campwatch.signals.emitter import SignalEmitter
from campwatch.signals.types import Signal, SignalType
from campwatch.telemetry.errors import ErrorCode, InvariantViolation, emit_structured_error

logger = logging.getLogger(__name__)

BROWSER_MODES = {AcquireMode.RENDERED, AcquireMode.ACCESSIBILITY, AcquireMode.SCREENSHOT}


def resolve_strategies(names: Sequence[str]) -> list[AcquireMode]:
    """Map strategy names (or ``all``) to modes, keeping order and dropping repeats."""
    expanded = list(ALL_STRATEGIES) if "all" in names else list(names)
    modes: list[AcquireMode] = []
    for name in expanded:
        try:
            mode = AcquireMode(name)
        except ValueError as exc:
            raise ValueError(f"Unknown strategy: {name}") from exc
        if mode not in modes:
            modes.append(mode)
    return modes


def select_camps(
    camps: Sequence[CampRecord], camp_filter: str | None = None, limit: int | None = None
) -> list[CampRecord]:
    """Case-insensitive name substring filter, then the first ``limit``."""
    selected = [
        camp for camp in camps if not camp_filter or camp_filter.lower() in camp.name.lower()
    ]
    return selected[:limit] if limit is not None else selected


def reconcile_records(
    baseline: Sequence[CampRecord], snapshot: Sequence[CampRecord]
) -> list[CampRecord]:
    """Baseline rows carry identity; the snapshot carries run history.

    Snapshot-only records are kept; the core never deletes a camp.
    """
    prior = {record.id: record for record in snapshot}
    records: list[CampRecord] = []
    for camp in baseline:
        previous = prior.pop(camp.id, None)
        if previous is None:
            records.append(camp)
        else:
            records.append(
                previous.model_copy(
                    update={"name": camp.name, "base_url": camp.base_url, "baseline": camp.baseline}
                )
            )
    records.extend(prior.values())
    return records


def cleanup_artifacts(directory: Path, max_age_days: int, *, now: float | None = None) -> int:
    """Delete PNG screenshots older than ``max_age_days``; returns the count."""
    if not directory.is_dir():
        return 0
    cutoff = (now if now is not None else time.time()) - max_age_days * 86400
    removed = 0
    for path in directory.glob("*.png"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError as exc:
            logger.warning("Could not remove old artifact %s: %s", path, exc)
    if removed:
        logger.info("Removed %d screenshot(s) older than %d days", removed, max_age_days)
    return removed


@dataclass
class RunOptions:
    camp_filter: str | None = None
    limit: int | None = None
    strategies: list[str] | None = None
    dry_run: bool = False
    force_fresh: bool = False
    use_cache: bool = True
    deadline_s: int | None = None


class RunSummary(BaseModel):
    """What a run did, for the CLI summary table."""

    run_id: str
    started_at: datetime
    duration_s: float = 0.0
    dry_run: bool = False
    strategies: list[str] = Field(default_factory=list)
    results: list[RunResult] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    changes_detected: int = 0
    report: WeeklyReport | None = None
    report_path: str | None = None

    def count(self, status: RunStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def avg_quality(self) -> int:
        qualities = [r.quality for r in self.results]
        return round(sum(qualities) / len(qualities)) if qualities else 0


class EntityTask:
    """Phase tracker for one camp; every move goes through ``transition``."""

    def __init__(self, camp: CampRecord, emitter: SignalEmitter) -> None:
        self.camp = camp
        self.phase = EntityPhase.PENDING
        self._emitter = emitter

    async def transition(self, to_phase: EntityPhase, context: dict[str, Any] | None = None) -> None:
        check_transition(self.phase, to_phase)
        from_phase = self.phase
        self.phase = to_phase
        await self._emitter.emit_phase_transition(
            self.camp.id, from_phase.value, to_phase.value, context
        )


class Orchestrator:
    """Runs the selected strategies over the camp population.

    Collaborators left as None are built from ``config`` when a run
    starts and released when it ends.
    """

    def __init__(
        self,
        config: CampwatchConfig,
        *,
        store: PipelineStore | None = None,
        acquirer: PageAcquirer | None = None,
        rate_limiter: RateLimiter | None = None,
        cache: ContentCache | None = None,
        extraction_log: ExtractionLog | None = None,
        review_queue: ReviewQueue | None = None,
        on_signal: Callable[[Signal], Any] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        run_id: str | None = None,
    ) -> None:
        self._config = config
        pipeline = config.pipeline
        self._store = store or PipelineStore(
            pipeline.data_dir,
            change_log_days=pipeline.change_log_days,
            pipeline_log_days=pipeline.pipeline_log_days,
        )
        self._acquirer = acquirer
        self._rate_limiter = rate_limiter or RateLimiter(config.rate_limit)
        if cache is None:
            cache = ContentCache(self._store.cache_path, config.cache.ttl_hours)
        self._cache = cache
        self._extraction_log = extraction_log or ExtractionLog(self._store.extraction_log_path)
        if review_queue is None:
            review_queue = ReviewQueue(self._store.review_queue_path)
        self._review_queue = review_queue
        self._on_signal = on_signal
        self._sleep = sleep
        self._run_id = run_id or f"run_{uuid.uuid4().hex[:12]}"

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def store(self) -> PipelineStore:
        return self._store

    # --- Loading ---

    def load_records(self) -> list[CampRecord]:
        """Baseline reconciled with the prior snapshot.

        Raises ParseError for an unreadable baseline or snapshot.
        """
        snapshot = self._store.load_snapshot()
        baseline_path = self._config.pipeline.baseline_path
        if baseline_path is None:
            return snapshot
        return reconcile_records(load_baseline(baseline_path), snapshot)

    def _make_emitter(self, dry_run: bool) -> SignalEmitter:
        ledger = None if dry_run else self._store.ledger_path(self._run_id)
        emitter = SignalEmitter(run_id=self._run_id, ledger_path=ledger)
        if self._on_signal is not None:
            emitter.subscribe(self._on_signal)
        return emitter

    async def _build_acquirer(
        self, stack: AsyncExitStack, modes: Sequence[AcquireMode], emitter: SignalEmitter
    ) -> PageAcquirer:
        timeouts = self._config.timeouts
        fetcher = StaticFetcher(timeout_s=timeouts.static_fetch_s, user_agent=self._config.browser.user_agent)
        stack.push_async_callback(fetcher.close)

        browser = None
        if BROWSER_MODES.intersection(modes):
            browser = BrowserLayer(self._config.browser)
            stack.push_async_callback(browser.stop)

        ai_engine = AIEngine(self._config.llm) if AcquireMode.LLM in modes else None

        discoverer = PageDiscoverer(
            fetcher,
            self._rate_limiter,
            self._config.discovery,
            sitemap_timeout_s=timeouts.sitemap_s,
        )
        return PageAcquirer(
            fetcher,
            self._rate_limiter,
            discoverer,
            self._config,
            browser=browser,
            ai_engine=ai_engine,
            emitter=emitter,
        )

    # --- Run ---

    async def run(self, options: RunOptions | None = None) -> RunSummary:
        """Execute one pipeline run.

        Raises ParseError when the baseline or snapshot cannot be read and
        PersistenceError when an output file cannot be written.
        """
        options = options or RunOptions()
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()
        modes = resolve_strategies(options.strategies or self._config.strategies)
        deadline_s = options.deadline_s if options.deadline_s is not None else self._config.timeouts.run_deadline_s
        deadline = start + deadline_s if deadline_s is not None else None

        records = self.load_records()
        selected = select_camps(records, options.camp_filter, options.limit)
        prior = {record.id: record for record in records}

        if options.use_cache:
            self._cache.load()
        self._extraction_log.load()
        self._review_queue.load()

        emitter = self._make_emitter(options.dry_run)
        logger.info(
            "Run %s: %d of %d camp(s), strategies=%s%s",
            self._run_id,
            len(selected),
            len(records),
            ",".join(m.value for m in modes),
            " (dry run)" if options.dry_run else "",
        )

        async with AsyncExitStack() as stack:
            acquirer = self._acquirer or await self._build_acquirer(stack, modes, emitter)
            runner = StrategyRunner(
                acquirer,
                self._rate_limiter,
                self._extraction_log,
                retry=self._config.retry,
                expected_year=self._config.pipeline.expected_year,
                emitter=emitter,
                sleep=self._sleep,
            )
            semaphore = asyncio.Semaphore(self._config.pipeline.concurrency)

            async def guarded(camp: CampRecord) -> tuple[RunResult, CampRecord] | None:
                async with semaphore:
                    if deadline is not None and time.monotonic() > deadline:
                        logger.warning("Run deadline passed; not starting %s", camp.id)
                        return None
                    return await self._process(camp, runner, modes, options, emitter)

            try:
                outcomes = await asyncio.gather(*(guarded(camp) for camp in selected))
            except asyncio.CancelledError:
                # In-flight results are dropped; cache and review queue survive.
                if not options.dry_run:
                    self._review_queue.save()
                    if options.use_cache:
                        self._cache.save()
                await emitter.emit_run_failed("cancelled", entities_completed=0)
                raise

        results: list[RunResult] = []
        skipped: list[str] = []
        for camp, outcome in zip(selected, outcomes):
            if outcome is None:
                skipped.append(camp.id)
                continue
            result, record = outcome
            results.append(result)
            prior[record.id] = record
        updated = list(prior.values())

        change_sets = [
            r.changes.model_copy(update={"run_id": self._run_id})
            for r in results
            if r.changes is not None and r.changes.has_changes
        ]
        summary = RunSummary(
            run_id=self._run_id,
            started_at=started_at,
            dry_run=options.dry_run,
            strategies=[m.value for m in modes],
            results=results,
            skipped=skipped,
            changes_detected=len(change_sets),
        )
        summary.duration_s = round(time.monotonic() - start, 2)

        if options.dry_run:
            summary.report = self._report_for(updated, results, change_sets)
        else:
            self._persist(summary, updated, change_sets, use_cache=options.use_cache)
            cleanup_artifacts(
                self._config.pipeline.resolved_artifact_dir,
                self._config.pipeline.artifact_max_age_days,
            )

        await emitter.emit_run_complete(
            total_entities=len(results),
            total_duration_s=summary.duration_s,
            changes_detected=summary.changes_detected,
        )
        return summary

    async def _process(
        self,
        camp: CampRecord,
        runner: StrategyRunner,
        modes: Sequence[AcquireMode],
        options: RunOptions,
        emitter: SignalEmitter,
    ) -> tuple[RunResult, CampRecord]:
        task = EntityTask(camp, emitter)
        try:
            outcome = await self._process_entity(task, runner, modes, options, emitter)
        except InvariantViolation as exc:
            outcome = self._failed(task, ErrorCode.INVARIANT_VIOLATION, exc)
        except Exception as exc:
            outcome = self._failed(task, ErrorCode.ENTITY_FAILED, exc)

        result = outcome[0]
        await emitter.emit_entity_complete(
            camp.id, camp.name, result.status.value, result.quality, result.best_strategy
        )
        logger.info(
            "%s: %s quality=%d best=%s", camp.name, result.status.value, result.quality, result.best_strategy or "-"
        )
        return outcome

    def _failed(
        self, task: EntityTask, code: ErrorCode, exc: Exception
    ) -> tuple[RunResult, CampRecord]:
        """Fail one entity; the prior record is kept unchanged."""
        camp = task.camp
        message = str(exc) or type(exc).__name__
        emit_structured_error(
            logger,
            code=code,
            message=message,
            suppressed=False,
            run_id=self._run_id,
            entity_id=camp.id,
            details={"phase": task.phase.value, "exception": type(exc).__name__},
        )
        task.phase = EntityPhase.FAIL
        return (
            RunResult(entity_id=camp.id, name=camp.name, status=RunStatus.FAILED, error=message),
            camp,
        )

    async def _process_entity(
        self,
        task: EntityTask,
        runner: StrategyRunner,
        modes: Sequence[AcquireMode],
        options: RunOptions,
        emitter: SignalEmitter,
    ) -> tuple[RunResult, CampRecord]:
        camp = task.camp

        if options.use_cache and not options.force_fresh:
            cached = self._cached_result(camp.id)
            if cached is not None:
                await task.transition(EntityPhase.CACHED)
                return cached, camp

        camp_config = load_camp_config(self._config.pipeline.resolved_camp_config_dir, camp.id)
        url = entry_url(camp_config, camp.base_url)

        await task.transition(EntityPhase.ACQUIRE, {"url": url})
        strategy_run = await runner.run(camp, url, modes)

        await task.transition(EntityPhase.MERGE)
        merged = merge(strategy_run.results)
        quality = score_quality(merged, self._config.pipeline.expected_year)
        ranked = usable_results(strategy_run.results)
        best_strategy = ranked[0].strategy.value if ranked else None

        await task.transition(EntityPhase.VALIDATE)
        validation = validate(merged, required_fields(camp_config))

        await task.transition(EntityPhase.DETECT)
        changes = detect_changes(camp.extracted, merged, camp.id)
        if changes.has_changes:
            await emitter.emit(
                SignalType.CHANGE_DETECTED,
                {"entity_id": camp.id, "fields": [c.field for c in changes.changes]},
            )

        urls: list[str] = []
        for result in strategy_run.results:
            urls.extend(u for u in result.urls if u not in urls)

        status = (
            RunStatus.SUCCESS
            if any(r.success for r in strategy_run.results)
            else RunStatus.FAILED
        )
        digest = strategy_run.content_hash
        result = RunResult(
            entity_id=camp.id,
            name=camp.name,
            status=status,
            quality=quality,
            best_strategy=best_strategy,
            strategy_results=strategy_run.results,
            merged=merged,
            validation=validation,
            changes=changes,
            urls=urls,
            content_hash=digest,
            error=None if status == RunStatus.SUCCESS else "; ".join(
                r.error for r in strategy_run.results if r.error
            ) or None,
        )

        # A run that extracted nothing keeps the last known facts.
        record = camp.model_copy(
            update={
                "extracted": merged if merged is not None else camp.extracted,
                "last_quality": quality,
                "last_strategy": best_strategy,
                "last_run_at": result.completed_at,
                "content_hash": digest or camp.content_hash,
                "validation": list(validation.issues),
            }
        )

        if needs_review(quality, validation, self._config.pipeline.review_threshold):
            self._review_queue.add(
                camp.id,
                name=camp.name,
                quality=quality,
                extracted=merged,
                urls=urls,
                validation=validation,
            )
        else:
            self._review_queue.remove(camp.id)

        if options.use_cache and digest is not None and status == RunStatus.SUCCESS:
            self._cache.put(camp.id, digest, result.model_dump(mode="json"))

        await task.transition(EntityPhase.COMPLETE)
        return result, record

    def _cached_result(self, entity_id: str) -> RunResult | None:
        payload = self._cache.get(entity_id)
        if payload is None:
            return None
        try:
            cached = RunResult.model_validate(payload)
        except ValidationError as exc:
            logger.debug("Discarding malformed cache entry for %s: %s", entity_id, exc)
            self._cache.invalidate(entity_id)
            return None
        return cached.model_copy(update={"status": RunStatus.CACHED, "changes": None})

    # --- Persistence ---

    def _report_for(
        self,
        records: Sequence[CampRecord],
        results: Sequence[RunResult],
        change_sets: Sequence[ChangeSet],
    ) -> WeeklyReport:
        """Report of this run: every known camp, and only this run's changes."""
        summaries = {s.entity_id: s for s in summaries_from_records(records)}
        for result in results:
            summaries[result.entity_id] = _summary_of(result)
        return build_weekly_report(
            list(summaries.values()),
            change_sets,
            self._extraction_log.effectiveness(),
            run_id=self._run_id,
        )

    def _persist(
        self,
        summary: RunSummary,
        records: list[CampRecord],
        change_sets: list[ChangeSet],
        *,
        use_cache: bool,
    ) -> None:
        """Snapshot, change log, pipeline log, report, review queue, extraction log, cache."""
        self._store.save_snapshot(records)
        self._store.append_changes(change_sets)

        results = summary.results
        self._store.append_pipeline_run(
            RunMetadata(
                run_id=self._run_id,
                started_at=summary.started_at,
                duration_s=summary.duration_s,
                strategies=summary.strategies,
                total_entities=len(results),
                successful=summary.count(RunStatus.SUCCESS),
                cached=summary.count(RunStatus.CACHED),
                failed=summary.count(RunStatus.FAILED),
                avg_quality=summary.avg_quality,
                changes_detected=summary.changes_detected,
                results=[_summary_of(r) for r in results],
            )
        )

        report = self._report_for(records, results, change_sets)
        summary.report = report
        summary.report_path = str(self._store.write_report(report))

        self._review_queue.save()
        self._extraction_log.save()
        if use_cache:
            self._cache.save()
        logger.info("Run %s persisted to %s", self._run_id, self._store.data_dir)

    def build_report(self, *, write: bool = True, day: date | None = None) -> tuple[WeeklyReport, Path | None]:
        """Rebuild the weekly report from persisted state without scraping.

        Changes are those logged by the most recent run in the pipeline log.
        """
        records = self._store.load_snapshot()
        self._extraction_log.load()
        runs = self._store.load_pipeline_log()
        last_run_id = runs[-1].run_id if runs else None
        change_sets = (
            change_sets_for_run(self._store.load_change_log(), last_run_id) if last_run_id else []
        )
        report = build_weekly_report(
            summaries_from_records(records),
            change_sets,
            self._extraction_log.effectiveness(),
            run_id=last_run_id,
        )
        path = self._store.write_report(report, day) if write else None
        return report, path


def _summary_of(result: RunResult) -> EntitySummary:
    return EntitySummary(
        entity_id=result.entity_id,
        name=result.name,
        status=result.status.value,
        quality=result.quality,
        best_strategy=result.best_strategy,
        strategy_qualities={r.strategy.value: r.quality for r in result.strategy_results},
    )
