"""Command-line entry point for campwatch runs."""

import asyncio
import logging
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from campwatch.conduit.engine import Orchestrator, RunOptions, RunSummary
from campwatch.config.settings import ALL_STRATEGIES, CampwatchConfig
from campwatch.pipeline.report import WeeklyReport
from campwatch.signals.types import Signal, SignalType
from campwatch.telemetry.errors import ParseError, PersistenceError

app = typer.Typer(
    name="campwatch",
    help="Weekly summer-camp fact scraper",
    add_completion=False,
)
console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _print_progress(signal: Signal) -> None:
    if signal.signal_type != SignalType.ENTITY_COMPLETE:
        return
    payload = signal.payload
    quality = payload.get("quality", 0)
    color = "green" if quality >= 60 else "yellow" if quality > 0 else "red"
    console.print(
        f"  [{color}]{quality:>3}[/{color}] {payload.get('name')} "
        f"[dim]({payload.get('status')}, best: {payload.get('best_strategy') or '-'})[/dim]"
    )


def _display_summary(summary: RunSummary) -> None:
    table = Table(title=f"Run {summary.run_id}" + (" (dry run)" if summary.dry_run else ""))
    table.add_column("Camp")
    table.add_column("Status")
    table.add_column("Quality", justify="right")
    table.add_column("Best strategy")
    table.add_column("Changes", justify="right")
    for result in sorted(summary.results, key=lambda r: r.quality):
        table.add_row(
            result.name,
            result.status.value,
            str(result.quality),
            result.best_strategy or "-",
            str(len(result.changes.changes)) if result.changes else "0",
        )
    console.print(table)
    console.print(
        f"Processed {len(summary.results)} camp(s) in {summary.duration_s:.1f}s, "
        f"avg quality {summary.avg_quality}, {summary.changes_detected} with changes"
    )
    if summary.skipped:
        console.print(f"[yellow]Skipped after deadline: {', '.join(summary.skipped)}[/yellow]")
    if summary.report is not None:
        _display_report(summary.report)
    if summary.report_path:
        console.print(f"[green]Report written to {summary.report_path}[/green]")


def _display_report(report: WeeklyReport) -> None:
    console.print(
        f"[bold]Report:[/bold] {report.total_entities} camps, {report.successful} successful, "
        f"{report.needs_review} need review, {report.failed} failed, avg quality {report.avg_quality}"
    )
    if report.strategy_effectiveness:
        table = Table(title="Strategy effectiveness")
        table.add_column("Strategy")
        table.add_column("Attempts", justify="right")
        table.add_column("Avg quality", justify="right")
        for name, stats in report.strategy_effectiveness.items():
            table.add_row(name, str(int(stats["attempts"])), f"{stats['avg_quality']:.1f}")
        console.print(table)
    if report.entities_needing_attention:
        table = Table(title="Needs attention")
        table.add_column("Camp")
        table.add_column("Quality", justify="right")
        for entry in report.entities_needing_attention:
            table.add_row(entry.name, str(entry.quality))
        console.print(table)


@app.command()
def main(
    camp: str = typer.Option(None, "--camp", help="Only camps whose name contains this text"),
    limit: int = typer.Option(None, "--limit", min=1, help="Process at most this many camps"),
    strategy: list[str] = typer.Option(
        None, "--strategy", help=f"Strategy to run, repeatable ({', '.join(ALL_STRATEGIES)}, all)"
    ),
    report: bool = typer.Option(False, "--report", help="Regenerate the report without scraping"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Scrape but write nothing"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
    fresh: bool = typer.Option(False, "--fresh", help="Ignore cached results"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Neither read nor write the cache"),
    baseline: Path = typer.Option(None, "--baseline", help="Baseline CSV of camps"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Directory for snapshot, logs and reports"),
):
    """Scrape camp websites and report what changed."""
    overrides = {}
    if strategy:
        overrides["strategies"] = list(ALL_STRATEGIES) if "all" in strategy else strategy
    try:
        config = CampwatchConfig(**overrides)
    except ValidationError as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise typer.Exit(1)
    if baseline is not None:
        config.pipeline.baseline_path = baseline
    if data_dir is not None:
        config.pipeline.data_dir = data_dir

    configure_logging("DEBUG" if verbose else config.log_level)
    orchestrator = Orchestrator(config, on_signal=_print_progress)

    if report:
        try:
            weekly, path = orchestrator.build_report()
        except (ParseError, PersistenceError) as exc:
            console.print(f"[red]Error: {exc}[/red]")
            raise typer.Exit(1)
        _display_report(weekly)
        console.print(f"[green]Report written to {path}[/green]")
        return

    baseline_path = config.pipeline.baseline_path
    if baseline_path is not None and not baseline_path.exists():
        console.print(f"[red]Error: baseline file {baseline_path} not found[/red]")
        raise typer.Exit(1)
    if baseline_path is None and not orchestrator.store.snapshot_path.exists():
        console.print("[red]Error: no baseline given (--baseline or CAMPWATCH_BASELINE) and no snapshot[/red]")
        raise typer.Exit(1)

    options = RunOptions(
        camp_filter=camp,
        limit=limit,
        dry_run=dry_run,
        force_fresh=fresh,
        use_cache=not no_cache and config.cache.enabled,
    )
    try:
        summary = asyncio.run(orchestrator.run(options))
    except (ParseError, PersistenceError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    _display_summary(summary)


if __name__ == "__main__":
    app()
