# Copyright (c) Syntropy Systems
"""coursebench score command."""
from __future__ import annotations

import typer
from rich.console import Console

from coursebench.cli.display import aggregate_table, issue_lines
from coursebench.config import (
    BenchConfig,
    ConfigurationError,
    get_runs_dir,
    load_config,
    require_bench_dir,
)
from coursebench.models.scores import ScoreReport
from coursebench.scoring import evaluate_results
from coursebench.store import OutputStore, utcnow

console = Console()


def score_store(store: OutputStore, config: BenchConfig) -> ScoreReport:
    """Score every stored cell of a run and persist the report.

    Raises:
        ValueError: If the run has no cell artifacts.

    """
    results = store.load_results()
    if not results:
        msg = f"No cell artifacts found in {store.run_id}"
        raise ValueError(msg)

    repetitions = max(result.cell.repetition for result in results)
    report = evaluate_results(
        results,
        config.scenarios_by_id(),
        repetitions=repetitions,
        weights=config.scoring,
        run_id=store.run_id,
        generated_at=utcnow(),
    )
    _ = store.write_scores(report)
    return report


def score(
    run_id: str = typer.Argument(
        "latest",
        help="Run ID to score (default: latest)",
    ),
    issues: bool = typer.Option(
        False,
        "--issues",
        "-i",
        help="List every issue found per cell",
    ),
) -> None:
    """Score a stored run and show mean quality per model and scenario.

    Consistency shows n/a when fewer than two repetitions parsed.
    """
    try:
        bench_dir = require_bench_dir()
        config = load_config(bench_dir)
        store = OutputStore.open(get_runs_dir(bench_dir), run_id)
        report = score_store(store, config)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(aggregate_table(report))

    failed = sum(1 for cell in report.cells if cell.status == "failed")
    unparsable = sum(1 for cell in report.cells if cell.status == "unparsable")
    console.print(f"\n  [dim]cells:[/dim] {len(report.cells)}")
    if failed:
        console.print(f"  [red]failed:[/red] {failed}")
    if unparsable:
        console.print(f"  [yellow]unparsable:[/yellow] {unparsable}")
    console.print(f"  [dim]report:[/dim] {store.run_dir / 'scores.json'}")

    if issues:
        console.print("\n[bold]Issues:[/bold]")
        for line in issue_lines(report.cells):
            console.print(f"  {line}", markup=False)
