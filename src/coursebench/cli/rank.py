# Copyright (c) Syntropy Systems
"""coursebench rank command."""
from __future__ import annotations

from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from coursebench.cli.display import format_score, ranking_table
from coursebench.cli.score import score_store
from coursebench.config import (
    ConfigurationError,
    get_runs_dir,
    load_config,
    require_bench_dir,
)
from coursebench.models.scores import OVERALL_CATEGORY
from coursebench.store import OutputStore

console = Console()


def rank(
    run_id: str = typer.Argument(
        "latest",
        help="Run ID to rank (default: latest)",
    ),
    category: Optional[str] = typer.Option(
        None,
        "--category",
        "-c",
        help="Only show one category (scenario id, kind:<kind> or overall)",
    ),
    rescore: bool = typer.Option(
        False,
        "--rescore",
        help="Recompute scores even if scores.json exists",
    ),
) -> None:
    """Rank models per scenario, per scenario kind and overall.

    Ties on score are broken by consistency, then by model slug.

    Example:
        coursebench rank --category kind:lesson

    """
    try:
        bench_dir = require_bench_dir()
        store = OutputStore.open(get_runs_dir(bench_dir), run_id)
        report = None
        if not rescore:
            try:
                report = store.read_scores()
            except (FileNotFoundError, ValidationError):
                report = None
        if report is None:
            report = score_store(store, load_config(bench_dir))
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    rankings = report.rankings
    if category is not None:
        selected = report.ranking_for(category)
        if selected is None:
            console.print(f"[red]Error:[/red] Unknown category '{category}'")
            available = ", ".join(r.category for r in report.rankings)
            console.print(f"  Available: {available}")
            raise typer.Exit(1)
        rankings = [selected]

    if not any(ranking.entries for ranking in rankings):
        console.print("[yellow]No scored cells to rank.[/yellow]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Rankings: {report.run_id}[/bold]")
    for ranking in rankings:
        console.print(ranking_table(ranking))

    overall = report.ranking_for(OVERALL_CATEGORY)
    if category is None and overall is not None and overall.winner is not None:
        winner = overall.winner
        console.print(f"\n[green]Best overall:[/green] {winner.model_slug}")
        console.print(
            f"  Score: {format_score(winner.score)}"
            f"  Consistency: {format_score(winner.consistency)}"
            f"  Tier: {winner.quality_tier}"
        )
