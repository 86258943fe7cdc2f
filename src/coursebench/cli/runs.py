# Copyright (c) Syntropy Systems
"""coursebench runs and summary commands."""
from __future__ import annotations

from contextlib import suppress

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from coursebench.cli.display import format_ms, summary_table
from coursebench.config import ConfigurationError, get_runs_dir, require_bench_dir
from coursebench.models.store import RunSummary
from coursebench.store import OutputStore, list_runs

console = Console()


def runs(
    last: int = typer.Option(
        20,
        "--last",
        "-n",
        help="Number of runs to show",
    ),
) -> None:
    """List stored benchmark runs, newest first."""
    try:
        bench_dir = require_bench_dir()
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    run_dirs = list(reversed(list_runs(get_runs_dir(bench_dir))))[:last]
    if not run_dirs:
        console.print("[dim]No runs yet[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Run ID")
    table.add_column("Started")
    table.add_column("Cells", justify="right")
    table.add_column("OK", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Scored")

    for run_dir in run_dirs:
        store = OutputStore(run_dir)
        run_summary: RunSummary | None = None
        with suppress(FileNotFoundError, ValidationError):
            run_summary = store.read_summary()
        scored = "[green]yes[/green]" if (run_dir / "scores.json").exists() else "[dim]no[/dim]"
        if run_summary is None:
            table.add_row(store.run_id, "-", "-", "-", "-", scored)
            continue
        table.add_row(
            store.run_id,
            run_summary.started_at or "-",
            str(run_summary.total_cells),
            str(run_summary.successful),
            format_ms(run_summary.duration_ms),
            scored,
        )

    console.print(table)


def summary(
    run_id: str = typer.Argument(
        "latest",
        help="Run ID to summarize (default: latest)",
    ),
) -> None:
    """Show success rates and error kinds per model for a run."""
    try:
        bench_dir = require_bench_dir()
        store = OutputStore.open(get_runs_dir(bench_dir), run_id)
        run_summary = store.read_summary()
    except (ConfigurationError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid summary for {run_id}")
        raise typer.Exit(1) from e

    console.print(summary_table(run_summary))
    console.print(
        f"\n  [dim]cells:[/dim] {run_summary.total_cells}"
        f"  [dim]ok:[/dim] {run_summary.successful}"
        f"  [dim]failed:[/dim] {run_summary.failed}"
        f"  [dim]avg time:[/dim] {format_ms(run_summary.avg_elapsed_ms)}"
    )
    if run_summary.started_at:
        console.print(f"  [dim]started:[/dim] {run_summary.started_at}")
    if run_summary.finished_at:
        console.print(f"  [dim]finished:[/dim] {run_summary.finished_at}")
