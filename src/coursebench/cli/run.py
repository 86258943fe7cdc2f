# Copyright (c) Syntropy Systems
"""coursebench run command."""
from __future__ import annotations

import asyncio
import time
from collections import Counter
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.table import Table

from coursebench.cli.display import summary_table
from coursebench.client import OpenRouterClient
from coursebench.config import (
    BenchConfig,
    ConfigurationError,
    get_runs_dir,
    load_config,
    require_bench_dir,
)
from coursebench.matrix import build_matrix_from_config
from coursebench.models.bench import CellResult, GenerationSuccess
from coursebench.runner import RunExecutor
from coursebench.store import OutputStore, summarize_results, utcnow

if TYPE_CHECKING:
    from collections.abc import Callable

    from coursebench.models.bench import TestCell

console = Console()


def build_client(config: BenchConfig) -> OpenRouterClient:
    """Create the generation client for a run.

    Raises:
        ConfigurationError: If the API key environment variable is not set.

    """
    return OpenRouterClient.from_settings(config.provider, config.run)


def report_progress(
    record: Callable[[CellResult], None], total: int | None
) -> Callable[[CellResult], None]:
    """Wrap a store recorder so each resolved cell is echoed to the console.

    Without a known total only the running count is shown.
    """
    done = 0

    def _on_result(result: CellResult) -> None:
        nonlocal done
        record(result)
        done += 1
        counter = f"{done}/{total}" if total is not None else str(done)
        cell = result.cell
        label = f"{cell.model_slug} / {cell.scenario_id} #{cell.repetition}"
        if isinstance(result.outcome, GenerationSuccess):
            console.print(
                f"  [green]ok[/green] [{counter}] {label} "
                f"[dim]{result.outcome.elapsed_ms / 1000:.1f}s[/dim]"
            )
        else:
            console.print(
                f"  [red]failed[/red] [{counter}] {label} "
                f"[dim]{result.outcome.error_kind}[/dim]"
            )

    return _on_result


async def _execute(
    client: OpenRouterClient,
    config: BenchConfig,
    cells: list[TestCell],
    on_result: Callable[[CellResult], None],
) -> list[CellResult]:
    async with client:
        executor = RunExecutor.from_settings(client, config.run, on_result=on_result)
        return await executor.execute(
            cells, config.models_by_slug(), config.scenarios_by_id()
        )


def _show_plan(config: BenchConfig, cells: list[TestCell]) -> None:
    per_model = Counter(cell.model_slug for cell in cells)
    table = Table(title="Run plan", show_header=True, header_style="bold")
    table.add_column("Model")
    table.add_column("Backend")
    table.add_column("Cells", justify="right")
    for model in config.models:
        table.add_row(model.slug, model.backend_id, str(per_model[model.slug]))
    console.print(table)
    console.print(
        f"  [dim]scenarios:[/dim] {', '.join(s.id for s in config.scenarios)}"
    )
    console.print(
        f"  [dim]repetitions:[/dim] {config.run.repetitions}"
        f"  [dim]timeout:[/dim] {config.run.timeout_seconds:g}s"
        f"  [dim]pacing:[/dim] {config.run.pacing_seconds:g}s"
        f"  [dim]concurrency:[/dim] {config.run.max_concurrency or 'unbounded'}"
    )
    console.print(f"  [dim]total cells:[/dim] {len(cells)}")


def run(
    model: Optional[list[str]] = typer.Option(
        None,
        "--model",
        "-m",
        help="Only run this model slug (repeatable)",
    ),
    scenario: Optional[list[str]] = typer.Option(
        None,
        "--scenario",
        "-s",
        help="Only run this scenario id (repeatable)",
    ),
    repetitions: Optional[int] = typer.Option(
        None,
        "--repetitions",
        "-k",
        min=1,
        help="Override repetitions per (model, scenario)",
    ),
    concurrency: Optional[int] = typer.Option(
        None,
        "--concurrency",
        "-c",
        min=1,
        help="Cap on concurrent backend calls",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show the run plan without calling any backend",
    ),
) -> None:
    """Run the benchmark grid and store every cell's artifacts.

    Example:
        coursebench run --model grok-4-fast --scenario lesson-en -k 5

    """
    try:
        bench_dir = require_bench_dir()
        config = load_config(bench_dir).select(model, scenario)
        overrides: dict[str, object] = {}
        if repetitions is not None:
            overrides["repetitions"] = repetitions
        if concurrency is not None:
            overrides["max_concurrency"] = concurrency
        if overrides:
            config = config.model_copy(
                update={"run": config.run.model_copy(update=overrides)}
            )
        cells = build_matrix_from_config(config)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    _show_plan(config, cells)
    if dry_run:
        console.print("\n[yellow]Dry run:[/yellow] nothing was executed")
        return

    try:
        client = build_client(config)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    store = OutputStore.create(get_runs_dir(bench_dir))
    console.print(f"\n[bold]Starting {store.run_id}[/bold]")

    started_at = utcnow()
    started = time.monotonic()
    on_result = report_progress(store.recorder(config.models_by_slug()), len(cells))
    results = asyncio.run(_execute(client, config, cells, on_result))

    summary = summarize_results(
        store.run_id,
        results,
        config.models_by_slug(),
        started_at=started_at,
        finished_at=utcnow(),
        duration_ms=round((time.monotonic() - started) * 1000, 1),
    )
    summary_path = store.write_summary(summary)

    console.print()
    console.print(summary_table(summary))
    console.print(
        f"\n[green]Completed:[/green] {summary.successful}/{summary.total_cells} cells"
        f" in {summary.duration_ms / 1000:.1f}s"
    )
    console.print(f"  [dim]artifacts:[/dim] {store.run_dir}")
    console.print(f"  [dim]summary:[/dim] {summary_path}")
    console.print(f"  [dim]next:[/dim] coursebench score {store.run_id}")
