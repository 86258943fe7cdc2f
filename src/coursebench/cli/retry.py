# Copyright (c) Syntropy Systems
"""coursebench retry command."""
from __future__ import annotations

import asyncio
import time
from contextlib import suppress
from typing import TYPE_CHECKING, Optional, cast

import typer
from pydantic import ValidationError
from rich.console import Console

from coursebench.cli.display import summary_table
from coursebench.cli.run import build_client, report_progress
from coursebench.config import (
    ConfigurationError,
    get_runs_dir,
    load_config,
    require_bench_dir,
)
from coursebench.models.bench import ERROR_KINDS, GenerationFailure
from coursebench.runner import RunExecutor, retry_failures
from coursebench.store import OutputStore, summarize_results, utcnow

if TYPE_CHECKING:
    from collections.abc import Callable

    from coursebench.client import OpenRouterClient
    from coursebench.config import BenchConfig
    from coursebench.models.bench import CellResult, ErrorKind

console = Console()


async def _retry(
    client: OpenRouterClient,
    config: BenchConfig,
    results: list[CellResult],
    on_result: Callable[[CellResult], None],
    kinds: set[ErrorKind] | None,
    attempts: int,
) -> list[CellResult]:
    async with client:
        executor = RunExecutor.from_settings(client, config.run, on_result=on_result)
        return await retry_failures(
            results,
            executor,
            config.models_by_slug(),
            config.scenarios_by_id(),
            kinds=kinds,
            max_attempts=attempts,
        )


def retry(
    run_id: str = typer.Argument(
        "latest",
        help="Run ID to retry (default: latest)",
    ),
    kind: Optional[list[str]] = typer.Option(
        None,
        "--kind",
        help="Only retry failures of this error kind (repeatable)",
    ),
    attempts: int = typer.Option(
        1,
        "--attempts",
        "-n",
        min=1,
        help="Retry rounds for cells that keep failing",
    ),
) -> None:
    """Re-run only the failed cells of a stored run.

    Successful cells are left untouched; retried cells overwrite their own
    artifacts and the run summary is rebuilt.
    """
    kinds: set[ErrorKind] | None = None
    if kind:
        unknown = [k for k in kind if k not in ERROR_KINDS]
        if unknown:
            console.print(
                f"[red]Error:[/red] Unknown error kind(s): {', '.join(unknown)}"
            )
            console.print(f"  Valid kinds: {', '.join(ERROR_KINDS)}")
            raise typer.Exit(1)
        kinds = cast("set[ErrorKind]", set(kind))

    try:
        bench_dir = require_bench_dir()
        config = load_config(bench_dir)
        store = OutputStore.open(get_runs_dir(bench_dir), run_id)
    except (ConfigurationError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    results = store.load_results()
    failures = [
        result
        for result in results
        if isinstance(result.outcome, GenerationFailure)
        and (kinds is None or result.outcome.error_kind in kinds)
    ]
    if not failures:
        console.print(f"[green]Nothing to retry:[/green] no matching failed cells in {store.run_id}")
        return

    try:
        client = build_client(config)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(f"[bold]Retrying {len(failures)} failed cells of {store.run_id}[/bold]")
    started_at = utcnow()
    started = time.monotonic()
    on_result = report_progress(
        store.recorder(config.models_by_slug()),
        len(failures) if attempts == 1 else None,
    )
    try:
        merged = asyncio.run(_retry(client, config, results, on_result, kinds, attempts))
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    previous = None
    with suppress(FileNotFoundError, ValidationError):
        previous = store.read_summary()

    summary = summarize_results(
        store.run_id,
        merged,
        config.models_by_slug(),
        started_at=previous.started_at if previous else started_at,
        finished_at=utcnow(),
        duration_ms=(previous.duration_ms if previous else 0.0)
        + round((time.monotonic() - started) * 1000, 1),
    )
    _ = store.write_summary(summary)

    recovered = sum(
        1
        for before, after in zip(results, merged)
        if not before.succeeded and after.succeeded
    )
    console.print()
    console.print(summary_table(summary))
    console.print(
        f"\n[green]Recovered:[/green] {recovered}/{len(failures)} cells"
        f"  [dim]still failing:[/dim] {summary.failed}"
    )
