# Copyright (c) Syntropy Systems
"""Rich rendering helpers shared by the CLI commands."""
from __future__ import annotations

from typing import TYPE_CHECKING

from rich.table import Table

if TYPE_CHECKING:
    from coursebench.models.scores import CellScore, Ranking, ScoreReport
    from coursebench.models.store import RunSummary

NOT_AVAILABLE = "n/a"
_TIER_STYLES = {"A": "green", "B": "cyan", "C": "yellow"}


def format_score(value: float | None) -> str:
    """Format a score, showing n/a when it could not be computed."""
    if value is None:
        return NOT_AVAILABLE
    return f"{value:.3f}"


def format_ms(milliseconds: float | None) -> str:
    """Format a duration in milliseconds to human readable."""
    if milliseconds is None:
        return "-"

    total = milliseconds / 1000
    if total < 1:
        return f"{milliseconds:.0f}ms"
    if total < 60:
        return f"{total:.1f}s"
    m, s = divmod(int(total), 60)
    return f"{m}m {s}s"


def format_tier(tier: str | None) -> str:
    if tier is None:
        return NOT_AVAILABLE
    style = _TIER_STYLES.get(tier, "red")
    return f"[{style}]{tier}[/{style}]"


def _rate_style(rate: float) -> str:
    if rate >= 0.9:
        return "green"
    if rate >= 0.5:
        return "yellow"
    return "red"


def summary_table(summary: RunSummary) -> Table:
    """Per-model success breakdown for a run."""
    table = Table(title=f"Run {summary.run_id}", show_header=True, header_style="bold")
    table.add_column("Model")
    table.add_column("OK", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Avg time", justify="right")
    table.add_column("Errors")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")

    for breakdown in summary.models:
        style = _rate_style(breakdown.success_rate)
        errors = ", ".join(
            f"{kind}={count}" for kind, count in breakdown.error_kinds.items()
        )
        table.add_row(
            breakdown.model,
            str(breakdown.successful),
            str(breakdown.failed),
            f"[{style}]{breakdown.success_rate:.0%}[/{style}]",
            format_ms(breakdown.avg_elapsed_ms),
            errors or "[dim]-[/dim]",
            str(breakdown.total_tokens) if breakdown.total_tokens else "-",
            f"${breakdown.cost_usd:.4f}" if breakdown.cost_usd else "-",
        )
    return table


def aggregate_table(report: ScoreReport) -> Table:
    """Mean scores per (model, scenario)."""
    table = Table(title="Quality scores", show_header=True, header_style="bold")
    table.add_column("Model")
    table.add_column("Scenario")
    table.add_column("Overall", justify="right")
    table.add_column("Schema", justify="right")
    table.add_column("Content", justify="right")
    table.add_column("Language", justify="right")
    table.add_column("Parsed", justify="right")
    table.add_column("Consistency", justify="right")
    table.add_column("Tier", justify="center")

    for agg in report.aggregates:
        consistency = format_score(agg.consistency)
        if agg.consistency is None:
            consistency = f"[dim]{consistency}[/dim]"
        table.add_row(
            agg.model_slug,
            agg.scenario_id,
            format_score(agg.mean_overall),
            format_score(agg.mean_schema),
            format_score(agg.mean_content),
            format_score(agg.mean_language),
            agg.success_ratio,
            consistency,
            format_tier(agg.quality_tier),
        )
    return table


def ranking_table(ranking: Ranking) -> Table:
    """Strict ranking for one category; the winner is highlighted."""
    table = Table(title=f"Ranking: {ranking.category}")
    table.add_column("Rank", style="dim")
    table.add_column("Model")
    table.add_column("Score", justify="right")
    table.add_column("Consistency", justify="right")
    table.add_column("Tier", justify="center")

    for entry in ranking.entries:
        score = format_score(entry.score)
        if entry.rank == 1:
            score = f"[green]{score}[/green]"
        table.add_row(
            str(entry.rank),
            entry.model_slug,
            score,
            format_score(entry.consistency),
            format_tier(entry.quality_tier),
        )
    return table


def issue_lines(cells: list[CellScore]) -> list[str]:
    """One line per issue, prefixed with the cell it belongs to."""
    lines: list[str] = []
    for cell in cells:
        label = f"{cell.model_slug}/{cell.scenario_id}#{cell.repetition}"
        if cell.status == "failed":
            lines.append(f"{label}: generation failed ({cell.error_kind})")
            continue
        if cell.quality is None:
            continue
        lines.extend(f"{label}: {issue}" for issue in cell.quality.issues)
    return lines
