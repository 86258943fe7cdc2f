# Copyright (c) Syntropy Systems
"""Per (model, scenario) aggregation of cell scores and their consistency."""
from __future__ import annotations

import statistics
from typing import TYPE_CHECKING

from coursebench.models.scores import AggregateScore

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from coursebench.models.scores import CellScore


def compute_consistency(scores: Sequence[float]) -> tuple[float | None, float | None]:
    """Return ``(std_dev, consistency)`` for a set of overall scores.

    Consistency is ``max(0, 1 - population std dev)``. With fewer than two
    scores both values are None, which callers report as insufficient data.
    """
    if len(scores) < 2:
        return None, None
    std_dev = statistics.pstdev(scores)
    return std_dev, max(0.0, 1.0 - std_dev)


def _mean(values: Sequence[float]) -> float | None:
    return sum(values) / len(values) if values else None


def aggregate_group(
    model_slug: str,
    scenario_id: str,
    cells: Sequence[CellScore],
    repetitions: int,
) -> AggregateScore:
    """Aggregate the cells of one model on one scenario.

    Means cover only scored cells; failed and unparsable cells count toward
    the total but not toward any mean.
    """
    scored = [
        (cell.repetition, cell.quality)
        for cell in cells
        if cell.status == "scored" and cell.quality is not None
    ]
    overall = [quality.overall_score for _, quality in scored]
    std_dev, consistency = compute_consistency(overall)

    best = worst = None
    if scored:
        best = max(scored, key=lambda item: (item[1].overall_score, -item[0]))[0]
        worst = min(scored, key=lambda item: (item[1].overall_score, item[0]))[0]

    return AggregateScore(
        model_slug=model_slug,
        scenario_id=scenario_id,
        total=max(repetitions, len(cells)),
        success_count=len(scored),
        failed_count=sum(1 for cell in cells if cell.status == "failed"),
        unparsable_count=sum(1 for cell in cells if cell.status == "unparsable"),
        mean_overall=_mean(overall),
        mean_schema=_mean([quality.schema_score for _, quality in scored]),
        mean_content=_mean([quality.content_score for _, quality in scored]),
        mean_language=_mean([quality.language_score for _, quality in scored]),
        std_dev=std_dev,
        consistency=consistency,
        consistency_status="computed" if consistency is not None else "insufficient_data",
        best_repetition=best,
        worst_repetition=worst,
    )


def aggregate_scores(cells: Iterable[CellScore], repetitions: int) -> list[AggregateScore]:
    """Aggregate cell scores per (model, scenario), sorted by that key.

    Grouping is by key only, so the arrival order of cells does not matter.
    """
    groups: dict[tuple[str, str], list[CellScore]] = {}
    for cell in cells:
        groups.setdefault((cell.model_slug, cell.scenario_id), []).append(cell)

    return [
        aggregate_group(
            model_slug,
            scenario_id,
            sorted(groups[(model_slug, scenario_id)], key=lambda cell: cell.repetition),
            repetitions,
        )
        for model_slug, scenario_id in sorted(groups)
    ]
