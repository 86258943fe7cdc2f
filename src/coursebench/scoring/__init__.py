# Copyright (c) Syntropy Systems
"""Scoring pipeline: normalize, analyze, aggregate and rank."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from coursebench.models.bench import GenerationFailure
from coursebench.models.scores import (
    CellScore,
    QualityScore,
    ScoreReport,
    ScoringWeights,
    Unparsable,
)
from coursebench.scoring.aggregate import aggregate_scores, compute_consistency
from coursebench.scoring.content import analyze_content
from coursebench.scoring.language import analyze_language
from coursebench.scoring.normalizer import normalize_response
from coursebench.scoring.ranking import build_rankings
from coursebench.scoring.schema import validate_schema

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from coursebench.models.base import JSONValue
    from coursebench.models.bench import CellResult, Scenario

logger = logging.getLogger(__name__)

__all__ = [
    "aggregate_scores",
    "analyze_content",
    "analyze_language",
    "build_rankings",
    "compute_consistency",
    "evaluate_results",
    "normalize_response",
    "score_artifact",
    "score_cell",
    "validate_schema",
]


def score_artifact(
    data: JSONValue, scenario: Scenario, weights: ScoringWeights | None = None
) -> QualityScore:
    """Run the three analyzers on a parsed artifact."""
    schema = validate_schema(data, scenario.shape)
    content = analyze_content(data, scenario)
    language = analyze_language(data, scenario.language)
    return QualityScore(
        schema_score=schema.score,
        content_score=content.score,
        language_score=language.score,
        weights=weights or ScoringWeights(),
        issues=[*schema.issues, *content.issues, *language.issues],
    )


def score_cell(
    result: CellResult, scenario: Scenario, weights: ScoringWeights | None = None
) -> CellScore:
    """Score one resolved cell.

    Failed generations carry no quality score. Unparsable output gets an
    all-zero score with the parser's message as its issue.
    """
    cell = result.cell
    outcome = result.outcome
    if isinstance(outcome, GenerationFailure):
        return CellScore(
            model_slug=cell.model_slug,
            scenario_id=cell.scenario_id,
            repetition=cell.repetition,
            status="failed",
            error_kind=outcome.error_kind,
        )

    parsed = normalize_response(outcome.raw_text)
    if isinstance(parsed, Unparsable):
        return CellScore(
            model_slug=cell.model_slug,
            scenario_id=cell.scenario_id,
            repetition=cell.repetition,
            status="unparsable",
            quality=QualityScore.zero(f"Failed to parse JSON: {parsed.reason}", weights),
            parse_error=parsed.reason,
        )

    return CellScore(
        model_slug=cell.model_slug,
        scenario_id=cell.scenario_id,
        repetition=cell.repetition,
        status="scored",
        quality=score_artifact(parsed.data, scenario, weights),
    )


def evaluate_results(
    results: Sequence[CellResult],
    scenarios: Mapping[str, Scenario],
    *,
    repetitions: int,
    weights: ScoringWeights | None = None,
    run_id: str = "",
    generated_at: str = "",
) -> ScoreReport:
    """Score every cell, aggregate per (model, scenario) and rank."""
    weights = weights or ScoringWeights()
    cells: list[CellScore] = []
    for result in sorted(results, key=lambda item: item.key):
        scenario = scenarios.get(result.cell.scenario_id)
        if scenario is None:
            logger.warning(
                "Skipping %s / %s run %d: scenario is not configured",
                result.cell.model_slug,
                result.cell.scenario_id,
                result.cell.repetition,
            )
            continue
        cells.append(score_cell(result, scenario, weights))

    aggregates = aggregate_scores(cells, repetitions)
    return ScoreReport(
        run_id=run_id,
        generated_at=generated_at,
        weights=weights,
        cells=cells,
        aggregates=aggregates,
        rankings=build_rankings(aggregates, scenarios),
    )
