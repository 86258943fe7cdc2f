# Copyright (c) Syntropy Systems
"""Deterministic rankings per scenario, per scenario kind and overall."""
from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

from coursebench.models.scores import (
    KIND_CATEGORY_PREFIX,
    OVERALL_CATEGORY,
    Ranking,
    RankingEntry,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from coursebench.models.bench import Scenario
    from coursebench.models.scores import AggregateScore


class Candidate(NamedTuple):
    model_slug: str
    score: float
    consistency: float | None


def _sort_key(candidate: Candidate) -> tuple[float, int, float, str]:
    # Score desc, then consistency desc with missing consistency last, then slug asc
    consistency = candidate.consistency
    return (
        -candidate.score,
        1 if consistency is None else 0,
        -(consistency or 0.0),
        candidate.model_slug,
    )


def rank_candidates(category: str, candidates: Iterable[Candidate]) -> Ranking:
    """Order candidates strictly; every entry gets a distinct rank."""
    ordered = sorted(candidates, key=_sort_key)
    return Ranking(
        category=category,
        entries=[
            RankingEntry(
                model_slug=candidate.model_slug,
                category=category,
                rank=index,
                score=candidate.score,
                consistency=candidate.consistency,
            )
            for index, candidate in enumerate(ordered, 1)
        ],
    )


def kind_category(kind: str) -> str:
    return f"{KIND_CATEGORY_PREFIX}{kind}"


def rank_scenario(scenario_id: str, aggregates: Iterable[AggregateScore]) -> Ranking:
    """Rank models on one scenario; models with no scored cells are left out."""
    return rank_candidates(
        scenario_id,
        (
            Candidate(agg.model_slug, agg.mean_overall, agg.consistency)
            for agg in aggregates
            if agg.scenario_id == scenario_id and agg.mean_overall is not None
        ),
    )


def rank_combined(
    category: str,
    aggregates: Sequence[AggregateScore],
    scenario_ids: Sequence[str],
) -> Ranking:
    """Rank models on the equally weighted mean of several scenarios.

    A model takes part if it has scored cells on at least one of the
    scenarios; a scenario where it has none contributes zero. Consistency is
    the mean of the consistencies that could be computed.
    """
    by_model: dict[str, dict[str, AggregateScore]] = {}
    for agg in aggregates:
        if agg.scenario_id in scenario_ids:
            by_model.setdefault(agg.model_slug, {})[agg.scenario_id] = agg

    candidates: list[Candidate] = []
    for model_slug in sorted(by_model):
        per_scenario = by_model[model_slug]
        total = 0.0
        scored = 0
        consistencies: list[float] = []
        for sid in scenario_ids:
            agg = per_scenario.get(sid)
            if agg is None or agg.mean_overall is None:
                continue
            total += agg.mean_overall
            scored += 1
            if agg.consistency is not None:
                consistencies.append(agg.consistency)
        if not scored:
            continue
        candidates.append(
            Candidate(
                model_slug,
                total / len(scenario_ids),
                sum(consistencies) / len(consistencies) if consistencies else None,
            )
        )
    return rank_candidates(category, candidates)


def build_rankings(
    aggregates: Sequence[AggregateScore],
    scenarios: Mapping[str, Scenario],
) -> list[Ranking]:
    """Scenario rankings, then per-kind rankings, then the overall ranking.

    Only scenarios that appear in the aggregates are considered.
    """
    scenario_ids = sorted({agg.scenario_id for agg in aggregates})
    rankings = [rank_scenario(sid, aggregates) for sid in scenario_ids]

    kinds: dict[str, list[str]] = {}
    for sid in scenario_ids:
        scenario = scenarios.get(sid)
        if scenario is not None:
            kinds.setdefault(scenario.kind, []).append(sid)
    for kind in sorted(kinds):
        rankings.append(rank_combined(kind_category(kind), aggregates, kinds[kind]))

    if scenario_ids:
        rankings.append(rank_combined(OVERALL_CATEGORY, aggregates, scenario_ids))
    return rankings
