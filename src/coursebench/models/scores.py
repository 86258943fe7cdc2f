# Copyright (c) Syntropy Systems
"""Pydantic models for parsed artifacts, quality scores and rankings."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Annotated, Literal, Union

from pydantic import Field, computed_field, model_validator
from typing_extensions import Self, TypeAlias

from .base import BenchBaseModel, FrozenModel, JSONValue

if TYPE_CHECKING:
    from pathlib import Path

    from .bench import CellKey

CellStatus: TypeAlias = Literal["scored", "unparsable", "failed"]
ConsistencyStatus: TypeAlias = Literal["computed", "insufficient_data"]

QualityTier: TypeAlias = Literal["A", "B", "C", "D"]

OVERALL_CATEGORY = "overall"
KIND_CATEGORY_PREFIX = "kind:"

# Lower bound of each tier; anything below the last bound is D.
TIER_THRESHOLDS: tuple[tuple[QualityTier, float], ...] = (("A", 0.90), ("B", 0.75), ("C", 0.60))


def quality_tier(score: float) -> QualityTier:
    """Classify an overall score: A >= 0.90, B >= 0.75, C >= 0.60, else D."""
    for tier, bound in TIER_THRESHOLDS:
        if score >= bound:
            return tier
    return "D"


class Parsed(BenchBaseModel):
    """Structured data recovered from raw text."""

    status: Literal["parsed"] = "parsed"
    data: JSONValue


class Unparsable(BenchBaseModel):
    """Raw text that could not be parsed."""

    status: Literal["unparsable"] = "unparsable"
    reason: str


ParsedArtifact: TypeAlias = Annotated[
    Union[Parsed, Unparsable], Field(discriminator="status")
]


class ScoringWeights(FrozenModel):
    """Weights combining the three quality dimensions into an overall score."""

    schema_weight: float = Field(default=0.4, ge=0)
    content_weight: float = Field(default=0.4, ge=0)
    language_weight: float = Field(default=0.2, ge=0)

    @model_validator(mode="after")
    def _check_total(self) -> Self:
        total = self.schema_weight + self.content_weight + self.language_weight
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            msg = f"scoring weights must sum to 1.0 (got {total:g})"
            raise ValueError(msg)
        return self

    def combine(self, schema: float, content: float, language: float) -> float:
        value = (
            schema * self.schema_weight
            + content * self.content_weight
            + language * self.language_weight
        )
        return round(min(1.0, max(0.0, value)), 4)


class QualityScore(BenchBaseModel):
    """Evaluation of a single parsed artifact."""

    schema_score: float = Field(ge=0, le=1)
    content_score: float = Field(ge=0, le=1)
    language_score: float = Field(ge=0, le=1)
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    issues: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def overall_score(self) -> float:
        return self.weights.combine(
            self.schema_score, self.content_score, self.language_score
        )

    @classmethod
    def zero(cls, issue: str, weights: ScoringWeights | None = None) -> QualityScore:
        """Score for an artifact that could not be evaluated at all."""
        return cls(
            schema_score=0.0,
            content_score=0.0,
            language_score=0.0,
            weights=weights or ScoringWeights(),
            issues=[issue],
        )


class CellScore(BenchBaseModel):
    """Scoring outcome for one cell of the grid."""

    model_slug: str
    scenario_id: str
    repetition: int
    status: CellStatus
    quality: QualityScore | None = None
    parse_error: str | None = None
    error_kind: str | None = None

    @property
    def key(self) -> CellKey:
        return (self.model_slug, self.scenario_id, self.repetition)

    @property
    def overall_score(self) -> float | None:
        """Overall score, only for cells that reached the parsed state."""
        if self.status != "scored" or self.quality is None:
            return None
        return self.quality.overall_score


class AggregateScore(BenchBaseModel):
    """Summary of one model on one scenario across repetitions."""

    model_slug: str
    scenario_id: str
    total: int = Field(ge=0)
    success_count: int = Field(ge=0)
    failed_count: int = 0
    unparsable_count: int = 0
    mean_overall: float | None = None
    mean_schema: float | None = None
    mean_content: float | None = None
    mean_language: float | None = None
    std_dev: float | None = None
    consistency: float | None = None
    consistency_status: ConsistencyStatus = "insufficient_data"
    best_repetition: int | None = None
    worst_repetition: int | None = None

    @model_validator(mode="after")
    def _check_counts(self) -> Self:
        if self.success_count > self.total:
            msg = f"success_count {self.success_count} exceeds total {self.total}"
            raise ValueError(msg)
        return self

    @property
    def success_ratio(self) -> str:
        return f"{self.success_count}/{self.total}"

    @property
    def quality_tier(self) -> QualityTier | None:
        if self.mean_overall is None:
            return None
        return quality_tier(self.mean_overall)


class RankingEntry(BenchBaseModel):
    """Ordered position of a model within a category."""

    model_slug: str
    category: str
    rank: int = Field(ge=1)
    score: float
    consistency: float | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def quality_tier(self) -> QualityTier:
        return quality_tier(self.score)


class Ranking(BenchBaseModel):
    """Strictly ordered ranking for one category."""

    category: str
    entries: list[RankingEntry] = Field(default_factory=list)

    @property
    def winner(self) -> RankingEntry | None:
        return self.entries[0] if self.entries else None


class ScoreReport(BenchBaseModel):
    """Everything derived from one run's artifacts."""

    run_id: str = ""
    generated_at: str = ""
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    cells: list[CellScore] = Field(default_factory=list)
    aggregates: list[AggregateScore] = Field(default_factory=list)
    rankings: list[Ranking] = Field(default_factory=list)

    def ranking_for(self, category: str) -> Ranking | None:
        for ranking in self.rankings:
            if ranking.category == category:
                return ranking
        return None

    @classmethod
    def load(cls, path: Path) -> ScoreReport:
        """Load a report from a JSON file."""
        return cls.model_validate_json(path.read_text())

    def save(self, path: Path) -> None:
        """Save the report as JSON."""
        path.parent.mkdir(parents=True, exist_ok=True)
        _ = path.write_text(self.model_dump_json(indent=2))
