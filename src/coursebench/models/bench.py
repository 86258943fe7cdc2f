# Copyright (c) Syntropy Systems
"""Pydantic models describing the benchmark grid and generation outcomes."""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal, Union

from pydantic import Field, field_validator, model_validator
from typing_extensions import Self, TypeAlias

from .base import BenchBaseModel, FrozenModel

ScenarioKind: TypeAlias = Literal["metadata", "lesson"]
ErrorKind: TypeAlias = Literal["network", "timeout", "rate_limited", "provider_error"]
NamingConvention: TypeAlias = Literal["snake_case", "camelCase", "any"]
FieldType: TypeAlias = Literal["string", "number", "integer", "boolean", "array", "object"]
CellState: TypeAlias = Literal["pending", "success", "failure"]
CellKey: TypeAlias = tuple[str, str, int]

ERROR_KINDS: tuple[ErrorKind, ...] = ("network", "timeout", "rate_limited", "provider_error")


class ModelPricing(FrozenModel):
    """Price per million tokens, in USD."""

    input_per_million: float = Field(default=0.0, ge=0)
    output_per_million: float = Field(default=0.0, ge=0)

    def estimate_cost(self, usage: TokenUsage) -> float:
        """Estimate request cost from reported token usage."""
        return (
            usage.prompt_tokens / 1_000_000 * self.input_per_million
            + usage.completion_tokens / 1_000_000 * self.output_per_million
        )


class ModelDescriptor(FrozenModel):
    """One candidate generation backend."""

    slug: str = Field(min_length=1)
    name: str = ""
    backend_id: str = Field(alias="api_name", min_length=1)
    timeout_seconds: float | None = Field(default=None, gt=0)
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0)
    pricing: ModelPricing | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.slug


class ExpectedShape(FrozenModel):
    """Structural expectations for a scenario's artifact."""

    required_fields: list[str] = Field(default_factory=list)
    field_types: dict[str, FieldType] = Field(default_factory=dict)
    naming: NamingConvention = "snake_case"


class ContentRules(FrozenModel):
    """Count and length bounds used by the content analyzers.

    Ranges are inclusive ``(low, high)`` pairs.
    """

    lesson_range: tuple[int, int] = (3, 5)
    outcome_range: tuple[int, int] = (3, 8)
    prerequisite_range: tuple[int, int] = (1, 5)
    tag_range: tuple[int, int] = (3, 10)
    overview_min_chars: int = 500
    description_range: tuple[int, int] = (50, 3000)
    audience_min_chars: int = 50
    instruction_min_chars: int = 20

    @field_validator(
        "lesson_range",
        "outcome_range",
        "prerequisite_range",
        "tag_range",
        "description_range",
    )
    @classmethod
    def _check_range(cls, value: tuple[int, int]) -> tuple[int, int]:
        low, high = value
        if low < 0 or low > high:
            msg = f"invalid range {low}-{high}"
            raise ValueError(msg)
        return value


class Scenario(FrozenModel):
    """One fixed generation task, used identically across all models."""

    id: str = Field(min_length=1)
    kind: ScenarioKind
    language: str = "en"
    prompt: str
    variables: dict[str, str] = Field(default_factory=dict)
    shape: ExpectedShape = Field(default_factory=ExpectedShape)
    rules: ContentRules = Field(default_factory=ContentRules)

    def build_prompt(self) -> str:
        """Render the prompt, replacing ``{{name}}`` tokens with variables."""
        prompt = self.prompt
        for name, value in self.variables.items():
            prompt = prompt.replace("{{" + name + "}}", value)
        return prompt


class TokenUsage(BenchBaseModel):
    """Token counts reported by the backend."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @model_validator(mode="after")
    def _fill_total(self) -> Self:
        if not self.total_tokens:
            self.total_tokens = self.prompt_tokens + self.completion_tokens
        return self


class Generation(BenchBaseModel):
    """Text returned by a generation client."""

    text: str
    usage: TokenUsage | None = None


class GenerationSuccess(BenchBaseModel):
    """A cell whose backend call returned text."""

    status: Literal["success"] = "success"
    raw_text: str
    elapsed_ms: float = Field(ge=0)
    token_usage: TokenUsage | None = None


class GenerationFailure(BenchBaseModel):
    """A cell whose backend call raised."""

    status: Literal["failure"] = "failure"
    error_kind: ErrorKind
    message: str
    elapsed_ms: float = Field(ge=0)


GenerationOutcome: TypeAlias = Annotated[
    Union[GenerationSuccess, GenerationFailure], Field(discriminator="status")
]


class TestCell(FrozenModel):
    """One (model, scenario, repetition) unit of work."""

    __test__: ClassVar[bool] = False

    model_slug: str
    scenario_id: str
    repetition: int = Field(ge=1)
    state: CellState = "pending"

    @property
    def key(self) -> CellKey:
        return (self.model_slug, self.scenario_id, self.repetition)

    def resolve(self, outcome: GenerationSuccess | GenerationFailure) -> TestCell:
        """Return the terminal copy of this cell for the given outcome."""
        if self.state != "pending":
            msg = f"Cell {self.key} already resolved as {self.state}"
            raise ValueError(msg)
        state: CellState = "success" if outcome.status == "success" else "failure"
        return self.model_copy(update={"state": state})


class CellResult(BenchBaseModel):
    """A resolved cell together with its generation outcome."""

    cell: TestCell
    outcome: GenerationOutcome

    @property
    def key(self) -> CellKey:
        return self.cell.key

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, GenerationSuccess)
