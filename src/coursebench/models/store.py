# Copyright (c) Syntropy Systems
"""Pydantic models for persisted run artifacts."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field

from .base import BenchBaseModel
from .bench import ErrorKind, TokenUsage

if TYPE_CHECKING:
    from pathlib import Path


class CellMetadata(BenchBaseModel):
    """Execution metadata written next to each cell's artifacts."""

    model: str
    model_name: str = ""
    scenario: str
    repetition: int = Field(ge=1)
    elapsed_ms: float = Field(ge=0)
    timestamp: str
    content_length: int = 0
    success: bool
    error_kind: ErrorKind | None = None
    error_detail: str | None = None
    token_usage: TokenUsage | None = None
    cost_usd: float | None = None


class ErrorArtifact(BenchBaseModel):
    """Placeholder written instead of parsed JSON when there is none."""

    error: str
    parse_error: str | None = Field(default=None, alias="parseError")
    raw_content: str = Field(default="", alias="rawContent")


class ModelBreakdown(BenchBaseModel):
    """Per-model success statistics for a run."""

    model: str
    model_name: str = ""
    total: int = 0
    successful: int = 0
    failed: int = 0
    avg_elapsed_ms: float = 0.0
    error_kinds: dict[str, int] = Field(default_factory=dict)
    total_tokens: int = 0
    cost_usd: float = 0.0

    @property
    def success_rate(self) -> float:
        return self.successful / self.total if self.total else 0.0


class RunSummary(BenchBaseModel):
    """Run-level summary produced after every cell has resolved."""

    run_id: str
    started_at: str = ""
    finished_at: str = ""
    duration_ms: float = 0.0
    total_cells: int = 0
    successful: int = 0
    failed: int = 0
    avg_elapsed_ms: float = 0.0
    models: list[ModelBreakdown] = Field(default_factory=list)

    @property
    def success_rate(self) -> float:
        return self.successful / self.total_cells if self.total_cells else 0.0

    @classmethod
    def load(cls, path: Path) -> RunSummary:
        """Load a summary from a JSON file."""
        return cls.model_validate_json(path.read_text())

    def save(self, path: Path) -> None:
        """Save the summary as JSON."""
        path.parent.mkdir(parents=True, exist_ok=True)
        _ = path.write_text(self.model_dump_json(indent=2))
