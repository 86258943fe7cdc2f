# Copyright (c) Syntropy Systems
"""Configuration management for coursebench."""
from __future__ import annotations

import os
from collections import Counter
from collections.abc import Iterable
from pathlib import Path
from typing import cast

import yaml
from pydantic import Field, ValidationError, field_validator
from typing_extensions import Self

from coursebench.models.base import BenchBaseModel
from coursebench.models.bench import ModelDescriptor, Scenario
from coursebench.models.scores import ScoringWeights

BENCH_DIR_NAME = ".coursebench"
CONFIG_FILE_NAME = "config.yaml"


class ConfigurationError(Exception):
    """Malformed or missing benchmark configuration."""


class RunSettings(BenchBaseModel):
    """Execution settings shared by every cell of a run."""

    # Repetitions per (model, scenario)
    repetitions: int = Field(default=3, ge=1)

    # Per-call timeout in seconds, unless a model overrides it
    timeout_seconds: float = Field(default=120.0, gt=0)

    # Delay between consecutive dispatches to the same model (seconds)
    pacing_seconds: float = Field(default=0.1, ge=0)

    # Global cap on in-flight calls; None means full fan-out
    max_concurrency: int | None = Field(default=None, ge=1)

    temperature: float = Field(default=0.7, ge=0)
    max_tokens: int = Field(default=8000, gt=0)


class ProviderSettings(BenchBaseModel):
    """Connection settings for the OpenRouter-compatible backend."""

    base_url: str = "https://openrouter.ai/api/v1"
    api_key_env: str = "OPENROUTER_API_KEY"
    app_title: str = "coursebench"

    def get_api_key(self) -> str:
        """Read the API key from the configured environment variable."""
        api_key = os.environ.get(self.api_key_env, "").strip()
        if not api_key:
            msg = f"{self.api_key_env} is not set"
            raise ConfigurationError(msg)
        return api_key


class BenchConfig(BenchBaseModel):
    """Full benchmark configuration: what to run and how to score it."""

    models: list[ModelDescriptor] = Field(default_factory=list)
    scenarios: list[Scenario] = Field(default_factory=list)
    run: RunSettings = Field(default_factory=RunSettings)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)

    @field_validator("models")
    @classmethod
    def _unique_slugs(cls, value: list[ModelDescriptor]) -> list[ModelDescriptor]:
        duplicates = _duplicates(model.slug for model in value)
        if duplicates:
            msg = f"duplicate model slugs: {', '.join(duplicates)}"
            raise ValueError(msg)
        return value

    @field_validator("scenarios")
    @classmethod
    def _unique_ids(cls, value: list[Scenario]) -> list[Scenario]:
        duplicates = _duplicates(scenario.id for scenario in value)
        if duplicates:
            msg = f"duplicate scenario ids: {', '.join(duplicates)}"
            raise ValueError(msg)
        return value

    def models_by_slug(self) -> dict[str, ModelDescriptor]:
        return {model.slug: model for model in self.models}

    def scenarios_by_id(self) -> dict[str, Scenario]:
        return {scenario.id: scenario for scenario in self.scenarios}

    def select(
        self,
        model_slugs: list[str] | None = None,
        scenario_ids: list[str] | None = None,
    ) -> Self:
        """Return a copy restricted to the given models and scenarios.

        Raises:
            ConfigurationError: If a requested slug or id is not configured.

        """
        models = self.models
        scenarios = self.scenarios
        if model_slugs:
            known = self.models_by_slug()
            unknown = [slug for slug in model_slugs if slug not in known]
            if unknown:
                msg = f"Unknown model(s): {', '.join(unknown)}"
                raise ConfigurationError(msg)
            models = [model for model in models if model.slug in model_slugs]
        if scenario_ids:
            known_ids = self.scenarios_by_id()
            unknown = [sid for sid in scenario_ids if sid not in known_ids]
            if unknown:
                msg = f"Unknown scenario(s): {', '.join(unknown)}"
                raise ConfigurationError(msg)
            scenarios = [s for s in scenarios if s.id in scenario_ids]
        return self.model_copy(update={"models": models, "scenarios": scenarios})


def _duplicates(values: Iterable[str]) -> list[str]:
    counts = Counter(values)
    return sorted(value for value, count in counts.items() if count > 1)


def find_bench_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .coursebench directory by walking up from start_path.

    Returns None if no .coursebench directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        bench_dir = current / BENCH_DIR_NAME
        if bench_dir.is_dir():
            return bench_dir
        current = current.parent

    # Check root
    bench_dir = current / BENCH_DIR_NAME
    if bench_dir.is_dir():
        return bench_dir

    return None


def require_bench_dir() -> Path:
    """Get the project directory or raise an error if not found."""
    bench_dir = find_bench_dir()
    if bench_dir is None:
        msg = "No .coursebench directory found. Run 'coursebench init' first."
        raise ConfigurationError(msg)
    return bench_dir


def get_runs_dir(bench_dir: Path | None = None) -> Path:
    """Get the path to the runs directory."""
    if bench_dir is None:
        bench_dir = require_bench_dir()
    return bench_dir / "runs"


def parse_config(data: object) -> BenchConfig:
    """Validate already-loaded configuration data."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = "Configuration must be a mapping"
        raise ConfigurationError(msg)
    try:
        return BenchConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid configuration: {e}"
        raise ConfigurationError(msg) from e


def load_config(bench_dir: Path | None = None) -> BenchConfig:
    """Load configuration from .coursebench/config.yaml.

    Looks for config in the provided bench_dir, then in the nearest
    .coursebench directory walking up from the current directory.
    """
    if bench_dir is None:
        bench_dir = require_bench_dir()

    config_path = bench_dir / CONFIG_FILE_NAME
    if not config_path.exists():
        msg = f"Config file not found: {config_path}"
        raise ConfigurationError(msg)

    try:
        with config_path.open(encoding="utf-8") as f:
            data = cast("object", yaml.safe_load(f))
    except yaml.YAMLError as e:
        msg = f"Could not read {config_path}: {e}"
        raise ConfigurationError(msg) from e

    return parse_config(data)
