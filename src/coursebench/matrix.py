# Copyright (c) Syntropy Systems
"""Enumerate the (model, scenario, repetition) grid for a run."""
from __future__ import annotations

from typing import TYPE_CHECKING

from coursebench.config import ConfigurationError
from coursebench.models.bench import TestCell

if TYPE_CHECKING:
    from collections.abc import Sequence

    from coursebench.config import BenchConfig
    from coursebench.models.bench import ModelDescriptor, Scenario


def build_matrix(
    models: Sequence[ModelDescriptor],
    scenarios: Sequence[Scenario],
    repetitions: int,
) -> list[TestCell]:
    """Build one pending cell per (model, scenario, repetition).

    Cells are ordered model-major, then scenario, then repetition 1..K.

    Raises:
        ConfigurationError: If there are no models, no scenarios, or fewer
            than one repetition.

    """
    if not models:
        msg = "No models configured"
        raise ConfigurationError(msg)
    if not scenarios:
        msg = "No scenarios configured"
        raise ConfigurationError(msg)
    if repetitions < 1:
        msg = f"Repetitions must be at least 1 (got {repetitions})"
        raise ConfigurationError(msg)

    return [
        TestCell(
            model_slug=model.slug,
            scenario_id=scenario.id,
            repetition=repetition,
        )
        for model in models
        for scenario in scenarios
        for repetition in range(1, repetitions + 1)
    ]


def build_matrix_from_config(config: BenchConfig) -> list[TestCell]:
    """Build the grid described by a loaded configuration."""
    return build_matrix(config.models, config.scenarios, config.run.repetitions)
