# Copyright (c) Syntropy Systems
"""Concurrent execution of benchmark cells against generation backends."""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Collection, Mapping, Sequence
from contextlib import nullcontext
from typing import TYPE_CHECKING

from coursebench.client import classify_error
from coursebench.config import ConfigurationError
from coursebench.matrix import build_matrix_from_config
from coursebench.models.bench import (
    CellResult,
    Generation,
    GenerationFailure,
    GenerationSuccess,
    TestCell,
)

if TYPE_CHECKING:
    from coursebench.client import GenerationClient
    from coursebench.config import BenchConfig, RunSettings
    from coursebench.models.bench import (
        CellKey,
        ErrorKind,
        ModelDescriptor,
        Scenario,
    )

logger = logging.getLogger(__name__)

OnResult = Callable[[CellResult], None]


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 1)


class RunExecutor:
    """Runs cells concurrently, producing exactly one outcome per cell.

    Every model gets its own dispatcher that launches that model's cells in
    order, waiting ``pacing_seconds`` between launches. Dispatchers for
    different models run in parallel, so wall-clock time tracks the slowest
    model rather than the total number of cells. An optional semaphore caps
    the number of calls in flight across all models.
    """

    client: GenerationClient
    timeout_seconds: float
    pacing_seconds: float
    max_concurrency: int | None

    def __init__(
        self,
        client: GenerationClient,
        *,
        timeout_seconds: float = 120.0,
        pacing_seconds: float = 0.1,
        max_concurrency: int | None = None,
        on_result: OnResult | None = None,
    ) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            msg = f"max_concurrency must be at least 1 (got {max_concurrency})"
            raise ConfigurationError(msg)
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.pacing_seconds = pacing_seconds
        self.max_concurrency = max_concurrency
        self._on_result = on_result

    @classmethod
    def from_settings(
        cls,
        client: GenerationClient,
        settings: RunSettings,
        *,
        on_result: OnResult | None = None,
    ) -> RunExecutor:
        return cls(
            client,
            timeout_seconds=settings.timeout_seconds,
            pacing_seconds=settings.pacing_seconds,
            max_concurrency=settings.max_concurrency,
            on_result=on_result,
        )

    async def execute(
        self,
        cells: Sequence[TestCell],
        models: Mapping[str, ModelDescriptor],
        scenarios: Mapping[str, Scenario],
    ) -> list[CellResult]:
        """Execute all cells and return their results in input order.

        Raises:
            ConfigurationError: If a cell references an unknown model or
                scenario. Nothing is executed in that case.

        """
        by_model: dict[str, list[TestCell]] = {}
        for cell in cells:
            if cell.model_slug not in models:
                msg = f"Unknown model '{cell.model_slug}'"
                raise ConfigurationError(msg)
            if cell.scenario_id not in scenarios:
                msg = f"Unknown scenario '{cell.scenario_id}'"
                raise ConfigurationError(msg)
            by_model.setdefault(cell.model_slug, []).append(cell)

        semaphore = (
            asyncio.Semaphore(self.max_concurrency)
            if self.max_concurrency is not None
            else None
        )
        results: dict[CellKey, CellResult] = {}

        async def dispatch(model: ModelDescriptor, model_cells: list[TestCell]) -> None:
            tasks: list[asyncio.Task[CellResult]] = []
            for index, cell in enumerate(model_cells):
                if index and self.pacing_seconds > 0:
                    await asyncio.sleep(self.pacing_seconds)
                scenario = scenarios[cell.scenario_id]
                tasks.append(
                    asyncio.create_task(self._run_cell(cell, model, scenario, semaphore))
                )
            for result in await asyncio.gather(*tasks):
                results[result.key] = result

        logger.info(
            "Executing %d cells across %d models", len(cells), len(by_model)
        )
        _ = await asyncio.gather(
            *(dispatch(models[slug], model_cells) for slug, model_cells in by_model.items())
        )
        return [results[cell.key] for cell in cells]

    async def _run_cell(
        self,
        cell: TestCell,
        model: ModelDescriptor,
        scenario: Scenario,
        semaphore: asyncio.Semaphore | None,
    ) -> CellResult:
        prompt = scenario.build_prompt()
        timeout = model.timeout_seconds or self.timeout_seconds
        outcome: GenerationSuccess | GenerationFailure

        async with semaphore if semaphore is not None else nullcontext():
            logger.debug(
                "Dispatching %s / %s run %d", cell.model_slug, cell.scenario_id, cell.repetition
            )
            started = time.monotonic()
            try:
                reply = await asyncio.wait_for(
                    self.client.generate(model, prompt), timeout=timeout
                )
            except asyncio.TimeoutError:
                outcome = GenerationFailure(
                    error_kind="timeout",
                    message=f"Timed out after {timeout:g}s",
                    elapsed_ms=_elapsed_ms(started),
                )
            except Exception as e:
                outcome = GenerationFailure(
                    error_kind=classify_error(e),
                    message=str(e) or type(e).__name__,
                    elapsed_ms=_elapsed_ms(started),
                )
            else:
                generation = reply if isinstance(reply, Generation) else Generation(text=reply)
                outcome = GenerationSuccess(
                    raw_text=generation.text,
                    elapsed_ms=_elapsed_ms(started),
                    token_usage=generation.usage,
                )

        if isinstance(outcome, GenerationFailure):
            logger.warning(
                "%s / %s run %d failed (%s): %s",
                cell.model_slug,
                cell.scenario_id,
                cell.repetition,
                outcome.error_kind,
                outcome.message,
            )
        else:
            logger.info(
                "%s / %s run %d completed in %.0fms",
                cell.model_slug,
                cell.scenario_id,
                cell.repetition,
                outcome.elapsed_ms,
            )

        result = CellResult(cell=cell.resolve(outcome), outcome=outcome)
        if self._on_result is not None:
            try:
                self._on_result(result)
            except Exception:
                logger.exception(
                    "Result callback failed for %s / %s run %d",
                    cell.model_slug,
                    cell.scenario_id,
                    cell.repetition,
                )
        return result


async def run_matrix(
    config: BenchConfig,
    client: GenerationClient,
    *,
    on_result: OnResult | None = None,
) -> list[CellResult]:
    """Build the grid from configuration and execute every cell."""
    cells = build_matrix_from_config(config)
    executor = RunExecutor.from_settings(client, config.run, on_result=on_result)
    return await executor.execute(cells, config.models_by_slug(), config.scenarios_by_id())


async def retry_failures(
    results: Sequence[CellResult],
    executor: RunExecutor,
    models: Mapping[str, ModelDescriptor],
    scenarios: Mapping[str, Scenario],
    *,
    kinds: Collection[ErrorKind] | None = None,
    max_attempts: int = 1,
) -> list[CellResult]:
    """Re-execute only the failed cells of a prior run.

    Successful results are returned untouched. Each attempt retries the
    cells still failing after the previous one, optionally restricted to
    the given error kinds. The returned list keeps the order of ``results``.
    """
    merged: dict[CellKey, CellResult] = {result.key: result for result in results}
    order = [result.key for result in results]

    for attempt in range(1, max_attempts + 1):
        pending: list[TestCell] = []
        for key in order:
            outcome = merged[key].outcome
            if not isinstance(outcome, GenerationFailure):
                continue
            if kinds is not None and outcome.error_kind not in kinds:
                continue
            model_slug, scenario_id, repetition = key
            pending.append(
                TestCell(
                    model_slug=model_slug,
                    scenario_id=scenario_id,
                    repetition=repetition,
                )
            )

        if not pending:
            break

        logger.info("Retry attempt %d: %d failed cells", attempt, len(pending))
        for result in await executor.execute(pending, models, scenarios):
            merged[result.key] = result

    return [merged[key] for key in order]
