# Copyright (c) Syntropy Systems
"""File-based storage for per-cell artifacts and run summaries."""
from __future__ import annotations

import json
import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple
from urllib.parse import quote

from pydantic import ValidationError

from coursebench.models.bench import (
    CellResult,
    GenerationFailure,
    GenerationSuccess,
    TestCell,
)
from coursebench.models.scores import Parsed, ScoreReport, Unparsable
from coursebench.models.store import (
    CellMetadata,
    ErrorArtifact,
    ModelBreakdown,
    RunSummary,
)
from coursebench.scoring.normalizer import normalize_response

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from coursebench.models.bench import CellKey, ModelDescriptor

logger = logging.getLogger(__name__)

SUMMARY_FILE = "summary.json"
SCORES_FILE = "scores.json"
LATEST = "latest"


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def generate_run_id() -> str:
    """Generate a sortable, unique run id."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"run-{timestamp}-{uuid.uuid4().hex[:6]}"


def _safe_name(value: str) -> str:
    """Percent-encode a slug into a single path component.

    The mapping is reversible, so distinct slugs never share files.
    """
    encoded = quote(value, safe="")
    if encoded.startswith("."):
        encoded = "%2E" + encoded[1:]
    return encoded


def list_runs(runs_dir: Path) -> list[Path]:
    """List run directories, oldest first."""
    if not runs_dir.is_dir():
        return []
    return sorted(
        path for path in runs_dir.iterdir() if path.is_dir() and path.name.startswith("run-")
    )


class CellPaths(NamedTuple):
    raw: Path
    artifact: Path
    meta: Path


class OutputStore:
    """Per-run directory holding three artifacts for every cell.

    Layout::

        <run_dir>/<model>/<scenario>-run<k>.txt        raw text
        <run_dir>/<model>/<scenario>-run<k>.json       parsed JSON or error placeholder
        <run_dir>/<model>/<scenario>-run<k>.meta.json  execution metadata
        <run_dir>/summary.json
        <run_dir>/scores.json

    Cells own disjoint paths, so concurrent writers never touch the same file.
    """

    run_dir: Path

    def __init__(self, run_dir: Path) -> None:
        self.run_dir = run_dir

    @property
    def run_id(self) -> str:
        return self.run_dir.name

    @classmethod
    def create(cls, runs_dir: Path, run_id: str | None = None) -> OutputStore:
        """Create a new run directory."""
        run_dir = runs_dir / (run_id or generate_run_id())
        run_dir.mkdir(parents=True, exist_ok=True)
        return cls(run_dir)

    @classmethod
    def open(cls, runs_dir: Path, run_id: str = LATEST) -> OutputStore:
        """Open an existing run; ``latest`` resolves to the newest one.

        Raises:
            FileNotFoundError: If the run does not exist.

        """
        if run_id == LATEST:
            runs = list_runs(runs_dir)
            if not runs:
                msg = f"No runs found in {runs_dir}"
                raise FileNotFoundError(msg)
            return cls(runs[-1])

        run_dir = runs_dir / run_id
        if not run_dir.is_dir():
            msg = f"Run '{run_id}' not found"
            raise FileNotFoundError(msg)
        return cls(run_dir)

    def cell_paths(self, key: CellKey) -> CellPaths:
        model_slug, scenario_id, repetition = key
        model_dir = self.run_dir / _safe_name(model_slug)
        stem = f"{_safe_name(scenario_id)}-run{repetition}"
        return CellPaths(
            raw=model_dir / f"{stem}.txt",
            artifact=model_dir / f"{stem}.json",
            meta=model_dir / f"{stem}.meta.json",
        )

    def record(self, result: CellResult, model: ModelDescriptor | None = None) -> None:
        """Write (or overwrite) the three artifacts of one cell."""
        paths = self.cell_paths(result.key)
        paths.raw.parent.mkdir(parents=True, exist_ok=True)

        outcome = result.outcome
        cell = result.cell
        if isinstance(outcome, GenerationSuccess):
            raw_text = outcome.raw_text
            parsed = normalize_response(raw_text)
            if isinstance(parsed, Parsed):
                try:
                    artifact = json.dumps(parsed.data, indent=2, ensure_ascii=False)
                except (ValueError, RecursionError) as e:
                    parsed = Unparsable(reason=str(e) or type(e).__name__)
            if isinstance(parsed, Unparsable):
                logger.warning(
                    "Unparsable output for %s / %s run %d: %s",
                    cell.model_slug,
                    cell.scenario_id,
                    cell.repetition,
                    parsed.reason,
                )
                artifact = ErrorArtifact(
                    error="Failed to parse JSON",
                    parse_error=parsed.reason,
                    raw_content=raw_text,
                ).model_dump_json(indent=2, by_alias=True)
            cost = None
            if model is not None and model.pricing is not None and outcome.token_usage:
                cost = model.pricing.estimate_cost(outcome.token_usage)
            meta = CellMetadata(
                model=cell.model_slug,
                model_name=model.display_name if model else "",
                scenario=cell.scenario_id,
                repetition=cell.repetition,
                elapsed_ms=outcome.elapsed_ms,
                timestamp=utcnow(),
                content_length=len(raw_text),
                success=True,
                token_usage=outcome.token_usage,
                cost_usd=cost,
            )
        else:
            raw_text = ""
            artifact = ErrorArtifact(error=outcome.message).model_dump_json(
                indent=2, by_alias=True, exclude_none=True
            )
            meta = CellMetadata(
                model=cell.model_slug,
                model_name=model.display_name if model else "",
                scenario=cell.scenario_id,
                repetition=cell.repetition,
                elapsed_ms=outcome.elapsed_ms,
                timestamp=utcnow(),
                content_length=0,
                success=False,
                error_kind=outcome.error_kind,
                error_detail=outcome.message,
            )

        _ = paths.raw.write_text(raw_text, encoding="utf-8")
        _ = paths.artifact.write_text(artifact, encoding="utf-8")
        _ = paths.meta.write_text(meta.model_dump_json(indent=2), encoding="utf-8")

    def recorder(
        self, models: Mapping[str, ModelDescriptor]
    ) -> Callable[[CellResult], None]:
        """Return a callback suitable for ``RunExecutor(on_result=...)``."""

        def _record(result: CellResult) -> None:
            self.record(result, models.get(result.cell.model_slug))

        return _record

    def read_metadata(self) -> list[CellMetadata]:
        """Read every cell's metadata record, skipping invalid ones."""
        records: list[CellMetadata] = []
        for meta_path in sorted(self.run_dir.glob("*/*.meta.json")):
            try:
                records.append(CellMetadata.model_validate_json(meta_path.read_text()))
            except ValidationError:
                logger.warning("Skipping invalid metadata file %s", meta_path)
        return records

    def load_results(self) -> list[CellResult]:
        """Rebuild cell results from stored artifacts, ordered by key."""
        results: list[CellResult] = []
        for meta in self.read_metadata():
            key = (meta.model, meta.scenario, meta.repetition)
            outcome: GenerationSuccess | GenerationFailure
            if meta.success:
                raw_path = self.cell_paths(key).raw
                raw_text = raw_path.read_text(encoding="utf-8") if raw_path.exists() else ""
                outcome = GenerationSuccess(
                    raw_text=raw_text,
                    elapsed_ms=meta.elapsed_ms,
                    token_usage=meta.token_usage,
                )
            else:
                outcome = GenerationFailure(
                    error_kind=meta.error_kind or "provider_error",
                    message=meta.error_detail or "",
                    elapsed_ms=meta.elapsed_ms,
                )
            cell = TestCell(
                model_slug=meta.model,
                scenario_id=meta.scenario,
                repetition=meta.repetition,
            )
            results.append(CellResult(cell=cell.resolve(outcome), outcome=outcome))
        results.sort(key=lambda result: result.key)
        return results

    def write_summary(self, summary: RunSummary) -> Path:
        path = self.run_dir / SUMMARY_FILE
        summary.save(path)
        return path

    def read_summary(self) -> RunSummary:
        return RunSummary.load(self.run_dir / SUMMARY_FILE)

    def write_scores(self, report: ScoreReport) -> Path:
        path = self.run_dir / SCORES_FILE
        report.save(path)
        return path

    def read_scores(self) -> ScoreReport:
        return ScoreReport.load(self.run_dir / SCORES_FILE)


def summarize_results(
    run_id: str,
    results: Sequence[CellResult],
    models: Mapping[str, ModelDescriptor] | None = None,
    *,
    started_at: str = "",
    finished_at: str = "",
    duration_ms: float = 0.0,
) -> RunSummary:
    """Build the run summary: totals plus a per-model breakdown."""
    models = models or {}
    grouped: dict[str, list[CellResult]] = {}
    for result in results:
        grouped.setdefault(result.cell.model_slug, []).append(result)

    breakdowns: list[ModelBreakdown] = []
    for slug in sorted(grouped):
        model_results = grouped[slug]
        model = models.get(slug)
        error_kinds = Counter(
            result.outcome.error_kind
            for result in model_results
            if isinstance(result.outcome, GenerationFailure)
        )
        successes = [
            result.outcome
            for result in model_results
            if isinstance(result.outcome, GenerationSuccess)
        ]
        total_tokens = 0
        cost = 0.0
        for outcome in successes:
            if outcome.token_usage is None:
                continue
            total_tokens += outcome.token_usage.total_tokens
            if model is not None and model.pricing is not None:
                cost += model.pricing.estimate_cost(outcome.token_usage)
        elapsed = [result.outcome.elapsed_ms for result in model_results]
        breakdowns.append(
            ModelBreakdown(
                model=slug,
                model_name=model.display_name if model else "",
                total=len(model_results),
                successful=len(successes),
                failed=len(model_results) - len(successes),
                avg_elapsed_ms=round(sum(elapsed) / len(elapsed), 1),
                error_kinds=dict(sorted(error_kinds.items())),
                total_tokens=total_tokens,
                cost_usd=round(cost, 6),
            )
        )

    all_elapsed = [result.outcome.elapsed_ms for result in results]
    successful = sum(1 for result in results if result.succeeded)
    summary = RunSummary(
        run_id=run_id,
        started_at=started_at,
        finished_at=finished_at,
        duration_ms=duration_ms,
        total_cells=len(results),
        successful=successful,
        failed=len(results) - successful,
        avg_elapsed_ms=round(sum(all_elapsed) / len(all_elapsed), 1) if all_elapsed else 0.0,
        models=breakdowns,
    )
    logger.info(
        "Run %s: %d/%d cells succeeded", run_id, summary.successful, summary.total_cells
    )
    return summary
