# Copyright (c) Syntropy Systems
"""Tests for the file-based output store."""

import json
from pathlib import Path

import pytest

from coursebench.models.bench import (
    CellResult,
    GenerationFailure,
    GenerationSuccess,
    ModelDescriptor,
    ModelPricing,
    TestCell,
    TokenUsage,
)
from coursebench.models.scores import ScoreReport
from coursebench.store import OutputStore, generate_run_id, list_runs, summarize_results


def _result(
    model: str,
    scenario: str,
    repetition: int,
    outcome: GenerationSuccess | GenerationFailure,
) -> CellResult:
    cell = TestCell(model_slug=model, scenario_id=scenario, repetition=repetition)
    return CellResult(cell=cell.resolve(outcome), outcome=outcome)


def _ok(text: str, elapsed_ms: float = 1200.0, usage: TokenUsage | None = None) -> GenerationSuccess:
    return GenerationSuccess(raw_text=text, elapsed_ms=elapsed_ms, token_usage=usage)


def _fail(kind: str = "timeout", message: str = "Timed out after 120s") -> GenerationFailure:
    return GenerationFailure(error_kind=kind, message=message, elapsed_ms=120000.0)


class TestRunIds:
    """Tests for run identifiers and listing."""

    def test_generate_run_id_format(self):
        run_id = generate_run_id()

        assert run_id.startswith("run-")
        assert len(run_id.split("-")) == 4

    def test_list_runs_sorted(self, temp_dir: Path):
        for name in ("run-20250102-000000-aaaaaa", "run-20250101-000000-bbbbbb", "notes"):
            (temp_dir / name).mkdir()

        assert [p.name for p in list_runs(temp_dir)] == [
            "run-20250101-000000-bbbbbb",
            "run-20250102-000000-aaaaaa",
        ]

    def test_list_runs_missing_dir(self, temp_dir: Path):
        assert list_runs(temp_dir / "nope") == []


class TestOutputStore:
    """Tests for OutputStore."""

    def test_create_and_open_latest(self, temp_dir: Path):
        first = OutputStore.create(temp_dir, "run-20250101-000000-aaaaaa")
        second = OutputStore.create(temp_dir, "run-20250102-000000-bbbbbb")

        assert OutputStore.open(temp_dir).run_dir == second.run_dir
        assert OutputStore.open(temp_dir, first.run_id).run_dir == first.run_dir

    def test_open_missing(self, temp_dir: Path):
        with pytest.raises(FileNotFoundError):
            _ = OutputStore.open(temp_dir)
        with pytest.raises(FileNotFoundError, match="not found"):
            _ = OutputStore.open(temp_dir, "run-nope")

    def test_cell_paths_layout(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")

        paths = store.cell_paths(("grok-4-fast", "lesson-en", 2))

        assert paths.raw == store.run_dir / "grok-4-fast" / "lesson-en-run2.txt"
        assert paths.artifact == store.run_dir / "grok-4-fast" / "lesson-en-run2.json"
        assert paths.meta == store.run_dir / "grok-4-fast" / "lesson-en-run2.meta.json"

    def test_similar_slugs_keep_separate_files(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")

        store.record(_result("vendor/model", "s", 1, _ok('{"a": 1}')))
        store.record(_result("vendor_model", "s", 1, _ok('{"b": 2}')))

        assert [r.key for r in store.load_results()] == [
            ("vendor/model", "s", 1),
            ("vendor_model", "s", 1),
        ]
        assert store.cell_paths(("vendor/model", "s", 1)).raw.parent.name == "vendor%2Fmodel"

    def test_dot_slugs_stay_inside_run_dir(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")

        paths = store.cell_paths(("..", "s", 1))

        assert paths.raw.parent.parent == store.run_dir
        assert paths.raw.parent.name == "%2E."

    def test_record_parsed_success(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")
        raw = '```json\n{"course_title": "Основы Python"}\n```'

        store.record(_result("m", "s", 1, _ok(raw)))

        paths = store.cell_paths(("m", "s", 1))
        assert paths.raw.read_text(encoding="utf-8") == raw
        assert json.loads(paths.artifact.read_text(encoding="utf-8")) == {
            "course_title": "Основы Python"
        }
        meta = json.loads(paths.meta.read_text())
        assert meta["success"] is True
        assert meta["content_length"] == len(raw)
        assert meta["elapsed_ms"] == 1200.0
        assert meta["error_kind"] is None

    def test_record_unparsable_success(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")

        store.record(_result("m", "s", 1, _ok("{broken")))

        artifact = json.loads(store.cell_paths(("m", "s", 1)).artifact.read_text())
        assert artifact["error"] == "Failed to parse JSON"
        assert artifact["parseError"]
        assert artifact["rawContent"] == "{broken"

    def test_record_failure(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")

        store.record(_result("m", "s", 2, _fail()))

        paths = store.cell_paths(("m", "s", 2))
        assert paths.raw.read_text() == ""
        artifact = json.loads(paths.artifact.read_text())
        assert artifact == {"error": "Timed out after 120s", "rawContent": ""}
        meta = json.loads(paths.meta.read_text())
        assert meta["success"] is False
        assert meta["error_kind"] == "timeout"
        assert meta["error_detail"] == "Timed out after 120s"

    def test_record_estimates_cost(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")
        model = ModelDescriptor(
            slug="m",
            name="Model M",
            api_name="vendor/m",
            pricing=ModelPricing(input_per_million=1.0, output_per_million=2.0),
        )
        usage = TokenUsage(prompt_tokens=1_000_000, completion_tokens=500_000)

        store.record(_result("m", "s", 1, _ok("{}", usage=usage)), model)

        meta = json.loads(store.cell_paths(("m", "s", 1)).meta.read_text())
        assert meta["cost_usd"] == pytest.approx(2.0)
        assert meta["model_name"] == "Model M"

    def test_record_overwrites_on_retry(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")
        store.record(_result("m", "s", 1, _fail()))

        store.record(_result("m", "s", 1, _ok('{"ok": true}')))

        [result] = store.load_results()
        assert result.succeeded

    def test_load_results_round_trip(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")
        originals = [
            _result("b", "s", 1, _ok('{"a": 1}')),
            _result("a", "s", 2, _fail("rate_limited", "Rate limited")),
            _result("a", "s", 1, _ok("not json")),
        ]
        for result in originals:
            store.record(result)

        loaded = store.load_results()

        assert [r.key for r in loaded] == [("a", "s", 1), ("a", "s", 2), ("b", "s", 1)]
        assert isinstance(loaded[0].outcome, GenerationSuccess)
        assert loaded[0].outcome.raw_text == "not json"
        assert isinstance(loaded[1].outcome, GenerationFailure)
        assert loaded[1].outcome.error_kind == "rate_limited"
        assert loaded[1].cell.state == "failure"

    def test_invalid_metadata_skipped(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")
        store.record(_result("m", "s", 1, _ok("{}")))
        bad = store.run_dir / "m" / "other-run1.meta.json"
        _ = bad.write_text('{"model": "m"}')

        assert len(store.read_metadata()) == 1

    def test_recorder_looks_up_model(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")
        models = {"m": ModelDescriptor(slug="m", name="Pretty", api_name="vendor/m")}

        store.recorder(models)(_result("m", "s", 1, _ok("{}")))

        [meta] = store.read_metadata()
        assert meta.model_name == "Pretty"

    def test_scores_round_trip(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")
        report = ScoreReport(run_id="run-x", generated_at="2025-01-01T00:00:00Z")

        _ = store.write_scores(report)

        assert store.read_scores() == report


class TestSummarizeResults:
    """Tests for run summaries."""

    def test_totals_and_breakdown(self, temp_dir: Path):
        usage = TokenUsage(prompt_tokens=100, completion_tokens=100)
        results = [
            _result("a", "s", 1, _ok("{}", elapsed_ms=1000.0, usage=usage)),
            _result("a", "s", 2, _fail("timeout")),
            _result("b", "s", 1, _ok("{}", elapsed_ms=3000.0)),
            _result("b", "s", 2, _fail("network", "down")),
            _result("b", "s", 3, _fail("network", "down")),
        ]

        summary = summarize_results("run-x", results, started_at="t0", finished_at="t1")

        assert summary.total_cells == 5
        assert summary.successful == 2
        assert summary.failed == 3
        assert summary.success_rate == pytest.approx(0.4)
        a, b = summary.models
        assert a.model == "a"
        assert a.error_kinds == {"timeout": 1}
        assert a.total_tokens == 200
        assert b.error_kinds == {"network": 2}
        assert b.successful == 1

    def test_summary_persisted(self, temp_dir: Path):
        store = OutputStore.create(temp_dir, "run-x")
        summary = summarize_results("run-x", [_result("a", "s", 1, _ok("{}"))])

        path = store.write_summary(summary)

        assert path.name == "summary.json"
        assert store.read_summary() == summary

    def test_empty_results(self):
        summary = summarize_results("run-x", [])

        assert summary.total_cells == 0
        assert summary.avg_elapsed_ms == 0.0
        assert summary.models == []
