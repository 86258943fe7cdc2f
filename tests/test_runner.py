# Copyright (c) Syntropy Systems
"""Tests for concurrent cell execution and retries."""

import asyncio
import time

import pytest

from coursebench.client import NetworkError, RateLimitedError
from coursebench.config import BenchConfig, ConfigurationError
from coursebench.matrix import build_matrix, build_matrix_from_config
from coursebench.models.bench import (
    CellResult,
    Generation,
    GenerationFailure,
    GenerationSuccess,
    ModelDescriptor,
    Scenario,
    TokenUsage,
)
from coursebench.runner import RunExecutor, retry_failures, run_matrix
from coursebench.store import OutputStore


class FakeClient:
    """Scripted generation client.

    ``behaviors`` maps a model slug to either a reply string, an exception
    instance to raise, or a float meaning "sleep this long, then reply".
    """

    def __init__(self, behaviors=None, delay: float = 0.0):
        self.behaviors = behaviors or {}
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.started: list[tuple[str, float]] = []

    async def generate(self, model: ModelDescriptor, prompt: str):
        self.calls.append((model.slug, prompt))
        self.started.append((model.slug, time.monotonic()))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            behavior = self.behaviors.get(model.slug, '{"ok": true}')
            if isinstance(behavior, BaseException):
                raise behavior
            if isinstance(behavior, float):
                await asyncio.sleep(behavior)
                return '{"slow": true}'
            if self.delay:
                await asyncio.sleep(self.delay)
            return behavior
        finally:
            self.in_flight -= 1


def _models(*slugs: str, **overrides) -> dict[str, ModelDescriptor]:
    return {
        slug: ModelDescriptor(slug=slug, api_name=f"vendor/{slug}", **overrides)
        for slug in slugs
    }


def _scenarios(*ids: str) -> dict[str, Scenario]:
    return {
        sid: Scenario(
            id=sid,
            kind="metadata",
            prompt="Describe {{topic}}",
            variables={"topic": sid},
        )
        for sid in ids
    }


def _execute(executor: RunExecutor, models, scenarios, repetitions: int = 1) -> list[CellResult]:
    cells = build_matrix(list(models.values()), list(scenarios.values()), repetitions)
    return asyncio.run(executor.execute(cells, models, scenarios))


class TestRunExecutor:
    """Tests for RunExecutor."""

    def test_one_result_per_cell_in_input_order(self):
        models = _models("a", "b")
        scenarios = _scenarios("s1", "s2")
        executor = RunExecutor(FakeClient(), pacing_seconds=0)

        results = _execute(executor, models, scenarios, repetitions=2)

        assert len(results) == 8
        assert [r.key for r in results] == [
            cell.key
            for cell in build_matrix(list(models.values()), list(scenarios.values()), 2)
        ]
        assert all(r.cell.state == "success" for r in results)

    def test_prompt_rendered_from_variables(self):
        client = FakeClient()
        executor = RunExecutor(client, pacing_seconds=0)

        _ = _execute(executor, _models("a"), _scenarios("python"))

        assert client.calls == [("a", "Describe python")]

    def test_failure_isolated_to_its_cells(self):
        client = FakeClient({"bad": NetworkError("connection refused")})
        executor = RunExecutor(client, pacing_seconds=0)

        results = _execute(executor, _models("good", "bad"), _scenarios("s1"), repetitions=2)

        by_model = {}
        for result in results:
            by_model.setdefault(result.cell.model_slug, []).append(result)
        assert all(r.succeeded for r in by_model["good"])
        assert all(not r.succeeded for r in by_model["bad"])
        failure = by_model["bad"][0].outcome
        assert isinstance(failure, GenerationFailure)
        assert failure.error_kind == "network"
        assert failure.message == "connection refused"
        assert by_model["bad"][0].cell.state == "failure"

    def test_unexpected_exception_is_provider_error(self):
        client = FakeClient({"a": RuntimeError("weird")})
        executor = RunExecutor(client, pacing_seconds=0)

        [result] = _execute(executor, _models("a"), _scenarios("s1"))

        assert isinstance(result.outcome, GenerationFailure)
        assert result.outcome.error_kind == "provider_error"

    def test_rate_limit_classified(self):
        client = FakeClient({"a": RateLimitedError("slow down", retry_after=2)})
        executor = RunExecutor(client, pacing_seconds=0)

        [result] = _execute(executor, _models("a"), _scenarios("s1"))

        assert isinstance(result.outcome, GenerationFailure)
        assert result.outcome.error_kind == "rate_limited"

    def test_timeout_becomes_failure(self):
        client = FakeClient({"slow": 2.0})
        executor = RunExecutor(client, timeout_seconds=0.05, pacing_seconds=0)

        results = _execute(executor, _models("slow", "fast"), _scenarios("s1"))

        slow, fast = results
        assert isinstance(slow.outcome, GenerationFailure)
        assert slow.outcome.error_kind == "timeout"
        assert slow.outcome.message == "Timed out after 0.05s"
        assert fast.succeeded

    def test_model_timeout_overrides_default(self):
        client = FakeClient({"slow": 0.3})
        executor = RunExecutor(client, timeout_seconds=0.05, pacing_seconds=0)
        models = _models("slow", timeout_seconds=5)

        [result] = _execute(executor, models, _scenarios("s1"))

        assert result.succeeded

    def test_generation_usage_recorded(self):
        usage = TokenUsage(prompt_tokens=10, completion_tokens=20)
        client = FakeClient({"a": Generation(text="{}", usage=usage)})
        executor = RunExecutor(client, pacing_seconds=0)

        [result] = _execute(executor, _models("a"), _scenarios("s1"))

        assert isinstance(result.outcome, GenerationSuccess)
        assert result.outcome.raw_text == "{}"
        assert result.outcome.token_usage is not None
        assert result.outcome.token_usage.total_tokens == 30

    def test_models_run_in_parallel(self):
        client = FakeClient(delay=0.2)
        executor = RunExecutor(client, pacing_seconds=0)

        started = time.monotonic()
        _ = _execute(executor, _models("a", "b", "c", "d"), _scenarios("s1"))
        elapsed = time.monotonic() - started

        assert elapsed < 0.6
        assert client.max_in_flight == 4

    def test_pacing_spaces_launches_per_model(self):
        client = FakeClient()
        executor = RunExecutor(client, pacing_seconds=0.05)

        _ = _execute(executor, _models("a"), _scenarios("s1"), repetitions=3)

        times = [t for _, t in client.started]
        gaps = [later - earlier for earlier, later in zip(times, times[1:])]
        assert all(gap >= 0.04 for gap in gaps)

    def test_concurrency_cap(self):
        client = FakeClient(delay=0.05)
        executor = RunExecutor(client, pacing_seconds=0, max_concurrency=2)

        results = _execute(executor, _models("a", "b", "c"), _scenarios("s1"), repetitions=2)

        assert client.max_in_flight <= 2
        assert len(results) == 6
        assert all(r.succeeded for r in results)

    def test_invalid_concurrency_rejected(self):
        with pytest.raises(ConfigurationError):
            _ = RunExecutor(FakeClient(), max_concurrency=0)

    def test_unknown_model_rejected_before_execution(self):
        client = FakeClient()
        executor = RunExecutor(client, pacing_seconds=0)
        cells = build_matrix(list(_models("ghost").values()), list(_scenarios("s1").values()), 1)

        with pytest.raises(ConfigurationError, match="Unknown model 'ghost'"):
            _ = asyncio.run(executor.execute(cells, _models("a"), _scenarios("s1")))
        assert client.calls == []

    def test_on_result_called_per_cell(self):
        seen: list[tuple[str, str, int]] = []
        executor = RunExecutor(
            FakeClient(), pacing_seconds=0, on_result=lambda result: seen.append(result.key)
        )

        _ = _execute(executor, _models("a", "b"), _scenarios("s1"), repetitions=2)

        assert sorted(seen) == [("a", "s1", 1), ("a", "s1", 2), ("b", "s1", 1), ("b", "s1", 2)]

    def test_failing_callback_does_not_abort_run(self):
        recorded: list[tuple[str, str, int]] = []

        def on_result(result: CellResult) -> None:
            if result.cell.model_slug == "bad":
                msg = "disk full"
                raise OSError(msg)
            recorded.append(result.key)

        executor = RunExecutor(FakeClient(), pacing_seconds=0, on_result=on_result)

        results = _execute(executor, _models("bad", "good"), _scenarios("s1"), repetitions=2)

        assert len(results) == 4
        assert all(result.succeeded for result in results)
        assert sorted(recorded) == [("good", "s1", 1), ("good", "s1", 2)]

    def test_deeply_nested_output_recorded(self, temp_dir):
        depth = 300
        client = FakeClient({"bad": "[" * depth + "]" * depth})
        store = OutputStore.create(temp_dir, "run-x")
        models = _models("bad", "good")
        executor = RunExecutor(client, pacing_seconds=0, on_result=store.recorder(models))

        results = _execute(executor, models, _scenarios("s1"), repetitions=2)

        assert len(results) == 4
        assert len(list(store.run_dir.glob("*/*.meta.json"))) == 4
        assert [r.key for r in store.load_results()] == [r.key for r in results]


class TestRunMatrix:
    """Tests for run_matrix."""

    def test_runs_configured_grid(self, bench_config: BenchConfig):
        client = FakeClient()

        results = asyncio.run(run_matrix(bench_config, client))

        assert [r.key for r in results] == [
            cell.key for cell in build_matrix_from_config(bench_config)
        ]
        assert len(client.calls) == 8


class TestRetryFailures:
    """Tests for retry_failures."""

    def _first_run(self, models, scenarios) -> list[CellResult]:
        client = FakeClient(
            {
                "flaky": RateLimitedError("slow down"),
                "broken": NetworkError("down"),
            }
        )
        return _execute(RunExecutor(client, pacing_seconds=0), models, scenarios, repetitions=2)

    def test_only_failures_rerun(self):
        models = _models("ok", "flaky")
        scenarios = _scenarios("s1")
        first = self._first_run(models, scenarios)
        client = FakeClient()

        merged = asyncio.run(
            retry_failures(first, RunExecutor(client, pacing_seconds=0), models, scenarios)
        )

        assert sorted(slug for slug, _ in client.calls) == ["flaky", "flaky"]
        assert [r.key for r in merged] == [r.key for r in first]
        assert all(r.succeeded for r in merged)
        # Successful results are carried over untouched
        assert merged[0] is first[0]

    def test_kind_filter(self):
        models = _models("flaky", "broken")
        scenarios = _scenarios("s1")
        first = self._first_run(models, scenarios)
        client = FakeClient()

        merged = asyncio.run(
            retry_failures(
                first,
                RunExecutor(client, pacing_seconds=0),
                models,
                scenarios,
                kinds={"rate_limited"},
            )
        )

        assert {slug for slug, _ in client.calls} == {"flaky"}
        by_key = {r.key: r for r in merged}
        assert by_key[("flaky", "s1", 1)].succeeded
        assert not by_key[("broken", "s1", 1)].succeeded

    def test_multiple_attempts_stop_when_clean(self):
        models = _models("flaky")
        scenarios = _scenarios("s1")
        first = self._first_run(models, scenarios)
        client = FakeClient()

        _ = asyncio.run(
            retry_failures(
                first,
                RunExecutor(client, pacing_seconds=0),
                models,
                scenarios,
                max_attempts=3,
            )
        )

        assert len(client.calls) == 2

    def test_persistent_failure_retried_each_attempt(self):
        models = _models("broken")
        scenarios = _scenarios("s1")
        first = self._first_run(models, scenarios)
        client = FakeClient({"broken": NetworkError("still down")})

        merged = asyncio.run(
            retry_failures(
                first,
                RunExecutor(client, pacing_seconds=0),
                models,
                scenarios,
                max_attempts=2,
            )
        )

        assert len(client.calls) == 4
        assert all(not r.succeeded for r in merged)
        failure = merged[0].outcome
        assert isinstance(failure, GenerationFailure)
        assert failure.message == "still down"
