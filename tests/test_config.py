# Copyright (c) Syntropy Systems
"""Tests for configuration loading."""

from pathlib import Path

import pytest

from coursebench.cli.init_cmd import default_config
from coursebench.config import (
    BenchConfig,
    ConfigurationError,
    find_bench_dir,
    load_config,
    parse_config,
)
from coursebench.models.bench import Scenario


class TestParseConfig:
    """Tests for parse_config."""

    def test_defaults(self):
        config = parse_config({})

        assert config.run.repetitions == 3
        assert config.run.timeout_seconds == 120.0
        assert config.run.pacing_seconds == 0.1
        assert config.run.max_concurrency is None
        assert config.scoring.schema_weight == 0.4
        assert config.provider.api_key_env == "OPENROUTER_API_KEY"

    def test_empty_document(self):
        assert parse_config(None).models == []

    def test_non_mapping_rejected(self):
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            _ = parse_config(["not", "a", "mapping"])

    def test_duplicate_model_slugs(self, config_data):
        config_data["models"].append({"slug": "alpha", "api_name": "vendor/other"})

        with pytest.raises(ConfigurationError, match="duplicate model slugs: alpha"):
            _ = parse_config(config_data)

    def test_duplicate_scenario_ids(self, config_data):
        config_data["scenarios"].append(dict(config_data["scenarios"][0]))

        with pytest.raises(ConfigurationError, match="duplicate scenario ids: metadata-en"):
            _ = parse_config(config_data)

    def test_bad_weights(self, config_data):
        config_data["scoring"] = {"schema_weight": 0.9}

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            _ = parse_config(config_data)

    def test_unknown_scenario_kind(self, config_data):
        config_data["scenarios"][0]["kind"] = "quiz"

        with pytest.raises(ConfigurationError):
            _ = parse_config(config_data)

    def test_default_config_is_valid(self):
        config = parse_config(default_config())

        assert len(config.models) == 7
        assert {s.kind for s in config.scenarios} == {"metadata", "lesson"}
        assert {s.language for s in config.scenarios} == {"en", "ru"}


class TestBenchConfig:
    """Tests for BenchConfig helpers."""

    def test_select(self, bench_config: BenchConfig):
        selected = bench_config.select(["alpha"], None)

        assert [m.slug for m in selected.models] == ["alpha"]
        assert len(selected.scenarios) == 2

    def test_select_unknown_model(self, bench_config: BenchConfig):
        with pytest.raises(ConfigurationError, match="Unknown model"):
            _ = bench_config.select(["gamma"], None)

    def test_select_unknown_scenario(self, bench_config: BenchConfig):
        with pytest.raises(ConfigurationError, match="Unknown scenario"):
            _ = bench_config.select(None, ["quiz-en"])

    def test_prompt_rendering(self):
        scenario = Scenario(
            id="s",
            kind="lesson",
            prompt="Section {{section_title}} of {{course_title}}; keep {{unknown}}",
            variables={"section_title": "Loops", "course_title": "Python"},
        )

        assert scenario.build_prompt() == "Section Loops of Python; keep {{unknown}}"


class TestLoadConfig:
    """Tests for loading config from disk."""

    def test_find_bench_dir_walks_up(self, bench_project: Path):
        nested = bench_project / "a" / "b"
        nested.mkdir(parents=True)

        assert find_bench_dir(nested) == (bench_project / ".coursebench").resolve()

    def test_load_from_cwd(self, bench_project: Path):
        config = load_config()

        assert [m.slug for m in config.models] == ["alpha", "beta"]
        assert config.run.repetitions == 2

    def test_missing_project(self, temp_dir: Path, monkeypatch):
        monkeypatch.chdir(temp_dir)

        with pytest.raises(ConfigurationError, match="coursebench init"):
            _ = load_config()

    def test_invalid_yaml(self, bench_project: Path):
        config_path = bench_project / ".coursebench" / "config.yaml"
        _ = config_path.write_text("models: [unclosed")

        with pytest.raises(ConfigurationError, match="Could not read"):
            _ = load_config(bench_project / ".coursebench")

    def test_missing_config_file(self, bench_project: Path):
        (bench_project / ".coursebench" / "config.yaml").unlink()

        with pytest.raises(ConfigurationError, match="Config file not found"):
            _ = load_config(bench_project / ".coursebench")
