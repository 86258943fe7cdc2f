# Copyright (c) Syntropy Systems
"""Pytest fixtures for coursebench tests."""

import copy
import os
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import yaml

from coursebench.cli.init_cmd import lesson_shape, metadata_shape
from coursebench.config import BenchConfig, parse_config
from coursebench.models.bench import Scenario

# Store original cwd at module load time
_original_cwd = Path.cwd()

METADATA_OVERVIEW = (
    "This course takes complete beginners from their first line of code to "
    "writing small, useful Python programs. Over 8 weeks you will practise the "
    "core building blocks of the language: variables, data types, conditionals, "
    "loops, functions and modules.\n\n"
    "Every module combines short explanations with hands-on exercises. For "
    "example, you will build a temperature converter, a word-frequency counter "
    "and a simple budgeting tool that reads data from CSV files. Each project "
    "introduces one new idea and reuses the ones before it, so skills compound "
    "week after week.\n\n"
    "The final module focuses on writing clean, readable code: naming, "
    "docstrings, error handling with exceptions and basic automated tests with "
    "pytest. By the end you will have a portfolio of 6 working scripts and the "
    "confidence to continue with web development, data analysis or automation."
)


def make_metadata_artifact() -> dict[str, object]:
    """A well-formed English course metadata artifact."""
    return {
        "course_title": "Introduction to Python Programming",
        "course_description": (
            "A hands-on beginner course that teaches you to write, test and "
            "debug real Python programs from the very first lesson."
        ),
        "course_overview": METADATA_OVERVIEW,
        "target_audience": (
            "Beginner developers and career-switching professionals with no "
            "prior programming experience who want practical skills."
        ),
        "estimated_duration_hours": 24,
        "difficulty_level": "beginner",
        "prerequisites": [
            "Basic computer literacy",
            "Ability to install software",
            "High-school mathematics",
            "A laptop with internet access",
        ],
        "learning_outcomes": [
            "Write Python scripts with variables, loops and functions",
            "Explain how Python evaluates expressions and converts data types",
            "Debug common runtime errors by reading tracebacks",
            "Design small command-line programs from a written brief",
            "Evaluate alternative solutions for readability and performance",
        ],
        "course_tags": ["python", "programming", "beginner", "scripting"],
    }


def make_lesson(number: int) -> dict[str, object]:
    return {
        "lesson_number": number,
        "lesson_title": f"Working with data types, part {number}",
        "lesson_objective": "Use conversion functions to turn user input into numbers",
        "key_topics": [
            "int and float conversion",
            "string formatting with f-strings",
            "checking types with isinstance",
        ],
        "exercises": [
            {
                "exercise_title": "Temperature converter",
                "exercise_instructions": (
                    "Write a script that reads a Celsius value and prints it in Fahrenheit."
                ),
            }
        ],
    }


def make_lesson_artifact(lesson_count: int = 3) -> dict[str, object]:
    """A well-formed English section artifact with the given lesson count."""
    return {
        "section_number": 1,
        "section_title": "Variables and Data Types in Python",
        "section_description": (
            "This section covers how Python stores values. You will convert "
            "between types and format output."
        ),
        "learning_objectives": [
            "Declare variables of every built-in scalar type",
            "Convert values between strings and numbers",
            "Format numbers for display with f-strings",
        ],
        "lessons": [make_lesson(number) for number in range(1, lesson_count + 1)],
    }


def make_config_data() -> dict[str, object]:
    """Small two-model, two-scenario configuration."""
    return {
        "run": {
            "repetitions": 2,
            "timeout_seconds": 5,
            "pacing_seconds": 0,
        },
        "models": [
            {"slug": "alpha", "name": "Alpha", "api_name": "vendor/alpha"},
            {"slug": "beta", "name": "Beta", "api_name": "vendor/beta"},
        ],
        "scenarios": [
            {
                "id": "metadata-en",
                "kind": "metadata",
                "language": "en",
                "prompt": "Generate metadata for {{course_title}}",
                "variables": {"course_title": "Python"},
                "shape": metadata_shape(),
            },
            {
                "id": "lesson-en",
                "kind": "lesson",
                "language": "en",
                "prompt": "Generate a section for {{course_title}}",
                "variables": {"course_title": "Python"},
                "shape": lesson_shape(),
            },
        ],
    }


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config_data() -> dict[str, object]:
    """Raw configuration mapping, safe to mutate per test."""
    return copy.deepcopy(make_config_data())


@pytest.fixture
def bench_config(config_data: dict[str, object]) -> BenchConfig:
    """Validated configuration for the small test grid."""
    return parse_config(config_data)


@pytest.fixture
def metadata_scenario(bench_config: BenchConfig) -> Scenario:
    return bench_config.scenarios_by_id()["metadata-en"]


@pytest.fixture
def lesson_scenario(bench_config: BenchConfig) -> Scenario:
    return bench_config.scenarios_by_id()["lesson-en"]


@pytest.fixture
def metadata_artifact() -> dict[str, object]:
    return make_metadata_artifact()


@pytest.fixture
def lesson_artifact_factory() -> Callable[[int], dict[str, object]]:
    return make_lesson_artifact


@pytest.fixture
def bench_project(
    temp_dir: Path, config_data: dict[str, object]
) -> Generator[Path, None, None]:
    """Create a temporary coursebench project directory."""
    bench_dir = temp_dir / ".coursebench"
    bench_dir.mkdir()
    runs_dir = bench_dir / "runs"
    runs_dir.mkdir()

    config_path = bench_dir / "config.yaml"
    with config_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(config_data, f, allow_unicode=True, sort_keys=False)

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)
