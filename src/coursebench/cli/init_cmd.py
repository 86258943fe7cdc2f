# Copyright (c) Syntropy Systems
"""coursebench init command."""

from pathlib import Path

import typer
import yaml
from rich.console import Console

from coursebench.config import BENCH_DIR_NAME, CONFIG_FILE_NAME

console = Console()

METADATA_PROMPT_EN = """You are a course design expert. Generate comprehensive course metadata for the following course.

Course Title: "{{course_title}}"
Description: {{course_brief}}

Generate a JSON object with the following fields:
- course_title: string (10-200 chars)
- course_description: string (50-500 chars, elevator pitch)
- course_overview: string (500+ chars, comprehensive description)
- target_audience: string (50+ chars)
- estimated_duration_hours: number (realistic estimate)
- difficulty_level: "beginner" | "intermediate" | "advanced"
- prerequisites: string[] (1-5 items)
- learning_outcomes: string[] (3-8 measurable outcomes using Bloom's taxonomy verbs)
- course_tags: string[] (3-10 relevant tags)

CRITICAL: Return ONLY valid JSON. No markdown, no code blocks, no explanations."""

METADATA_PROMPT_RU = """Вы эксперт по разработке образовательных курсов. Создайте полные метаданные курса для следующего курса.

Название курса: "{{course_title}}"
Описание: {{course_brief}}

Создайте JSON объект со следующими полями:
- course_title: string (10-200 символов)
- course_description: string (50-500 символов, краткая презентация)
- course_overview: string (500+ символов, развёрнутое описание)
- target_audience: string (50+ символов)
- estimated_duration_hours: number (реалистичная оценка)
- difficulty_level: "beginner" | "intermediate" | "advanced"
- prerequisites: string[] (1-5 элементов)
- learning_outcomes: string[] (3-8 измеримых результатов обучения с глаголами таксономии Блума)
- course_tags: string[] (3-10 релевантных тегов)

КРИТИЧЕСКИ ВАЖНО: Верните ТОЛЬКО валидный JSON. Без markdown, без блоков кода, без объяснений."""

LESSON_PROMPT_EN = """You are a course design expert. Generate a complete section with lessons and exercises.

Course: "{{course_title}}"
Section: "{{section_title}}"

Generate a JSON object with:
- section_number: 1
- section_title: string
- section_description: string (2-3 sentences)
- learning_objectives: string[] (3-5 specific, measurable objectives)
- lessons: array of 3-5 lessons, each with:
  - lesson_number: number
  - lesson_title: string
  - lesson_objective: string (specific, measurable)
  - key_topics: string[] (3-7 topics)
  - exercises: array of 1-3 exercises, each with:
    - exercise_title: string
    - exercise_instructions: string (clear, actionable steps)

CRITICAL: Return ONLY valid JSON. No markdown, no code blocks, no explanations."""

LESSON_PROMPT_RU = """Вы эксперт по разработке образовательных курсов. Создайте полную секцию с уроками и упражнениями.

Курс: "{{course_title}}"
Секция: "{{section_title}}"

Создайте JSON объект с:
- section_number: 1
- section_title: string
- section_description: string (2-3 предложения)
- learning_objectives: string[] (3-5 конкретных, измеримых целей)
- lessons: массив из 3-5 уроков, каждый с:
  - lesson_number: number
  - lesson_title: string
  - lesson_objective: string (конкретная, измеримая цель)
  - key_topics: string[] (3-7 тем)
  - exercises: массив из 1-3 упражнений, каждое с:
    - exercise_title: string
    - exercise_instructions: string (чёткие, выполнимые шаги)

КРИТИЧЕСКИ ВАЖНО: Верните ТОЛЬКО валидный JSON. Без markdown, без блоков кода, без объяснений."""


def metadata_shape() -> dict[str, object]:
    return {
        "required_fields": [
            "course_title",
            "course_description",
            "course_overview",
            "learning_outcomes",
            "target_audience",
        ],
        "field_types": {
            "course_title": "string",
            "course_description": "string",
            "course_overview": "string",
            "target_audience": "string",
            "learning_outcomes": "array",
            "prerequisites": "array",
            "course_tags": "array",
            "estimated_duration_hours": "number",
        },
        "naming": "snake_case",
    }


def lesson_shape() -> dict[str, object]:
    return {
        "required_fields": [
            "section_number",
            "section_title",
            "section_description",
            "learning_objectives",
            "lessons",
        ],
        "field_types": {
            "section_number": "number",
            "section_title": "string",
            "section_description": "string",
            "learning_objectives": "array",
            "lessons": "array",
        },
        "naming": "snake_case",
    }


def default_config() -> dict[str, object]:
    """Starter configuration written by ``coursebench init``."""
    python_course = {
        "course_title": "Introduction to Python Programming",
        "course_brief": "Beginner-level technical programming course",
    }
    ml_course = {
        "course_title": "Машинное обучение для начинающих",
        "course_brief": "Курс среднего уровня, концептуальный курс по ML",
    }
    return {
        "run": {
            "repetitions": 3,
            "timeout_seconds": 120,
            "pacing_seconds": 0.1,
            "max_concurrency": None,
            "temperature": 0.7,
            "max_tokens": 8000,
        },
        "scoring": {
            "schema_weight": 0.4,
            "content_weight": 0.4,
            "language_weight": 0.2,
        },
        "provider": {
            "base_url": "https://openrouter.ai/api/v1",
            "api_key_env": "OPENROUTER_API_KEY",
            "app_title": "coursebench",
        },
        "models": [
            {"slug": "kimi-k2-0905", "name": "Kimi K2 0905", "api_name": "moonshotai/kimi-k2-0905"},
            {"slug": "deepseek-chat-v31", "name": "DeepSeek Chat v3.1", "api_name": "deepseek/deepseek-chat-v3.1"},
            {"slug": "grok-4-fast", "name": "Grok 4 Fast", "api_name": "x-ai/grok-4-fast"},
            {"slug": "glm-46", "name": "GLM 4.6", "api_name": "z-ai/glm-4.6"},
            {"slug": "minimax-m2", "name": "MiniMax M2", "api_name": "minimax/minimax-m2"},
            {"slug": "qwen3-235b-a22b-2507", "name": "Qwen3 235B A22B Instruct 2507", "api_name": "qwen/qwen3-235b-a22b-2507"},
            {"slug": "oss-120b", "name": "OSS 120B", "api_name": "openai/gpt-oss-120b"},
        ],
        "scenarios": [
            {
                "id": "metadata-en",
                "kind": "metadata",
                "language": "en",
                "prompt": METADATA_PROMPT_EN,
                "variables": python_course,
                "shape": metadata_shape(),
            },
            {
                "id": "metadata-ru",
                "kind": "metadata",
                "language": "ru",
                "prompt": METADATA_PROMPT_RU,
                "variables": ml_course,
                "shape": metadata_shape(),
            },
            {
                "id": "lesson-en",
                "kind": "lesson",
                "language": "en",
                "prompt": LESSON_PROMPT_EN,
                "variables": {
                    "course_title": "Introduction to Python Programming (Beginner level)",
                    "section_title": "Variables and Data Types in Python",
                },
                "shape": lesson_shape(),
                "rules": {"lesson_range": [3, 5]},
            },
            {
                "id": "lesson-ru",
                "kind": "lesson",
                "language": "ru",
                "prompt": LESSON_PROMPT_RU,
                "variables": {
                    "course_title": "Машинное обучение для начинающих (Средний уровень)",
                    "section_title": "Основы нейронных сетей",
                },
                "shape": lesson_shape(),
                "rules": {"lesson_range": [3, 5]},
            },
        ],
    }


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new coursebench project.

    Creates a .coursebench directory with a starter configuration.
    """
    target = path.resolve()
    bench_dir = target / BENCH_DIR_NAME

    if bench_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {bench_dir}")
        return

    # Create directory structure
    bench_dir.mkdir(parents=True)
    runs_dir = bench_dir / "runs"
    runs_dir.mkdir()

    config_path = bench_dir / CONFIG_FILE_NAME
    with config_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(
            default_config(),
            f,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )

    console.print(f"[green]Initialized coursebench project:[/green] {bench_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]runs:[/dim] {runs_dir}")
    console.print("  [dim]next:[/dim] export OPENROUTER_API_KEY, then run 'coursebench run'")
