# Copyright (c) Syntropy Systems
"""Pedagogical and structural heuristics, one analyzer per scenario kind."""
from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import cached_property
from types import MappingProxyType
from typing import TYPE_CHECKING, Protocol

from coursebench.scoring.checks import (
    CheckResult,
    DimensionResult,
    as_list,
    as_object,
    as_text,
    combine_checks,
    failed,
    in_range,
    iter_strings,
    passed,
)

if TYPE_CHECKING:
    from coursebench.models.base import JSONValue
    from coursebench.models.bench import ContentRules, Scenario, ScenarioKind


@dataclass(frozen=True)
class Vocabulary:
    """Word lists for one language.

    ``action_verbs`` maps a Bloom taxonomy level to verbs (or stems). A verb
    matches at a word start followed by ``verb_suffix``.
    """

    action_verbs: Mapping[str, tuple[str, ...]]
    vague_verbs: tuple[str, ...]
    generic_phrases: tuple[str, ...]
    example_markers: tuple[str, ...]
    personas: tuple[str, ...]
    verb_suffix: str = r"(?:s|es|d|ed|ing)?\b"

    @cached_property
    def _level_patterns(self) -> dict[str, re.Pattern[str]]:
        return {
            level: _word_pattern(verbs, self.verb_suffix)
            for level, verbs in self.action_verbs.items()
        }

    @cached_property
    def _vague_pattern(self) -> re.Pattern[str]:
        return _word_pattern(self.vague_verbs, self.verb_suffix)

    def bloom_levels(self, text: str) -> set[str]:
        """Bloom levels whose action verbs occur in text."""
        return {level for level, pattern in self._level_patterns.items() if pattern.search(text)}

    def has_action_verb(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self._level_patterns.values())

    def is_vague(self, text: str) -> bool:
        return self._vague_pattern.search(text) is not None

    def generic_phrase(self, text: str) -> str | None:
        lowered = text.lower()
        for phrase in self.generic_phrases:
            if phrase in lowered:
                return phrase
        return None

    def has_examples(self, text: str) -> bool:
        lowered = text.lower()
        return any(char.isdigit() for char in text) or any(
            marker in lowered for marker in self.example_markers
        )

    def names_persona(self, text: str) -> bool:
        lowered = text.lower()
        return any(persona in lowered for persona in self.personas)


def _word_pattern(words: tuple[str, ...], suffix: str) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(word) for word in sorted(words, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives}){suffix}", re.IGNORECASE)


ENGLISH = Vocabulary(
    action_verbs=MappingProxyType(
        {
            "remember": ("define", "list", "recall", "identify", "state", "name", "recognize"),
            "understand": ("explain", "describe", "summarize", "interpret", "classify", "compare"),
            "apply": (
                "use", "implement", "apply", "execute", "solve", "demonstrate",
                "calculate", "write", "configure", "perform", "compute",
            ),
            "analyze": ("analyze", "examine", "contrast", "differentiate", "distinguish", "debug"),
            "evaluate": ("evaluate", "assess", "judge", "critique", "justify", "argue", "select"),
            "create": ("create", "design", "build", "develop", "construct", "formulate", "plan"),
        }
    ),
    vague_verbs=("understand", "learn", "know", "be familiar with", "be aware of"),
    generic_phrases=(
        "introduction to",
        "overview of",
        "basics of",
        "fundamentals of",
        "getting started with",
        "intro to",
    ),
    example_markers=("example", "such as", "e.g.", "including", "like "),
    personas=(
        "student", "professional", "developer", "beginner", "engineer", "analyst",
        "manager", "learner", "programmer", "designer", "scientist", "researcher",
    ),
)

RUSSIAN = Vocabulary(
    action_verbs=MappingProxyType(
        {
            "remember": ("определ", "перечисл", "назва", "назов", "распозна", "вспомн"),
            "understand": ("объясн", "описа", "опиш", "сравн", "интерпрет", "классифиц"),
            "apply": (
                "примен", "использ", "реализ", "вычисл", "реша", "решит",
                "продемонстр", "выполн", "настр", "написа", "напиш",
            ),
            "analyze": ("анализ", "проанализ", "исследова", "различ", "сопостав"),
            "evaluate": ("оцен", "обоснов", "критик", "аргумент", "выбира", "выбрать"),
            "create": (
                "созда", "создад", "разработ", "спроектир", "проектир", "постро",
                "сформулир", "планир",
            ),
        }
    ),
    vague_verbs=("понимать", "понять", "знать", "узнать", "изучить", "ознаком"),
    generic_phrases=("введение в", "обзор ", "основы ", "знакомство с"),
    example_markers=("например", "такие как", "такими как", "пример", "включая"),
    personas=(
        "студент", "специалист", "разработчик", "начинающ", "инженер", "аналитик",
        "менеджер", "программист", "исследовател", "учащ", "слушател",
    ),
    verb_suffix=r"\w*",
)

VOCABULARIES: Mapping[str, Vocabulary] = MappingProxyType({"en": ENGLISH, "ru": RUSSIAN})

MIXED = Vocabulary(
    action_verbs=MappingProxyType(
        {
            level: ENGLISH.action_verbs[level] + RUSSIAN.action_verbs[level]
            for level in ENGLISH.action_verbs
        }
    ),
    vague_verbs=ENGLISH.vague_verbs + RUSSIAN.vague_verbs,
    generic_phrases=ENGLISH.generic_phrases + RUSSIAN.generic_phrases,
    example_markers=ENGLISH.example_markers + RUSSIAN.example_markers,
    personas=ENGLISH.personas + RUSSIAN.personas,
    verb_suffix=r"\w*",
)


def vocabulary_for(language: str) -> Vocabulary:
    """Pick the vocabulary for a language tag such as ``en`` or ``ru-RU``."""
    primary = language.split("-")[0].split("_")[0].lower()
    return VOCABULARIES.get(primary, MIXED)


def text_items(value: JSONValue) -> list[str]:
    """Texts of a JSON array whose items are strings or small objects."""
    texts: list[str] = []
    for item in as_list(value):
        if isinstance(item, str):
            text = item.strip()
        else:
            text = " ".join(part.strip() for part in iter_strings(item)).strip()
        if text:
            texts.append(text)
    return texts


def _first_present(obj: dict[str, JSONValue], *names: str) -> JSONValue:
    for name in names:
        if name in obj:
            return obj[name]
    return None


def _count_issue(label: str, count: int, bounds: tuple[int, int]) -> str:
    return f"{count} {label}, expected {bounds[0]}-{bounds[1]}"


class ContentAnalyzer(Protocol):
    def analyze(self, data: JSONValue, scenario: Scenario) -> DimensionResult:
        ...


class MetadataAnalyzer:
    """Course metadata: outcomes, overview, description, enumerations, audience."""

    OUTCOME_ACTION_VERBS = 0.15
    OUTCOME_COUNT = 0.10
    OUTCOME_MEASURABLE = 0.10
    OUTCOME_BLOOM_COVERAGE = 0.05
    OVERVIEW_LENGTH = 0.15
    OVERVIEW_DETAIL = 0.05
    DESCRIPTION_LENGTH = 0.10
    PREREQUISITE_COUNT = 0.15
    TAG_COUNT = 0.05
    AUDIENCE = 0.10

    def analyze(self, data: JSONValue, scenario: Scenario) -> DimensionResult:
        obj = as_object(data)
        if obj is None:
            return combine_checks([failed("metadata", 1.0, "Artifact is not a JSON object")])

        vocab = vocabulary_for(scenario.language)
        rules = scenario.rules
        outcomes = text_items(_first_present(obj, "learning_outcomes", "outcomes"))

        checks = [
            *self.check_outcomes(outcomes, vocab, rules),
            *self.check_overview(as_text(obj.get("course_overview")), vocab, rules),
            self.check_description(as_text(obj.get("course_description")), rules),
            self.check_count(
                "prerequisites",
                text_items(obj.get("prerequisites")),
                rules.prerequisite_range,
                self.PREREQUISITE_COUNT,
            ),
            self.check_count(
                "tags",
                text_items(_first_present(obj, "course_tags", "tags")),
                rules.tag_range,
                self.TAG_COUNT,
            ),
            self.check_audience(as_text(obj.get("target_audience")), vocab, rules),
        ]
        return combine_checks(checks)

    def check_outcomes(
        self, outcomes: list[str], vocab: Vocabulary, rules: ContentRules
    ) -> list[CheckResult]:
        if not outcomes:
            issue = "No learning outcomes"
            return [
                failed("outcome_action_verbs", self.OUTCOME_ACTION_VERBS, issue),
                failed("outcome_count", self.OUTCOME_COUNT, issue),
                failed("outcome_measurable", self.OUTCOME_MEASURABLE, issue),
                failed("outcome_bloom_coverage", self.OUTCOME_BLOOM_COVERAGE, issue),
            ]

        checks: list[CheckResult] = []

        with_verbs = [outcome for outcome in outcomes if vocab.has_action_verb(outcome)]
        share = len(with_verbs) / len(outcomes)
        checks.append(
            CheckResult(
                "outcome_action_verbs",
                self.OUTCOME_ACTION_VERBS,
                share,
                None
                if share == 1.0
                else f"{len(outcomes) - len(with_verbs)} of {len(outcomes)} outcomes lack action verbs",
            )
        )

        if in_range(len(outcomes), rules.outcome_range):
            checks.append(passed("outcome_count", self.OUTCOME_COUNT))
        else:
            checks.append(
                failed(
                    "outcome_count",
                    self.OUTCOME_COUNT,
                    _count_issue("learning outcomes", len(outcomes), rules.outcome_range),
                )
            )

        vague = [outcome for outcome in outcomes if vocab.is_vague(outcome)]
        if vague:
            checks.append(
                failed(
                    "outcome_measurable",
                    self.OUTCOME_MEASURABLE,
                    f"{len(vague)} outcomes use vague verbs (e.g. '{vague[0][:60]}')",
                )
            )
        else:
            checks.append(passed("outcome_measurable", self.OUTCOME_MEASURABLE))

        levels: set[str] = set()
        for outcome in outcomes:
            levels |= vocab.bloom_levels(outcome)
        if len(levels) >= 2:
            checks.append(passed("outcome_bloom_coverage", self.OUTCOME_BLOOM_COVERAGE))
        else:
            checks.append(
                failed(
                    "outcome_bloom_coverage",
                    self.OUTCOME_BLOOM_COVERAGE,
                    "Outcomes cover fewer than 2 Bloom levels",
                )
            )
        return checks

    def check_overview(
        self, overview: str, vocab: Vocabulary, rules: ContentRules
    ) -> list[CheckResult]:
        checks: list[CheckResult] = []
        if len(overview) >= rules.overview_min_chars:
            checks.append(passed("overview_length", self.OVERVIEW_LENGTH))
        else:
            checks.append(
                failed(
                    "overview_length",
                    self.OVERVIEW_LENGTH,
                    f"Overview too short ({len(overview)} chars, minimum {rules.overview_min_chars})",
                )
            )

        has_examples = vocab.has_examples(overview)
        sentences = [part for part in re.split(r"[.!?]+", overview) if part.strip()]
        has_structure = "\n\n" in overview or len(sentences) > 5
        credit = 0.5 * has_examples + 0.5 * has_structure
        missing = [
            label
            for label, present in (("examples", has_examples), ("structure", has_structure))
            if not present
        ]
        checks.append(
            CheckResult(
                "overview_detail",
                self.OVERVIEW_DETAIL,
                credit,
                f"Overview lacks {' and '.join(missing)}" if missing else None,
            )
        )
        return checks

    def check_description(self, description: str, rules: ContentRules) -> CheckResult:
        if in_range(len(description), rules.description_range):
            return passed("description_length", self.DESCRIPTION_LENGTH)
        low, high = rules.description_range
        return failed(
            "description_length",
            self.DESCRIPTION_LENGTH,
            f"Description length {len(description)} outside {low}-{high} chars",
        )

    def check_count(
        self, label: str, items: list[str], bounds: tuple[int, int], weight: float
    ) -> CheckResult:
        if in_range(len(items), bounds):
            return passed(f"{label}_count", weight)
        return failed(f"{label}_count", weight, _count_issue(label, len(items), bounds))

    def check_audience(
        self, audience: str, vocab: Vocabulary, rules: ContentRules
    ) -> CheckResult:
        long_enough = len(audience) > rules.audience_min_chars
        persona = vocab.names_persona(audience)
        issues: list[str] = []
        if not long_enough:
            issues.append(f"audience description under {rules.audience_min_chars} chars")
        if not persona:
            issues.append("audience names no learner persona")
        return CheckResult(
            "audience_specificity",
            self.AUDIENCE,
            0.5 * long_enough + 0.5 * persona,
            "Vague target audience: " + "; ".join(issues) if issues else None,
        )


class LessonAnalyzer:
    """Section with lessons: count, objectives, topics, exercises."""

    LESSON_COUNT = 0.40
    OBJECTIVES_PRESENT = 0.10
    OBJECTIVES_MEASURABLE = 0.10
    OBJECTIVES_ACTION_VERBS = 0.10
    TOPIC_SPECIFICITY = 0.20
    EXERCISES_PRESENT = 0.05
    EXERCISE_INSTRUCTIONS = 0.05

    def analyze(self, data: JSONValue, scenario: Scenario) -> DimensionResult:
        obj = as_object(data)
        if obj is None:
            return combine_checks([failed("lessons", 1.0, "Artifact is not a JSON object")])

        vocab = vocabulary_for(scenario.language)
        rules = scenario.rules
        lessons = [
            lesson
            for lesson in (as_object(item) for item in as_list(obj.get("lessons")))
            if lesson is not None
        ]

        checks = [self.check_lesson_count(len(lessons), rules.lesson_range)]
        if not lessons:
            issue = "No lessons to evaluate"
            checks.extend(
                [
                    failed("objectives_present", self.OBJECTIVES_PRESENT, issue),
                    failed("objectives_measurable", self.OBJECTIVES_MEASURABLE, issue),
                    failed("objectives_action_verbs", self.OBJECTIVES_ACTION_VERBS, issue),
                    failed("topic_specificity", self.TOPIC_SPECIFICITY, issue),
                    failed("exercises_present", self.EXERCISES_PRESENT, issue),
                    failed("exercise_instructions", self.EXERCISE_INSTRUCTIONS, issue),
                ]
            )
            return combine_checks(checks)

        objectives = [self.lesson_objective(lesson) for lesson in lessons]
        checks.extend(self.check_objectives(objectives, vocab))
        checks.append(self.check_topics(lessons, vocab))
        checks.extend(self.check_exercises(lessons, rules))
        return combine_checks(checks)

    def check_lesson_count(self, count: int, bounds: tuple[int, int]) -> CheckResult:
        """Score the number of lessons.

        A single lesson earns nothing, even when the range allows it. Below
        the range earns half, above the range three quarters.
        """
        low, high = bounds
        if count == 0:
            return failed("lesson_count", self.LESSON_COUNT, "No lessons")
        if count == 1:
            return failed("lesson_count", self.LESSON_COUNT, "Only 1 lesson (degenerate output)")
        if count < low:
            return CheckResult(
                "lesson_count",
                self.LESSON_COUNT,
                0.5,
                _count_issue("lessons", count, bounds),
            )
        if count <= high:
            return passed("lesson_count", self.LESSON_COUNT)
        return CheckResult(
            "lesson_count",
            self.LESSON_COUNT,
            0.75,
            _count_issue("lessons", count, bounds),
        )

    @staticmethod
    def lesson_objective(lesson: dict[str, JSONValue]) -> str:
        value = _first_present(lesson, "lesson_objective", "lesson_objectives", "objective")
        if isinstance(value, list):
            return " ".join(text_items(value))
        return as_text(value)

    def check_objectives(self, objectives: list[str], vocab: Vocabulary) -> list[CheckResult]:
        checks: list[CheckResult] = []
        missing = sum(1 for objective in objectives if not objective)
        if missing:
            checks.append(
                failed(
                    "objectives_present",
                    self.OBJECTIVES_PRESENT,
                    f"{missing} of {len(objectives)} lessons have no objective",
                )
            )
        else:
            checks.append(passed("objectives_present", self.OBJECTIVES_PRESENT))

        not_measurable = [
            objective
            for objective in objectives
            if not objective or not vocab.has_action_verb(objective) or vocab.is_vague(objective)
        ]
        if not_measurable:
            checks.append(
                failed(
                    "objectives_measurable",
                    self.OBJECTIVES_MEASURABLE,
                    f"{len(not_measurable)} lesson objectives are not measurable",
                )
            )
        else:
            checks.append(passed("objectives_measurable", self.OBJECTIVES_MEASURABLE))

        if any(vocab.has_action_verb(objective) for objective in objectives):
            checks.append(passed("objectives_action_verbs", self.OBJECTIVES_ACTION_VERBS))
        else:
            checks.append(
                failed(
                    "objectives_action_verbs",
                    self.OBJECTIVES_ACTION_VERBS,
                    "No lesson objective uses an action verb",
                )
            )
        return checks

    def check_topics(self, lessons: list[dict[str, JSONValue]], vocab: Vocabulary) -> CheckResult:
        topics = [topic for lesson in lessons for topic in text_items(lesson.get("key_topics"))]
        if not topics:
            return failed("topic_specificity", self.TOPIC_SPECIFICITY, "No key topics listed")
        generic = [topic for topic in topics if vocab.generic_phrase(topic)]
        if generic:
            return failed(
                "topic_specificity",
                self.TOPIC_SPECIFICITY,
                f"Generic topics: {', '.join(repr(topic) for topic in generic[:3])}",
            )
        return passed("topic_specificity", self.TOPIC_SPECIFICITY)

    def check_exercises(
        self, lessons: list[dict[str, JSONValue]], rules: ContentRules
    ) -> list[CheckResult]:
        per_lesson = [as_list(lesson.get("exercises")) for lesson in lessons]
        without = sum(1 for exercises in per_lesson if not exercises)
        exercises = [exercise for items in per_lesson for exercise in items]

        checks: list[CheckResult] = []
        if without:
            checks.append(
                failed(
                    "exercises_present",
                    self.EXERCISES_PRESENT,
                    f"{without} of {len(lessons)} lessons have no exercises",
                )
            )
        else:
            checks.append(passed("exercises_present", self.EXERCISES_PRESENT))

        short = 0
        for exercise in exercises:
            exercise_obj = as_object(exercise)
            if exercise_obj is not None:
                instructions = as_text(
                    _first_present(exercise_obj, "exercise_instructions", "instructions")
                )
            else:
                instructions = as_text(exercise)
            if len(instructions) <= rules.instruction_min_chars:
                short += 1
        if not exercises:
            checks.append(
                failed("exercise_instructions", self.EXERCISE_INSTRUCTIONS, "No exercises")
            )
        elif short:
            checks.append(
                failed(
                    "exercise_instructions",
                    self.EXERCISE_INSTRUCTIONS,
                    f"{short} exercises have trivial instructions",
                )
            )
        else:
            checks.append(passed("exercise_instructions", self.EXERCISE_INSTRUCTIONS))
        return checks


ANALYZERS: Mapping[ScenarioKind, ContentAnalyzer] = MappingProxyType(
    {
        "metadata": MetadataAnalyzer(),
        "lesson": LessonAnalyzer(),
    }
)


def analyze_content(data: JSONValue, scenario: Scenario) -> DimensionResult:
    """Score content quality with the analyzer for the scenario's kind."""
    return ANALYZERS[scenario.kind].analyze(data, scenario)
