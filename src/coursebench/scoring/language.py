# Copyright (c) Syntropy Systems
"""Coarse surface-language checks: writing script and leftover placeholders."""
from __future__ import annotations

import re
from collections import Counter
from types import MappingProxyType
from typing import TYPE_CHECKING

from coursebench.scoring.checks import (
    CheckResult,
    DimensionResult,
    combine_checks,
    failed,
    iter_strings,
    passed,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from coursebench.models.base import JSONValue

SCRIPT_WEIGHT = 0.7
PLACEHOLDER_WEIGHT = 0.3

# Share of letters in the target script needed for full credit
SCRIPT_FULL_CREDIT_RATIO = 0.8

SCRIPT_RANGES: tuple[tuple[str, tuple[tuple[int, int], ...]], ...] = (
    ("latin", ((0x0041, 0x005A), (0x0061, 0x007A), (0x00C0, 0x024F))),
    ("cyrillic", ((0x0400, 0x052F),)),
    ("greek", ((0x0370, 0x03FF),)),
    ("hebrew", ((0x0590, 0x05FF),)),
    ("arabic", ((0x0600, 0x06FF),)),
    ("devanagari", ((0x0900, 0x097F),)),
    ("cjk", ((0x3040, 0x30FF), (0x4E00, 0x9FFF), (0xAC00, 0xD7AF))),
)

LANGUAGE_SCRIPTS: Mapping[str, str] = MappingProxyType(
    {
        **dict.fromkeys(
            ("en", "de", "fr", "es", "it", "pt", "nl", "pl", "cs", "tr", "sv", "vi", "id"),
            "latin",
        ),
        **dict.fromkeys(("ru", "uk", "be", "bg", "sr", "kk", "mk"), "cyrillic"),
        "el": "greek",
        "he": "hebrew",
        "ar": "arabic",
        "fa": "arabic",
        "hi": "devanagari",
        "zh": "cjk",
        "ja": "cjk",
        "ko": "cjk",
    }
)

PLACEHOLDER_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("lorem ipsum", re.compile(r"lorem\s+ipsum", re.IGNORECASE)),
    ("TODO", re.compile(r"\btodo\b", re.IGNORECASE)),
    ("TBD", re.compile(r"\btbd\b", re.IGNORECASE)),
    ("FIXME", re.compile(r"\bfixme\b", re.IGNORECASE)),
    ("[insert ...]", re.compile(r"[\[<]\s*insert", re.IGNORECASE)),
    ("{{template}}", re.compile(r"\{\{\s*\w+\s*\}\}")),
    ("placeholder", re.compile(r"\bplaceholder\b", re.IGNORECASE)),
    ("your text here", re.compile(r"your\s+text\s+here", re.IGNORECASE)),
)


def script_of(char: str) -> str | None:
    """Script family of a letter, or None for letters outside known ranges."""
    code = ord(char)
    for script, ranges in SCRIPT_RANGES:
        for low, high in ranges:
            if low <= code <= high:
                return script
    return None


def count_scripts(text: str) -> Counter[str]:
    counts: Counter[str] = Counter()
    for char in text:
        if char.isalpha():
            script = script_of(char)
            if script is not None:
                counts[script] += 1
    return counts


def expected_script(language: str) -> str | None:
    primary = language.split("-")[0].split("_")[0].lower()
    return LANGUAGE_SCRIPTS.get(primary)


def detect_script(text: str) -> str | None:
    """Dominant script of a text, or None if it has no letters."""
    counts = count_scripts(text)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def check_script(text: str, language: str) -> CheckResult:
    target = expected_script(language)
    counts = count_scripts(text)
    total = sum(counts.values())
    if total == 0:
        return failed("script", SCRIPT_WEIGHT, "No textual content")
    if target is None:
        return passed("script", SCRIPT_WEIGHT)

    dominant = counts.most_common(1)[0][0]
    if dominant != target:
        return failed(
            "script",
            SCRIPT_WEIGHT,
            f"Dominant script is {dominant}, expected {target} for '{language}'",
        )

    ratio = counts[target] / total
    if ratio >= SCRIPT_FULL_CREDIT_RATIO:
        return passed("script", SCRIPT_WEIGHT)
    return CheckResult(
        "script",
        SCRIPT_WEIGHT,
        round(ratio, 4),
        f"Only {ratio:.0%} of letters are {target}",
    )


def find_placeholders(text: str) -> list[str]:
    return [label for label, pattern in PLACEHOLDER_PATTERNS if pattern.search(text)]


def check_placeholders(text: str) -> CheckResult:
    found = find_placeholders(text)
    if found:
        return failed(
            "placeholders", PLACEHOLDER_WEIGHT, f"Placeholder text found: {', '.join(found)}"
        )
    return passed("placeholders", PLACEHOLDER_WEIGHT)


def analyze_language(data: JSONValue, language: str) -> DimensionResult:
    """Score the string values of an artifact against the declared language.

    Keys are ignored; only values are inspected.
    """
    text = "\n".join(iter_strings(data))
    return combine_checks([check_script(text, language), check_placeholders(text)])
