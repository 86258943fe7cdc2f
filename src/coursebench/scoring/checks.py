# Copyright (c) Syntropy Systems
"""Small building blocks shared by the analyzers."""
from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import NamedTuple, cast

from coursebench.models.base import JSONValue


class CheckResult(NamedTuple):
    """One weighted sub-check. ``credit`` is the earned fraction in [0, 1]."""

    name: str
    weight: float
    credit: float
    issue: str | None = None

    @property
    def earned(self) -> float:
        return self.weight * self.credit


class DimensionResult(NamedTuple):
    """Score for one quality dimension plus the issues found."""

    score: float
    issues: list[str]
    checks: list[CheckResult]


def passed(name: str, weight: float) -> CheckResult:
    return CheckResult(name, weight, 1.0)


def failed(name: str, weight: float, issue: str) -> CheckResult:
    return CheckResult(name, weight, 0.0, issue)


def combine_checks(checks: Sequence[CheckResult]) -> DimensionResult:
    """Sum earned weight, clamped to [0, 1] and rounded for stable output."""
    score = sum(check.earned for check in checks)
    score = round(min(1.0, max(0.0, score)), 4)
    issues = [check.issue for check in checks if check.issue]
    return DimensionResult(score, issues, list(checks))


def as_object(value: JSONValue) -> dict[str, JSONValue] | None:
    return cast("dict[str, JSONValue]", value) if isinstance(value, dict) else None


def as_list(value: JSONValue) -> list[JSONValue]:
    return cast("list[JSONValue]", value) if isinstance(value, list) else []


def as_text(value: JSONValue) -> str:
    return value.strip() if isinstance(value, str) else ""


def string_items(value: JSONValue) -> list[str]:
    """Non-empty strings of a JSON array; anything else yields nothing."""
    return [item.strip() for item in as_list(value) if isinstance(item, str) and item.strip()]


def _children(value: JSONValue) -> list[tuple[str | None, JSONValue]]:
    if isinstance(value, dict):
        return list(cast("dict[str, JSONValue]", value).items())
    if isinstance(value, list):
        return [(None, item) for item in cast("list[JSONValue]", value)]
    return []


def _walk(value: JSONValue) -> Iterator[tuple[str | None, JSONValue]]:
    """Depth-first, document-order walk with an explicit stack.

    Yields ``(key, value)`` pairs; ``key`` is None for array items.
    """
    stack = list(reversed(_children(value)))
    while stack:
        key, item = stack.pop()
        yield key, item
        stack.extend(reversed(_children(item)))


def iter_strings(value: JSONValue) -> Iterator[str]:
    """Yield every string value nested anywhere in a JSON value."""
    if isinstance(value, str):
        yield value
    for _, item in _walk(value):
        if isinstance(item, str):
            yield item


def iter_keys(value: JSONValue) -> Iterator[str]:
    """Yield every object key nested anywhere in a JSON value."""
    for key, _ in _walk(value):
        if key is not None:
            yield key


def in_range(count: int, bounds: tuple[int, int]) -> bool:
    low, high = bounds
    return low <= count <= high
