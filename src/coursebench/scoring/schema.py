# Copyright (c) Syntropy Systems
"""Structural compliance of parsed artifacts."""
from __future__ import annotations

import re
from typing import TYPE_CHECKING

from coursebench.scoring.checks import (
    CheckResult,
    DimensionResult,
    as_object,
    combine_checks,
    failed,
    iter_keys,
    passed,
)

if TYPE_CHECKING:
    from coursebench.models.base import JSONValue
    from coursebench.models.bench import ExpectedShape, FieldType, NamingConvention

CHECK_WEIGHT = 0.25

NAMING_PATTERNS: dict[NamingConvention, re.Pattern[str]] = {
    "snake_case": re.compile(r"^[a-z][a-z0-9]*(?:_[a-z0-9]+)*$"),
    "camelCase": re.compile(r"^[a-z][a-zA-Z0-9]*$"),
}

_MAX_LISTED = 5


def json_type_name(value: JSONValue) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def matches_type(value: JSONValue, expected: FieldType) -> bool:
    """Check a JSON value against a declared field type."""
    if expected == "string":
        return isinstance(value, str)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "integer":
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "array":
        return isinstance(value, list)
    return isinstance(value, dict)


def _listed(items: list[str]) -> str:
    shown = ", ".join(items[:_MAX_LISTED])
    if len(items) > _MAX_LISTED:
        shown += f" (+{len(items) - _MAX_LISTED} more)"
    return shown


def check_naming(data: JSONValue, naming: NamingConvention) -> CheckResult:
    if naming == "any":
        return passed("naming", CHECK_WEIGHT)
    pattern = NAMING_PATTERNS[naming]
    bad_keys = sorted({key for key in iter_keys(data) if not pattern.match(key)})
    if bad_keys:
        return failed("naming", CHECK_WEIGHT, f"Keys not in {naming}: {_listed(bad_keys)}")
    return passed("naming", CHECK_WEIGHT)


def validate_schema(data: JSONValue, shape: ExpectedShape) -> DimensionResult:
    """Score an artifact's structure against the expected shape.

    Four equally weighted binary checks: the artifact is an object, required
    fields are present, keys follow the naming convention, and declared
    field types match.
    """
    obj = as_object(data)
    if obj is None:
        kind = json_type_name(data)
        return combine_checks(
            [
                failed("structure", CHECK_WEIGHT, f"Artifact is not a JSON object (got {kind})"),
                failed("required_fields", CHECK_WEIGHT, "Required fields unavailable"),
                failed("naming", CHECK_WEIGHT, "Key naming unavailable"),
                failed("field_types", CHECK_WEIGHT, "Field types unavailable"),
            ]
        )

    checks: list[CheckResult] = []
    if obj:
        checks.append(passed("structure", CHECK_WEIGHT))
    else:
        checks.append(failed("structure", CHECK_WEIGHT, "Artifact is an empty object"))

    missing = [name for name in shape.required_fields if name not in obj]
    if missing:
        checks.append(
            failed("required_fields", CHECK_WEIGHT, f"Missing required fields: {_listed(missing)}")
        )
    else:
        checks.append(passed("required_fields", CHECK_WEIGHT))

    checks.append(check_naming(obj, shape.naming))

    mismatches: list[str] = []
    for name, expected in shape.field_types.items():
        if name not in obj:
            mismatches.append(f"{name} (expected {expected}, missing)")
        elif not matches_type(obj[name], expected):
            mismatches.append(f"{name} (expected {expected}, got {json_type_name(obj[name])})")
    if mismatches:
        checks.append(
            failed("field_types", CHECK_WEIGHT, f"Type mismatches: {_listed(mismatches)}")
        )
    else:
        checks.append(passed("field_types", CHECK_WEIGHT))

    return combine_checks(checks)
