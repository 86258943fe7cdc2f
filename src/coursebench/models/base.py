# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for coursebench."""

from __future__ import annotations

from typing import ClassVar, Union

from pydantic import BaseModel, ConfigDict, JsonValue
from typing_extensions import TypeAlias

JSONPrimitive: TypeAlias = Union[str, int, float, bool, None]
JSONValue: TypeAlias = JsonValue
JSONObject: TypeAlias = dict[str, JSONValue]


class BenchBaseModel(BaseModel):
    """Base model with shared config for coursebench schemas."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        protected_namespaces=(),
    )


class FrozenModel(BaseModel):
    """Base model for records that must not change once a run starts."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        protected_namespaces=(),
        frozen=True,
    )
