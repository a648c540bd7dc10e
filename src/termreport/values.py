"""Tagged value tree used by the printer to render structured output.

Arbitrary Python values are converted once into ``Null``, ``Bool``,
``Number``, ``String``, ``Array`` or ``Object`` nodes; the printer only ever
walks that tree.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, is_dataclass
from enum import Enum
import math
from pathlib import PurePath
from typing import Any, Mapping, Tuple, Union


@dataclass(frozen=True)
class Null:
    pass


@dataclass(frozen=True)
class Bool:
    value: bool


@dataclass(frozen=True)
class Number:
    value: Union[int, float]


@dataclass(frozen=True)
class String:
    value: str


@dataclass(frozen=True)
class Array:
    items: Tuple["Value", ...]


@dataclass(frozen=True)
class Object:
    fields: Tuple[Tuple[str, "Value"], ...]


Value = Union[Null, Bool, Number, String, Array, Object]

NULL = Null()


def to_value(obj: Any) -> Value:
    if isinstance(obj, (Null, Bool, Number, String, Array, Object)):
        return obj
    if obj is None:
        return NULL
    # bool is an int subclass, so it has to be checked first.
    if isinstance(obj, bool):
        return Bool(obj)
    if isinstance(obj, Enum):
        return String(str(obj))
    if isinstance(obj, int):
        return Number(obj)
    if isinstance(obj, float):
        # Non-finite floats have no JSON form and render as null.
        if not math.isfinite(obj):
            return NULL
        return Number(obj)
    if isinstance(obj, str):
        return String(obj)
    if isinstance(obj, PurePath):
        return String(str(obj))
    if is_dataclass(obj) and not isinstance(obj, type):
        return Object(
            tuple((item.name, to_value(getattr(obj, item.name))) for item in fields(obj))
        )
    if isinstance(obj, Mapping):
        return Object(tuple((str(key), to_value(value)) for key, value in obj.items()))
    if isinstance(obj, (list, tuple)):
        return Array(tuple(to_value(item) for item in obj))
    if isinstance(obj, (set, frozenset)):
        return Array(tuple(to_value(item) for item in sorted(obj, key=repr)))
    raise TypeError(f"Cannot render value of type {type(obj).__name__}")


def scalar_text(value: Value) -> str:
    if isinstance(value, Null):
        return "null"
    if isinstance(value, Bool):
        return "true" if value.value else "false"
    if isinstance(value, (Number, String)):
        return str(value.value)
    raise TypeError(f"{type(value).__name__} is not a scalar")
