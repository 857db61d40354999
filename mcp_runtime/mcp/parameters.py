"""Fail-soft navigation over decoded JSON-RPC parameters.

A ``Parameters`` node wraps one decoded JSON value. Navigation with ``get``
never raises: a missing key, or a key looked up on something that is not an
object, yields an empty node. The ``as_*`` conversions return ``None`` when the
value is absent or has the wrong shape. Only ``require`` turns absence into a
protocol error.

Usage:
    params = Parameters({"person": {"name": "Frank", "age": 10}})
    params.get("person").get("name").as_string()  # "Frank"
    params.get("person").get("missing").as_integer()  # None
    params.require("person")  # raises MissingArgumentError if absent
"""

import dataclasses
import struct
import typing
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from mcp_runtime.mcp.errors import MissingArgumentError

T = TypeVar("T")

_MISSING = object()


def _wrap(value: int, bits: int) -> int:
    """Two's complement narrowing, the way fixed-width integers overflow."""
    size = 1 << bits
    value &= size - 1
    return value - size if value >= size >> 1 else value


class Parameters:
    """Immutable node in a parameter tree."""

    __slots__ = ("_value", "_key")

    def __init__(self, value: Any = _MISSING, key: str = "root"):
        self._value = value
        self._key = key

    @classmethod
    def empty(cls, key: str = "empty") -> "Parameters":
        return cls(_MISSING, key)

    def __repr__(self) -> str:
        if self.is_empty:
            return f"Parameters({self._key}=<empty>)"
        return f"Parameters({self._key}={self._value!r})"

    @property
    def key(self) -> str:
        return self._key

    @property
    def value(self) -> Any:
        """Raw decoded value, or ``None`` for an empty node."""
        return None if self._value is _MISSING else self._value

    # ---------------------------------------------------------------------
    # Shape checks
    # ---------------------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return self._value is _MISSING or self._value is None

    @property
    def is_present(self) -> bool:
        return not self.is_empty

    @property
    def is_number(self) -> bool:
        return isinstance(self._value, (int, float)) and not isinstance(self._value, bool)

    @property
    def is_string(self) -> bool:
        return isinstance(self._value, str)

    @property
    def is_object(self) -> bool:
        return isinstance(self._value, dict)

    # ---------------------------------------------------------------------
    # Navigation
    # ---------------------------------------------------------------------

    def get(self, key: str) -> "Parameters":
        """Child node for ``key``; empty if absent or this is not an object."""
        if isinstance(self._value, dict) and key in self._value:
            return Parameters(self._value[key], key)
        return Parameters.empty(key)

    def require(self, key: str) -> "Parameters":
        """Child node for ``key``, raising ``MissingArgumentError`` if absent."""
        node = self.get(key)
        if node.is_empty:
            raise MissingArgumentError(key)
        return node

    def keys(self) -> list[str]:
        if isinstance(self._value, dict):
            return list(self._value.keys())
        return []

    # ---------------------------------------------------------------------
    # Scalar conversions
    # ---------------------------------------------------------------------

    def as_string(self) -> str | None:
        if isinstance(self._value, str):
            return self._value
        return None

    def as_boolean(self) -> bool | None:
        if isinstance(self._value, bool):
            return self._value
        return None

    def _as_number(self) -> int | float | None:
        if self.is_number:
            return self._value
        return None

    def as_byte(self) -> int | None:
        number = self._as_number()
        return None if number is None else _wrap(int(number), 8)

    def as_short(self) -> int | None:
        number = self._as_number()
        return None if number is None else _wrap(int(number), 16)

    def as_integer(self) -> int | None:
        number = self._as_number()
        return None if number is None else _wrap(int(number), 32)

    def as_long(self) -> int | None:
        number = self._as_number()
        return None if number is None else _wrap(int(number), 64)

    def as_double(self) -> float | None:
        number = self._as_number()
        return None if number is None else float(number)

    def as_float(self) -> float | None:
        """Value rounded to single precision."""
        number = self._as_number()
        if number is None:
            return None
        try:
            return struct.unpack("f", struct.pack("f", float(number)))[0]
        except OverflowError:
            return float("inf") if number > 0 else float("-inf")

    # ---------------------------------------------------------------------
    # Structured conversions
    # ---------------------------------------------------------------------

    def as_list(self) -> list["Parameters"] | None:
        if isinstance(self._value, list):
            return [Parameters(item, f"{self._key}-{i}") for i, item in enumerate(self._value)]
        return None

    def as_dict(self) -> dict[str, Any] | None:
        if isinstance(self._value, dict):
            return dict(self._value)
        return None

    def as_model(self, shape: type[T]) -> T | None:
        """Bind this object onto ``shape`` field by field.

        Each field of ``shape`` is looked up by name and set when present and
        type-compatible. Unknown keys are ignored. Missing or incompatible
        fields keep their default, or ``None`` when the field has none. Works
        for pydantic models, dataclasses and plain classes whose annotated
        attributes carry defaults.
        """
        if not isinstance(self._value, dict):
            return None

        if isinstance(shape, type) and issubclass(shape, BaseModel):
            values = {}
            for name, field in shape.model_fields.items():
                compatible = self._compatible(field.alias or name, field.annotation)
                if compatible is not _MISSING:
                    values[name] = compatible
                elif field.is_required():
                    values[name] = None
            return shape.model_construct(**values)

        hints = _type_hints(shape)

        if dataclasses.is_dataclass(shape):
            values = {}
            for field in dataclasses.fields(shape):
                if not field.init:
                    continue
                compatible = self._compatible(field.name, hints.get(field.name, Any))
                if compatible is not _MISSING:
                    values[field.name] = compatible
                elif field.default is dataclasses.MISSING and field.default_factory is dataclasses.MISSING:
                    values[field.name] = None
            try:
                return shape(**values)
            except (TypeError, ValueError):
                return None

        try:
            instance = shape()
        except TypeError:
            return None
        for name, annotation in hints.items():
            if name.startswith("_"):
                continue
            compatible = self._compatible(name, annotation)
            if compatible is not _MISSING:
                setattr(instance, name, compatible)
        return instance

    def _compatible(self, key: str, annotation: Any) -> Any:
        if key not in self._value:
            return _MISSING
        return _validate(annotation, self._value[key])


def _type_hints(shape: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(shape)
    except (NameError, TypeError):
        return {}


def _validate(annotation: Any, value: Any) -> Any:
    try:
        return TypeAdapter(annotation).validate_python(value)
    except (ValidationError, TypeError):
        return _MISSING
