"""Input validation for node execution.

Runs against a node's resolved inputs before its handler is called. The
first violation is returned as a ``NodeValidationError``; there is no
aggregate report.
"""
from __future__ import annotations
import re
from typing import Any, Mapping

from .errors import NodeValidationError
from .nodes.base import FieldSpec, normalize_spec

_INT_STRING = re.compile(r"^[+-]?\d+$")
# Leading number with anything after it, e.g. "1.5" or "2.0px"
_FLOAT_PREFIX = re.compile(r"^[+-]?\d+(\.\d+)?([eE][+-]?\d+)?")
_BOOL_LIKE = (0, 1, "true", "false", "0", "1")


def type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, str):
        return "string"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "float"
    if isinstance(value, (list, tuple)):
        return "list"
    if isinstance(value, dict):
        return "map"
    if value is None:
        return "nil"
    return "unknown"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_inputs(inputs: Mapping[str, Any], input_spec: Mapping[str, Any]) -> None:
    """Raise ``NodeValidationError`` for the first field that fails its spec."""
    for name, spec in normalize_spec(input_spec).items():
        validate_field(name, inputs.get(name), spec)


def validate_field(name: str, value: Any, spec: FieldSpec) -> None:
    if value is None:
        if spec.optional or spec.has_default or spec.is_connection_only():
            return
        raise NodeValidationError.required(name)

    _check_type(name, value, spec)
    _check_range(name, value, spec)
    _check_options(name, value, spec)


def _check_type(name: str, value: Any, spec: FieldSpec) -> None:
    kind = spec.type
    if kind == "string":
        ok = isinstance(value, str)
    elif kind == "integer":
        ok = (
            (isinstance(value, int) and not isinstance(value, bool))
            or (isinstance(value, float) and value.is_integer())
            or (isinstance(value, str) and bool(_INT_STRING.match(value)))
        )
    elif kind == "float":
        ok = _is_number(value) or (isinstance(value, str) and bool(_FLOAT_PREFIX.match(value)))
    elif kind == "boolean":
        ok = isinstance(value, bool) or (
            isinstance(value, (int, str)) and value in _BOOL_LIKE
        )
    elif kind == "bigint":
        ok = (isinstance(value, int) and not isinstance(value, bool)) or (
            isinstance(value, str) and bool(_INT_STRING.match(value))
        )
    elif kind == "enum":
        if value not in spec.option_values():
            raise NodeValidationError.invalid_enum(name, value, spec.option_values())
        return
    elif kind.startswith("list_"):
        if not isinstance(value, list):
            raise NodeValidationError.type_mismatch(name, "list", type_name(value))
        return
    else:
        # unknown / opaque types pass
        return

    if not ok:
        raise NodeValidationError.type_mismatch(name, kind, type_name(value))


def _check_range(name: str, value: Any, spec: FieldSpec) -> None:
    if not _is_number(value):
        return
    if spec.min is not None and value < spec.min:
        raise NodeValidationError.out_of_range(name, value, spec.min, spec.max)
    if spec.max is not None and value > spec.max:
        raise NodeValidationError.out_of_range(name, value, spec.min, spec.max)


def _check_options(name: str, value: Any, spec: FieldSpec) -> None:
    if spec.options and value not in spec.option_values():
        raise NodeValidationError.invalid_enum(name, value, spec.option_values())
