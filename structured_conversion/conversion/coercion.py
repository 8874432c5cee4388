"""Near-miss type coercion, applied only where explicitly allowed."""

import re
from typing import Any, Callable

from structured_conversion.schema.descriptor import FieldType

_INTEGER = re.compile(r"^[+-]?\d+$")
_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_BOOLEANS = {"true": True, "false": False}


def _parsed(parse: Callable[[str], Any], text: str, original: Any) -> tuple[bool, Any]:
    """Apply parse to text; values Python refuses to convert stay untouched."""
    try:
        return True, parse(text)
    except ValueError:
        return False, original


def coerce_near_miss(field_type: FieldType, value: Any) -> tuple[bool, Any]:
    """
    Coerce a value whose JSON type is a near miss for the field type.

    Only digit strings, boolean words and integral floats qualify; spelled-out
    numbers such as ``"ninety-nine"`` are never coerced.

    Args:
        field_type (FieldType): Declared field type.
        value (Any): Parsed JSON value.

    Returns:
        tuple[bool, Any]: Whether coercion happened and the resulting value.
    """
    if field_type == FieldType.INTEGER:
        if isinstance(value, str) and _INTEGER.match(value.strip()):
            return _parsed(int, value.strip(), value)
        if isinstance(value, float) and value.is_integer():
            return True, int(value)
    elif field_type == FieldType.NUMBER:
        if isinstance(value, str) and _NUMBER.match(value.strip()):
            text = value.strip()
            return _parsed(int if _INTEGER.match(text) else float, text, value)
    elif field_type == FieldType.BOOLEAN:
        if isinstance(value, str) and value.strip().lower() in _BOOLEANS:
            return True, _BOOLEANS[value.strip().lower()]
    elif field_type == FieldType.STRING:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return True, str(value)
    return False, value
