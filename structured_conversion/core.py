"""Core helpers shared by the schema, conversion and validation layers."""

import re
from typing import Any

from pydantic import BaseModel

_INDEX_PATTERN = re.compile(r"\[\d+\]")


def extract_json_payload(raw_text: str) -> str:
    """
    Extract a JSON payload from text that may include prose or fenced code.

    Args:
        raw_text (str): Raw text possibly containing a JSON block.

    Returns:
        str: Extracted JSON payload as a string.
    """
    text = raw_text.strip()
    if not text:
        return text

    fence_start = text.find("```")
    if fence_start != -1:
        fence_end = text.find("```", fence_start + 3)
        if fence_end != -1:
            fenced = text[fence_start + 3 : fence_end]
            return fenced.strip().removeprefix("json").strip()

    return text


def inline_json_schema(model: type[BaseModel]) -> dict[str, Any]:
    """
    Builds a self-contained JSON schema by inlining $ref/$defs.

    Args:
        model (type[BaseModel]): Pydantic model to inline.

    Returns:
        dict[str, Any]: JSON schema with inline definitions.
    """
    schema = model.model_json_schema()
    defs = schema.pop("$defs", {})

    def _resolve(node: Any) -> Any:
        if isinstance(node, dict):
            ref = node.get("$ref")
            if ref and ref.startswith("#/$defs/"):
                key = ref.split("/")[-1]
                resolved = defs.get(key, {})
                merged = {**resolved, **{k: v for k, v in node.items() if k != "$ref"}}
                return _resolve(merged)
            return {k: _resolve(v) for k, v in node.items()}
        if isinstance(node, list):
            return [_resolve(item) for item in node]
        return node

    inlined = _resolve(schema)
    inlined.pop("$defs", None)
    return inlined


def split_path(path: str) -> list[str]:
    """
    Split a dotted field path into its object keys.

    Array indices (``tags[0]``) are dropped, so ``address.lines[1]`` yields
    ``["address", "lines"]``.

    Args:
        path (str): Dotted field path.

    Returns:
        list[str]: Path segments.
    """
    return [segment for segment in _INDEX_PATTERN.sub("", path).split(".") if segment]


def get_path(value: dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Look up a dotted path inside nested dictionaries.

    Args:
        value (dict[str, Any]): Root object.
        path (str): Dotted field path.
        default (Any): Returned when any segment is missing.

    Returns:
        Any: The value at the path, or default.
    """
    current: Any = value
    for segment in split_path(path):
        if not isinstance(current, dict) or segment not in current:
            return default
        current = current[segment]
    return current


def has_path(value: dict[str, Any], path: str) -> bool:
    """Return True when every segment of a dotted path exists."""
    marker = object()
    return get_path(value, path, default=marker) is not marker


def set_path(value: dict[str, Any], path: str, new_value: Any) -> None:
    """
    Set a dotted path inside nested dictionaries, creating objects as needed.

    Args:
        value (dict[str, Any]): Root object, mutated in place.
        path (str): Dotted field path.
        new_value (Any): Value to store.
    """
    segments = split_path(path)
    current = value
    for segment in segments[:-1]:
        child = current.get(segment)
        if not isinstance(child, dict):
            child = {}
            current[segment] = child
        current = child
    current[segments[-1]] = new_value
