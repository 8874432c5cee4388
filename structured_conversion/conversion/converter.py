"""Raw-to-typed conversion of model text against a schema descriptor."""

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

from structured_conversion.conversion.coercion import coerce_near_miss
from structured_conversion.conversion.repair import extract_candidate, repair_json
from structured_conversion.schema.descriptor import FieldSpec, FieldType, SchemaDescriptor
from structured_conversion.schemas import ParseFailure

logger = logging.getLogger(__name__)

FRAGMENT_RADIUS = 40


class Parsed(BaseModel):
    """Raw text parsed into a JSON object projected onto the descriptor."""

    kind: Literal["parsed"] = "parsed"
    value: dict[str, Any]
    repaired: bool = False
    ignored_fields: list[str] = Field(default_factory=list)
    coerced_fields: list[str] = Field(default_factory=list)


def _fragment(text: str, position: int) -> str:
    start = max(0, position - FRAGMENT_RADIUS)
    return text[start : position + FRAGMENT_RADIUS]


def _reason(error: Exception) -> str:
    if isinstance(error, json.JSONDecodeError):
        return error.msg
    if isinstance(error, RecursionError):
        return "nesting too deep"
    return str(error)


def _project(
    payload: dict[str, Any],
    fields: tuple[FieldSpec, ...],
    prefix: str,
    coerced: list[str],
) -> dict[str, Any]:
    """Keep descriptor fields in descriptor order; unknown keys are dropped."""
    value: dict[str, Any] = {}
    for spec in fields:
        if spec.name not in payload:
            continue
        field_value = payload[spec.name]
        path = f"{prefix}{spec.name}"
        if spec.allow_coercion and field_value is not None:
            changed, field_value = coerce_near_miss(spec.type, field_value)
            if changed:
                coerced.append(path)
        if spec.type == FieldType.OBJECT and spec.fields and isinstance(field_value, dict):
            field_value = _project(field_value, spec.fields, f"{path}.", coerced)
        value[spec.name] = field_value
    return value


def convert_text(raw_text: str | None, descriptor: SchemaDescriptor) -> Parsed | ParseFailure:
    """
    Parse model output into a value shaped by the descriptor.

    Strict JSON parsing is tried first; on failure a single lenient pass
    (fence/prose extraction, trailing commas, quote fixes) is attempted.
    Type conformance is left to the validator chain, except that fields
    declaring ``allow_coercion`` accept numeric and boolean strings.

    Args:
        raw_text (str | None): Text returned by the model.
        descriptor (SchemaDescriptor): Target schema.

    Returns:
        Parsed | ParseFailure: The projected value, or why it could not be parsed.
    """
    if raw_text is None or not raw_text.strip():
        return ParseFailure(reason="Empty response", fragment="")

    text = raw_text.strip()
    repaired = False
    try:
        payload = json.loads(text)
    except (ValueError, RecursionError) as strict_error:
        logger.debug("Strict parse failed (%s); trying lenient repair", _reason(strict_error))
        candidate = repair_json(extract_candidate(text))
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError as lenient_error:
            return ParseFailure(
                reason=f"Invalid JSON: {lenient_error.msg} at position {lenient_error.pos}",
                fragment=_fragment(candidate, lenient_error.pos),
            )
        except (ValueError, RecursionError) as lenient_error:
            return ParseFailure(
                reason=f"Invalid JSON: {_reason(lenient_error)}",
                fragment=_fragment(candidate, 0),
            )
        repaired = True

    if not isinstance(payload, dict):
        return ParseFailure(
            reason=f"Expected a JSON object, got {type(payload).__name__}",
            fragment=_fragment(text, 0),
        )

    coerced: list[str] = []
    value = _project(payload, descriptor.fields, "", coerced)
    ignored = [key for key in payload if descriptor.field(key) is None]
    if ignored:
        logger.debug("Ignoring fields not in %s: %s", descriptor.name, ignored)
    return Parsed(
        value=value,
        repaired=repaired,
        ignored_fields=ignored,
        coerced_fields=coerced,
    )
