"""Raw-to-typed conversion of model responses."""

from structured_conversion.conversion.coercion import coerce_near_miss
from structured_conversion.conversion.converter import Parsed, convert_text
from structured_conversion.conversion.repair import extract_candidate, repair_json

__all__ = [
    "Parsed",
    "coerce_near_miss",
    "convert_text",
    "extract_candidate",
    "repair_json",
]
