"""Schema, business-rule and semantic validation phases."""

from structured_conversion.validation.chain import ChainReport, ValidatorSet, run_chain
from structured_conversion.validation.context import ValidationContext
from structured_conversion.validation.rules import BusinessRule
from structured_conversion.validation.schema_phase import check_schema, matches_type
from structured_conversion.validation.semantic import (
    DEFAULT_HYPE_PHRASES,
    SemanticCheck,
    forbidden_phrases,
    max_length,
    min_length,
    non_empty_collection,
)

__all__ = [
    "BusinessRule",
    "ChainReport",
    "DEFAULT_HYPE_PHRASES",
    "SemanticCheck",
    "ValidationContext",
    "ValidatorSet",
    "check_schema",
    "forbidden_phrases",
    "matches_type",
    "max_length",
    "min_length",
    "non_empty_collection",
    "run_chain",
]
