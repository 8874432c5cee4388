"""Semantic checks: soft, pluggable heuristics over the converted value."""

from typing import Any, Callable, Iterable

from structured_conversion.core import get_path
from structured_conversion.schemas import IssueCode, Severity, ValidationIssue, ValidationPhase
from structured_conversion.validation.context import ValidationContext

SemanticCheck = Callable[[dict[str, Any], ValidationContext], list[ValidationIssue]]

DEFAULT_HYPE_PHRASES: tuple[str, ...] = (
    "revolutionary",
    "guaranteed",
    "best ever",
    "world-class",
    "game-changing",
    "100% effective",
)


def _soft(field: str, message: str, suggested_fix: str | None = None) -> ValidationIssue:
    return ValidationIssue(
        severity=Severity.SOFT,
        code=IssueCode.SEMANTIC,
        field=field,
        message=message,
        suggested_fix=suggested_fix,
        phase=ValidationPhase.SEMANTIC,
    )


def max_length(field: str, limit: int) -> SemanticCheck:
    """Flag a string or collection field longer than limit."""

    def check(value: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
        current = get_path(value, field)
        if current is None or len(current) <= limit:
            return []
        return [
            _soft(
                field,
                f"Length {len(current)} exceeds {limit}",
                f"Shorten '{field}' to at most {limit}",
            )
        ]

    return check


def min_length(field: str, limit: int) -> SemanticCheck:
    """Flag a string or collection field shorter than limit."""

    def check(value: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
        current = get_path(value, field)
        if current is None or len(current) >= limit:
            return []
        return [
            _soft(
                field,
                f"Length {len(current)} is below {limit}",
                f"Expand '{field}' to at least {limit}",
            )
        ]

    return check


def forbidden_phrases(
    fields: Iterable[str], phrases: Iterable[str] = DEFAULT_HYPE_PHRASES
) -> SemanticCheck:
    """
    Flag string fields containing any of the given phrases (case-insensitive).

    Args:
        fields (Iterable[str]): Field paths to scan.
        phrases (Iterable[str]): Denylisted phrases; defaults to hype words.

    Returns:
        SemanticCheck: Check reporting one soft issue per offending field.
    """
    field_paths = tuple(fields)
    denylist = tuple(phrase.lower() for phrase in phrases)

    def check(value: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
        issues = []
        for path in field_paths:
            text = get_path(value, path)
            if not isinstance(text, str):
                continue
            lowered = text.lower()
            found = [phrase for phrase in denylist if phrase in lowered]
            if found:
                issues.append(
                    _soft(
                        path,
                        f"Contains discouraged phrases: {', '.join(found)}",
                        "Use neutral, factual wording",
                    )
                )
        return issues

    return check


def non_empty_collection(field: str) -> SemanticCheck:
    """Flag a list or object field that is present but empty."""

    def check(value: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
        current = get_path(value, field)
        if isinstance(current, (list, dict)) and not current:
            return [_soft(field, "Collection is empty", f"Add at least one entry to '{field}'")]
        return []

    return check
