"""Schema phase: field presence and type conformance."""

from typing import Any

from structured_conversion.schema.descriptor import FieldSpec, FieldType
from structured_conversion.schemas import IssueCode, Severity, ValidationIssue, ValidationPhase
from structured_conversion.validation.context import ValidationContext


def json_type_name(value: Any) -> str:
    """Name the JSON type of a parsed value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def matches_type(field_type: FieldType, value: Any) -> bool:
    """Check a parsed value against a field type; booleans are never numbers."""
    if field_type == FieldType.STRING:
        return isinstance(value, str)
    if field_type == FieldType.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if field_type == FieldType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if field_type == FieldType.BOOLEAN:
        return isinstance(value, bool)
    if field_type == FieldType.ARRAY:
        return isinstance(value, list)
    return isinstance(value, dict)


def _issue(
    severity: Severity,
    code: IssueCode,
    path: str,
    message: str,
    suggested_fix: str | None = None,
) -> ValidationIssue:
    return ValidationIssue(
        severity=severity,
        code=code,
        field=path,
        message=message,
        suggested_fix=suggested_fix,
        phase=ValidationPhase.SCHEMA,
    )


def _check_value(spec: FieldSpec, value: Any, path: str) -> list[ValidationIssue]:
    if not matches_type(spec.type, value):
        return [
            _issue(
                Severity.HARD,
                IssueCode.TYPE_MISMATCH,
                path,
                f"Expected {spec.type.value}, got {json_type_name(value)}",
                f"Provide a JSON {spec.type.value} for '{path}'",
            )
        ]

    issues: list[ValidationIssue] = []
    if spec.enum is not None and value not in spec.enum:
        issues.append(
            _issue(
                Severity.HARD,
                IssueCode.ENUM_MISMATCH,
                path,
                f"Value {value!r} is not one of {list(spec.enum)}",
                f"Use one of {list(spec.enum)}",
            )
        )
    if spec.type == FieldType.ARRAY and spec.items is not None:
        for index, item in enumerate(value):
            if not matches_type(spec.items, item):
                issues.append(
                    _issue(
                        Severity.HARD,
                        IssueCode.TYPE_MISMATCH,
                        f"{path}[{index}]",
                        f"Expected {spec.items.value} element, got {json_type_name(item)}",
                        f"Make every element of '{path}' a {spec.items.value}",
                    )
                )
    if spec.type == FieldType.OBJECT and spec.fields:
        issues.extend(_check_fields(value, spec.fields, prefix=f"{path}."))
    return issues


def _check_fields(
    value: dict[str, Any], fields: tuple[FieldSpec, ...], prefix: str
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for spec in fields:
        path = f"{prefix}{spec.name}"
        present = spec.name in value
        field_value = value.get(spec.name)

        if field_value is None:
            if present and spec.required and spec.nullable:
                continue
            if spec.required and present:
                issues.append(
                    _issue(
                        Severity.HARD,
                        IssueCode.NULL_VALUE,
                        path,
                        "Required field is null",
                        f"Provide a {spec.type.value} value for '{path}'",
                    )
                )
            elif spec.required:
                issues.append(
                    _issue(
                        Severity.HARD,
                        IssueCode.MISSING_REQUIRED,
                        path,
                        "Required field is missing",
                        f"Include '{path}' ({spec.type.value})",
                    )
                )
            else:
                issues.append(
                    _issue(
                        Severity.SOFT,
                        IssueCode.MISSING_OPTIONAL,
                        path,
                        "Optional field is missing" if not present else "Optional field is null",
                    )
                )
            continue

        issues.extend(_check_value(spec, field_value, path))
    return issues


def check_schema(value: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    """
    Validate field presence and types against the descriptor.

    Reports one hard issue per missing required field, soft issues for missing
    optional fields and nothing for fields the descriptor does not declare.
    Required fields marked nullable accept an explicit null.

    Args:
        value (dict[str, Any]): Converted value.
        context (ValidationContext): Validation context carrying the descriptor.

    Returns:
        list[ValidationIssue]: All schema issues, in field order.
    """
    return _check_fields(value, context.descriptor.fields, prefix="")
