"""Tests for the partial recovery engine."""

from typing import Any

from structured_conversion.errors import ProviderError, ProviderErrorKind
from structured_conversion.pipeline.recovery import (
    PartialRecoveryEngine,
    apply_defaults,
    coerce_fields,
    is_recoverable,
)
from structured_conversion.schema.descriptor import FieldSpec, FieldType, SchemaDescriptor
from structured_conversion.schemas import IssueCode, RetryPolicy, Severity, ValidationIssue, ValidationPhase
from structured_conversion.validation import ValidationContext, check_schema

DESCRIPTOR = SchemaDescriptor(
    name="Listing",
    fields=(
        FieldSpec(name="title", type=FieldType.STRING),
        FieldSpec(name="price", type=FieldType.NUMBER),
        FieldSpec(name="scores", type=FieldType.ARRAY, items=FieldType.INTEGER, required=False),
        FieldSpec(
            name="seller",
            type=FieldType.OBJECT,
            required=False,
            fields=(FieldSpec(name="rating", type=FieldType.NUMBER, required=False),),
        ),
    ),
)


def _issues(value: dict[str, Any]) -> list[ValidationIssue]:
    return check_schema(value, ValidationContext(descriptor=DESCRIPTOR))


def test_missing_required_is_never_recoverable() -> None:
    """Structural issues rule out recovery even with coercion on."""
    issues = _issues({"price": 1.0})

    assert not is_recoverable(issues, DESCRIPTOR, RetryPolicy(allow_type_coercion=True))


def test_business_issue_is_never_recoverable() -> None:
    """Business-rule failures are structural."""
    issue = ValidationIssue(
        severity=Severity.HARD,
        code=IssueCode.RULE_VIOLATION,
        field="scores",
        message="bad",
        phase=ValidationPhase.BUSINESS,
    )

    assert not is_recoverable([issue], DESCRIPTOR, RetryPolicy())


def test_type_mismatch_needs_coercion_or_optional_field() -> None:
    """A required field with the wrong type is recoverable only with coercion."""
    issues = _issues({"title": "Lamp", "price": "12.5"})

    assert not is_recoverable(issues, DESCRIPTOR, RetryPolicy())
    assert is_recoverable(issues, DESCRIPTOR, RetryPolicy(allow_type_coercion=True))


def test_apply_defaults_fills_nested_optional_path() -> None:
    """Defaults are keyed by field path and may target nested fields."""
    value = {"title": "Lamp", "price": 3.0, "seller": {}}
    issues = _issues(value)

    applied = apply_defaults(value, issues, DESCRIPTOR, {"seller.rating": 4.5, "title": "x"})

    assert applied == {"seller.rating": 4.5}
    assert value["seller"] == {"rating": 4.5}
    assert value["title"] == "Lamp"


def test_coerce_fields_handles_array_elements() -> None:
    """Near-miss array elements are coerced in place."""
    value = {"title": "Lamp", "price": "3", "scores": [1, "2", "two"]}
    issues = _issues(value)

    coerced = coerce_fields(value, issues, DESCRIPTOR)

    assert coerced == ["price", "scores[1]"]
    assert value["price"] == 3
    assert value["scores"] == [1, 2, "two"]


async def test_recover_returns_none_when_hard_issues_remain() -> None:
    """A partially repaired value is discarded if it still fails."""
    engine = PartialRecoveryEngine(DESCRIPTOR, RetryPolicy(allow_type_coercion=True))
    value = {"title": "Lamp", "price": "3", "scores": ["two"]}

    assert await engine.recover(value, _issues(value)) is None
    assert value["price"] == "3"


async def test_recover_uses_rerequest_after_other_strategies() -> None:
    """The failing field is requested again when defaults and coercion are not enough."""
    prompts: list[str] = []

    async def rerequest(prompt: str) -> str:
        prompts.append(prompt)
        return '{"scores": [7, 8]}'

    engine = PartialRecoveryEngine(
        DESCRIPTOR, RetryPolicy(), rerequest=rerequest, prompt_seed="List a lamp."
    )
    value = {"title": "Lamp", "price": 3.0, "scores": ["seven"]}

    outcome = await engine.recover(value, _issues(value))

    assert outcome is not None
    assert outcome.value["scores"] == [7, 8]
    assert outcome.rerequested_fields == ["scores"]
    assert prompts[0].startswith("List a lamp.")


async def test_rerequest_provider_error_keeps_original_failure() -> None:
    """A failed re-request leaves the value unrecovered."""

    async def rerequest(prompt: str) -> str:
        raise ProviderError(ProviderErrorKind.TRANSIENT, "503")

    engine = PartialRecoveryEngine(DESCRIPTOR, RetryPolicy(), rerequest=rerequest)
    value = {"title": "Lamp", "price": 3.0, "scores": ["seven"]}

    assert await engine.recover(value, _issues(value)) is None


async def test_rerequest_can_be_disabled() -> None:
    """The policy switch turns off field re-requests."""
    calls: list[str] = []

    async def rerequest(prompt: str) -> str:
        calls.append(prompt)
        return '{"scores": [1]}'

    engine = PartialRecoveryEngine(
        DESCRIPTOR, RetryPolicy(rerequest_failing_fields=False), rerequest=rerequest
    )
    value = {"title": "Lamp", "price": 3.0, "scores": ["seven"]}

    assert await engine.recover(value, _issues(value)) is None
    assert calls == []
