"""Tests for prompt variants and their registry."""

import pytest

from structured_conversion.errors import ConfigurationError
from structured_conversion.prompts import field_rerequest_prompt, list_all, resolve, variant_for_attempt
from structured_conversion.schema.descriptor import SchemaDescriptor
from structured_conversion.schemas import (
    DEFAULT_VARIANT_ORDER,
    IssueCode,
    PromptVariant,
    Severity,
    ValidationIssue,
)

ISSUE = ValidationIssue(
    severity=Severity.HARD,
    code=IssueCode.MISSING_REQUIRED,
    field="age",
    message="Required field is missing",
)


def test_list_all_names_every_variant() -> None:
    """Every prompt variant is registered."""
    assert list_all() == sorted(variant.value for variant in PromptVariant)


def test_variants_cycle_through_order() -> None:
    """Attempts beyond the order length wrap around."""
    picked = [variant_for_attempt(DEFAULT_VARIANT_ORDER, n) for n in range(1, 7)]

    assert picked == [
        PromptVariant.ORIGINAL,
        PromptVariant.ADD_EXAMPLES,
        PromptVariant.SIMPLIFY,
        PromptVariant.ADD_EXPLICIT_CONSTRAINTS,
        PromptVariant.ORIGINAL,
        PromptVariant.ADD_EXAMPLES,
    ]


def test_empty_order_is_a_configuration_error() -> None:
    """An empty variant order cannot pick a prompt."""
    with pytest.raises(ConfigurationError):
        variant_for_attempt((), 1)


def test_original_prompt_has_no_feedback(person_descriptor: SchemaDescriptor) -> None:
    """The first prompt is the seed plus the format directive only."""
    prompt = resolve(
        PromptVariant.ORIGINAL,
        prompt_seed="Describe Jane.",
        descriptor=person_descriptor,
        issues=[ISSUE],
    )

    assert prompt.startswith("Describe Jane.\n\nYour response should be in JSON format.")
    assert "rejected" not in prompt


@pytest.mark.parametrize(
    "variant, marker",
    [
        (PromptVariant.ADD_EXAMPLES, '"name": "<name>"'),
        (PromptVariant.SIMPLIFY, "- age (integer, required)"),
        (PromptVariant.ADD_EXPLICIT_CONSTRAINTS, "'age' must be a JSON integer"),
    ],
)
def test_modified_prompts_carry_feedback(
    person_descriptor: SchemaDescriptor, variant: PromptVariant, marker: str
) -> None:
    """Rewritten prompts include their hint and the previous issues."""
    prompt = resolve(
        variant, prompt_seed="Describe Jane.", descriptor=person_descriptor, issues=[ISSUE]
    )

    assert marker in prompt
    assert "[hard] age: Required field is missing" in prompt


def test_unknown_variant_is_rejected(person_descriptor: SchemaDescriptor) -> None:
    """Resolving an unknown variant name fails at setup."""
    with pytest.raises(ConfigurationError, match="Unknown prompt variant"):
        resolve("shout", prompt_seed="x", descriptor=person_descriptor)


def test_field_rerequest_prompt_lists_only_failing_fields(
    person_descriptor: SchemaDescriptor,
) -> None:
    """Re-request prompts ask for the named fields only."""
    prompt = field_rerequest_prompt("Describe Jane.", person_descriptor, ["nickname"])

    assert "- nickname (string, optional)" in prompt
    assert "- name (" not in prompt
