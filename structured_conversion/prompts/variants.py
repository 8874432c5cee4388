"""Prompt templates for each retry variant."""

import json
from typing import Iterable

from structured_conversion.schema.descriptor import SchemaDescriptor
from structured_conversion.schema.instructions import (
    example_payload,
    render_compact_instructions,
    render_format_instructions,
)
from structured_conversion.schemas import ValidationIssue


def _feedback_block(issues: Iterable[ValidationIssue] | None, failure: str | None) -> str:
    lines = [f"- {issue.describe()}" for issue in issues or ()]
    if failure:
        lines.append(f"- {failure}")
    if not lines:
        return ""
    return "\nYour previous answer was rejected:\n" + "\n".join(lines) + "\n"


def original_prompt(
    prompt_seed: str,
    descriptor: SchemaDescriptor,
    issues: Iterable[ValidationIssue] | None = None,
    failure: str | None = None,
) -> str:
    """
    Generate the first-attempt prompt: the seed plus the format directive.

    Args:
        prompt_seed: Caller's task description.
        descriptor: Target schema.
        issues: Ignored; the original prompt carries no feedback.
        failure: Ignored.

    Returns:
        The prompt text.
    """
    return f"{prompt_seed.strip()}\n\n{render_format_instructions(descriptor)}"


def examples_prompt(
    prompt_seed: str,
    descriptor: SchemaDescriptor,
    issues: Iterable[ValidationIssue] | None = None,
    failure: str | None = None,
) -> str:
    """Generate the prompt with a placeholder example of the expected object."""
    example = json.dumps(example_payload(descriptor), indent=2)
    return f"""{prompt_seed.strip()}

{render_format_instructions(descriptor)}
Example of a well-formed response (replace the placeholders with real values):
{example}
{_feedback_block(issues, failure)}"""


def simplified_prompt(
    prompt_seed: str,
    descriptor: SchemaDescriptor,
    issues: Iterable[ValidationIssue] | None = None,
    failure: str | None = None,
) -> str:
    """Generate a shorter prompt that lists fields instead of the full schema."""
    return f"""{prompt_seed.strip()}

{render_compact_instructions(descriptor)}{_feedback_block(issues, failure)}"""


def constrained_prompt(
    prompt_seed: str,
    descriptor: SchemaDescriptor,
    issues: Iterable[ValidationIssue] | None = None,
    failure: str | None = None,
) -> str:
    """Generate a prompt spelling out every constraint the answer must meet."""
    rules = [
        "Output exactly one JSON object and no other text.",
        "Use double quotes for all keys and string values.",
        "Do not add trailing commas.",
    ]
    for spec in descriptor.fields:
        rule = f"'{spec.name}' must be a JSON {spec.type.value}"
        if spec.required and spec.nullable:
            rule += " or null, and must be present"
        elif spec.required:
            rule += " and must be present and non-null"
        if spec.enum is not None:
            rule += f", one of {json.dumps(list(spec.enum))}"
        rules.append(rule + ".")
    numbered = "\n".join(f"{index}. {rule}" for index, rule in enumerate(rules, start=1))
    return f"""{prompt_seed.strip()}

{render_format_instructions(descriptor)}
Constraints:
{numbered}
{_feedback_block(issues, failure)}"""


def field_rerequest_prompt(
    prompt_seed: str,
    descriptor: SchemaDescriptor,
    field_names: Iterable[str],
    issues: Iterable[ValidationIssue] | None = None,
) -> str:
    """
    Generate a prompt asking only for the fields that failed validation.

    Args:
        prompt_seed: Caller's task description.
        descriptor: Full target schema.
        field_names: Top-level fields to request again.
        issues: Issues reported for those fields.

    Returns:
        The prompt text restricted to the failing fields.
    """
    subset = descriptor.subset(field_names)
    return f"""{prompt_seed.strip()}

Only the following fields are needed; return them as a single JSON object.
{render_compact_instructions(subset)}{_feedback_block(issues, None)}"""
