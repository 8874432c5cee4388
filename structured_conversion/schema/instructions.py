"""Natural-language format directives rendered from a schema descriptor."""

import json
from typing import Any

from structured_conversion.schema.descriptor import FieldSpec, FieldType, SchemaDescriptor

FORMAT_INSTRUCTIONS = """Your response should be in JSON format.
Do not include any explanations, only provide a RFC8259 compliant JSON response following this format without deviation.
Do not include markdown code blocks in your response.
Required fields: {required}.
Here is the JSON Schema instance your output must adhere to:
```
{schema}
```
"""

COMPACT_INSTRUCTIONS = """Respond with a single JSON object and nothing else.
Fields:
{fields}
"""


def render_format_instructions(descriptor: SchemaDescriptor) -> str:
    """
    Render the JSON format directive appended to prompts.

    The output depends only on the descriptor, so equal descriptors always
    produce byte-identical instructions.

    Args:
        descriptor (SchemaDescriptor): Target schema.

    Returns:
        str: Format directive including the JSON Schema.
    """
    required = ", ".join(spec.name for spec in descriptor.required_fields())
    return FORMAT_INSTRUCTIONS.format(
        required=required or "none",
        schema=json.dumps(descriptor.to_json_schema(), indent=2),
    )


def _describe_field(spec: FieldSpec, indent: str = "") -> list[str]:
    kind = spec.type.value
    if spec.items is not None:
        kind = f"array of {spec.items.value}"
    flag = "required" if spec.required else "optional"
    if spec.nullable:
        flag += ", nullable"
    line = f"{indent}- {spec.name} ({kind}, {flag})"
    if spec.enum is not None:
        line += f" one of {json.dumps(list(spec.enum))}"
    if spec.description:
        line += f": {spec.description}"
    lines = [line]
    for nested in spec.fields:
        lines.extend(_describe_field(nested, indent=indent + "  "))
    return lines


def render_compact_instructions(descriptor: SchemaDescriptor) -> str:
    """Render a short field list used when the full schema proved too noisy."""
    lines: list[str] = []
    for spec in descriptor.fields:
        lines.extend(_describe_field(spec))
    return COMPACT_INSTRUCTIONS.format(fields="\n".join(lines))


def _placeholder(spec: FieldSpec) -> Any:
    if spec.enum:
        return spec.enum[0]
    if spec.type == FieldType.STRING:
        return f"<{spec.name}>"
    if spec.type == FieldType.INTEGER:
        return 0
    if spec.type == FieldType.NUMBER:
        return 0.0
    if spec.type == FieldType.BOOLEAN:
        return False
    if spec.type == FieldType.ARRAY:
        if spec.items is None or spec.items in (FieldType.ARRAY, FieldType.OBJECT):
            return []
        return [_placeholder(FieldSpec(name=spec.name, type=spec.items))]
    return {nested.name: _placeholder(nested) for nested in spec.fields}


def example_payload(descriptor: SchemaDescriptor) -> dict[str, Any]:
    """
    Build a deterministic placeholder example matching the descriptor.

    Args:
        descriptor (SchemaDescriptor): Target schema.

    Returns:
        dict[str, Any]: Example object with one placeholder per field.
    """
    return {spec.name: _placeholder(spec) for spec in descriptor.fields}
