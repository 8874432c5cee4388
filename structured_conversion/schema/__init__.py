"""Schema descriptors, descriptor caching and format instructions."""

from structured_conversion.schema.cache import CacheStats, SchemaCache
from structured_conversion.schema.descriptor import (
    FieldSpec,
    FieldType,
    SchemaDescriptor,
    descriptor_from_json_schema,
    descriptor_from_model,
)
from structured_conversion.schema.instructions import (
    example_payload,
    render_compact_instructions,
    render_format_instructions,
)

__all__ = [
    "CacheStats",
    "FieldSpec",
    "FieldType",
    "SchemaCache",
    "SchemaDescriptor",
    "descriptor_from_json_schema",
    "descriptor_from_model",
    "example_payload",
    "render_compact_instructions",
    "render_format_instructions",
]
