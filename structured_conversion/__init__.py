"""Validated, retrying conversion of model output into structured values."""

from structured_conversion.clients import (
    GeminiProvider,
    ModelProvider,
    OpenAIProvider,
    ScriptedProvider,
    create_provider,
)
from structured_conversion.errors import (
    ConfigurationError,
    ProviderError,
    ProviderErrorKind,
    StructuredConversionError,
)
from structured_conversion.pipeline import ConversionPipeline, OutcomeEvent
from structured_conversion.schema import (
    SchemaCache,
    SchemaDescriptor,
    descriptor_from_json_schema,
    descriptor_from_model,
    render_format_instructions,
)
from structured_conversion.schemas import (
    BatchResult,
    RecoveryResult,
    RecoveryStatus,
    RetryPolicy,
    ValidationIssue,
)
from structured_conversion.validation import BusinessRule, ValidatorSet

__all__ = [
    "BatchResult",
    "BusinessRule",
    "ConfigurationError",
    "ConversionPipeline",
    "GeminiProvider",
    "ModelProvider",
    "OpenAIProvider",
    "OutcomeEvent",
    "ProviderError",
    "ProviderErrorKind",
    "RecoveryResult",
    "RecoveryStatus",
    "RetryPolicy",
    "SchemaCache",
    "SchemaDescriptor",
    "ScriptedProvider",
    "StructuredConversionError",
    "ValidationIssue",
    "ValidatorSet",
    "create_provider",
    "descriptor_from_json_schema",
    "descriptor_from_model",
    "render_format_instructions",
]
