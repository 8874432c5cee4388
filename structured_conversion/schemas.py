"""Pydantic schemas for validation issues, attempts, results and retry policy."""

import os
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal, Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from structured_conversion.errors import ProviderErrorKind

ModelT = TypeVar("ModelT", bound=BaseModel)


class Severity(StrEnum):
    """How strongly a validation issue blocks success."""

    HARD = "hard"
    SOFT = "soft"


class ValidationPhase(StrEnum):
    """Ordered phases of the validator chain."""

    SCHEMA = "schema"
    BUSINESS = "business"
    SEMANTIC = "semantic"


class IssueCode(StrEnum):
    """Machine-readable category of a validation issue."""

    MISSING_REQUIRED = "missing_required"
    MISSING_OPTIONAL = "missing_optional"
    TYPE_MISMATCH = "type_mismatch"
    NULL_VALUE = "null_value"
    ENUM_MISMATCH = "enum_mismatch"
    RULE_VIOLATION = "rule_violation"
    RULE_ERROR = "rule_error"
    SEMANTIC = "semantic"


class PromptVariant(StrEnum):
    """Prompt rewrites used across retry attempts."""

    ORIGINAL = "original"
    ADD_EXAMPLES = "add_examples"
    SIMPLIFY = "simplify"
    ADD_EXPLICIT_CONSTRAINTS = "add_explicit_constraints"


DEFAULT_VARIANT_ORDER: tuple[PromptVariant, ...] = (
    PromptVariant.ORIGINAL,
    PromptVariant.ADD_EXAMPLES,
    PromptVariant.SIMPLIFY,
    PromptVariant.ADD_EXPLICIT_CONSTRAINTS,
)


class ValidationIssue(BaseModel):
    """A single problem found by the validator chain."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    code: IssueCode
    field: str | None = Field(
        None, description="Dotted field path, or None for whole-value issues."
    )
    message: str
    suggested_fix: str | None = None
    phase: ValidationPhase | None = None

    @property
    def is_hard(self) -> bool:
        return self.severity == Severity.HARD

    def describe(self) -> str:
        """One-line rendition used in logs and retry feedback."""
        location = self.field or "<root>"
        text = f"[{self.severity}] {location}: {self.message}"
        if self.suggested_fix:
            text += f" (fix: {self.suggested_fix})"
        return text


class Success(BaseModel):
    """Attempt produced a value with no hard issues."""

    kind: Literal["success"] = "success"
    value: dict[str, Any]
    issues: list[ValidationIssue] = Field(
        default_factory=list, description="Soft issues surfaced alongside the value."
    )


class ParseFailure(BaseModel):
    """Raw text could not be parsed into a JSON object."""

    kind: Literal["parse_failure"] = "parse_failure"
    reason: str
    fragment: str = Field("", description="Offending substring of the raw text.")


class ValidationFailure(BaseModel):
    """Value parsed but the validator chain reported hard issues."""

    kind: Literal["validation_failure"] = "validation_failure"
    value: dict[str, Any]
    issues: list[ValidationIssue]


class ProviderFailure(BaseModel):
    """The model provider call itself failed."""

    kind: Literal["provider_failure"] = "provider_failure"
    error_kind: ProviderErrorKind
    message: str
    retry_after: float | None = None


AttemptOutcome = Annotated[
    Success | ParseFailure | ValidationFailure | ProviderFailure,
    Field(discriminator="kind"),
]


class ConversionAttempt(BaseModel):
    """One model call plus its conversion and validation."""

    number: int = Field(..., ge=1)
    variant: PromptVariant
    prompt: str
    raw_response: str | None = None
    outcome: AttemptOutcome
    repaired: bool = Field(
        False, description="Whether the lenient JSON repair pass was needed."
    )
    started_at: datetime
    latency_ms: float = 0.0

    @field_serializer("started_at")
    def serialize_datetime(self, value: datetime, _info) -> str:
        """Serialize datetime to ISO format string."""
        return value.isoformat()

    @property
    def issues(self) -> list[ValidationIssue]:
        if isinstance(self.outcome, (Success, ValidationFailure)):
            return list(self.outcome.issues)
        return []


class RecoveryStatus(StrEnum):
    """Terminal status of a conversion request."""

    SUCCEEDED = "succeeded"
    RECOVERED_PARTIAL = "recovered_partial"
    EXHAUSTED = "exhausted"


class PipelineState(StrEnum):
    """States of the per-request retry state machine."""

    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    RETRYING_WITH_MODIFIED_PROMPT = "retrying_with_modified_prompt"
    EXHAUSTED = "exhausted"


class RecoveryResult(BaseModel):
    """What the caller receives: a typed value or a terminal failure with history."""

    status: RecoveryStatus
    value: dict[str, Any] | None = None
    issues: list[ValidationIssue] = Field(default_factory=list)
    applied_defaults: dict[str, Any] = Field(default_factory=dict)
    coerced_fields: list[str] = Field(default_factory=list)
    rerequested_fields: list[str] = Field(default_factory=list)
    attempts: list[ConversionAttempt] = Field(default_factory=list)
    transitions: list[PipelineState] = Field(default_factory=list)
    terminal_reason: str | None = None
    latency_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status != RecoveryStatus.EXHAUSTED and self.value is not None

    @property
    def hard_issues(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == Severity.HARD]

    @property
    def soft_issues(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == Severity.SOFT]

    def as_model(self, model_class: type[ModelT]) -> ModelT:
        """
        Materialize the converted value as a pydantic model.

        Args:
            model_class (type[ModelT]): Model the descriptor was built from.

        Returns:
            ModelT: Validated model instance.

        Raises:
            ValueError: If the request did not produce a value.
        """
        if self.value is None:
            raise ValueError(
                f"No value to materialize; conversion ended as {self.status}"
            )
        return model_class.model_validate(self.value)


class BatchResult(BaseModel):
    """Per-item results and throughput for a batch of conversion requests."""

    results: list[RecoveryResult] = Field(default_factory=list)
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    duration_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        return round(self.succeeded / self.total, 4) if self.total else 0.0

    @property
    def throughput_per_second(self) -> float:
        """Completed requests per second of wall-clock time."""
        if self.duration_ms <= 0:
            return 0.0
        return round(self.total / (self.duration_ms / 1000), 4)


_ENV_FIELDS: dict[str, str] = {
    "STRUCTURED_MAX_ATTEMPTS": "max_attempts",
    "STRUCTURED_INITIAL_BACKOFF": "initial_backoff",
    "STRUCTURED_MAX_BACKOFF": "max_backoff",
    "STRUCTURED_ATTEMPT_TIMEOUT": "attempt_timeout",
    "STRUCTURED_REQUEST_TIMEOUT": "request_timeout",
    "STRUCTURED_ALLOW_COERCION": "allow_type_coercion",
}


class RetryPolicy(BaseModel):
    """Configuration surface of a conversion request."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(3, ge=1, description="Total model calls allowed.")
    initial_backoff: float = Field(
        1.0, ge=0.0, description="Seconds to wait before the first retry."
    )
    max_backoff: float | None = Field(
        None, gt=0.0, description="Upper bound for a single backoff delay."
    )
    jitter: float = Field(
        0.5, ge=0.0, lt=1.0, description="Relative jitter applied to each delay."
    )
    allow_type_coercion: bool = Field(
        False, description="Let recovery coerce numeric/boolean strings."
    )
    defaults: dict[str, Any] = Field(
        default_factory=dict,
        description="Field path -> value used to fill missing optional fields.",
    )
    prompt_variant_order: tuple[PromptVariant, ...] = Field(
        DEFAULT_VARIANT_ORDER, min_length=1
    )
    attempt_timeout: float | None = Field(
        60.0, gt=0.0, description="Seconds allowed for one provider call."
    )
    request_timeout: float | None = Field(
        None, gt=0.0, description="Overall deadline for all attempts in seconds."
    )
    rerequest_failing_fields: bool = Field(
        True, description="Let recovery ask the model again for failing fields only."
    )

    @model_validator(mode="after")
    def validate_backoff_bounds(self) -> Self:
        """Validate that the backoff cap is not below the initial delay."""
        if self.max_backoff is not None and self.max_backoff < self.initial_backoff:
            raise ValueError("max_backoff must be >= initial_backoff")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> "RetryPolicy":
        """
        Build a policy from STRUCTURED_* environment variables.

        Args:
            **overrides: Explicit values that win over the environment.

        Returns:
            RetryPolicy: Validated policy.
        """
        values: dict[str, Any] = {}
        for env_name, field_name in _ENV_FIELDS.items():
            raw = os.getenv(env_name)
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
