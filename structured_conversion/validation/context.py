"""Context handed to every validator in the chain."""

from pydantic import BaseModel, ConfigDict

from structured_conversion.schema.descriptor import SchemaDescriptor


class ValidationContext(BaseModel):
    """Read-only information about the value being validated."""

    model_config = ConfigDict(frozen=True)

    descriptor: SchemaDescriptor
    attempt: int = 1
    raw_text: str | None = None
