"""Error types raised at the edges of the conversion pipeline."""

from enum import StrEnum


class StructuredConversionError(Exception):
    """Base class for errors raised by structured_conversion."""


class ConfigurationError(StructuredConversionError):
    """Raised at setup time when a schema or pipeline option is unusable."""


class ProviderErrorKind(StrEnum):
    """Classification a provider adapter attaches to every failed call."""

    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    CONTENT_FILTERED = "content_filtered"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        """Whether a call failing with this kind may be attempted again."""
        return self in (ProviderErrorKind.TRANSIENT, ProviderErrorKind.RATE_LIMITED)


class ProviderError(StructuredConversionError):
    """
    Failure reported by a model provider adapter.

    Args:
        kind (ProviderErrorKind): Explicit classification of the failure.
        message (str): Human-readable description for diagnostics.
        retry_after (float | None): Provider-supplied wait hint in seconds.
    """

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = ProviderErrorKind(kind)
        self.message = message
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return f"ProviderError(kind={self.kind.value!r}, message={self.message!r})"
