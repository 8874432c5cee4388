"""Registry of prompt variants used across retry attempts."""

from typing import Callable, Sequence

from structured_conversion.errors import ConfigurationError
from structured_conversion.prompts.variants import (
    constrained_prompt,
    examples_prompt,
    original_prompt,
    simplified_prompt,
)
from structured_conversion.schemas import PromptVariant

_VARIANTS: dict[PromptVariant, Callable[..., str]] = {
    PromptVariant.ORIGINAL: original_prompt,
    PromptVariant.ADD_EXAMPLES: examples_prompt,
    PromptVariant.SIMPLIFY: simplified_prompt,
    PromptVariant.ADD_EXPLICIT_CONSTRAINTS: constrained_prompt,
}


def resolve(variant: PromptVariant | str, **kwargs) -> str:
    """Resolve prompt by variant name."""
    try:
        builder = _VARIANTS[PromptVariant(variant)]
    except ValueError as exc:
        raise ConfigurationError(f"Unknown prompt variant: {variant!r}") from exc
    return builder(**kwargs)


def list_all() -> list[str]:
    """List all prompt variant names."""
    return sorted(variant.value for variant in _VARIANTS)


def variant_for_attempt(order: Sequence[PromptVariant], attempt_number: int) -> PromptVariant:
    """Pick the variant for a 1-based attempt, cycling through the order."""
    if not order:
        raise ConfigurationError("Prompt variant order must not be empty")
    return order[(attempt_number - 1) % len(order)]
