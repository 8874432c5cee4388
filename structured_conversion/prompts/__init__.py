"""Prompt variants and their registry."""

from structured_conversion.prompts.registry import list_all, resolve, variant_for_attempt
from structured_conversion.prompts.variants import field_rerequest_prompt

__all__ = ["field_rerequest_prompt", "list_all", "resolve", "variant_for_attempt"]
