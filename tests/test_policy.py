"""Tests for retry policy configuration."""

import pytest
from pydantic import ValidationError

from structured_conversion.schemas import DEFAULT_VARIANT_ORDER, RetryPolicy


def test_defaults() -> None:
    """Three attempts, one second initial backoff, default variant order."""
    policy = RetryPolicy()

    assert policy.max_attempts == 3
    assert policy.initial_backoff == 1.0
    assert policy.prompt_variant_order == DEFAULT_VARIANT_ORDER
    assert not policy.allow_type_coercion


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    """Environment variables configure the policy; overrides win."""
    monkeypatch.setenv("STRUCTURED_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("STRUCTURED_INITIAL_BACKOFF", "0.25")
    monkeypatch.setenv("STRUCTURED_ALLOW_COERCION", "true")
    monkeypatch.setenv("STRUCTURED_REQUEST_TIMEOUT", "30")

    policy = RetryPolicy.from_env(max_attempts=2)

    assert policy.max_attempts == 2
    assert policy.initial_backoff == 0.25
    assert policy.allow_type_coercion
    assert policy.request_timeout == 30.0


def test_invalid_values_fail_at_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    """Bad configuration raises a validation error before any request."""
    monkeypatch.setenv("STRUCTURED_MAX_ATTEMPTS", "0")

    with pytest.raises(ValidationError):
        RetryPolicy.from_env()


def test_empty_variant_order_is_rejected() -> None:
    """At least one prompt variant is required."""
    with pytest.raises(ValidationError):
        RetryPolicy(prompt_variant_order=())


def test_max_backoff_must_cover_initial() -> None:
    """The cap cannot be smaller than the first delay."""
    with pytest.raises(ValidationError, match="max_backoff"):
        RetryPolicy(initial_backoff=2.0, max_backoff=1.0)
