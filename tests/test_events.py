"""Tests for outcome events and attempt metrics."""

import json
import logging
from datetime import datetime, timezone

import pytest

from structured_conversion.errors import ProviderErrorKind
from structured_conversion.evals import summarize_attempts
from structured_conversion.pipeline.events import OutcomeKind, build_outcome_event, log_event
from structured_conversion.schemas import (
    ConversionAttempt,
    IssueCode,
    ParseFailure,
    PromptVariant,
    ProviderFailure,
    RecoveryResult,
    RecoveryStatus,
    Severity,
    Success,
    ValidationIssue,
)

STARTED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _attempt(number: int, outcome, repaired: bool = False, latency_ms: float = 10.0):
    return ConversionAttempt(
        number=number,
        variant=PromptVariant.ORIGINAL,
        prompt="p",
        outcome=outcome,
        repaired=repaired,
        started_at=STARTED,
        latency_ms=latency_ms,
    )


SOFT = ValidationIssue(
    severity=Severity.SOFT, code=IssueCode.MISSING_OPTIONAL, field="nickname", message="m"
)


def test_event_for_retried_success() -> None:
    """Success after more than one attempt is reported as retried."""
    result = RecoveryResult(
        status=RecoveryStatus.SUCCEEDED,
        value={"a": 1},
        issues=[SOFT],
        attempts=[
            _attempt(1, ProviderFailure(error_kind=ProviderErrorKind.TRANSIENT, message="x")),
            _attempt(2, Success(value={"a": 1}, issues=[SOFT])),
        ],
        latency_ms=12.34567,
    )

    event = build_outcome_event(result, "Person")

    assert event.outcome == OutcomeKind.RETRIED
    assert event.attempts == 2
    assert event.soft_issues == 1
    assert event.issue_summary == {"missing_optional": 1}
    assert event.provider_errors == {"transient": 1}
    assert event.latency_ms == 12.346


def test_log_event_writes_one_json_line(caplog: pytest.LogCaptureFixture) -> None:
    """The default sink logs a single JSON object."""
    result = RecoveryResult(status=RecoveryStatus.EXHAUSTED, terminal_reason="done")
    event = build_outcome_event(result, "Person")

    with caplog.at_level(logging.INFO, logger="structured_conversion.events"):
        log_event(event)

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["outcome"] == "exhausted"
    assert payload["terminal_reason"] == "done"


def test_summarize_attempts() -> None:
    """Counts outcomes, repairs and latency across attempts."""
    attempts = [
        _attempt(1, ParseFailure(reason="bad"), latency_ms=10.0),
        _attempt(2, Success(value={}), repaired=True, latency_ms=30.0),
    ]

    summary = summarize_attempts(attempts)

    assert summary["total"] == 2
    assert summary["parse_failures"] == 1
    assert summary["success"] == 1
    assert summary["repair_rate"] == 0.5
    assert summary["mean_latency_ms"] == 20.0
    assert summary["max_latency_ms"] == 30.0
    assert summary["variants"] == {"original": 2}


def test_summarize_empty_history() -> None:
    """An empty history yields zeroed metrics."""
    summary = summarize_attempts([])

    assert summary["total"] == 0
    assert summary["repair_rate"] == 0.0


def test_attempt_serializes_started_at_as_iso() -> None:
    """Attempt timestamps serialize as ISO strings."""
    dumped = _attempt(1, ParseFailure(reason="bad")).model_dump()

    assert dumped["started_at"] == "2024-01-01T00:00:00+00:00"
    assert dumped["outcome"]["kind"] == "parse_failure"


def test_as_model_requires_value() -> None:
    """Materializing an exhausted result raises."""
    with pytest.raises(ValueError, match="No value"):
        RecoveryResult(status=RecoveryStatus.EXHAUSTED).as_model(dict)  # type: ignore[arg-type]
