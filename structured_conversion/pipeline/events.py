"""One structured outcome event per conversion request."""

import json
import logging
from collections import Counter
from enum import StrEnum
from typing import Callable

from pydantic import BaseModel, Field

from structured_conversion.schemas import (
    ProviderFailure,
    RecoveryResult,
    RecoveryStatus,
)

events_logger = logging.getLogger("structured_conversion.events")


class OutcomeKind(StrEnum):
    SUCCESS = "success"
    RETRIED = "retried"
    EXHAUSTED = "exhausted"
    RECOVERED_PARTIAL = "recovered-partial"


class OutcomeEvent(BaseModel):
    """Summary of a finished request, emitted exactly once."""

    outcome: OutcomeKind
    schema_name: str
    attempts: int
    latency_ms: float
    hard_issues: int = 0
    soft_issues: int = 0
    issue_summary: dict[str, int] = Field(default_factory=dict)
    provider_errors: dict[str, int] = Field(default_factory=dict)
    terminal_reason: str | None = None


EventSink = Callable[[OutcomeEvent], None]


def build_outcome_event(result: RecoveryResult, schema_name: str) -> OutcomeEvent:
    """
    Summarize a result as an outcome event.

    Args:
        result (RecoveryResult): Finished request.
        schema_name (str): Name of the target descriptor.

    Returns:
        OutcomeEvent: Event describing the terminal outcome.
    """
    if result.status == RecoveryStatus.EXHAUSTED:
        outcome = OutcomeKind.EXHAUSTED
    elif result.status == RecoveryStatus.RECOVERED_PARTIAL:
        outcome = OutcomeKind.RECOVERED_PARTIAL
    elif len(result.attempts) > 1:
        outcome = OutcomeKind.RETRIED
    else:
        outcome = OutcomeKind.SUCCESS

    issue_codes = Counter(issue.code.value for issue in result.issues)
    provider_errors = Counter(
        attempt.outcome.error_kind.value
        for attempt in result.attempts
        if isinstance(attempt.outcome, ProviderFailure)
    )
    return OutcomeEvent(
        outcome=outcome,
        schema_name=schema_name,
        attempts=len(result.attempts),
        latency_ms=round(result.latency_ms, 3),
        hard_issues=len(result.hard_issues),
        soft_issues=len(result.soft_issues),
        issue_summary=dict(sorted(issue_codes.items())),
        provider_errors=dict(sorted(provider_errors.items())),
        terminal_reason=result.terminal_reason,
    )


def log_event(event: OutcomeEvent) -> None:
    """Default sink: one JSON line on the events logger."""
    events_logger.info(json.dumps(event.model_dump(mode="json"), sort_keys=True))
