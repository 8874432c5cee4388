"""Retry orchestration, partial recovery and outcome events."""

from structured_conversion.pipeline.backoff import compute_backoff
from structured_conversion.pipeline.events import (
    EventSink,
    OutcomeEvent,
    OutcomeKind,
    build_outcome_event,
    log_event,
)
from structured_conversion.pipeline.orchestrator import ConversionPipeline
from structured_conversion.pipeline.recovery import (
    PartialRecoveryEngine,
    RecoveryOutcome,
    apply_defaults,
    coerce_fields,
    is_recoverable,
)

__all__ = [
    "ConversionPipeline",
    "EventSink",
    "OutcomeEvent",
    "OutcomeKind",
    "PartialRecoveryEngine",
    "RecoveryOutcome",
    "apply_defaults",
    "build_outcome_event",
    "coerce_fields",
    "compute_backoff",
    "is_recoverable",
    "log_event",
]
