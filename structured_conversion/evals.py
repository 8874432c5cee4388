"""Attempt-level metrics for conversion results."""

from collections import Counter
from typing import Any, Iterable

from structured_conversion.schemas import ConversionAttempt, ProviderFailure


def summarize_attempts(attempts: Iterable[ConversionAttempt]) -> dict[str, Any]:
    """
    Compute attempt metrics for a request history.

    Args:
        attempts (Iterable[ConversionAttempt]): Attempt history of one or more requests.

    Returns:
        dict[str, Any]: Counts per outcome kind, provider error kinds, variants
            used, issue codes, lenient-repair rate and latency statistics.
    """
    history = list(attempts)
    total = len(history)
    outcomes = Counter(attempt.outcome.kind for attempt in history)
    provider_errors = Counter(
        attempt.outcome.error_kind.value
        for attempt in history
        if isinstance(attempt.outcome, ProviderFailure)
    )
    variants = Counter(attempt.variant.value for attempt in history)
    issue_codes = Counter(
        issue.code.value for attempt in history for issue in attempt.issues
    )
    repaired = sum(1 for attempt in history if attempt.repaired)
    latencies = [attempt.latency_ms for attempt in history]

    return {
        "total": total,
        "success": outcomes.get("success", 0),
        "parse_failures": outcomes.get("parse_failure", 0),
        "validation_failures": outcomes.get("validation_failure", 0),
        "provider_failures": outcomes.get("provider_failure", 0),
        "provider_errors": dict(sorted(provider_errors.items())),
        "variants": dict(sorted(variants.items())),
        "issue_codes": dict(sorted(issue_codes.items())),
        "repair_rate": round(repaired / total, 4) if total else 0.0,
        "mean_latency_ms": round(sum(latencies) / total, 3) if total else 0.0,
        "max_latency_ms": round(max(latencies), 3) if latencies else 0.0,
    }
