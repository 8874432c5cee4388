"""Ordered validator chain: schema, then business rules, then semantic checks."""

import logging
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from structured_conversion.schemas import IssueCode, Severity, ValidationIssue, ValidationPhase
from structured_conversion.validation.context import ValidationContext
from structured_conversion.validation.rules import BusinessRule
from structured_conversion.validation.schema_phase import check_schema
from structured_conversion.validation.semantic import SemanticCheck

logger = logging.getLogger(__name__)


class ValidatorSet(BaseModel):
    """Caller-supplied validators for one conversion request."""

    model_config = ConfigDict(frozen=True)

    business_rules: tuple[BusinessRule, ...] = ()
    semantic_checks: tuple[SemanticCheck, ...] = ()


class ChainReport(BaseModel):
    """Issues collected by one run of the chain."""

    issues: list[ValidationIssue] = Field(default_factory=list)
    phases_run: list[ValidationPhase] = Field(default_factory=list)

    @property
    def hard(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == Severity.HARD]

    @property
    def soft(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == Severity.SOFT]

    @property
    def has_hard(self) -> bool:
        return any(issue.severity == Severity.HARD for issue in self.issues)


def _stamp(issues: list[ValidationIssue], phase: ValidationPhase) -> list[ValidationIssue]:
    return [
        issue if issue.phase == phase else issue.model_copy(update={"phase": phase})
        for issue in issues
    ]


def _run_semantic(
    check: SemanticCheck, value: dict[str, Any], context: ValidationContext
) -> list[ValidationIssue]:
    try:
        return list(check(value, context))
    except Exception as exc:
        name = getattr(check, "__name__", repr(check))
        logger.warning("Semantic check %s raised: %s", name, exc)
        return [
            ValidationIssue(
                severity=Severity.SOFT,
                code=IssueCode.SEMANTIC,
                message=f"Semantic check '{name}' could not be evaluated: {exc}",
            )
        ]


def run_chain(
    value: dict[str, Any],
    context: ValidationContext,
    validators: ValidatorSet | None = None,
) -> ChainReport:
    """
    Run the validator phases in order.

    Every validator within a phase runs; the chain stops before the next phase
    once a phase reported a hard issue. The chain itself never raises.

    Args:
        value (dict[str, Any]): Converted value.
        context (ValidationContext): Descriptor and attempt metadata.
        validators (ValidatorSet | None): Business rules and semantic checks.

    Returns:
        ChainReport: Collected issues and the phases that ran.
    """
    validators = validators or ValidatorSet()
    report = ChainReport()

    phases: list[tuple[ValidationPhase, Callable[[], list[ValidationIssue]]]] = [
        (ValidationPhase.SCHEMA, lambda: check_schema(value, context)),
        (
            ValidationPhase.BUSINESS,
            lambda: [
                issue
                for rule in validators.business_rules
                if (issue := rule.evaluate(value)) is not None
            ],
        ),
        (
            ValidationPhase.SEMANTIC,
            lambda: [
                issue
                for check in validators.semantic_checks
                for issue in _run_semantic(check, value, context)
            ],
        ),
    ]

    for phase, run in phases:
        issues = _stamp(run(), phase)
        report.phases_run.append(phase)
        report.issues.extend(issues)
        if any(issue.severity == Severity.HARD for issue in issues):
            logger.debug(
                "%s phase reported %d hard issue(s); stopping chain",
                phase,
                sum(1 for issue in issues if issue.is_hard),
            )
            break
    return report
