"""Caller-supplied business rules evaluated after the schema phase."""

import logging
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from structured_conversion.schemas import IssueCode, Severity, ValidationIssue, ValidationPhase

logger = logging.getLogger(__name__)


class BusinessRule(BaseModel):
    """
    A named predicate over the converted value.

    A failing rule yields a hard issue unless ``advisory`` is set, in which
    case it is reported as soft.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    predicate: Callable[[dict[str, Any]], bool]
    message: str
    field: str | None = None
    advisory: bool = False
    suggested_fix: str | None = None

    def evaluate(self, value: dict[str, Any]) -> ValidationIssue | None:
        """
        Run the predicate against a value.

        Args:
            value (dict[str, Any]): Value that already passed the schema phase.

        Returns:
            ValidationIssue | None: The issue raised by this rule, or None if it holds.
        """
        try:
            holds = bool(self.predicate(value))
        except Exception as exc:
            logger.warning("Business rule %s raised: %s", self.name, exc)
            return ValidationIssue(
                severity=Severity.HARD,
                code=IssueCode.RULE_ERROR,
                field=self.field,
                message=f"Rule '{self.name}' could not be evaluated: {exc}",
                phase=ValidationPhase.BUSINESS,
            )
        if holds:
            return None
        return ValidationIssue(
            severity=Severity.SOFT if self.advisory else Severity.HARD,
            code=IssueCode.RULE_VIOLATION,
            field=self.field,
            message=self.message,
            suggested_fix=self.suggested_fix,
            phase=ValidationPhase.BUSINESS,
        )
