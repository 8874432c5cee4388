"""Partial recovery: repair a value that failed only on non-structural issues."""

import copy
import logging
import re
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from structured_conversion.conversion.coercion import coerce_near_miss
from structured_conversion.conversion.converter import Parsed, convert_text
from structured_conversion.core import get_path, has_path, set_path, split_path
from structured_conversion.errors import ProviderError
from structured_conversion.prompts.variants import field_rerequest_prompt
from structured_conversion.schema.descriptor import SchemaDescriptor
from structured_conversion.schemas import (
    IssueCode,
    RetryPolicy,
    Severity,
    ValidationIssue,
    ValidationPhase,
)
from structured_conversion.validation.chain import ValidatorSet, run_chain
from structured_conversion.validation.context import ValidationContext

logger = logging.getLogger(__name__)

_ELEMENT_PATH = re.compile(r"^(?P<path>.+)\[(?P<index>\d+)\]$")

Rerequest = Callable[[str], Awaitable[str]]


class RecoveryOutcome(BaseModel):
    """A repaired value that passed the full validator chain."""

    value: dict[str, Any]
    issues: list[ValidationIssue] = Field(default_factory=list)
    applied_defaults: dict[str, Any] = Field(default_factory=dict)
    coerced_fields: list[str] = Field(default_factory=list)
    rerequested_fields: list[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied_defaults or self.coerced_fields or self.rerequested_fields)


def _is_optional(descriptor: SchemaDescriptor, path: str | None) -> bool:
    if path is None:
        return False
    spec = descriptor.resolve(path)
    return spec is not None and not spec.required


def is_recoverable(
    issues: list[ValidationIssue], descriptor: SchemaDescriptor, policy: RetryPolicy
) -> bool:
    """
    Decide whether a failed value is eligible for partial recovery.

    Missing required fields and business-rule failures are structural and
    never recoverable. Hard issues qualify only when they are schema-phase
    issues on optional fields, or type mismatches while coercion is allowed.

    Args:
        issues (list[ValidationIssue]): Issues reported for the value.
        descriptor (SchemaDescriptor): Target schema.
        policy (RetryPolicy): Request policy.

    Returns:
        bool: True when recovery may be attempted.
    """
    for issue in issues:
        if issue.severity != Severity.HARD:
            continue
        if issue.phase != ValidationPhase.SCHEMA or issue.field is None:
            return False
        if issue.code == IssueCode.MISSING_REQUIRED:
            return False
        if issue.code == IssueCode.TYPE_MISMATCH and policy.allow_type_coercion:
            continue
        if not _is_optional(descriptor, issue.field):
            return False
    return True


def apply_defaults(
    value: dict[str, Any],
    issues: list[ValidationIssue],
    descriptor: SchemaDescriptor,
    defaults: dict[str, Any],
) -> dict[str, Any]:
    """
    Fill optional fields flagged by the schema phase from configured defaults.

    Args:
        value (dict[str, Any]): Value to repair, mutated in place.
        issues (list[ValidationIssue]): Issues reported for the value.
        descriptor (SchemaDescriptor): Target schema.
        defaults (dict[str, Any]): Field path -> default value.

    Returns:
        dict[str, Any]: The defaults that were applied, keyed by field path.
    """
    applied: dict[str, Any] = {}
    for issue in issues:
        path = issue.field
        if path is None or path in applied or path not in defaults:
            continue
        if issue.phase != ValidationPhase.SCHEMA or not _is_optional(descriptor, path):
            continue
        if issue.code == IssueCode.MISSING_OPTIONAL or issue.is_hard:
            default = copy.deepcopy(defaults[path])
            set_path(value, path, default)
            applied[path] = default
    return applied


def coerce_fields(
    value: dict[str, Any], issues: list[ValidationIssue], descriptor: SchemaDescriptor
) -> list[str]:
    """
    Coerce near-miss values reported as type mismatches.

    Args:
        value (dict[str, Any]): Value to repair, mutated in place.
        issues (list[ValidationIssue]): Issues reported for the value.
        descriptor (SchemaDescriptor): Target schema.

    Returns:
        list[str]: Paths of the fields that were coerced.
    """
    coerced: list[str] = []
    for issue in issues:
        if issue.code != IssueCode.TYPE_MISMATCH or issue.field is None:
            continue
        match = _ELEMENT_PATH.match(issue.field)
        if match:
            container_path = match.group("path")
            spec = descriptor.resolve(container_path)
            container = get_path(value, container_path)
            index = int(match.group("index"))
            if spec is None or spec.items is None or not isinstance(container, list):
                continue
            if index >= len(container):
                continue
            changed, new_value = coerce_near_miss(spec.items, container[index])
            if changed:
                container[index] = new_value
                coerced.append(issue.field)
            continue

        spec = descriptor.resolve(issue.field)
        if spec is None or not has_path(value, issue.field):
            continue
        changed, new_value = coerce_near_miss(spec.type, get_path(value, issue.field))
        if changed:
            set_path(value, issue.field, new_value)
            coerced.append(issue.field)
    return coerced


def _failing_top_level_fields(
    issues: list[ValidationIssue], descriptor: SchemaDescriptor
) -> list[str]:
    failing = {
        split_path(issue.field)[0]
        for issue in issues
        if issue.is_hard and issue.field and split_path(issue.field)
    }
    return [spec.name for spec in descriptor.fields if spec.name in failing]


class PartialRecoveryEngine:
    """
    Repairs values whose remaining problems are not structural.

    Strategies run in order: defaults for missing optional fields, opt-in
    near-miss coercion, then a single re-request of the failing fields.
    Whatever was repaired goes back through the full validator chain; if hard
    issues remain the engine reports no recovery.
    """

    def __init__(
        self,
        descriptor: SchemaDescriptor,
        policy: RetryPolicy,
        validators: ValidatorSet | None = None,
        rerequest: Rerequest | None = None,
        prompt_seed: str = "",
    ) -> None:
        self.descriptor = descriptor
        self.policy = policy
        self.validators = validators
        self.rerequest = rerequest
        self.prompt_seed = prompt_seed

    def _validate(self, value: dict[str, Any], attempt: int) -> list[ValidationIssue]:
        context = ValidationContext(descriptor=self.descriptor, attempt=attempt)
        return run_chain(value, context, self.validators).issues

    async def recover(
        self, value: dict[str, Any], issues: list[ValidationIssue], attempt: int = 1
    ) -> RecoveryOutcome | None:
        """
        Try to repair a value.

        Args:
            value (dict[str, Any]): Last parsed value; not mutated.
            issues (list[ValidationIssue]): Issues the chain reported for it.
            attempt (int): Attempt number the value came from.

        Returns:
            RecoveryOutcome | None: The repaired value, or None when nothing was
                repaired or hard issues remain.
        """
        if not is_recoverable(issues, self.descriptor, self.policy):
            logger.debug("Issues are structural; skipping recovery")
            return None

        repaired = copy.deepcopy(value)
        applied = apply_defaults(repaired, issues, self.descriptor, self.policy.defaults)
        coerced: list[str] = []
        if self.policy.allow_type_coercion:
            coerced = coerce_fields(repaired, issues, self.descriptor)

        current = self._validate(repaired, attempt)
        rerequested: list[str] = []
        if any(issue.is_hard for issue in current):
            rerequested = await self._rerequest(repaired, current)
            if rerequested:
                current = self._validate(repaired, attempt)

        outcome = RecoveryOutcome(
            value=repaired,
            issues=current,
            applied_defaults=applied,
            coerced_fields=coerced,
            rerequested_fields=rerequested,
        )
        if any(issue.is_hard for issue in current):
            logger.info(
                "Recovery left %d hard issue(s); keeping original failure",
                sum(1 for issue in current if issue.is_hard),
            )
            return None
        if not outcome.changed:
            return None
        logger.info(
            "Recovered value: defaults=%s coerced=%s rerequested=%s",
            list(applied),
            coerced,
            rerequested,
        )
        return outcome

    async def _rerequest(
        self, value: dict[str, Any], issues: list[ValidationIssue]
    ) -> list[str]:
        """Ask the model again for the failing fields only and merge the answer."""
        if self.rerequest is None or not self.policy.rerequest_failing_fields:
            return []
        names = _failing_top_level_fields(issues, self.descriptor)
        if not names:
            return []

        prompt = field_rerequest_prompt(
            self.prompt_seed,
            self.descriptor,
            names,
            [issue for issue in issues if issue.is_hard],
        )
        try:
            raw = await self.rerequest(prompt)
        except ProviderError as exc:
            logger.warning("Field re-request failed (%s): %s", exc.kind, exc.message)
            return []

        parsed = convert_text(raw, self.descriptor.subset(names))
        if not isinstance(parsed, Parsed):
            logger.warning("Field re-request returned unparseable output: %s", parsed.reason)
            return []

        merged = [name for name in names if name in parsed.value]
        for name in merged:
            value[name] = parsed.value[name]
        return merged
