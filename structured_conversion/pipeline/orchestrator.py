"""Retry orchestration for structured conversion requests."""

import asyncio
import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

from pydantic import BaseModel

from structured_conversion.clients import ModelProvider
from structured_conversion.conversion.converter import convert_text
from structured_conversion.errors import ProviderError, ProviderErrorKind
from structured_conversion.pipeline.backoff import compute_backoff
from structured_conversion.pipeline.events import EventSink, build_outcome_event, log_event
from structured_conversion.pipeline.recovery import PartialRecoveryEngine, RecoveryOutcome
from structured_conversion.prompts.registry import resolve, variant_for_attempt
from structured_conversion.schema.cache import SchemaCache
from structured_conversion.schema.descriptor import SchemaDescriptor
from structured_conversion.schemas import (
    BatchResult,
    ConversionAttempt,
    ParseFailure,
    PipelineState,
    PromptVariant,
    ProviderFailure,
    RecoveryResult,
    RecoveryStatus,
    RetryPolicy,
    Success,
    ValidationFailure,
    ValidationIssue,
)
from structured_conversion.validation.chain import ValidatorSet, run_chain
from structured_conversion.validation.context import ValidationContext

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 8


def _run_in_new_loop(coro: Any) -> RecoveryResult:
    """
    Runs a coroutine in a dedicated event loop from a worker thread.

    Args:
        coro (Any): Coroutine to execute.

    Returns:
        RecoveryResult: Result returned by the coroutine.
    """
    with ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()


class _RequestRun:
    """Mutable bookkeeping for one request; never shared between requests."""

    def __init__(self) -> None:
        self.attempts: list[ConversionAttempt] = []
        self.transitions: list[PipelineState] = []

    def enter(self, state: PipelineState, attempt: int) -> None:
        self.transitions.append(state)
        logger.info("Attempt %d -> %s", attempt, state)


class ConversionPipeline:
    """
    Converts a prompt seed into a validated value matching a descriptor.

    One pipeline may serve many concurrent requests. Requests share the rate
    limiter, which bounds in-flight provider calls within one event loop, and
    the schema cache; everything else is per request.

    Args:
        provider (ModelProvider): Adapter used for every model call.
        rate_limiter (asyncio.Semaphore | None): Shared limiter for provider calls.
        schema_cache (SchemaCache | None): Descriptor cache used by ``convert_model``.
        event_sink (EventSink | None): Receives one outcome event per request.
        sleep (Callable[[float], Awaitable[Any]]): Backoff sleep, injectable for tests.
        rng (random.Random | None): Jitter source, injectable for tests.
        clock (Callable[[], float] | None): Monotonic clock used for latency.
    """

    def __init__(
        self,
        provider: ModelProvider,
        *,
        rate_limiter: asyncio.Semaphore | None = None,
        schema_cache: SchemaCache | None = None,
        event_sink: EventSink | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.provider = provider
        self.rate_limiter = rate_limiter or asyncio.Semaphore(DEFAULT_MAX_CONCURRENCY)
        self.schema_cache = schema_cache or SchemaCache()
        self.event_sink = event_sink or log_event
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock or time.monotonic

    async def convert(
        self,
        prompt_seed: str,
        descriptor: SchemaDescriptor,
        validators: ValidatorSet | None = None,
        policy: RetryPolicy | None = None,
    ) -> RecoveryResult:
        """
        Run the attempt / backoff / prompt-variant loop for one request.

        Args:
            prompt_seed (str): Caller's task description.
            descriptor (SchemaDescriptor): Target schema.
            validators (ValidatorSet | None): Business rules and semantic checks.
            policy (RetryPolicy | None): Retry and recovery configuration.

        Returns:
            RecoveryResult: Typed value with soft issues, or a terminal failure
                carrying the full attempt history. Provider errors never escape.
        """
        policy = policy or RetryPolicy()
        loop = asyncio.get_running_loop()
        started = self._clock()
        deadline = loop.time() + policy.request_timeout if policy.request_timeout else None
        run = _RequestRun()

        logger.info(
            "Converting to %s (max_attempts=%d)", descriptor.name, policy.max_attempts
        )

        issues: list[ValidationIssue] = []
        failure: str | None = None
        terminal_reason = "retry budget exhausted"
        rerequest_allowed = True

        for number in range(1, policy.max_attempts + 1):
            run.enter(PipelineState.ATTEMPTING, number)
            variant = variant_for_attempt(policy.prompt_variant_order, number)
            prompt = resolve(
                variant,
                prompt_seed=prompt_seed,
                descriptor=descriptor,
                issues=issues,
                failure=failure,
            )
            attempt = await self._attempt(
                number, variant, prompt, descriptor, validators, policy, deadline
            )
            run.attempts.append(attempt)
            outcome = attempt.outcome

            if isinstance(outcome, Success):
                run.enter(PipelineState.SUCCEEDED, number)
                result = await self._succeed(
                    run, outcome, prompt_seed, descriptor, validators, policy, deadline
                )
                return self._finish(result, descriptor, started)

            if isinstance(outcome, ProviderFailure) and not outcome.error_kind.retryable:
                terminal_reason = f"{outcome.error_kind} provider error: {outcome.message}"
                rerequest_allowed = False
                break
            if number >= policy.max_attempts:
                break

            delay = compute_backoff(
                number - 1,
                policy.initial_backoff,
                jitter=policy.jitter,
                max_backoff=policy.max_backoff,
                rng=self._rng,
            )
            if isinstance(outcome, ProviderFailure) and outcome.retry_after is not None:
                delay = max(delay, outcome.retry_after)
            if deadline is not None and loop.time() + delay >= deadline:
                terminal_reason = "request deadline reached"
                rerequest_allowed = False
                break

            run.enter(PipelineState.RETRYING_WITH_MODIFIED_PROMPT, number)
            logger.info(
                "Attempt %d failed (%s); retrying in %.2fs", number, outcome.kind, delay
            )
            await self._sleep(delay)
            issues, failure = _feedback(outcome)

        run.enter(PipelineState.EXHAUSTED, len(run.attempts))
        result = await self._exhaust(
            run,
            terminal_reason,
            prompt_seed,
            descriptor,
            validators,
            policy,
            deadline,
            rerequest_allowed,
        )
        return self._finish(result, descriptor, started)

    async def convert_model(
        self,
        prompt_seed: str,
        model: type[BaseModel],
        validators: ValidatorSet | None = None,
        policy: RetryPolicy | None = None,
    ) -> RecoveryResult:
        """Convert against the descriptor of a pydantic model, resolved through the cache."""
        descriptor = self.schema_cache.descriptor_for(model)
        return await self.convert(prompt_seed, descriptor, validators, policy)

    async def convert_many(
        self,
        prompt_seeds: Sequence[str],
        descriptor: SchemaDescriptor,
        validators: ValidatorSet | None = None,
        policy: RetryPolicy | None = None,
    ) -> BatchResult:
        """
        Convert many prompt seeds concurrently against one descriptor.

        Every request runs its own retry loop; provider calls across the batch
        are bounded by the shared rate limiter. Results keep input order.

        Args:
            prompt_seeds (Sequence[str]): One prompt seed per request.
            descriptor (SchemaDescriptor): Target schema shared by all requests.
            validators (ValidatorSet | None): Business rules and semantic checks.
            policy (RetryPolicy | None): Retry and recovery configuration.

        Returns:
            BatchResult: Per-item results with success rate and throughput.
        """
        started = self._clock()
        logger.info("Converting batch of %d to %s", len(prompt_seeds), descriptor.name)
        results = await asyncio.gather(
            *(self.convert(seed, descriptor, validators, policy) for seed in prompt_seeds)
        )
        succeeded = sum(1 for result in results if result.ok)
        batch = BatchResult(
            results=list(results),
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            duration_ms=(self._clock() - started) * 1000,
        )
        logger.info(
            "Batch finished: %d/%d succeeded in %.0fms",
            batch.succeeded,
            batch.total,
            batch.duration_ms,
        )
        return batch

    def convert_sync(
        self,
        prompt_seed: str,
        descriptor: SchemaDescriptor,
        validators: ValidatorSet | None = None,
        policy: RetryPolicy | None = None,
    ) -> RecoveryResult:
        """
        Run ``convert`` from synchronous code.

        Uses a worker thread with its own event loop when called while a loop
        is already running.
        """
        coro = self.convert(prompt_seed, descriptor, validators, policy)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(coro)
        return _run_in_new_loop(coro)

    async def _attempt(
        self,
        number: int,
        variant: PromptVariant,
        prompt: str,
        descriptor: SchemaDescriptor,
        validators: ValidatorSet | None,
        policy: RetryPolicy,
        deadline: float | None,
    ) -> ConversionAttempt:
        started_at = datetime.now(timezone.utc)
        start = self._clock()
        raw: str | None = None
        repaired = False

        try:
            raw = await self._call_provider(prompt, policy, deadline)
        except ProviderError as exc:
            logger.warning("Attempt %d provider error (%s): %s", number, exc.kind, exc.message)
            outcome = ProviderFailure(
                error_kind=exc.kind, message=exc.message, retry_after=exc.retry_after
            )
        else:
            parsed = convert_text(raw, descriptor)
            if isinstance(parsed, ParseFailure):
                logger.warning("Attempt %d parse failure: %s", number, parsed.reason)
                outcome = parsed
            else:
                repaired = parsed.repaired
                context = ValidationContext(descriptor=descriptor, attempt=number, raw_text=raw)
                report = run_chain(parsed.value, context, validators)
                if report.has_hard:
                    logger.warning(
                        "Attempt %d validation failed: %s",
                        number,
                        "; ".join(issue.describe() for issue in report.hard),
                    )
                    outcome = ValidationFailure(value=parsed.value, issues=report.issues)
                else:
                    outcome = Success(value=parsed.value, issues=report.soft)

        return ConversionAttempt(
            number=number,
            variant=variant,
            prompt=prompt,
            raw_response=raw,
            outcome=outcome,
            repaired=repaired,
            started_at=started_at,
            latency_ms=(self._clock() - start) * 1000,
        )

    async def _call_provider(
        self, prompt: str, policy: RetryPolicy, deadline: float | None
    ) -> str:
        """
        Call the provider under the rate limiter, attempt timeout and deadline.

        Raises:
            ProviderError: For every failure; unclassified exceptions become fatal.
        """
        loop = asyncio.get_running_loop()
        try:
            async with asyncio.timeout_at(deadline):
                async with self.rate_limiter:
                    async with asyncio.timeout(policy.attempt_timeout):
                        return await self.provider.call(prompt)
        except ProviderError:
            raise
        except TimeoutError as exc:
            if deadline is not None and loop.time() >= deadline:
                raise ProviderError(
                    ProviderErrorKind.TRANSIENT, "request deadline reached"
                ) from exc
            raise ProviderError(
                ProviderErrorKind.TRANSIENT,
                f"Provider call timed out after {policy.attempt_timeout}s",
            ) from exc
        except Exception as exc:
            logger.error("Unclassified provider error: %s", exc, exc_info=True)
            raise ProviderError(
                ProviderErrorKind.FATAL, f"{type(exc).__name__}: {exc}"
            ) from exc

    def _recovery_engine(
        self,
        prompt_seed: str,
        descriptor: SchemaDescriptor,
        validators: ValidatorSet | None,
        policy: RetryPolicy,
        deadline: float | None,
        allow_rerequest: bool,
    ) -> PartialRecoveryEngine:
        async def rerequest(prompt: str) -> str:
            return await self._call_provider(prompt, policy, deadline)

        return PartialRecoveryEngine(
            descriptor,
            policy,
            validators=validators,
            rerequest=rerequest if allow_rerequest else None,
            prompt_seed=prompt_seed,
        )

    async def _succeed(
        self,
        run: _RequestRun,
        outcome: Success,
        prompt_seed: str,
        descriptor: SchemaDescriptor,
        validators: ValidatorSet | None,
        policy: RetryPolicy,
        deadline: float | None,
    ) -> RecoveryResult:
        recovered: RecoveryOutcome | None = None
        if outcome.issues and policy.defaults:
            engine = self._recovery_engine(
                prompt_seed, descriptor, validators, policy, deadline, allow_rerequest=False
            )
            recovered = await engine.recover(
                outcome.value, outcome.issues, attempt=len(run.attempts)
            )

        if recovered is not None:
            return _recovered_result(run, recovered, terminal_reason=None)
        return RecoveryResult(
            status=RecoveryStatus.SUCCEEDED,
            value=outcome.value,
            issues=list(outcome.issues),
            attempts=run.attempts,
            transitions=run.transitions,
        )

    async def _exhaust(
        self,
        run: _RequestRun,
        terminal_reason: str,
        prompt_seed: str,
        descriptor: SchemaDescriptor,
        validators: ValidatorSet | None,
        policy: RetryPolicy,
        deadline: float | None,
        allow_rerequest: bool,
    ) -> RecoveryResult:
        last_failure = next(
            (
                attempt
                for attempt in reversed(run.attempts)
                if isinstance(attempt.outcome, ValidationFailure)
            ),
            None,
        )
        if last_failure is not None:
            engine = self._recovery_engine(
                prompt_seed, descriptor, validators, policy, deadline, allow_rerequest
            )
            recovered = await engine.recover(
                last_failure.outcome.value,
                last_failure.outcome.issues,
                attempt=last_failure.number,
            )
            if recovered is not None:
                return _recovered_result(run, recovered, terminal_reason=terminal_reason)

        logger.warning(
            "Conversion to %s exhausted after %d attempt(s): %s",
            descriptor.name,
            len(run.attempts),
            terminal_reason,
        )
        return RecoveryResult(
            status=RecoveryStatus.EXHAUSTED,
            issues=run.attempts[-1].issues if run.attempts else [],
            attempts=run.attempts,
            transitions=run.transitions,
            terminal_reason=terminal_reason,
        )

    def _finish(
        self, result: RecoveryResult, descriptor: SchemaDescriptor, started: float
    ) -> RecoveryResult:
        result.latency_ms = (self._clock() - started) * 1000
        event = build_outcome_event(result, descriptor.name)
        try:
            self.event_sink(event)
        except Exception:
            logger.exception("Outcome event sink failed")
        return result


def _feedback(outcome: Any) -> tuple[list[ValidationIssue], str | None]:
    """Issues and failure text shown to the model on the next attempt."""
    if isinstance(outcome, ValidationFailure):
        return list(outcome.issues), None
    if isinstance(outcome, ParseFailure):
        return [], f"Response was not valid JSON: {outcome.reason}"
    return [], None


def _recovered_result(
    run: _RequestRun, recovered: RecoveryOutcome, terminal_reason: str | None
) -> RecoveryResult:
    return RecoveryResult(
        status=RecoveryStatus.RECOVERED_PARTIAL,
        value=recovered.value,
        issues=recovered.issues,
        applied_defaults=recovered.applied_defaults,
        coerced_fields=recovered.coerced_fields,
        rerequested_fields=recovered.rerequested_fields,
        attempts=run.attempts,
        transitions=run.transitions,
        terminal_reason=terminal_reason,
    )
