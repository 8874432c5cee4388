"""Shared fixtures for structured conversion tests."""

import random
from typing import Any, Callable

import pytest

from structured_conversion.clients import ScriptedProvider
from structured_conversion.pipeline.events import OutcomeEvent
from structured_conversion.pipeline.orchestrator import ConversionPipeline
from structured_conversion.schema.descriptor import FieldSpec, FieldType, SchemaDescriptor


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def person_descriptor() -> SchemaDescriptor:
    return SchemaDescriptor(
        name="Person",
        fields=(
            FieldSpec(name="name", type=FieldType.STRING),
            FieldSpec(name="age", type=FieldType.INTEGER),
            FieldSpec(name="nickname", type=FieldType.STRING, required=False),
        ),
    )


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def events() -> list[OutcomeEvent]:
    return []


@pytest.fixture
def make_pipeline(
    sleep_recorder: SleepRecorder, events: list[OutcomeEvent]
) -> Callable[..., tuple[ConversionPipeline, ScriptedProvider]]:
    """Build a pipeline over a scripted provider with fake sleep and seeded jitter."""

    def _make(
        script: list[Any], **kwargs: Any
    ) -> tuple[ConversionPipeline, ScriptedProvider]:
        provider = ScriptedProvider(script)
        kwargs.setdefault("sleep", sleep_recorder)
        kwargs.setdefault("rng", random.Random(7))
        kwargs.setdefault("event_sink", events.append)
        pipeline = ConversionPipeline(provider, **kwargs)
        return pipeline, provider

    return _make
