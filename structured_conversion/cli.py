"""Typer CLI for converting prompts into schema-validated JSON."""

import json
import logging
from pathlib import Path
from typing import Any

import typer
from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

from structured_conversion.clients import ScriptedProvider, create_provider
from structured_conversion.errors import ConfigurationError
from structured_conversion.evals import summarize_attempts
from structured_conversion.loggy import setup_logging
from structured_conversion.models import DEFAULT_MODEL
from structured_conversion.pipeline.orchestrator import ConversionPipeline
from structured_conversion.prompts.registry import list_all
from structured_conversion.schema.descriptor import SchemaDescriptor, descriptor_from_json_schema
from structured_conversion.schema.instructions import (
    render_compact_instructions,
    render_format_instructions,
)
from structured_conversion.schemas import RecoveryStatus, RetryPolicy

logger = logging.getLogger(__name__)

app = typer.Typer(help="Convert model output into validated structured values.")


class ConvertArgs(BaseModel):
    """CLI arguments for the convert command."""

    prompt: str
    schema_path: Path
    model: str
    output: Path | None = None
    max_attempts: int | None = None
    initial_backoff: float | None = None
    attempt_timeout: float | None = None
    request_timeout: float | None = None
    allow_coercion: bool | None = None
    defaults_path: Path | None = None
    responses: list[str] = []

    def to_policy_overrides(self) -> dict[str, Any]:
        """Policy fields given on the command line, excluding None values."""
        overrides = {
            "max_attempts": self.max_attempts,
            "initial_backoff": self.initial_backoff,
            "attempt_timeout": self.attempt_timeout,
            "request_timeout": self.request_timeout,
            "allow_type_coercion": self.allow_coercion,
        }
        if self.defaults_path is not None:
            overrides["defaults"] = _read_json(self.defaults_path)
        return {k: v for k, v in overrides.items() if v is not None}


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Could not read JSON from {path}: {exc}") from exc


def load_prompt(prompt: str) -> str:
    """Return the prompt text, reading it from a file when given a path."""
    candidate = Path(prompt)
    if candidate.suffix in {".txt", ".md"} and candidate.is_file():
        return candidate.read_text()
    return prompt


def load_descriptor(schema_path: Path) -> SchemaDescriptor:
    """Build a descriptor from a JSON Schema file named after the file stem."""
    schema = _read_json(schema_path)
    if not isinstance(schema, dict):
        raise ConfigurationError(f"{schema_path} does not contain a JSON object")
    return descriptor_from_json_schema(schema, name=schema.get("title") or schema_path.stem)


@app.command()
def convert(
    prompt: str = typer.Argument(..., help="Prompt text or path to a .txt/.md prompt file"),
    schema: Path = typer.Option(..., "--schema", "-s", help="JSON Schema file"),
    model: str = typer.Option(DEFAULT_MODEL.value, "--model", "-m", help="Model name to use"),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the result JSON here instead of stdout"
    ),
    max_attempts: int | None = typer.Option(None, "--max-attempts"),
    initial_backoff: float | None = typer.Option(
        None, "--initial-backoff", help="Seconds before the first retry"
    ),
    attempt_timeout: float | None = typer.Option(None, "--attempt-timeout"),
    request_timeout: float | None = typer.Option(None, "--request-timeout"),
    allow_coercion: bool | None = typer.Option(
        None, "--allow-coercion/--no-coercion", help="Coerce numeric/boolean strings"
    ),
    defaults: Path | None = typer.Option(
        None, "--defaults", help="JSON file mapping optional field paths to defaults"
    ),
    response: list[str] | None = typer.Option(
        None,
        "--response",
        "-r",
        help="Scripted model reply; repeat for each attempt to run offline",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Ask a model for a value matching a schema and write the result."""
    load_dotenv()
    setup_logging(level=logging.DEBUG if verbose else logging.INFO)

    try:
        args = ConvertArgs(
            prompt=prompt,
            schema_path=schema,
            model=model,
            output=output,
            max_attempts=max_attempts,
            initial_backoff=initial_backoff,
            attempt_timeout=attempt_timeout,
            request_timeout=request_timeout,
            allow_coercion=allow_coercion,
            defaults_path=defaults,
            responses=response or [],
        )
        descriptor = load_descriptor(args.schema_path)
        policy = RetryPolicy.from_env(**args.to_policy_overrides())
        if args.responses:
            logger.info("Using %d scripted response(s)", len(args.responses))
            provider = ScriptedProvider(args.responses)
        else:
            provider = create_provider(args.model)
    except (ConfigurationError, ValidationError) as exc:
        logger.error("Invalid configuration: %s", exc)
        raise typer.Exit(code=2) from exc

    logger.info("Converting with model %s into %s", args.model, descriptor.name)
    pipeline = ConversionPipeline(provider)
    result = pipeline.convert_sync(load_prompt(args.prompt), descriptor, policy=policy)
    logger.info("Attempt metrics: %s", json.dumps(summarize_attempts(result.attempts)))
    payload = result.model_dump_json(indent=2)

    if args.output is None:
        typer.echo(payload)
    else:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(payload)
        logger.info("Saved result to: %s", args.output)

    if result.status == RecoveryStatus.EXHAUSTED:
        raise typer.Exit(code=1)


@app.command()
def instructions(
    schema: Path = typer.Argument(..., help="JSON Schema file"),
    compact: bool = typer.Option(False, "--compact", help="Print the short field list"),
):
    """Print the format directive appended to prompts for a schema."""
    try:
        descriptor = load_descriptor(schema)
    except ConfigurationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc
    render = render_compact_instructions if compact else render_format_instructions
    typer.echo(render(descriptor), nl=False)


@app.command()
def variants():
    """List the prompt variants used across retries."""
    for name in list_all():
        typer.echo(name)


if __name__ == "__main__":
    app()
