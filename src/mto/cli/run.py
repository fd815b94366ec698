"""mto run: execute a single operation with live progress."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

import click

from mto.cli import get_toolkit
from mto.cli.exit_codes import ExitCode
from mto.cli.output import (
    describe_error,
    echo_progress,
    end_progress,
    error_exit,
    exit_code_for,
)
from mto.jobs.exceptions import MTOError, ToolNotFoundError, ValidationError
from mto.jobs.models import OperationKind, OperationSpec, ProgressSample, UnitState
from mto.jobs.unit import OperationUnit
from mto.workflow.errors import classify_error

logger = logging.getLogger(__name__)

# Option name -> OperationSpec field, shared with the batch command
PARAM_OPTIONS: tuple[tuple[str, str, type, str], ...] = (
    ("--format", "format", str, "Container format for convert (e.g. matroska)."),
    ("--bitrate", "bitrate", str, "Video bitrate for compress (e.g. 800k)."),
    ("--time", "time", str, "Timestamp for thumbnail (HH:MM:SS or seconds)."),
    ("--codec", "codec", str, "Audio codec for extract_audio."),
    ("--audio", "audio", str, "Audio file for replace_audio."),
    ("--start", "start", float, "Start offset in seconds (clip, to_gif)."),
    ("--duration", "duration", float, "Length in seconds (clip, to_gif)."),
    ("--watermark", "watermark", str, "Overlay image for watermark."),
    ("--x", "x", int, "Overlay x position."),
    ("--y", "y", int, "Overlay y position."),
    ("--fps", "fps", float, "Frames per second for extract_frames."),
)


def operation_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the kind-specific parameter options to a command."""
    for flag, dest, type_, help_text in reversed(PARAM_OPTIONS):
        func = click.option(flag, dest, type=type_, default=None, help=help_text)(func)
    return func


def parse_kind(kind: str) -> OperationKind:
    try:
        return OperationKind.parse(kind)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="KIND") from e


def build_spec(
    kind: OperationKind,
    input: str,
    output: str | None,
    params: dict[str, Any],
    inputs: tuple[str, ...] = (),
) -> OperationSpec:
    values = {key: value for key, value in params.items() if value is not None}
    return OperationSpec(kind=kind, input=input, output=output, inputs=inputs, **values)


async def _run_unit(unit: OperationUnit, timeout: float | None, quiet: bool) -> Any:
    if not quiet:
        label = f"{unit.kind.value}"

        def on_progress(sample: ProgressSample) -> None:
            echo_progress(label, sample.percent)

        unit.on_progress.connect(on_progress)
    try:
        return await unit.run(timeout)
    finally:
        if not quiet and unit.last_percent > 0:
            end_progress()


@click.command("run")
@click.argument("kind")
@click.argument("input")
@click.argument("output", required=False)
@operation_options
@click.option(
    "--concat-input",
    "concat_inputs",
    multiple=True,
    help="Further inputs for concat, in order (repeatable).",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Cancel the operation after this many seconds.",
)
@click.option("--quiet", "-q", is_flag=True, help="Do not show progress.")
@click.option("--json", "json_output", is_flag=True, help="Output result as JSON.")
@click.pass_context
def run_command(
    ctx: click.Context,
    kind: str,
    input: str,
    output: str | None,
    concat_inputs: tuple[str, ...],
    timeout: float | None,
    quiet: bool,
    json_output: bool,
    **params: Any,
) -> None:
    """Run one operation KIND on INPUT, writing OUTPUT.

    KIND is one of: convert, compress, thumbnail, metadata, extract_audio,
    replace_audio, to_gif, clip, concat, watermark, extract_frames.
    OUTPUT is not needed for metadata.
    """
    operation = parse_kind(kind)
    inputs = (input, *concat_inputs) if concat_inputs else ()
    spec = build_spec(operation, input, output, params, inputs)

    try:
        toolkit = get_toolkit(ctx)
    except ToolNotFoundError as e:
        error_exit(str(e), ExitCode.OPERATION_FAILED, json_output)

    unit = toolkit.create_unit(spec)
    try:
        result = asyncio.run(_run_unit(unit, timeout, quiet or json_output))
    except ValidationError as e:
        error_exit(describe_error(e), ExitCode.USAGE_ERROR, json_output)

    if result.state is UnitState.DONE:
        if json_output:
            payload: dict[str, Any] = {"status": "completed", "output": result.output}
            if result.metadata:
                payload["metadata"] = result.metadata
            click.echo(json.dumps(payload, indent=2))
        elif operation is OperationKind.METADATA:
            for key, value in result.metadata.items():
                click.echo(f"{key}={value}")
        else:
            click.echo(f"Done: {result.output}")
        return

    if result.state is UnitState.CANCELLED:
        error_exit(
            f"{operation.value} cancelled: {result.reason}",
            ExitCode.OPERATION_FAILED,
            json_output,
        )

    error: MTOError = classify_error(result.error, operation.value)
    error_exit(describe_error(error), exit_code_for(error), json_output)
