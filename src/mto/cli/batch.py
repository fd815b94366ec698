"""mto batch: run one operation over many inputs with bounded concurrency."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import click

from mto.cli import get_toolkit
from mto.cli.exit_codes import ExitCode
from mto.cli.output import describe_error, error_exit
from mto.cli.run import build_spec, operation_options, parse_kind
from mto.jobs.exceptions import ToolNotFoundError, ValidationError
from mto.jobs.models import OperationKind
from mto.jobs.scheduler import UnitScheduler
from mto.jobs.unit import OperationUnit
from mto.workflow.errors import classify_error
from mto.workflow.routing import VALID_EXTENSIONS

logger = logging.getLogger(__name__)


@dataclass
class BatchSummary:
    """Per-input outcome of a batch run."""

    done: dict[str, str | None] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    cancelled: dict[str, str] = field(default_factory=dict)
    retries: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed and not self.cancelled


def batch_output_path(
    kind: OperationKind, input: str, output_dir: Path, ext: str | None
) -> str | None:
    """Output for *input* in *output_dir*, or None for metadata."""
    if kind is OperationKind.METADATA:
        return None
    if ext is None:
        valid = VALID_EXTENSIONS.get(kind, ())
        ext = valid[0] if valid else Path(input).suffix
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    stem = Path(input).stem
    if kind is OperationKind.EXTRACT_FRAMES:
        return str(output_dir / f"{stem}_%04d{ext}")
    return str(output_dir / f"{stem}{ext}")


async def run_batch(
    scheduler: UnitScheduler, units: dict[str, OperationUnit]
) -> BatchSummary:
    """Queue every unit and wait for the scheduler to go idle.

    Args:
        scheduler: Scheduler to run on.
        units: Input path -> unstarted unit.
    """
    summary = BatchSummary()
    names: dict[str, str] = {}

    def on_done(entry_id: str, output: str | None) -> None:
        summary.done[names[entry_id]] = output

    def on_error(entry_id: str, error: BaseException) -> None:
        summary.failed[names[entry_id]] = describe_error(classify_error(error))

    def on_cancelled(entry_id: str, reason: str) -> None:
        summary.cancelled[names[entry_id]] = reason

    def on_retry(entry_id: str, attempt: int, error: BaseException) -> None:
        summary.retries += 1
        click.echo(
            f"Retrying {names[entry_id]} (attempt {attempt + 1}): {error}", err=True
        )

    scheduler.on_done.connect(on_done)
    scheduler.on_error.connect(on_error)
    scheduler.on_cancelled.connect(on_cancelled)
    scheduler.on_retry.connect(on_retry)

    for input, unit in units.items():
        names[unit.id] = input
        scheduler.add(unit)

    await scheduler.join()
    return summary


@click.command("batch")
@click.argument("kind")
@click.argument("inputs", nargs=-1, required=True)
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(path_type=Path, file_okay=False),
    default=Path("."),
    show_default=True,
    help="Directory for outputs (created if missing).",
)
@click.option("--ext", default=None, help="Output extension (default per kind).")
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Operations running at once (default from config).",
)
@click.option(
    "--retries",
    type=click.IntRange(min=0),
    default=None,
    help="Retries per failed operation (default from config).",
)
@click.option(
    "--backoff",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds to wait before each retry (default from config).",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds each attempt may run; a timed-out attempt is retried.",
)
@operation_options
@click.option("--json", "json_output", is_flag=True, help="Output summary as JSON.")
@click.pass_context
def batch_command(
    ctx: click.Context,
    kind: str,
    inputs: tuple[str, ...],
    output_dir: Path,
    ext: str | None,
    concurrency: int | None,
    retries: int | None,
    backoff: float | None,
    timeout: float | None,
    json_output: bool,
    **params: Any,
) -> None:
    """Run operation KIND over every file in INPUTS.

    Outputs are named after each input's stem, in --output-dir.
    """
    operation = parse_kind(kind)
    if operation is OperationKind.CONCAT:
        raise click.BadParameter(
            "concat joins inputs into one output; use 'mto run concat'",
            param_hint="KIND",
        )

    try:
        toolkit = get_toolkit(ctx)
    except ToolNotFoundError as e:
        error_exit(str(e), ExitCode.OPERATION_FAILED, json_output)

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        error_exit(
            f"Cannot create output directory {output_dir}: {e}",
            ExitCode.USAGE_ERROR,
            json_output,
        )

    units = {
        input: toolkit.create_unit(
            build_spec(
                operation,
                input,
                batch_output_path(operation, input, output_dir, ext),
                params,
            )
        )
        for input in inputs
    }

    async def _main() -> BatchSummary:
        scheduler = toolkit.scheduler(concurrency, retries, backoff, timeout)
        return await run_batch(scheduler, units)

    try:
        summary = asyncio.run(_main())
    except ValidationError as e:
        error_exit(describe_error(e), ExitCode.USAGE_ERROR, json_output)

    if json_output:
        click.echo(
            json.dumps(
                {
                    "status": "completed" if summary.ok else "failed",
                    "done": summary.done,
                    "failed": summary.failed,
                    "cancelled": summary.cancelled,
                    "retries": summary.retries,
                },
                indent=2,
            )
        )
    else:
        for input, output in summary.done.items():
            click.echo(f"✓ {input} -> {output or '-'}")
        for input, message in summary.failed.items():
            click.echo(f"✗ {input}: {message}")
        for input, reason in summary.cancelled.items():
            click.echo(f"- {input}: cancelled ({reason})")
        click.echo(
            f"{len(summary.done)} done, {len(summary.failed)} failed, "
            f"{len(summary.cancelled)} cancelled"
        )

    if not summary.ok:
        ctx.exit(int(ExitCode.OPERATION_FAILED))
