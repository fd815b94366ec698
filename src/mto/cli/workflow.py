"""mto workflow: run a YAML workflow file."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

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
from mto.jobs.exceptions import ToolNotFoundError, ValidationError
from mto.jobs.models import OperationKind
from mto.workflow.loader import build_workflow, load_workflow_file
from mto.workflow.models import WorkflowResult
from mto.workflow.pipeline import Workflow

logger = logging.getLogger(__name__)


def _attach_reporting(workflow: Workflow, quiet: bool) -> None:
    def on_warning(message: str, kind: OperationKind | None) -> None:
        click.echo(f"Warning: {message}", err=True)

    workflow.on_warning.connect(on_warning)
    if quiet:
        return

    def on_step_start(kind: OperationKind, step_number: int) -> None:
        click.echo(f"Step {step_number}/{len(workflow.steps)}: {kind.value}", err=True)

    def on_progress(
        overall: float, step_number: int, total: int, eta: float | None
    ) -> None:
        eta_text = f" (step ETA {eta:.0f}s)" if eta is not None else ""
        echo_progress(f"Overall{eta_text}", overall)

    def on_step_complete(kind: OperationKind, step_number: int, output: str) -> None:
        end_progress()
        click.echo(f"  -> {output}", err=True)

    workflow.on_step_start.connect(on_step_start)
    workflow.on_progress.connect(on_progress)
    workflow.on_step_complete.connect(on_step_complete)


@click.command("workflow")
@click.argument(
    "workflow_file", type=click.Path(path_type=Path, dir_okay=False, exists=True)
)
@click.option(
    "--input",
    "-i",
    "input_path",
    default=None,
    help="Initial input (overrides the file's 'input').",
)
@click.option("--quiet", "-q", is_flag=True, help="Do not show progress.")
@click.option("--json", "json_output", is_flag=True, help="Output result as JSON.")
@click.pass_context
def workflow_command(
    ctx: click.Context,
    workflow_file: Path,
    input_path: str | None,
    quiet: bool,
    json_output: bool,
) -> None:
    """Run the steps in WORKFLOW_FILE one after another.

    Each step reads the previous step's output; thumbnail and
    extract_frames steps read the latest video produced so far.
    """
    try:
        model = load_workflow_file(workflow_file)
    except ValidationError as e:
        error_exit(describe_error(e), ExitCode.USAGE_ERROR, json_output)

    try:
        toolkit = get_toolkit(ctx)
    except ToolNotFoundError as e:
        error_exit(str(e), ExitCode.OPERATION_FAILED, json_output)

    workflow: Workflow = toolkit.workflow()
    _attach_reporting(workflow, quiet or json_output)
    try:
        build_workflow(model, workflow)
    except ValidationError as e:
        error_exit(describe_error(e), ExitCode.USAGE_ERROR, json_output)

    async def _main() -> WorkflowResult:
        return await workflow.run(input_path)

    result = asyncio.run(_main())

    if json_output:
        payload: dict[str, object] = {
            "status": "completed" if result.success else "failed",
            "outputs": result.outputs,
        }
        if not result.success:
            payload["step"] = result.step_number
            payload["error"] = describe_error(result.error)
        click.echo(json.dumps(payload, indent=2))
    elif result.success:
        for output in result.outputs:
            click.echo(output)

    if not result.success:
        if not json_output:
            click.echo(
                f"Error: step {result.step_number}: {describe_error(result.error)}",
                err=True,
            )
        ctx.exit(int(exit_code_for(result.error)))
