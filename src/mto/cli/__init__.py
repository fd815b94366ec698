"""CLI module for mto."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from mto.cli.exit_codes import ExitCode
from mto.cli.output import error_exit
from mto.config import get_config
from mto.config.models import MTOConfig
from mto.logging import configure_logging

_logging_configured: bool = False

logger = logging.getLogger(__name__)


def _configure_logging(
    config: MTOConfig,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """Configure logging once per process from config plus CLI options."""
    global _logging_configured
    if _logging_configured:
        return

    configure_logging(
        config.logging.with_overrides(
            level=log_level,
            file=log_file,
            format="json" if log_json else None,
        )
    )
    _logging_configured = True


def get_toolkit(ctx: click.Context):
    """MediaToolkit for the current invocation.

    Tests may pass a ready toolkit as ``obj={"toolkit": ...}``.

    Raises:
        ToolNotFoundError: If ffmpeg cannot be found.
    """
    from mto.api import MediaToolkit

    obj = ctx.ensure_object(dict)
    if obj.get("toolkit") is None:
        obj["toolkit"] = MediaToolkit(obj["config"])
    return obj["toolkit"]


@click.group()
@click.version_option(package_name="mto")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Use JSON log format.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Config file (default: ~/.mto/config.toml or MTO_CONFIG_PATH).",
)
@click.pass_context
def main(
    ctx: click.Context,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
    config_path: Path | None,
) -> None:
    """mto - orchestrate ffmpeg operations, workflows and batches."""
    ctx.ensure_object(dict)

    # Preserve a config passed in by tests
    if "config" not in ctx.obj:
        try:
            ctx.obj["config"] = get_config(config_path, log_level=log_level)
        except ValueError as e:
            error_exit(f"Invalid configuration: {e}", ExitCode.USAGE_ERROR)

    try:
        _configure_logging(ctx.obj["config"], log_level, log_file, log_json)
    except ValueError as e:
        error_exit(f"Invalid logging configuration: {e}", ExitCode.USAGE_ERROR)
    except OSError as e:
        error_exit(f"Cannot open log file: {e}", ExitCode.USAGE_ERROR)


def _register_commands() -> None:
    from mto.cli.batch import batch_command
    from mto.cli.doctor import doctor_command
    from mto.cli.run import run_command
    from mto.cli.workflow import workflow_command

    main.add_command(doctor_command)
    main.add_command(run_command)
    main.add_command(batch_command)
    main.add_command(workflow_command)


_register_commands()
