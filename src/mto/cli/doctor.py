"""mto doctor command for checking external tool health."""

from __future__ import annotations

import json
import sys

import click

from mto.cli.exit_codes import ExitCode
from mto.tools.detection import ToolInfo, check_tool_availability


def _format_status(available: bool) -> str:
    return "✓" if available else "✗"


def _format_version(version: str | None) -> str:
    return version if version else "not found"


def _output_json(tools: dict[str, ToolInfo]) -> None:
    click.echo(
        json.dumps(
            {
                name: {
                    "available": info.is_available(),
                    "path": str(info.path) if info.path else None,
                    "version": info.version,
                }
                for name, info in tools.items()
            },
            indent=2,
        )
    )


@click.command("doctor")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show tool paths.",
)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output results as JSON.",
)
@click.pass_context
def doctor_command(ctx: click.Context, verbose: bool, json_output: bool) -> None:
    """Check that ffmpeg and ffprobe are installed.

    Exit codes:
      0 - Both tools available
      1 - A tool is missing
    """
    config = ctx.obj["config"]
    tools = check_tool_availability(config.tools.ffmpeg, config.tools.ffprobe)
    missing = [name for name, info in tools.items() if not info.is_available()]

    if json_output:
        _output_json(tools)
    else:
        click.echo("mto External Tool Health Check")
        click.echo("=" * 40)
        for name, info in tools.items():
            path_info = f" ({info.path})" if info.path and verbose else ""
            click.echo(
                f"  {_format_status(info.is_available())} {name}: "
                f"{_format_version(info.version)}{path_info}"
            )
            if not info.is_available():
                click.echo("    └─ Install ffmpeg: https://ffmpeg.org/download.html")
        click.echo()
        if missing:
            click.echo(f"Missing: {', '.join(missing)}")
        else:
            click.echo("All tools available.")

    sys.exit(int(ExitCode.OPERATION_FAILED if missing else ExitCode.SUCCESS))
