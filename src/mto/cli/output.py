"""Shared CLI output helpers."""

from __future__ import annotations

import json
import sys
from typing import NoReturn

import click

from mto.cli.exit_codes import ExitCode
from mto.jobs.exceptions import MTOError, ValidationError


def error_exit(
    message: str,
    code: ExitCode | int,
    json_output: bool = False,
) -> NoReturn:
    """Print *message* and exit with *code*.

    Note:
        This function never returns; it always calls sys.exit().
    """
    code_name = code.name if isinstance(code, ExitCode) else "UNKNOWN_ERROR"
    if json_output:
        click.echo(
            json.dumps(
                {
                    "status": "failed",
                    "error": {"code": code_name, "message": message},
                }
            )
        )
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(int(code))


def exit_code_for(error: BaseException | None) -> ExitCode:
    """Usage errors map to USAGE_ERROR, everything else to OPERATION_FAILED."""
    if isinstance(error, ValidationError):
        return ExitCode.USAGE_ERROR
    return ExitCode.OPERATION_FAILED


def describe_error(error: BaseException | None) -> str:
    """One-line description including the error code when there is one."""
    if error is None:
        return "unknown error"
    if isinstance(error, MTOError):
        return f"[{error.code.value}] {error.message}"
    return str(error)


def echo_progress(label: str, percent: float) -> None:
    """Rewrite a single status line on stderr."""
    click.echo(f"\r{label}: {percent:5.1f}%", nl=False, err=True)


def end_progress() -> None:
    click.echo("", err=True)
