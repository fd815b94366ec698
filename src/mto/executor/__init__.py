"""ffmpeg argument building and process launching."""

from mto.executor.command import build_args, command_as_string
from mto.executor.process import (
    AsyncioProcessLauncher,
    ProcessHandle,
    ProcessLauncher,
)

__all__ = [
    "AsyncioProcessLauncher",
    "ProcessHandle",
    "ProcessLauncher",
    "build_args",
    "command_as_string",
]
