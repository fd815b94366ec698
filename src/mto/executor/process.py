"""Process launching for operation units.

Defines the small interface units need from a running external process
(diagnostic line stream, exit code, kill) and the default asyncio
implementation. Tests substitute their own launcher.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import re
from collections.abc import AsyncIterator, Sequence
from typing import Protocol

from mto.jobs.exceptions import ToolNotFoundError

logger = logging.getLogger(__name__)

# ffmpeg rewrites its status line with \r, so both count as line ends.
_LINE_SPLIT = re.compile(r"\r\n|\r|\n")

_READ_CHUNK = 4096


class ProcessHandle(Protocol):
    """A launched external process."""

    @property
    def pid(self) -> int | None: ...

    def stderr_lines(self) -> AsyncIterator[str]:
        """Yield diagnostic output line by line until the stream closes."""
        ...

    async def read_stdout(self) -> str:
        """Read all of stdout (empty when stdout was not captured)."""
        ...

    async def wait(self) -> int:
        """Wait for exit and return the exit code."""
        ...

    def kill(self) -> None:
        """Forcibly terminate the process. Safe to call after exit."""
        ...


class ProcessLauncher(Protocol):
    """Starts external processes."""

    async def launch(
        self,
        binary: str,
        args: Sequence[str],
        *,
        capture_stdout: bool = False,
    ) -> ProcessHandle:
        """Start *binary* with *args*.

        Raises:
            ToolNotFoundError: If the binary cannot be executed.
        """
        ...


async def iter_stream_lines(stream: asyncio.StreamReader) -> AsyncIterator[str]:
    """Yield decoded lines from *stream*, splitting on \\r and \\n."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        pending += decoder.decode(chunk)
        parts = _LINE_SPLIT.split(pending)
        pending = parts.pop()
        for part in parts:
            if part.strip():
                yield part
    pending += decoder.decode(b"", final=True)
    if pending.strip():
        yield pending


class AsyncioProcessHandle:
    """ProcessHandle over asyncio.subprocess.Process."""

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self._process = process

    @property
    def pid(self) -> int | None:
        return self._process.pid

    async def stderr_lines(self) -> AsyncIterator[str]:
        if self._process.stderr is None:
            return
        async for line in iter_stream_lines(self._process.stderr):
            yield line

    async def read_stdout(self) -> str:
        if self._process.stdout is None:
            return ""
        data = await self._process.stdout.read()
        return data.decode("utf-8", errors="replace")

    async def wait(self) -> int:
        return await self._process.wait()

    def kill(self) -> None:
        if self._process.returncode is not None:
            return
        try:
            self._process.kill()
        except ProcessLookupError:
            logger.debug("Process %s already exited", self._process.pid)


class AsyncioProcessLauncher:
    """Default launcher: asyncio.create_subprocess_exec with piped stderr."""

    async def launch(
        self,
        binary: str,
        args: Sequence[str],
        *,
        capture_stdout: bool = False,
    ) -> AsyncioProcessHandle:
        try:
            process = await asyncio.create_subprocess_exec(  # nosec B603
                binary,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=(
                    asyncio.subprocess.PIPE
                    if capture_stdout
                    else asyncio.subprocess.DEVNULL
                ),
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(
                binary, f"Failed to execute {binary}: not found"
            ) from e
        except PermissionError as e:
            raise ToolNotFoundError(
                binary, f"Failed to execute {binary}: permission denied"
            ) from e
        logger.debug("Launched %s (pid %s)", binary, process.pid)
        return AsyncioProcessHandle(process)
