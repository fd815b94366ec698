"""ffprobe-backed duration probing and ffmetadata parsing."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from mto.jobs.exceptions import ProbeError, ToolNotFoundError

logger = logging.getLogger(__name__)

# Probe timeout (seconds); probing only reads container headers.
PROBE_TIMEOUT = 120

DurationProbe = Callable[[str], Awaitable[float]]
"""Async callable: input path -> duration in seconds. Raises ProbeError."""


class FFprobeDurationProbe:
    """Reads an input's duration with ``ffprobe -show_format``."""

    def __init__(self, ffprobe_path: Path | str = "ffprobe") -> None:
        self.ffprobe_path = str(ffprobe_path)

    async def __call__(self, path: str) -> float:
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            path,
        ]  # fmt: skip
        logger.debug("Probing duration: %s", " ".join(cmd))
        try:
            process = await asyncio.create_subprocess_exec(  # nosec B603
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(
                self.ffprobe_path, f"Failed to execute {self.ffprobe_path}: not found"
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=PROBE_TIMEOUT
            )
        except TimeoutError as e:
            process.kill()
            await process.wait()
            raise ProbeError(path, f"timed out after {PROBE_TIMEOUT}s") from e

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise ProbeError(
                path, detail or f"ffprobe exited with {process.returncode}"
            )

        return parse_duration(path, stdout.decode("utf-8", errors="replace"))


def parse_duration(path: str, raw_json: str) -> float:
    """Extract ``format.duration`` from ffprobe JSON output.

    Raises:
        ProbeError: If the output is not JSON or carries no usable duration.
    """
    try:
        data = json.loads(raw_json)
    except json.JSONDecodeError as e:
        raise ProbeError(path, f"invalid ffprobe output: {e}") from e

    raw_duration = data.get("format", {}).get("duration")
    if raw_duration in (None, "N/A"):
        raise ProbeError(path, "no duration reported")
    try:
        duration = float(raw_duration)
    except (TypeError, ValueError) as e:
        raise ProbeError(path, f"invalid duration {raw_duration!r}") from e
    if duration <= 0:
        raise ProbeError(path, f"non-positive duration {duration}")
    return duration


def parse_ffmetadata(text: str) -> dict[str, str]:
    """Parse ffmetadata output (``;FFMETADATA1`` then key=value lines).

    Only global keys are returned; section headers such as ``[CHAPTER]``
    end the global block.
    """
    metadata: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith((";", "#")):
            continue
        if line.startswith("["):
            break
        key, sep, value = line.partition("=")
        if sep:
            metadata[key.strip()] = value.strip()
    return metadata
