"""External tool detection.

Resolves ffmpeg/ffprobe locations from configured paths or PATH and
verifies them synchronously, before any unit may run.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess  # nosec B404 - subprocess is required for tool detection
from dataclasses import dataclass
from pathlib import Path

from mto.jobs.exceptions import ToolNotFoundError

logger = logging.getLogger(__name__)

# Timeout for version detection commands (seconds)
DETECTION_TIMEOUT = 10

_VERSION_PATTERN = re.compile(r"version\s+n?(\S+)")


@dataclass(frozen=True)
class ToolInfo:
    """Detection result for one external tool."""

    name: str
    path: Path | None = None
    version: str | None = None

    def is_available(self) -> bool:
        return self.path is not None


def find_tool(name: str, configured_path: Path | str | None = None) -> Path | None:
    """Find a tool executable.

    Args:
        name: Tool name (e.g., "ffmpeg").
        configured_path: Optional configured path override. May be a bare
            command name, which is then looked up in PATH.

    Returns:
        Path to tool executable, or None if not found.
    """
    if configured_path:
        candidate = Path(configured_path).expanduser()
        if candidate.is_file():
            return candidate
        which_result = shutil.which(str(configured_path))
        if which_result:
            return Path(which_result)
        logger.warning("Configured path for %s is not a file: %s", name, candidate)
        return None

    which_result = shutil.which(name)
    if which_result:
        return Path(which_result)
    return None


def require_tool(name: str, configured_path: Path | str | None = None) -> Path:
    """Get path to a required tool, raising if it is not available.

    Raises:
        ToolNotFoundError: If the tool cannot be found.
    """
    path = find_tool(name, configured_path)
    if path is None:
        where = f" at {configured_path}" if configured_path else " in PATH"
        raise ToolNotFoundError(
            name,
            f"Required tool not available: {name} not found{where}. "
            "Install ffmpeg: https://ffmpeg.org/download.html",
        )
    return path


def parse_version_output(output: str) -> str | None:
    """Extract the version token from ``<tool> -version`` output."""
    first_line = output.strip().splitlines()[0] if output.strip() else ""
    match = _VERSION_PATTERN.search(first_line)
    return match.group(1) if match else None


def detect_tool(name: str, configured_path: Path | str | None = None) -> ToolInfo:
    """Locate *name* and read its version, without raising."""
    path = find_tool(name, configured_path)
    if path is None:
        return ToolInfo(name=name)

    try:
        result = subprocess.run(  # nosec B603 - tool path and fixed flag
            [str(path), "-version"],
            capture_output=True,
            text=True,
            errors="replace",
            timeout=DETECTION_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning("Could not run %s -version: %s", path, e)
        return ToolInfo(name=name, path=path)

    return ToolInfo(name=name, path=path, version=parse_version_output(result.stdout))


def check_tool_availability(
    ffmpeg_path: Path | str | None = None,
    ffprobe_path: Path | str | None = None,
) -> dict[str, ToolInfo]:
    """Detect ffmpeg and ffprobe.

    Returns:
        Dict mapping tool name to its ToolInfo.
    """
    return {
        "ffmpeg": detect_tool("ffmpeg", ffmpeg_path),
        "ffprobe": detect_tool("ffprobe", ffprobe_path),
    }
