"""External tool discovery and ffmpeg progress parsing."""

from mto.tools.detection import (
    ToolInfo,
    check_tool_availability,
    detect_tool,
    find_tool,
    require_tool,
)
from mto.tools.ffmpeg_progress import (
    FFmpegProgress,
    ProgressThrottle,
    parse_stderr_progress,
)

__all__ = [
    "FFmpegProgress",
    "ProgressThrottle",
    "ToolInfo",
    "check_tool_availability",
    "detect_tool",
    "find_tool",
    "parse_stderr_progress",
    "require_tool",
]
