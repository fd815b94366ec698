"""Configuration data models.

This module defines dataclasses for mto configuration options.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path

from mto.jobs.models import OperationKind

LOG_LEVELS = ("debug", "info", "warning", "error")
LOG_FORMATS = ("text", "json")


@dataclass
class ToolPathsConfig:
    """Configuration for external tool paths.

    All paths are optional. If not specified, tools are looked up in PATH.
    """

    ffmpeg: Path | None = None
    ffprobe: Path | None = None


@dataclass
class JobsConfig:
    """Defaults for the unit scheduler."""

    # Units running at once
    concurrency: int = 2

    # Retries per unit after its first failure
    max_retries: int = 0

    # Fixed delay before each retry
    backoff_seconds: float = 0.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.backoff_seconds < 0:
            raise ValueError(
                f"backoff_seconds must be >= 0, got {self.backoff_seconds}"
            )


@dataclass
class WorkflowConfig:
    """Workflow sequencing settings."""

    step_timeouts: dict[OperationKind, float] = field(default_factory=dict)
    """Per-kind step time limits in seconds, overriding the built-in table."""

    def __post_init__(self) -> None:
        """Validate configuration."""
        for kind, seconds in self.step_timeouts.items():
            if seconds <= 0:
                raise ValueError(
                    f"step timeout for {kind.value} must be positive, got {seconds}"
                )


@dataclass
class LoggingConfig:
    """Where mto logs go and how they look.

    Records go to ``file`` (rotated) when set, otherwise to stderr.
    """

    # debug, info, warning, error
    level: str = "info"
    file: Path | None = None
    # text or json
    format: str = "text"
    max_bytes: int = 10_485_760
    backup_count: int = 5

    def __post_init__(self) -> None:
        self.level = self.level.lower()
        self.format = self.format.lower()
        if self.level not in LOG_LEVELS:
            raise ValueError(
                f"level must be one of {', '.join(LOG_LEVELS)}, got {self.level}"
            )
        if self.format not in LOG_FORMATS:
            raise ValueError(
                f"format must be one of {', '.join(LOG_FORMATS)}, got {self.format}"
            )

    def with_overrides(
        self,
        *,
        level: str | None = None,
        file: Path | None = None,
        format: str | None = None,
    ) -> "LoggingConfig":
        """Copy with the given CLI options applied; None keeps the current value."""
        changes = {"level": level, "file": file, "format": format}
        return replace(
            self, **{key: value for key, value in changes.items() if value is not None}
        )


@dataclass
class MTOConfig:
    """Main configuration container for mto.

    Aggregates all configuration sections.
    """

    tools: ToolPathsConfig = field(default_factory=ToolPathsConfig)
    jobs: JobsConfig = field(default_factory=JobsConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def get_tool_path(self, tool_name: str) -> Path | None:
        """Get configured path for a tool.

        Args:
            tool_name: Name of the tool (ffmpeg, ffprobe).

        Returns:
            Configured path or None if not configured.
        """
        return getattr(self.tools, tool_name.lower(), None)
