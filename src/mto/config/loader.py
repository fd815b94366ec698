"""Configuration loader with precedence handling.

Configuration is loaded with the following precedence (highest to lowest):
1. CLI arguments (passed directly to get_config)
2. Environment variables (MTO_*)
3. Config file (~/.mto/config.toml)
4. Default values

Environment variables:
- MTO_FFMPEG_PATH: Path to ffmpeg executable
- MTO_FFPROBE_PATH: Path to ffprobe executable
- MTO_CONCURRENCY: Units the scheduler runs at once
- MTO_MAX_RETRIES: Retries per failed unit
- MTO_BACKOFF_SECONDS: Delay before each retry
- MTO_LOG_LEVEL: Log level (debug, info, warning, error)
- MTO_CONFIG_PATH: Path to config file (overrides default location)
"""

from __future__ import annotations

import logging
import threading
import tomllib
from pathlib import Path
from typing import Any

from mto.config.env import EnvReader
from mto.config.models import (
    JobsConfig,
    LoggingConfig,
    MTOConfig,
    ToolPathsConfig,
    WorkflowConfig,
)
from mto.jobs.models import OperationKind

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".mto"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

# path -> (parsed dict, mtime); reloaded when the file changes
_config_cache: dict[Path, tuple[dict[str, Any], float]] = {}
_config_cache_lock = threading.Lock()


def get_default_config_path(env_reader: EnvReader | None = None) -> Path:
    """Get the config file path, honoring MTO_CONFIG_PATH."""
    reader = env_reader or EnvReader()
    return reader.get_path("CONFIG_PATH") or DEFAULT_CONFIG_FILE


def load_config_file(
    path: Path | None = None, *, strict: bool = False
) -> dict[str, Any]:
    """Load configuration from a TOML file.

    Results are cached with mtime-based invalidation.

    Args:
        path: Path to config file. If None, uses the default location.
        strict: If True, raise on parse failures. If False, log a warning
            and return an empty dict.

    Returns:
        Parsed configuration dict. Empty dict if the file doesn't exist.

    Raises:
        tomllib.TOMLDecodeError: When strict=True and the file is invalid.
    """
    if path is None:
        path = get_default_config_path()

    try:
        current_mtime = path.stat().st_mtime
    except FileNotFoundError:
        return {}

    with _config_cache_lock:
        cached = _config_cache.get(path)
        if cached is not None and cached[1] == current_mtime:
            return cached[0]

        try:
            with path.open("rb") as f:
                result = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            if strict:
                raise
            logger.warning("Could not parse config file %s: %s", path, e)
            result = {}
        except OSError as e:
            if strict:
                raise
            logger.warning("Could not read config file %s: %s", path, e)
            result = {}

        _config_cache[path] = (result, current_mtime)
        return result


def clear_config_cache() -> None:
    """Clear the config file cache. Primarily useful for testing."""
    with _config_cache_lock:
        _config_cache.clear()


def _file_path(value: Any) -> Path | None:
    if value is None or value == "":
        return None
    return Path(str(value)).expanduser()


def _pick(*values: Any) -> Any:
    """First value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def _parse_step_timeouts(raw: dict[str, Any]) -> dict[OperationKind, float]:
    timeouts: dict[OperationKind, float] = {}
    for key, seconds in raw.items():
        timeouts[OperationKind.parse(key)] = float(seconds)
    return timeouts


def get_config(
    config_path: Path | None = None,
    # CLI overrides (highest precedence)
    ffmpeg_path: Path | None = None,
    ffprobe_path: Path | None = None,
    concurrency: int | None = None,
    max_retries: int | None = None,
    backoff_seconds: float | None = None,
    log_level: str | None = None,
    # Optional dependency injection for testing
    env_reader: EnvReader | None = None,
    *,
    strict: bool = False,
) -> MTOConfig:
    """Get mto configuration with full precedence handling.

    Args:
        config_path: Path to config file (overrides MTO_CONFIG_PATH).
        ffmpeg_path: CLI override for ffmpeg path.
        ffprobe_path: CLI override for ffprobe path.
        concurrency: CLI override for scheduler concurrency.
        max_retries: CLI override for scheduler retries.
        backoff_seconds: CLI override for scheduler backoff.
        log_level: CLI override for the log level.
        env_reader: Optional EnvReader for testing (uses os.environ if None).
        strict: If True, raise on config file parse failures.

    Returns:
        MTOConfig with merged configuration.

    Raises:
        ValueError: If a merged value is out of range or a step timeout
            names an unknown operation kind.
    """
    reader = env_reader or EnvReader()
    file_config = load_config_file(
        config_path or get_default_config_path(reader), strict=strict
    )

    tools_file = file_config.get("tools", {})
    tools = ToolPathsConfig(
        ffmpeg=_pick(
            ffmpeg_path,
            reader.get_path("FFMPEG_PATH"),
            _file_path(tools_file.get("ffmpeg")),
        ),
        ffprobe=_pick(
            ffprobe_path,
            reader.get_path("FFPROBE_PATH"),
            _file_path(tools_file.get("ffprobe")),
        ),
    )

    jobs_file = file_config.get("jobs", {})
    jobs_defaults = JobsConfig()
    jobs = JobsConfig(
        concurrency=_pick(
            concurrency,
            reader.get_int("CONCURRENCY"),
            jobs_file.get("concurrency"),
            jobs_defaults.concurrency,
        ),
        max_retries=_pick(
            max_retries,
            reader.get_int("MAX_RETRIES"),
            jobs_file.get("max_retries"),
            jobs_defaults.max_retries,
        ),
        backoff_seconds=float(
            _pick(
                backoff_seconds,
                reader.get_float("BACKOFF_SECONDS"),
                jobs_file.get("backoff_seconds"),
                jobs_defaults.backoff_seconds,
            )
        ),
    )

    workflow_file = file_config.get("workflow", {})
    workflow = WorkflowConfig(
        step_timeouts=_parse_step_timeouts(workflow_file.get("step_timeouts", {}))
    )

    logging_file = file_config.get("logging", {})
    logging_defaults = LoggingConfig()
    logging_config = LoggingConfig(
        level=_pick(
            log_level,
            reader.get_str("LOG_LEVEL"),
            logging_file.get("level"),
            logging_defaults.level,
        ),
        file=_file_path(logging_file.get("file")),
        format=logging_file.get("format", logging_defaults.format),
        max_bytes=logging_file.get("max_bytes", logging_defaults.max_bytes),
        backup_count=logging_file.get("backup_count", logging_defaults.backup_count),
    )

    return MTOConfig(
        tools=tools, jobs=jobs, workflow=workflow, logging=logging_config
    )
