"""Configuration management for mto.

Configuration is loaded with precedence handling:
1. CLI flags (highest priority)
2. Environment variables (MTO_*)
3. Config file (~/.mto/config.toml)
4. Default values (lowest priority)
"""

from mto.config.env import EnvReader
from mto.config.loader import (
    clear_config_cache,
    get_config,
    get_default_config_path,
    load_config_file,
)
from mto.config.models import (
    JobsConfig,
    LoggingConfig,
    MTOConfig,
    ToolPathsConfig,
    WorkflowConfig,
)

__all__ = [
    # Models
    "JobsConfig",
    "LoggingConfig",
    "MTOConfig",
    "ToolPathsConfig",
    "WorkflowConfig",
    # Loader
    "EnvReader",
    "clear_config_cache",
    "get_config",
    "get_default_config_path",
    "load_config_file",
]
