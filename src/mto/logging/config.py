"""Install mto's log handler on the root logger."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING

from mto.logging.context import UnitContextFilter
from mto.logging.handlers import JSONFormatter

if TYPE_CHECKING:
    from mto.config.models import LoggingConfig

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(unit_tag)s%(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def configure_logging(config: LoggingConfig) -> logging.Handler:
    """Replace the root handlers with one built from *config*.

    Records go to a rotating file when ``config.file`` is set and to
    stderr otherwise. Every record is tagged with the unit context.

    Returns:
        The installed handler.

    Raises:
        OSError: If the log file or its directory cannot be created.
    """
    if config.file:
        path = config.file.expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = RotatingFileHandler(
            path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler()

    if config.format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(UnitContextFilter())

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(config.level.upper())
    return handler
