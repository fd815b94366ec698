"""Typed access to the MTO_* environment variables.

Keys are given without the prefix, so ``reader.get_int("CONCURRENCY")``
reads MTO_CONCURRENCY. A value that is set but does not parse is logged
and treated as unset, letting the config file or the default apply.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TypeVar

logger = logging.getLogger(__name__)

ENV_PREFIX = "MTO_"

T = TypeVar("T")


def _path(value: str) -> Path:
    return Path(value).expanduser()


class EnvReader:
    """Reads MTO_* variables from *env*, or from os.environ when None."""

    def __init__(
        self, env: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX
    ) -> None:
        self._env: Mapping[str, str] = env if env is not None else os.environ
        self.prefix = prefix

    def name(self, key: str) -> str:
        """Full variable name for *key*."""
        return f"{self.prefix}{key}"

    def get_str(self, key: str) -> str | None:
        return self._parse(key, str)

    def get_int(self, key: str) -> int | None:
        return self._parse(key, int)

    def get_float(self, key: str) -> float | None:
        return self._parse(key, float)

    def get_path(self, key: str) -> Path | None:
        """Path with ``~`` expanded. Existence is checked by the tool lookup."""
        return self._parse(key, _path)

    def _parse(self, key: str, convert: Callable[[str], T]) -> T | None:
        raw = self._env.get(self.name(key))
        if raw is None or not raw.strip():
            return None
        try:
            return convert(raw.strip())
        except ValueError:
            logger.warning(
                "Ignoring %s=%r: expected %s",
                self.name(key),
                raw,
                convert.__name__.lstrip("_"),
            )
            return None
