"""Structured logging for mto.

Text or JSON logs to stderr or a rotating file, tagged with the unit,
step and attempt a record was emitted under.
"""

from mto.logging.config import configure_logging
from mto.logging.context import (
    UnitContext,
    UnitContextFilter,
    clear_unit_context,
    get_unit_context,
    set_unit_context,
    unit_context,
)
from mto.logging.handlers import JSONFormatter

__all__ = [
    "JSONFormatter",
    "UnitContext",
    "UnitContextFilter",
    "clear_unit_context",
    "configure_logging",
    "get_unit_context",
    "set_unit_context",
    "unit_context",
]
