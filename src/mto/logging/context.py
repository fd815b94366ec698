"""Unit context for log records.

The running unit's id, the workflow step and the retry attempt live in
contextvars. asyncio tasks copy the context when created, so a unit task
started inside a workflow step logs with that step number.
"""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from collections.abc import Generator

_unit_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "unit_id", default=None
)
_step: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "step", default=None
)
_attempt: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "attempt", default=None
)

_VARS = (_unit_id, _step, _attempt)


class UnitContext(NamedTuple):
    unit_id: str | None
    step: int | None
    attempt: int | None


def set_unit_context(
    unit_id: str | None = None,
    step: int | None = None,
    attempt: int | None = None,
) -> None:
    """Set context fields. None leaves a field unchanged."""
    for var, value in zip(_VARS, (unit_id, step, attempt)):
        if value is not None:
            var.set(value)


def clear_unit_context() -> None:
    for var in _VARS:
        var.set(None)


@contextmanager
def unit_context(
    unit_id: str | None = None,
    step: int | None = None,
    attempt: int | None = None,
) -> Generator[None, None, None]:
    """Set context fields for the duration of the block.

    Example:
        with unit_context(unit.id, attempt=unit.attempt):
            logger.info("Launching ffmpeg")
    """
    previous = get_unit_context()
    try:
        set_unit_context(unit_id, step, attempt)
        yield
    finally:
        for var, value in zip(_VARS, previous):
            var.set(value)


def get_unit_context() -> UnitContext:
    return UnitContext(_unit_id.get(), _step.get(), _attempt.get())


def unit_tag(context: UnitContext) -> str:
    """Compact prefix for text logs, e.g. ``[U3f2a9c01#2:S3] ``.

    The attempt is shown only for retries.
    """
    parts = []
    if context.unit_id:
        unit = f"U{context.unit_id[:8]}"
        if context.attempt and context.attempt > 1:
            unit += f"#{context.attempt}"
        parts.append(unit)
    if context.step is not None:
        parts.append(f"S{context.step}")
    return f"[{':'.join(parts)}] " if parts else ""


class UnitContextFilter(logging.Filter):
    """Copies the unit context onto every record it sees.

    Sets ``unit_id``, ``step`` and ``attempt``, plus ``unit_tag`` for the
    text format. Never drops a record.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_unit_context()
        record.unit_id = context.unit_id
        record.step = context.step
        record.attempt = context.attempt
        record.unit_tag = unit_tag(context)
        return True
