"""Observer lists for unit, workflow and scheduler notifications.

Each EventHook holds its listeners in subscription order and calls them
synchronously on emit(). A failing listener is logged and skipped so one
bad subscriber cannot break delivery to the others or stall the
orchestration that emitted the event.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventHook:
    """An ordered list of listeners for one named event."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Listener] = []

    def connect(self, listener: Listener) -> Listener:
        """Subscribe *listener*. Returns it so this works as a decorator."""
        self._listeners.append(listener)
        return listener

    def disconnect(self, listener: Listener) -> bool:
        """Unsubscribe *listener*. Returns False if it was not subscribed."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    def clear(self) -> None:
        self._listeners.clear()

    def emit(self, *args: Any) -> None:
        """Call every listener with *args*, in subscription order."""
        for listener in list(self._listeners):
            try:
                listener(*args)
            except Exception as e:
                logger.warning("Listener for %s event failed: %s", self.name, e)

    def __len__(self) -> int:
        return len(self._listeners)

    def __repr__(self) -> str:
        return f"EventHook({self.name!r}, listeners={len(self._listeners)})"
