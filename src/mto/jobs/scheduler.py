"""Bounded-concurrency scheduler for independent operation units.

Admits up to ``concurrency`` units at a time from a FIFO backlog and
retries failed or timed-out units with a fixed backoff. Retry entries go
back to the front of the backlog. A unit cancelled for any reason other
than its timeout is never retried. All state is mutated only from the
scheduler's own tasks on a single event loop.

Events (all keyed by the entry id returned from add()):

    on_state(entry_id, UnitState)
    on_progress(entry_id, ProgressSample)
    on_done(entry_id, output)
    on_error(entry_id, exc)          final failure only (timeouts included)
    on_retry(entry_id, attempt, exc) a failure that will be retried
    on_cancelled(entry_id, reason)   never for a timeout
    on_cancel_requested(entry_id)    cancel() of a running unit
    on_idle()                        once per transition into idle
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass

from mto.core.events import EventHook
from mto.jobs.exceptions import UnitTimeoutError, ValidationError
from mto.jobs.models import UnitState
from mto.jobs.unit import TIMEOUT_REASON, OperationUnit

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 2
DEFAULT_MAX_RETRIES = 0
DEFAULT_BACKOFF_SECONDS = 0.0


@dataclass
class QueueEntry:
    """A unit plus its retry counter.

    ``entry_id`` is the id of the first unit and names the entry across
    retries; ``unit`` is the current attempt.
    """

    entry_id: str
    unit: OperationUnit
    tries: int = 0


class UnitScheduler:
    """Runs a backlog of units with bounded parallelism and retry.

    Args:
        concurrency: Maximum number of units running at once (>= 1).
        max_retries: Retries per unit after its first failure (>= 0).
        backoff_seconds: Fixed delay before each retry (>= 0).
        timeout: Seconds each attempt may run before it is cancelled with
            reason "timeout" (> 0). A timed-out attempt counts as a
            failure for retry; None means no limit.
    """

    def __init__(
        self,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        timeout: float | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValidationError(f"concurrency must be >= 1, got {concurrency}")
        if max_retries < 0:
            raise ValidationError(f"max_retries must be >= 0, got {max_retries}")
        if backoff_seconds < 0:
            raise ValidationError(
                f"backoff_seconds must be >= 0, got {backoff_seconds}"
            )
        if timeout is not None and timeout <= 0:
            raise ValidationError(f"timeout must be > 0, got {timeout}")
        self.concurrency = concurrency
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.timeout = timeout

        self._backlog: deque[QueueEntry] = deque()
        self._entries: dict[str, QueueEntry] = {}
        self._running = 0
        self._paused = False
        self._idle_notified = True
        self._idle_event = asyncio.Event()
        self._idle_event.set()
        self._tasks: set[asyncio.Task[None]] = set()

        self.on_state = EventHook("scheduler.state")
        self.on_progress = EventHook("scheduler.progress")
        self.on_done = EventHook("scheduler.done")
        self.on_error = EventHook("scheduler.error")
        self.on_retry = EventHook("scheduler.retry")
        self.on_cancelled = EventHook("scheduler.cancelled")
        self.on_cancel_requested = EventHook("scheduler.cancel_requested")
        self.on_idle = EventHook("scheduler.idle")

    # ── Public API ────────────────────────────────────────────────────────────

    def size(self) -> int:
        """Number of entries waiting in the backlog."""
        return len(self._backlog)

    @property
    def running_count(self) -> int:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    def is_idle(self) -> bool:
        return self._running == 0 and not self._backlog

    def add(self, unit: OperationUnit) -> str:
        """Queue *unit* and admit work if a slot is free.

        Must be called from within a running event loop.

        Returns:
            Entry id (the unit's id) used by every scheduler event.

        Raises:
            RuntimeError: If there is no running event loop. Nothing is
                queued in that case.
        """
        asyncio.get_running_loop()
        entry = QueueEntry(entry_id=unit.id, unit=unit)
        self._entries[entry.entry_id] = entry
        self._backlog.append(entry)
        self._bubble(entry, unit)
        self._idle_notified = False
        self._idle_event.clear()
        logger.debug(
            "Queued %s unit %s (backlog=%d)",
            unit.kind.value,
            entry.entry_id[:8],
            len(self._backlog),
        )
        self._tick()
        return entry.entry_id

    def pause(self) -> None:
        """Stop admitting new units. Running units are unaffected."""
        self._paused = True
        logger.info("Scheduler paused (running=%d)", self._running)

    def resume(self) -> None:
        """Resume admitting units."""
        self._paused = False
        logger.info("Scheduler resumed (backlog=%d)", len(self._backlog))
        self._tick()
        self._check_idle()

    def cancel(self, entry_id: str) -> bool:
        """Cancel a queued unit, or signal cancellation of a running one.

        Returns:
            True if the entry was still queued and has been removed and
            cancelled. False if it is running (on_cancel_requested fires;
            stopping it is up to the unit's own cancellation) or unknown.
        """
        for entry in self._backlog:
            if entry.entry_id == entry_id:
                self._backlog.remove(entry)
                self._entries.pop(entry_id, None)
                entry.unit.cancel("removed")
                self.on_cancelled.emit(entry_id, "removed")
                self._check_idle()
                return True

        if entry_id in self._entries:
            logger.info("Cancel requested for running unit %s", entry_id[:8])
            self.on_cancel_requested.emit(entry_id)
        return False

    def get_unit(self, entry_id: str) -> OperationUnit | None:
        """Current attempt for *entry_id*, if the entry is still live."""
        entry = self._entries.get(entry_id)
        return entry.unit if entry is not None else None

    async def join(self) -> None:
        """Wait until the scheduler is idle."""
        if self.is_idle():
            return
        await self._idle_event.wait()

    # ── Admission ─────────────────────────────────────────────────────────────

    def _tick(self) -> None:
        if self._paused:
            return
        while self._running < self.concurrency and self._backlog:
            loop = asyncio.get_running_loop()
            entry = self._backlog.popleft()
            self._launch(loop, entry)

    def _launch(self, loop: asyncio.AbstractEventLoop, entry: QueueEntry) -> None:
        self._running += 1
        logger.debug(
            "Admitting unit %s (running=%d/%d)",
            entry.entry_id[:8],
            self._running,
            self.concurrency,
        )
        task = loop.create_task(
            self._run_entry(entry), name=f"scheduler-{entry.entry_id[:8]}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_entry(self, entry: QueueEntry) -> None:
        unit = entry.unit
        try:
            try:
                unit.start(self.timeout)
            except ValidationError as e:
                self._drop(entry)
                self.on_error.emit(entry.entry_id, e)
                return

            result = await unit.wait()

            if result.state is UnitState.DONE:
                self._drop(entry)
                self.on_done.emit(entry.entry_id, result.output)
                return
            if result.state is UnitState.CANCELLED:
                if result.reason != TIMEOUT_REASON:
                    self._drop(entry)
                    self.on_cancelled.emit(entry.entry_id, result.reason)
                    return
                error: BaseException = UnitTimeoutError(unit.kind.value, self.timeout)
            else:
                assert result.error is not None
                error = result.error

            if entry.tries < self.max_retries:
                entry.tries += 1
                logger.warning(
                    "Unit %s failed (%s); retry %d/%d",
                    entry.entry_id[:8],
                    error,
                    entry.tries,
                    self.max_retries,
                )
                self.on_retry.emit(entry.entry_id, entry.tries, error)
                if self.backoff_seconds:
                    await asyncio.sleep(self.backoff_seconds)
                entry.unit = unit.respawn()
                self._bubble(entry, entry.unit)
                self._backlog.appendleft(entry)
            else:
                self._drop(entry)
                self.on_error.emit(entry.entry_id, error)
        finally:
            self._running -= 1
            self._tick()
            self._check_idle()

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _bubble(self, entry: QueueEntry, unit: OperationUnit) -> None:
        entry_id = entry.entry_id
        unit.on_state.connect(lambda state: self.on_state.emit(entry_id, state))
        unit.on_progress.connect(
            lambda sample: self.on_progress.emit(entry_id, sample)
        )

    def _drop(self, entry: QueueEntry) -> None:
        self._entries.pop(entry.entry_id, None)

    def _check_idle(self) -> None:
        if self.is_idle() and not self._idle_notified:
            self._idle_notified = True
            self._idle_event.set()
            logger.debug("Scheduler idle")
            self.on_idle.emit()
