"""Operation unit: one ffmpeg invocation, run exactly once.

A unit turns the raw behavior of an external process into a small event
surface:

    on_start(command_line)     emitted once, just before launch
    on_state(UnitState)        every state transition
    on_progress(ProgressSample) throttled, non-decreasing percent
    on_done(output)            terminal: exit code 0
    on_error(exc)              terminal: probe, launch or process failure
    on_cancelled(reason)       terminal: cancel() or timeout

Exactly one terminal event fires per unit, and every progress event
precedes it. Units never retry themselves; see mto.jobs.scheduler.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from pathlib import Path

from mto.core.events import EventHook
from mto.executor.command import build_args, command_as_string
from mto.executor.process import (
    AsyncioProcessLauncher,
    ProcessHandle,
    ProcessLauncher,
)
from mto.introspector.ffprobe import (
    DurationProbe,
    FFprobeDurationProbe,
    parse_ffmetadata,
)
from mto.jobs.exceptions import (
    MTOError,
    ProcessExitError,
    UnitStateError,
    ValidationError,
)
from mto.jobs.models import (
    OperationKind,
    OperationSpec,
    ProgressSample,
    UnitResult,
    UnitState,
)
from mto.logging.context import unit_context
from mto.tools.ffmpeg_progress import ProgressThrottle

logger = logging.getLogger(__name__)

# Number of trailing diagnostic lines kept for error reporting.
DIAGNOSTIC_TAIL_LINES = 20

TIMEOUT_REASON = "timeout"


def new_unit_id() -> str:
    """Generate a unit identity, unique for the process lifetime."""
    return uuid.uuid4().hex


class OperationUnit:
    """Runs one OperationSpec as one ffmpeg process.

    Args:
        spec: Operation to run. Defaults are filled in on construction.
        ffmpeg_path: ffmpeg binary (path or command name).
        launcher: Starts the process. Defaults to asyncio subprocesses.
        duration_probe: Async input -> seconds. Defaults to ffprobe.
        attempt: 1 for a first run, incremented by respawn().
    """

    def __init__(
        self,
        spec: OperationSpec,
        *,
        ffmpeg_path: Path | str = "ffmpeg",
        launcher: ProcessLauncher | None = None,
        duration_probe: DurationProbe | None = None,
        attempt: int = 1,
    ) -> None:
        self.id = new_unit_id()
        self.spec = spec.with_defaults()
        self.ffmpeg_path = str(ffmpeg_path)
        self.launcher: ProcessLauncher = launcher or AsyncioProcessLauncher()
        self.duration_probe: DurationProbe = duration_probe or FFprobeDurationProbe()
        self.attempt = attempt

        self.state = UnitState.QUEUED
        self.duration: float | None = None
        self.last_percent = 0.0

        self._process: ProcessHandle | None = None
        self._task: asyncio.Task[UnitResult] | None = None
        self._result: UnitResult | None = None
        self._timeout_handle: asyncio.TimerHandle | None = None
        self._diagnostics: deque[str] = deque(maxlen=DIAGNOSTIC_TAIL_LINES)

        self.on_start = EventHook("start")
        self.on_state = EventHook("state")
        self.on_progress = EventHook("progress")
        self.on_done = EventHook("done")
        self.on_error = EventHook("error")
        self.on_cancelled = EventHook("cancelled")

    def __repr__(self) -> str:
        return (
            f"OperationUnit(id={self.id[:8]}, kind={self.spec.kind.value}, "
            f"state={self.state.value})"
        )

    @property
    def kind(self) -> OperationKind:
        return self.spec.kind

    @property
    def result(self) -> UnitResult | None:
        """Terminal result, or None while the unit has not finished."""
        return self._result

    @property
    def diagnostics(self) -> list[str]:
        """Trailing diagnostic lines seen so far."""
        return list(self._diagnostics)

    # ── Public API ────────────────────────────────────────────────────────────

    def validate(self) -> list[str]:
        """Check the spec and return the ffmpeg arguments it maps to.

        Raises:
            ValidationError: If the input is empty, the output is missing
                for a kind other than METADATA, or a kind-specific field
                is missing.
        """
        kind = self.spec.kind
        if not self.spec.input or not self.spec.input.strip():
            raise ValidationError(f"{kind.value}: input is required", kind=kind.value)
        if kind is not OperationKind.METADATA and not self.spec.output:
            raise ValidationError(f"{kind.value}: output is required", kind=kind.value)
        return build_args(self.spec)

    def start(self, timeout: float | None = None) -> asyncio.Task[UnitResult]:
        """Validate and schedule the run on the running event loop.

        Validation happens synchronously, so a bad spec raises here and no
        process is ever launched.

        Args:
            timeout: Seconds after launch before the unit cancels itself
                with reason "timeout". None means no limit.

        Returns:
            Task resolving to the terminal UnitResult.

        Raises:
            ValidationError: If the spec is invalid.
            UnitStateError: If the unit was already started or finished.
        """
        if self._task is not None or self.state is not UnitState.QUEUED:
            raise UnitStateError(
                f"Unit {self.id} cannot be started in state {self.state.value}",
                kind=self.kind.value,
            )
        args = self.validate()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(
            self._execute(args, timeout), name=f"unit-{self.id[:8]}"
        )
        return self._task

    async def wait(self) -> UnitResult:
        """Wait for the terminal result.

        Cancelling the caller does not cancel the unit.
        """
        if self._task is None:
            if self._result is not None:
                return self._result
            raise UnitStateError(f"Unit {self.id} has not been started")
        return await asyncio.shield(self._task)

    async def run(self, timeout: float | None = None) -> UnitResult:
        """Start the unit and wait for its result."""
        self.start(timeout)
        return await self.wait()

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel the unit.

        Kills the process if one is running, or prevents the launch if the
        unit has not got that far. The terminal on_cancelled event fires
        immediately; awaiting wait() still returns once the process is gone.

        Returns:
            True if the unit was cancelled, False if it had already finished.
        """
        if self.state.is_terminal:
            return False
        logger.info("Cancelling %s unit %s: %s", self.kind.value, self.id[:8], reason)
        if self._process is not None:
            self._process.kill()
        self._clear_timeout()
        self._set_state(UnitState.CANCELLED)
        self._result = UnitResult(
            unit_id=self.id, state=UnitState.CANCELLED, reason=reason
        )
        self.on_cancelled.emit(reason)
        return True

    def respawn(self) -> OperationUnit:
        """Return a fresh unit for the same spec, for a retry attempt."""
        return OperationUnit(
            self.spec,
            ffmpeg_path=self.ffmpeg_path,
            launcher=self.launcher,
            duration_probe=self.duration_probe,
            attempt=self.attempt + 1,
        )

    # ── Internal ──────────────────────────────────────────────────────────────

    async def _execute(self, args: list[str], timeout: float | None) -> UnitResult:
        with unit_context(self.id, attempt=self.attempt):
            try:
                return await self._execute_inner(args, timeout)
            except asyncio.CancelledError:
                self.cancel("task cancelled")
                raise
            except MTOError as e:
                return self._fail(e)
            except OSError as e:
                return self._fail(e)
            except Exception as e:
                logger.exception(
                    "Unexpected failure in %s unit %s", self.kind.value, self.id[:8]
                )
                return self._fail(e)
            finally:
                self._clear_timeout()
                self._process = None

    async def _execute_inner(
        self, args: list[str], timeout: float | None
    ) -> UnitResult:
        if self.kind is not OperationKind.METADATA:
            self.duration = await self._estimate_duration()
            logger.debug(
                "Duration estimate for %s: %.2fs", self.spec.input, self.duration
            )

        if self.state.is_terminal:
            # Cancelled while probing.
            assert self._result is not None
            return self._result

        command_line = command_as_string(self.ffmpeg_path, args)
        logger.info("Starting %s: %s", self.kind.value, command_line)
        self.on_start.emit(command_line)
        self._set_state(UnitState.RUNNING)

        process = await self.launcher.launch(
            self.ffmpeg_path,
            args,
            capture_stdout=self.kind is OperationKind.METADATA,
        )
        self._process = process
        if self.state.is_terminal:
            # Cancelled while launching; cancel() had no process to kill.
            process.kill()
            await process.wait()
            assert self._result is not None
            return self._result

        if timeout is not None:
            loop = asyncio.get_running_loop()
            self._timeout_handle = loop.call_later(timeout, self.cancel, TIMEOUT_REASON)

        stdout_task: asyncio.Task[str] | None = None
        if self.kind is OperationKind.METADATA:
            stdout_task = asyncio.create_task(process.read_stdout())

        await self._consume_diagnostics(process)
        exit_code = await process.wait()
        stdout = await stdout_task if stdout_task is not None else ""

        if self.state is UnitState.CANCELLED:
            assert self._result is not None
            return self._result

        if exit_code == 0:
            return self._finish(stdout)

        logger.warning(
            "%s exited with code %s for %s",
            self.ffmpeg_path,
            exit_code,
            self.spec.input,
        )
        return self._fail(
            ProcessExitError(exit_code, list(self._diagnostics), kind=self.kind.value)
        )

    async def _estimate_duration(self) -> float:
        total = 0.0
        for source in self.spec.sources:
            total += await self.duration_probe(source)

        if self.kind in (OperationKind.CLIP, OperationKind.TO_GIF):
            # ffmpeg reports output time, which is bounded by the clip length.
            requested = self.spec.duration or total
            remaining = total - (self.spec.start or 0.0)
            if remaining > 0:
                return min(remaining, requested)
            return requested
        return total

    async def _consume_diagnostics(self, process: ProcessHandle) -> None:
        throttle = ProgressThrottle(self.duration)
        async for line in process.stderr_lines():
            self._diagnostics.append(line)
            sample = throttle.feed_line(line)
            if sample is not None:
                self._emit_progress(sample)

    def _emit_progress(self, sample: ProgressSample) -> None:
        if self.state is not UnitState.RUNNING:
            return
        self.last_percent = sample.percent
        self.on_progress.emit(sample)

    def _finish(self, stdout: str) -> UnitResult:
        metadata = parse_ffmetadata(stdout) if stdout else {}
        self._set_state(UnitState.DONE)
        self._result = UnitResult(
            unit_id=self.id,
            state=UnitState.DONE,
            output=self.spec.output,
            metadata=metadata,
        )
        logger.info("Finished %s: %s", self.kind.value, self.spec.output or "-")
        self.on_done.emit(self.spec.output)
        return self._result

    def _fail(self, error: BaseException) -> UnitResult:
        if self.state.is_terminal:
            assert self._result is not None
            return self._result
        logger.error("%s unit %s failed: %s", self.kind.value, self.id[:8], error)
        self._set_state(UnitState.ERROR)
        self._result = UnitResult(unit_id=self.id, state=UnitState.ERROR, error=error)
        self.on_error.emit(error)
        return self._result

    def _set_state(self, state: UnitState) -> None:
        if self.state.is_terminal:
            raise UnitStateError(
                f"Unit {self.id} is {self.state.value}; cannot become {state.value}"
            )
        self.state = state
        self.on_state.emit(state)

    def _clear_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
