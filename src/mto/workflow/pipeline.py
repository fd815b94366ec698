"""Workflow builder and sequencer.

A Workflow is an ordered list of steps run as one logical job, one step
at a time. Builder methods validate their own arguments eagerly; run()
validates the whole workflow, wires each step's input to an earlier
output, aggregates per-step progress into an overall percent and ETA and
reports failures in the mto error taxonomy.

Events:

    on_step_start(kind, step_number)
    on_progress(overall_percent, step_number, total_steps, eta_seconds)
    on_step_complete(kind, step_number, output)
    on_warning(message, kind)
    on_done(outputs)
    on_error(error, step_number)

Step numbers are 1-based. Failures not tied to a step use
PREFLIGHT_STEP_INDEX (rejected before any step ran) or ABORTED_STEP_INDEX
(abort and unexpected failures).
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from collections.abc import Callable, Mapping
from pathlib import Path

from mto.core.events import EventHook
from mto.executor.process import ProcessLauncher
from mto.introspector.ffprobe import DurationProbe
from mto.jobs.exceptions import (
    ErrorCode,
    MediaFileNotFoundError,
    MTOError,
    PermissionDeniedError,
    StepTimeoutError,
    ValidationError,
    WorkflowAbortedError,
    WorkflowError,
    WorkflowRunningError,
)
from mto.jobs.models import (
    OperationKind,
    OperationSpec,
    ProgressSample,
    UnitState,
)
from mto.jobs.unit import OperationUnit
from mto.logging.context import unit_context
from mto.workflow.errors import classify_error
from mto.workflow.models import WorkflowResult, WorkflowStep
from mto.workflow.routing import (
    estimate_eta,
    extension_warning,
    generate_default_output,
    get_step_timeout,
    overall_percent,
    resolve_step_input,
    sequence_warnings,
)

logger = logging.getLogger(__name__)

PREFLIGHT_STEP_INDEX = 0
ABORTED_STEP_INDEX = -1

SUPPORTED_AUDIO_CODECS = ("aac", "mp3", "wav", "flac", "ogg", "ac3")
MAX_FRAME_RATE = 60
GIF_WARN_DURATION = 30

_BITRATE_PATTERN = re.compile(r"^\d+[kKmM]?$")
_TIMESTAMP_PATTERN = re.compile(r"^(?:\d+(?:\.\d+)?|\d{2}:\d{2}:\d{2}(?:\.\d+)?)$")

UnitFactory = Callable[[OperationSpec], OperationUnit]


class _StepFailure(Exception):
    """Carries a categorized step error out of the step loop."""

    def __init__(self, error: MTOError, step_number: int) -> None:
        self.error = error
        self.step_number = step_number
        super().__init__(str(error))


class Workflow:
    """Ordered sequence of operations run one after another.

    Args:
        input: Initial input path; can also be given via set_input() or run().
        unit_factory: Builds the unit for each step. Defaults to an
            OperationUnit using ffmpeg_path, launcher and duration_probe.
        step_timeouts: Per-kind overrides of the step time limits (seconds).
        output_dir: Directory for generated outputs; defaults to the
            directory of the initial input.
    """

    def __init__(
        self,
        input: str | None = None,
        *,
        unit_factory: UnitFactory | None = None,
        ffmpeg_path: Path | str = "ffmpeg",
        launcher: ProcessLauncher | None = None,
        duration_probe: DurationProbe | None = None,
        step_timeouts: Mapping[OperationKind, float] | None = None,
        output_dir: Path | str | None = None,
    ) -> None:
        self._initial_input = input or ""
        self._steps: list[WorkflowStep] = []
        self._running = False
        self._aborted = False
        self._step_timeouts = dict(step_timeouts or {})
        self._output_dir = Path(output_dir) if output_dir is not None else None
        self.current_unit: OperationUnit | None = None

        if unit_factory is None:

            def unit_factory(spec: OperationSpec) -> OperationUnit:
                return OperationUnit(
                    spec,
                    ffmpeg_path=ffmpeg_path,
                    launcher=launcher,
                    duration_probe=duration_probe,
                )

        self._unit_factory = unit_factory

        self.on_step_start = EventHook("workflow.step_start")
        self.on_progress = EventHook("workflow.progress")
        self.on_step_complete = EventHook("workflow.step_complete")
        self.on_warning = EventHook("workflow.warning")
        self.on_done = EventHook("workflow.done")
        self.on_error = EventHook("workflow.error")

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def input(self) -> str:
        return self._initial_input

    @property
    def steps(self) -> tuple[WorkflowStep, ...]:
        return tuple(self._steps)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_aborted(self) -> bool:
        return self._aborted

    # ── Builder ───────────────────────────────────────────────────────────────

    def set_input(self, input: str) -> Workflow:
        self._validate_not_running()
        self._initial_input = input
        return self

    def add_step(self, step: WorkflowStep | OperationSpec) -> Workflow:
        """Append a step. OperationSpecs are converted; their input is ignored."""
        self._validate_not_running()
        if isinstance(step, OperationSpec):
            step = WorkflowStep.from_spec(step)
        self._steps.append(step)
        return self

    def convert(self, output: str, format: str | None = None) -> Workflow:
        self._validate_output(output, OperationKind.CONVERT)
        return self._add(OperationKind.CONVERT, output, format=format)

    def compress(self, output: str, bitrate: str | None = None) -> Workflow:
        self._validate_output(output, OperationKind.COMPRESS)
        self._validate_bitrate(bitrate)
        return self._add(OperationKind.COMPRESS, output, bitrate=bitrate)

    def thumbnail(self, output: str, time: str | None = None) -> Workflow:
        self._validate_output(output, OperationKind.THUMBNAIL)
        self._validate_timestamp(time)
        return self._add(OperationKind.THUMBNAIL, output, time=time)

    def extract_audio(self, output: str, codec: str = "aac") -> Workflow:
        self._validate_output(output, OperationKind.EXTRACT_AUDIO)
        self._validate_audio_codec(codec)
        return self._add(OperationKind.EXTRACT_AUDIO, output, codec=codec)

    def replace_audio(self, output: str, audio: str) -> Workflow:
        self._validate_output(output, OperationKind.REPLACE_AUDIO)
        self._validate_aux_file(audio, "Audio", OperationKind.REPLACE_AUDIO)
        return self._add(OperationKind.REPLACE_AUDIO, output, audio=audio)

    def to_gif(
        self,
        output: str,
        start: float | None = None,
        duration: float | None = None,
    ) -> Workflow:
        self._validate_output(output, OperationKind.TO_GIF)
        if start is not None and start < 0:
            raise ValidationError("GIF start time cannot be negative", kind="to_gif")
        if duration is not None and duration <= 0:
            raise ValidationError("GIF duration must be positive", kind="to_gif")
        if duration is not None and duration > GIF_WARN_DURATION:
            self._warn(
                f"GIF duration > {GIF_WARN_DURATION}s may result in large files",
                OperationKind.TO_GIF,
            )
        return self._add(OperationKind.TO_GIF, output, start=start, duration=duration)

    def clip(self, output: str, start: float, duration: float) -> Workflow:
        self._validate_output(output, OperationKind.CLIP)
        if start < 0:
            raise ValidationError("Clip start time cannot be negative", kind="clip")
        if duration <= 0:
            raise ValidationError("Clip duration must be positive", kind="clip")
        return self._add(OperationKind.CLIP, output, start=start, duration=duration)

    def concat(self, output: str) -> Workflow:
        self._validate_output(output, OperationKind.CONCAT)
        return self._add(OperationKind.CONCAT, output)

    def add_watermark(
        self,
        output: str,
        watermark: str,
        x: int = 10,
        y: int = 10,
    ) -> Workflow:
        self._validate_output(output, OperationKind.WATERMARK)
        self._validate_aux_file(watermark, "Watermark", OperationKind.WATERMARK)
        if x < 0 or y < 0:
            raise ValidationError(
                "Watermark position cannot be negative", kind="watermark"
            )
        return self._add(OperationKind.WATERMARK, output, watermark=watermark, x=x, y=y)

    def extract_frames(self, output: str, fps: float | None = None) -> Workflow:
        self._validate_output(output, OperationKind.EXTRACT_FRAMES)
        if fps is not None and (fps <= 0 or fps > MAX_FRAME_RATE):
            raise ValidationError(
                f"FPS must be between 1 and {MAX_FRAME_RATE}", kind="extract_frames"
            )
        return self._add(OperationKind.EXTRACT_FRAMES, output, fps=fps)

    def abort(self) -> bool:
        """Stop scheduling further steps.

        The running step is allowed to finish; the workflow then reports
        WorkflowAbortedError with ABORTED_STEP_INDEX.

        Returns:
            False if the workflow is not running.
        """
        if not self._running:
            return False
        logger.info("Abort requested for workflow on %s", self._initial_input)
        self._aborted = True
        return True

    # ── Execution ─────────────────────────────────────────────────────────────

    def run(self, input: str | None = None) -> asyncio.Task[WorkflowResult]:
        """Validate and start the workflow on the running event loop.

        Never raises for validation failures or a concurrent run: those are
        delivered through on_error and the returned task, like any other
        failure.

        Returns:
            Task resolving to the WorkflowResult.
        """
        loop = asyncio.get_running_loop()

        if self._running:
            return loop.create_task(
                self._reject(
                    WorkflowRunningError("Pipeline is already running"),
                    PREFLIGHT_STEP_INDEX,
                )
            )

        if input:
            self._initial_input = input

        try:
            self._validate_pipeline()
        except MTOError as e:
            return loop.create_task(self._reject(e, PREFLIGHT_STEP_INDEX))

        self._running = True
        self._aborted = False
        return loop.create_task(self._execute_pipeline(), name="workflow")

    async def _reject(self, error: MTOError, step_number: int) -> WorkflowResult:
        logger.error("Workflow rejected: %s", error)
        self.on_error.emit(error, step_number)
        return WorkflowResult(success=False, error=error, step_number=step_number)

    async def _execute_pipeline(self) -> WorkflowResult:
        total = len(self._steps)
        outputs: list[str] = []
        pipeline_start = time.monotonic()

        try:
            for message, kind in sequence_warnings(self._steps):
                self._warn(message, kind)

            for index, step in enumerate(self._steps):
                if self._aborted:
                    break
                step.input = resolve_step_input(self._steps, index, self._initial_input)
                if not step.output:
                    step.output = generate_default_output(
                        step.kind, index, directory=self._generated_output_dir()
                    )
                outputs.append(await self._execute_step(step, index, total))

            if self._aborted:
                error = WorkflowAbortedError()
                logger.warning("Workflow aborted after %d step(s)", len(outputs))
                self.on_error.emit(error, ABORTED_STEP_INDEX)
                return WorkflowResult(
                    success=False,
                    outputs=outputs,
                    error=error,
                    step_number=ABORTED_STEP_INDEX,
                )

            logger.info(
                "Pipeline completed in %.2fs", time.monotonic() - pipeline_start
            )
            self.on_done.emit(list(outputs))
            return WorkflowResult(success=True, outputs=outputs)

        except _StepFailure as failure:
            logger.error(
                "Workflow failed at step %d: %s", failure.step_number, failure.error
            )
            self.on_error.emit(failure.error, failure.step_number)
            return WorkflowResult(
                success=False,
                outputs=outputs,
                error=failure.error,
                step_number=failure.step_number,
            )
        except Exception as e:
            error = classify_error(e)
            logger.exception("Unexpected workflow failure")
            self.on_error.emit(error, ABORTED_STEP_INDEX)
            return WorkflowResult(
                success=False,
                outputs=outputs,
                error=error,
                step_number=ABORTED_STEP_INDEX,
            )
        finally:
            self._running = False
            self.current_unit = None

    async def _execute_step(self, step: WorkflowStep, index: int, total: int) -> str:
        step_number = index + 1
        kind = step.kind
        unit = self._unit_factory(step.to_spec())
        self.current_unit = unit
        step_start = time.monotonic()

        def on_unit_progress(sample: ProgressSample) -> None:
            if self._aborted:
                return
            elapsed = time.monotonic() - step_start
            self.on_progress.emit(
                overall_percent(index, sample.percent, total),
                step_number,
                total,
                estimate_eta(elapsed, sample.percent),
            )

        unit.on_progress.connect(on_unit_progress)
        self.on_step_start.emit(kind, step_number)
        timeout = get_step_timeout(kind, self._step_timeouts)

        with unit_context(step=step_number):
            logger.info(
                "Step %d/%d (%s): %s -> %s",
                step_number,
                total,
                kind.value,
                step.input,
                step.output,
            )
            try:
                task = unit.start()
            except MTOError as e:
                raise _StepFailure(classify_error(e, kind.value), step_number) from e

            try:
                result = await asyncio.wait_for(asyncio.shield(task), timeout)
            except TimeoutError:
                unit.cancel("timeout")
                await task
                raise _StepFailure(
                    StepTimeoutError(kind.value, step_number, timeout), step_number
                ) from None

        if result.state is UnitState.DONE:
            output = result.output or step.output or ""
            logger.info(
                "Step %d (%s) completed in %.2fs",
                step_number,
                kind.value,
                time.monotonic() - step_start,
            )
            self.on_step_complete.emit(kind, step_number, output)
            return output

        if result.state is UnitState.CANCELLED:
            error: MTOError = WorkflowError(
                f"Step {step_number} ({kind.value}) was cancelled: {result.reason}",
                kind=kind.value,
                code=ErrorCode.JOB_FAILED,
            )
        else:
            assert result.error is not None
            error = classify_error(result.error, kind.value)
        raise _StepFailure(error, step_number)

    # ── Validation ────────────────────────────────────────────────────────────

    def _validate_pipeline(self) -> None:
        if not self._initial_input or not self._initial_input.strip():
            raise ValidationError("Pipeline input not set")

        input_path = Path(self._initial_input)
        if not input_path.exists():
            raise MediaFileNotFoundError(
                f"Input file does not exist: {self._initial_input}"
            )
        if not os.access(input_path, os.R_OK):
            raise PermissionDeniedError(
                f"Cannot read input file: {self._initial_input}"
            )

        if not self._steps:
            raise ValidationError("Pipeline has no steps defined")

        self._validate_output_paths()

    def _validate_output_paths(self) -> None:
        seen: set[str] = set()
        for step in self._steps:
            if not step.output:
                continue
            key = os.path.abspath(step.output)
            if key in seen:
                raise ValidationError(
                    f"Duplicate output path: {step.output}", kind=step.kind.value
                )
            seen.add(key)

            output_dir = Path(step.output).parent
            if not output_dir.exists():
                try:
                    output_dir.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise ValidationError(
                        f"Cannot create output directory: {output_dir}",
                        kind=step.kind.value,
                    ) from e

    def _validate_not_running(self) -> None:
        if self._running:
            raise WorkflowRunningError("Cannot modify pipeline while running")

    def _validate_output(self, output: str, kind: OperationKind) -> None:
        # Every step builder calls this first.
        self._validate_not_running()
        if not output or not output.strip():
            raise ValidationError("Output path cannot be empty", kind=kind.value)
        message = extension_warning(kind, output)
        if message:
            self._warn(message, kind)

    def _validate_bitrate(self, bitrate: str | None) -> None:
        if bitrate is not None and not _BITRATE_PATTERN.match(bitrate):
            raise ValidationError(
                f"Invalid bitrate format: {bitrate}. Use format like '800k', '1M'",
                kind="compress",
            )

    def _validate_timestamp(self, timestamp: str | None) -> None:
        if timestamp is not None and not _TIMESTAMP_PATTERN.match(timestamp):
            raise ValidationError(
                f"Invalid timestamp format: {timestamp}. Use HH:MM:SS or seconds",
                kind="thumbnail",
            )

    def _validate_audio_codec(self, codec: str) -> None:
        if codec.casefold() not in SUPPORTED_AUDIO_CODECS:
            raise ValidationError(
                f"Unsupported audio codec: {codec}. "
                f"Supported: {', '.join(SUPPORTED_AUDIO_CODECS)}",
                kind="extract_audio",
            )

    def _validate_aux_file(self, path: str, label: str, kind: OperationKind) -> None:
        if not path or not Path(path).exists():
            raise ValidationError(
                f"{label} file does not exist: {path}", kind=kind.value
            )

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _add(self, kind: OperationKind, output: str, **params: object) -> Workflow:
        cleaned = {key: value for key, value in params.items() if value is not None}
        return self.add_step(WorkflowStep(kind=kind, output=output, params=cleaned))

    def _warn(self, message: str, kind: OperationKind | None = None) -> None:
        logger.warning("%s", message)
        self.on_warning.emit(message, kind)

    def _generated_output_dir(self) -> Path:
        if self._output_dir is not None:
            return self._output_dir
        return Path(self._initial_input).parent
