"""MediaToolkit: one-call entry points for every operation kind.

Each method returns an OperationUnit that has not been started; call
``start()`` or ``run()`` on it, or hand it to a UnitScheduler.

Example:
    toolkit = MediaToolkit()
    unit = toolkit.convert("sample.mp4", "output.mkv", format="matroska")
    unit.on_progress.connect(lambda p: print(f"{p.percent:.0f}%"))
    result = await unit.run()
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from mto.config.loader import get_config
from mto.config.models import MTOConfig
from mto.executor.process import ProcessLauncher
from mto.introspector.ffprobe import DurationProbe, FFprobeDurationProbe
from mto.jobs.exceptions import ValidationError
from mto.jobs.models import OperationKind, OperationSpec
from mto.jobs.scheduler import UnitScheduler
from mto.jobs.unit import OperationUnit
from mto.tools.detection import find_tool, require_tool
from mto.workflow.pipeline import Workflow

logger = logging.getLogger(__name__)


class MediaToolkit:
    """Creates units, workflows and schedulers bound to one set of tools.

    The ffmpeg binary is resolved on construction, so a missing ffmpeg is
    reported here rather than on the first run.

    Args:
        config: Configuration; loaded with get_config() when omitted.
        launcher: Process launcher shared by every unit.
        duration_probe: Duration probe shared by every unit. Defaults to
            ffprobe at the configured or discovered path.

    Raises:
        ToolNotFoundError: If ffmpeg cannot be found.
    """

    def __init__(
        self,
        config: MTOConfig | None = None,
        *,
        launcher: ProcessLauncher | None = None,
        duration_probe: DurationProbe | None = None,
    ) -> None:
        self.config = config or get_config()
        self.ffmpeg_path: Path = require_tool("ffmpeg", self.config.tools.ffmpeg)
        self.ffprobe_path: Path | str = (
            find_tool("ffprobe", self.config.tools.ffprobe) or "ffprobe"
        )
        self.launcher = launcher
        self.duration_probe: DurationProbe = duration_probe or FFprobeDurationProbe(
            self.ffprobe_path
        )
        logger.debug(
            "MediaToolkit using ffmpeg=%s ffprobe=%s",
            self.ffmpeg_path,
            self.ffprobe_path,
        )

    # ── Factories ─────────────────────────────────────────────────────────────

    def create_unit(self, spec: OperationSpec) -> OperationUnit:
        """Build an unstarted unit for *spec* with this toolkit's tools."""
        return OperationUnit(
            spec,
            ffmpeg_path=self.ffmpeg_path,
            launcher=self.launcher,
            duration_probe=self.duration_probe,
        )

    def workflow(self, input: str | None = None) -> Workflow:
        """New workflow whose steps run with this toolkit's tools."""
        return Workflow(
            input,
            unit_factory=self.create_unit,
            step_timeouts=self.config.workflow.step_timeouts,
        )

    def scheduler(
        self,
        concurrency: int | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        timeout: float | None = None,
    ) -> UnitScheduler:
        """New scheduler; unset arguments come from the [jobs] config.

        *timeout* limits each attempt; None means no limit.
        """
        jobs = self.config.jobs
        return UnitScheduler(
            concurrency=concurrency if concurrency is not None else jobs.concurrency,
            max_retries=max_retries if max_retries is not None else jobs.max_retries,
            backoff_seconds=(
                backoff_seconds
                if backoff_seconds is not None
                else jobs.backoff_seconds
            ),
            timeout=timeout,
        )

    # ── Operations ────────────────────────────────────────────────────────────

    def convert(
        self, input: str, output: str, format: str | None = None
    ) -> OperationUnit:
        return self.create_unit(
            OperationSpec(OperationKind.CONVERT, input, output, format=format)
        )

    def compress(
        self, input: str, output: str, bitrate: str | None = None
    ) -> OperationUnit:
        return self.create_unit(
            OperationSpec(OperationKind.COMPRESS, input, output, bitrate=bitrate)
        )

    def thumbnail(
        self, input: str, output: str, time: str | None = None
    ) -> OperationUnit:
        return self.create_unit(
            OperationSpec(OperationKind.THUMBNAIL, input, output, time=time)
        )

    def metadata(self, input: str) -> OperationUnit:
        """Unit that reads container metadata into ``result.metadata``."""
        return self.create_unit(OperationSpec(OperationKind.METADATA, input))

    def extract_audio(
        self, input: str, output: str, codec: str | None = None
    ) -> OperationUnit:
        return self.create_unit(
            OperationSpec(OperationKind.EXTRACT_AUDIO, input, output, codec=codec)
        )

    def replace_audio(self, video: str, audio: str, output: str) -> OperationUnit:
        return self.create_unit(
            OperationSpec(OperationKind.REPLACE_AUDIO, video, output, audio=audio)
        )

    def to_gif(
        self,
        input: str,
        output: str,
        start: float | None = None,
        duration: float | None = None,
    ) -> OperationUnit:
        return self.create_unit(
            OperationSpec(
                OperationKind.TO_GIF, input, output, start=start, duration=duration
            )
        )

    def clip(
        self,
        input: str,
        output: str,
        start: float | None = None,
        duration: float | None = None,
    ) -> OperationUnit:
        return self.create_unit(
            OperationSpec(
                OperationKind.CLIP, input, output, start=start, duration=duration
            )
        )

    def concat(self, inputs: Sequence[str], output: str) -> OperationUnit:
        """Unit joining *inputs* in order.

        Raises:
            ValidationError: If *inputs* is empty.
        """
        if not inputs:
            raise ValidationError("concat needs at least one input", kind="concat")
        return self.create_unit(
            OperationSpec(
                OperationKind.CONCAT, inputs[0], output, inputs=tuple(inputs)
            )
        )

    def add_watermark(
        self,
        input: str,
        watermark: str,
        output: str,
        x: int | None = None,
        y: int | None = None,
    ) -> OperationUnit:
        return self.create_unit(
            OperationSpec(
                OperationKind.WATERMARK, input, output, watermark=watermark, x=x, y=y
            )
        )

    def extract_frames(
        self, input: str, pattern: str, fps: float | None = None
    ) -> OperationUnit:
        """Unit writing stills to *pattern* (e.g. ``frames/%04d.png``)."""
        return self.create_unit(
            OperationSpec(OperationKind.EXTRACT_FRAMES, input, pattern, fps=fps)
        )
