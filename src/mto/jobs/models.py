"""Data models for operation units.

Pure dataclasses and enums: no I/O, no asyncio. These travel freely
between the unit, the scheduler, the workflow sequencer and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class OperationKind(str, Enum):
    """Supported ffmpeg operations."""

    CONVERT = "convert"
    COMPRESS = "compress"
    THUMBNAIL = "thumbnail"
    METADATA = "metadata"
    EXTRACT_AUDIO = "extract_audio"
    REPLACE_AUDIO = "replace_audio"
    TO_GIF = "to_gif"
    CLIP = "clip"
    CONCAT = "concat"
    WATERMARK = "watermark"
    EXTRACT_FRAMES = "extract_frames"

    @classmethod
    def parse(cls, value: str | OperationKind) -> OperationKind:
        """Accept a kind, its value, or a hyphenated/camel spelling of it."""
        if isinstance(value, OperationKind):
            return value
        normalized = value.strip().replace("-", "_").casefold()
        aliases = {
            "probe": cls.METADATA,
            "probe_metadata": cls.METADATA,
            "extractaudio": cls.EXTRACT_AUDIO,
            "replaceaudio": cls.REPLACE_AUDIO,
            "togif": cls.TO_GIF,
            "gif": cls.TO_GIF,
            "concatenate": cls.CONCAT,
            "frames": cls.EXTRACT_FRAMES,
            "extractframes": cls.EXTRACT_FRAMES,
        }
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


# Kinds whose output is a playable media stream.
PRODUCES_MEDIA_KINDS: frozenset[OperationKind] = frozenset(
    {
        OperationKind.CONVERT,
        OperationKind.COMPRESS,
        OperationKind.CLIP,
        OperationKind.WATERMARK,
        OperationKind.TO_GIF,
        OperationKind.REPLACE_AUDIO,
    }
)

# Kinds whose output is audio only.
AUDIO_ONLY_KINDS: frozenset[OperationKind] = frozenset({OperationKind.EXTRACT_AUDIO})

# Kinds that need a video stream in their input.
REQUIRES_VIDEO_KINDS: frozenset[OperationKind] = frozenset(
    {
        OperationKind.THUMBNAIL,
        OperationKind.WATERMARK,
        OperationKind.TO_GIF,
        OperationKind.CLIP,
        OperationKind.CONVERT,
        OperationKind.COMPRESS,
    }
)

# Kinds that produce still images rather than a media stream.
SNAPSHOT_KINDS: frozenset[OperationKind] = frozenset(
    {OperationKind.THUMBNAIL, OperationKind.EXTRACT_FRAMES}
)


class UnitState(str, Enum):
    """Lifecycle of an operation unit.

    queued -> running -> one of (done, error, cancelled). A unit can also
    move straight from queued to error (probe failure) or cancelled.
    """

    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({UnitState.DONE, UnitState.ERROR, UnitState.CANCELLED})


# Parameter defaults filled into every spec a unit is built from.
DEFAULT_BITRATE = "1000k"
DEFAULT_TIMESTAMP = "00:00:01"
DEFAULT_AUDIO_CODEC = "aac"
DEFAULT_START = 0.0
DEFAULT_CLIP_DURATION = 5.0
DEFAULT_FRAME_RATE = 1.0
DEFAULT_POSITION = (10, 10)


@dataclass(frozen=True)
class OperationSpec:
    """Description of one ffmpeg operation.

    Immutable: a unit keeps the spec it was built from (with defaults
    filled in) for its whole life.
    """

    kind: OperationKind
    input: str
    output: str | None = None
    format: str | None = None
    bitrate: str | None = None
    time: str | None = None
    codec: str | None = None
    audio: str | None = None
    start: float | None = None
    duration: float | None = None
    watermark: str | None = None
    x: int | None = None
    y: int | None = None
    fps: float | None = None
    inputs: tuple[str, ...] = ()
    """Extra inputs for concat. When empty, ``input`` is the only source."""

    def with_defaults(self) -> OperationSpec:
        """Return a copy with unset optional parameters given defaults."""
        x, y = DEFAULT_POSITION
        return replace(
            self,
            bitrate=self.bitrate if self.bitrate is not None else DEFAULT_BITRATE,
            time=self.time if self.time is not None else DEFAULT_TIMESTAMP,
            codec=self.codec if self.codec is not None else DEFAULT_AUDIO_CODEC,
            start=self.start if self.start is not None else DEFAULT_START,
            duration=(
                self.duration if self.duration is not None else DEFAULT_CLIP_DURATION
            ),
            fps=self.fps if self.fps is not None else DEFAULT_FRAME_RATE,
            x=self.x if self.x is not None else x,
            y=self.y if self.y is not None else y,
        )

    @property
    def sources(self) -> tuple[str, ...]:
        """All media inputs of the operation, in order."""
        if self.inputs:
            return self.inputs
        return (self.input,)


@dataclass(frozen=True)
class ProgressSample:
    """One normalized progress reading of a running unit."""

    percent: float
    """0-100, non-decreasing within one run."""

    frames: int = 0
    fps: float = 0.0
    kbps: float = 0.0
    timecode: str | None = None
    """Source timecode (HH:MM:SS[.ms]) the sample was derived from."""


@dataclass(frozen=True)
class UnitResult:
    """Terminal outcome of one unit run."""

    unit_id: str
    state: UnitState
    output: str | None = None
    error: BaseException | None = None
    reason: str | None = None
    """Cancellation reason when state is CANCELLED."""

    metadata: dict[str, Any] = field(default_factory=dict)
    """Parsed ffmetadata for METADATA units."""

    @property
    def ok(self) -> bool:
        return self.state is UnitState.DONE
