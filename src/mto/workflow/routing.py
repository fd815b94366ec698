"""Pure helpers for workflow sequencing.

Step input resolution, default output naming, per-kind timeouts and
progress/ETA arithmetic. Nothing here touches processes or the event
loop, so every rule can be tested from a step list alone.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from pathlib import Path

from mto.jobs.models import (
    AUDIO_ONLY_KINDS,
    PRODUCES_MEDIA_KINDS,
    REQUIRES_VIDEO_KINDS,
    SNAPSHOT_KINDS,
    OperationKind,
)
from mto.workflow.models import WorkflowStep

# Per-kind step time limits, in seconds.
STEP_TIMEOUTS: dict[OperationKind, float] = {
    OperationKind.CONVERT: 15 * 60,
    OperationKind.COMPRESS: 20 * 60,
    OperationKind.THUMBNAIL: 2 * 60,
    OperationKind.METADATA: 2 * 60,
    OperationKind.EXTRACT_AUDIO: 5 * 60,
    OperationKind.REPLACE_AUDIO: 10 * 60,
    OperationKind.TO_GIF: 10 * 60,
    OperationKind.CLIP: 5 * 60,
    OperationKind.CONCAT: 15 * 60,
    OperationKind.WATERMARK: 10 * 60,
    OperationKind.EXTRACT_FRAMES: 20 * 60,
}

DEFAULT_STEP_TIMEOUT: float = 10 * 60

# Extensions that suit each kind's output; others get an advisory warning.
VALID_EXTENSIONS: dict[OperationKind, tuple[str, ...]] = {
    OperationKind.CONVERT: (".mp4", ".mkv", ".avi", ".mov", ".webm"),
    OperationKind.COMPRESS: (".mp4", ".mkv", ".avi"),
    OperationKind.THUMBNAIL: (".png", ".jpg", ".jpeg"),
    OperationKind.EXTRACT_AUDIO: (".aac", ".mp3", ".wav", ".flac", ".ogg", ".ac3"),
    OperationKind.REPLACE_AUDIO: (".mp4", ".mkv", ".avi", ".mov"),
    OperationKind.TO_GIF: (".gif",),
    OperationKind.CLIP: (".mp4", ".mkv", ".avi", ".mov"),
    OperationKind.CONCAT: (".mp4", ".mkv", ".avi", ".mov"),
    OperationKind.WATERMARK: (".mp4", ".mkv", ".avi", ".mov"),
    OperationKind.EXTRACT_FRAMES: (".png", ".jpg", ".jpeg"),
    OperationKind.METADATA: (),
}

# (name prefix, extension) for generated outputs.
_DEFAULT_OUTPUT_NAMES: dict[OperationKind, tuple[str, str]] = {
    OperationKind.CONVERT: ("output", ".mp4"),
    OperationKind.COMPRESS: ("compressed", ".mp4"),
    OperationKind.REPLACE_AUDIO: ("replaced", ".mp4"),
    OperationKind.TO_GIF: ("animation", ".gif"),
    OperationKind.CLIP: ("clip", ".mp4"),
    OperationKind.CONCAT: ("concatenated", ".mp4"),
    OperationKind.WATERMARK: ("watermarked", ".mp4"),
    OperationKind.EXTRACT_AUDIO: ("audio", ".aac"),
    OperationKind.THUMBNAIL: ("thumb", ".png"),
    OperationKind.EXTRACT_FRAMES: ("frames", ".png"),
    OperationKind.METADATA: ("metadata", ".txt"),
}


def get_step_timeout(
    kind: OperationKind,
    overrides: Mapping[OperationKind, float] | None = None,
) -> float:
    """Time limit in seconds for a step of *kind*."""
    if overrides and kind in overrides:
        return overrides[kind]
    return STEP_TIMEOUTS.get(kind, DEFAULT_STEP_TIMEOUT)


def generate_default_output(
    kind: OperationKind,
    index: int,
    timestamp: int | None = None,
    directory: Path | str | None = None,
) -> str:
    """Deterministic output name from kind, step index and a timestamp.

    Args:
        kind: Operation kind of the step.
        index: 0-based step index.
        timestamp: Milliseconds since the epoch; defaults to now.
        directory: Directory for the file; defaults to the working dir.
    """
    if timestamp is None:
        timestamp = int(time.time() * 1000)
    prefix, ext = _DEFAULT_OUTPUT_NAMES.get(kind, ("output", ""))
    if kind is OperationKind.EXTRACT_FRAMES:
        name = f"{prefix}_{index}_{timestamp}_%04d{ext}"
    else:
        name = f"{prefix}_{index}_{timestamp}{ext}"
    if directory is None:
        return name
    return str(Path(directory) / name)


def resolve_step_input(
    steps: Sequence[WorkflowStep],
    index: int,
    initial_input: str,
) -> str:
    """Input path for ``steps[index]``.

    Snapshot steps (stills) need a decodable video, so they take the output
    of the nearest earlier step that produces playable media, falling back
    to the workflow input. Every other step takes the previous step's
    output, and the first step takes the workflow input.
    """
    if index < 0 or index >= len(steps):
        raise IndexError(f"step index {index} out of range for {len(steps)} steps")

    step = steps[index]
    if step.kind in SNAPSHOT_KINDS:
        for prev in reversed(steps[:index]):
            if prev.kind in PRODUCES_MEDIA_KINDS and prev.output:
                return prev.output
        return initial_input

    if index == 0:
        return initial_input
    previous_output = steps[index - 1].output
    if not previous_output:
        raise ValueError(f"Output of step {index} is not resolved")
    return previous_output


def sequence_warnings(steps: Sequence[WorkflowStep]) -> list[tuple[str, OperationKind]]:
    """Advisory warnings for steps that need video after an audio-only step."""
    warnings: list[tuple[str, OperationKind]] = []
    for prev, step in zip(steps, steps[1:]):
        if (
            prev.kind in AUDIO_ONLY_KINDS
            and step.kind in REQUIRES_VIDEO_KINDS
            and step.kind not in SNAPSHOT_KINDS
        ):
            warnings.append(
                (
                    f"{step.kind.value} after {prev.kind.value} may fail - "
                    "no video stream available",
                    step.kind,
                )
            )
    return warnings


def extension_warning(kind: OperationKind, output: str) -> str | None:
    """Advisory message when *output* has an unusual extension for *kind*."""
    valid = VALID_EXTENSIONS.get(kind, ())
    if not valid:
        return None
    ext = Path(output).suffix.lower()
    if ext in valid:
        return None
    return (
        f"Output extension '{ext}' may not be optimal for {kind.value} operation. "
        f"Consider: {', '.join(valid)}"
    )


def overall_percent(step_index: int, step_percent: float, total_steps: int) -> float:
    """Workflow-level percent from a 0-based step index and its percent."""
    if total_steps <= 0:
        return 0.0
    step_percent = max(0.0, min(100.0, step_percent))
    return (step_index + step_percent / 100) / total_steps * 100


def estimate_eta(elapsed_seconds: float, step_percent: float) -> float | None:
    """Remaining seconds for the current step, or None before any progress."""
    if step_percent <= 0:
        return None
    fraction = min(step_percent, 100.0) / 100
    return elapsed_seconds / fraction - elapsed_seconds
