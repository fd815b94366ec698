"""FFmpeg argument construction.

Builds the argument list (without the binary) for each operation kind.
Pure functions: no I/O, no process, so flag generation can be tested
without running anything and the exact command can be logged verbatim.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence

from mto.jobs.exceptions import ValidationError
from mto.jobs.models import OperationKind, OperationSpec

# GIF filter chain: 10 fps, 320px wide, aspect preserved.
GIF_FILTER = "fps=10,scale=320:-1:flags=lanczos"


def _fmt_number(value: float | int | None) -> str:
    """Render a number without a trailing .0 (ffmpeg accepts both)."""
    if value is None:
        return "0"
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def _require_output(spec: OperationSpec, what: str = "output") -> str:
    if not spec.output:
        raise ValidationError(
            f"{spec.kind.value}: missing {what}", kind=spec.kind.value
        )
    return spec.output


def build_args(spec: OperationSpec) -> list[str]:
    """Build ffmpeg arguments for *spec*.

    The spec is expected to have defaults filled in
    (OperationSpec.with_defaults()).

    Raises:
        ValidationError: If a field the kind needs is missing.
    """
    kind = spec.kind
    if not spec.input:
        raise ValidationError(f"{kind.value}: missing input", kind=kind.value)

    if kind is OperationKind.CONVERT:
        output = _require_output(spec)
        format_args = ["-f", spec.format] if spec.format else []
        return ["-i", spec.input, *format_args, "-y", output]

    if kind is OperationKind.COMPRESS:
        output = _require_output(spec)
        return ["-i", spec.input, "-b:v", str(spec.bitrate), "-y", output]

    if kind is OperationKind.THUMBNAIL:
        output = _require_output(spec)
        return ["-ss", str(spec.time), "-i", spec.input, "-vframes", "1", "-y", output]

    if kind is OperationKind.METADATA:
        return ["-i", spec.input, "-f", "ffmetadata", "-"]

    if kind is OperationKind.EXTRACT_AUDIO:
        output = _require_output(spec)
        return ["-i", spec.input, "-vn", "-acodec", str(spec.codec), "-y", output]

    if kind is OperationKind.REPLACE_AUDIO:
        if not spec.audio:
            raise ValidationError("replace_audio: missing audio", kind=kind.value)
        output = _require_output(spec)
        return [
            "-i", spec.input,
            "-i", spec.audio,
            "-c:v", "copy",
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-y", output,
        ]  # fmt: skip

    if kind is OperationKind.TO_GIF:
        output = _require_output(spec)
        return [
            "-ss", _fmt_number(spec.start),
            "-t", _fmt_number(spec.duration),
            "-i", spec.input,
            "-vf", GIF_FILTER,
            "-y", output,
        ]  # fmt: skip

    if kind is OperationKind.CLIP:
        output = _require_output(spec)
        return [
            "-ss", _fmt_number(spec.start),
            "-t", _fmt_number(spec.duration),
            "-i", spec.input,
            "-c", "copy",
            "-y", output,
        ]  # fmt: skip

    if kind is OperationKind.CONCAT:
        output = _require_output(spec)
        return ["-i", "concat:" + "|".join(spec.sources), "-c", "copy", "-y", output]

    if kind is OperationKind.WATERMARK:
        if not spec.watermark:
            raise ValidationError("watermark: missing watermark", kind=kind.value)
        output = _require_output(spec)
        return [
            "-i", spec.input,
            "-i", spec.watermark,
            "-filter_complex", f"overlay={spec.x}:{spec.y}",
            "-y", output,
        ]  # fmt: skip

    if kind is OperationKind.EXTRACT_FRAMES:
        output = _require_output(spec, "output pattern")
        fps_args = ["-vf", f"fps={_fmt_number(spec.fps)}"] if spec.fps else []
        return ["-i", spec.input, *fps_args, "-y", output]

    raise ValidationError(f"Unknown operation kind: {kind!r}")


def command_as_string(binary: str, args: Sequence[str]) -> str:
    """Human-readable, shell-quoted version of the command for logging."""
    return shlex.join([binary, *args])
