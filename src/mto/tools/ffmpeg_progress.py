"""FFmpeg progress parsing utilities.

ffmpeg reports progress on stderr in status lines like::

    frame=  240 fps= 30 q=-1.0 size=    1024kB time=00:00:08.00 bitrate=1048.6kbits/s speed=1.01x

This module turns such lines into structured fields, derives a percent
from a duration estimate and throttles emission so that a run produces at
most about one hundred progress samples.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from mto.jobs.models import ProgressSample

# Regex patterns for the four fields we track; each is matched independently.
PROGRESS_PATTERNS = {
    "frame": re.compile(r"frame=\s*(\d+)"),
    "fps": re.compile(r"fps=\s*([\d.]+)"),
    "kbps": re.compile(r"bitrate=\s*([\d.]+)kbits/s"),
    "time": re.compile(r"time=\s*(\d+:\d{1,2}:\d{1,2}(?:\.\d+)?)"),
}

# Smallest percent advance that produces a new sample.
MIN_PERCENT_STEP = 1.0


@dataclass
class FFmpegProgress:
    """Raw fields parsed from one stderr line. Missing fields are None."""

    frame: int | None = None
    fps: float | None = None
    kbps: float | None = None
    time: str | None = None

    @property
    def out_time_seconds(self) -> float | None:
        """Get the timecode in seconds."""
        if self.time is None:
            return None
        return timecode_to_seconds(self.time)

    def get_percent(self, duration_seconds: float | None) -> float | None:
        """Calculate progress percentage based on duration.

        Args:
            duration_seconds: Estimated duration of the output in seconds.

        Returns:
            Percentage clamped to 0-100, or None when it cannot be known
            (no duration estimate or no timecode on this line).
        """
        if duration_seconds is None or duration_seconds <= 0:
            return None
        out_time = self.out_time_seconds
        if out_time is None:
            return None
        return max(0.0, min(100.0, out_time / duration_seconds * 100))


def timecode_to_seconds(timecode: str) -> float:
    """Convert ``HH:MM:SS[.ms]`` (or plain seconds) to seconds.

    Unparseable input yields 0.0.
    """
    parts = timecode.strip().split(":")
    try:
        if len(parts) == 3:
            hours, minutes, seconds = parts
            return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
        return float(timecode)
    except ValueError:
        return 0.0


def parse_stderr_progress(line: str) -> FFmpegProgress | None:
    """Parse one ffmpeg stderr line.

    Args:
        line: A line of ffmpeg diagnostic output.

    Returns:
        FFmpegProgress with whichever fields matched, or None if the line
        carries none of frame, fps, bitrate or time.
    """
    result = FFmpegProgress()
    matched = False

    frame_match = PROGRESS_PATTERNS["frame"].search(line)
    if frame_match:
        result.frame = int(frame_match.group(1))
        matched = True

    fps_match = PROGRESS_PATTERNS["fps"].search(line)
    if fps_match:
        try:
            result.fps = float(fps_match.group(1))
            matched = True
        except ValueError:
            pass

    kbps_match = PROGRESS_PATTERNS["kbps"].search(line)
    if kbps_match:
        try:
            result.kbps = float(kbps_match.group(1))
            matched = True
        except ValueError:
            pass

    time_match = PROGRESS_PATTERNS["time"].search(line)
    if time_match:
        result.time = time_match.group(1)
        matched = True

    return result if matched else None


class ProgressThrottle:
    """Turns parsed progress lines into throttled ProgressSamples.

    A sample is produced only when the percent is known and has advanced by
    at least MIN_PERCENT_STEP since the last produced sample, so the
    emitted percents are strictly increasing and never exceed 100.
    """

    def __init__(self, duration_seconds: float | None) -> None:
        self.duration_seconds = duration_seconds
        self.last_percent = 0.0

    def offer(self, progress: FFmpegProgress) -> ProgressSample | None:
        """Return a sample for *progress* if it should be emitted."""
        percent = progress.get_percent(self.duration_seconds)
        if percent is None:
            return None
        if percent - self.last_percent < MIN_PERCENT_STEP:
            return None
        self.last_percent = percent
        return ProgressSample(
            percent=percent,
            frames=progress.frame or 0,
            fps=progress.fps or 0.0,
            kbps=progress.kbps or 0.0,
            timecode=progress.time,
        )

    def feed_line(self, line: str) -> ProgressSample | None:
        """Parse *line* and offer it in one step."""
        progress = parse_stderr_progress(line)
        if progress is None:
            return None
        return self.offer(progress)
