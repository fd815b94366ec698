"""Media introspection via ffprobe."""

from mto.introspector.ffprobe import (
    DurationProbe,
    FFprobeDurationProbe,
    parse_duration,
    parse_ffmetadata,
)

__all__ = [
    "DurationProbe",
    "FFprobeDurationProbe",
    "parse_duration",
    "parse_ffmetadata",
]
