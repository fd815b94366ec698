"""Tests for ffprobe duration parsing and ffmetadata parsing."""

from __future__ import annotations

import pytest

from mto.introspector.ffprobe import (
    FFprobeDurationProbe,
    parse_duration,
    parse_ffmetadata,
)
from mto.jobs.exceptions import ProbeError, ToolNotFoundError


class TestParseDuration:
    """Tests for parse_duration()."""

    def test_reads_format_duration(self):
        raw = '{"format": {"filename": "a.mp4", "duration": "12.480000"}}'

        assert parse_duration("a.mp4", raw) == pytest.approx(12.48)

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "{}",
            '{"format": {"duration": "N/A"}}',
            '{"format": {"duration": "abc"}}',
            '{"format": {"duration": "0"}}',
        ],
    )
    def test_unusable_output(self, raw):
        with pytest.raises(ProbeError) as exc_info:
            parse_duration("a.mp4", raw)

        assert exc_info.value.path == "a.mp4"


class TestParseFfmetadata:
    """Tests for parse_ffmetadata()."""

    def test_global_keys(self):
        text = (
            ";FFMETADATA1\n"
            "major_brand=isom\n"
            "title=My = Movie\n"
            "encoder=Lavf60.3.100\n"
        )

        assert parse_ffmetadata(text) == {
            "major_brand": "isom",
            "title": "My = Movie",
            "encoder": "Lavf60.3.100",
        }

    def test_stops_at_first_section(self):
        text = ";FFMETADATA1\ntitle=A\n[CHAPTER]\nTIMEBASE=1/1000\ntitle=Intro\n"

        assert parse_ffmetadata(text) == {"title": "A"}

    def test_ignores_lines_without_separator(self):
        assert parse_ffmetadata("garbage\nkey=value\n") == {"key": "value"}

    def test_empty(self):
        assert parse_ffmetadata("") == {}


class TestFFprobeDurationProbe:
    @pytest.mark.asyncio
    async def test_missing_ffprobe(self, tmp_path):
        probe = FFprobeDurationProbe(tmp_path / "no-ffprobe")

        with pytest.raises(ToolNotFoundError):
            await probe("a.mp4")
