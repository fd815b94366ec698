"""Tests for the asyncio process launcher and stream splitting."""

from __future__ import annotations

import asyncio

import pytest

from mto.executor.process import AsyncioProcessLauncher, iter_stream_lines
from mto.jobs.exceptions import ToolNotFoundError


async def _collect(*chunks: bytes) -> list[str]:
    stream = asyncio.StreamReader()
    for chunk in chunks:
        stream.feed_data(chunk)
    stream.feed_eof()
    return [line async for line in iter_stream_lines(stream)]


class TestIterStreamLines:
    """Tests for iter_stream_lines()."""

    @pytest.mark.asyncio
    async def test_splits_on_carriage_returns(self):
        lines = await _collect(
            b"frame=1 time=00:00:01.00\rframe=2 time=00:00:02.00\r"
        )

        assert lines == ["frame=1 time=00:00:01.00", "frame=2 time=00:00:02.00"]

    @pytest.mark.asyncio
    async def test_lines_spanning_chunks(self):
        lines = await _collect(b"Input #0, mo", b"v\r\nStream #0:0\n", b"tail")

        assert lines == ["Input #0, mov", "Stream #0:0", "tail"]

    @pytest.mark.asyncio
    async def test_split_utf8_sequence(self):
        encoded = "café.mp4\n".encode()

        lines = await _collect(encoded[:4], encoded[4:])

        assert lines == ["café.mp4"]

    @pytest.mark.asyncio
    async def test_blank_lines_skipped(self):
        assert await _collect(b"\n\n  \r\n") == []


class TestAsyncioProcessLauncher:
    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path):
        launcher = AsyncioProcessLauncher()

        with pytest.raises(ToolNotFoundError) as exc_info:
            await launcher.launch(str(tmp_path / "no-ffmpeg"), ["-version"])

        assert exc_info.value.tool == str(tmp_path / "no-ffmpeg")
