"""Tests for ffmpeg stderr progress parsing and throttling."""

from __future__ import annotations

import pytest

from mto.tools.ffmpeg_progress import (
    FFmpegProgress,
    ProgressThrottle,
    parse_stderr_progress,
    timecode_to_seconds,
)

STATUS_LINE = (
    "frame=  240 fps= 30 q=-1.0 size=    1024kB time=00:00:08.00 "
    "bitrate=1048.6kbits/s speed=1.01x"
)


class TestParseStderrProgress:
    """Tests for parse_stderr_progress()."""

    def test_full_status_line(self):
        progress = parse_stderr_progress(STATUS_LINE)

        assert progress is not None
        assert progress.frame == 240
        assert progress.fps == 30.0
        assert progress.kbps == pytest.approx(1048.6)
        assert progress.time == "00:00:08.00"
        assert progress.out_time_seconds == pytest.approx(8.0)

    def test_audio_only_line_has_no_frame(self):
        progress = parse_stderr_progress(
            "size=     512kB time=00:01:02.50 bitrate= 67.1kbits/s speed=40x"
        )

        assert progress is not None
        assert progress.frame is None
        assert progress.out_time_seconds == pytest.approx(62.5)

    def test_non_progress_line(self):
        assert parse_stderr_progress("Input #0, mov,mp4,m4a,3gp, from 'a.mp4':") is None
        assert parse_stderr_progress("") is None


class TestTimecode:
    @pytest.mark.parametrize(
        ("timecode", "seconds"),
        [
            ("00:00:00.00", 0.0),
            ("01:02:03.5", 3723.5),
            ("12.25", 12.25),
            ("garbage", 0.0),
        ],
    )
    def test_timecode_to_seconds(self, timecode, seconds):
        assert timecode_to_seconds(timecode) == pytest.approx(seconds)


class TestPercent:
    """Tests for FFmpegProgress.get_percent()."""

    def test_percent_of_duration(self):
        assert FFmpegProgress(time="00:00:05.00").get_percent(20) == pytest.approx(25)

    def test_clamped_to_100(self):
        assert FFmpegProgress(time="00:00:30.00").get_percent(20) == 100.0

    @pytest.mark.parametrize("duration", [None, 0, -1])
    def test_unknown_without_duration(self, duration):
        assert FFmpegProgress(time="00:00:05.00").get_percent(duration) is None

    def test_unknown_without_timecode(self):
        assert FFmpegProgress(frame=10).get_percent(20) is None


class TestProgressThrottle:
    """Tests for ProgressThrottle."""

    def test_small_advances_are_dropped(self):
        throttle = ProgressThrottle(100.0)

        first = throttle.offer(FFmpegProgress(time="00:00:01.00"))
        second = throttle.offer(FFmpegProgress(time="00:00:01.50"))
        third = throttle.offer(FFmpegProgress(time="00:00:02.00"))

        assert first is not None and first.percent == pytest.approx(1.0)
        assert second is None
        assert third is not None and third.percent == pytest.approx(2.0)

    def test_going_backwards_is_dropped(self):
        throttle = ProgressThrottle(10.0)
        throttle.offer(FFmpegProgress(time="00:00:05.00"))

        assert throttle.offer(FFmpegProgress(time="00:00:02.00")) is None
        assert throttle.last_percent == pytest.approx(50.0)

    def test_at_most_one_hundred_samples(self):
        throttle = ProgressThrottle(10.0)
        samples = [
            throttle.offer(FFmpegProgress(time=f"00:00:{t / 100:05.2f}"))
            for t in range(0, 1001)
        ]

        emitted = [s for s in samples if s is not None]
        assert len(emitted) <= 100
        assert emitted[-1].percent == pytest.approx(100.0)

    def test_feed_line_copies_fields(self):
        throttle = ProgressThrottle(16.0)

        sample = throttle.feed_line(STATUS_LINE)

        assert sample is not None
        assert sample.percent == pytest.approx(50.0)
        assert sample.frames == 240
        assert sample.timecode == "00:00:08.00"

    def test_no_duration_no_samples(self):
        assert ProgressThrottle(None).feed_line(STATUS_LINE) is None
