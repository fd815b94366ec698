"""Shared test fixtures for mto.

No test needs a real ffmpeg: units are driven by FakeLauncher, which hands
out scripted FakeProcess objects, and by a fake duration probe (see
fakes.py).
"""

from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeDurationProbe, FakeLauncher


@pytest.fixture
def launcher() -> FakeLauncher:
    """Launcher whose processes exit 0 without output."""
    return FakeLauncher()


@pytest.fixture
def duration_probe() -> FakeDurationProbe:
    """Probe reporting 10 seconds for every input."""
    return FakeDurationProbe()


@pytest.fixture
def make_unit(launcher: FakeLauncher, duration_probe: FakeDurationProbe):
    """Factory for OperationUnits wired to the fake launcher and probe."""
    from mto.jobs.unit import OperationUnit

    def _make(spec, **kwargs):
        kwargs.setdefault("launcher", launcher)
        kwargs.setdefault("duration_probe", duration_probe)
        return OperationUnit(spec, **kwargs)

    return _make


@pytest.fixture
def media_dir(tmp_path: Path) -> Path:
    """Directory holding an empty sample.mp4, logo.png and music.mp3."""
    for name in ("sample.mp4", "logo.png", "music.mp3"):
        (tmp_path / name).touch()
    return tmp_path


@pytest.fixture
def fake_ffmpeg(tmp_path: Path) -> Path:
    """An existing file usable as a configured ffmpeg path."""
    path = tmp_path / "bin" / "ffmpeg"
    path.parent.mkdir()
    path.write_text("#!/bin/sh\n")
    path.chmod(0o755)
    return path
