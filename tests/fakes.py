"""Fakes standing in for ffmpeg processes and ffprobe in tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence


def progress_line(seconds: float, frame: int = 0) -> str:
    """An ffmpeg status line reporting *seconds* of output time."""
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    timecode = f"{int(hours):02d}:{int(minutes):02d}:{secs:05.2f}"
    return (
        f"frame={frame:5d} fps= 25 q=-1.0 size=    1024kB "
        f"time={timecode} bitrate=1000.0kbits/s speed=1.00x"
    )


class FakeProcess:
    """Scripted stand-in for a running ffmpeg process.

    Yields *lines* on stderr, then exits with *exit_code*. With
    ``hang=True`` it keeps running after the last line until killed.
    """

    def __init__(
        self,
        lines: Iterable[str] = (),
        exit_code: int = 0,
        stdout: str = "",
        line_delay: float = 0.0,
        hang: bool = False,
    ) -> None:
        self.lines = list(lines)
        self.exit_code = exit_code
        self.stdout = stdout
        self.line_delay = line_delay
        self.hang = hang
        self.killed = False
        self.pid = 4242
        self.on_exit: Callable[[], None] | None = None
        self._killed_event = asyncio.Event()
        self._exited = False

    async def stderr_lines(self):
        for line in self.lines:
            if self.killed:
                return
            await asyncio.sleep(self.line_delay)
            if self.killed:
                return
            yield line
        if self.hang and not self.killed:
            await self._killed_event.wait()

    async def read_stdout(self) -> str:
        return self.stdout

    async def wait(self) -> int:
        if self.hang and not self.killed:
            await self._killed_event.wait()
        if not self._exited:
            self._exited = True
            if self.on_exit is not None:
                self.on_exit()
        return -9 if self.killed else self.exit_code

    def kill(self) -> None:
        self.killed = True
        self._killed_event.set()


class FakeLauncher:
    """ProcessLauncher that records launches and returns FakeProcesses.

    Processes are taken from *processes* in order; when that runs out,
    *factory* builds one per launch (default: a process that exits 0).
    """

    def __init__(
        self,
        processes: Sequence[FakeProcess] = (),
        factory: Callable[[list[str]], FakeProcess] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.processes = list(processes)
        self.factory = factory or (lambda args: FakeProcess())
        self.error = error
        self.calls: list[tuple[str, list[str], bool]] = []
        self.launched: list[FakeProcess] = []
        self.running = 0
        self.max_running = 0

    async def launch(
        self,
        binary: str,
        args: Sequence[str],
        *,
        capture_stdout: bool = False,
    ) -> FakeProcess:
        self.calls.append((binary, list(args), capture_stdout))
        if self.error is not None:
            raise self.error
        if self.processes:
            process = self.processes.pop(0)
        else:
            process = self.factory(list(args))
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        process.on_exit = self._on_exit
        self.launched.append(process)
        return process

    def _on_exit(self) -> None:
        self.running -= 1


class FakeDurationProbe:
    """Async duration probe returning fixed durations."""

    def __init__(
        self,
        default: float = 10.0,
        durations: dict[str, float] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.default = default
        self.durations = durations or {}
        self.error = error
        self.calls: list[str] = []

    async def __call__(self, path: str) -> float:
        self.calls.append(path)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.durations.get(path, self.default)

