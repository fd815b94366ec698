"""Tests for UnitScheduler admission, retry and cancellation."""

from __future__ import annotations

import asyncio

import pytest
from fakes import FakeDurationProbe, FakeLauncher, FakeProcess, progress_line

from mto.jobs.exceptions import (
    ErrorCode,
    ProcessExitError,
    UnitTimeoutError,
    ValidationError,
)
from mto.jobs.models import OperationKind, OperationSpec, UnitState
from mto.jobs.scheduler import UnitScheduler


def _spec(name: str = "in.mp4") -> OperationSpec:
    return OperationSpec(OperationKind.CONVERT, name, f"{name}.mkv")


def _slow_process(args: list[str]) -> FakeProcess:
    return FakeProcess(
        lines=[progress_line(t) for t in range(1, 4)], line_delay=0.01
    )


async def _until(predicate, timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


class TestConstruction:
    """Tests for constructor validation."""

    def test_defaults(self):
        scheduler = UnitScheduler()

        assert scheduler.concurrency == 2
        assert scheduler.max_retries == 0
        assert scheduler.backoff_seconds == 0.0
        assert scheduler.is_idle()

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"concurrency": 0},
            {"max_retries": -1},
            {"backoff_seconds": -0.5},
        ],
    )
    def test_invalid_settings_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            UnitScheduler(**kwargs)


# =============================================================================
# Admission
# =============================================================================


class TestAdmission:
    """Tests for bounded concurrency and FIFO admission."""

    @pytest.mark.asyncio
    async def test_never_exceeds_concurrency(self, make_unit):
        launcher = FakeLauncher(factory=_slow_process)
        scheduler = UnitScheduler(concurrency=2)
        done: list[str] = []
        scheduler.on_done.connect(lambda entry_id, output: done.append(output))

        for i in range(5):
            scheduler.add(make_unit(_spec(f"in{i}.mp4"), launcher=launcher))
        await scheduler.join()

        assert len(done) == 5
        assert launcher.max_running == 2
        assert scheduler.running_count == 0
        assert scheduler.size() == 0

    @pytest.mark.asyncio
    async def test_admission_is_fifo(self, make_unit):
        launcher = FakeLauncher(factory=_slow_process)
        scheduler = UnitScheduler(concurrency=1)

        for i in range(3):
            scheduler.add(make_unit(_spec(f"in{i}.mp4"), launcher=launcher))
        await scheduler.join()

        inputs = [args[1] for _, args, _ in launcher.calls]
        assert inputs == ["in0.mp4", "in1.mp4", "in2.mp4"]

    @pytest.mark.asyncio
    async def test_events_are_keyed_by_entry_id(self, make_unit):
        scheduler = UnitScheduler()
        unit = make_unit(_spec())
        states: list[tuple[str, UnitState]] = []
        scheduler.on_state.connect(
            lambda entry_id, state: states.append((entry_id, state))
        )

        entry_id = scheduler.add(unit)
        await scheduler.join()

        assert entry_id == unit.id
        assert states == [(entry_id, UnitState.RUNNING), (entry_id, UnitState.DONE)]
        assert scheduler.get_unit(entry_id) is None

    @pytest.mark.asyncio
    async def test_pause_holds_backlog(self, make_unit, launcher):
        scheduler = UnitScheduler()
        scheduler.pause()

        scheduler.add(make_unit(_spec()))
        await asyncio.sleep(0.01)

        assert scheduler.is_paused
        assert scheduler.size() == 1
        assert launcher.calls == []

        scheduler.resume()
        await scheduler.join()

        assert len(launcher.calls) == 1
        assert scheduler.is_idle()


# =============================================================================
# Retry
# =============================================================================


class TestRetry:
    """Tests for retrying failed units."""

    @pytest.mark.asyncio
    async def test_retries_then_gives_up(self, make_unit):
        launcher = FakeLauncher(factory=lambda args: FakeProcess(exit_code=1))
        scheduler = UnitScheduler(max_retries=2)
        retries: list[int] = []
        errors: list[BaseException] = []
        scheduler.on_retry.connect(
            lambda entry_id, attempt, error: retries.append(attempt)
        )
        scheduler.on_error.connect(lambda entry_id, error: errors.append(error))

        scheduler.add(make_unit(_spec(), launcher=launcher))
        await scheduler.join()

        assert len(launcher.calls) == 3
        assert retries == [1, 2]
        assert len(errors) == 1
        assert isinstance(errors[0], ProcessExitError)

    @pytest.mark.asyncio
    async def test_retry_can_succeed(self, make_unit):
        launcher = FakeLauncher([FakeProcess(exit_code=1)])
        scheduler = UnitScheduler(max_retries=1)
        outcomes: list[str] = []
        scheduler.on_done.connect(lambda entry_id, output: outcomes.append("done"))
        scheduler.on_error.connect(lambda entry_id, error: outcomes.append("error"))

        entry_id = scheduler.add(make_unit(_spec(), launcher=launcher))
        seen_ids: list[str] = []
        scheduler.on_retry.connect(lambda eid, attempt, error: seen_ids.append(eid))
        await scheduler.join()

        assert outcomes == ["done"]
        assert seen_ids == [entry_id]
        assert len(launcher.calls) == 2

    @pytest.mark.asyncio
    async def test_retry_waits_for_backoff(self, make_unit):
        launcher = FakeLauncher([FakeProcess(exit_code=1)])
        scheduler = UnitScheduler(max_retries=1, backoff_seconds=0.05)
        loop = asyncio.get_running_loop()

        started = loop.time()
        scheduler.add(make_unit(_spec(), launcher=launcher))
        await scheduler.join()

        assert loop.time() - started >= 0.05
        assert len(launcher.calls) == 2

    @pytest.mark.asyncio
    async def test_validation_error_is_not_retried(self, make_unit, launcher):
        scheduler = UnitScheduler(max_retries=3)
        errors: list[BaseException] = []
        scheduler.on_error.connect(lambda entry_id, error: errors.append(error))

        scheduler.add(make_unit(OperationSpec(OperationKind.CONVERT, "in.mp4")))
        await scheduler.join()

        assert len(errors) == 1
        assert isinstance(errors[0], ValidationError)
        assert launcher.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_unit_is_not_retried(self, make_unit):
        launcher = FakeLauncher(factory=lambda args: FakeProcess(hang=True))
        scheduler = UnitScheduler(max_retries=3)
        cancelled: list[str] = []
        scheduler.on_cancelled.connect(
            lambda entry_id, reason: cancelled.append(reason)
        )

        entry_id = scheduler.add(make_unit(_spec(), launcher=launcher))
        await _until(lambda: len(launcher.calls) == 1)
        scheduler.get_unit(entry_id).cancel("user")
        await scheduler.join()

        assert cancelled == ["user"]
        assert len(launcher.calls) == 1

    @pytest.mark.asyncio
    async def test_timed_out_unit_is_retried(self, make_unit):
        launcher = FakeLauncher(factory=lambda args: FakeProcess(hang=True))
        scheduler = UnitScheduler(max_retries=2, timeout=0.02)
        retries: list[BaseException] = []
        errors: list[BaseException] = []
        cancelled: list[str] = []
        scheduler.on_retry.connect(
            lambda entry_id, attempt, error: retries.append(error)
        )
        scheduler.on_error.connect(lambda entry_id, error: errors.append(error))
        scheduler.on_cancelled.connect(
            lambda entry_id, reason: cancelled.append(reason)
        )

        scheduler.add(make_unit(_spec(), launcher=launcher))
        await asyncio.wait_for(scheduler.join(), timeout=2.0)

        assert len(launcher.calls) == 3
        assert all(process.killed for process in launcher.launched)
        assert len(retries) == 2
        assert all(isinstance(error, UnitTimeoutError) for error in retries)
        assert len(errors) == 1
        assert isinstance(errors[0], UnitTimeoutError)
        assert errors[0].code is ErrorCode.JOB_TIMEOUT
        assert cancelled == []

    @pytest.mark.asyncio
    async def test_timeout_reason_counts_as_failure(self, make_unit):
        launcher = FakeLauncher(
            [FakeProcess(hang=True), FakeProcess(hang=True), FakeProcess()]
        )
        scheduler = UnitScheduler(max_retries=2)
        done: list[str] = []
        scheduler.on_done.connect(lambda entry_id, output: done.append(output))

        entry_id = scheduler.add(make_unit(_spec(), launcher=launcher))
        for launches in (1, 2):
            await _until(lambda n=launches: len(launcher.calls) == n)
            scheduler.get_unit(entry_id).cancel("timeout")
        await scheduler.join()

        assert len(launcher.calls) == 3
        assert done == ["in.mp4.mkv"]

    @pytest.mark.asyncio
    async def test_attempts_get_the_timeout(self, make_unit):
        scheduler = UnitScheduler(timeout=0.5)
        unit = make_unit(_spec())

        scheduler.add(unit)
        await scheduler.join()

        assert unit.state is UnitState.DONE

    def test_invalid_timeout_rejected(self):
        with pytest.raises(ValidationError):
            UnitScheduler(timeout=0)


# =============================================================================
# Robustness
# =============================================================================


class TestRobustness:
    """Tests for failures outside the normal unit lifecycle."""

    @pytest.mark.asyncio
    async def test_unexpected_duration_error_is_reported(self, make_unit):
        probe = FakeDurationProbe(error=RuntimeError("probe crashed"))
        scheduler = UnitScheduler()
        errors: list[BaseException] = []
        scheduler.on_error.connect(lambda entry_id, error: errors.append(error))

        entry_id = scheduler.add(make_unit(_spec(), duration_probe=probe))
        await asyncio.wait_for(scheduler.join(), timeout=1.0)

        assert len(errors) == 1
        assert isinstance(errors[0], RuntimeError)
        assert scheduler.get_unit(entry_id) is None
        assert scheduler.running_count == 0

    def test_add_without_running_loop_queues_nothing(self, make_unit):
        scheduler = UnitScheduler()

        with pytest.raises(RuntimeError):
            scheduler.add(make_unit(_spec()))

        assert scheduler.running_count == 0
        assert scheduler.size() == 0
        assert scheduler.is_idle()


# =============================================================================
# Cancellation and idle
# =============================================================================


class TestCancel:
    """Tests for cancel() on queued and running entries."""

    @pytest.mark.asyncio
    async def test_cancel_queued_entry(self, make_unit):
        launcher = FakeLauncher(factory=lambda args: FakeProcess(hang=True))
        scheduler = UnitScheduler(concurrency=1)
        cancelled: list[tuple[str, str]] = []
        scheduler.on_cancelled.connect(
            lambda entry_id, reason: cancelled.append((entry_id, reason))
        )

        first = scheduler.add(make_unit(_spec("a.mp4"), launcher=launcher))
        second_unit = make_unit(_spec("b.mp4"), launcher=launcher)
        second = scheduler.add(second_unit)

        assert scheduler.cancel(second) is True
        assert cancelled == [(second, "removed")]
        assert second_unit.state is UnitState.CANCELLED
        assert scheduler.size() == 0

        await _until(lambda: len(launcher.calls) == 1)
        scheduler.get_unit(first).cancel()
        await scheduler.join()

        assert [args[1] for _, args, _ in launcher.calls] == ["a.mp4"]

    @pytest.mark.asyncio
    async def test_cancel_running_entry_only_signals(self, make_unit):
        launcher = FakeLauncher(factory=lambda args: FakeProcess(hang=True))
        scheduler = UnitScheduler()
        requested: list[str] = []
        scheduler.on_cancel_requested.connect(requested.append)

        entry_id = scheduler.add(make_unit(_spec(), launcher=launcher))
        await _until(lambda: len(launcher.calls) == 1)

        assert scheduler.cancel(entry_id) is False
        assert requested == [entry_id]
        assert scheduler.running_count == 1

        scheduler.get_unit(entry_id).cancel()
        await scheduler.join()

    @pytest.mark.asyncio
    async def test_cancel_unknown_entry(self):
        scheduler = UnitScheduler()

        assert scheduler.cancel("nope") is False

    @pytest.mark.asyncio
    async def test_idle_fires_once_per_transition(self, make_unit):
        scheduler = UnitScheduler(concurrency=3)
        idle: list[bool] = []
        scheduler.on_idle.connect(lambda: idle.append(True))

        for i in range(3):
            scheduler.add(make_unit(_spec(f"in{i}.mp4")))
        await scheduler.join()
        assert idle == [True]

        scheduler.add(make_unit(_spec()))
        await scheduler.join()
        assert idle == [True, True]

    @pytest.mark.asyncio
    async def test_join_when_idle_returns_immediately(self):
        scheduler = UnitScheduler()

        await asyncio.wait_for(scheduler.join(), timeout=0.1)
