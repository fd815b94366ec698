"""Tests for unit logging context."""

from __future__ import annotations

import asyncio
import logging

import pytest

from mto.jobs.models import OperationKind, OperationSpec
from mto.logging.context import (
    UnitContext,
    UnitContextFilter,
    clear_unit_context,
    get_unit_context,
    set_unit_context,
    unit_context,
)


@pytest.fixture(autouse=True)
def _clean_context():
    clear_unit_context()
    yield
    clear_unit_context()


def _record() -> logging.LogRecord:
    return logging.LogRecord("mto.test", logging.INFO, __file__, 1, "msg", (), None)


class TestUnitContext:
    def test_context_manager_restores_previous_values(self):
        set_unit_context("outer", 1)

        with unit_context("inner", step=2):
            assert get_unit_context() == ("inner", 2, None)

        assert get_unit_context() == ("outer", 1, None)

    def test_none_leaves_field_unchanged(self):
        with unit_context(step=3):
            with unit_context("abc"):
                assert get_unit_context() == ("abc", 3, None)

    @pytest.mark.asyncio
    async def test_tasks_inherit_step(self):
        async def read() -> UnitContext:
            return get_unit_context()

        with unit_context(step=4):
            task = asyncio.get_running_loop().create_task(read())

        assert (await task).step == 4


class TestUnitContextFilter:
    """Tests for UnitContextFilter."""

    @pytest.mark.parametrize(
        ("unit_id", "step", "tag"),
        [
            ("0123456789abcdef", 2, "[U01234567:S2] "),
            ("0123456789abcdef", None, "[U01234567] "),
            (None, 5, "[S5] "),
            (None, None, ""),
        ],
    )
    def test_unit_tag(self, unit_id, step, tag):
        record = _record()

        with unit_context(unit_id, step):
            assert UnitContextFilter().filter(record) is True

        assert record.unit_tag == tag
        assert record.unit_id == unit_id
        assert record.step == step

    @pytest.mark.parametrize(
        ("attempt", "tag"),
        [(1, "[U01234567:S2] "), (3, "[U01234567#3:S2] ")],
    )
    def test_retry_attempt_in_tag(self, attempt, tag):
        record = _record()

        with unit_context("0123456789abcdef", 2, attempt):
            UnitContextFilter().filter(record)

        assert record.unit_tag == tag
        assert record.attempt == attempt

    @pytest.mark.asyncio
    async def test_unit_run_logs_with_its_context(self, make_unit, caplog):
        unit = make_unit(OperationSpec(OperationKind.CONVERT, "in.mp4", "out.mkv"))
        caplog.handler.addFilter(UnitContextFilter())
        caplog.set_level(logging.INFO, logger="mto.jobs.unit")

        await unit.run()

        starting = [r for r in caplog.records if r.getMessage().startswith("Starting")]
        assert starting[0].unit_id == unit.id
        assert starting[0].attempt == 1
