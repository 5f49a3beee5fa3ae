"""
Tests for a single poll cycle.

Verifies:
- Every variable is read from its unit address with the right span.
- Readings share one timestamp and split by kind into valueInt / valueFloat.
- Fail-fast: a failed read stores nothing and names the variable.
- Dry-run reads and decodes but never touches the store.
- A failed write stops the remaining writes with PersistFailure.
- The device session is closed on every exit path.

CHANGELOG:
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from conftest import SMALL_TABLE, FakeSession
from solarpoller.src.cycle import run_cycle
from solarpoller.src.errors import DecodeError, DeviceError, PersistFailure, ReadFailure
from solarpoller.src.models import Reading
from solarpoller.src.registers import RegisterWidth, ValueKind, VariableSpec

_NOW = datetime(2026, 10, 12, 8, 30, 0, tzinfo=UTC)
_DEVICE = "solar"


def _make_store() -> AsyncMock:
    store = AsyncMock()
    store.insert_reading = AsyncMock()
    return store


def _inserted(store: AsyncMock) -> list[Reading]:
    return [call.args[0] for call in store.insert_reading.await_args_list]


# ===========================================================================
# Happy path
# ===========================================================================


class TestCycleSuccess:
    @pytest.mark.asyncio
    async def test_reads_every_variable_in_order(self, fake_session: FakeSession) -> None:
        await run_cycle(
            session=fake_session, store=_make_store(), table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
        )

        assert fake_session.reads == [
            ("read", 247, 30009, 1),
            ("read", 247, 30005, 2),
            ("read", 1, 31003, 1),
            ("read", 1, 30578, 1),
            ("read", 247, 30088, 4),
        ]

    @pytest.mark.asyncio
    async def test_decodes_and_scales(self, fake_session: FakeSession) -> None:
        result = await run_cycle(
            session=fake_session, store=_make_store(), table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
        )

        assert result.statuses == {"status_on_grid": 1, "status_running_state": 4}
        assert result.values["power_grid_active"] == pytest.approx(-1.0)
        assert result.values["temperature_pcs"] == pytest.approx(25.0)
        assert result.values["energy_accum_pv"] == pytest.approx(1000.0)

    @pytest.mark.asyncio
    async def test_persists_one_reading_per_variable(self, fake_session: FakeSession) -> None:
        store = _make_store()

        result = await run_cycle(
            session=fake_session, store=store, table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
        )

        readings = _inserted(store)
        assert len(readings) == len(SMALL_TABLE)
        assert result.persisted == len(SMALL_TABLE)
        assert {r.sensor for r in readings} == {spec.name for spec in SMALL_TABLE}

    @pytest.mark.asyncio
    async def test_readings_share_timestamp_and_device(self, fake_session: FakeSession) -> None:
        store = _make_store()

        await run_cycle(
            session=fake_session, store=store, table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
        )

        readings = _inserted(store)
        assert {r.ts for r in readings} == {_NOW}
        assert {r.device for r in readings} == {_DEVICE}

    @pytest.mark.asyncio
    async def test_status_words_written_first_as_int(self, fake_session: FakeSession) -> None:
        store = _make_store()

        await run_cycle(
            session=fake_session, store=store, table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
        )

        readings = _inserted(store)
        statuses, values = readings[:2], readings[2:]
        assert all(r.value_int is not None and r.value_float is None for r in statuses)
        assert all(r.value_float is not None and r.value_int is None for r in values)
        assert {r.sensor for r in statuses} == {"status_on_grid", "status_running_state"}

    @pytest.mark.asyncio
    async def test_session_opened_and_closed(self, fake_session: FakeSession) -> None:
        await run_cycle(
            session=fake_session, store=_make_store(), table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
        )

        assert fake_session.calls[0] == ("open",)
        assert ("close",) in fake_session.calls
        assert not fake_session.is_open

    @pytest.mark.asyncio
    async def test_scenario_signed_measurement(self) -> None:
        table = [VariableSpec("v", 1, 100, RegisterWidth.S16, ValueKind.MEASUREMENT, 0.1)]
        session = FakeSession({(1, 100): [0xFFF6]})
        store = _make_store()

        result = await run_cycle(
            session=session, store=store, table=table, now=_NOW, device_id=_DEVICE
        )

        assert result.values == {"v": pytest.approx(-1.0)}
        assert _inserted(store)[0].value_float == pytest.approx(-1.0)

    @pytest.mark.asyncio
    async def test_scenario_status_word(self) -> None:
        table = [VariableSpec("s", 1, 200, RegisterWidth.U16, ValueKind.STATUS_WORD)]
        session = FakeSession({(1, 200): [0x0004]})
        store = _make_store()

        result = await run_cycle(
            session=session, store=store, table=table, now=_NOW, device_id=_DEVICE
        )

        assert result.statuses == {"s": 4}
        assert _inserted(store)[0].value_int == 4


# ===========================================================================
# Fail-fast reads
# ===========================================================================


class TestCycleReadFailure:
    @pytest.mark.asyncio
    async def test_failed_read_persists_nothing(self) -> None:
        session = FakeSession(fail_at={(1, 31003)})
        store = _make_store()

        with pytest.raises(ReadFailure) as exc_info:
            await run_cycle(
                session=session, store=store, table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
            )

        store.insert_reading.assert_not_awaited()
        assert exc_info.value.variable == "temperature_pcs"
        assert exc_info.value.register == 31003
        assert exc_info.value.unit_id == 1
        assert isinstance(exc_info.value.__cause__, DeviceError)
        assert "temperature_pcs" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_failed_read_stops_reading(self) -> None:
        session = FakeSession(fail_at={(247, 30005)})

        with pytest.raises(ReadFailure):
            await run_cycle(
                session=session, store=_make_store(), table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
            )

        assert len(session.reads) == 2
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_session_context_exited_with_read_failure(self) -> None:
        exits: list[object] = []

        class RecordingSession(FakeSession):
            async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
                exits.append(exc_type)
                await super().__aexit__(exc_type, exc_val, exc_tb)

        session = RecordingSession(fail_at={(1, 30578)})

        with pytest.raises(ReadFailure):
            await run_cycle(
                session=session, store=_make_store(), table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
            )

        assert exits == [ReadFailure]
        assert not session.is_open

    @pytest.mark.asyncio
    async def test_short_response_is_read_failure(self) -> None:
        words = dict(FakeSession().words)
        words[(247, 30005)] = [0xFFFF]
        session = FakeSession(words)

        with pytest.raises(ReadFailure) as exc_info:
            await run_cycle(
                session=session, store=_make_store(), table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
            )

        assert exc_info.value.variable == "power_grid_active"
        assert isinstance(exc_info.value.__cause__, DecodeError)

    @pytest.mark.asyncio
    async def test_connect_failure(self) -> None:
        session = FakeSession(connect_error=True)
        store = _make_store()

        with pytest.raises(ReadFailure) as exc_info:
            await run_cycle(
                session=session, store=store, table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
            )

        assert exc_info.value.variable is None
        assert session.reads == []
        store.insert_reading.assert_not_awaited()


# ===========================================================================
# Dry-run
# ===========================================================================


class TestCycleDryRun:
    @pytest.mark.asyncio
    async def test_dry_run_reads_but_writes_nothing(self, fake_session: FakeSession) -> None:
        store = _make_store()

        result = await run_cycle(
            session=fake_session,
            store=store,
            table=SMALL_TABLE,
            now=_NOW,
            device_id=_DEVICE,
            dry_run=True,
        )

        assert len(fake_session.reads) == len(SMALL_TABLE)
        assert len(result.values) + len(result.statuses) == len(SMALL_TABLE)
        assert result.persisted == 0
        assert store.mock_calls == []


# ===========================================================================
# Persist failures
# ===========================================================================


class TestCyclePersistFailure:
    @pytest.mark.asyncio
    async def test_failed_status_write_stops_all_writes(self, fake_session: FakeSession) -> None:
        store = _make_store()
        store.insert_reading = AsyncMock(side_effect=OSError("disk I/O error"))

        with pytest.raises(PersistFailure) as exc_info:
            await run_cycle(
                session=fake_session, store=store, table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
            )

        assert store.insert_reading.await_count == 1
        assert exc_info.value.stage == "status"
        assert exc_info.value.sensor == "status_on_grid"

    @pytest.mark.asyncio
    async def test_failed_value_write_after_statuses(self, fake_session: FakeSession) -> None:
        store = _make_store()
        store.insert_reading = AsyncMock(side_effect=[None, None, RuntimeError("locked")])

        with pytest.raises(PersistFailure) as exc_info:
            await run_cycle(
                session=fake_session, store=store, table=SMALL_TABLE, now=_NOW, device_id=_DEVICE
            )

        assert store.insert_reading.await_count == 3
        assert exc_info.value.stage == "value"
        assert "locked" in str(exc_info.value)
