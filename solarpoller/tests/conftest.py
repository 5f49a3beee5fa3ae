"""
Shared test fixtures for poller tests.

Provides environment isolation for PollerSettings, a small variable table,
and a fake device session that serves register words from a dict.

CHANGELOG:
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest
from solarpoller.src.errors import DeviceError
from solarpoller.src.registers import RegisterWidth, ValueKind, VariableSpec

# All PollerSettings environment variable names, used for cleanup.
_ALL_POLLER_ENV_VARS = (
    "SOLARPOLLER_TARGET",
    "SOLARPOLLER_TIMEOUT_MS",
    "SOLARPOLLER_SERIAL_BAUDRATE",
    "SOLARPOLLER_DATABASE",
    "SOLARPOLLER_DEVICE_IDENTIFIER",
    "SOLARPOLLER_INTERVAL",
    "SOLARPOLLER_LOG_TO_STDERR",
    "SOLARPOLLER_DEBUG",
    "SOLARPOLLER_ONCE",
    "SOLARPOLLER_DRY_RUN",
    "SOLARPOLLER_HEALTH_PATH",
)


@pytest.fixture(autouse=True)
def _clean_poller_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all poller env vars and isolate from .env files before each test."""
    for var in _ALL_POLLER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Variable table and fake session
# ---------------------------------------------------------------------------


SMALL_TABLE: list[VariableSpec] = [
    VariableSpec("status_on_grid", 247, 30009, RegisterWidth.U16, ValueKind.STATUS_WORD),
    VariableSpec("power_grid_active", 247, 30005, RegisterWidth.S32, ValueKind.MEASUREMENT, 0.001, "kW"),
    VariableSpec("temperature_pcs", 1, 31003, RegisterWidth.S16, ValueKind.MEASUREMENT, 0.1, "C"),
    VariableSpec("status_running_state", 1, 30578, RegisterWidth.U16, ValueKind.STATUS_WORD),
    VariableSpec("energy_accum_pv", 247, 30088, RegisterWidth.U64, ValueKind.MEASUREMENT, 0.01, "kWh"),
]
"""Five variables covering both kinds, both unit addresses and 1/2/4-word spans."""

SMALL_TABLE_WORDS: dict[tuple[int, int], list[int]] = {
    (247, 30009): [0x0001],
    (247, 30005): [0xFFFF, 0xFC18],  # -1000 -> -1.0 kW
    (1, 31003): [0x00FA],  # 250 -> 25.0 C
    (1, 30578): [0x0004],
    (247, 30088): [0x0000, 0x0000, 0x0001, 0x86A0],  # 100000 -> 1000.0 kWh
}


class FakeSession:
    """In-memory stand-in for ModbusSession.

    Serves words keyed by ``(unit_id, register)``.  Reads listed in
    *fail_at* raise :class:`DeviceError`; *connect_error* makes ``open()``
    fail.  Every call is recorded in ``calls``.
    """

    def __init__(
        self,
        words: dict[tuple[int, int], list[int]] | None = None,
        *,
        fail_at: set[tuple[int, int]] | None = None,
        connect_error: bool = False,
    ) -> None:
        self.words = dict(SMALL_TABLE_WORDS if words is None else words)
        self.fail_at = fail_at or set()
        self.connect_error = connect_error
        self.target = "tcp://fake:502"
        self.unit_id = 1
        self.is_open = False
        self.calls: list[tuple] = []

    async def open(self) -> None:
        self.calls.append(("open",))
        if self.connect_error:
            raise DeviceError("failed to connect to tcp://fake:502")
        self.is_open = True

    def close(self) -> None:
        self.calls.append(("close",))
        self.is_open = False

    async def __aenter__(self) -> FakeSession:
        await self.open()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    def select_unit(self, unit_id: int) -> None:
        self.unit_id = unit_id

    async def read_registers(self, address: int, count: int) -> list[int]:
        self.calls.append(("read", self.unit_id, address, count))
        key = (self.unit_id, address)
        if key in self.fail_at:
            raise DeviceError("Modbus error response", unit_id=self.unit_id, address=address)
        return self.words[key][:count]

    @property
    def reads(self) -> list[tuple]:
        return [call for call in self.calls if call[0] == "read"]


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()
