"""
Modbus device session over TCP or serial RTU.

Thin wrapper over the pymodbus async clients exposing exactly what a poll
cycle needs: open, select a unit address, read a span of holding registers,
close.  A fresh pymodbus client is created on every ``open()`` so a session
that failed in one cycle starts clean in the next.

Targets are given as URLs:

- ``tcp://192.168.0.10:502`` (port defaults to 502)
- ``rtu:///dev/ttyUSB0`` (serial RTU, 8N1)

CHANGELOG:
- 2026-10-19: Reject rtu:// URLs with both a host part and a path
- 2026-10-13: Add serial RTU targets
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

from pymodbus.client import AsyncModbusSerialClient, AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from solarpoller.src.errors import DeviceError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_TCP_PORT: int = 502
"""Modbus TCP port used when the target URL does not name one."""

DEFAULT_BAUDRATE: int = 19200
"""Serial line speed for RTU targets."""

SUPPORTED_SCHEMES: tuple[str, ...] = ("tcp", "rtu")


# ---------------------------------------------------------------------------
# Target parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Target:
    """A parsed Modbus target URL.

    Attributes:
        scheme: ``"tcp"`` or ``"rtu"``.
        host: Hostname / IP address (TCP) or serial device path (RTU).
        port: TCP port; ``None`` for RTU.
    """

    scheme: str
    host: str
    port: int | None = None

    def __str__(self) -> str:
        if self.scheme == "tcp":
            return f"tcp://{self.host}:{self.port}"
        return f"rtu://{self.host}"


def parse_target(url: str) -> Target:
    """Parse a ``tcp://host[:port]`` or ``rtu:///dev/tty...`` target URL.

    Raises:
        ValueError: Unknown scheme, missing host, missing or ambiguous device
            path, or bad port.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise ValueError(
            f"unsupported target scheme '{parts.scheme}' (use tcp:// or rtu://)"
        )
    if scheme == "tcp":
        if not parts.hostname:
            raise ValueError(f"missing host in target '{url}'")
        port = parts.port if parts.port is not None else DEFAULT_TCP_PORT
        return Target(scheme=scheme, host=parts.hostname, port=port)
    if parts.netloc and parts.path:
        raise ValueError(
            f"ambiguous serial device in target '{url}' (use rtu:///dev/ttyUSB0)"
        )
    device = parts.path or parts.netloc
    if not device:
        raise ValueError(f"missing serial device in target '{url}'")
    return Target(scheme=scheme, host=device)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class ModbusSession:
    """Connect / read / close capability over one Modbus transport.

    Several unit addresses can share the transport; :meth:`select_unit`
    picks the one used by subsequent reads.

    Args:
        target: Target URL (see module docstring) or a parsed :class:`Target`.
        timeout_s: Per-request timeout in seconds.
        baudrate: Serial speed for RTU targets.
    """

    def __init__(
        self,
        target: str | Target,
        *,
        timeout_s: float = 1.0,
        baudrate: int = DEFAULT_BAUDRATE,
    ) -> None:
        self._target = target if isinstance(target, Target) else parse_target(target)
        self._timeout_s = timeout_s
        self._baudrate = baudrate
        self._unit_id: int = 1
        self._client: AsyncModbusTcpClient | AsyncModbusSerialClient | None = None

    @property
    def target(self) -> Target:
        return self._target

    @property
    def unit_id(self) -> int:
        return self._unit_id

    def _make_client(self) -> AsyncModbusTcpClient | AsyncModbusSerialClient:
        if self._target.scheme == "tcp":
            return AsyncModbusTcpClient(
                self._target.host,
                port=self._target.port,
                timeout=self._timeout_s,
            )
        return AsyncModbusSerialClient(
            self._target.host,
            baudrate=self._baudrate,
            bytesize=8,
            parity="N",
            stopbits=1,
            timeout=self._timeout_s,
        )

    async def open(self) -> None:
        """Connect to the device.

        Raises:
            DeviceError: The connection could not be established.
        """
        self.close()
        client = self._make_client()
        try:
            ok = await client.connect()
        except (ModbusException, OSError) as exc:
            client.close()
            raise DeviceError(f"failed to connect to {self._target}: {exc}", cause=exc) from exc
        if not ok:
            client.close()
            raise DeviceError(f"failed to connect to {self._target}")
        self._client = client
        logger.debug("connected to %s", self._target)

    def close(self) -> None:
        """Close the connection. Safe to call when not open."""
        if self._client is not None:
            self._client.close()
            self._client = None

    async def __aenter__(self) -> ModbusSession:
        """Enter async context manager: connect."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context manager: close."""
        self.close()

    def select_unit(self, unit_id: int) -> None:
        """Address subsequent reads to Modbus unit *unit_id*."""
        self._unit_id = unit_id

    async def read_registers(self, address: int, count: int) -> list[int]:
        """Read *count* holding registers starting at *address*.

        Returns:
            The raw 16-bit words, in device order.

        Raises:
            DeviceError: Not connected, transport failure, Modbus exception
                response, or fewer words than requested.
        """
        if self._client is None:
            raise DeviceError("session not open", unit_id=self._unit_id, address=address)
        try:
            response = await self._client.read_holding_registers(
                address,
                count=count,
                device_id=self._unit_id,
            )
        except (ModbusException, OSError) as exc:
            raise DeviceError(
                str(exc), unit_id=self._unit_id, address=address, cause=exc
            ) from exc

        if response.isError():
            raise DeviceError(
                f"Modbus error response: {response}",
                unit_id=self._unit_id,
                address=address,
            )
        registers = list(getattr(response, "registers", None) or [])
        if len(registers) < count:
            raise DeviceError(
                f"short response: expected {count} registers, got {len(registers)}",
                unit_id=self._unit_id,
                address=address,
            )
        return registers[:count]
