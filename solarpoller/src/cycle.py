"""
One poll cycle: read every variable, then store the whole set.

The cycle connects to the device, walks the variable table in order, reads
each variable's register span from its unit address and decodes it, then
closes the device session.  Only when every variable has been read are the
readings written, status words first and then measurements, all stamped
with the cycle's start time.

Failure policy is fail-fast.  The first read or decode error aborts the
cycle with :class:`ReadFailure` and nothing from that cycle is stored; a
device that fails mid-poll may be in an inconsistent state.  The first
failed write aborts the remaining writes with :class:`PersistFailure`.
There are no retries here; the scheduler simply tries again on the next
tick.

CHANGELOG:
- 2026-10-19: Hold the device session as an async context manager
- 2026-10-13: Close the device session before writing readings
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from solarpoller.src.decoder import decode_status_word, scale_measurement
from solarpoller.src.errors import (
    DecodeError,
    DeviceError,
    PersistFailure,
    ReadFailure,
    UnsupportedEncoding,
)
from solarpoller.src.models import Reading
from solarpoller.src.registers import ValueKind

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from solarpoller.src.registers import VariableSpec
    from solarpoller.src.session import ModbusSession
    from solarpoller.src.store import ReadingStore

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    """Outcome of a successful poll cycle.

    Attributes:
        values: Scaled measurements by variable name.
        statuses: Raw status words by variable name.
        persisted: Number of readings written (0 in dry-run mode).
    """

    values: dict[str, float] = field(default_factory=dict)
    statuses: dict[str, int] = field(default_factory=dict)
    persisted: int = 0


# ---------------------------------------------------------------------------
# Reading phase
# ---------------------------------------------------------------------------


async def read_all(
    session: ModbusSession,
    table: Sequence[VariableSpec],
) -> tuple[dict[str, float], dict[str, int]]:
    """Read and decode every variable of *table* on an open session.

    Returns:
        ``(values, statuses)``: measurements and status words by name.

    Raises:
        ReadFailure: On the first variable that cannot be read or decoded.
    """
    values: dict[str, float] = {}
    statuses: dict[str, int] = {}

    for spec in table:
        session.select_unit(spec.unit_id)
        try:
            words = await session.read_registers(spec.register, spec.word_count)
            if spec.kind is ValueKind.MEASUREMENT:
                value = scale_measurement(spec, words)
                values[spec.name] = value
                logger.debug("%s: %.3f %s", spec.name, value, spec.unit)
            elif spec.kind is ValueKind.STATUS_WORD:
                status = decode_status_word(words, spec.width)
                statuses[spec.name] = status
                logger.debug("%s: 0x%04x", spec.name, status)
            else:
                raise UnsupportedEncoding(spec.width, str(spec.kind))
        except (DeviceError, DecodeError, UnsupportedEncoding) as exc:
            raise ReadFailure(
                spec.name,
                register=spec.register,
                unit_id=spec.unit_id,
                cause=exc,
            ) from exc

    return values, statuses


# ---------------------------------------------------------------------------
# Persisting phase
# ---------------------------------------------------------------------------


async def _persist(store: ReadingStore, readings: list[Reading], stage: str) -> None:
    for reading in readings:
        try:
            await store.insert_reading(reading)
        except Exception as exc:
            raise PersistFailure(stage, sensor=reading.sensor, cause=exc) from exc
    logger.debug("wrote %d %s readings", len(readings), stage)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def run_cycle(
    *,
    session: ModbusSession,
    store: ReadingStore,
    table: Sequence[VariableSpec],
    now: datetime,
    device_id: str,
    dry_run: bool = False,
) -> CycleResult:
    """Execute one complete poll cycle.

    Args:
        session: Device session; opened here and always closed again.
        store: Reading store, already opened.
        table: Variables to read, in order.
        now: Cycle timestamp shared by every reading.
        device_id: Device identifier written with each reading.
        dry_run: Read and decode only; write nothing.

    Returns:
        The decoded values and the number of readings written.

    Raises:
        ReadFailure: Connect, read or decode failure; nothing was written.
        PersistFailure: A write failed; later writes were skipped.
    """
    # read_all() maps its own DeviceErrors; one escaping here came from connect.
    try:
        async with session:
            values, statuses = await read_all(session, table)
    except DeviceError as exc:
        raise ReadFailure(None, cause=exc) from exc

    result = CycleResult(values=values, statuses=statuses)
    if dry_run:
        return result
    status_readings = [
        Reading(ts=now, device=device_id, sensor=name, value_int=status)
        for name, status in statuses.items()
    ]
    value_readings = [
        Reading(ts=now, device=device_id, sensor=name, value_float=value)
        for name, value in values.items()
    ]

    await _persist(store, status_readings, "status")
    result.persisted += len(status_readings)
    await _persist(store, value_readings, "value")
    result.persisted += len(value_readings)
    return result
