"""
Pydantic models for persisted readings.

A Reading is one (timestamp, device, sensor, value) row.  Measurements fill
``value_float``, status words fill ``value_int``; never both.

CHANGELOG:
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, model_validator


class Reading(BaseModel):
    """A single decoded value ready to be stored.

    The timestamp and device are injected by the poll cycle; every reading
    of one cycle carries the same timestamp.

    Attributes:
        ts: Cycle start time.
        device: Configured device identifier.
        sensor: Variable name from the variable table.
        value_float: Scaled measurement value, or ``None`` for status words.
        value_int: Raw status word, or ``None`` for measurements.
    """

    model_config = ConfigDict(frozen=True)

    ts: datetime
    device: str
    sensor: str
    value_float: float | None = None
    value_int: int | None = None

    @model_validator(mode="after")
    def _exactly_one_value(self) -> Reading:
        """Require exactly one of value_float / value_int."""
        if (self.value_float is None) == (self.value_int is None):
            raise ValueError("Reading needs exactly one of value_float or value_int")
        return self
