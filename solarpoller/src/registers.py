"""
Modbus variable table for the hybrid inverter / battery system -- single source of truth.

Every readable quantity is described by a :class:`VariableSpec`: which unit
address answers for it, the first holding register, how many registers it
spans and how to interpret their bits, whether it is a scaled measurement or
a raw status word, and the scale and unit used to report it.

Unit address 247 is the plant-level (EMS) view; unit address 1 is the
inverter / PCS and its attached battery system.

The table is read in list order once per poll cycle.

CHANGELOG:
- 2026-10-19: validate_table() re-checks every entry
- 2026-10-14: Rename duplicate unit-1 power_pv entry to power_pv_inverter
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# ---------------------------------------------------------------------------
# Encodings
# ---------------------------------------------------------------------------


class RegisterWidth(str, Enum):
    """Register width and signedness of a variable's raw value."""

    U16 = "U16"
    S16 = "S16"
    U32 = "U32"
    S32 = "S32"
    U64 = "U64"

    @property
    def word_count(self) -> int:
        """Number of consecutive 16-bit registers holding the value."""
        return _WORD_COUNTS[self]

    @property
    def bits(self) -> int:
        return self.word_count * 16

    @property
    def signed(self) -> bool:
        return self in (RegisterWidth.S16, RegisterWidth.S32)


_WORD_COUNTS: dict[RegisterWidth, int] = {
    RegisterWidth.U16: 1,
    RegisterWidth.S16: 1,
    RegisterWidth.U32: 2,
    RegisterWidth.S32: 2,
    RegisterWidth.U64: 4,
}


class ValueKind(str, Enum):
    """How a decoded register is reported."""

    MEASUREMENT = "measurement"
    STATUS_WORD = "status_word"


MEASUREMENT_WIDTHS: frozenset[RegisterWidth] = frozenset(RegisterWidth)
"""Widths the decoder accepts for scaled measurements."""

STATUS_WORD_WIDTHS: frozenset[RegisterWidth] = frozenset(
    {RegisterWidth.U16, RegisterWidth.U32}
)
"""Widths the decoder accepts for status words (unsigned only)."""

MAX_REGISTER_ADDRESS = 0xFFFF
MAX_UNIT_ID = 0xFF


# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class VariableSpec:
    """Definition of a single readable variable.

    Attributes:
        name: Unique identifier, used as the ``sensor`` key of stored readings.
        unit_id: Modbus unit (slave) address answering for this register.
        register: Address of the first holding register.
        width: Register width / signedness; fixes the read span.
        kind: Scaled measurement or unscaled status word.
        scale: Multiplicative factor applied to the raw integer
            (measurements only).
        unit: Display unit, used for logging only (measurements only).
    """

    name: str
    unit_id: int
    register: int
    width: RegisterWidth
    kind: ValueKind
    scale: float = 0.0
    unit: str = ""

    def __post_init__(self) -> None:  # noqa: D105
        self.check()

    def check(self) -> None:
        """Validate this entry: name, unit address, register span, width and scale.

        Raises:
            ValueError: On the first violated rule.
        """
        if not self.name:
            raise ValueError("Variable name must not be empty")
        if not 0 <= self.unit_id <= MAX_UNIT_ID:
            raise ValueError(
                f"Variable '{self.name}': unit_id {self.unit_id} outside 0..{MAX_UNIT_ID}"
            )
        if self.register < 0 or self.register + self.word_count - 1 > MAX_REGISTER_ADDRESS:
            raise ValueError(
                f"Variable '{self.name}': register span {self.register}"
                f"+{self.word_count} outside 0..{MAX_REGISTER_ADDRESS}"
            )
        if self.kind is ValueKind.STATUS_WORD:
            if self.width not in STATUS_WORD_WIDTHS:
                raise ValueError(
                    f"Variable '{self.name}': status words must be U16 or U32, "
                    f"got {self.width.value}"
                )
        elif not self.scale > 0:
            raise ValueError(
                f"Variable '{self.name}': measurement scale must be positive, "
                f"got {self.scale}"
            )

    @property
    def word_count(self) -> int:
        return self.width.word_count


def validate_table(table: list[VariableSpec]) -> None:
    """Check every entry of *table* and that variable names are unique.

    Entries are already checked when constructed; running
    :meth:`VariableSpec.check` again covers entries altered after the fact.

    Raises:
        ValueError: On the first invalid entry or duplicate name.
    """
    seen: set[str] = set()
    for spec in table:
        spec.check()
        if spec.name in seen:
            raise ValueError(f"Duplicate variable name '{spec.name}'")
        seen.add(spec.name)


def _status(name: str, unit_id: int, register: int) -> VariableSpec:
    return VariableSpec(name, unit_id, register, RegisterWidth.U16, ValueKind.STATUS_WORD)


def _measure(
    name: str,
    unit_id: int,
    register: int,
    width: RegisterWidth,
    scale: float,
    unit: str,
) -> VariableSpec:
    return VariableSpec(name, unit_id, register, width, ValueKind.MEASUREMENT, scale, unit)


U16, S16, U32, S32, U64 = (
    RegisterWidth.U16,
    RegisterWidth.S16,
    RegisterWidth.U32,
    RegisterWidth.S32,
    RegisterWidth.U64,
)

# ---------------------------------------------------------------------------
# Status words
# ---------------------------------------------------------------------------

_STATUS_VARIABLES: list[VariableSpec] = [
    _status("status_on_grid", 247, 30009),
    _status("status_alarm1_pcs", 247, 30027),
    _status("status_alarm2_pcs", 247, 30028),
    _status("status_alarm3_ess", 247, 30029),
    _status("status_alarm4_gateway", 247, 30030),
    _status("status_alarm5_dc_charger", 247, 30030),
    _status("status_running_state", 1, 30578),
]

# ---------------------------------------------------------------------------
# Plant level (unit 247): grid, PV and ESS power flows
# ---------------------------------------------------------------------------

_PLANT_VARIABLES: list[VariableSpec] = [
    _measure("power_grid_active", 247, 30005, S32, 0.001, "kW"),
    _measure("power_grid_reactive", 247, 30007, S32, 0.001, "Kvar"),
    _measure("ess_battery_charge_percent", 247, 30014, U16, 0.1, "%"),
    _measure("power_plant_active", 247, 30031, S32, 0.001, "kW"),
    _measure("power_plant_reactive", 247, 30033, S32, 0.001, "Kvar"),
    _measure("power_pv", 247, 30035, S32, 0.001, "kW"),
    _measure("power_ess", 247, 30037, S32, 0.001, "kW"),
    _measure("energy_ess_capacity_charge", 247, 30064, U32, 0.01, "kWh"),
    _measure("energy_ess_capacity_discharge", 247, 30066, U32, 0.01, "kWh"),
    _measure("capacity_ess_health", 247, 30083, U32, 0.01, "kWh"),
    _measure("ess_battery_health_percent", 247, 30087, U16, 0.1, "%"),
]

# ---------------------------------------------------------------------------
# Battery system (unit 1)
# ---------------------------------------------------------------------------

_ESS_VARIABLES: list[VariableSpec] = [
    _measure("temperature_ess_cell_avg", 1, 30603, S16, 0.1, "C"),
    _measure("energy_daily_ess_charge", 1, 30566, U32, 0.01, "kWh"),
    _measure("energy_accum_ess_charge", 1, 30568, U64, 0.01, "kWh"),
    _measure("energy_daily_ess_discharge", 1, 30572, U32, 0.01, "kWh"),
    _measure("energy_accum_ess_discharge", 1, 30574, U64, 0.01, "kWh"),
    _measure("voltage_ess_battery_avg", 1, 30604, S16, 0.001, "V"),
    _measure("temperature_ess_cluster_max", 1, 30620, S16, 0.1, "C"),
    _measure("temperature_ess_cluster_min", 1, 30621, S16, 0.1, "C"),
]

# ---------------------------------------------------------------------------
# Inverter / PCS (unit 1): AC side, PV strings, insulation
# ---------------------------------------------------------------------------

_PCS_VARIABLES: list[VariableSpec] = [
    _measure("frequency_grid", 1, 31002, U16, 0.01, "Hz"),
    _measure("temperature_pcs", 1, 31003, S16, 0.1, "C"),
    _measure("voltage_line_ab", 1, 31005, U32, 0.01, "V"),
    _measure("voltage_line_bc", 1, 31007, U32, 0.01, "V"),
    _measure("voltage_line_ca", 1, 31009, U32, 0.01, "V"),
    _measure("voltage_phase_a", 1, 31011, U32, 0.01, "V"),
    _measure("voltage_phase_b", 1, 31013, U32, 0.01, "V"),
    _measure("voltage_phase_c", 1, 31015, U32, 0.01, "V"),
    _measure("current_phase_a", 1, 31017, S32, 0.01, "A"),
    _measure("current_phase_b", 1, 31019, S32, 0.01, "A"),
    _measure("current_phase_c", 1, 31021, S32, 0.01, "A"),
    _measure("power_factor", 1, 31023, U16, 0.001, ""),
    _measure("voltage_pv1", 1, 31027, S16, 0.1, "V"),
    _measure("current_pv1", 1, 31028, S16, 0.01, "A"),
    _measure("voltage_pv2", 1, 31029, S16, 0.1, "V"),
    _measure("current_pv2", 1, 31030, S16, 0.01, "A"),
    _measure("voltage_pv3", 1, 31031, S16, 0.1, "V"),
    _measure("current_pv3", 1, 31032, S16, 0.01, "A"),
    _measure("voltage_pv4", 1, 31033, S16, 0.1, "V"),
    _measure("current_pv4", 1, 31034, S16, 0.01, "A"),
    _measure("power_pv_inverter", 1, 31035, S32, 0.001, "kW"),
    _measure("resistance_insulation", 1, 31037, U16, 0.001, "MΩ"),
]

# ---------------------------------------------------------------------------
# Plant level (unit 247): lifetime and daily energy counters
# ---------------------------------------------------------------------------

_ENERGY_VARIABLES: list[VariableSpec] = [
    _measure("energy_accum_pv", 247, 30088, U64, 0.01, "kWh"),
    _measure("energy_daily_consumed", 247, 30092, U32, 0.01, "kWh"),
    _measure("energy_accum_consumed", 247, 30094, U64, 0.01, "kWh"),
    _measure("energy_accum_battery_discharge", 247, 30204, U64, 0.01, "kWh"),
    _measure("energy_accum_grid_import", 247, 30216, U64, 0.01, "kWh"),
    _measure("energy_accum_grid_export", 247, 30220, U64, 0.01, "kWh"),
    _measure("energy_total_load_consumed", 247, 30228, U64, 0.01, "kWh"),
    _measure("energy_total_pv_generated", 247, 30236, U64, 0.01, "kWh"),
]

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

VARIABLES: list[VariableSpec] = [
    *_STATUS_VARIABLES,
    *_PLANT_VARIABLES,
    *_ESS_VARIABLES,
    *_PCS_VARIABLES,
    *_ENERGY_VARIABLES,
]
"""Every variable in poll order."""
