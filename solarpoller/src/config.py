"""
Poller daemon configuration.

Uses Pydantic BaseSettings for env var loading and validation.  Values come
from ``SOLARPOLLER_*`` environment variables or a ``.env`` file; command-line
flags parsed by the entrypoint are passed as init arguments and win over
both.

CHANGELOG:
- 2026-10-15: Accept duration strings such as 1h30m for the poll interval
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any

from pydantic import ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

from solarpoller.src.errors import ConfigError
from solarpoller.src.session import parse_target

# ---------------------------------------------------------------------------
# Duration parsing
# ---------------------------------------------------------------------------

_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"5m"``, ``"1h30m"``, ``"250ms"`` or ``"90"``.

    A bare number is taken as seconds.

    Raises:
        ValueError: The string is empty or not a valid duration.
    """
    spec = text.strip()
    if not spec:
        raise ValueError("empty duration")
    try:
        return timedelta(seconds=float(spec))
    except (ValueError, OverflowError):
        pass

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(spec):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(spec):
        raise ValueError(f"invalid duration '{text}'")
    return timedelta(seconds=total)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class PollerSettings(BaseSettings):
    """Poller daemon configuration.

    Attributes:
        target: Modbus target URL, ``tcp://host[:port]`` or ``rtu:///dev/tty...``.
        timeout_ms: Modbus request timeout in milliseconds.
        serial_baudrate: Line speed for ``rtu://`` targets.
        database: SQLite database path for readings.
        device_identifier: Device identifier written with every reading.
        interval: Time between polls.
        log_to_stderr: Log JSON lines to stderr instead of syslog.
        debug: Log every decoded value and write count.
        once: Run a single poll and exit.
        dry_run: Poll once with debug logging to stderr; write nothing.
            Forces ``once``, ``debug`` and ``log_to_stderr``.
        health_path: Optional JSON health file rewritten after every cycle.
    """

    target: str
    timeout_ms: int = 1000
    serial_baudrate: int = 19200
    database: str = "db.sqlite"
    device_identifier: str = "solar"
    interval: timedelta = timedelta(minutes=5)
    log_to_stderr: bool = False
    debug: bool = False
    once: bool = False
    dry_run: bool = False
    health_path: str | None = None

    @field_validator("target")
    @classmethod
    def target_must_be_modbus_url(cls, v: str) -> str:
        """Validate the target is a tcp:// or rtu:// URL."""
        if not v:
            raise ValueError("target not specified")
        parse_target(v)
        return v

    @field_validator("interval", mode="before")
    @classmethod
    def parse_interval(cls, v: Any) -> Any:
        """Accept duration strings (5m, 1h30m) in addition to seconds."""
        if isinstance(v, str):
            return parse_duration(v)
        return v

    @field_validator("interval")
    @classmethod
    def interval_must_be_positive(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("interval must be positive")
        return v

    @field_validator("timeout_ms", "serial_baudrate")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @model_validator(mode="after")
    def _dry_run_implies_once(self) -> PollerSettings:
        """Dry-run always means a single, verbose, console-logged poll."""
        if self.dry_run:
            self.once = True
            self.debug = True
            self.log_to_stderr = True
        return self

    @property
    def interval_s(self) -> float:
        return self.interval.total_seconds()

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    model_config = {
        "env_prefix": "SOLARPOLLER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


def load_settings(**overrides: Any) -> PollerSettings:
    """Build settings from the environment plus explicit *overrides*.

    ``None`` overrides are dropped so unset command-line flags fall back to
    the environment and defaults.

    Raises:
        ConfigError: Any missing or invalid value.
    """
    kwargs = {key: value for key, value in overrides.items() if value is not None}
    try:
        return PollerSettings(**kwargs)
    except ValidationError as exc:
        raise ConfigError(_format_validation_error(exc)) from exc


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err["loc"]) or "settings"
        parts.append(f"invalid --{loc.replace('_', '-')}: {err['msg']}")
    return "; ".join(parts)
