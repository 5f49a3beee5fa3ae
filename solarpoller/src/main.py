"""
Poller daemon entrypoint.

Loads configuration (environment, ``.env`` and command-line flags), sets up
logging, opens the reading store, and hands a Modbus session to the
scheduler.  SIGTERM/SIGINT set a shared asyncio.Event; the scheduler stops
at its next wait point, after any in-flight cycle completes.

Exit status:
- 0: stopped by signal, or a successful ``--once`` / ``--dry-run`` poll.
- 1: invalid configuration, unusable log sink or database, or a failed
  ``--once`` / ``--dry-run`` poll.

Structured JSON logging goes to stderr with ``--logtostderr`` (and in
dry-run); otherwise log records go to syslog with the daemon facility.

CHANGELOG:
- 2026-10-19: Debug level applies to solarpoller loggers only
- 2026-10-16: Add --health-path
- 2026-10-14: Validate the variable table before the first poll
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import logging.handlers
import os
import signal
import sqlite3
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from solarpoller.src.errors import ConfigError, SolarPollerError
from solarpoller.src.health import HealthWriter
from solarpoller.src.registers import VARIABLES, validate_table
from solarpoller.src.scheduler import Scheduler
from solarpoller.src.session import ModbusSession
from solarpoller.src.store import ReadingStore

if TYPE_CHECKING:
    from solarpoller.src.config import PollerSettings

logger = logging.getLogger(__name__)

SYSLOG_ADDRESS = "/dev/log"
PACKAGE_LOGGER = "solarpoller"


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


class _JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(*, debug: bool = False, to_stderr: bool = True) -> None:
    """Configure the root logger for the daemon.

    Args:
        debug: Log solarpoller records at DEBUG level (every decoded value)
            instead of INFO.  Third-party loggers stay at INFO.
        to_stderr: JSON lines on stderr; otherwise syslog, facility daemon.

    Raises:
        OSError: The syslog socket could not be opened.
    """
    handler: logging.Handler
    if to_stderr:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_JsonFormatter())
    else:
        handler = logging.handlers.SysLogHandler(
            address=SYSLOG_ADDRESS,
            facility=logging.handlers.SysLogHandler.LOG_DAEMON,
        )
        progname = os.path.basename(sys.argv[0]) or "solarpoller"
        handler.setFormatter(logging.Formatter(f"{progname}: %(message)s"))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.INFO)
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if debug else logging.INFO)


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags.

    Every flag defaults to ``None`` so that an omitted flag falls back to
    the ``SOLARPOLLER_*`` environment variable or the built-in default.
    """
    p = argparse.ArgumentParser(
        prog="solarpoller",
        description="Poll a Modbus inverter on an interval and store readings in SQLite.",
    )
    p.add_argument("--target", help="Modbus target, e.g. tcp://192.168.0.1:502")
    p.add_argument(
        "--timeout", dest="timeout_ms", type=int, help="Modbus timeout in milliseconds"
    )
    p.add_argument(
        "--baudrate", dest="serial_baudrate", type=int, help="Serial speed for rtu:// targets"
    )
    p.add_argument("--database", help="Path to database")
    p.add_argument("--device-identifier", help="Device identifier in database")
    p.add_argument("--interval", help="Interval between polls, e.g. 30s, 5m, 1h30m")
    p.add_argument("--health-path", help="Write a JSON health file after every poll")
    p.add_argument(
        "--logtostderr",
        dest="log_to_stderr",
        action="store_true",
        default=None,
        help="Log to stderr instead of syslog",
    )
    p.add_argument(
        "--debug", action="store_true", default=None, help="Log debugging information"
    )
    p.add_argument(
        "--once", action="store_true", default=None, help="Run once (i.e. don't poll)"
    )
    p.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Run once in debug mode and don't update database",
    )
    return p.parse_args(argv)


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: object) -> None:
    """Log a one-line config summary at startup.

    Args:
        settings: A PollerSettings instance (or any object with the same attrs).
    """
    logger.info(
        "Poller starting with config: "
        "target=%s, timeout_ms=%s, database=%s, device_identifier=%s, "
        "interval=%s, once=%s, dry_run=%s, debug=%s, health_path=%s, variables=%d",
        settings.target,  # type: ignore[attr-defined]
        settings.timeout_ms,  # type: ignore[attr-defined]
        settings.database,  # type: ignore[attr-defined]
        settings.device_identifier,  # type: ignore[attr-defined]
        settings.interval,  # type: ignore[attr-defined]
        settings.once,  # type: ignore[attr-defined]
        settings.dry_run,  # type: ignore[attr-defined]
        settings.debug,  # type: ignore[attr-defined]
        settings.health_path,  # type: ignore[attr-defined]
        len(VARIABLES),
    )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def _handle_signal(shutdown_event: asyncio.Event, sig: signal.Signals) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event."""
    logger.info("Exit: %s", sig.name)
    shutdown_event.set()


async def async_main(settings: PollerSettings) -> None:
    """Async entrypoint: build components and run the scheduler.

    Raises:
        ConfigError: The database cannot be opened.
        SolarPollerError: The poll failed in run-once mode.
    """
    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle_signal, shutdown_event, sig)

    session = ModbusSession(
        settings.target,
        timeout_s=settings.timeout_s,
        baudrate=settings.serial_baudrate,
    )
    health = HealthWriter(settings.health_path) if settings.health_path else None

    store = ReadingStore(settings.database)
    try:
        await store.open()
    except (sqlite3.Error, OSError) as exc:
        raise ConfigError(f"cannot open database {store.path}: {exc}") from exc

    try:
        scheduler = Scheduler(
            session=session,
            store=store,
            table=VARIABLES,
            device_id=settings.device_identifier,
            interval_s=settings.interval_s,
            shutdown_event=shutdown_event,
            dry_run=settings.dry_run,
            health=health,
        )
        await scheduler.run(once=settings.once)
    finally:
        await store.close()


def main(argv: list[str] | None = None) -> None:
    """Synchronous entrypoint for the poller daemon."""
    from solarpoller.src.config import load_settings

    args = parse_args(argv)
    try:
        settings = load_settings(**vars(args))
        try:
            validate_table(VARIABLES)
        except ValueError as exc:
            raise ConfigError(f"invalid variable table: {exc}") from exc
    except ConfigError as exc:
        configure_logging(to_stderr=True)
        logger.critical("%s", exc)
        sys.exit(1)

    try:
        configure_logging(debug=settings.debug, to_stderr=settings.log_to_stderr)
    except OSError as exc:
        configure_logging(to_stderr=True)
        logger.critical("Couldn't prepare syslog: %s", exc)
        sys.exit(1)

    log_config_summary(settings)
    try:
        asyncio.run(async_main(settings))
    except SolarPollerError as exc:
        logger.critical("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
