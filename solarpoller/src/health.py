"""
Health file writer for the poller daemon.

Writes a JSON health file with three fields:
- last_poll_ts: ISO timestamp of the most recent poll cycle (any outcome).
- last_success_ts: ISO timestamp of the most recent successful cycle.
- consecutive_failures: Number of failed cycles since the last success.

The file is rewritten after every cycle, providing a simple liveness signal
that a container HEALTHCHECK or external monitoring can inspect.

CHANGELOG:
- 2026-10-15: Track consecutive failures instead of spool size

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path


class HealthWriter:
    """Writes poller health status to a JSON file.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_poll_ts: str | None = None
        self._last_success_ts: str | None = None
        self._consecutive_failures: int = 0

    def record_success(self) -> None:
        """Record a successful cycle and write health file."""
        now = datetime.now(tz=UTC).isoformat()
        self._last_poll_ts = now
        self._last_success_ts = now
        self._consecutive_failures = 0
        self._write()

    def record_failure(self) -> None:
        """Record a failed cycle and write health file."""
        self._last_poll_ts = datetime.now(tz=UTC).isoformat()
        self._consecutive_failures += 1
        self._write()

    def _write(self) -> None:
        data = {
            "last_poll_ts": self._last_poll_ts,
            "last_success_ts": self._last_success_ts,
            "consecutive_failures": self._consecutive_failures,
        }
        self.path.write_text(json.dumps(data))
