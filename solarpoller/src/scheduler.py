"""
Poll scheduler: one cycle immediately, then one per interval until shutdown.

States are ``RUNNING`` and ``STOPPED``.  On :meth:`Scheduler.run` the first
cycle runs straight away; afterwards the scheduler waits on the shutdown
event with a timeout equal to the time left until the next tick.  Cycles
never overlap: the next wait only starts once the previous cycle returned.

Ticks sit on a fixed grid (``start + k * interval``).  When a cycle overruns
one or more grid points, those ticks are skipped, not queued, and the
scheduler waits for the next future grid point.

Failure policy is log-and-continue: a failed cycle is logged on one line and
polling resumes on the next tick.  Unexpected exceptions are logged with a
traceback and do not stop the loop either.  In run-once mode the single cycle's error
propagates to the caller instead.

The shutdown event is only observed between cycles; an in-flight cycle
always runs to completion.

CHANGELOG:
- 2026-10-19: Keep polling after unexpected exceptions; log start after first poll
- 2026-10-16: Skip ticks missed by an overrunning cycle
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from solarpoller.src.cycle import CycleResult, run_cycle
from solarpoller.src.errors import SolarPollerError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from solarpoller.src.health import HealthWriter
    from solarpoller.src.registers import VariableSpec
    from solarpoller.src.session import ModbusSession
    from solarpoller.src.store import ReadingStore

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"


def next_deadline(deadline: float, now: float, interval_s: float) -> tuple[float, int]:
    """Return the next tick deadline after *deadline* and how many ticks were skipped.

    The result is the first grid point ``deadline + k * interval_s`` (k >= 1)
    strictly later than *now*; ``k - 1`` grid points were overrun.
    """
    upcoming = deadline + interval_s
    if now < upcoming:
        return upcoming, 0
    skipped = int((now - upcoming) // interval_s) + 1
    return upcoming + skipped * interval_s, skipped


class Scheduler:
    """Runs poll cycles on a fixed interval until the shutdown event is set.

    Args:
        session: Device session, opened and closed by each cycle.
        store: Opened reading store.
        table: Variables read by each cycle.
        device_id: Device identifier written with each reading.
        interval_s: Seconds between ticks.
        shutdown_event: Set externally (signal handler) to stop polling.
        dry_run: Read and decode only, never write.
        health: Optional health file writer, updated after every cycle.
    """

    def __init__(
        self,
        *,
        session: ModbusSession,
        store: ReadingStore,
        table: Sequence[VariableSpec],
        device_id: str,
        interval_s: float,
        shutdown_event: asyncio.Event,
        dry_run: bool = False,
        health: HealthWriter | None = None,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self._session = session
        self._store = store
        self._table = table
        self._device_id = device_id
        self._interval_s = interval_s
        self._shutdown_event = shutdown_event
        self._dry_run = dry_run
        self._health = health
        self.state = SchedulerState.STOPPED

    # ------------------------------------------------------------------
    # Single cycle
    # ------------------------------------------------------------------

    async def poll(self, now: datetime) -> CycleResult:
        """Run one cycle and record the outcome in the health file.

        Raises:
            SolarPollerError: The cycle failed (read, decode or persist).
            Exception: Anything else raised by the cycle, after the health
                file recorded the failure.
        """
        try:
            result = await run_cycle(
                session=self._session,
                store=self._store,
                table=self._table,
                now=now,
                device_id=self._device_id,
                dry_run=self._dry_run,
            )
        except Exception:
            self._record_health(ok=False)
            raise
        self._record_health(ok=True)
        return result

    async def _poll_logged(self, now: datetime) -> CycleResult | None:
        """Run one cycle; log a failure on one line instead of raising."""
        try:
            return await self.poll(now)
        except SolarPollerError as exc:
            logger.error("Poll cycle failed: %s", exc)
            return None
        except Exception:
            logger.error("Poll cycle error", exc_info=True)
            return None

    def _record_health(self, *, ok: bool) -> None:
        if self._health is None:
            return
        try:
            if ok:
                self._health.record_success()
            else:
                self._health.record_failure()
        except OSError:
            logger.warning("Failed to write health file", exc_info=True)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self, *, once: bool = False) -> None:
        """Poll immediately, then on every tick until shutdown.

        Args:
            once: Run the initial cycle only and return; its error propagates.

        Raises:
            SolarPollerError: Only in run-once mode, when the cycle failed.
        """
        self.state = SchedulerState.RUNNING
        try:
            if once:
                await self.poll(datetime.now(tz=UTC))
                return
            await self._run_forever()
        finally:
            self.state = SchedulerState.STOPPED

    async def _run_forever(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()
        await self._poll_logged(datetime.now(tz=UTC))
        logger.info(
            "started; will poll %s every %ss and write to %s",
            self._session.target,
            self._interval_s,
            self._store.path,
        )

        while True:
            deadline, skipped = next_deadline(deadline, loop.time(), self._interval_s)
            if skipped:
                logger.warning(
                    "Poll cycle overran the %ss interval, skipped %d tick(s)",
                    self._interval_s,
                    skipped,
                )
            if self._shutdown_event.is_set():
                break
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=max(deadline - loop.time(), 0),
                )
            if self._shutdown_event.is_set():
                break
            await self._poll_logged(datetime.now(tz=UTC))

        logger.info("Poll loop stopped")
