"""
Append-only reading store using async SQLite.

Each decoded value is stored as one row of the ``readings`` table.  There is
no uniqueness constraint: the same sensor appears once per poll cycle and
every cycle is kept for history.  The database file runs in WAL mode so
readers (dashboards, ad-hoc queries) do not block the poller.

Operations:
- insert_reading(reading): INSERT one row and commit.
- count(): SELECT COUNT(*) of stored rows.
- close(): Close the underlying database connection.

Supports async context manager protocol for clean resource management.

CHANGELOG:
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite

if TYPE_CHECKING:
    from solarpoller.src.models import Reading

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS readings (
    ts TEXT NOT NULL,
    device TEXT NOT NULL,
    sensor TEXT NOT NULL,
    valueFloat REAL,
    valueInt INTEGER
);
"""

_INSERT_FLOAT_SQL = """\
INSERT INTO readings (ts, device, sensor, valueFloat) VALUES (?, ?, ?, ?);
"""

_INSERT_INT_SQL = """\
INSERT INTO readings (ts, device, sensor, valueInt) VALUES (?, ?, ?, ?);
"""

_COUNT_SQL = "SELECT COUNT(*) FROM readings;"


class ReadingStore:
    """Durable append-only store of readings backed by a SQLite database.

    Args:
        path: Filesystem path for the SQLite database file.
              Accepts ``str`` or ``pathlib.Path``.

    Usage::

        async with ReadingStore(path="db.sqlite") as store:
            await store.insert_reading(reading)
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._db: aiosqlite.Connection | None = None

    @property
    def path(self) -> Path:
        return self._path

    async def open(self) -> None:
        """Open the SQLite connection and initialize the schema."""
        self._db = await aiosqlite.connect(str(self._path))
        await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.execute(_CREATE_TABLE_SQL)
        await self._db.commit()

    async def close(self) -> None:
        """Close the underlying SQLite connection. Safe to call twice."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> ReadingStore:
        """Enter async context manager: open the database."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context manager: close the database."""
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def insert_reading(self, reading: Reading) -> None:
        """Append one reading and commit it.

        Measurements go to ``valueFloat``, status words to ``valueInt``; the
        other column stays NULL.  Driver errors propagate to the caller.

        Args:
            reading: The reading to store.
        """
        assert self._db is not None, "Store not opened. Call open() or use async with."
        if reading.value_int is not None:
            sql, value = _INSERT_INT_SQL, reading.value_int
        else:
            sql, value = _INSERT_FLOAT_SQL, reading.value_float
        await self._db.execute(
            sql,
            (reading.ts.isoformat(), reading.device, reading.sensor, value),
        )
        await self._db.commit()

    async def count(self) -> int:
        """Return the number of stored readings."""
        assert self._db is not None, "Store not opened. Call open() or use async with."
        cursor = await self._db.execute(_COUNT_SQL)
        row = await cursor.fetchone()
        return row[0]
