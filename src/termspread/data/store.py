"""Typed SQLite read/write abstraction for daily spread snapshots.

One row per calendar day. A write for a date that already exists replaces
every column of that row in a single statement, so re-running the daily
job is safe and the latest run wins. Reads come back oldest-first.

CRITICAL: All yield values stored as TEXT in SQLite, restored as Decimal on read.
"""

import time
from decimal import Decimal

import aiosqlite

from termspread.data.database import SnapshotDatabase
from termspread.exceptions import StoreError
from termspread.logging import get_logger
from termspread.models import SpreadSnapshot

logger = get_logger(__name__)

HARD_MAX_DAYS = 365

_UPSERT_SQL = """
INSERT INTO term_spread_history (
    date, term_spread, front_month_apy, back_month_apy,
    front_expiry, back_expiry, underlying_apy, markets_count, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(date) DO UPDATE SET
    term_spread = excluded.term_spread,
    front_month_apy = excluded.front_month_apy,
    back_month_apy = excluded.back_month_apy,
    front_expiry = excluded.front_expiry,
    back_expiry = excluded.back_expiry,
    underlying_apy = excluded.underlying_apy,
    markets_count = excluded.markets_count,
    updated_at = excluded.updated_at
"""

_SELECT_RECENT_SQL = """
SELECT date, term_spread, front_month_apy, back_month_apy,
       front_expiry, back_expiry, underlying_apy, markets_count
FROM term_spread_history
ORDER BY date DESC
LIMIT ?
"""


class SnapshotStore:
    """Async SQLite store for SpreadSnapshot records.

    Usage:
        async with SnapshotDatabase("data/term_spread.db") as database:
            store = SnapshotStore(database)
            await store.put(snapshot)
            series = await store.get(90)
    """

    def __init__(self, database: SnapshotDatabase, max_days: int = HARD_MAX_DAYS) -> None:
        self._database = database
        self._max_days = max(0, min(max_days, HARD_MAX_DAYS))

    @property
    def max_days(self) -> int:
        return self._max_days

    def clamp_days(self, days: int) -> int:
        """Clamp a requested window to [0, max_days]."""
        return max(0, min(days, self._max_days))

    async def put(self, snapshot: SpreadSnapshot) -> None:
        """Insert or fully replace the snapshot for ``snapshot.date``.

        Raises:
            StoreError: on any storage failure; nothing is committed.
        """
        params = (
            snapshot.date,
            str(snapshot.term_spread),
            str(snapshot.front_month_apy),
            str(snapshot.back_month_apy),
            snapshot.front_expiry,
            snapshot.back_expiry,
            str(snapshot.underlying_apy),
            snapshot.markets_count,
            int(time.time() * 1000),
        )
        try:
            db = self._database.db
            await db.execute(_UPSERT_SQL, params)
            await db.commit()
        except (aiosqlite.Error, ValueError) as e:
            logger.error("snapshot_write_failed", date=snapshot.date, error=str(e))
            raise StoreError(f"Failed to store snapshot for {snapshot.date}: {e}") from e

        logger.debug(
            "snapshot_upserted",
            date=snapshot.date,
            term_spread=str(snapshot.term_spread),
        )

    async def get(self, max_days: int) -> list[SpreadSnapshot]:
        """Return up to ``max_days`` most recent snapshots, ordered by date ASC.

        The window is clamped to [0, max_days]; zero or negative returns an
        empty list without touching the database.

        Raises:
            StoreError: on any storage failure.
        """
        limit = self.clamp_days(max_days)
        if limit == 0:
            return []

        try:
            cursor = await self._database.db.execute(_SELECT_RECENT_SQL, (limit,))
            rows = await cursor.fetchall()
        except (aiosqlite.Error, ValueError) as e:
            logger.error("snapshot_read_failed", limit=limit, error=str(e))
            raise StoreError(f"Failed to read snapshots: {e}") from e

        # Newest-first from the query; callers get chronological order.
        return [
            SpreadSnapshot(
                date=row[0],
                term_spread=Decimal(row[1]),
                front_month_apy=Decimal(row[2]),
                back_month_apy=Decimal(row[3]),
                front_expiry=row[4],
                back_expiry=row[5],
                underlying_apy=Decimal(row[6]),
                markets_count=row[7],
            )
            for row in reversed(rows)
        ]

    async def count(self) -> int:
        """Total number of stored snapshots."""
        try:
            cursor = await self._database.db.execute(
                "SELECT COUNT(*) FROM term_spread_history"
            )
            row = await cursor.fetchone()
        except (aiosqlite.Error, ValueError) as e:
            raise StoreError(f"Failed to count snapshots: {e}") from e
        return row[0] if row else 0
