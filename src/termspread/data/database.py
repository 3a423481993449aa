"""Async SQLite database manager for term spread snapshots.

Uses aiosqlite for non-blocking database operations with WAL mode so the
read endpoint never blocks behind the daily write.
"""

import os
from typing import Self

import aiosqlite

from termspread.exceptions import StoreError
from termspread.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS term_spread_history (
    date TEXT PRIMARY KEY,
    term_spread TEXT NOT NULL,
    front_month_apy TEXT NOT NULL,
    back_month_apy TEXT NOT NULL,
    front_expiry TEXT NOT NULL,
    back_expiry TEXT NOT NULL,
    underlying_apy TEXT NOT NULL,
    markets_count INTEGER NOT NULL,
    updated_at INTEGER NOT NULL
);
"""


class SnapshotDatabase:
    """Async SQLite connection manager for the snapshot table.

    Manages database lifecycle including schema creation, WAL mode
    configuration, and clean resource cleanup.

    Usage:
        # Context manager (recommended)
        async with SnapshotDatabase("data/term_spread.db") as database:
            store = SnapshotStore(database)

        # Manual lifecycle
        database = SnapshotDatabase("data/term_spread.db")
        await database.connect()
        try:
            ...
        finally:
            await database.close()
    """

    def __init__(self, db_path: str = "data/term_spread.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises StoreError if not connected.
        """
        if self._connection is None:
            raise StoreError("Database not connected. Call connect() first.")
        return self._connection

    @property
    def db_path(self) -> str:
        return self._db_path

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema.

        Creates the parent directory if it does not exist.
        """
        try:
            if self._db_path != ":memory:":
                db_dir = os.path.dirname(self._db_path)
                if db_dir:
                    os.makedirs(db_dir, exist_ok=True)

            self._connection = await aiosqlite.connect(self._db_path)
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")
            await self._create_tables()
            await self._ensure_schema_version()
        except (aiosqlite.Error, OSError) as e:
            await self.close()
            raise StoreError(f"Failed to open {self._db_path}: {e}") from e

        logger.info("snapshot_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("snapshot_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        """Insert schema version if not already set."""
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
