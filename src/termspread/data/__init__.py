"""Snapshot persistence layer.

Provides SQLite database management and the typed upsert/read store for
daily term spread snapshots.
"""

from termspread.data.database import SnapshotDatabase
from termspread.data.store import HARD_MAX_DAYS, SnapshotStore

__all__ = [
    "HARD_MAX_DAYS",
    "SnapshotDatabase",
    "SnapshotStore",
]
