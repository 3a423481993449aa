"""Tests for SnapshotDatabase and SnapshotStore against a real SQLite file.

Tests verify:
- Upsert-on-date: identical re-put is idempotent, later put wins
- Full replace (no field-by-field merge)
- get() ascending by date regardless of insertion order
- Clamping: get(1000) == get(365), get(0) == []
- Storage failures surface as StoreError
"""

from collections.abc import AsyncIterator
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio

from termspread.data.database import SnapshotDatabase
from termspread.data.store import HARD_MAX_DAYS, SnapshotStore
from termspread.exceptions import StoreError
from termspread.models import SpreadSnapshot


def _snapshot(
    day: str = "2025-06-01",
    term_spread: str = "-3.0000",
    markets_count: int = 2,
) -> SpreadSnapshot:
    """Create a test SpreadSnapshot."""
    return SpreadSnapshot(
        date=day,
        term_spread=Decimal(term_spread),
        front_month_apy=Decimal("4.0000"),
        back_month_apy=Decimal("1.0000"),
        front_expiry="2025-06-11",
        back_expiry="2025-11-28",
        underlying_apy=Decimal("6.5000"),
        markets_count=markets_count,
    )


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncIterator[SnapshotDatabase]:
    async with SnapshotDatabase(str(tmp_path / "db" / "term_spread.db")) as db:
        yield db


@pytest.fixture
def store(database: SnapshotDatabase) -> SnapshotStore:
    return SnapshotStore(database)


class TestUpsert:
    """Upsert-on-date semantics."""

    @pytest.mark.asyncio
    async def test_put_then_get(self, store: SnapshotStore) -> None:
        snapshot = _snapshot()
        await store.put(snapshot)
        assert await store.get(90) == [snapshot]

    @pytest.mark.asyncio
    async def test_identical_put_is_idempotent(self, store: SnapshotStore) -> None:
        snapshot = _snapshot()
        await store.put(snapshot)
        await store.put(snapshot)

        assert await store.count() == 1
        assert await store.get(90) == [snapshot]

    @pytest.mark.asyncio
    async def test_last_write_wins(self, store: SnapshotStore) -> None:
        await store.put(_snapshot(term_spread="-3.0000"))
        await store.put(_snapshot(term_spread="1.2500"))

        [stored] = await store.get(90)
        assert stored.term_spread == Decimal("1.2500")

    @pytest.mark.asyncio
    async def test_replace_is_full_row(self, store: SnapshotStore) -> None:
        await store.put(_snapshot(markets_count=5))
        replacement = SpreadSnapshot(
            date="2025-06-01",
            term_spread=Decimal("0.5000"),
            front_month_apy=Decimal("7.0000"),
            back_month_apy=Decimal("7.5000"),
            front_expiry="2025-07-31",
            back_expiry="2025-09-25",
            underlying_apy=Decimal("9.0000"),
            markets_count=2,
        )
        await store.put(replacement)
        assert await store.get(90) == [replacement]

    @pytest.mark.asyncio
    async def test_decimal_precision_preserved(self, store: SnapshotStore) -> None:
        await store.put(_snapshot(term_spread="-0.0001"))
        [stored] = await store.get(1)
        assert str(stored.term_spread) == "-0.0001"

    @pytest.mark.asyncio
    async def test_persists_across_connections(self, tmp_path: Path) -> None:
        path = str(tmp_path / "reopen.db")
        async with SnapshotDatabase(path) as db:
            await SnapshotStore(db).put(_snapshot())
        async with SnapshotDatabase(path) as db:
            assert len(await SnapshotStore(db).get(90)) == 1


class TestRead:
    """Ordering and window clamping."""

    @pytest.mark.asyncio
    async def test_ascending_regardless_of_insert_order(self, store: SnapshotStore) -> None:
        for day in ["2025-06-03", "2025-06-01", "2025-06-05", "2025-06-02"]:
            await store.put(_snapshot(day))

        dates = [s.date for s in await store.get(90)]
        assert dates == ["2025-06-01", "2025-06-02", "2025-06-03", "2025-06-05"]

    @pytest.mark.asyncio
    async def test_returns_most_recent_window(self, store: SnapshotStore) -> None:
        for day in ["2025-06-01", "2025-06-02", "2025-06-03", "2025-06-04"]:
            await store.put(_snapshot(day))

        dates = [s.date for s in await store.get(2)]
        assert dates == ["2025-06-03", "2025-06-04"]

    @pytest.mark.asyncio
    async def test_zero_and_negative_return_empty(self, store: SnapshotStore) -> None:
        await store.put(_snapshot())
        assert await store.get(0) == []
        assert await store.get(-5) == []

    @pytest.mark.asyncio
    async def test_clamped_to_hard_max(self, store: SnapshotStore) -> None:
        start = date(2024, 1, 1)
        for offset in range(HARD_MAX_DAYS + 10):
            await store.put(_snapshot((start + timedelta(days=offset)).isoformat()))

        clamped = await store.get(1000)
        assert len(clamped) == HARD_MAX_DAYS
        assert clamped == await store.get(HARD_MAX_DAYS)
        assert clamped[-1].date == (start + timedelta(days=HARD_MAX_DAYS + 9)).isoformat()

    def test_configured_max_cannot_exceed_hard_max(self) -> None:
        database = SnapshotDatabase(":memory:")
        assert SnapshotStore(database, max_days=5000).max_days == HARD_MAX_DAYS
        assert SnapshotStore(database, max_days=30).clamp_days(90) == 30


class TestFailures:
    """Storage errors surface as StoreError."""

    @pytest.mark.asyncio
    async def test_put_when_not_connected(self) -> None:
        store = SnapshotStore(SnapshotDatabase(":memory:"))
        with pytest.raises(StoreError, match="not connected"):
            await store.put(_snapshot())

    @pytest.mark.asyncio
    async def test_get_after_table_dropped(
        self, database: SnapshotDatabase, store: SnapshotStore
    ) -> None:
        await database.db.execute("DROP TABLE term_spread_history")
        with pytest.raises(StoreError, match="no such table"):
            await store.get(90)

    @pytest.mark.asyncio
    async def test_connect_failure(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StoreError):
            await SnapshotDatabase(str(blocker / "sub" / "x.db")).connect()
