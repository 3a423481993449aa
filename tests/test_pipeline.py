"""Tests for SnapshotPipeline.

Feed client is mocked; the store is either mocked or a real in-memory
SQLite store so upsert behavior is exercised end to end.
"""

from collections.abc import AsyncIterator
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from termspread.config import MarketSettings
from termspread.data.database import SnapshotDatabase
from termspread.data.store import SnapshotStore
from termspread.exceptions import StoreError
from termspread.models import ChainFetchResult, SnapshotStatus, SpreadReason
from termspread.pipeline import SnapshotPipeline


def _raw(as_of: datetime, days: int, implied: float, name: str = "sUSDe") -> dict:
    """Raw feed record expiring ``days`` after ``as_of``."""
    expiry = (as_of + timedelta(days=days)).isoformat().replace("+00:00", "Z")
    return {
        "address": f"0x{days}",
        "name": name,
        "expiry": expiry,
        "details": {"impliedApy": implied, "underlyingApy": 0.07},
    }


def _feed(*results: ChainFetchResult) -> AsyncMock:
    feed = AsyncMock()
    feed.fetch_all = AsyncMock(return_value=list(results))
    return feed


@pytest_asyncio.fixture
async def store() -> AsyncIterator[SnapshotStore]:
    async with SnapshotDatabase(":memory:") as database:
        yield SnapshotStore(database)


class TestRun:
    """Daily snapshot run outcomes."""

    @pytest.mark.asyncio
    async def test_partial_chain_failure_still_stores(
        self, as_of: datetime, market_settings: MarketSettings, store: SnapshotStore
    ) -> None:
        feed = _feed(
            ChainFetchResult(
                chain="Ethereum",
                chain_id=1,
                markets=[
                    _raw(as_of, 10, 0.04),
                    _raw(as_of, 90, 0.03),
                    _raw(as_of, 180, 0.01),
                ],
            ),
            ChainFetchResult(chain="Plasma", chain_id=9745, error="network down"),
        )
        pipeline = SnapshotPipeline(feed, store, market_settings)

        outcome = await pipeline.run(as_of)

        assert outcome.status is SnapshotStatus.STORED
        assert outcome.chain_errors == {"Plasma": "network down"}
        assert outcome.snapshot is not None
        assert outcome.snapshot.term_spread == Decimal("-3.0000")
        assert outcome.snapshot.markets_count == 3
        assert outcome.snapshot.underlying_apy == Decimal("7.0000")
        assert await store.get(90) == [outcome.snapshot]

    @pytest.mark.asyncio
    async def test_oversized_yield_record_ignored(
        self, as_of: datetime, market_settings: MarketSettings, store: SnapshotStore
    ) -> None:
        feed = _feed(
            ChainFetchResult(
                chain="Ethereum",
                chain_id=1,
                markets=[
                    _raw(as_of, 5, 1e30),
                    _raw(as_of, 10, 0.04),
                    _raw(as_of, 180, 0.01),
                ],
            )
        )
        outcome = await SnapshotPipeline(feed, store, market_settings).run(as_of)

        assert outcome.status is SnapshotStatus.STORED
        assert outcome.snapshot is not None
        assert outcome.snapshot.term_spread == Decimal("-3.0000")
        assert outcome.snapshot.markets_count == 2

    @pytest.mark.asyncio
    async def test_markets_from_both_chains_combined(
        self, as_of: datetime, market_settings: MarketSettings, store: SnapshotStore
    ) -> None:
        feed = _feed(
            ChainFetchResult(chain="Ethereum", chain_id=1, markets=[_raw(as_of, 30, 0.05)]),
            ChainFetchResult(chain="Plasma", chain_id=9745, markets=[_raw(as_of, 120, 0.06)]),
        )
        outcome = await SnapshotPipeline(feed, store, market_settings).run(as_of)

        assert outcome.status is SnapshotStatus.STORED
        assert outcome.snapshot is not None
        assert outcome.snapshot.term_spread == Decimal("1.0000")

    @pytest.mark.asyncio
    async def test_no_markets_is_informational(
        self, as_of: datetime, market_settings: MarketSettings, store: SnapshotStore
    ) -> None:
        feed = _feed(ChainFetchResult(chain="Ethereum", chain_id=1, markets=[]))
        outcome = await SnapshotPipeline(feed, store, market_settings).run(as_of)

        assert outcome.status is SnapshotStatus.INSUFFICIENT_MARKETS
        assert outcome.markets_found == 0
        assert outcome.error is None
        assert await store.get(90) == []

    @pytest.mark.asyncio
    async def test_single_live_market_not_persisted(
        self, as_of: datetime, market_settings: MarketSettings, store: SnapshotStore
    ) -> None:
        feed = _feed(
            ChainFetchResult(
                chain="Ethereum",
                chain_id=1,
                markets=[_raw(as_of, 60, 0.05), _raw(as_of, -5, 0.09)],
            )
        )
        outcome = await SnapshotPipeline(feed, store, market_settings).run(as_of)

        assert outcome.status is SnapshotStatus.INSUFFICIENT_MARKETS
        assert outcome.markets_found == 1
        assert await store.get(90) == []

    @pytest.mark.asyncio
    async def test_all_chains_failed(
        self, as_of: datetime, market_settings: MarketSettings, store: SnapshotStore
    ) -> None:
        feed = _feed(
            ChainFetchResult(chain="Ethereum", chain_id=1, error="HTTP 502"),
            ChainFetchResult(chain="Plasma", chain_id=9745, error="timeout"),
        )
        outcome = await SnapshotPipeline(feed, store, market_settings).run(as_of)

        assert outcome.status is SnapshotStatus.INSUFFICIENT_MARKETS
        assert outcome.chain_errors == {"Ethereum": "HTTP 502", "Plasma": "timeout"}

    @pytest.mark.asyncio
    async def test_store_failure_is_failed_outcome(
        self, as_of: datetime, market_settings: MarketSettings
    ) -> None:
        feed = _feed(
            ChainFetchResult(
                chain="Ethereum",
                chain_id=1,
                markets=[_raw(as_of, 10, 0.04), _raw(as_of, 180, 0.01)],
            )
        )
        failing_store = AsyncMock()
        failing_store.put = AsyncMock(side_effect=StoreError("disk I/O error"))

        outcome = await SnapshotPipeline(feed, failing_store, market_settings).run(as_of)

        assert outcome.status is SnapshotStatus.FAILED
        assert outcome.error == "disk I/O error"
        assert outcome.snapshot is None

    @pytest.mark.asyncio
    async def test_rerun_same_day_replaces(
        self, as_of: datetime, market_settings: MarketSettings, store: SnapshotStore
    ) -> None:
        morning = _feed(
            ChainFetchResult(
                chain="Ethereum",
                chain_id=1,
                markets=[_raw(as_of, 10, 0.04), _raw(as_of, 180, 0.01)],
            )
        )
        afternoon = _feed(
            ChainFetchResult(
                chain="Ethereum",
                chain_id=1,
                markets=[_raw(as_of, 10, 0.04), _raw(as_of, 180, 0.05)],
            )
        )
        await SnapshotPipeline(morning, store, market_settings).run(as_of)
        await SnapshotPipeline(afternoon, store, market_settings).run(
            as_of + timedelta(hours=6)
        )

        [stored] = await store.get(90)
        assert stored.term_spread == Decimal("1.0000")


class TestTermStructure:
    """On-demand curve read."""

    @pytest.mark.asyncio
    async def test_returns_structure_without_storing(
        self, as_of: datetime, market_settings: MarketSettings
    ) -> None:
        feed = _feed(
            ChainFetchResult(
                chain="Ethereum",
                chain_id=1,
                markets=[_raw(as_of, 180, 0.01), _raw(as_of, 10, 0.04)],
            )
        )
        store = AsyncMock()
        live = await SnapshotPipeline(feed, store, market_settings).term_structure(as_of)

        assert live.result.reason is SpreadReason.OK
        assert [p.maturity for p in live.result.structure] == ["10D", "6M"]
        assert live.result.structure[0].chain == "Ethereum"
        assert live.available_markets == []
        store.put.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_match_lists_available_markets(
        self, as_of: datetime, market_settings: MarketSettings
    ) -> None:
        others = [_raw(as_of, 30 + i, 0.05, name=f"other-{i}") for i in range(7)]
        feed = _feed(ChainFetchResult(chain="Ethereum", chain_id=1, markets=others))

        live = await SnapshotPipeline(feed, AsyncMock(), market_settings).term_structure(as_of)

        assert live.result.reason is SpreadReason.INSUFFICIENT_MARKETS
        assert live.available_markets == [f"other-{i}" for i in range(5)]
