"""Snapshot pipeline: fetch -> normalize -> compute -> persist.

One run is a self-contained unit of work with no state carried between
runs. Feed failures degrade to fewer markets, fewer than two live
maturities is reported as an informational outcome, and only a storage
failure makes a run fail.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from termspread.analytics.term_spread import compute_spread, snapshot_date
from termspread.config import MarketSettings
from termspread.data.store import SnapshotStore
from termspread.exceptions import StoreError
from termspread.logging import get_logger
from termspread.markets.client import MarketFeedClient, flatten_markets
from termspread.markets.normalizer import display_name, normalize
from termspread.models import (
    ChainFetchResult,
    SnapshotOutcome,
    SnapshotStatus,
    SpreadReason,
    SpreadResult,
)

logger = get_logger(__name__)

_AVAILABLE_HINT_LIMIT = 5


@dataclass
class LiveTermStructure:
    """Current curve computed on demand, plus feed diagnostics."""

    result: SpreadResult
    available_markets: list[str] = field(default_factory=list)
    chain_errors: dict[str, str] = field(default_factory=dict)


def _chain_errors(results: list[ChainFetchResult]) -> dict[str, str]:
    return {r.chain: r.error for r in results if r.error is not None}


class SnapshotPipeline:
    """Runs the daily term spread snapshot and the live curve read.

    Usage:
        pipeline = SnapshotPipeline(feed_client, store, settings.market)
        outcome = await pipeline.run(datetime.now(timezone.utc))
    """

    def __init__(
        self,
        feed_client: MarketFeedClient,
        store: SnapshotStore,
        settings: MarketSettings,
    ) -> None:
        self._feed = feed_client
        self._store = store
        self._settings = settings

    async def _compute(self, as_of: datetime) -> tuple[SpreadResult, list[dict], dict[str, str]]:
        results = await self._feed.fetch_all()
        raw_markets = flatten_markets(results)
        candidates = normalize(
            raw_markets,
            self._settings.asset_symbol,
            self._settings.related_terms,
        )
        return compute_spread(candidates, as_of), raw_markets, _chain_errors(results)

    async def run(self, as_of: datetime | None = None) -> SnapshotOutcome:
        """Execute one snapshot run.

        Args:
            as_of: Evaluation time; defaults to now (UTC). Its UTC day is the
                snapshot date.

        Returns:
            SnapshotOutcome. STORED when a snapshot was written,
            INSUFFICIENT_MARKETS when fewer than two live maturities were
            found (nothing written), FAILED when the store rejected the write.
        """
        as_of = as_of or datetime.now(timezone.utc)

        with structlog.contextvars.bound_contextvars(
            snapshot_date=snapshot_date(as_of)
        ):
            result, raw_markets, chain_errors = await self._compute(as_of)
            markets_found = len(result.structure)

            if result.reason is not SpreadReason.OK or result.spread is None:
                logger.info(
                    "snapshot_skipped_insufficient_markets",
                    asset=self._settings.asset_symbol,
                    markets_found=markets_found,
                    upstream_markets=len(raw_markets),
                    chain_errors=chain_errors or None,
                )
                return SnapshotOutcome(
                    status=SnapshotStatus.INSUFFICIENT_MARKETS,
                    markets_found=markets_found,
                    chain_errors=chain_errors,
                )

            snapshot = result.spread
            try:
                await self._store.put(snapshot)
            except StoreError as e:
                logger.error("snapshot_failed", error=str(e))
                return SnapshotOutcome(
                    status=SnapshotStatus.FAILED,
                    markets_found=markets_found,
                    error=str(e),
                    chain_errors=chain_errors,
                )

            logger.info(
                "snapshot_stored",
                term_spread=str(snapshot.term_spread),
                front_apy=str(snapshot.front_month_apy),
                back_apy=str(snapshot.back_month_apy),
                markets=snapshot.markets_count,
            )
            return SnapshotOutcome(
                status=SnapshotStatus.STORED,
                snapshot=snapshot,
                markets_found=markets_found,
                chain_errors=chain_errors,
            )

    async def term_structure(self, as_of: datetime | None = None) -> LiveTermStructure:
        """Compute the current curve without persisting anything.

        When no market matches, ``available_markets`` lists a few upstream
        names to help spot a renamed asset.
        """
        as_of = as_of or datetime.now(timezone.utc)
        result, raw_markets, chain_errors = await self._compute(as_of)

        available: list[str] = []
        if result.reason is SpreadReason.INSUFFICIENT_MARKETS:
            names = (display_name(m) for m in raw_markets)
            available = [n for n in names if n][:_AVAILABLE_HINT_LIMIT]

        return LiveTermStructure(
            result=result,
            available_markets=available,
            chain_errors=chain_errors,
        )
