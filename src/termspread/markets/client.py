"""Async HTTP client for the upstream yield-market feed.

Fetches active markets per chain and fans out across every configured
chain concurrently. A failing chain never aborts the others: its result
carries an empty market list and the error text, and the join waits for
every branch before returning.

Timeouts are whatever the transport enforces (``request_timeout``); there
is no retry policy. The daily job simply runs again tomorrow.
"""

import asyncio
from typing import Self

import httpx

from termspread.config import ChainConfig, MarketSettings
from termspread.exceptions import UpstreamUnavailable
from termspread.logging import get_logger
from termspread.markets.normalizer import extract_markets
from termspread.models import ChainFetchResult

logger = get_logger(__name__)


class MarketFeedClient:
    """Reads active markets from the feed for one or more chains.

    Usage:
        async with MarketFeedClient(settings.market) as client:
            results = await client.fetch_all()
            markets = flatten_markets(results)
    """

    def __init__(
        self,
        settings: MarketSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=settings.request_timeout,
            headers={"Accept": "application/json"},
        )

    def _url(self, chain_id: int) -> str:
        return f"{self._settings.api_base.rstrip('/')}/{chain_id}/markets/active"

    async def fetch_chain(self, chain: ChainConfig) -> list[dict]:
        """Fetch active markets for one chain.

        Raises:
            UpstreamUnavailable: transport error, non-2xx status, or a body
                that is not JSON.
        """
        try:
            response = await self._client.get(
                self._url(chain.id),
                params={"limit": self._settings.limit},
            )
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(chain.name, str(e) or type(e).__name__) from e

        if not response.is_success:
            raise UpstreamUnavailable(chain.name, f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamUnavailable(chain.name, f"invalid JSON: {e}") from e

        return extract_markets(payload)

    async def _fetch_isolated(self, chain: ChainConfig) -> ChainFetchResult:
        try:
            markets = await self.fetch_chain(chain)
        except UpstreamUnavailable as e:
            logger.warning(
                "chain_fetch_failed",
                chain=chain.name,
                chain_id=chain.id,
                error=e.detail,
            )
            return ChainFetchResult(
                chain=chain.name, chain_id=chain.id, error=e.detail
            )

        logger.debug(
            "chain_fetched", chain=chain.name, chain_id=chain.id, markets=len(markets)
        )
        return ChainFetchResult(chain=chain.name, chain_id=chain.id, markets=markets)

    async def fetch_all(
        self, chains: list[ChainConfig] | None = None
    ) -> list[ChainFetchResult]:
        """Fetch every chain concurrently, one result per chain in input order."""
        targets = chains if chains is not None else self._settings.chains
        results = await asyncio.gather(*(self._fetch_isolated(c) for c in targets))
        return list(results)

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()


def flatten_markets(results: list[ChainFetchResult]) -> list[dict]:
    """Combine per-chain market lists, tagging each record with its chain.

    Records are copied; the tags never overwrite an upstream ``chainId``.
    """
    combined: list[dict] = []
    for result in results:
        for market in result.markets:
            tagged = {**market, "chain": result.chain}
            tagged.setdefault("chainId", result.chain_id)
            combined.append(tagged)
    return combined
