"""Shared test fixtures for the term spread tracker."""

from datetime import datetime, timezone

import pytest

from termspread.config import ChainConfig, MarketSettings, StoreSettings

AS_OF = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def as_of() -> datetime:
    """Fixed evaluation clock: 2025-06-01 12:00 UTC."""
    return AS_OF


@pytest.fixture
def market_settings() -> MarketSettings:
    """MarketSettings with two test chains and a local API base."""
    return MarketSettings(
        asset_symbol="sUSDe",
        related_terms=["ethena"],
        api_base="https://feed.test/core/v1",
        limit=200,
        chains=[
            ChainConfig(id=1, name="Ethereum"),
            ChainConfig(id=9745, name="Plasma"),
        ],
        request_timeout=1.0,
    )


@pytest.fixture
def store_settings() -> StoreSettings:
    return StoreSettings(db_path=":memory:", default_days=90, max_days=365)
