"""Market feed layer -- upstream fetch fan-out and record normalization."""

from termspread.markets.client import MarketFeedClient, flatten_markets
from termspread.markets.normalizer import extract_markets, normalize, parse_expiry

__all__ = [
    "MarketFeedClient",
    "extract_markets",
    "flatten_markets",
    "normalize",
    "parse_expiry",
]
