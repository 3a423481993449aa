"""Shared data models for the term spread tracker.

CRITICAL: All yield and liquidity values use Decimal. Never use float for rates.
Yields on CandidateMarket are fractional (0.05 == 5%); everything downstream
of the calculator is in percentage units.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

# Largest fractional rate accepted (100,000,000% APY). Anything bigger is
# upstream garbage and cannot be rounded to 4 dp within Decimal precision.
MAX_ABS_RATE = Decimal("1000000")


class SpreadReason(str, Enum):
    """Why a spread computation produced the result it did."""

    OK = "ok"
    SINGLE_MATURITY = "single_maturity"
    INSUFFICIENT_MARKETS = "insufficient_markets"


class SnapshotStatus(str, Enum):
    """Outcome of one daily snapshot run."""

    STORED = "stored"
    INSUFFICIENT_MARKETS = "insufficient_markets"
    FAILED = "failed"


@dataclass(frozen=True)
class CandidateMarket:
    """A canonical market record for the target asset.

    Built by the normalizer from a raw upstream dict. ``expiry`` is always
    a timezone-aware UTC datetime.
    """

    address: str
    name: str
    expiry: datetime
    implied_apy: Decimal
    underlying_apy: Decimal
    liquidity_usd: Decimal = Decimal("0")
    volume_24h_usd: Decimal = Decimal("0")
    chain_id: int | None = None
    chain: str | None = None


@dataclass
class TermStructurePoint:
    """One maturity on the implied-yield curve, in percentage units."""

    maturity: str  # "14D", "3M", ...
    days_to_expiry: int
    implied_yield: Decimal
    underlying_yield: Decimal
    liquidity_usd: Decimal
    volume_24h_usd: Decimal
    expiry: str  # ISO day
    address: str
    name: str
    chain: str | None = None

    def to_dict(self) -> dict:
        """Serialize to JSON-safe dict with Decimal values as strings."""
        return {
            "maturity": self.maturity,
            "days_to_expiry": self.days_to_expiry,
            "implied_yield": str(self.implied_yield),
            "underlying_yield": str(self.underlying_yield),
            "liquidity_usd": str(self.liquidity_usd),
            "volume_24h_usd": str(self.volume_24h_usd),
            "expiry": self.expiry,
            "address": self.address,
            "name": self.name,
            "chain": self.chain,
        }


@dataclass
class SpreadSnapshot:
    """Daily term spread record, keyed by ``date``.

    Stored in SQLite with yields as TEXT to preserve Decimal precision.
    """

    date: str  # ISO day, unique key
    term_spread: Decimal
    front_month_apy: Decimal
    back_month_apy: Decimal
    front_expiry: str
    back_expiry: str
    underlying_apy: Decimal
    markets_count: int

    def to_dict(self) -> dict:
        """Serialize to JSON-safe dict with Decimal values as strings."""
        return {
            "date": self.date,
            "term_spread": str(self.term_spread),
            "front_month_apy": str(self.front_month_apy),
            "back_month_apy": str(self.back_month_apy),
            "front_expiry": self.front_expiry,
            "back_expiry": self.back_expiry,
            "underlying_apy": str(self.underlying_apy),
            "markets_count": self.markets_count,
        }


@dataclass
class SpreadResult:
    """Calculator output: the curve, the derived snapshot, and why."""

    structure: list[TermStructurePoint]
    spread: SpreadSnapshot | None
    reason: SpreadReason


@dataclass
class ChainFetchResult:
    """Markets returned by one chain's feed request.

    A failed fetch carries an empty market list and the error text.
    """

    chain: str
    chain_id: int
    markets: list[dict] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SnapshotOutcome:
    """Result of one fetch -> normalize -> compute -> persist run."""

    status: SnapshotStatus
    snapshot: SpreadSnapshot | None = None
    markets_found: int = 0
    error: str | None = None
    chain_errors: dict[str, str] = field(default_factory=dict)
