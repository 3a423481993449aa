"""Term spread calculator.

Orders candidate markets by maturity and derives the spread between the
farthest and nearest expiries:

  term_spread = back_month_implied% - front_month_implied%

Positive means longer maturities price higher fixed yields (upward-sloping
curve). Feed yields are fractions; this module is the single place they are
scaled to percent. The clock is always passed in as ``as_of``.

CRITICAL: All computations use Decimal. Never use float.
"""

import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from termspread.models import (
    MAX_ABS_RATE,
    CandidateMarket,
    SpreadReason,
    SpreadResult,
    SpreadSnapshot,
    TermStructurePoint,
)

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")
_FOUR_DP = Decimal("0.0001")
_SECONDS_PER_DAY = 86_400


def quantize_4dp(value: Decimal) -> Decimal:
    """Round to 4 decimal places, halves away from zero."""
    return value.quantize(_FOUR_DP, rounding=ROUND_HALF_UP)


def to_percent(rate: Decimal) -> Decimal:
    """Scale a fractional rate (0.05) to percentage units (5)."""
    return rate * _HUNDRED


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def days_to_expiry(expiry: datetime, as_of: datetime) -> int:
    """Whole days until expiry, rounded up. Negative once expired."""
    remaining = (_as_utc(expiry) - _as_utc(as_of)).total_seconds()
    return math.ceil(remaining / _SECONDS_PER_DAY)


def snapshot_date(as_of: datetime) -> str:
    """ISO calendar day of ``as_of`` in UTC."""
    return _as_utc(as_of).date().isoformat()


def maturity_label(days: int) -> str:
    """Bucket label for a maturity: "14D" up to a month, then "3M"."""
    if days <= 30:
        return f"{days}D"
    return f"{math.floor(days / 30 + 0.5)}M"


def build_point(market: CandidateMarket, as_of: datetime) -> TermStructurePoint:
    """Project a candidate onto the curve relative to ``as_of``."""
    days = days_to_expiry(market.expiry, as_of)
    return TermStructurePoint(
        maturity=maturity_label(days),
        days_to_expiry=days,
        implied_yield=to_percent(market.implied_apy),
        underlying_yield=to_percent(market.underlying_apy),
        liquidity_usd=market.liquidity_usd,
        volume_24h_usd=market.volume_24h_usd,
        expiry=_as_utc(market.expiry).date().isoformat(),
        address=market.address,
        name=market.name,
        chain=market.chain,
    )


def order_by_maturity(
    candidates: list[CandidateMarket], as_of: datetime
) -> list[CandidateMarket]:
    """Drop expired or unusable markets and sort the rest by expiry ascending.

    A market counts as live only when its days-to-expiry is strictly
    positive and both yields are within MAX_ABS_RATE. The sort is stable,
    so markets sharing an expiry keep their input order.
    """
    live = [
        c
        for c in candidates
        if days_to_expiry(c.expiry, as_of) > 0
        and abs(c.implied_apy) <= MAX_ABS_RATE
        and abs(c.underlying_apy) <= MAX_ABS_RATE
    ]
    return sorted(live, key=lambda c: _as_utc(c.expiry))


def compute_spread(candidates: list[CandidateMarket], as_of: datetime) -> SpreadResult:
    """Compute the term structure and the daily spread snapshot.

    Degenerate inputs never raise:
    - no live candidates: empty structure, no snapshot, INSUFFICIENT_MARKETS
    - one live candidate: snapshot with term_spread 0 where front and back
      are the same market, SINGLE_MATURITY
    - two or more: front is the nearest expiry and back the farthest,
      regardless of how many maturities sit between them

    ``underlying_apy`` comes from the front-month market, not an average.

    Args:
        candidates: Normalized markets for the target asset.
        as_of: Evaluation time. Its UTC calendar day becomes the snapshot date.

    Returns:
        SpreadResult with percent-unit structure and 4 dp snapshot values.
    """
    ordered = order_by_maturity(candidates, as_of)
    if not ordered:
        return SpreadResult(
            structure=[], spread=None, reason=SpreadReason.INSUFFICIENT_MARKETS
        )

    structure = [build_point(c, as_of) for c in ordered]
    front, back = structure[0], structure[-1]

    if len(structure) == 1:
        term_spread = _ZERO
        reason = SpreadReason.SINGLE_MATURITY
    else:
        term_spread = back.implied_yield - front.implied_yield
        reason = SpreadReason.OK

    snapshot = SpreadSnapshot(
        date=snapshot_date(as_of),
        term_spread=quantize_4dp(term_spread),
        front_month_apy=quantize_4dp(front.implied_yield),
        back_month_apy=quantize_4dp(back.implied_yield),
        front_expiry=front.expiry,
        back_expiry=back.expiry,
        underlying_apy=quantize_4dp(front.underlying_yield),
        markets_count=len(structure),
    )
    return SpreadResult(structure=structure, spread=snapshot, reason=reason)
