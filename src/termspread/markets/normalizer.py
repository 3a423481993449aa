"""Market normalizer: raw upstream market dicts -> canonical CandidateMarket list.

The feed returns loosely-shaped records. Yield fields may sit at the top
level or under a ``details`` object, and names may live under ``name`` or
``proName``. Each canonical field has one precedence list in
FIELD_SOURCES, resolved once here so nothing downstream has to guess.

Nothing in this module raises on bad input. Records that cannot be used
(no parseable expiry, not a dict) are dropped, and anything unrecognisable
degrades to an empty result.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from termspread.logging import get_logger
from termspread.models import MAX_ABS_RATE, CandidateMarket

logger = get_logger(__name__)

_ZERO = Decimal("0")

# Key paths per canonical field, highest precedence first.
FIELD_SOURCES: dict[str, tuple[tuple[str, ...], ...]] = {
    "implied_apy": (
        ("details", "impliedApy"),
        ("impliedApy",),
        ("details", "aggregatedApy"),
        ("aggregatedApy",),
    ),
    "underlying_apy": (
        ("details", "underlyingApy"),
        ("underlyingApy",),
    ),
    "liquidity_usd": (
        ("details", "liquidity"),
        ("liquidity", "usd"),
        ("liquidity",),
    ),
    "volume_24h_usd": (
        ("tradingVolume", "usd"),
    ),
}

# Response keys that may hold the market list, depending on endpoint variant.
MARKET_LIST_KEYS = ("markets", "results")

# Epoch values above this are milliseconds.
_EPOCH_MS_THRESHOLD = 10**11


def extract_markets(payload: Any) -> list[dict]:
    """Return the market list from a feed response body.

    Accepts ``{"markets": [...]}``, ``{"results": [...]}`` or a bare list.
    Any other shape yields an empty list.
    """
    if isinstance(payload, list):
        return [m for m in payload if isinstance(m, dict)]
    if isinstance(payload, dict):
        for key in MARKET_LIST_KEYS:
            markets = payload.get(key)
            if isinstance(markets, list):
                return [m for m in markets if isinstance(m, dict)]
    return []


def _lookup(record: dict, path: tuple[str, ...]) -> Any:
    node: Any = record
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _to_decimal(value: Any) -> Decimal | None:
    """Convert a numeric-looking value to Decimal, or None if it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str, Decimal)):
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def resolve_field(record: dict, field_name: str) -> Decimal:
    """Resolve a numeric field through its precedence list, defaulting to 0.

    A source that is present but not numeric counts as absent.
    """
    for path in FIELD_SOURCES[field_name]:
        value = _to_decimal(_lookup(record, path))
        if value is not None:
            return value
    return _ZERO


def parse_expiry(value: Any) -> datetime | None:
    """Parse an expiry as a UTC datetime.

    Accepts ISO-8601 strings (``Z`` suffix, explicit offset, or naive,
    which is taken as UTC) and epoch seconds or milliseconds.
    Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    return None


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def display_name(record: dict) -> str:
    """Human-readable market name: ``name``, falling back to ``proName``."""
    return _text(record.get("name")) or _text(record.get("proName"))


def _underlying_symbol(record: dict) -> str:
    underlying = record.get("underlyingAsset")
    if isinstance(underlying, dict):
        return _text(underlying.get("symbol"))
    return ""


def _matches_asset(record: dict, needle: str) -> bool:
    haystacks = (
        _text(record.get("name")),
        _text(record.get("proName")),
        _underlying_symbol(record),
    )
    return any(needle in h.lower() for h in haystacks)


def _matches_related(record: dict, terms: Sequence[str]) -> bool:
    haystacks = (
        _text(record.get("proName")),
        _text(record.get("protocol")),
        display_name(record),
    )
    lowered = [h.lower() for h in haystacks]
    return any(term in h for term in terms for h in lowered)


def _chain_id(record: dict) -> int | None:
    value = record.get("chainId")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _to_candidate(record: dict) -> CandidateMarket | None:
    expiry = parse_expiry(record.get("expiry"))
    if expiry is None:
        logger.debug(
            "market_dropped_no_expiry",
            address=record.get("address"),
            raw_expiry=record.get("expiry"),
        )
        return None

    implied_apy = resolve_field(record, "implied_apy")
    underlying_apy = resolve_field(record, "underlying_apy")
    if abs(implied_apy) > MAX_ABS_RATE or abs(underlying_apy) > MAX_ABS_RATE:
        logger.debug(
            "market_dropped_rate_out_of_range",
            address=record.get("address"),
            implied_apy=str(implied_apy),
            underlying_apy=str(underlying_apy),
        )
        return None

    chain = record.get("chain")
    return CandidateMarket(
        address=_text(record.get("address")),
        name=display_name(record),
        expiry=expiry,
        implied_apy=implied_apy,
        underlying_apy=underlying_apy,
        liquidity_usd=resolve_field(record, "liquidity_usd"),
        volume_24h_usd=resolve_field(record, "volume_24h_usd"),
        chain_id=_chain_id(record),
        chain=chain if isinstance(chain, str) else None,
    )


def normalize(
    raw_markets: Any,
    asset_symbol: str,
    related_terms: Iterable[str] = (),
) -> list[CandidateMarket]:
    """Select and canonicalize the markets for ``asset_symbol``.

    A record qualifies when its name, ``proName`` or underlying-asset
    symbol contains ``asset_symbol`` (case-insensitive). If nothing
    qualifies, a broadened pass matches ``related_terms`` against
    ``proName``, ``protocol`` and the display name.

    Qualifying records without a parseable expiry, or with a yield beyond
    MAX_ABS_RATE, are dropped.
    Input order is preserved.

    Args:
        raw_markets: Market dicts as returned by the feed. Non-list input
            and non-dict entries are ignored.
        asset_symbol: Target asset, e.g. "sUSDe".
        related_terms: Fallback match terms, e.g. ["ethena"].

    Returns:
        Candidate markets, possibly empty. Never raises on malformed input.
    """
    if not isinstance(raw_markets, list) or not asset_symbol:
        return []

    records = [r for r in raw_markets if isinstance(r, dict)]
    needle = asset_symbol.lower()

    selected = [r for r in records if _matches_asset(r, needle)]
    matched_by = "asset"

    if not selected:
        terms = [t.lower() for t in related_terms if t]
        if terms:
            selected = [r for r in records if _matches_related(r, terms)]
            matched_by = "related"

    candidates = [c for c in (_to_candidate(r) for r in selected) if c is not None]

    logger.debug(
        "markets_normalized",
        asset=asset_symbol,
        total=len(records),
        matched=len(selected),
        matched_by=matched_by,
        candidates=len(candidates),
    )
    return candidates
