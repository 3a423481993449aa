"""Term structure analytics -- maturity ordering and spread derivation."""

from termspread.analytics.term_spread import (
    compute_spread,
    days_to_expiry,
    maturity_label,
    order_by_maturity,
    quantize_4dp,
)

__all__ = [
    "compute_spread",
    "days_to_expiry",
    "maturity_label",
    "order_by_maturity",
    "quantize_4dp",
]
