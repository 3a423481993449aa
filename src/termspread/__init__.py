"""Term spread tracker for fixed-maturity yield markets."""

__version__ = "0.1.0"
