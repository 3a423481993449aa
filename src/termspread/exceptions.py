"""Custom exceptions for the term spread tracker.

Only infrastructure failures are exceptions. Thin market coverage and
malformed upstream records are expected steady-state conditions and are
reported through result types instead.
"""


class TermSpreadError(Exception):
    """Base exception for all term spread errors."""


class UpstreamUnavailable(TermSpreadError):
    """Raised when the market feed fetch fails or returns a non-success status."""

    def __init__(self, chain: str, detail: str) -> None:
        super().__init__(f"{chain}: {detail}")
        self.chain = chain
        self.detail = detail


class StoreError(TermSpreadError):
    """Raised when a snapshot read or write fails at the storage layer.

    The message carries the driver's diagnostic text.
    """
