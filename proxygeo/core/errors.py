from __future__ import annotations


class ProxyGeoError(Exception):
    """Base error for proxygeo."""


class FetchError(ProxyGeoError):
    """Upstream HTTP failure or timeout; aborts the whole pass."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SizeGuardError(ProxyGeoError):
    """Upstream payload is smaller than the plausibility threshold for its domain."""

    def __init__(self, domain: str, count: int, minimum: int) -> None:
        super().__init__(f"{domain} payload too small: {count} < {minimum}")
        self.domain = domain
        self.count = count
        self.minimum = minimum


class RecordWriteError(ProxyGeoError):
    """A single record or chunk could not be written; the pass continues."""


class MatchBatchError(ProxyGeoError):
    """A geo-match lookup failed for one record inside a reconciliation batch."""


class PassInProgressError(ProxyGeoError):
    """Another pass for the same domain is still running."""
