"""Failure types raised by the upstream client and absorbed by the fetcher."""

from typing import Optional


class TransitStatusError(Exception):
    """Base class for all upstream transit data failures."""

    reason = "transit data unavailable"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.reason)


class ConfigurationError(TransitStatusError):
    """The upstream integration is not configured (credentials absent)."""

    reason = "integration not configured"


class RateLimited(TransitStatusError):
    """The upstream rejected the request as too frequent (HTTP 429)."""

    reason = "rate limited"


class UpstreamUnavailable(TransitStatusError):
    """Network failure or non-2xx response from the upstream."""

    reason = "upstream unavailable"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedData(TransitStatusError):
    """A response or record parsed but is missing expected fields."""

    reason = "malformed data"
