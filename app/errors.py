"""Exception types raised inside the media gateway."""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for gateway failures."""


class UpstreamError(GatewayError):
    """TMDB was unreachable, answered with an error status or sent a bad payload."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(GatewayError):
    """The persisted store could not be reached or rejected a write."""


class TierFailure(GatewayError):
    """A single fallback tier could not produce a result."""

    def __init__(self, tier: str, reason: str | BaseException):
        super().__init__(f"{tier}: {reason}")
        self.tier = tier
        self.reason = reason


class InvalidRequestError(GatewayError, ValueError):
    """The caller supplied a missing or invalid required value."""
