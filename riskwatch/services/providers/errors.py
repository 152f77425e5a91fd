"""Typed provider failures.

Callers never see HTTP status codes or transport exceptions; every
provider call surfaces one of these instead.
"""
from typing import Optional


class ProviderError(Exception):
    """Base class for all provider failures."""

    # Whether repeating the same call could plausibly succeed
    transient = False

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ProviderTimeout(ProviderError):
    """Request exceeded its timeout."""
    transient = True


class RateLimited(ProviderError):
    """Provider answered 429."""
    transient = True


class ProviderUnavailable(ProviderError):
    """Connection failure or 5xx from the provider."""
    transient = True


class NotFound(ProviderError):
    """Call, recording or resource does not exist upstream."""
    pass


class InvalidResponse(ProviderError):
    """Provider returned unparseable or semantically invalid content."""
    pass


class LocatorExpired(ProviderError):
    """Signed recording locator was rejected on download."""
    pass


class MissingCredentials(ProviderError):
    """API key missing or rejected. Fatal for every provider call."""
    pass


def is_transient(error: BaseException) -> bool:
    """Default retry classifier: only transient provider errors retry."""
    return isinstance(error, ProviderError) and error.transient
