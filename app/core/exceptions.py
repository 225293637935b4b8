from typing import Optional

import httpx
from yfinance.exceptions import YFRateLimitError

from app.domain.constants import ProviderErrorKind

RATE_LIMIT_MARKERS = ("429", "Too Many Requests")


class ToolHubException(Exception):
    """Base exception for the application."""
    pass

class InvalidTickersError(ToolHubException):
    """Raised when a price request does not carry a non-empty list of ticker strings."""
    pass

class InvalidPriceError(ToolHubException):
    """Raised when a manually entered price is not a positive number."""
    pass

class NoOpenPositionsError(ToolHubException):
    """Raised when a bulk price refresh is requested but no call is open."""
    pass

class MarketDataError(ToolHubException):
    """Raised when a quote provider fails for a reason other than throttling."""

    def __init__(self, message: str, kind: ProviderErrorKind = ProviderErrorKind.UNAVAILABLE):
        super().__init__(message)
        self.kind = kind

class RateLimitedError(MarketDataError):
    """Raised when a quote provider signals that we are sending too many requests."""

    def __init__(self, message: str = "Too Many Requests"):
        super().__init__(message, kind=ProviderErrorKind.RATE_LIMITED)


def _status_code(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return getattr(exc, "status_code", None)


def classify_provider_error(exc: BaseException) -> ProviderErrorKind:
    """
    Map an upstream failure onto the provider error taxonomy.

    Throttling is recognised from a typed yfinance error, an HTTP 429 status,
    or the message text providers use for it. Everything else is reported as
    the provider being unavailable.
    """
    if isinstance(exc, MarketDataError):
        return exc.kind
    if isinstance(exc, YFRateLimitError):
        return ProviderErrorKind.RATE_LIMITED
    if _status_code(exc) == 429:
        return ProviderErrorKind.RATE_LIMITED

    message = str(exc)
    if any(marker in message for marker in RATE_LIMIT_MARKERS):
        return ProviderErrorKind.RATE_LIMITED
    return ProviderErrorKind.UNAVAILABLE


class PriceRequestError(ToolHubException):
    """Raised when a price request fails outside the per-ticker loop."""

    def __init__(self, details: str):
        super().__init__("Failed to fetch stock prices")
        self.details = details
