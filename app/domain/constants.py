from enum import Enum

class PriceSource(str, Enum):
    PRIMARY = "Alpha Vantage"
    FALLBACK = "Yahoo Finance (fallback)"
    SOLE = "Yahoo Finance"

class ProviderErrorKind(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    UNAVAILABLE = "UNAVAILABLE"

class Recommendation(str, Enum):
    STRONG_BUY = "STRONG BUY"
    BUY = "BUY"
    WATCH = "WATCH"

class CallFilter(str, Enum):
    ALL = "all"
    OPEN = "open"
    CLOSED = "closed"
