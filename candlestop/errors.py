"""
Exception taxonomy.

Only conditions the caller cannot recover from are raised: a bad
configuration or a missing conversion path.  Expected trading conditions
(an oversized position, an order that already left the pending state)
are reported through return values and log messages instead.
"""

from __future__ import annotations


class CandleStopError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(CandleStopError):
    """The strategy parameters are invalid; no order may be placed."""


class MarketDataError(CandleStopError):
    """Market data needed for sizing could not be obtained."""


class InstrumentResolutionError(MarketDataError):
    """No direct or inverted pair converts the account currency."""


class NoQuoteAvailable(MarketDataError):
    """The price source has no bid/ask for the requested instrument."""


class OrderGatewayError(CandleStopError):
    """The venue refused or failed to process an order request."""
