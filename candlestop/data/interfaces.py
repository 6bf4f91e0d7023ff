"""
Market collaborator interfaces.

The strategy never talks to a trading platform directly.  It reads
quotes, instrument metadata and the account currency through these
contracts; `candlestop.data.mt5_data` implements them for MetaTrader 5
and the tests implement them in memory.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from .models import Instrument, Quote


class PriceOracle(ABC):
    """Source of the latest bid/ask prices."""

    @abstractmethod
    def last_quote(self, instrument: Instrument) -> Quote:
        """Return the latest quote.

        Raises
        ------
        NoQuoteAvailable
            If no price is known for the instrument.
        """


class InstrumentCatalog(ABC):
    """Resolves pair strings to instruments and supplies their metadata."""

    @abstractmethod
    def resolve(self, pair: str) -> Optional[Instrument]:
        """Return the instrument quoted as `pair` (``"AAA/BBB"``), if any."""

    def resolve_inverted(self, pair: str) -> Optional[Instrument]:
        """Return the instrument quoted the other way round, if any.

        ``resolve_inverted("USD/EUR")`` looks up ``"EUR/USD"``.
        """
        primary, secondary = pair.split("/")
        return self.resolve(Instrument.pair_string(secondary, primary))

    def metadata(self, instrument: Instrument) -> Instrument:
        """Return the catalogue's view of `instrument` (pip scale, currencies)."""
        return self.resolve(instrument.symbol) or instrument

    def subscribe(self, instruments: Iterable[Instrument]) -> None:
        """Ask the platform to stream prices for `instruments`."""


class AccountInfo(ABC):
    """Account metadata."""

    @abstractmethod
    def currency(self) -> str:
        """ISO code of the account currency."""
