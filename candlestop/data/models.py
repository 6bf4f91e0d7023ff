"""
Market data and venue event models.

These dataclasses describe what the host platform hands to the
strategy: instrument metadata, quotes, closed bars, order messages and
snapshots of the remote order.  They carry no behaviour beyond a few
convenience accessors so that tests can build them directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import pandas as pd

from ..execution.models import OrderSide


@dataclass(frozen=True)
class Instrument:
    """A tradable currency pair.

    Attributes
    ----------
    symbol : str
        Pair string in ``PRIMARY/SECONDARY`` form (e.g. ``"EUR/USD"``).
    primary_currency, secondary_currency : str
        ISO currency codes of the base and quote currency.
    pip_scale : int
        Decimal exponent of one pip.  ``4`` for EUR/USD, ``2`` for USD/JPY.
    pip_value : float
        Price size of one pip, i.e. ``10 ** -pip_scale``.
    """

    symbol: str
    primary_currency: str
    secondary_currency: str
    pip_scale: int
    pip_value: float

    @staticmethod
    def pair_string(primary: str, secondary: str) -> str:
        return f"{primary}/{secondary}"

    @classmethod
    def from_pair(cls, symbol: str, pip_scale: int) -> "Instrument":
        """Build an instrument from ``"AAA/BBB"`` and its pip scale."""
        primary, secondary = symbol.split("/")
        return cls(
            symbol=symbol,
            primary_currency=primary,
            secondary_currency=secondary,
            pip_scale=pip_scale,
            pip_value=10.0 ** -pip_scale,
        )

    def __str__(self) -> str:
        return self.symbol


@dataclass(frozen=True)
class Quote:
    """Latest bid/ask of an instrument."""
    bid: float
    ask: float

    def for_side(self, side: OrderSide) -> float:
        """Ask for long orders, bid for short ones."""
        return self.ask if side.is_long else self.bid


@dataclass(frozen=True)
class Bar:
    """OHLC values of one closed candle."""
    open: float
    high: float
    low: float
    close: float


@dataclass(frozen=True)
class BarEvent:
    """A candle of `period` closed on `instrument`.

    Both the ask and the bid side of the candle are delivered: long
    orders are evaluated against ask prices, short orders against bid
    prices.
    """
    instrument: Instrument
    period: str
    timestamp: pd.Timestamp
    ask_bar: Bar
    bid_bar: Bar


class RemoteOrderState(Enum):
    """Order state as reported by the venue."""
    OPENED = "opened"  # accepted, waiting for the stop price
    FILLED = "filled"
    CLOSED = "closed"
    CANCELED = "canceled"


@dataclass
class RemoteOrder:
    """Snapshot of an order as currently known by the venue."""
    label: str
    symbol: str
    side: OrderSide
    state: RemoteOrderState
    amount: float
    open_price: float = 0.0
    stop_loss_price: float = 0.0
    take_profit_price: float = 0.0
    profit_loss: float = 0.0
    commission: float = 0.0


class MessageType(Enum):
    SUBMIT_OK = "submit_ok"
    SUBMIT_REJECTED = "submit_rejected"
    FILL_OK = "fill_ok"
    CLOSE_OK = "close_ok"
    CHANGED_OK = "changed_ok"
    CHANGED_REJECTED = "changed_rejected"
    INSTRUMENT_STATUS = "instrument_status"
    CALENDAR = "calendar"
    NOTIFICATION = "notification"


@dataclass(frozen=True)
class OrderMessage:
    """Notification pushed by the venue, optionally about an order."""
    type: MessageType
    order: Optional[RemoteOrder] = None
    text: str = ""
