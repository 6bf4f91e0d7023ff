"""
Order, sizing and ledger models.

These dataclasses represent the objects passed between the sizer, the
order lifecycle and the execution layer.  Keeping them in a separate
module improves readability and makes unit testing easier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional
import pandas as pd

from ..errors import ConfigurationError

if TYPE_CHECKING:
    from ..data.models import Instrument


class OrderSide(Enum):
    """Direction of the stop entry."""
    LONG = "long"
    SHORT = "short"

    @property
    def is_long(self) -> bool:
        return self is OrderSide.LONG

    @property
    def direction(self) -> int:
        """``+1`` for long, ``-1`` for short."""
        return 1 if self is OrderSide.LONG else -1

    @property
    def order_command(self) -> str:
        return "BUYSTOP" if self is OrderSide.LONG else "SELLSTOP"


class OrderState(Enum):
    """Lifecycle state of the order managed by this strategy."""
    PENDING = "pending"
    FILLED = "filled"
    CLOSED = "closed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class RiskSpec:
    """What the trader wants to risk and where.

    Attributes
    ----------
    instrument : Instrument
        Traded currency pair.
    entry_price : float
        Price of the stop entry.
    stop_loss_price : float
        Protective stop.  Must differ from the entry price.
    risk_amount : float
        Loss in account currency if the stop-loss is hit.
    side : OrderSide
        Long (buy stop) or short (sell stop).
    """

    instrument: "Instrument"
    entry_price: float
    stop_loss_price: float
    risk_amount: float
    side: OrderSide

    def __post_init__(self) -> None:
        if self.entry_price <= 0:
            raise ConfigurationError(f"Invalid stop order entry price: {self.entry_price}")
        if self.stop_loss_price <= 0:
            raise ConfigurationError(f"Invalid stop loss price: {self.stop_loss_price}")
        if self.entry_price == self.stop_loss_price:
            raise ConfigurationError("Entry price and stop loss price must differ")

    @property
    def risk_distance(self) -> float:
        return abs(self.entry_price - self.stop_loss_price)

    def price_at_reward(self, multiple: float) -> float:
        """Price `multiple` risk distances beyond the entry in the profit direction."""
        return self.entry_price + self.side.direction * self.risk_distance * multiple


@dataclass(frozen=True)
class SizingResult:
    """Lot size computed by the position sizer.

    ``clamped`` is set when the computed size was not safe to trade; the
    lot size is then zero.
    """
    lots: float
    clamped: bool = False


@dataclass
class PendingOrder:
    """The single order managed by an `OrderLifecycle`."""
    label: str
    risk: RiskSpec
    take_profit_price: float
    amount: float
    state: OrderState = OrderState.PENDING
    breakeven_armed: bool = False
    breakeven_trigger: float = 0.0
    profit_loss: float = 0.0
    commission: float = 0.0

    @property
    def side(self) -> OrderSide:
        return self.risk.side

    @property
    def is_active(self) -> bool:
        return self.state in (OrderState.PENDING, OrderState.FILLED)


@dataclass
class ClosedOrder:
    """Represents a closed order as recorded by the ledger."""
    label: str
    symbol: str
    side: str
    amount: float
    entry_price: float
    profit_loss: float
    commission: float
    closed_at: pd.Timestamp


@dataclass
class TradeLedger:
    """Running profit and commission totals for one strategy run."""
    total_profit: float = 0.0
    total_commission: float = 0.0
    closed_orders: List[ClosedOrder] = field(default_factory=list)

    @property
    def net_profit(self) -> float:
        return self.total_profit - self.total_commission

    def record(self, order: PendingOrder, closed_at: Optional[pd.Timestamp] = None) -> ClosedOrder:
        """Fold a closed order's profit and commission into the totals."""
        closed = ClosedOrder(
            label=order.label,
            symbol=order.risk.instrument.symbol,
            side=order.side.value,
            amount=order.amount,
            entry_price=order.risk.entry_price,
            profit_loss=order.profit_loss,
            commission=order.commission,
            closed_at=closed_at if closed_at is not None else pd.Timestamp.now(tz="UTC"),
        )
        self.total_profit += order.profit_loss
        self.total_commission += order.commission
        self.closed_orders.append(closed)
        return closed
