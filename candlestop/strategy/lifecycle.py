"""
Order lifecycle state machine.

`OrderLifecycle` owns the single stop entry order of a run and reacts to
bar closes and venue messages.  Transitions do not call the venue
themselves: they return a list of gateway commands which the strategy
executes.  Bar transitions receive the remote order as re-read just
before the call, so a stale local view never triggers an action whose
precondition no longer holds.

States::

    PENDING --fill--> FILLED --close--> CLOSED
    PENDING --close (expired)--> CLOSED
    PENDING --submit rejected--> REJECTED
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Callable, List, Optional, Union

from ..data.models import BarEvent, Instrument, MessageType, OrderMessage, RemoteOrder, RemoteOrderState
from ..errors import MarketDataError
from ..execution.models import OrderSide, OrderState, PendingOrder, RiskSpec, TradeLedger
from ..sizing.position_sizer import PositionSizer
from .breakeven import BreakevenTracker


logger = logging.getLogger(__name__)

# take-profit distance in multiples of the risk distance (1:2 risk:reward)
REWARD_MULTIPLE = 2.0


@dataclass(frozen=True)
class SubmitOrder:
    label: str
    instrument: Instrument
    side: OrderSide
    amount: float
    entry_price: float
    slippage_pips: float
    stop_loss_price: float
    take_profit_price: float


@dataclass(frozen=True)
class ModifyStopLoss:
    label: str
    price: float


@dataclass(frozen=True)
class ResizeOrder:
    label: str
    amount: float


@dataclass(frozen=True)
class CloseOrder:
    label: str


Command = Union[SubmitOrder, ModifyStopLoss, ResizeOrder, CloseOrder]


class OrderLifecycle:
    """Manage one stop entry order from submission to close.

    Parameters
    ----------
    sizer : PositionSizer
        Computes the order amount from the current quotes.
    tracker : BreakevenTracker
        Decides when the stop-loss moves to the open price.
    ledger : TradeLedger, optional
        Receives profit and commission of the closed order.
    slippage_pips : float
        Slippage tolerated when the stop entry triggers.
    clock : callable, optional
        Returns epoch seconds; used to build unique order labels.
    """

    def __init__(
        self,
        sizer: PositionSizer,
        tracker: BreakevenTracker,
        ledger: Optional[TradeLedger] = None,
        slippage_pips: float = 5.0,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.sizer = sizer
        self.tracker = tracker
        self.ledger = ledger if ledger is not None else TradeLedger()
        self.slippage_pips = slippage_pips
        self._clock = clock or time.time
        self.order: Optional[PendingOrder] = None
        self._cancel_requested = False

    @property
    def label(self) -> Optional[str]:
        return self.order.label if self.order is not None else None

    @property
    def is_active(self) -> bool:
        """True while bar events should be handled for the order."""
        return self.order is not None and self.order.is_active and not self._cancel_requested

    @property
    def is_finished(self) -> bool:
        """True once the order reached a terminal state (or was never placed)."""
        return self.order is None or not self.order.is_active

    def make_label(self, side: OrderSide) -> str:
        return f"{side.order_command}{int(self._clock() * 1000)}"

    def submit(self, risk: RiskSpec) -> List[Command]:
        """Size the order and return the submission command.

        Raises
        ------
        InstrumentResolutionError, NoQuoteAvailable
            If the order cannot be sized.  Nothing is submitted.
        """
        if self.is_active:
            raise RuntimeError(f"Order {self.order.label} is still active")

        take_profit = risk.price_at_reward(REWARD_MULTIPLE)
        sizing = self.sizer.size(risk)
        if sizing.clamped:
            logger.error("Order not submitted: position size failed the safety check")
            return []

        self._cancel_requested = False
        self.order = PendingOrder(
            label=self.make_label(risk.side),
            risk=risk,
            take_profit_price=take_profit,
            amount=sizing.lots,
            breakeven_trigger=self.tracker.arm_trigger(risk),
        )
        return [
            SubmitOrder(
                label=self.order.label,
                instrument=risk.instrument,
                side=risk.side,
                amount=sizing.lots,
                entry_price=risk.entry_price,
                slippage_pips=self.slippage_pips,
                stop_loss_price=risk.stop_loss_price,
                take_profit_price=take_profit,
            )
        ]

    def reject(self, reason: str = "") -> None:
        """Mark the order as rejected by the venue."""
        if self.order is None or not self.order.is_active:
            return
        self.order.state = OrderState.REJECTED
        logger.error("Order %s rejected. %s", self.order.label, reason)

    def on_housekeeping_bar(self, event: BarEvent, remote: Optional[RemoteOrder]) -> List[Command]:
        """Breakeven check and size update, run on every housekeeping bar."""
        if not self.is_active:
            return []
        order = self.order
        if remote is None:
            logger.error("Order %s not found", order.label)
            return []

        commands: List[Command] = []
        if remote.state is RemoteOrderState.FILLED and order.state is OrderState.PENDING:
            order.state = OrderState.FILLED

        if remote.state is RemoteOrderState.FILLED:
            if self.tracker.check_and_arm(order, event.ask_bar.high, event.bid_bar.low):
                logger.info("Order %s: SL moved to B.E. (%s)", order.label, remote.open_price)
                commands.append(ModifyStopLoss(order.label, remote.open_price))

        if remote.state is RemoteOrderState.OPENED:
            commands.extend(self._resize(order, remote))
        return commands

    def _resize(self, order: PendingOrder, remote: RemoteOrder) -> List[Command]:
        try:
            sizing = self.sizer.size(order.risk)
        except MarketDataError as exc:
            logger.error("Order %s size not updated: %s", order.label, exc)
            return []
        if sizing.clamped:
            return []
        if sizing.lots == remote.amount:
            return []
        return [ResizeOrder(order.label, sizing.lots)]

    def resized(self, amount: float) -> None:
        """Record a size the venue accepted."""
        if self.order is None:
            return
        self.order.amount = amount
        logger.info("Order %s updated position size: %s", self.order.label, amount)

    def on_period_bar(self, event: BarEvent, remote: Optional[RemoteOrder]) -> List[Command]:
        """Cancel the order if a full candle closed without filling it."""
        if not self.is_active:
            return []
        order = self.order
        if remote is None:
            logger.error("Order %s not found", order.label)
            return []
        if remote.state is not RemoteOrderState.OPENED:
            return []
        self._cancel_requested = True
        logger.info("Order %s cancelled because of new candle bar (%s)", order.label, event.timestamp)
        return [CloseOrder(order.label)]

    def cancel_failed(self) -> None:
        """The venue refused the cancel; the next period bar tries again."""
        self._cancel_requested = False

    def on_message(self, message: OrderMessage) -> List[Command]:
        """Apply a venue message about the managed order."""
        remote = message.order
        order = self.order
        if order is None or remote is None or remote.label != order.label:
            return []

        if message.type is MessageType.CLOSE_OK:
            if order.state is OrderState.CLOSED:
                return []
            order.state = OrderState.CLOSED
            if remote.amount > 0:
                order.amount = remote.amount
            order.profit_loss = remote.profit_loss
            order.commission = remote.commission
            self.ledger.record(order)
            logger.info("Order %s closed. Profit: %s", order.label, remote.profit_loss)
        elif message.type is MessageType.SUBMIT_REJECTED:
            self.reject(message.text)
        elif message.type is MessageType.FILL_OK:
            if order.state is OrderState.PENDING:
                order.state = OrderState.FILLED
                # the stop triggered before the cancel went through
                self._cancel_requested = False
                logger.info("Order %s filled at %s", order.label, remote.open_price)
        elif message.type is MessageType.CHANGED_REJECTED:
            logger.error("Order %s change rejected. %s", order.label, message.text)
        return []
