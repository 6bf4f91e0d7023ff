"""
MetaTrader 5 execution engine.

This module provides the order gateway and the polling engine used to
run the stop entry strategy against a MetaTrader 5 terminal.  The
terminal does not push events to Python, so the engine polls it: each
newly closed bar becomes a `BarEvent` and each change of the order's
state becomes an `OrderMessage`, both handed to the strategy one at a
time.

Orders are identified by the strategy's label, stored in the order
comment.  MetaTrader cannot change the volume of a pending order, so a
resize removes the order and places it again under the same label.

**Note**: Running this engine requires the `MetaTrader5` package and
a locally installed MT5 terminal.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging
import pandas as pd

from ..config.schema import Config
from ..data.models import BarEvent, Instrument, MessageType, OrderMessage, RemoteOrder, RemoteOrderState
from ..data.mt5_data import MT5Market
from ..data import mt5_data
from ..errors import OrderGatewayError
from ..reporting.report import generate_run_report
from ..strategy.stop_entry import StopEntryStrategy
from .interfaces import OrderGateway
from .models import OrderSide


logger = logging.getLogger(__name__)


@dataclass
class _PlacedOrder:
    """Terminal ticket of a labelled order and how it was placed."""
    ticket: int
    instrument: Instrument
    side: OrderSide
    deviation: int


class MT5OrderGateway(OrderGateway):
    """Pending stop orders on a MetaTrader 5 terminal."""

    def __init__(self, market: MT5Market, magic: int = 0) -> None:
        self.market = market
        self.magic = magic
        self._orders: Dict[str, _PlacedOrder] = {}

    @property
    def mt5(self):
        mt5_data._require_mt5()
        return mt5_data.mt5

    def _send(self, request: Dict[str, Any]) -> Any:
        mt5 = self.mt5
        result = mt5.order_send(request)
        if result is None:
            raise OrderGatewayError(f"order_send failed: {mt5.last_error()}")
        if result.retcode not in (mt5.TRADE_RETCODE_DONE, mt5.TRADE_RETCODE_PLACED):
            raise OrderGatewayError(f"order_send returned {result.retcode}: {result.comment}")
        return result

    def _place_pending(
        self,
        label: str,
        instrument: Instrument,
        side: OrderSide,
        amount: float,
        entry_price: float,
        deviation: int,
        stop_loss_price: float,
        take_profit_price: float,
    ) -> int:
        mt5 = self.mt5
        request = {
            'action': mt5.TRADE_ACTION_PENDING,
            'symbol': self.market.terminal_symbol(instrument.symbol),
            'volume': amount,
            'type': mt5.ORDER_TYPE_BUY_STOP if side.is_long else mt5.ORDER_TYPE_SELL_STOP,
            'price': entry_price,
            'sl': stop_loss_price,
            'tp': take_profit_price,
            'deviation': deviation,
            'magic': self.magic,
            'comment': label,
            'type_time': mt5.ORDER_TIME_GTC,
            'type_filling': mt5.ORDER_FILLING_RETURN,
        }
        result = self._send(request)
        self._orders[label] = _PlacedOrder(result.order, instrument, side, deviation)
        return result.order

    def submit(
        self,
        label: str,
        instrument: Instrument,
        side: OrderSide,
        amount: float,
        entry_price: float,
        slippage_pips: float,
        stop_loss_price: float,
        take_profit_price: float,
    ) -> RemoteOrder:
        info = self.mt5.symbol_info(self.market.terminal_symbol(instrument.symbol))
        deviation = int(round(slippage_pips * instrument.pip_value / info.point))
        self._place_pending(label, instrument, side, amount, entry_price, deviation,
                            stop_loss_price, take_profit_price)
        return RemoteOrder(
            label=label,
            symbol=instrument.symbol,
            side=side,
            state=RemoteOrderState.OPENED,
            amount=amount,
            open_price=entry_price,
            stop_loss_price=stop_loss_price,
            take_profit_price=take_profit_price,
        )

    def _pending(self, ticket: int) -> Optional[Any]:
        orders = self.mt5.orders_get(ticket=ticket)
        return orders[0] if orders else None

    def _position(self, ticket: int, instrument: Instrument) -> Optional[Any]:
        positions = self.mt5.positions_get(symbol=self.market.terminal_symbol(instrument.symbol)) or ()
        for position in positions:
            if position.identifier == ticket:
                return position
        return None

    def current_state(self, label: str) -> Optional[RemoteOrder]:
        placed = self._orders.get(label)
        if placed is None:
            return None
        ticket, instrument, side = placed.ticket, placed.instrument, placed.side
        mt5 = self.mt5

        order = self._pending(ticket)
        if order is not None:
            return RemoteOrder(label, instrument.symbol, side, RemoteOrderState.OPENED,
                               amount=order.volume_current, open_price=order.price_open,
                               stop_loss_price=order.sl, take_profit_price=order.tp)

        position = self._position(ticket, instrument)
        if position is not None:
            return RemoteOrder(label, instrument.symbol, side, RemoteOrderState.FILLED,
                               amount=position.volume, open_price=position.price_open,
                               stop_loss_price=position.sl, take_profit_price=position.tp,
                               profit_loss=position.profit)

        deals = mt5.history_deals_get(position=ticket) or ()
        if any(deal.entry == mt5.DEAL_ENTRY_OUT for deal in deals):
            entry_deal = next((d for d in deals if d.entry == mt5.DEAL_ENTRY_IN), deals[0])
            return RemoteOrder(label, instrument.symbol, side, RemoteOrderState.CLOSED,
                               amount=entry_deal.volume, open_price=entry_deal.price,
                               profit_loss=sum(d.profit + d.swap for d in deals),
                               # terminal commissions are negative amounts
                               commission=-sum(d.commission for d in deals))

        history = mt5.history_orders_get(ticket=ticket) or ()
        if history:
            return RemoteOrder(label, instrument.symbol, side, RemoteOrderState.CANCELED,
                               amount=history[0].volume_initial, open_price=history[0].price_open)
        return None

    def modify_stop_loss(self, label: str, price: float) -> None:
        placed = self._lookup(label)
        ticket, instrument = placed.ticket, placed.instrument
        position = self._position(ticket, instrument)
        if position is None:
            logger.warning("Order %s has no open position, stop loss not moved", label)
            return
        self._send({
            'action': self.mt5.TRADE_ACTION_SLTP,
            'position': position.ticket,
            'symbol': position.symbol,
            'sl': price,
            'tp': position.tp,
        })

    def resize(self, label: str, amount: float) -> None:
        placed = self._lookup(label)
        ticket, instrument, side = placed.ticket, placed.instrument, placed.side
        order = self._pending(ticket)
        if order is None:
            logger.warning("Order %s is no longer pending, size not updated", label)
            return
        self._send({'action': self.mt5.TRADE_ACTION_REMOVE, 'order': ticket})
        try:
            self._place_pending(label, instrument, side, amount, order.price_open,
                                placed.deviation, order.sl, order.tp)
        except OrderGatewayError:
            logger.error("Order %s was removed for resizing but could not be placed again", label)
            raise

    def close(self, label: str) -> None:
        placed = self._lookup(label)
        ticket, instrument, side = placed.ticket, placed.instrument, placed.side
        mt5 = self.mt5
        if self._pending(ticket) is not None:
            self._send({'action': mt5.TRADE_ACTION_REMOVE, 'order': ticket})
            return
        position = self._position(ticket, instrument)
        if position is None:
            logger.warning("Order %s is neither pending nor open, nothing to close", label)
            return
        quote = self.market.last_quote(instrument)
        self._send({
            'action': mt5.TRADE_ACTION_DEAL,
            'position': position.ticket,
            'symbol': position.symbol,
            'volume': position.volume,
            'type': mt5.ORDER_TYPE_SELL if side.is_long else mt5.ORDER_TYPE_BUY,
            'price': quote.bid if side.is_long else quote.ask,
            'magic': self.magic,
            'comment': label,
            'type_filling': mt5.ORDER_FILLING_IOC,
        })

    def _lookup(self, label: str) -> _PlacedOrder:
        placed = self._orders.get(label)
        if placed is None:
            raise OrderGatewayError(f"Order {label} not found")
        return placed


class MT5Engine:
    """Run the stop entry strategy via MetaTrader 5."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.market = MT5Market(config.mt5)
        self.gateway = MT5OrderGateway(self.market, magic=config.mt5.magic)
        self.strategy = StopEntryStrategy(config, self.market, self.market, self.market, self.gateway)
        self.last_bar_times: Dict[str, Optional[pd.Timestamp]] = {}
        self._last_state: Optional[RemoteOrderState] = None

    def poll_bars(self) -> List[BarEvent]:
        """Bar events for every bar closed since the previous poll.

        The first poll only records the latest closed bar, so a candle
        completed before the order was placed never expires it.
        """
        instrument = self.strategy.instrument
        events: List[BarEvent] = []
        for period in (self.config.housekeeping_period, self.config.period):
            closed = self.market.last_closed_bar(instrument, period)
            if closed is None:
                continue
            close_time, ask_bar, bid_bar = closed
            previous = self.last_bar_times.get(period)
            self.last_bar_times[period] = close_time
            if previous is not None and close_time > previous:
                events.append(BarEvent(instrument, period, close_time, ask_bar, bid_bar))
        return events

    def poll_messages(self) -> List[OrderMessage]:
        """Order messages derived from the change of remote state since the last poll."""
        label = self.strategy.lifecycle.label
        if label is None:
            return []
        remote = self.gateway.current_state(label)
        state = remote.state if remote is not None else None
        previous = self._last_state
        if state is None or state == previous:
            return []
        self._last_state = state

        messages: List[OrderMessage] = []
        if state is RemoteOrderState.OPENED:
            messages.append(OrderMessage(MessageType.SUBMIT_OK, remote))
        elif state is RemoteOrderState.FILLED:
            messages.append(OrderMessage(MessageType.FILL_OK, remote))
        elif state is RemoteOrderState.CLOSED:
            if previous is not RemoteOrderState.FILLED:
                # filled and closed between two polls
                messages.append(OrderMessage(MessageType.FILL_OK, remote))
            messages.append(OrderMessage(MessageType.CLOSE_OK, remote))
        elif state is RemoteOrderState.CANCELED:
            messages.append(OrderMessage(MessageType.CLOSE_OK, remote))
        return messages

    def run(self) -> None:
        """Main loop.

        Connects to MT5, submits the order and polls until the order is
        closed or rejected.  Press Ctrl+C to stop earlier.  On
        termination the run report is written.
        """
        logger.info("Starting MT5 engine")
        try:
            self.market.connect()
        except RuntimeError as exc:
            logger.error("Failed to connect to MetaTrader 5: %s", exc)
            return
        try:
            self.strategy.on_start()
            while not self.strategy.lifecycle.is_finished:
                for event in self.poll_bars():
                    self.strategy.on_event(event)
                for message in self.poll_messages():
                    self.strategy.on_event(message)
                time.sleep(self.config.poll_seconds)
        except KeyboardInterrupt:
            logger.info("Shutting down MT5 engine...")
        finally:
            if self.strategy.instrument is not None:
                ledger = self.strategy.on_stop()
                generate_run_report(ledger, out_dir=self.config.report_dir)
            self.market.shutdown()
