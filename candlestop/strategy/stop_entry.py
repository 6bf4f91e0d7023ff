"""
Next-candle stop entry strategy.

This strategy places a stop order with constant currency risk.  The
pending order is only valid until the next candle of the configured
period completes: if price did not touch the entry by then, the order
is cancelled.  While pending, the order amount is recalculated on every
housekeeping bar, because the time until the fill and the movement of
the conversion pair make the submitted amount obsolete.  Take-profit is
placed at a 1:2 risk:reward ratio and the stop-loss can be moved to
breakeven once price reaches 1:1.

The class only dispatches events: sizing, breakeven and state handling
live in `PositionSizer`, `BreakevenTracker` and `OrderLifecycle`.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Union

from ..config.schema import Config, validate_config
from ..data.interfaces import AccountInfo, InstrumentCatalog, PriceOracle
from ..data.models import BarEvent, Instrument, MessageType, OrderMessage
from ..errors import ConfigurationError, OrderGatewayError
from ..execution.interfaces import OrderGateway
from ..execution.models import RiskSpec, TradeLedger
from ..sizing.position_sizer import PositionSizer
from ..utils.timeutils import normalise_period
from .breakeven import BreakevenTracker
from .lifecycle import CloseOrder, Command, ModifyStopLoss, OrderLifecycle, ResizeOrder, SubmitOrder


logger = logging.getLogger(__name__)

Event = Union[BarEvent, OrderMessage]

# order-less messages not worth logging
_FILTERED_MESSAGES = (MessageType.INSTRUMENT_STATUS, MessageType.CALENDAR)


class StopEntryStrategy:
    """Wire bar and message events to the order lifecycle."""

    def __init__(
        self,
        config: Config,
        oracle: PriceOracle,
        catalog: InstrumentCatalog,
        account: AccountInfo,
        gateway: OrderGateway,
        ledger: Optional[TradeLedger] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config
        self.catalog = catalog
        self.gateway = gateway
        self.sizer = PositionSizer(
            oracle,
            catalog,
            account,
            max_position_size=config.sizing.max_position_size,
            units_per_lot=config.sizing.units_per_lot,
            lot_step=config.sizing.lot_step,
            rounding=config.sizing.rounding,
        )
        self.tracker = BreakevenTracker(enabled=config.move_sl_breakeven)
        self.lifecycle = OrderLifecycle(
            self.sizer,
            self.tracker,
            ledger=ledger,
            slippage_pips=config.slippage_pips,
            clock=clock,
        )
        self.instrument: Optional[Instrument] = None

    @property
    def ledger(self) -> TradeLedger:
        return self.lifecycle.ledger

    def on_start(self) -> None:
        """Validate the configuration, subscribe instruments and submit the order.

        Raises
        ------
        ConfigurationError
            If the parameters are invalid; no order is placed.
        InstrumentResolutionError, NoQuoteAvailable
            If the order cannot be sized.
        """
        side = validate_config(self.config)
        instrument = self.catalog.resolve(self.config.instrument)
        if instrument is None:
            raise ConfigurationError(f"Unknown instrument: {self.config.instrument}")
        self.instrument = self.catalog.metadata(instrument)

        logger.info("Strategy starting. Subscribing instruments...")
        self.catalog.subscribe(self.sizer.required_instruments(self.instrument))

        risk = RiskSpec(
            instrument=self.instrument,
            entry_price=self.config.entry_price,
            stop_loss_price=self.config.stop_loss_price,
            risk_amount=self.config.risk_amount,
            side=side,
        )
        self._execute(self.lifecycle.submit(risk))

    def on_event(self, event: Event) -> None:
        """Single entry point for everything the host platform delivers."""
        if isinstance(event, BarEvent):
            self._on_bar(event)
        elif isinstance(event, OrderMessage):
            self._on_message(event)
        else:
            raise TypeError(f"Unsupported event: {event!r}")

    def on_stop(self) -> TradeLedger:
        ledger = self.ledger
        logger.info(
            "Strategy stopped. Profit: %s Commission: %s Net Profit: %s",
            ledger.total_profit,
            ledger.total_commission,
            ledger.net_profit,
        )
        return ledger

    def _on_bar(self, event: BarEvent) -> None:
        if self.instrument is None or event.instrument.symbol != self.instrument.symbol:
            return
        if not self.lifecycle.is_active:
            return
        period = normalise_period(event.period)
        if period == normalise_period(self.config.housekeeping_period):
            remote = self.gateway.current_state(self.lifecycle.label)
            commands = self.lifecycle.on_housekeeping_bar(event, remote)
        elif period == normalise_period(self.config.period):
            remote = self.gateway.current_state(self.lifecycle.label)
            commands = self.lifecycle.on_period_bar(event, remote)
        else:
            return
        self._execute(commands)

    def _on_message(self, message: OrderMessage) -> None:
        if message.order is not None:
            self._execute(self.lifecycle.on_message(message))
        elif message.type not in _FILTERED_MESSAGES:
            logger.info("Message: %s %s", message.type.value, message.text)

    def _execute(self, commands: Iterable[Command]) -> None:
        for command in commands:
            try:
                self._send(command)
            except OrderGatewayError as exc:
                if isinstance(command, SubmitOrder):
                    self.lifecycle.reject(str(exc))
                    continue
                logger.error("Order %s request failed: %s", command.label, exc)
                if isinstance(command, CloseOrder):
                    self.lifecycle.cancel_failed()

    def _send(self, command: Command) -> None:
        if isinstance(command, SubmitOrder):
            remote = self.gateway.submit(
                command.label,
                command.instrument,
                command.side,
                command.amount,
                command.entry_price,
                command.slippage_pips,
                command.stop_loss_price,
                command.take_profit_price,
            )
            logger.info(
                "Order %s submitted. Direction: %s Stop entry: %s Stop loss: %s "
                "Take profit: %s Break even trigger: %s Amount: %s",
                remote.label,
                command.side.value,
                command.entry_price,
                remote.stop_loss_price,
                remote.take_profit_price,
                self.lifecycle.order.breakeven_trigger,
                remote.amount,
            )
        elif isinstance(command, ModifyStopLoss):
            self.gateway.modify_stop_loss(command.label, command.price)
        elif isinstance(command, ResizeOrder):
            self.gateway.resize(command.label, command.amount)
            self.lifecycle.resized(command.amount)
        elif isinstance(command, CloseOrder):
            self.gateway.close(command.label)
