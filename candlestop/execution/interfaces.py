"""
Order gateway interface.

All order mutations go through an `OrderGateway`.  Every call is
synchronous and either returns immediately or raises
`OrderGatewayError`.  Orders are addressed by the label chosen at
submission.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..data.models import Instrument, RemoteOrder
from .models import OrderSide


class OrderGateway(ABC):
    """Submit, modify and query orders on the venue."""

    @abstractmethod
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
        """Place a stop entry order and return the venue's view of it."""

    @abstractmethod
    def modify_stop_loss(self, label: str, price: float) -> None:
        """Move the stop-loss of the order to `price`."""

    @abstractmethod
    def resize(self, label: str, amount: float) -> None:
        """Change the requested amount of a pending order."""

    @abstractmethod
    def close(self, label: str) -> None:
        """Cancel a pending order or close a filled one."""

    @abstractmethod
    def current_state(self, label: str) -> Optional[RemoteOrder]:
        """Re-read the order from the venue; `None` if it is unknown."""
