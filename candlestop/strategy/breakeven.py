"""
Breakeven stop-loss tracking.

Once a filled order has moved one full risk distance into profit (a 1:1
risk:reward ratio) its stop-loss is moved to the fill price.  The
tracker decides when that happens; issuing the modification is left to
the order lifecycle.
"""

from __future__ import annotations

from ..execution.models import OrderState, PendingOrder, RiskSpec


class BreakevenTracker:
    """Decide when a filled order's stop-loss moves to its open price."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    @staticmethod
    def arm_trigger(risk: RiskSpec) -> float:
        """Price one risk distance beyond the entry in the profit direction."""
        if risk.side.is_long:
            delta = risk.entry_price - risk.stop_loss_price
            return risk.entry_price + delta
        delta = risk.stop_loss_price - risk.entry_price
        return risk.entry_price - delta

    def check_and_arm(self, order: PendingOrder, bar_high: float, bar_low: float) -> bool:
        """Return `True` the first time a filled order reaches its trigger.

        The order is marked as armed, so later calls always return
        `False`.
        """
        if not self.enabled or order.breakeven_armed:
            return False
        if order.state is not OrderState.FILLED:
            return False
        if order.side.is_long:
            reached = bar_high >= order.breakeven_trigger
        else:
            reached = bar_low <= order.breakeven_trigger
        if reached:
            order.breakeven_armed = True
        return reached
