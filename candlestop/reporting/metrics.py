"""
Performance metrics calculations.

This module summarises the orders closed during a run: realised
profit, commission and a few trade statistics.  The values are written
to the run report and logged when the strategy stops.
"""

from __future__ import annotations

from typing import List

from ..execution.models import ClosedOrder


def compute_metrics(closed_orders: List[ClosedOrder]) -> dict:
    """Compute a set of summary statistics for the run.

    Parameters
    ----------
    closed_orders : list of ClosedOrder
        Orders closed during the run, in closing order.

    Returns
    -------
    dict
        Dictionary of performance metrics.
    """
    if not closed_orders:
        return {
            'num_orders': 0,
            'total_profit': 0.0,
            'total_commission': 0.0,
            'net_profit': 0.0,
            'win_rate': 0.0,
            'avg_trade': 0.0,
        }

    total_profit = sum(o.profit_loss for o in closed_orders)
    total_commission = sum(o.commission for o in closed_orders)
    net_profit = total_profit - total_commission

    # An order cancelled before its fill closes with zero profit and is not a trade
    traded = [o for o in closed_orders if o.profit_loss != 0 or o.commission != 0]
    wins = [o for o in traded if o.profit_loss - o.commission > 0]
    win_rate = len(wins) / len(traded) if traded else 0.0
    avg_trade = net_profit / len(traded) if traded else 0.0

    return {
        'num_orders': len(closed_orders),
        'total_profit': total_profit,
        'total_commission': total_commission,
        'net_profit': net_profit,
        'win_rate': win_rate,
        'avg_trade': avg_trade,
    }
