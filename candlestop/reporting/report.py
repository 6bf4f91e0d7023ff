"""
Report generation utilities.

This module turns the ledger of a finished run into human-readable
artefacts: a CSV file of closed orders, a JSON summary of the
performance metrics and a PNG chart of the cumulative net profit.
"""

from __future__ import annotations

import os
import json
import pandas as pd
import matplotlib

# Use non-interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.models import TradeLedger
from .metrics import compute_metrics


def generate_run_report(ledger: TradeLedger, out_dir: str = "results") -> None:
    """Generate report files for a strategy run.

    Creates the output directory if it does not exist and writes the
    following files:

    - `closed_orders.csv` – one row per closed order
    - `summary.json` – performance metrics
    - `cumulative_pnl.png` – cumulative net profit after each close
    """
    os.makedirs(out_dir, exist_ok=True)

    orders_data = [
        {
            'timestamp_close': o.closed_at.isoformat(),
            'label': o.label,
            'symbol': o.symbol,
            'side': o.side,
            'amount': o.amount,
            'entry': o.entry_price,
            'pnl': o.profit_loss,
            'commission': o.commission,
        }
        for o in ledger.closed_orders
    ]
    df_orders = pd.DataFrame(
        orders_data,
        columns=['timestamp_close', 'label', 'symbol', 'side', 'amount', 'entry', 'pnl', 'commission'],
    )
    df_orders.to_csv(os.path.join(out_dir, 'closed_orders.csv'), index=False)

    # Summary JSON
    metrics = compute_metrics(ledger.closed_orders)
    summary_path = os.path.join(out_dir, 'summary.json')
    with open(summary_path, 'w', encoding='utf-8') as fh:
        json.dump(metrics, fh, indent=2, ensure_ascii=False)

    # Cumulative net profit plot
    fig, ax = plt.subplots(figsize=(10, 4))
    if not df_orders.empty:
        net = (df_orders['pnl'] - df_orders['commission']).cumsum()
        ax.step(pd.to_datetime(df_orders['timestamp_close']), net, where='post', linewidth=1.5)
        ax.set_title('Cumulative Net Profit')
        ax.set_xlabel('Time')
        ax.set_ylabel('Account currency')
        fig.autofmt_xdate()
    fig.tight_layout()
    fig.savefig(os.path.join(out_dir, 'cumulative_pnl.png'))
    plt.close(fig)
