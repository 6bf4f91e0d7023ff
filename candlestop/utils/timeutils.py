"""
Bar period and timestamp utilities.

Periods are written the way MetaTrader names its timeframes (``M1``,
``H1``, ``D1`` ...).  This module converts them to durations and turns
venue timestamps into timezone-aware pandas timestamps.
"""

from __future__ import annotations

from typing import Union
import pandas as pd


PERIODS = {
    'M1': pd.Timedelta(minutes=1),
    'M5': pd.Timedelta(minutes=5),
    'M15': pd.Timedelta(minutes=15),
    'M30': pd.Timedelta(minutes=30),
    'H1': pd.Timedelta(hours=1),
    'H4': pd.Timedelta(hours=4),
    'D1': pd.Timedelta(days=1),
}


def normalise_period(period: str) -> str:
    """Return the canonical upper-case period name.

    Raises
    ------
    ValueError
        If the period is not one of `PERIODS`.
    """
    name = str(period).strip().upper()
    if name not in PERIODS:
        raise ValueError(f"Unsupported period: {period}")
    return name


def parse_period(period: str) -> pd.Timedelta:
    """Convert a period name such as ``"H1"`` into its duration."""
    return PERIODS[normalise_period(period)]


def to_timezone(ts: Union[pd.Timestamp, int, float, str], tz_name: str) -> pd.Timestamp:
    """Convert a timestamp to the specified timezone.

    Integers and floats are read as UNIX epoch seconds.  Naive
    timestamps are assumed to be in UTC before conversion.
    """
    if isinstance(ts, (int, float)):
        ts = pd.Timestamp(ts, unit='s', tz='UTC')
    elif not isinstance(ts, pd.Timestamp):
        ts = pd.Timestamp(ts)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert(tz_name)


def bar_close_time(open_time: pd.Timestamp, period: str) -> pd.Timestamp:
    """Close time of the bar of `period` that opened at `open_time`."""
    return open_time + parse_period(period)
