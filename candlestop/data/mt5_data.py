"""
MetaTrader 5 market data.

This module wraps the `MetaTrader5` Python package to provide the
strategy's market collaborators: latest quotes, instrument metadata,
the account currency and recently closed bars.  If the package is not
installed or initialisation fails, the code raises a clear exception.

Pairs are written ``EUR/USD`` inside the strategy; the terminal knows
them as ``EURUSD`` plus an optional broker suffix.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple
import pandas as pd

from ..config.schema import MT5Config
from ..errors import NoQuoteAvailable
from ..utils.timeutils import bar_close_time, normalise_period, to_timezone
from .interfaces import AccountInfo, InstrumentCatalog, PriceOracle
from .models import Bar, Instrument, Quote

# Attempt to import MetaTrader5.  If unavailable, mt5 will be None.
try:
    import MetaTrader5 as mt5  # type: ignore
except ImportError:
    mt5 = None  # Will be checked at runtime


def _require_mt5() -> None:
    if mt5 is None:
        raise RuntimeError(
            "MetaTrader5 package is not installed.  Install it with 'pip install MetaTrader5' to trade."
        )


class MT5Market(PriceOracle, InstrumentCatalog, AccountInfo):
    """Market collaborators backed by a MetaTrader 5 terminal."""

    def __init__(self, config: MT5Config) -> None:
        self.config = config
        self.timezone = config.timezone
        self._connected = False
        self._instruments: Dict[str, Optional[Instrument]] = {}

    def connect(self) -> None:
        """Initialise the MetaTrader 5 terminal.

        Raises
        ------
        RuntimeError
            If the MetaTrader5 package is not installed or initialisation fails.
        """
        _require_mt5()
        if not mt5.initialize(path=self.config.path, login=self.config.login, password=self.config.password, server=self.config.server):
            raise RuntimeError(f"MT5 initialisation failed: {mt5.last_error()}")
        self._connected = True

    def shutdown(self) -> None:
        """Shutdown the MT5 connection if it was opened."""
        if mt5 and self._connected:
            mt5.shutdown()
            self._connected = False

    def terminal_symbol(self, pair: str) -> str:
        """Terminal name of a ``AAA/BBB`` pair."""
        return pair.replace('/', '') + self.config.symbol_suffix

    # InstrumentCatalog

    def resolve(self, pair: str) -> Optional[Instrument]:
        if pair in self._instruments:
            return self._instruments[pair]
        _require_mt5()
        info = mt5.symbol_info(self.terminal_symbol(pair))
        instrument = None
        if info is not None and f"{info.currency_base}/{info.currency_profit}" == pair:
            # 5 and 3 digit quotes carry a fractional pip
            pip_scale = info.digits - 1 if info.digits in (3, 5) else info.digits
            instrument = Instrument(
                symbol=pair,
                primary_currency=info.currency_base,
                secondary_currency=info.currency_profit,
                pip_scale=pip_scale,
                pip_value=10.0 ** -pip_scale,
            )
        self._instruments[pair] = instrument
        return instrument

    def subscribe(self, instruments: Iterable[Instrument]) -> None:
        _require_mt5()
        for instrument in instruments:
            if not mt5.symbol_select(self.terminal_symbol(instrument.symbol), True):
                raise RuntimeError(f"Could not select {instrument} in Market Watch: {mt5.last_error()}")

    # PriceOracle

    def last_quote(self, instrument: Instrument) -> Quote:
        _require_mt5()
        tick = mt5.symbol_info_tick(self.terminal_symbol(instrument.symbol))
        if tick is None or tick.bid <= 0 or tick.ask <= 0:
            raise NoQuoteAvailable(f"No quote available for {instrument}")
        return Quote(bid=float(tick.bid), ask=float(tick.ask))

    # AccountInfo

    def currency(self) -> str:
        _require_mt5()
        info = mt5.account_info()
        if info is None:
            raise RuntimeError(f"Account information unavailable: {mt5.last_error()}")
        return info.currency

    def _get_mt5_timeframe(self, period: str) -> int:
        """Map a period string to the MetaTrader5 timeframe constant."""
        _require_mt5()
        timeframe_map = {
            'M1': mt5.TIMEFRAME_M1,
            'M5': mt5.TIMEFRAME_M5,
            'M15': mt5.TIMEFRAME_M15,
            'M30': mt5.TIMEFRAME_M30,
            'H1': mt5.TIMEFRAME_H1,
            'H4': mt5.TIMEFRAME_H4,
            'D1': mt5.TIMEFRAME_D1,
        }
        return timeframe_map[normalise_period(period)]

    def get_rates(self, instrument: Instrument, period: str, count: int = 2) -> pd.DataFrame:
        """Retrieve the last `count` bars, the current unfinished one included.

        Returns
        -------
        pandas.DataFrame
            DataFrame with columns ``open``, ``high``, ``low``, ``close`` and
            ``spread`` (in points), indexed by the timezone-aware bar open time.
        """
        if not self._connected:
            raise RuntimeError("MT5Market is not connected.  Call connect() before requesting data.")
        tf = self._get_mt5_timeframe(period)
        rates = mt5.copy_rates_from_pos(self.terminal_symbol(instrument.symbol), tf, 0, count)
        if rates is None or len(rates) == 0:
            return pd.DataFrame()
        df = pd.DataFrame(rates)
        df['time'] = pd.to_datetime(df['time'], unit='s', utc=True)
        df = df.set_index('time').sort_index()
        # Convert to configured timezone
        df.index = df.index.tz_convert(self.timezone)
        return df[['open', 'high', 'low', 'close', 'spread']]

    def last_closed_bar(self, instrument: Instrument, period: str) -> Optional[Tuple[pd.Timestamp, Bar, Bar]]:
        """Return ``(close_time, ask_bar, bid_bar)`` of the last completed bar.

        Terminal rates are bid prices; the ask bar adds the bar's spread.
        """
        df = self.get_rates(instrument, period, count=2)
        if len(df) < 2:
            return None
        row = df.iloc[-2]
        point = mt5.symbol_info(self.terminal_symbol(instrument.symbol)).point
        spread = float(row['spread']) * point
        bid_bar = Bar(float(row['open']), float(row['high']), float(row['low']), float(row['close']))
        ask_bar = Bar(bid_bar.open + spread, bid_bar.high + spread, bid_bar.low + spread, bid_bar.close + spread)
        close_time = bar_close_time(to_timezone(df.index[-2], self.timezone), period)
        return close_time, ask_bar, bid_bar
