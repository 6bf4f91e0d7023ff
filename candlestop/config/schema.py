"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config` populated with reasonable defaults for any missing
fields.  `validate_config()` rejects parameter combinations that must
never reach the venue.

Using dataclasses provides type hints and a clear contract for what
values are expected.  When extending the configuration, add new
fields to the appropriate dataclass and update `load_config()`
accordingly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import yaml

from ..errors import ConfigurationError
from ..execution.models import OrderSide
from ..sizing.position_sizer import ROUNDING_MODES
from ..utils.timeutils import normalise_period


@dataclass
class SizingConfig:
    """Position sizing parameters.

    Attributes
    ----------
    max_position_size : float
        Safety ceiling in lots.  A computed size above it is replaced by
        zero so that a typo in the risk amount or the prices cannot open
        a huge position.
    units_per_lot : float
        Contract size of one lot on the venue (``100000`` for standard
        lots).
    lot_step : float or None
        Lot increment accepted by the venue.
    rounding : str
        ``none``, ``nearest`` or ``down``.  Anything but ``none`` requires
        `lot_step`.
    """

    max_position_size: float = 0.05
    units_per_lot: float = 100_000
    lot_step: Optional[float] = None
    rounding: str = "none"


@dataclass
class MT5Config:
    """Holds parameters required to connect to a MetaTrader 5 terminal.

    Attributes
    ----------
    login : int
        Account login number.
    password : str
        Password for the account.
    server : str
        Broker server name (e.g. ``Bidget-MT5-Live``).
    path : str
        File system path to the MetaTrader 5 terminal executable
        (`terminal64.exe`).
    symbol_suffix : str
        Suffix some brokers append to symbol names (e.g. ``".m"``).
    magic : int
        Expert identifier stamped on every order.
    timezone : str
        IANA timezone used for bar timestamps.
    """

    login: int = 0
    password: str = ""
    server: str = ""
    path: str = ""
    symbol_suffix: str = ""
    magic: int = 0
    timezone: str = "UTC"


@dataclass
class Config:
    """Root configuration of one stop entry run.

    Attributes
    ----------
    instrument : str
        Traded pair in ``AAA/BBB`` form.
    period : str
        The pending order expires when a bar of this period closes.
    housekeeping_period : str
        Cadence of the breakeven check and size recalculation.
    buy_order, sell_order : bool
        Exactly one must be set: buy stop (long) or sell stop (short).
    risk_amount : float
        Account currency lost if the stop-loss is hit.
    entry_price : float
        Stop entry price.
    stop_loss_price : float
        Stop-loss price.
    move_sl_breakeven : bool
        Move the stop-loss to the open price at 1:1 risk:reward.
    slippage_pips : float
        Slippage tolerated when the stop entry triggers.
    sizing : SizingConfig
        Position sizing parameters.
    mt5 : MT5Config
        MetaTrader 5 connection configuration.
    report_dir : str
        Directory receiving the run report.
    poll_seconds : float
        Delay between two polls of the terminal.
    """

    instrument: str = "EUR/USD"
    period: str = "H1"
    housekeeping_period: str = "M1"
    buy_order: bool = False
    sell_order: bool = False
    risk_amount: float = 10.0
    entry_price: float = 0.0
    stop_loss_price: float = 0.0
    move_sl_breakeven: bool = True
    slippage_pips: float = 5.0
    sizing: SizingConfig = field(default_factory=SizingConfig)
    mt5: MT5Config = field(default_factory=MT5Config)
    report_dir: str = "results"
    poll_seconds: float = 5.0

    @property
    def side(self) -> OrderSide:
        """Resolve the order side from the buy/sell flags."""
        if self.buy_order == self.sell_order:
            raise ConfigurationError("Invalid order side, please check only BUYSTOP or SELLSTOP")
        return OrderSide.LONG if self.buy_order else OrderSide.SHORT


def validate_config(cfg: Config) -> OrderSide:
    """Check the configuration before anything is sent to the venue.

    Returns
    -------
    OrderSide
        The resolved order side.

    Raises
    ------
    ConfigurationError
        On the first invalid parameter found.
    """
    side = cfg.side
    if cfg.entry_price <= 0:
        raise ConfigurationError("Invalid stop order entry price")
    if cfg.stop_loss_price <= 0:
        raise ConfigurationError("Invalid stop loss price")
    if side.is_long and cfg.stop_loss_price >= cfg.entry_price:
        raise ConfigurationError("Stop loss of a BUYSTOP order must be below the entry price")
    if not side.is_long and cfg.stop_loss_price <= cfg.entry_price:
        raise ConfigurationError("Stop loss of a SELLSTOP order must be above the entry price")
    if cfg.risk_amount <= 0:
        raise ConfigurationError("Risk amount must be positive")
    if cfg.instrument.count('/') != 1 or not all(cfg.instrument.split('/')):
        raise ConfigurationError(f"Instrument must be written as AAA/BBB: {cfg.instrument}")
    try:
        period = normalise_period(cfg.period)
        housekeeping = normalise_period(cfg.housekeeping_period)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    if period == housekeeping:
        raise ConfigurationError("Order period and housekeeping period must differ")
    sizing = cfg.sizing
    if sizing.max_position_size <= 0:
        raise ConfigurationError("Maximum position size must be positive")
    if sizing.units_per_lot <= 0:
        raise ConfigurationError("Units per lot must be positive")
    if sizing.rounding not in ROUNDING_MODES:
        raise ConfigurationError(f"Unknown rounding mode: {sizing.rounding}")
    if sizing.rounding != "none" and not sizing.lot_step:
        raise ConfigurationError("lot_step is required when rounding is enabled")
    return side


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated configuration object.  Missing fields are filled with
        sensible defaults defined in the dataclasses.  The result is not
        validated; call `validate_config()` before trading.
    """
    with open(path, "r", encoding="utf-8") as fh:
        raw: Dict[str, Any] = yaml.safe_load(fh) or {}

    # Build nested dictionaries representing the default dataclasses
    defaults: Dict[str, Any] = {
        'sizing': {
            'max_position_size': 0.05,
            'units_per_lot': 100_000,
            'lot_step': None,
            'rounding': 'none',
        },
        'mt5': {
            'login': 0,
            'password': "",
            'server': "",
            'path': "",
            'symbol_suffix': "",
            'magic': 0,
            'timezone': "UTC",
        },
    }

    merged = _merge_dict(defaults, raw)

    sizing = merged['sizing']
    sizing_cfg = SizingConfig(
        max_position_size=float(sizing['max_position_size']),
        units_per_lot=float(sizing['units_per_lot']),
        lot_step=float(sizing['lot_step']) if sizing['lot_step'] is not None else None,
        rounding=str(sizing['rounding']).lower(),
    )
    mt5_cfg = MT5Config(**merged['mt5'])

    cfg = Config(
        instrument=str(merged.get('instrument', 'EUR/USD')).upper(),
        period=str(merged.get('period', 'H1')).upper(),
        housekeeping_period=str(merged.get('housekeeping_period', 'M1')).upper(),
        buy_order=bool(merged.get('buy_order', False)),
        sell_order=bool(merged.get('sell_order', False)),
        risk_amount=float(merged.get('risk_amount', 10.0)),
        entry_price=float(merged.get('entry_price', 0.0)),
        stop_loss_price=float(merged.get('stop_loss_price', 0.0)),
        move_sl_breakeven=bool(merged.get('move_sl_breakeven', True)),
        slippage_pips=float(merged.get('slippage_pips', 5.0)),
        sizing=sizing_cfg,
        mt5=mt5_cfg,
        report_dir=str(merged.get('report_dir', 'results')),
        poll_seconds=float(merged.get('poll_seconds', 5.0)),
    )
    return cfg
