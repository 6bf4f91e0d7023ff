"""
Application entry point.

This module defines a simple command-line interface for the stop entry
tool.  ``run`` places the order through MetaTrader 5 and manages it
until it is closed; ``validate`` only checks the configuration file.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .config.schema import load_config, validate_config
from .errors import CandleStopError, ConfigurationError
from .data.models import Instrument
from .execution.models import RiskSpec
from .execution.mt5_exec import MT5Engine
from .strategy.breakeven import BreakevenTracker
from .strategy.lifecycle import REWARD_MULTIPLE


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Parse command-line arguments and dispatch to the requested mode."""
    parser = argparse.ArgumentParser(description="Next candle stop entry with constant currency risk")
    parser.add_argument('mode', choices=['run', 'validate'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    config = load_config(args.config)
    try:
        side = validate_config(config)
    except ConfigurationError as exc:
        logging.error("Invalid configuration: %s", exc)
        return 2

    if args.mode == 'validate':
        # pip scale plays no part in the derived prices
        risk = RiskSpec(Instrument.from_pair(config.instrument, 4), config.entry_price,
                        config.stop_loss_price, config.risk_amount, side)
        logging.info(
            "Configuration OK: %s %s entry=%s stop=%s risk=%s take_profit=%.5f breakeven_trigger=%.5f",
            config.instrument, side.order_command, config.entry_price,
            config.stop_loss_price, config.risk_amount,
            risk.price_at_reward(REWARD_MULTIPLE), BreakevenTracker.arm_trigger(risk),
        )
        return 0

    engine = MT5Engine(config)
    try:
        engine.run()
    except CandleStopError as exc:
        logging.error("Strategy halted: %s", exc)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
