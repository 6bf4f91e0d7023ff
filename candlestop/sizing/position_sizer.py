"""
Constant currency risk position sizing.

The sizer answers one question: how many lots must a stop entry be so
that hitting its stop-loss costs exactly the configured amount of
account currency?  The answer depends on the pip value of the traded
pair expressed in account currency, which in turn requires a second
quote whenever the pair's primary currency differs from the account
currency.

The conversion pair is looked up as ``ACCOUNT/PRIMARY`` first and as
``PRIMARY/ACCOUNT`` (inverted, using the reciprocal price) second.  If
neither exists the sizing fails; it never assumes a rate of one.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Set

from ..data.interfaces import AccountInfo, InstrumentCatalog, PriceOracle
from ..data.models import Instrument
from ..errors import InstrumentResolutionError
from ..execution.models import OrderSide, RiskSpec, SizingResult


logger = logging.getLogger(__name__)

# Quote normalisation used for pip values (units of a 100k contract).
PIP_VALUE_UNITS = 100_000

ROUNDING_MODES = ("none", "nearest", "down")


class PositionSizer:
    """Convert a `RiskSpec` into a lot size using the current quotes.

    Parameters
    ----------
    oracle : PriceOracle
        Source of the latest bid/ask prices.
    catalog : InstrumentCatalog
        Used to find the account currency conversion pair.
    account : AccountInfo
        Provides the account currency.
    max_position_size : float
        Safety ceiling in lots.  Larger results are replaced by zero.
    units_per_lot : float
        Contract size of one lot on the venue.  ``100_000`` for standard
        lots, ``1_000_000`` for venues quoting amounts in millions.
    lot_step : float, optional
        Lot increment accepted by the venue.  Only used when `rounding`
        is not ``"none"``.
    rounding : str
        ``"none"`` keeps the raw size, ``"nearest"`` rounds to the closest
        `lot_step` and ``"down"`` truncates to it.
    """

    def __init__(
        self,
        oracle: PriceOracle,
        catalog: InstrumentCatalog,
        account: AccountInfo,
        max_position_size: float = 0.05,
        units_per_lot: float = 100_000,
        lot_step: Optional[float] = None,
        rounding: str = "none",
    ) -> None:
        if rounding not in ROUNDING_MODES:
            raise ValueError(f"Unknown rounding mode: {rounding}")
        if rounding != "none" and not lot_step:
            raise ValueError("lot_step is required when rounding is enabled")
        self.oracle = oracle
        self.catalog = catalog
        self.account = account
        self.max_position_size = max_position_size
        self.units_per_lot = units_per_lot
        self.lot_step = lot_step
        self.rounding = rounding

    def conversion_instrument(self, instrument: Instrument) -> Optional[Instrument]:
        """Return the pair converting the account currency, or `None` if not needed.

        Raises
        ------
        InstrumentResolutionError
            If neither the direct nor the inverted pair exists.
        """
        account_ccy = self.account.currency()
        if instrument.primary_currency == account_ccy:
            return None
        pair = Instrument.pair_string(account_ccy, instrument.primary_currency)
        found = self.catalog.resolve(pair) or self.catalog.resolve_inverted(pair)
        if found is None:
            raise InstrumentResolutionError(
                f"No instrument converts {account_ccy} to {instrument.primary_currency} "
                f"(tried {pair} and its inverse)"
            )
        return found

    def required_instruments(self, instrument: Instrument) -> Set[Instrument]:
        """Instruments whose prices are needed to size orders on `instrument`."""
        instruments = {instrument}
        conversion = self.conversion_instrument(instrument)
        if conversion is not None:
            instruments.add(conversion)
        return instruments

    def account_exchange_rate(self, instrument: Instrument, side: OrderSide) -> float:
        """Price of one unit of the primary currency in account currency terms."""
        account_ccy = self.account.currency()
        if instrument.primary_currency == account_ccy:
            return 1.0
        pair = Instrument.pair_string(account_ccy, instrument.primary_currency)
        direct = self.catalog.resolve(pair)
        if direct is not None:
            return self.oracle.last_quote(direct).for_side(side)
        inverted = self.catalog.resolve_inverted(pair)
        if inverted is not None:
            return 1.0 / self.oracle.last_quote(inverted).for_side(side)
        raise InstrumentResolutionError(
            f"No instrument converts {account_ccy} to {instrument.primary_currency} "
            f"(tried {pair} and its inverse)"
        )

    def pip_value_in_account_currency(self, instrument: Instrument, side: OrderSide) -> float:
        """Account currency gained or lost per pip on a 100k contract."""
        meta = self.catalog.metadata(instrument)
        # resolve the conversion first so a missing path fails before any quote lookup
        rate = self.account_exchange_rate(meta, side)
        pair_rate = self.oracle.last_quote(meta).for_side(side)
        pip_value = meta.pip_value / pair_rate * PIP_VALUE_UNITS
        if meta.primary_currency != self.account.currency():
            pip_value /= rate
        return pip_value

    def stop_pips(self, risk: RiskSpec) -> float:
        meta = self.catalog.metadata(risk.instrument)
        return abs(risk.stop_loss_price - risk.entry_price) * 10 ** meta.pip_scale

    def size(self, risk: RiskSpec) -> SizingResult:
        """Compute the lot size for `risk` from the current market snapshot.

        Raises
        ------
        InstrumentResolutionError
            If the account currency cannot be converted.
        NoQuoteAvailable
            If a needed quote is missing.
        """
        pip_value = self.pip_value_in_account_currency(risk.instrument, risk.side)
        stop_pips = self.stop_pips(risk)
        units = risk.risk_amount / stop_pips * PIP_VALUE_UNITS / pip_value
        lots = self._round(units / self.units_per_lot)

        if lots > self.max_position_size:
            logger.error(
                "Position size exceeds safety check, max position size is %s lots. "
                "But current position size is %s lots.",
                self.max_position_size,
                lots,
            )
            return SizingResult(lots=0.0, clamped=True)
        if lots <= 0:
            logger.error("Position size for %s rounds to zero lots", risk.instrument)
            return SizingResult(lots=0.0, clamped=True)
        return SizingResult(lots=lots, clamped=False)

    def _round(self, lots: float) -> float:
        if self.rounding == "none":
            return lots
        steps = lots / self.lot_step
        if self.rounding == "down":
            # tolerate float noise just below an exact step
            steps = math.floor(steps + 1e-9)
        else:
            steps = round(steps)
        return round(steps * self.lot_step, 10)
