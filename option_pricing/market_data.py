import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
import yfinance as yf

from .config import PricingConfig
from .exceptions import OptionExpired, PriceUnavailable, RateUnavailable
from .financial_instruments import as_datetime

logger = logging.getLogger(__name__)

# Treasury bill maturities published daily, in weeks
BILL_TENORS = (4, 13, 26, 52)


def select_bill_tenor(weeks: float, tenors: Sequence[int] = BILL_TENORS) -> int:
    """
    Nearest-bucket match of weeks-to-expiry onto the bill maturities.
    Boundaries sit at the midpoints between neighbours (8.5, 19.5 and 39 weeks
    for the default tenors); a tie goes to the shorter bill.
    """
    tenors = sorted(tenors)
    for shorter, longer in zip(tenors, tenors[1:]):
        if weeks <= (shorter + longer) / 2:
            return shorter
    return tenors[-1]


def _usable(price) -> bool:
    return price is not None and bool(np.isfinite(price)) and price > 0


class MarketDataGateway:
    """
    Fetches spot prices and volatility from Yahoo Finance and risk-free rates
    from the U.S. Treasury daily bill rates.

    Every public method is a coroutine; the blocking HTTP work runs in a worker
    thread. Errors are raised to the awaiting caller, never retried here.
    """

    def __init__(self, config: Optional[PricingConfig] = None):
        self.config = config if config is not None else PricingConfig()

    async def get_current_price(self, symbol: str) -> float:
        return await asyncio.to_thread(self._fetch_price, symbol)

    async def get_risk_free_rate(self, expiry_date, as_of: Optional[datetime] = None) -> float:
        """
        Annualized rate (decimal) of the Treasury bill maturing closest to expiry.
        Raises OptionExpired before touching the network if expiry has passed.
        """
        weeks = self._weeks_to_expiry(expiry_date, as_of)
        if weeks < 0:
            raise OptionExpired(expiry_date)

        tenor = select_bill_tenor(weeks)
        rates = await asyncio.to_thread(self._fetch_bill_rates)
        if tenor not in rates:
            raise RateUnavailable(f"No {tenor} week Treasury bill rate published")

        logger.debug("Expiry in %.2f weeks, using %d week bill at %.4f", weeks, tenor, rates[tenor])
        return rates[tenor]

    async def get_historical_volatility(self, symbol: str, window: Optional[int] = None) -> float:
        return await asyncio.to_thread(self._fetch_volatility, symbol, window or self.config.volatility_window)

    @staticmethod
    def _weeks_to_expiry(expiry_date, as_of: Optional[datetime] = None) -> float:
        expiry = as_datetime(expiry_date)
        if as_of is None:
            as_of = datetime.now(expiry.tzinfo)
        return (expiry - as_of) / timedelta(weeks=1)

    def _fetch_price(self, symbol: str) -> float:
        """
        Last traded price, falling back to the latest daily close.
        Raises PriceUnavailable when neither exists; there is no silent default.
        """
        ticker = yf.Ticker(symbol)

        try:
            price = ticker.fast_info['last_price']
        except (AttributeError, KeyError):
            price = None

        if not _usable(price):
            logger.warning("No live quote for %s, falling back to last close", symbol)
            history = ticker.history(period=self.config.history_period)
            if history is None or history.empty:
                raise PriceUnavailable(symbol)
            price = history['Close'].iloc[-1]
            if not _usable(price):
                raise PriceUnavailable(symbol, "last close is not a valid price")

        logger.debug("Spot price for %s: %.4f", symbol, price)
        return float(price)

    def _read_bill_rates(self, year: int) -> pd.DataFrame:
        try:
            return pd.read_csv(self.config.treasury_rates_url.format(year=year))
        except pd.errors.EmptyDataError:
            logger.debug("No Treasury bill rates published for %d", year)
            return pd.DataFrame()

    def _fetch_bill_rates(self) -> Dict[int, float]:
        """
        Latest published bill rates keyed by tenor in weeks, as decimals.
        Early in January the current year's file can be empty, so the previous
        year is tried too.
        """
        year = datetime.now().year
        data = self._read_bill_rates(year)
        if data.empty:
            data = self._read_bill_rates(year - 1)
        if data.empty:
            raise RateUnavailable("Treasury bill rate feed returned no data")

        if 'Date' in data.columns:
            data = data.assign(Date=pd.to_datetime(data['Date'])).sort_values('Date', ascending=False)
        latest = data.iloc[0]

        rates = {}
        for tenor in BILL_TENORS:
            column = self.config.treasury_rate_column.format(weeks=tenor)
            if column in latest.index and pd.notna(latest[column]):
                # Published in percent
                rates[tenor] = float(latest[column]) / 100
        return rates

    def _fetch_volatility(self, symbol: str, window: int) -> float:
        """
        Annualized historical volatility from the last `window` trading days of closes.
        """
        end_date = datetime.now()
        # Adding a buffer to ensure we get enough trading days
        start_date = end_date - timedelta(days=int(window * 1.5) + 20)

        hist = yf.Ticker(symbol).history(start=start_date, end=end_date)
        if hist is None or hist.empty or len(hist) < 2:
            raise PriceUnavailable(symbol, "not enough history to estimate volatility")

        # Use only the requested window size
        hist = hist.tail(window + 1)

        log_returns = np.log(hist['Close'] / hist['Close'].shift(1)).dropna()
        volatility = float(log_returns.std() * np.sqrt(self.config.trading_days_per_year))
        logger.debug("Historical volatility for %s over %d days: %.4f", symbol, window, volatility)
        return volatility
