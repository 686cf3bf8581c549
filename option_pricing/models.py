import asyncio
import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, NamedTuple, Optional

import numpy as np

from .financial_instruments import Option, OptionType, Stock
from .normal_distribution import NormalDist

logger = logging.getLogger(__name__)

# Below one day to expiry the closed form is unstable, use intrinsic value
MIN_TIME_TO_EXPIRY = 1 / 365


class PricingInputs(NamedTuple):
    """Snapshot of everything the closed form reads, taken once per request."""
    spot: Optional[float]       # S
    strike: float               # K
    rate: Optional[float]       # r
    volatility: Optional[float] # sigma
    time: float                 # T, in years
    sign: int                   # +1 call, -1 put


def round_half_away(x: Optional[float], num_digits: int = 3) -> Optional[float]:
    """
    Rounds half away from zero (0.0005 -> 0.001, -0.0005 -> -0.001).
    Python's round() and np.round() round half to even, hence Decimal.
    """
    if x is None:
        return None
    quantum = Decimal(1).scaleb(-num_digits)
    return float(Decimal(repr(float(x))).quantize(quantum, rounding=ROUND_HALF_UP))


def d1(inputs: PricingInputs) -> Optional[float]:
    """
    d1 = (ln(S/K) + (r + sigma^2 / 2) * T) / (sigma * sqrt(T))
    None if expired, if any input is still missing or if the result is not finite
    (T = 0, sigma = 0, S <= 0).
    """
    S, K, r, sigma, T, _ = inputs
    if T < 0 or S is None or r is None or sigma is None:
        return None

    with np.errstate(divide="ignore", invalid="ignore"):
        value = (np.log(np.float64(S) / K) + (r + sigma**2 / 2) * T) / (sigma * np.sqrt(np.float64(T)))

    if not np.isfinite(value):
        return None
    return float(value)


def d2(inputs: PricingInputs) -> Optional[float]:
    d1_value = d1(inputs)
    if d1_value is None:
        return None
    return float(d1_value - inputs.volatility * np.sqrt(inputs.time))


def norm_pdf_d1(inputs: PricingInputs) -> Optional[float]:
    d1_value = d1(inputs)
    if d1_value is None:
        return None
    return NormalDist.pdf(d1_value)


class BlackScholes:
    """
    Black-Scholes closed form for one European option on one stock.

    The engine keeps references to the stock and the option, so a price that
    arrives after construction is picked up by the next request. Nothing is
    cached: every Greek re-reads the clock and recomputes d1/d2.
    Any Greek whose inputs make the formula undefined returns None.
    """

    def __init__(self, stock: Stock, option: Option, deviation: Optional[float] = None,
                 risk_free: Optional[float] = None, clock: Optional[Callable[[], datetime]] = None):
        """
        :param deviation: Annualized volatility (sigma). None until known.
        :param risk_free: Annualized risk-free rate (r) as a decimal. None until fetched.
        :param clock: Returns "now"; defaults to the real current time.
        """
        self.stock = stock
        self.option = option
        self.set_deviation(deviation)
        self.risk_free = risk_free
        self.clock = clock

    def set_option(self, expiry_date, strike_price: float, call_put: str):
        self.option = Option(
            strike_price=strike_price,
            expiry_date=expiry_date,
            option_type=OptionType.from_string(call_put),
            underlying_asset=self.stock
        )

    def set_risk_free(self, risk_free: Optional[float]):
        self.risk_free = risk_free

    def set_deviation(self, deviation: Optional[float]):
        if deviation is not None and deviation < 0:
            raise ValueError("Volatility must not be negative.")
        self.deviation = deviation

    async def load_market_data(self, gateway, fetch_rate: bool = True):
        """
        Fetches the spot price and, unless fetch_rate is False, the risk-free
        rate for this option's expiry. Both requests run concurrently; any
        gateway error propagates to the caller and leaves the fields untouched.
        """
        if fetch_rate:
            price, rate = await asyncio.gather(
                gateway.get_current_price(self.stock.symbol),
                gateway.get_risk_free_rate(self.option.expiry_date),
            )
            self.risk_free = rate
        else:
            price = await gateway.get_current_price(self.stock.symbol)
        self.stock.price = price
        logger.debug("Loaded market data for %s: price=%s rate=%s", self.stock.symbol, price, self.risk_free)

    def schedule_market_data(self, gateway, fetch_rate: bool = True) -> "asyncio.Task":
        """
        Starts load_market_data in the background and returns the task.
        Until it completes, Greeks see the missing fields and return None.
        """
        return asyncio.create_task(self.load_market_data(gateway, fetch_rate=fetch_rate))

    def snapshot(self) -> PricingInputs:
        as_of = self.clock() if self.clock is not None else None
        return PricingInputs(
            spot=self.stock.price,
            strike=self.option.strike_price,
            rate=self.risk_free,
            volatility=self.deviation,
            time=self.option.time_to_expiry(as_of),
            sign=self.option.option_type.sign,
        )

    def time_to_expiry(self) -> float:
        return self.snapshot().time

    def d1(self) -> Optional[float]:
        return d1(self.snapshot())

    def d2(self) -> Optional[float]:
        return d2(self.snapshot())

    def norm_pdf_d1(self) -> Optional[float]:
        return norm_pdf_d1(self.snapshot())

    def delta(self) -> Optional[float]:
        """
        First partial derivative of stock price
        (velocity)
        """
        return round_half_away(_delta(self.snapshot()))

    def gamma(self) -> Optional[float]:
        """
        Second partial derivative of stock price
        (acceleration)
        """
        return round_half_away(_gamma(self.snapshot()))

    def theta(self) -> Optional[float]:
        """
        First partial derivative of time to maturity (time decay), per year.
        """
        return round_half_away(_theta(self.snapshot()))

    def rho(self) -> Optional[float]:
        """
        First partial derivative of the risk-free rate.
        """
        return round_half_away(_rho(self.snapshot()))

    def vega(self) -> Optional[float]:
        """
        First partial derivative of volatility.
        """
        return round_half_away(_vega(self.snapshot()))

    def value(self, inputs: Optional[PricingInputs] = None) -> Optional[float]:
        """Fair value of the option. Not rounded."""
        return _value(inputs if inputs is not None else self.snapshot())

    def greeks(self, inputs: Optional[PricingInputs] = None) -> Dict[str, Optional[float]]:
        """
        Calculates all five Greeks from a single snapshot.
        Pass `inputs` to price several quantities against the same snapshot.
        """
        if inputs is None:
            inputs = self.snapshot()
        greeks = {
            'delta': _delta(inputs),
            'gamma': _gamma(inputs),
            'theta': _theta(inputs),
            'rho': _rho(inputs),
            'vega': _vega(inputs),
        }
        return {name: round_half_away(greek) for name, greek in greeks.items()}


def _delta(inputs: PricingInputs) -> Optional[float]:
    d1_value = d1(inputs)
    if d1_value is None:
        return None
    # N(d1) for a call, N(d1) - 1 for a put
    return inputs.sign * NormalDist.cdf(inputs.sign * d1_value)


def _gamma(inputs: PricingInputs) -> Optional[float]:
    pdf_d1 = norm_pdf_d1(inputs)
    if pdf_d1 is None:
        return None
    return pdf_d1 / (inputs.spot * inputs.volatility * np.sqrt(inputs.time))


def _theta(inputs: PricingInputs) -> Optional[float]:
    d1_value = d1(inputs)
    d2_value = d2(inputs)
    if d1_value is None or d2_value is None or norm_pdf_d1(inputs) is None:
        return None

    S, K, r, sigma, T, sign = inputs
    return ((-S * NormalDist.cdf(d1_value) * sigma / (2 * np.sqrt(T)))
            - sign * r * K * np.exp(-r * T) * NormalDist.pdf(sign * d2_value))


def _rho(inputs: PricingInputs) -> Optional[float]:
    d2_value = d2(inputs)
    if d2_value is None:
        return None

    _, K, r, _, T, sign = inputs
    return sign * K * T * np.exp(-r * T) * NormalDist.cdf(sign * d2_value)


def _vega(inputs: PricingInputs) -> Optional[float]:
    d1_value = d1(inputs)
    if d1_value is None or d2(inputs) is None:
        return None
    return inputs.spot * np.sqrt(inputs.time) * NormalDist.pdf(d1_value)


def _value(inputs: PricingInputs) -> Optional[float]:
    d1_value = d1(inputs)
    d2_value = d2(inputs)
    if d1_value is None or d2_value is None:
        return None

    S, K, r, _, T, sign = inputs
    if T < MIN_TIME_TO_EXPIRY:
        return max(sign * (S - K), 0.0)

    price_term = S * NormalDist.cdf(sign * d1_value)
    strike_term = K * np.exp(-r * T) * NormalDist.cdf(sign * d2_value)

    if sign == OptionType.CALL.sign:
        return float(price_term - strike_term)
    return float(strike_term - price_term)
