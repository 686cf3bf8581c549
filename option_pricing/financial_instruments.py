from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Optional, Union

# 365.25-day year
SECONDS_PER_YEAR = 365.25 * 24 * 60 * 60


def as_datetime(value: Union[datetime, date]) -> datetime:
    """A bare date means midnight at the start of that day."""
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


class OptionType(Enum):
    CALL = "call"
    PUT = "put"

    @property
    def sign(self) -> int:
        return 1 if self is OptionType.CALL else -1

    @classmethod
    def from_string(cls, call_put: str) -> "OptionType":
        try:
            return cls(call_put.strip().lower())
        except ValueError:
            raise ValueError(f"Option type must be 'call' or 'put', got {call_put!r}") from None


@dataclass
class Stock:
    """Class representing the underlying asset. Price stays None until a quote arrives."""
    symbol: str
    price: Optional[float] = None


@dataclass
class Option:
    """Class representing a European option."""
    strike_price: float # (K)
    expiry_date: Union[datetime, date]
    option_type: OptionType
    underlying_asset: Optional[Stock] = None

    def __post_init__(self):
        if self.strike_price is None or self.strike_price <= 0:
            raise ValueError("Strike price must be positive.")

    @property
    def expiry_datetime(self) -> datetime:
        return as_datetime(self.expiry_date)

    def time_to_expiry(self, as_of: Optional[datetime] = None) -> float:
        """
        Year fraction (T) between `as_of` (default: now) and expiry.
        Negative once the option has expired.
        """
        expiry = self.expiry_datetime
        if as_of is None:
            as_of = datetime.now(expiry.tzinfo)
        return (expiry - as_of).total_seconds() / SECONDS_PER_YEAR
