class MarketDataError(Exception):
    """Base class for failures of the market data feeds."""


class PriceUnavailable(MarketDataError):
    """No quote (live or delayed) could be found for a symbol."""

    def __init__(self, symbol: str, reason: str = "no quote available"):
        self.symbol = symbol
        super().__init__(f"Cannot find the stock price for {symbol}: {reason}")


class RateUnavailable(MarketDataError):
    """The Treasury bill feed did not publish the requested tenor."""


class OptionExpired(MarketDataError):
    """The option's expiry date lies in the past."""

    def __init__(self, expiry_date):
        self.expiry_date = expiry_date
        super().__init__(f"Option has already expired ({expiry_date})")
