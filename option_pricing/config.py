"""Configuration for the market data gateway."""

from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

TREASURY_BILL_RATES_URL = (
    "https://home.treasury.gov/resource-center/data-chart-center/interest-rates/"
    "daily-treasury-rates.csv/{year}/all?type=daily_treasury_bill_rates"
    "&field_tdr_date_value={year}&page&_format=csv"
)


class PricingConfig(BaseSettings):
    """
    Settings for the market data gateway.
    Every field can be overridden with an OPTION_PRICING_<FIELD> environment variable.
    """
    model_config = SettingsConfigDict(env_prefix="OPTION_PRICING_")

    treasury_rates_url: str = TREASURY_BILL_RATES_URL
    # Column holding the investment (coupon equivalent) yield, in percent
    treasury_rate_column: str = "{weeks} WEEKS COUPON EQUIVALENT"
    volatility_window: int = Field(252, gt=1) # Trading days used for historical volatility
    trading_days_per_year: int = Field(252, gt=0)
    history_period: str = "1d" # Period requested when falling back to the last close

    @classmethod
    def from_env(cls, env_file: Optional[str] = ".env") -> "PricingConfig":
        """Loads a .env file (if present) into the environment, then reads the settings."""
        if env_file:
            load_dotenv(env_file)
        return cls()
