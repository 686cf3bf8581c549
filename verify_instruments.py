import os
import tempfile
import unittest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

from pydantic import ValidationError

from option_pricing.config import PricingConfig
from option_pricing.financial_instruments import Option, OptionType, Stock, as_datetime


class TestInstruments(unittest.TestCase):
    def test_stock_price_starts_unset(self):
        stock = Stock("NVDA")
        self.assertIsNone(stock.price)

    def test_strike_must_be_positive(self):
        for strike in (0, -5.0, None):
            with self.assertRaises(ValueError):
                Option(strike_price=strike, expiry_date=date(2030, 1, 1), option_type=OptionType.CALL)

    def test_option_type_from_string(self):
        self.assertIs(OptionType.from_string("Call"), OptionType.CALL)
        self.assertIs(OptionType.from_string(" put "), OptionType.PUT)
        with self.assertRaises(ValueError):
            OptionType.from_string("straddle")

    def test_sign(self):
        self.assertEqual(OptionType.CALL.sign, 1)
        self.assertEqual(OptionType.PUT.sign, -1)

    def test_bare_date_is_midnight(self):
        self.assertEqual(as_datetime(date(2017, 7, 24)), datetime(2017, 7, 24, 0, 0))

    def test_time_to_expiry(self):
        as_of = datetime(2024, 1, 1)
        option = Option(strike_price=100.0, expiry_date=as_of + timedelta(days=365.25), option_type=OptionType.CALL)
        self.assertAlmostEqual(option.time_to_expiry(as_of), 1.0, places=12)

    def test_time_to_expiry_negative_after_expiry(self):
        option = Option(strike_price=100.0, expiry_date=date(2017, 7, 24), option_type=OptionType.PUT)
        self.assertLess(option.time_to_expiry(), 0)

    def test_time_to_expiry_timezone_aware(self):
        expiry = datetime.now(timezone.utc) + timedelta(days=365.25)
        option = Option(strike_price=100.0, expiry_date=expiry, option_type=OptionType.CALL)
        self.assertAlmostEqual(option.time_to_expiry(), 1.0, places=4)


class TestConfig(unittest.TestCase):
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = PricingConfig()
        self.assertEqual(config.volatility_window, 252)
        self.assertIn("{year}", config.treasury_rates_url)

    def test_environment_overrides(self):
        env = {"OPTION_PRICING_VOLATILITY_WINDOW": "30", "OPTION_PRICING_HISTORY_PERIOD": "5d"}
        with patch.dict(os.environ, env, clear=True):
            config = PricingConfig.from_env(env_file=None)
        self.assertEqual(config.volatility_window, 30)
        self.assertEqual(config.history_period, "5d")
        self.assertEqual(config.trading_days_per_year, 252)

    def test_dotenv_file_is_loaded(self):
        with tempfile.TemporaryDirectory() as tmp:
            env_file = os.path.join(tmp, ".env")
            with open(env_file, "w") as f:
                f.write("OPTION_PRICING_VOLATILITY_WINDOW=30\n")
            with patch.dict(os.environ, {}, clear=True):
                config = PricingConfig.from_env(env_file)
        self.assertEqual(config.volatility_window, 30)

    def test_invalid_value_names_the_field(self):
        with patch.dict(os.environ, {"OPTION_PRICING_VOLATILITY_WINDOW": "abc"}, clear=True):
            with self.assertRaises(ValidationError) as ctx:
                PricingConfig.from_env(env_file=None)
        self.assertIn("volatility_window", str(ctx.exception))


if __name__ == '__main__':
    unittest.main()
