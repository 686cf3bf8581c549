import asyncio
import unittest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pandas as pd

from option_pricing.exceptions import MarketDataError, OptionExpired, PriceUnavailable, RateUnavailable
from option_pricing.financial_instruments import Option, OptionType, Stock
from option_pricing.market_data import MarketDataGateway, select_bill_tenor
from option_pricing.models import BlackScholes

NOW = datetime(2024, 1, 15, 12, 0, 0)

BILL_RATES = pd.DataFrame({
    "Date": ["01/11/2024", "01/12/2024"],
    "4 WEEKS COUPON EQUIVALENT": [5.30, 5.40],
    "13 WEEKS COUPON EQUIVALENT": [5.20, 5.30],
    "26 WEEKS COUPON EQUIVALENT": [5.00, 5.10],
    "52 WEEKS COUPON EQUIVALENT": [4.60, 4.70],
})


def fake_ticker(last_price=None, closes=None):
    ticker = MagicMock()
    ticker.fast_info = {} if last_price is None else {'last_price': last_price}
    ticker.history.return_value = pd.DataFrame({'Close': closes or []}, dtype=float)
    return ticker


class TestSelectBillTenor(unittest.TestCase):
    def test_nearest_bucket(self):
        self.assertEqual(select_bill_tenor(0), 4)
        self.assertEqual(select_bill_tenor(8.5), 4)
        self.assertEqual(select_bill_tenor(8.6), 13)
        self.assertEqual(select_bill_tenor(19.5), 13)
        self.assertEqual(select_bill_tenor(20), 26)
        self.assertEqual(select_bill_tenor(39), 26)
        self.assertEqual(select_bill_tenor(39.1), 52)
        self.assertEqual(select_bill_tenor(200), 52)


class TestCurrentPrice(unittest.IsolatedAsyncioTestCase):
    async def test_latest_price(self):
        with patch("option_pricing.market_data.yf.Ticker", return_value=fake_ticker(last_price=123.45)) as ticker:
            price = await MarketDataGateway().get_current_price("NVDA")
        self.assertEqual(price, 123.45)
        ticker.assert_called_once_with("NVDA")

    async def test_falls_back_to_last_close(self):
        with patch("option_pricing.market_data.yf.Ticker", return_value=fake_ticker(closes=[99.0, 101.5])):
            price = await MarketDataGateway().get_current_price("NVDA")
        self.assertEqual(price, 101.5)

    async def test_nan_quote_falls_back_to_last_close(self):
        with patch("option_pricing.market_data.yf.Ticker", return_value=fake_ticker(last_price=float('nan'), closes=[42.0])):
            price = await MarketDataGateway().get_current_price("NVDA")
        self.assertEqual(price, 42.0)

    async def test_no_quote_raises(self):
        with patch("option_pricing.market_data.yf.Ticker", return_value=fake_ticker()):
            with self.assertRaises(PriceUnavailable) as ctx:
                await MarketDataGateway().get_current_price("NOPE")
        self.assertEqual(ctx.exception.symbol, "NOPE")
        self.assertIsInstance(ctx.exception, MarketDataError)


class TestRiskFreeRate(unittest.IsolatedAsyncioTestCase):
    async def rate_for(self, weeks):
        gateway = MarketDataGateway()
        with patch.object(MarketDataGateway, "_read_bill_rates", return_value=BILL_RATES):
            return await gateway.get_risk_free_rate(NOW + timedelta(weeks=weeks), as_of=NOW)

    async def test_latest_row_by_tenor(self):
        self.assertAlmostEqual(await self.rate_for(3), 0.054)
        self.assertAlmostEqual(await self.rate_for(10), 0.053)
        self.assertAlmostEqual(await self.rate_for(30), 0.051)
        self.assertAlmostEqual(await self.rate_for(45), 0.047)

    async def test_expired_option_fails_before_fetching(self):
        gateway = MarketDataGateway()
        with patch.object(MarketDataGateway, "_read_bill_rates") as read:
            with self.assertRaises(OptionExpired):
                await gateway.get_risk_free_rate(NOW - timedelta(days=1), as_of=NOW)
        read.assert_not_called()

    async def test_missing_tenor(self):
        partial = BILL_RATES.drop(columns=["52 WEEKS COUPON EQUIVALENT"])
        gateway = MarketDataGateway()
        with patch.object(MarketDataGateway, "_read_bill_rates", return_value=partial):
            with self.assertRaises(RateUnavailable):
                await gateway.get_risk_free_rate(NOW + timedelta(weeks=50), as_of=NOW)

    async def test_empty_current_year_uses_previous_year(self):
        gateway = MarketDataGateway()
        with patch.object(MarketDataGateway, "_read_bill_rates", side_effect=[pd.DataFrame(), BILL_RATES]) as read:
            rate = await gateway.get_risk_free_rate(NOW + timedelta(weeks=3), as_of=NOW)
        self.assertAlmostEqual(rate, 0.054)
        self.assertEqual(read.call_count, 2)

    async def test_empty_csv_body_uses_previous_year(self):
        gateway = MarketDataGateway()
        empty_body = pd.errors.EmptyDataError("No columns to parse from file")
        with patch("option_pricing.market_data.pd.read_csv", side_effect=[empty_body, BILL_RATES]) as read_csv:
            rate = await gateway.get_risk_free_rate(NOW + timedelta(weeks=30), as_of=NOW)
        self.assertAlmostEqual(rate, 0.051)
        self.assertEqual(read_csv.call_count, 2)

    async def test_no_data_at_all(self):
        gateway = MarketDataGateway()
        with patch.object(MarketDataGateway, "_read_bill_rates", return_value=pd.DataFrame()):
            with self.assertRaises(RateUnavailable):
                await gateway.get_risk_free_rate(NOW + timedelta(weeks=3), as_of=NOW)


class TestHistoricalVolatility(unittest.IsolatedAsyncioTestCase):
    async def test_annualized_log_return_std(self):
        closes = [100.0, 102.0, 99.0, 101.0, 103.0, 100.5]
        with patch("option_pricing.market_data.yf.Ticker", return_value=fake_ticker(closes=closes)):
            volatility = await MarketDataGateway().get_historical_volatility("NVDA", window=5)

        expected = np.std(np.diff(np.log(closes)), ddof=1) * np.sqrt(252)
        self.assertAlmostEqual(volatility, expected, places=10)

    async def test_not_enough_history(self):
        with patch("option_pricing.market_data.yf.Ticker", return_value=fake_ticker(closes=[100.0])):
            with self.assertRaises(PriceUnavailable):
                await MarketDataGateway().get_historical_volatility("NVDA")


class TestEngineMarketData(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.stock = Stock("FB")
        option = Option(strike_price=100.0, expiry_date=NOW + timedelta(days=0.08 * 365.25),
                        option_type=OptionType.CALL, underlying_asset=self.stock)
        self.engine = BlackScholes(self.stock, option, 0.1, clock=lambda: NOW)
        self.gateway = MagicMock()
        self.gateway.get_current_price = AsyncMock(return_value=100.0)
        self.gateway.get_risk_free_rate = AsyncMock(return_value=0.06)

    async def test_load_market_data(self):
        await self.engine.load_market_data(self.gateway)
        self.assertEqual(self.stock.price, 100.0)
        self.assertEqual(self.engine.risk_free, 0.06)
        self.gateway.get_current_price.assert_awaited_once_with("FB")
        self.gateway.get_risk_free_rate.assert_awaited_once_with(self.engine.option.expiry_date)
        self.assertTrue(1.3 <= self.engine.value() <= 1.4)

    async def test_load_price_only(self):
        self.engine.set_risk_free(0.02)
        await self.engine.load_market_data(self.gateway, fetch_rate=False)
        self.assertEqual(self.engine.risk_free, 0.02)
        self.gateway.get_risk_free_rate.assert_not_awaited()

    async def test_queries_before_data_arrives_have_no_value(self):
        released = asyncio.Event()

        async def slow_price(symbol):
            await released.wait()
            return 100.0

        self.gateway.get_current_price = slow_price
        task = self.engine.schedule_market_data(self.gateway)
        await asyncio.sleep(0)
        self.assertIsNone(self.engine.delta())
        self.assertIsNone(self.engine.value())

        released.set()
        await task
        self.assertTrue(0.300 <= self.engine.delta() <= 0.600)

    async def test_gateway_error_surfaces(self):
        self.gateway.get_current_price = AsyncMock(side_effect=PriceUnavailable("FB"))
        with self.assertRaises(PriceUnavailable):
            await self.engine.load_market_data(self.gateway)
        self.assertIsNone(self.stock.price)
        self.assertIsNone(self.engine.delta())


if __name__ == '__main__':
    unittest.main()
