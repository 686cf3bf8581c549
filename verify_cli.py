import unittest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from option_pricing.cli import build_engine, main, parse_args, report
from option_pricing.exceptions import OptionExpired
from option_pricing.financial_instruments import Option, OptionType, Stock
from option_pricing.models import BlackScholes


def fake_gateway(price=100.0, rate=0.06, volatility=0.1):
    gateway = MagicMock()
    gateway.get_current_price = AsyncMock(return_value=price)
    gateway.get_risk_free_rate = AsyncMock(return_value=rate)
    gateway.get_historical_volatility = AsyncMock(return_value=volatility)
    return gateway


class TestCli(unittest.IsolatedAsyncioTestCase):
    def expiry(self, days=60):
        return (datetime.now() + timedelta(days=days)).date().isoformat()

    def test_parse_args(self):
        args = parse_args(["nvda", "--strike", "120", "--expiry", "2030-06-21", "--type", "put"])
        self.assertEqual(args.symbol, "nvda")
        self.assertEqual(args.strike, 120.0)
        self.assertEqual(args.expiry, datetime(2030, 6, 21))
        self.assertEqual(args.option_type, "put")
        self.assertIsNone(args.volatility)
        self.assertIsNone(args.rate)

    async def test_build_engine_fetches_what_is_missing(self):
        args = parse_args(["nvda", "--strike", "100", "--expiry", self.expiry()])
        gateway = fake_gateway()
        engine = await build_engine(args, gateway)

        self.assertEqual(engine.stock.symbol, "NVDA")
        self.assertEqual(engine.stock.price, 100.0)
        self.assertEqual(engine.risk_free, 0.06)
        self.assertEqual(engine.deviation, 0.1)
        gateway.get_historical_volatility.assert_awaited_once_with("NVDA")

    async def test_build_engine_uses_given_inputs(self):
        args = parse_args(["nvda", "--strike", "100", "--expiry", self.expiry(),
                           "--volatility", "0.3", "--rate", "0.02"])
        gateway = fake_gateway()
        engine = await build_engine(args, gateway)

        self.assertEqual(engine.deviation, 0.3)
        self.assertEqual(engine.risk_free, 0.02)
        gateway.get_risk_free_rate.assert_not_awaited()
        gateway.get_historical_volatility.assert_not_awaited()

    async def test_report(self):
        args = parse_args(["nvda", "--strike", "100", "--expiry", self.expiry(), "--type", "put"])
        engine = await build_engine(args, fake_gateway())
        df = report(engine)

        self.assertEqual(len(df), 1)
        row = df.iloc[0]
        self.assertEqual(row["Type"], "put")
        self.assertTrue(-1 <= row["Delta"] <= 0)
        self.assertGreater(row["Value"], 0)


class TestReportSnapshot(unittest.TestCase):
    def test_report_reads_the_clock_once(self):
        start = datetime(2024, 1, 15, 12, 0, 0)
        stock = Stock("FB", price=100.0)
        option = Option(strike_price=100.0, expiry_date=start + timedelta(days=0.08 * 365.25),
                        option_type=OptionType.CALL, underlying_asset=stock)
        ticks = []

        def clock():
            # Every read is one day later than the previous one
            ticks.append(start + timedelta(days=len(ticks)))
            return ticks[-1]

        engine = BlackScholes(stock, option, 0.1, 0.06, clock=clock)
        row = report(engine).iloc[0]

        self.assertEqual(len(ticks), 1)
        self.assertAlmostEqual(row["T (years)"], 0.08)
        self.assertTrue(1.3 <= row["Value"] <= 1.4)
        self.assertTrue(11.000 <= row["Vega"] <= 12.000)


class TestMain(unittest.TestCase):
    def test_main_reports_gateway_errors(self):
        gateway = fake_gateway()
        gateway.get_risk_free_rate = AsyncMock(side_effect=OptionExpired("2017-07-24"))
        with patch("option_pricing.cli.MarketDataGateway", return_value=gateway), patch("builtins.print") as printed:
            code = main(["fb", "--strike", "100", "--expiry", "2017-07-24"])
        self.assertEqual(code, 1)
        self.assertIn("already expired", str(printed.call_args))


if __name__ == '__main__':
    unittest.main()
