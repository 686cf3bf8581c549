import math
import unittest
from datetime import datetime, timedelta

import numpy as np

from option_pricing.financial_instruments import Option, OptionType, Stock
from option_pricing.models import BlackScholes, PricingInputs, d1, d2, round_half_away

NOW = datetime(2024, 1, 15, 12, 0, 0)


def years(t: float) -> timedelta:
    return timedelta(days=t * 365.25)


def make_engine(option_type=OptionType.CALL, spot=100.0, strike=100.0, volatility=0.1, rate=0.06, t=0.08):
    stock = Stock("FB", price=spot)
    option = Option(strike_price=strike, expiry_date=NOW + years(t), option_type=option_type, underlying_asset=stock)
    return BlackScholes(stock, option, volatility, rate, clock=lambda: NOW)


class TestReferenceScenario(unittest.TestCase):
    # S=100, K=100, sigma=0.1, r=0.06, about four weeks out
    def setUp(self):
        self.engine = make_engine()

    def test_construct(self):
        self.assertEqual(self.engine.stock.symbol, "FB")
        self.assertIs(self.engine.option.underlying_asset, self.engine.stock)
        self.assertAlmostEqual(self.engine.time_to_expiry(), 0.08, places=9)

    def test_delta(self):
        delta = self.engine.delta()
        self.assertTrue(0.300 <= delta <= 0.600)

    def test_gamma(self):
        gamma = self.engine.gamma()
        self.assertTrue(0.100 <= gamma <= 0.150)

    def test_vega(self):
        vega = self.engine.vega()
        self.assertTrue(11.000 <= vega <= 12.000)

    def test_rho(self):
        rho = self.engine.rho()
        self.assertTrue(4.00 <= rho <= 5.00)

    def test_theta(self):
        theta = self.engine.theta()
        self.assertTrue(-13.0 <= theta <= -12.0)

    def test_value(self):
        value = self.engine.value()
        self.assertTrue(1.3 <= value <= 1.4)

    def test_greeks_dict_matches_individual_calls(self):
        greeks = self.engine.greeks()
        self.assertEqual(set(greeks), {'delta', 'gamma', 'theta', 'rho', 'vega'})
        self.assertEqual(greeks['delta'], self.engine.delta())
        self.assertEqual(greeks['theta'], self.engine.theta())
        self.assertEqual(greeks['vega'], self.engine.vega())

    def test_greeks_are_rounded_to_three_places(self):
        for name, greek in self.engine.greeks().items():
            self.assertEqual(greek, round_half_away(greek), name)

    def test_d_terms(self):
        sqrt_t = math.sqrt(0.08)
        expected_d1 = (0.06 + 0.1**2 / 2) * 0.08 / (0.1 * sqrt_t)
        self.assertAlmostEqual(self.engine.d1(), expected_d1, places=9)
        self.assertAlmostEqual(self.engine.d2(), expected_d1 - 0.1 * sqrt_t, places=9)
        self.assertAlmostEqual(self.engine.norm_pdf_d1(), math.exp(-expected_d1**2 / 2) / math.sqrt(2 * math.pi), places=9)


def norm_cdf(x):
    return 0.5 * (1 + math.erf(x / math.sqrt(2)))


def norm_pdf(x):
    return math.exp(-x * x / 2) / math.sqrt(2 * math.pi)


class TestPutFormulas(unittest.TestCase):
    # S=100, K=100, sigma=0.2, r=0.05, T=1
    def setUp(self):
        self.engine = make_engine(OptionType.PUT, spot=100.0, strike=100.0, volatility=0.2, rate=0.05, t=1.0)
        S, K, sigma, r, T = 100.0, 100.0, 0.2, 0.05, 1.0
        self.d1 = (math.log(S / K) + (r + sigma**2 / 2) * T) / (sigma * math.sqrt(T))
        self.d2 = self.d1 - sigma * math.sqrt(T)
        self.S, self.K, self.sigma, self.r, self.T = S, K, sigma, r, T

    def test_snapshot(self):
        inputs = self.engine.snapshot()
        self.assertIsInstance(inputs, PricingInputs)
        self.assertEqual(inputs.sign, -1)
        self.assertAlmostEqual(inputs.time, 1.0, places=9)

    def test_delta(self):
        self.assertAlmostEqual(self.engine.delta(), -norm_cdf(-self.d1), delta=0.0006)

    def test_gamma(self):
        expected = norm_pdf(self.d1) / (self.S * self.sigma * math.sqrt(self.T))
        self.assertAlmostEqual(self.engine.gamma(), expected, delta=0.0006)

    def test_theta(self):
        S, K, sigma, r, T = self.S, self.K, self.sigma, self.r, self.T
        expected = ((-S * norm_cdf(self.d1) * sigma / (2 * math.sqrt(T)))
                    + r * K * math.exp(-r * T) * norm_pdf(-self.d2))
        self.assertAlmostEqual(self.engine.theta(), expected, delta=0.0006)

    def test_rho(self):
        expected = -self.K * self.T * math.exp(-self.r * self.T) * norm_cdf(-self.d2)
        self.assertAlmostEqual(self.engine.rho(), expected, delta=0.0006)

    def test_vega(self):
        expected = self.S * math.sqrt(self.T) * norm_pdf(self.d1)
        self.assertAlmostEqual(self.engine.vega(), expected, delta=0.0006)

    def test_value(self):
        S, K, r, T = self.S, self.K, self.r, self.T
        expected = K * math.exp(-r * T) * norm_cdf(-self.d2) - S * norm_cdf(-self.d1)
        self.assertAlmostEqual(self.engine.value(), expected, places=9)


class TestGreekBounds(unittest.TestCase):
    def test_call_and_put_deltas(self):
        for spot in (60.0, 90.0, 100.0, 110.0, 160.0):
            for t in (0.05, 0.5, 2.0):
                call = make_engine(OptionType.CALL, spot=spot, volatility=0.3, t=t)
                put = make_engine(OptionType.PUT, spot=spot, volatility=0.3, t=t)
                self.assertTrue(0 <= call.delta() <= 1)
                self.assertTrue(-1 <= put.delta() <= 0)
                self.assertGreaterEqual(call.gamma(), 0)
                self.assertGreaterEqual(call.vega(), 0)
                self.assertGreaterEqual(put.gamma(), 0)
                self.assertGreaterEqual(put.vega(), 0)

    def test_put_delta_is_call_delta_minus_one(self):
        call = make_engine(OptionType.CALL, volatility=0.2, t=1.0)
        put = make_engine(OptionType.PUT, volatility=0.2, t=1.0)
        # each side is rounded separately
        self.assertLessEqual(abs(put.delta() - (call.delta() - 1)), 0.0011)

    def test_rho_sign_follows_option_type(self):
        self.assertGreater(make_engine(OptionType.CALL, t=1.0).rho(), 0)
        self.assertLess(make_engine(OptionType.PUT, t=1.0).rho(), 0)

    def test_put_call_parity(self):
        for spot, strike, t in ((100.0, 100.0, 1.0), (120.0, 100.0, 0.25), (80.0, 95.0, 2.0)):
            call = make_engine(OptionType.CALL, spot=spot, strike=strike, volatility=0.25, rate=0.03, t=t)
            put = make_engine(OptionType.PUT, spot=spot, strike=strike, volatility=0.25, rate=0.03, t=t)
            forward = spot - strike * np.exp(-0.03 * t)
            self.assertAlmostEqual(call.value() - put.value(), forward, places=6)


class TestUndefinedResults(unittest.TestCase):
    def assertAllUndefined(self, engine):
        self.assertIsNone(engine.d1())
        self.assertIsNone(engine.d2())
        self.assertIsNone(engine.norm_pdf_d1())
        self.assertIsNone(engine.delta())
        self.assertIsNone(engine.gamma())
        self.assertIsNone(engine.theta())
        self.assertIsNone(engine.rho())
        self.assertIsNone(engine.vega())
        self.assertIsNone(engine.value())
        self.assertEqual(set(engine.greeks().values()), {None})

    def test_expired_option(self):
        for option_type in OptionType:
            engine = make_engine(option_type, t=-1 / 365)
            self.assertLess(engine.time_to_expiry(), 0)
            self.assertAllUndefined(engine)

    def test_expiring_right_now(self):
        engine = make_engine(t=0)
        self.assertEqual(engine.time_to_expiry(), 0)
        self.assertAllUndefined(engine)

    def test_missing_price(self):
        engine = make_engine(spot=None)
        self.assertAllUndefined(engine)

    def test_missing_rate(self):
        engine = make_engine(rate=None)
        self.assertAllUndefined(engine)

    def test_missing_volatility(self):
        engine = make_engine(volatility=None)
        self.assertAllUndefined(engine)

    def test_zero_volatility(self):
        engine = make_engine(volatility=0.0)
        self.assertAllUndefined(engine)

    def test_price_arriving_later_is_picked_up(self):
        engine = make_engine(spot=None)
        self.assertIsNone(engine.delta())

        engine.stock.price = 100.0
        self.assertTrue(0.300 <= engine.delta() <= 0.600)

    def test_time_decreases_as_clock_advances(self):
        engine = make_engine(t=0.5)
        now = [NOW]
        engine.clock = lambda: now[0]
        first = engine.time_to_expiry()
        now[0] = NOW + timedelta(days=30)
        self.assertLess(engine.time_to_expiry(), first)


class TestNearExpiry(unittest.TestCase):
    def test_intrinsic_value_inside_one_day(self):
        t = 0.5 / 365
        self.assertEqual(make_engine(OptionType.CALL, spot=105.0, t=t).value(), 5.0)
        self.assertEqual(make_engine(OptionType.PUT, spot=105.0, t=t).value(), 0.0)
        self.assertEqual(make_engine(OptionType.CALL, spot=95.5, t=t).value(), 0.0)
        self.assertEqual(make_engine(OptionType.PUT, spot=95.5, t=t).value(), 4.5)

    def test_intrinsic_value_is_not_discounted(self):
        engine = make_engine(OptionType.PUT, spot=90.0, rate=0.5, t=0.9 / 365)
        self.assertEqual(engine.value(), 10.0)

    def test_closed_form_from_one_day(self):
        engine = make_engine(OptionType.CALL, spot=105.0, volatility=0.5, t=2 / 365)
        self.assertGreater(engine.value(), 5.0)


class TestValidation(unittest.TestCase):
    def test_negative_volatility_rejected(self):
        with self.assertRaises(ValueError):
            make_engine(volatility=-0.1)
        engine = make_engine()
        with self.assertRaises(ValueError):
            engine.set_deviation(-0.2)
        self.assertEqual(engine.deviation, 0.1)

    def test_setters(self):
        engine = make_engine()
        engine.set_risk_free(0.01)
        engine.set_deviation(0.4)
        engine.set_option(NOW + years(1.0), 90.0, "PUT")
        self.assertEqual(engine.risk_free, 0.01)
        self.assertEqual(engine.deviation, 0.4)
        self.assertEqual(engine.option.option_type, OptionType.PUT)
        self.assertEqual(engine.option.strike_price, 90.0)
        self.assertIs(engine.option.underlying_asset, engine.stock)
        self.assertTrue(-1 <= engine.delta() <= 0)


class TestPureFunctions(unittest.TestCase):
    def test_d1_d2_from_snapshot(self):
        inputs = PricingInputs(spot=100.0, strike=100.0, rate=0.05, volatility=0.2, time=1.0, sign=1)
        # d1 = (0 + 0.07) / 0.2
        self.assertAlmostEqual(d1(inputs), 0.35, places=12)
        self.assertAlmostEqual(d2(inputs), 0.15, places=12)

    def test_non_positive_spot_has_no_d1(self):
        inputs = PricingInputs(spot=0.0, strike=100.0, rate=0.05, volatility=0.2, time=1.0, sign=1)
        self.assertIsNone(d1(inputs))


class TestRounding(unittest.TestCase):
    def test_three_places(self):
        self.assertEqual(round_half_away(0.30049), 0.300)
        self.assertEqual(round_half_away(0.30051), 0.301)

    def test_half_goes_away_from_zero(self):
        self.assertEqual(round_half_away(0.0005), 0.001)
        self.assertEqual(round_half_away(-0.0005), -0.001)
        self.assertEqual(round_half_away(-12.4815), -12.482)

    def test_none_passes_through(self):
        self.assertIsNone(round_half_away(None))

    def test_numpy_scalars(self):
        self.assertEqual(round_half_away(np.float64(1.23456)), 1.235)


if __name__ == '__main__':
    unittest.main()
