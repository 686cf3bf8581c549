import unittest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import matplotlib
matplotlib.use("Agg")

import numpy as np

from option_pricing.financial_instruments import Option, OptionType, Stock
from option_pricing.models import BlackScholes
from option_pricing.visualization import GREEK_KEYS, Visualizer

NOW = datetime(2024, 1, 15, 12, 0, 0)


class TestGreekProfile(unittest.TestCase):
    def setUp(self):
        self.stock = Stock("NVDA", price=100.0)
        option = Option(strike_price=100.0, expiry_date=NOW + timedelta(days=30),
                        option_type=OptionType.CALL, underlying_asset=self.stock)
        self.engine = BlackScholes(self.stock, option, 0.4, 0.05, clock=lambda: NOW)

    def test_profile_over_spot_range(self):
        spot_range = np.linspace(80, 120, 21)
        profile = Visualizer.greek_profile(self.engine, spot_range)

        self.assertEqual(set(profile), set(GREEK_KEYS))
        for values in profile.values():
            self.assertEqual(values.shape, (21,))
        # Call delta rises with spot
        self.assertTrue(np.all(np.diff(profile['delta']) >= 0))
        self.assertEqual(self.stock.price, 100.0)

    def test_undefined_greeks_become_nan(self):
        self.engine.set_risk_free(None)
        profile = Visualizer.greek_profile(self.engine, np.array([90.0, 110.0]))
        self.assertTrue(np.all(np.isnan(profile['gamma'])))

    def test_plot_to_pdf(self):
        spot_range = np.linspace(80, 120, 11)
        profile = Visualizer.greek_profile(self.engine, spot_range)
        pdf = MagicMock()
        fig = Visualizer.plot_greeks(spot_range, profile, title="NVDA call", pdf=pdf)
        pdf.savefig.assert_called_once_with(fig)


if __name__ == '__main__':
    unittest.main()
