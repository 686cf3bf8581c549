import math
import unittest

import numpy as np

from option_pricing.normal_distribution import NormalDist


class TestNormalDist(unittest.TestCase):
    def test_pdf_known_values(self):
        self.assertAlmostEqual(NormalDist.pdf(0), 1 / math.sqrt(2 * math.pi), places=12)
        self.assertAlmostEqual(NormalDist.pdf(1), math.exp(-0.5) / math.sqrt(2 * math.pi), places=12)
        self.assertEqual(NormalDist.pdf(1.3), NormalDist.pdf(-1.3))

    def test_cdf_known_values(self):
        self.assertAlmostEqual(NormalDist.cdf(0), 0.5, places=12)
        self.assertAlmostEqual(NormalDist.cdf(1.96), 0.9750021, places=6)
        self.assertAlmostEqual(NormalDist.cdf(-1), 0.1586553, places=6)
        self.assertAlmostEqual(NormalDist.cdf(0.35), 0.6368307, places=6)

    def test_cdf_symmetry(self):
        for x in np.linspace(-10, 10, 201):
            self.assertAlmostEqual(NormalDist.cdf(-x) + NormalDist.cdf(x), 1.0, places=12)

    def test_cdf_monotonic_and_bounded(self):
        values = [NormalDist.cdf(x) for x in np.linspace(-12, 12, 2001)]
        self.assertTrue(all(0.0 <= v <= 1.0 for v in values))
        self.assertTrue(all(a <= b for a, b in zip(values, values[1:])))

    def test_returns_plain_floats(self):
        self.assertIs(type(NormalDist.cdf(0.3)), float)
        self.assertIs(type(NormalDist.pdf(0.3)), float)


if __name__ == '__main__':
    unittest.main()
