from scipy.stats import norm


class NormalDist:
    """
    Standard normal density and distribution function.
    Thin wrapper over scipy so callers always get plain floats back.
    """

    @staticmethod
    def pdf(x: float) -> float:
        """N'(x) = exp(-x^2 / 2) / sqrt(2 * pi)"""
        return float(norm.pdf(x))

    @staticmethod
    def cdf(x: float) -> float:
        """
        N(x), evaluated through scipy's ndtr (erf/erfc based), so it stays
        accurate in both tails and satisfies N(-x) = 1 - N(x).
        """
        return float(norm.cdf(x))
