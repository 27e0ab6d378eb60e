"""
Statistics helpers for two-proportion experiments.

The standard normal distribution is isolated behind ``NormalDistribution`` so
the approximation used by default can be swapped for an exact implementation
without touching the results or assignment code:

- ``ApproximateNormal`` evaluates the CDF with the Abramowitz-Stegun 7.1.26
  erf approximation (absolute error below 1.5e-7) and the quantile with
  Winitzki's closed-form inverse erf. It is adequate for decision support,
  not for regulatory-grade statistics.
- ``ScipyNormal`` delegates to ``scipy.stats.norm`` (install the ``stats``
  extra).

Known limitation: the Wald interval is a poor approximation for small
samples and for conversion rates close to 0 or 1.
"""
import logging
import math
from typing import Protocol

logger = logging.getLogger(__name__)

Z_95 = 1.96


class NormalDistribution(Protocol):
    def cdf(self, x: float) -> float: ...

    def ppf(self, p: float) -> float: ...


class ApproximateNormal:
    # Abramowitz & Stegun 7.1.26
    _A1 = 0.254829592
    _A2 = -0.284496736
    _A3 = 1.421413741
    _A4 = -1.453152027
    _A5 = 1.061405429
    _P = 0.3275911
    # Winitzki
    _WINITZKI_A = 0.147

    def erf(self, x: float) -> float:
        sign = 1.0 if x >= 0 else -1.0
        x = abs(x)
        t = 1.0 / (1.0 + self._P * x)
        poly = ((((self._A5 * t + self._A4) * t + self._A3) * t + self._A2) * t + self._A1) * t
        return sign * (1.0 - poly * math.exp(-x * x))

    def erfinv(self, y: float) -> float:
        a = self._WINITZKI_A
        ln_term = math.log(1.0 - y * y)
        first = 2.0 / (math.pi * a) + ln_term / 2.0
        second = ln_term / a
        return math.copysign(math.sqrt(math.sqrt(first * first - second) - first), y)

    def cdf(self, x: float) -> float:
        return 0.5 * (1.0 + self.erf(x / math.sqrt(2.0)))

    def ppf(self, p: float) -> float:
        if not 0.0 < p < 1.0:
            raise ValueError(f"probability must be in (0, 1), got {p}")
        if p == 0.5:
            return 0.0
        return math.sqrt(2.0) * self.erfinv(2.0 * p - 1.0)

    def __repr__(self):
        return "<ApproximateNormal>"


class ScipyNormal:
    def __init__(self):
        try:
            from scipy.stats import norm
        except ImportError:
            logger.error("scipy not found. Install it with `pip install .[stats]`.")
            raise
        self._norm = norm

    def cdf(self, x: float) -> float:
        return float(self._norm.cdf(x))

    def ppf(self, p: float) -> float:
        if not 0.0 < p < 1.0:
            raise ValueError(f"probability must be in (0, 1), got {p}")
        return float(self._norm.ppf(p))

    def __repr__(self):
        return "<ScipyNormal>"


_BACKENDS = {
    "approximate": ApproximateNormal,
    "scipy": ScipyNormal,
}


def get_distribution(name: str = "approximate") -> NormalDistribution:
    try:
        backend = _BACKENDS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown stats backend '{name}'. Choose from: {', '.join(_BACKENDS)}") from None
    return backend()


def wald_interval(conversions: int, visitors: int, z: float = Z_95) -> tuple[float, float]:
    """95% Wald interval for a conversion rate, in percentage points, lower bound clipped at 0."""
    if visitors <= 0:
        return (0.0, 0.0)
    p = conversions / visitors
    margin = z * math.sqrt(p * (1 - p) / visitors)
    return (max(0.0, p - margin) * 100, (p + margin) * 100)


def two_proportion_p_value(
    conversions_a: int,
    visitors_a: int,
    conversions_b: int,
    visitors_b: int,
    distribution: NormalDistribution,
) -> float:
    """
    Two-sided p-value of the pooled two-proportion z-test.

    Returns 1.0 whenever the test is undefined (an empty group, or a pooled
    rate of exactly 0 or 1 which makes the standard error zero).
    """
    if visitors_a <= 0 or visitors_b <= 0:
        return 1.0

    rate_a = conversions_a / visitors_a
    rate_b = conversions_b / visitors_b
    pooled = (conversions_a + conversions_b) / (visitors_a + visitors_b)
    se = math.sqrt(pooled * (1 - pooled) * (1 / visitors_a + 1 / visitors_b))
    if se == 0:
        return 1.0

    z = abs(rate_a - rate_b) / se
    p_value = 2 * (1 - distribution.cdf(z))
    # the erf approximation can overshoot by ~1e-9 around z = 0
    return min(1.0, max(0.0, p_value))


def required_sample_size(
    baseline_rate: float,
    minimum_detectable_effect: float,
    distribution: NormalDistribution,
    alpha: float = 0.05,
    power: float = 0.8,
) -> int:
    """
    Visitors needed per variant to detect a relative lift of
    ``minimum_detectable_effect`` over ``baseline_rate`` (both as fractions).
    """
    if not 0 < baseline_rate < 1:
        raise ValueError("baseline_rate must be in (0, 1)")
    if minimum_detectable_effect == 0:
        raise ValueError("minimum_detectable_effect must be non-zero")

    z_alpha = distribution.ppf(1 - alpha / 2)
    z_beta = distribution.ppf(power)

    treatment_rate = baseline_rate * (1 + minimum_detectable_effect)
    if not 0 < treatment_rate < 1:
        raise ValueError(f"treatment rate {treatment_rate:.4f} must be in (0, 1)")
    pooled = (baseline_rate + treatment_rate) / 2

    numerator = (z_alpha + z_beta) ** 2 * 2 * pooled * (1 - pooled)
    denominator = (treatment_rate - baseline_rate) ** 2
    return math.ceil(numerator / denominator)
