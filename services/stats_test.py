import math

import pytest

from services.stats import (
    ApproximateNormal,
    get_distribution,
    required_sample_size,
    two_proportion_p_value,
    wald_interval,
)

normal = ApproximateNormal()


@pytest.mark.parametrize("x, expected", [(0.0, 0.5), (1.0, 0.841345), (1.96, 0.975002), (-1.96, 0.024998)])
def test_cdf(x, expected):
    assert normal.cdf(x) == pytest.approx(expected, abs=1e-4)


@pytest.mark.parametrize("p, expected", [(0.5, 0.0), (0.8, 0.841621), (0.975, 1.959964)])
def test_ppf(p, expected):
    assert normal.ppf(p) == pytest.approx(expected, abs=1e-2)


def test_wald_interval():
    lower, upper = wald_interval(100, 1000)
    assert lower == pytest.approx(8.14, abs=0.01)
    assert upper == pytest.approx(11.86, abs=0.01)


def test_wald_interval_edges():
    assert wald_interval(0, 0) == (0.0, 0.0)
    # 1 in 1000: the margin is larger than the rate
    assert wald_interval(1, 1000)[0] == 0.0


def test_p_value_significant():
    p = two_proportion_p_value(100, 1000, 150, 1000, normal)
    assert p < 0.05
    assert p == pytest.approx(0.00065, abs=5e-4)


def test_p_value_not_significant():
    p = two_proportion_p_value(10, 100, 11, 100, normal)
    assert p > 0.5


def test_p_value_undefined_cases():
    assert two_proportion_p_value(0, 0, 5, 10, normal) == 1.0
    assert two_proportion_p_value(0, 100, 0, 100, normal) == 1.0
    assert two_proportion_p_value(100, 100, 100, 100, normal) == 1.0


def test_p_value_equal_rates_is_bounded():
    p = two_proportion_p_value(50, 500, 50, 500, normal)
    assert 0.0 <= p <= 1.0
    assert p == pytest.approx(1.0, abs=1e-6)


def test_required_sample_size():
    n = required_sample_size(0.10, 0.20, normal)
    # textbook answer with exact quantiles is 3843
    assert 3750 < n < 3950


def test_required_sample_size_rejects_bad_input():
    with pytest.raises(ValueError):
        required_sample_size(0.0, 0.2, normal)
    with pytest.raises(ValueError):
        required_sample_size(0.1, 0.0, normal)


@pytest.mark.parametrize("baseline, effect", [(0.9, 0.5), (0.5, 1.0), (0.1, -1.0), (0.1, -1.5)])
def test_required_sample_size_rejects_treatment_rate_outside_unit_interval(baseline, effect):
    with pytest.raises(ValueError):
        required_sample_size(baseline, effect, normal)


def test_get_distribution():
    assert isinstance(get_distribution("approximate"), ApproximateNormal)
    with pytest.raises(ValueError):
        get_distribution("bogus")


def test_scipy_backend_agrees():
    pytest.importorskip("scipy")
    exact = get_distribution("scipy")
    for x in (0.3, 1.0, 1.96, 3.2):
        assert normal.cdf(x) == pytest.approx(exact.cdf(x), abs=1e-4)
    assert math.isclose(
        two_proportion_p_value(100, 1000, 150, 1000, normal),
        two_proportion_p_value(100, 1000, 150, 1000, exact),
        abs_tol=1e-4,
    )
