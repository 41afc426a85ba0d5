"""Tests for GARCH(1,1)-t fitting and Student-t VaR / ES."""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from stock_analyzer import garch
from stock_analyzer.errors import DataValidationError, InvalidDistributionParameterError
from stock_analyzer.garch import (
    GarchFit,
    RiskEstimate,
    estimate_all,
    estimate_risk,
    fit_garch,
    student_t_var_es,
)


def _simulate_garch_t(
    n: int = 1500,
    omega: float = 2e-6,
    alpha: float = 0.08,
    beta: float = 0.9,
    nu: float = 6.0,
    seed: int = 42,
) -> pd.Series:
    """Simulate zero-mean GARCH(1,1) returns with standardized Student-t shocks."""
    rng = np.random.default_rng(seed)
    shocks = rng.standard_t(nu, n) * np.sqrt((nu - 2) / nu)
    returns = np.empty(n)
    variance = omega / (1 - alpha - beta)
    for t in range(n):
        returns[t] = np.sqrt(variance) * shocks[t]
        variance = omega + alpha * returns[t] ** 2 + beta * variance
    return pd.Series(returns, index=pd.bdate_range("2018-01-01", periods=n))


def test_var_es_non_negative():
    var, es = student_t_var_es(0.02, 5.0)
    assert var >= 0
    assert es >= 0


def test_var_matches_formula():
    sigma, nu = 0.015, 4.5
    q = stats.t.ppf(0.05, df=nu)
    expected_var = -sigma * np.sqrt((nu - 2) / nu) * q
    expected_es = sigma * np.sqrt((nu - 2) / nu) * stats.t.pdf(q, df=nu) / (0.05 * (1 - 2 / nu))
    var, es = student_t_var_es(sigma, nu)
    assert abs(var - expected_var) < 1e-12
    assert abs(es - expected_es) < 1e-12


def test_var_scales_with_sigma():
    var1, es1 = student_t_var_es(0.01, 8.0)
    var2, es2 = student_t_var_es(0.02, 8.0)
    assert abs(var2 - 2 * var1) < 1e-12
    assert abs(es2 - 2 * es1) < 1e-12


def test_var_grows_with_confidence():
    var_95, _ = student_t_var_es(0.01, 6.0, alpha=0.05)
    var_99, _ = student_t_var_es(0.01, 6.0, alpha=0.01)
    assert var_99 > var_95


def test_zero_sigma_gives_zero_risk():
    assert student_t_var_es(0.0, 5.0) == (0.0, 0.0)


@pytest.mark.parametrize("nu", [2.0, 1.5, 0.5, float("nan")])
def test_nu_at_most_two_raises(nu):
    with pytest.raises(InvalidDistributionParameterError):
        student_t_var_es(0.01, nu)


def test_negative_sigma_raises():
    with pytest.raises(ValueError):
        student_t_var_es(-0.01, 5.0)


def test_fit_garch_recovers_reasonable_parameters():
    fit = fit_garch(_simulate_garch_t())
    assert isinstance(fit, GarchFit)
    assert 0 < fit.sigma < 0.1
    assert fit.nu > 2
    assert fit.alpha + fit.beta < 1.0
    assert fit.n_observations == 1500


def test_fit_garch_needs_enough_data():
    with pytest.raises(DataValidationError):
        fit_garch(_simulate_garch_t(n=20))


def test_estimate_risk_returns_non_negative_measures():
    estimate = estimate_risk("AAA", _simulate_garch_t())
    assert isinstance(estimate, RiskEstimate)
    assert estimate.value_at_risk > 0
    assert estimate.expected_shortfall > 0
    assert abs(estimate.confidence_level - 0.95) < 1e-12


def test_fitted_nu_at_most_two_raises(monkeypatch):
    fake = GarchFit(
        sigma=0.01, nu=1.9, omega=0.01, alpha=0.1, beta=0.8,
        n_observations=500, log_likelihood=0.0,
    )
    monkeypatch.setattr(garch, "fit_garch", lambda returns: fake)
    with pytest.raises(InvalidDistributionParameterError):
        estimate_risk("AAA", _simulate_garch_t(n=100))


def test_estimate_all_isolates_failures():
    good = _simulate_garch_t()
    short = good.copy()
    short.iloc[20:] = np.nan
    outcomes = estimate_all(pd.DataFrame({"GOOD": good, "SHORT": short}))

    assert outcomes["GOOD"].ok
    assert not outcomes["SHORT"].ok
    assert isinstance(outcomes["SHORT"].error, DataValidationError)


def test_estimate_all_threaded_matches_sequential():
    frame = pd.DataFrame({
        "A": _simulate_garch_t(seed=1),
        "B": _simulate_garch_t(seed=2),
    })
    sequential = estimate_all(frame)
    threaded = estimate_all(frame, max_workers=2)
    for ticker in ("A", "B"):
        seq, thr = sequential[ticker].unwrap(), threaded[ticker].unwrap()
        assert seq.sigma == pytest.approx(thr.sigma)
        assert seq.nu == pytest.approx(thr.nu)
