"""Tests for the Monte Carlo simulation module."""

import numpy as np
import pandas as pd
import pytest

from stock_analyzer.errors import DataValidationError
from stock_analyzer.monte_carlo import MonteCarloEngine, SimulationResult
from stock_analyzer.weights import WeightVector, equal_weights


def _make_cov(n: int = 5, variance: float = 1e-4) -> pd.DataFrame:
    tickers = [f"T{i}" for i in range(n)]
    return pd.DataFrame(np.eye(n) * variance, index=tickers, columns=tickers)


def test_single_day_std_matches_portfolio_variance():
    cov = _make_cov(variance=1e-4)
    weights = equal_weights(list(cov.columns))
    engine = MonteCarloEngine(cov, n_simulations=20_000, seed=42)
    result = engine.simulate(weights, horizon=1)

    w = weights.as_array()
    expected_std = np.sqrt(w @ cov.to_numpy() @ w)
    assert isinstance(result, SimulationResult)
    assert abs(result.std - expected_std) / expected_std < 0.05
    assert abs(result.mean) < 5e-4


def test_two_uncorrelated_assets_halve_variance():
    cov = _make_cov(n=2, variance=1e-4)
    weights = equal_weights(list(cov.columns))
    result = MonteCarloEngine(cov, n_simulations=20_000, seed=0).simulate(weights, 1)
    assert abs(result.std - np.sqrt(0.5e-4)) / np.sqrt(0.5e-4) < 0.05


def test_monthly_horizon_is_centred_near_zero():
    cov = _make_cov(variance=0.0004)
    engine = MonteCarloEngine(cov, n_simulations=5000, seed=7)
    result = engine.simulate(equal_weights(list(cov.columns)), horizon=21)

    assert abs(result.mean) < 0.01
    assert result.p5 < 0 < result.p95
    assert abs(result.p5 + result.p95) < 0.02
    assert 0 < result.prob_loss < 1


def test_repeated_mode_inflates_dispersion():
    cov = _make_cov(variance=0.0004)
    weights = equal_weights(list(cov.columns))
    independent = MonteCarloEngine(cov, n_simulations=5000, seed=1).simulate(weights, 21)
    repeated = MonteCarloEngine(cov, n_simulations=5000, seed=1, mode="repeated").simulate(
        weights, 21
    )
    assert repeated.std > 3 * independent.std
    assert repeated.mode == "repeated"


def test_run_covers_every_strategy_and_horizon():
    cov = _make_cov()
    tickers = list(cov.columns)
    vectors = {
        "equal_weight": equal_weights(tickers),
        "tilted": WeightVector("tilted", pd.Series([0.4, 0.3, 0.1, 0.1, 0.1], index=tickers)),
    }
    results = MonteCarloEngine(cov, n_simulations=500, seed=3).run(vectors, (1, 5, 21))

    assert set(results) == {(s, h) for s in vectors for h in (1, 5, 21)}
    assert results[("tilted", 5)].n_simulations == 500


def test_same_seed_reproduces_results():
    cov = _make_cov()
    vectors = {"equal_weight": equal_weights(list(cov.columns))}
    first = MonteCarloEngine(cov, n_simulations=1000, seed=11).run(vectors, (1, 21))
    second = MonteCarloEngine(cov, n_simulations=1000, seed=11).run(vectors, (1, 21))
    assert first == second


def test_non_psd_covariance_raises():
    tickers = ["A", "B"]
    cov = pd.DataFrame([[1.0, 2.0], [2.0, 1.0]], index=tickers, columns=tickers)
    with pytest.raises(DataValidationError):
        MonteCarloEngine(cov)


def test_missing_covariance_entries_raise():
    cov = _make_cov(2)
    cov.iloc[0, 1] = np.nan
    with pytest.raises(DataValidationError):
        MonteCarloEngine(cov)


def test_weights_must_cover_covariance_tickers():
    cov = _make_cov(3)
    weights = WeightVector("other", pd.Series([0.5, 0.5], index=["X", "Y"]))
    engine = MonteCarloEngine(cov, n_simulations=100, seed=0)
    with pytest.raises(DataValidationError):
        engine.simulate(weights, 1)


def test_singular_covariance_is_simulated():
    tickers = ["A", "B"]
    cov = pd.DataFrame([[1e-4, 1e-4], [1e-4, 1e-4]], index=tickers, columns=tickers)
    engine = MonteCarloEngine(cov, n_simulations=2000, seed=5)
    result = engine.simulate(equal_weights(tickers), 1)
    assert np.isfinite(result.std)
    assert abs(result.std - 0.01) / 0.01 < 0.1


def test_value_at_risk_is_negated_fifth_percentile():
    result = SimulationResult(
        strategy="s", horizon=1, n_simulations=10, mode="independent",
        mean=0.0, std=0.01, p5=-0.02, p95=0.02, prob_loss=0.5,
    )
    assert result.value_at_risk == pytest.approx(0.02)
    assert result.to_dict()["horizon_days"] == 1


def test_invalid_mode_raises():
    with pytest.raises(ValueError):
        MonteCarloEngine(_make_cov(), mode="weekly")
