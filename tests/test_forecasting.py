"""Tests for forecasters, accuracy metrics and the inverse-error ensemble."""

import numpy as np
import pandas as pd
import pytest

from stock_analyzer.errors import DataValidationError, ModelFitError
from stock_analyzer.forecasting import (
    ArimaForecaster,
    EtsForecaster,
    Forecaster,
    _forward_forecast,
    evaluate_ticker,
    inverse_error_weights,
    mape,
    rmse,
)


class _BiasedForecaster(Forecaster):
    """Forecasts the last training value plus a fixed bias."""

    bias = 0.0

    def fit(self, series):
        self._last = float(series.iloc[-1])
        return self

    def forecast(self, horizon):
        return np.full(horizon, self._last + self.bias)


class _PlusOne(_BiasedForecaster):
    name = "plus_one"
    bias = 1.0


class _MinusOne(_BiasedForecaster):
    name = "minus_one"
    bias = -1.0


class _PlusThree(_BiasedForecaster):
    name = "plus_three"
    bias = 3.0


class _Broken(Forecaster):
    name = "broken"

    def fit(self, series):
        raise ModelFitError("does not converge")

    def forecast(self, horizon):
        raise AssertionError("unreachable")


def _flat_prices(n_days: int = 120, level: float = 100.0) -> pd.Series:
    return pd.Series(level, index=pd.bdate_range("2023-01-02", periods=n_days))


def _random_walk(n_days: int = 200, seed: int = 42) -> pd.Series:
    rng = np.random.default_rng(seed)
    prices = 100 * np.exp(np.cumsum(rng.normal(0.0005, 0.01, n_days)))
    return pd.Series(prices, index=pd.bdate_range("2023-01-02", periods=n_days))


def test_mape_and_rmse():
    assert abs(mape([100, 200], [110, 180]) - 10.0) < 1e-12
    assert abs(rmse([100, 200], [110, 180]) - np.sqrt(250)) < 1e-12


def test_mape_rejects_zero_actuals():
    with pytest.raises(ValueError):
        mape([0.0, 1.0], [0.5, 1.0])


def test_inverse_error_weights_sum_to_one():
    w = inverse_error_weights({"a": 2.0, "b": 6.0})
    assert abs(w["a"] - 0.75) < 1e-12
    assert abs(w["b"] - 0.25) < 1e-12
    assert abs(w["a"] + w["b"] - 1.0) < 1e-12
    assert all(0.0 <= v <= 1.0 for v in w.values())


def test_inverse_error_weights_favour_lower_error():
    w = inverse_error_weights({"a": 1.3, "b": 4.2})
    assert w["a"] > w["b"]


def test_zero_error_takes_all_weight():
    w = inverse_error_weights({"a": 0.0, "b": 3.0})
    assert w == {"a": 1.0, "b": 0.0}


def test_invalid_errors_rejected():
    with pytest.raises(ValueError):
        inverse_error_weights({"a": -1.0, "b": 2.0})
    with pytest.raises(ValueError):
        inverse_error_weights({"a": float("nan"), "b": 2.0})
    with pytest.raises(ValueError):
        inverse_error_weights({})


def test_ensemble_selected_when_it_beats_best_model():
    evaluation = evaluate_ticker(
        "AAA", _flat_prices(), holdout=20, horizon=5,
        models=[_PlusOne, _MinusOne], return_model=None,
    )
    assert evaluation.selected == "ensemble"
    assert evaluation.uses_ensemble
    assert abs(evaluation.ensemble_weights["plus_one"] - 0.5) < 1e-12
    assert evaluation.ensemble_score.mape < 1e-9
    np.testing.assert_allclose(evaluation.forecast, np.full(5, 100.0))


def test_best_single_model_kept_when_ensemble_is_worse():
    evaluation = evaluate_ticker(
        "AAA", _flat_prices(), holdout=20, horizon=5,
        models=[_PlusOne, _PlusThree], return_model=None,
    )
    assert evaluation.selected == "plus_one"
    assert evaluation.ensemble_score.mape > evaluation.scores["plus_one"].mape
    np.testing.assert_allclose(evaluation.forecast, np.full(5, 101.0))


def test_failed_model_dropped():
    evaluation = evaluate_ticker(
        "AAA", _flat_prices(), holdout=20, horizon=5,
        models=[_Broken, _PlusOne], return_model=None,
    )
    assert evaluation.selected == "plus_one"
    assert evaluation.ensemble_weights is None
    assert "broken" in evaluation.errors


def test_all_models_failing_raises():
    with pytest.raises(ModelFitError):
        evaluate_ticker(
            "AAA", _flat_prices(), holdout=20, models=[_Broken], return_model=None,
        )


def test_short_series_rejected():
    with pytest.raises(DataValidationError):
        evaluate_ticker("AAA", _flat_prices(n_days=30), holdout=60, return_model=None)


def test_ets_forecast_length():
    model = EtsForecaster().fit(_random_walk())
    fc = model.forecast(10)
    assert fc.shape == (10,)
    assert np.all(np.isfinite(fc))


def test_arima_selects_order_from_grid():
    rng = np.random.default_rng(7)
    returns = pd.Series(rng.normal(0, 0.01, 300))
    model = ArimaForecaster(p_values=(0, 1), d_values=(0,), q_values=(0, 1)).fit(returns)
    assert model.order in {(0, 0, 0), (0, 0, 1), (1, 0, 0), (1, 0, 1)}
    assert np.isfinite(model.aic)
    fc = model.forecast(20)
    assert fc.shape == (20,)
    assert np.all(np.abs(fc) < 0.01)


def test_arima_return_forecast_recorded():
    prices = _random_walk()
    returns = np.log(prices).diff().dropna()
    evaluation = evaluate_ticker(
        "AAA", prices, returns, holdout=20, horizon=20,
        models=[_PlusOne, _MinusOne],
        return_model=lambda: ArimaForecaster(p_values=(0, 1), d_values=(0,), q_values=(0,)),
    )
    assert evaluation.arima_order is not None
    assert evaluation.arima_return_forecast.shape == (20,)


def test_prophet_forecaster_runs():
    pytest.importorskip("prophet")
    from stock_analyzer.forecasting import ProphetForecaster

    fc = ProphetForecaster().fit(_random_walk(n_days=150)).forecast(5)
    assert fc.shape == (5,)
    assert np.all(np.isfinite(fc))


def test_ensemble_forward_forecast_needs_weights():
    factories = {"plus_one": _PlusOne, "minus_one": _MinusOne}
    with pytest.raises(ValueError):
        _forward_forecast(_flat_prices(), 5, "ensemble", None, factories)


def test_ensemble_forward_forecast_blends_models():
    factories = {"plus_one": _PlusOne, "minus_one": _MinusOne}
    weights = {"plus_one": 0.5, "minus_one": 0.5}
    forecast = _forward_forecast(_flat_prices(), 5, "ensemble", weights, factories)
    np.testing.assert_allclose(forecast, 100.0)
