"""Univariate forecasters and the inverse-error forecast ensemble."""

from __future__ import annotations

import itertools
import logging
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Sequence

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.arima.model import ARIMA
from statsmodels.tsa.holtwinters import ExponentialSmoothing

from stock_analyzer.errors import DataValidationError, ModelFitError

logger = logging.getLogger(__name__)

MIN_TRAINING_OBSERVATIONS = 10


class Forecaster(ABC):
    """Narrow wrapper around a third-party time-series model."""

    name: str = "forecaster"

    @abstractmethod
    def fit(self, series: pd.Series) -> Forecaster:
        """Fit on a date-indexed series and return self."""

    @abstractmethod
    def forecast(self, horizon: int) -> np.ndarray:
        """Point forecast for the next ``horizon`` steps."""


class ArimaForecaster(Forecaster):
    """ARIMA with order chosen by AIC over a small (p, d, q) grid."""

    name = "arima"

    def __init__(
        self,
        p_values: Sequence[int] = (0, 1, 2),
        d_values: Sequence[int] = (0, 1),
        q_values: Sequence[int] = (0, 1, 2),
    ) -> None:
        self.p_values = p_values
        self.d_values = d_values
        self.q_values = q_values
        self.order: tuple[int, int, int] | None = None
        self.aic: float | None = None
        self._result = None

    def fit(self, series: pd.Series) -> ArimaForecaster:
        values = series.dropna().to_numpy(dtype=float)
        best_aic = np.inf

        for p, d, q in itertools.product(self.p_values, self.d_values, self.q_values):
            trend = "c" if d == 0 else "n"
            try:
                with warnings.catch_warnings():
                    warnings.simplefilter("ignore", ConvergenceWarning)
                    warnings.simplefilter("ignore", UserWarning)
                    result = ARIMA(values, order=(p, d, q), trend=trend).fit()
            except (ValueError, np.linalg.LinAlgError) as exc:
                logger.debug("ARIMA%s failed: %s", (p, d, q), exc)
                continue
            aic = float(result.aic)
            if np.isfinite(aic) and aic < best_aic:
                best_aic = aic
                self.order = (p, d, q)
                self._result = result

        if self._result is None:
            raise ModelFitError("no ARIMA candidate order could be fit")
        self.aic = best_aic
        logger.debug("Selected ARIMA%s (AIC=%.2f)", self.order, best_aic)
        return self

    def forecast(self, horizon: int) -> np.ndarray:
        if self._result is None:
            raise ModelFitError("ARIMA model has not been fit")
        return np.asarray(self._result.forecast(steps=horizon), dtype=float)


class EtsForecaster(Forecaster):
    """Holt exponential smoothing with an additive trend."""

    name = "ets"

    def __init__(self, trend: str | None = "add", damped_trend: bool = True) -> None:
        self.trend = trend
        self.damped_trend = damped_trend
        self._result = None

    def fit(self, series: pd.Series) -> EtsForecaster:
        values = series.dropna().to_numpy(dtype=float)
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", ConvergenceWarning)
                model = ExponentialSmoothing(
                    values,
                    trend=self.trend,
                    damped_trend=self.damped_trend if self.trend else False,
                    initialization_method="estimated",
                )
                self._result = model.fit()
        except (ValueError, np.linalg.LinAlgError) as exc:
            raise ModelFitError(f"ETS fit failed: {exc}") from exc
        return self

    def forecast(self, horizon: int) -> np.ndarray:
        if self._result is None:
            raise ModelFitError("ETS model has not been fit")
        return np.asarray(self._result.forecast(horizon), dtype=float)


class ProphetForecaster(Forecaster):
    """Prophet trend decomposition over business days."""

    name = "prophet"

    def __init__(
        self,
        changepoint_prior_scale: float = 0.05,
        weekly_seasonality: bool = True,
    ) -> None:
        self.changepoint_prior_scale = changepoint_prior_scale
        self.weekly_seasonality = weekly_seasonality
        self._model = None
        self._last_date: pd.Timestamp | None = None

    def fit(self, series: pd.Series) -> ProphetForecaster:
        from prophet import Prophet

        logging.getLogger("cmdstanpy").setLevel(logging.WARNING)
        series = series.dropna()
        df = pd.DataFrame({"ds": pd.to_datetime(series.index), "y": series.values})
        model = Prophet(
            changepoint_prior_scale=self.changepoint_prior_scale,
            daily_seasonality=False,
            weekly_seasonality=self.weekly_seasonality,
            yearly_seasonality=False,
        )
        try:
            model.fit(df)
        except RuntimeError as exc:
            raise ModelFitError(f"Prophet fit failed: {exc}") from exc
        self._model = model
        self._last_date = df["ds"].iloc[-1]
        return self

    def forecast(self, horizon: int) -> np.ndarray:
        if self._model is None or self._last_date is None:
            raise ModelFitError("Prophet model has not been fit")
        future = pd.DataFrame(
            {"ds": pd.bdate_range(self._last_date + pd.offsets.BDay(1), periods=horizon)}
        )
        return self._model.predict(future)["yhat"].to_numpy(dtype=float)


# ------------------------------------------------------------------
# Accuracy and weighting
# ------------------------------------------------------------------


def mape(actual: np.ndarray, predicted: np.ndarray) -> float:
    """Mean absolute percentage error, in percent."""
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    if np.any(actual == 0):
        raise ValueError("MAPE is undefined when an actual value is zero")
    return float(np.mean(np.abs((actual - predicted) / actual)) * 100)


def rmse(actual: np.ndarray, predicted: np.ndarray) -> float:
    """Root mean squared error."""
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    return float(np.sqrt(np.mean((actual - predicted) ** 2)))


def inverse_error_weights(errors: dict[str, float]) -> dict[str, float]:
    """
    Blend weights w_i = (1/e_i) / sum_j(1/e_j).

    A model with zero error takes all the weight (shared equally on ties).
    """
    if not errors:
        raise ValueError("no errors to weight")
    for name, err in errors.items():
        if not np.isfinite(err) or err < 0:
            raise ValueError(f"error for {name} must be finite and non-negative, got {err}")

    perfect = [name for name, err in errors.items() if err == 0]
    if perfect:
        return {name: (1.0 / len(perfect) if name in perfect else 0.0) for name in errors}

    inverse = {name: 1.0 / err for name, err in errors.items()}
    total = sum(inverse.values())
    return {name: inv / total for name, inv in inverse.items()}


# ------------------------------------------------------------------
# Per-ticker evaluation
# ------------------------------------------------------------------


@dataclass(frozen=True)
class ModelScore:
    mape: float
    rmse: float


@dataclass(frozen=True)
class ForecastEvaluation:
    """Holdout accuracy, ensemble decision and forward forecast for one ticker."""

    ticker: str
    scores: dict[str, ModelScore]
    ensemble_weights: dict[str, float] | None
    ensemble_score: ModelScore | None
    selected: str                      # model name, or "ensemble"
    forecast: np.ndarray               # forward price forecast of the selected choice
    arima_order: tuple[int, int, int] | None = None
    arima_return_forecast: np.ndarray | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def uses_ensemble(self) -> bool:
        return self.selected == "ensemble"

    def to_dict(self) -> dict:
        return {
            "scores": {
                name: {"MAPE": round(s.mape, 4), "RMSE": round(s.rmse, 4)}
                for name, s in self.scores.items()
            },
            "ensemble_weights": (
                {k: round(v, 4) for k, v in self.ensemble_weights.items()}
                if self.ensemble_weights is not None
                else None
            ),
            "ensemble": (
                {"MAPE": round(self.ensemble_score.mape, 4), "RMSE": round(self.ensemble_score.rmse, 4)}
                if self.ensemble_score is not None
                else None
            ),
            "selected": self.selected,
            "forecast": [round(float(v), 4) for v in self.forecast],
            "arima_order": list(self.arima_order) if self.arima_order else None,
            "arima_return_forecast": (
                [round(float(v), 6) for v in self.arima_return_forecast]
                if self.arima_return_forecast is not None
                else None
            ),
            "errors": self.errors,
        }


def default_price_models() -> list[Callable[[], Forecaster]]:
    """Primary and secondary price forecasters."""
    return [EtsForecaster, ProphetForecaster]


def evaluate_ticker(
    ticker: str,
    close: pd.Series,
    log_returns: pd.Series | None = None,
    holdout: int = 60,
    horizon: int = 20,
    models: Sequence[Callable[[], Forecaster]] | None = None,
    return_model: Callable[[], Forecaster] | None = ArimaForecaster,
) -> ForecastEvaluation:
    """
    Score price forecasters on a holdout and pick single model or ensemble.

    The inverse-MAPE ensemble is selected only when its holdout MAPE is
    strictly lower than the best single model's.

    Args:
        ticker: Ticker symbol, used for logging.
        close: Date-indexed closing prices.
        log_returns: Date-indexed log returns for the ARIMA return forecast.
        holdout: Number of trailing prices held out for scoring.
        horizon: Forward forecast length in trading days.
        models: Factories for the price forecasters (primary first).
        return_model: Factory for the return forecaster, or None to skip it.
    """
    close = close.dropna()
    if len(close) < holdout + MIN_TRAINING_OBSERVATIONS:
        raise DataValidationError(
            f"{ticker}: {len(close)} prices is too few for a {holdout}-day holdout"
        )
    factories = list(models) if models is not None else default_price_models()

    train, test = close.iloc[:-holdout], close.iloc[-holdout:]
    actual = test.to_numpy(dtype=float)

    predictions: dict[str, np.ndarray] = {}
    scores: dict[str, ModelScore] = {}
    errors: dict[str, str] = {}
    fitted_factories: dict[str, Callable[[], Forecaster]] = {}

    for factory in factories:
        model = factory()
        try:
            pred = model.fit(train).forecast(holdout)
        except ModelFitError as exc:
            logger.warning("%s: %s forecaster failed: %s", ticker, model.name, exc)
            errors[model.name] = str(exc)
            continue
        predictions[model.name] = pred
        scores[model.name] = ModelScore(mape=mape(actual, pred), rmse=rmse(actual, pred))
        fitted_factories[model.name] = factory

    if not scores:
        raise ModelFitError(f"{ticker}: every price forecaster failed")

    best = min(scores, key=lambda name: scores[name].mape)
    weights = None
    ensemble_score = None
    selected = best

    if len(scores) >= 2:
        weights = inverse_error_weights({name: s.mape for name, s in scores.items()})
        blended = sum(weights[name] * predictions[name] for name in weights)
        ensemble_score = ModelScore(mape=mape(actual, blended), rmse=rmse(actual, blended))
        if ensemble_score.mape < scores[best].mape:
            selected = "ensemble"

    logger.info(
        "%s: %s (%s)",
        ticker,
        selected,
        ", ".join(f"{n} MAPE={s.mape:.2f}%" for n, s in scores.items()),
    )

    forecast = _forward_forecast(close, horizon, selected, weights, fitted_factories)

    arima_order = None
    arima_forecast = None
    if return_model is not None and log_returns is not None:
        arima = return_model()
        try:
            arima.fit(log_returns.dropna())
            arima_forecast = arima.forecast(horizon)
            arima_order = getattr(arima, "order", None)
        except ModelFitError as exc:
            logger.warning("%s: return forecaster failed: %s", ticker, exc)
            errors[arima.name] = str(exc)

    return ForecastEvaluation(
        ticker=ticker,
        scores=scores,
        ensemble_weights=weights,
        ensemble_score=ensemble_score,
        selected=selected,
        forecast=forecast,
        arima_order=arima_order,
        arima_return_forecast=arima_forecast,
        errors=errors,
    )


def _forward_forecast(
    close: pd.Series,
    horizon: int,
    selected: str,
    weights: dict[str, float] | None,
    factories: dict[str, Callable[[], Forecaster]],
) -> np.ndarray:
    """Refit the selected model(s) on the full series and forecast forward."""
    if selected != "ensemble":
        return factories[selected]().fit(close).forecast(horizon)
    if weights is None:
        raise ValueError("ensemble selected without ensemble weights")
    return sum(
        weights[name] * factories[name]().fit(close).forecast(horizon)
        for name in weights
    )
