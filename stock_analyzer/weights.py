"""Portfolio weight schemes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import cvxpy as cp
import numpy as np
import pandas as pd

from stock_analyzer.errors import (
    AnalyzerError,
    DataValidationError,
    DegenerateWeightError,
    InfeasibleConstraintError,
    ModelFitError,
)

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-9

EQUAL = "equal_weight"
INVERSE_VOLATILITY = "inverse_volatility"
RETURN_PROPORTIONAL = "return_proportional"
MEAN_VARIANCE = "mean_variance"
STRATEGIES = (EQUAL, INVERSE_VOLATILITY, RETURN_PROPORTIONAL, MEAN_VARIANCE)


@dataclass(frozen=True)
class WeightVector:
    """Ticker -> weight mapping for one strategy; weights sum to 1."""

    strategy: str
    weights: pd.Series

    def __post_init__(self) -> None:
        values = self.weights.to_numpy(dtype=float)
        if values.size == 0:
            raise ValueError(f"{self.strategy}: empty weight vector")
        if not np.all(np.isfinite(values)):
            raise ValueError(f"{self.strategy}: non-finite weights")
        if abs(values.sum() - 1.0) >= WEIGHT_TOLERANCE:
            raise ValueError(f"{self.strategy}: weights sum to {values.sum()}, not 1")

    @property
    def tickers(self) -> list[str]:
        return list(self.weights.index)

    def as_array(self, tickers: list[str] | None = None) -> np.ndarray:
        """Weights aligned with ``tickers`` (default: own order)."""
        if tickers is None:
            return self.weights.to_numpy(dtype=float)
        return self.weights.reindex(tickers).to_numpy(dtype=float)

    def to_dict(self) -> dict[str, float]:
        return {t: round(float(w), 6) for t, w in self.weights.items()}


@dataclass(frozen=True)
class WeightSchemes:
    """Weight vectors that were built, and the strategies that failed."""

    vectors: dict[str, WeightVector]
    failures: dict[str, AnalyzerError] = field(default_factory=dict)


# ------------------------------------------------------------------
# Schemes
# ------------------------------------------------------------------


def equal_weights(tickers: list[str]) -> WeightVector:
    """1/n for each ticker."""
    if not tickers:
        raise DegenerateWeightError("no tickers to weight")
    n = len(tickers)
    return WeightVector(EQUAL, pd.Series(np.full(n, 1.0 / n), index=tickers))


def normalize_scores(strategy: str, scores: pd.Series) -> WeightVector:
    """
    Normalize raw, non-negative scores into weights.

    Raises:
        DegenerateWeightError: if the scores sum to <= 0 or any score is negative.
    """
    scores = scores.astype(float)
    if scores.empty or not np.all(np.isfinite(scores.to_numpy())):
        raise DegenerateWeightError(f"{strategy}: scores must be finite and non-empty")
    total = float(scores.sum())
    if total <= 0:
        raise DegenerateWeightError(f"{strategy}: sum of raw scores is {total:.6g} (<= 0)")
    if (scores < 0).any():
        negative = scores[scores < 0].index.tolist()
        raise DegenerateWeightError(f"{strategy}: negative scores for {negative}")
    return WeightVector(strategy, scores / total)


def inverse_volatility_weights(sigmas: pd.Series) -> WeightVector:
    """Weights proportional to 1/sigma."""
    if (sigmas <= 0).any():
        raise DegenerateWeightError(
            f"{INVERSE_VOLATILITY}: non-positive volatility for {sigmas[sigmas <= 0].index.tolist()}"
        )
    return normalize_scores(INVERSE_VOLATILITY, 1.0 / sigmas)


def return_proportional_weights(cumulative_returns: pd.Series) -> WeightVector:
    """Weights proportional to full-sample cumulative return."""
    return normalize_scores(RETURN_PROPORTIONAL, cumulative_returns)


def mean_variance_weights(
    mu: pd.Series,
    cov: pd.DataFrame,
    risk_aversion: float = 5.0,
    max_weight: float = 0.30,
) -> WeightVector:
    """
    Long-only mean-variance weights with a per-asset cap.

    Solves  minimize (gamma/2) w'Sw - mu'w
            s.t.     sum(w) = 1,  0 <= w_i <= max_weight

    Raises:
        InfeasibleConstraintError: if max_weight * n < 1 or the solver finds no solution.
        DataValidationError: if mu or cov has missing values.
        ModelFitError: if the solver itself fails.
    """
    tickers = list(mu.index)
    n = len(tickers)
    if n == 0:
        raise DegenerateWeightError(f"{MEAN_VARIANCE}: no tickers to weight")
    if max_weight * n < 1 - WEIGHT_TOLERANCE:
        raise InfeasibleConstraintError(
            f"{MEAN_VARIANCE}: max weight {max_weight} x {n} assets cannot sum to 1"
        )

    sigma = cov.loc[tickers, tickers].to_numpy(dtype=float)
    sigma = (sigma + sigma.T) / 2
    mu_vec = mu.to_numpy(dtype=float)
    if not (np.all(np.isfinite(sigma)) and np.all(np.isfinite(mu_vec))):
        raise DataValidationError(
            f"{MEAN_VARIANCE}: covariance or expected returns contain missing values"
        )

    w = cp.Variable(n)
    objective = cp.Minimize(
        (risk_aversion / 2) * cp.quad_form(w, cp.psd_wrap(sigma)) - w @ mu_vec
    )
    constraints = [cp.sum(w) == 1, w >= 0, w <= max_weight]
    problem = cp.Problem(objective, constraints)
    try:
        problem.solve()
    except (cp.error.SolverError, ValueError) as exc:
        raise ModelFitError(f"{MEAN_VARIANCE}: solver failed: {exc}") from exc

    if problem.status not in ("optimal", "optimal_inaccurate") or w.value is None:
        raise InfeasibleConstraintError(f"{MEAN_VARIANCE}: solver status {problem.status}")

    weights = _project_to_box(np.asarray(w.value, dtype=float), max_weight)
    logger.debug("Mean-variance solved (%s), objective %.6g", problem.status, problem.value)
    return WeightVector(MEAN_VARIANCE, pd.Series(weights, index=tickers))


def _project_to_box(weights: np.ndarray, max_weight: float) -> np.ndarray:
    """Remove solver round-off so that 0 <= w <= max_weight and sum(w) == 1."""
    w = np.clip(weights, 0.0, max_weight)
    residual = 1.0 - w.sum()
    if residual > 0:
        slack = max_weight - w
        w = w + residual * slack / slack.sum()
    elif residual < 0:
        w = w + residual * w / w.sum()
    return np.clip(w, 0.0, max_weight)


def build_weight_schemes(
    tickers: list[str],
    sigmas: pd.Series,
    cumulative_returns: pd.Series,
    mu: pd.Series,
    cov: pd.DataFrame,
    risk_aversion: float = 5.0,
    max_weight: float = 0.30,
) -> WeightSchemes:
    """Build all four weight vectors; a failing strategy does not stop the others."""
    builders = {
        EQUAL: lambda: equal_weights(tickers),
        INVERSE_VOLATILITY: lambda: inverse_volatility_weights(sigmas.reindex(tickers)),
        RETURN_PROPORTIONAL: lambda: return_proportional_weights(
            cumulative_returns.reindex(tickers)
        ),
        MEAN_VARIANCE: lambda: mean_variance_weights(
            mu.reindex(tickers), cov, risk_aversion, max_weight
        ),
    }

    vectors: dict[str, WeightVector] = {}
    failed: dict[str, AnalyzerError] = {}
    for strategy, build in builders.items():
        try:
            vectors[strategy] = build()
        except AnalyzerError as exc:
            logger.warning("Weight scheme %s failed: %s", strategy, exc)
            failed[strategy] = exc

    return WeightSchemes(vectors=vectors, failures=failed)
