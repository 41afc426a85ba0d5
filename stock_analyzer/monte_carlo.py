"""Monte Carlo simulation of multi-horizon portfolio returns."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from stock_analyzer.errors import DataValidationError
from stock_analyzer.factors import is_positive_semidefinite
from stock_analyzer.weights import WeightVector

logger = logging.getLogger(__name__)

INDEPENDENT = "independent"
REPEATED = "repeated"


@dataclass(frozen=True)
class SimulationResult:
    """Summary of simulated portfolio returns for one (strategy, horizon)."""

    strategy: str
    horizon: int
    n_simulations: int
    mode: str
    mean: float
    std: float
    p5: float
    p95: float
    prob_loss: float

    @property
    def value_at_risk(self) -> float:
        """Loss at the 5th percentile of simulated returns."""
        return max(-self.p5, 0.0)

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "horizon_days": self.horizon,
            "n_simulations": self.n_simulations,
            "mode": self.mode,
            "mean": round(self.mean, 6),
            "std": round(self.std, 6),
            "p5": round(self.p5, 6),
            "p95": round(self.p95, 6),
            "probability_of_loss": round(self.prob_loss, 4),
        }


def summarize(strategy: str, horizon: int, mode: str, returns: np.ndarray) -> SimulationResult:
    """Reduce simulated portfolio returns to summary statistics."""
    return SimulationResult(
        strategy=strategy,
        horizon=horizon,
        n_simulations=len(returns),
        mode=mode,
        mean=float(np.mean(returns)),
        std=float(np.std(returns)),
        p5=float(np.percentile(returns, 5)),
        p95=float(np.percentile(returns, 95)),
        prob_loss=float(np.mean(returns < 0)),
    )


class MonteCarloEngine:
    """Zero-mean multivariate-normal simulator of portfolio returns."""

    def __init__(
        self,
        cov: pd.DataFrame,
        n_simulations: int = 5000,
        seed: int | None = None,
        mode: str = INDEPENDENT,
    ) -> None:
        """
        Args:
            cov: Daily covariance of log returns (tickers x tickers), PSD.
            n_simulations: Number of simulated paths per (strategy, horizon).
            seed: Random seed for reproducibility.
            mode: "independent" draws a fresh daily vector for each day of the
                horizon; "repeated" draws one daily vector per path and scales
                it by the horizon.
        """
        if mode not in (INDEPENDENT, REPEATED):
            raise ValueError(f"unknown simulation mode {mode!r}")
        if n_simulations < 2:
            raise ValueError("n_simulations must be at least 2")

        cov = cov.astype(float)
        if cov.isna().to_numpy().any():
            raise DataValidationError("covariance matrix has missing entries")
        if not is_positive_semidefinite(cov.to_numpy()):
            raise DataValidationError("covariance matrix is not positive semi-definite")

        self.tickers: list[str] = list(cov.columns)
        self.cov = cov
        self.n_simulations = n_simulations
        self.seed = seed
        self.mode = mode
        self._factor = _sampling_factor(cov.to_numpy())

    # ------------------------------------------------------------------
    # Core simulation
    # ------------------------------------------------------------------

    def _daily_draws(self, rng: np.random.Generator) -> np.ndarray:
        """(n_simulations, n_assets) correlated zero-mean daily log returns."""
        z = rng.standard_normal((self.n_simulations, len(self.tickers)))
        return z @ self._factor.T

    def simulate_returns(
        self,
        weights: WeightVector,
        horizon: int,
        rng: np.random.Generator | None = None,
    ) -> np.ndarray:
        """
        Simulated simple portfolio returns over ``horizon`` trading days.

        Each path's per-asset cumulative log return is projected onto the
        weights: exp(w' cum_log_r) - 1.
        """
        if horizon < 1:
            raise ValueError("horizon must be at least 1")
        rng = rng if rng is not None else np.random.default_rng(self.seed)
        w = weights.as_array(self.tickers)
        if np.isnan(w).any():
            raise DataValidationError(
                f"{weights.strategy}: weights do not cover the covariance tickers"
            )

        if self.mode == REPEATED:
            cumulative = horizon * self._daily_draws(rng)
        else:
            cumulative = np.zeros((self.n_simulations, len(self.tickers)))
            for _ in range(horizon):
                cumulative += self._daily_draws(rng)

        return np.exp(cumulative @ w) - 1

    def simulate(
        self,
        weights: WeightVector,
        horizon: int,
        rng: np.random.Generator | None = None,
    ) -> SimulationResult:
        """Simulate and summarize one (strategy, horizon) cell."""
        returns = self.simulate_returns(weights, horizon, rng)
        return summarize(weights.strategy, horizon, self.mode, returns)

    def run(
        self,
        weight_vectors: dict[str, WeightVector],
        horizons: tuple[int, ...] | list[int],
    ) -> dict[tuple[str, int], SimulationResult]:
        """
        Simulate every (strategy, horizon) pair.

        Each cell gets its own child generator spawned from the seed in a
        fixed order, so results are identical across runs with the same seed.
        """
        cells = [(s, h) for s in weight_vectors for h in horizons]
        children = np.random.SeedSequence(self.seed).spawn(len(cells))

        results: dict[tuple[str, int], SimulationResult] = {}
        for (strategy, horizon), child in zip(cells, children):
            result = self.simulate(
                weight_vectors[strategy], horizon, np.random.default_rng(child)
            )
            results[(strategy, horizon)] = result
            logger.debug(
                "%s H=%d: mean=%.4f std=%.4f p5=%.4f p95=%.4f",
                strategy, horizon, result.mean, result.std, result.p5, result.p95,
            )
        return results


def _sampling_factor(cov: np.ndarray) -> np.ndarray:
    """Matrix L with L L' = cov; eigen-based when cov is singular."""
    try:
        return np.linalg.cholesky(cov)
    except np.linalg.LinAlgError:
        eigenvalues, eigenvectors = np.linalg.eigh(cov)
        return eigenvectors * np.sqrt(np.clip(eigenvalues, 0.0, None))
