"""End-to-end stock analysis pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

import pandas as pd

from stock_analyzer.config import AnalysisConfig
from stock_analyzer.errors import AnalyzerError
from stock_analyzer.event_study import EventStudyResult, market_proxy, run_event_study
from stock_analyzer.factors import (
    FactorDecomposition,
    correlation_matrix,
    covariance_matrix,
    principal_components,
)
from stock_analyzer.forecasting import (
    ArimaForecaster,
    ForecastEvaluation,
    Forecaster,
    evaluate_ticker,
)
from stock_analyzer.garch import RiskEstimate, estimate_all
from stock_analyzer.monte_carlo import MonteCarloEngine, SimulationResult
from stock_analyzer.outcome import TickerOutcome, run_per_ticker, successes
from stock_analyzer.returns import ReturnSet, cumulative_returns, preprocess
from stock_analyzer.weights import WeightSchemes, build_weight_schemes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Every quantity computed by one pipeline run."""

    config: AnalysisConfig
    returns: ReturnSet
    correlation: pd.DataFrame
    covariance: pd.DataFrame
    factors: FactorDecomposition | None
    event_study: dict[str, TickerOutcome[EventStudyResult]]
    forecasts: dict[str, TickerOutcome[ForecastEvaluation]]
    risk: dict[str, TickerOutcome[RiskEstimate]]
    universe: list[str]
    weights: WeightSchemes | None
    simulations: dict[tuple[str, int], SimulationResult]
    stage_errors: dict[str, AnalyzerError] = field(default_factory=dict)

    def simulation_table(self) -> pd.DataFrame:
        """Simulation summaries as a (strategy, horizon)-indexed table."""
        if not self.simulations:
            return pd.DataFrame(columns=["mean", "std", "p5", "p95", "prob_loss"])
        rows = {
            key: {
                "mean": r.mean, "std": r.std, "p5": r.p5, "p95": r.p95, "prob_loss": r.prob_loss,
            }
            for key, r in self.simulations.items()
        }
        table = pd.DataFrame.from_dict(rows, orient="index")
        table.index = pd.MultiIndex.from_tuples(table.index, names=["strategy", "horizon"])
        return table

    def risk_table(self) -> pd.DataFrame:
        """Per-ticker sigma, nu, VaR and ES for tickers whose fit succeeded."""
        rows = {
            t: {"sigma": r.sigma, "nu": r.nu, "VaR": r.value_at_risk, "ES": r.expected_shortfall}
            for t, r in successes(self.risk).items()
        }
        return pd.DataFrame.from_dict(rows, orient="index")


class AnalysisPipeline:
    """Runs preprocessing, decomposition, event study, forecasts, risk, weights and simulation."""

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        price_models: Sequence[Callable[[], Forecaster]] | None = None,
        return_model: Callable[[], Forecaster] | None = ArimaForecaster,
    ) -> None:
        """
        Args:
            config: Analysis parameters (defaults when omitted).
            price_models: Factories for the primary and secondary price forecasters.
            return_model: Factory for the log-return forecaster.
        """
        self.config = config or AnalysisConfig()
        self.price_models = price_models
        self.return_model = return_model

    def run(self, prices: pd.DataFrame) -> PipelineResult:
        """Run every stage on long-form prices."""
        cfg = self.config
        stage_errors: dict[str, AnalyzerError] = {}

        logger.info("Preprocessing returns (window=%d)", cfg.volatility_window)
        returns = preprocess(prices, cfg.volatility_window)
        log_returns = returns.log_returns

        logger.info("Computing correlation and principal components")
        correlation = correlation_matrix(log_returns)
        covariance = covariance_matrix(log_returns)
        factors = None
        try:
            factors = principal_components(log_returns)
        except AnalyzerError as exc:
            logger.warning("PCA skipped: %s", exc)
            stage_errors["pca"] = exc

        event_results = self._event_study(log_returns, stage_errors)
        forecasts = self._forecasts(returns)

        logger.info("Fitting GARCH(1,1)-t for %d tickers", len(returns.tickers))
        asset_returns = log_returns.drop(columns=[cfg.market_ticker], errors="ignore")
        risk = estimate_all(asset_returns, cfg.confidence, cfg.max_workers)

        universe = [t for t in asset_returns.columns if risk[t].ok]
        weights = None
        simulations: dict[tuple[str, int], SimulationResult] = {}

        if not universe:
            logger.warning("No ticker has a risk estimate; skipping weights and simulation")
        else:
            sigmas = pd.Series({t: risk[t].unwrap().sigma for t in universe})
            weights = build_weight_schemes(
                universe,
                sigmas=sigmas,
                cumulative_returns=cumulative_returns(log_returns[universe]),
                mu=log_returns[universe].mean(),
                cov=covariance.loc[universe, universe],
                risk_aversion=cfg.risk_aversion,
                max_weight=cfg.max_weight,
            )
            simulations = self._simulate(covariance.loc[universe, universe], weights, stage_errors)

        return PipelineResult(
            config=cfg,
            returns=returns,
            correlation=correlation,
            covariance=covariance,
            factors=factors,
            event_study=event_results,
            forecasts=forecasts,
            risk=risk,
            universe=universe,
            weights=weights,
            simulations=simulations,
            stage_errors=stage_errors,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _event_study(
        self,
        log_returns: pd.DataFrame,
        stage_errors: dict[str, AnalyzerError],
    ) -> dict[str, TickerOutcome[EventStudyResult]]:
        cfg = self.config
        if cfg.event_window is None:
            return {}
        logger.info("Running event study")
        try:
            market = market_proxy(log_returns, cfg.market_ticker)
        except AnalyzerError as exc:
            logger.warning("Event study skipped: %s", exc)
            stage_errors["event_study"] = exc
            return {}
        assets = log_returns.drop(columns=[cfg.market_ticker], errors="ignore")
        return run_event_study(assets, market, cfg.event_window, cfg.max_workers)

    def _forecasts(self, returns: ReturnSet) -> dict[str, TickerOutcome[ForecastEvaluation]]:
        cfg = self.config
        if not cfg.run_forecasts:
            return {}
        logger.info("Forecasting %d tickers", len(returns.tickers))
        return run_per_ticker(
            lambda t: evaluate_ticker(
                t,
                returns.close[t],
                returns.log_returns[t],
                holdout=cfg.holdout,
                horizon=cfg.forecast_horizon,
                models=self.price_models,
                return_model=self.return_model,
            ),
            returns.tickers,
            stage="forecast",
            max_workers=cfg.max_workers,
        )

    def _simulate(
        self,
        cov: pd.DataFrame,
        weights: WeightSchemes,
        stage_errors: dict[str, AnalyzerError],
    ) -> dict[tuple[str, int], SimulationResult]:
        cfg = self.config
        if not weights.vectors:
            return {}
        logger.info(
            "Simulating %d strategies x %d horizons (%d paths, %s mode)",
            len(weights.vectors), len(cfg.horizons), cfg.n_paths, cfg.simulation_mode,
        )
        try:
            engine = MonteCarloEngine(
                cov, n_simulations=cfg.n_paths, seed=cfg.seed, mode=cfg.simulation_mode
            )
        except AnalyzerError as exc:
            logger.warning("Simulation skipped: %s", exc)
            stage_errors["simulation"] = exc
            return {}
        return engine.run(weights.vectors, cfg.horizons)
