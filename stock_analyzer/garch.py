"""GARCH(1,1) Student-t volatility fits and one-step VaR / Expected Shortfall."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from arch import arch_model
from scipy import stats

from stock_analyzer.errors import (
    DataValidationError,
    InvalidDistributionParameterError,
    ModelFitError,
)
from stock_analyzer.outcome import TickerOutcome, run_per_ticker

logger = logging.getLogger(__name__)

MIN_OBSERVATIONS = 50
# arch fits more reliably on percentage returns
RETURN_SCALE = 100.0


@dataclass(frozen=True)
class GarchFit:
    """Fitted GARCH(1,1)-t parameters and the next-period volatility."""

    sigma: float          # one-step-ahead conditional volatility, decimal units
    nu: float             # Student-t degrees of freedom
    omega: float
    alpha: float
    beta: float
    n_observations: int
    log_likelihood: float


@dataclass(frozen=True)
class RiskEstimate:
    """Next-period risk for one ticker; stale once a new return arrives."""

    ticker: str
    sigma: float
    nu: float
    value_at_risk: float
    expected_shortfall: float
    tail_probability: float = 0.05

    @property
    def confidence_level(self) -> float:
        return 1.0 - self.tail_probability

    def to_dict(self) -> dict:
        return {
            "sigma": round(self.sigma, 6),
            "nu": round(self.nu, 4),
            "VaR": round(self.value_at_risk, 6),
            "ES": round(self.expected_shortfall, 6),
            "confidence_level": self.confidence_level,
        }


def fit_garch(returns: pd.Series) -> GarchFit:
    """
    Fit a zero-mean GARCH(1,1) with Student-t innovations.

    Args:
        returns: Daily log returns in decimal units.

    Raises:
        ModelFitError: if the optimizer fails or does not converge.
    """
    values = pd.Series(returns).dropna().to_numpy(dtype=float)
    if len(values) < MIN_OBSERVATIONS:
        raise DataValidationError(
            f"GARCH needs at least {MIN_OBSERVATIONS} returns, got {len(values)}"
        )
    if np.isclose(values.std(), 0.0):
        raise DataValidationError("returns have zero variance")

    model = arch_model(
        values * RETURN_SCALE,
        mean="Zero",
        vol="GARCH",
        p=1,
        q=1,
        dist="t",
        rescale=False,
    )
    try:
        result = model.fit(disp="off", show_warning=False, options={"maxiter": 1000})
    except (ValueError, np.linalg.LinAlgError) as exc:
        raise ModelFitError(f"GARCH optimization failed: {exc}") from exc

    if result.convergence_flag != 0:
        raise ModelFitError(
            f"GARCH optimizer did not converge (flag {result.convergence_flag})"
        )

    variance = result.forecast(horizon=1, reindex=False).variance.values[-1, 0]
    sigma = float(np.sqrt(variance)) / RETURN_SCALE
    params = result.params

    return GarchFit(
        sigma=sigma,
        nu=float(params["nu"]),
        omega=float(params["omega"]),
        alpha=float(params["alpha[1]"]),
        beta=float(params["beta[1]"]),
        n_observations=len(values),
        log_likelihood=float(result.loglikelihood),
    )


def student_t_var_es(
    sigma: float,
    nu: float,
    alpha: float = 0.05,
) -> tuple[float, float]:
    """
    One-period VaR and Expected Shortfall under a standardized Student-t.

    q   = t.ppf(alpha, nu)
    VaR = -sigma * sqrt((nu - 2) / nu) * q
    ES  =  sigma * sqrt((nu - 2) / nu) * t.pdf(q, nu) / (alpha * (1 - 2 / nu))

    Both are returned as non-negative loss magnitudes.

    Raises:
        InvalidDistributionParameterError: when nu <= 2 (variance undefined).
    """
    if not np.isfinite(nu) or nu <= 2:
        raise InvalidDistributionParameterError(
            f"Student-t degrees of freedom must exceed 2, got {nu}"
        )
    if not np.isfinite(sigma) or sigma < 0:
        raise ValueError(f"sigma must be finite and non-negative, got {sigma}")
    if not 0.0 < alpha < 0.5:
        raise ValueError(f"alpha must be in (0, 0.5), got {alpha}")

    scale = sigma * np.sqrt((nu - 2) / nu)
    q = stats.t.ppf(alpha, df=nu)
    var = -scale * q
    es = scale * stats.t.pdf(q, df=nu) / (alpha * (1 - 2 / nu))
    return float(var), float(es)


def estimate_risk(ticker: str, returns: pd.Series, alpha: float = 0.05) -> RiskEstimate:
    """Fit GARCH(1,1)-t to one ticker and derive its next-period VaR and ES."""
    fit = fit_garch(returns)
    var, es = student_t_var_es(fit.sigma, fit.nu, alpha)
    logger.debug(
        "%s: sigma=%.5f nu=%.2f VaR=%.5f ES=%.5f", ticker, fit.sigma, fit.nu, var, es
    )
    return RiskEstimate(
        ticker=ticker,
        sigma=fit.sigma,
        nu=fit.nu,
        value_at_risk=var,
        expected_shortfall=es,
        tail_probability=alpha,
    )


def estimate_all(
    returns: pd.DataFrame,
    alpha: float = 0.05,
    max_workers: int = 1,
) -> dict[str, TickerOutcome[RiskEstimate]]:
    """Risk estimates for every ticker; a failing ticker does not stop the others."""
    return run_per_ticker(
        lambda t: estimate_risk(t, returns[t], alpha),
        returns.columns,
        stage="GARCH",
        max_workers=max_workers,
    )
