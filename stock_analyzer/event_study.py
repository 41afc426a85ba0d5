"""Market-model event study: abnormal and cumulative abnormal returns."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
import statsmodels.api as sm

from stock_analyzer.errors import ConfigError, DataValidationError
from stock_analyzer.outcome import TickerOutcome, run_per_ticker

logger = logging.getLogger(__name__)

MIN_ESTIMATION_OBSERVATIONS = 3


@dataclass(frozen=True)
class EventWindow:
    """Estimation window [estimation_start, estimation_end] and event window [event_start, event_end]."""

    estimation_start: pd.Timestamp
    estimation_end: pd.Timestamp
    event_start: pd.Timestamp
    event_end: pd.Timestamp

    def __post_init__(self) -> None:
        if self.estimation_start > self.estimation_end:
            raise ConfigError("estimation window start is after its end")
        if self.event_start > self.event_end:
            raise ConfigError("event window start is after its end")
        if not self.estimation_end < self.event_start:
            raise ConfigError("estimation window must end before the event window starts")


@dataclass(frozen=True)
class EventStudyResult:
    """Market-model fit and event-window abnormal returns for one ticker."""

    ticker: str
    alpha: float
    beta: float
    n_estimation: int
    frame: pd.DataFrame  # indexed by event date: actual, market, predicted, abnormal, car

    @property
    def car(self) -> pd.Series:
        return self.frame["car"]

    @property
    def total_car(self) -> float:
        """Sum of all abnormal returns over the event window."""
        return float(self.frame["abnormal"].sum())


def market_proxy(returns: pd.DataFrame, market_ticker: str | None = None) -> pd.Series:
    """
    Market return series.

    Uses the named ticker's returns when given, otherwise the equal-weighted
    mean of all tickers' returns.
    """
    if market_ticker is not None:
        if market_ticker not in returns.columns:
            raise DataValidationError(f"Market ticker {market_ticker!r} not in price data")
        return returns[market_ticker].dropna().rename("market")
    return returns.mean(axis=1, skipna=True).dropna().rename("market")


def market_model(
    ticker_returns: pd.Series,
    market_returns: pd.Series,
) -> tuple[float, float, int]:
    """
    OLS regression of ticker returns on market returns.

    Only dates present in both series are used.

    Returns:
        (alpha, beta, number of observations)
    """
    joined = pd.concat(
        [ticker_returns.rename("asset"), market_returns.rename("market")],
        axis=1,
        join="inner",
    ).dropna()
    if len(joined) < MIN_ESTIMATION_OBSERVATIONS:
        raise DataValidationError(
            f"only {len(joined)} overlapping observations in estimation window"
        )
    if np.isclose(joined["market"].var(), 0.0):
        raise DataValidationError("market returns are constant over the estimation window")

    X = sm.add_constant(joined["market"])
    fit = sm.OLS(joined["asset"], X).fit()
    return float(fit.params["const"]), float(fit.params["market"]), len(joined)


def abnormal_returns(
    ticker_returns: pd.Series,
    market_returns: pd.Series,
    alpha: float,
    beta: float,
) -> pd.DataFrame:
    """
    Abnormal and cumulative abnormal returns over an event window.

    CAR on each day is the sum of the abnormal returns before it, so the
    first event day's CAR is exactly 0.
    """
    frame = pd.concat(
        [ticker_returns.rename("actual"), market_returns.rename("market")],
        axis=1,
        join="inner",
    ).dropna()
    frame["predicted"] = alpha + beta * frame["market"]
    frame["abnormal"] = frame["actual"] - frame["predicted"]
    frame["car"] = frame["abnormal"].cumsum().shift(1).fillna(0.0)
    return frame


def event_study(
    ticker: str,
    ticker_returns: pd.Series,
    market_returns: pd.Series,
    window: EventWindow,
) -> EventStudyResult:
    """Run the market-model event study for one ticker."""
    est_slice = slice(window.estimation_start, window.estimation_end)
    evt_slice = slice(window.event_start, window.event_end)

    alpha, beta, n_est = market_model(
        ticker_returns.loc[est_slice], market_returns.loc[est_slice]
    )
    frame = abnormal_returns(
        ticker_returns.loc[evt_slice], market_returns.loc[evt_slice], alpha, beta
    )
    if frame.empty:
        raise DataValidationError("no overlapping observations in event window")

    logger.debug(
        "%s: alpha=%.6f beta=%.4f n=%d total CAR=%.4f",
        ticker, alpha, beta, n_est, frame["abnormal"].sum(),
    )
    return EventStudyResult(
        ticker=ticker, alpha=alpha, beta=beta, n_estimation=n_est, frame=frame
    )


def run_event_study(
    returns: pd.DataFrame,
    market_returns: pd.Series,
    window: EventWindow,
    max_workers: int = 1,
) -> dict[str, TickerOutcome[EventStudyResult]]:
    """Event study for every ticker; a failing ticker does not stop the others."""
    returns = returns.sort_index()
    market_returns = market_returns.sort_index()
    return run_per_ticker(
        lambda t: event_study(t, returns[t].dropna(), market_returns, window),
        returns.columns,
        stage="event study",
        max_workers=max_workers,
    )
