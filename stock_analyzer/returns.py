"""Log-return and rolling-volatility calculations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from stock_analyzer.errors import AnalyzerError, DataValidationError, MalformedInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReturnSet:
    """Per-ticker log returns and rolling volatility for the accepted tickers."""

    log_returns: pd.DataFrame          # dates x tickers
    rolling_volatility: pd.DataFrame   # dates x tickers, NaN for the first window-1 rows
    close: pd.DataFrame                # dates x tickers, closing prices
    window: int
    rejected: dict[str, AnalyzerError] = field(default_factory=dict)

    @property
    def tickers(self) -> list[str]:
        return list(self.log_returns.columns)


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


def validate_dates(prices: pd.DataFrame) -> None:
    """
    Check that each ticker's dates are strictly increasing.

    Raises:
        MalformedInputError: when a ticker has duplicated or out-of-order dates.
    """
    for ticker, group in prices.groupby("ticker", sort=False):
        _validate_ticker_dates(str(ticker), group["date"])


def _validate_ticker_dates(ticker: str, dates: pd.Series) -> None:
    if dates.isna().any():
        raise MalformedInputError(f"{ticker}: missing dates")
    if dates.duplicated().any():
        dupes = dates[dates.duplicated()].dt.strftime("%Y-%m-%d").tolist()
        raise MalformedInputError(f"{ticker}: duplicated dates {dupes[:5]}")
    if not dates.is_monotonic_increasing:
        raise MalformedInputError(f"{ticker}: dates are not increasing")


def _validate_closes(ticker: str, close: pd.Series) -> pd.Series:
    close = close.dropna()
    if len(close) < 2:
        raise DataValidationError(f"{ticker}: fewer than two closing prices")
    if (close <= 0).any():
        raise DataValidationError(f"{ticker}: non-positive closing prices")
    return close


# ------------------------------------------------------------------
# Returns
# ------------------------------------------------------------------


def compute_log_returns(close: pd.DataFrame) -> pd.DataFrame:
    """
    Log returns ln(close_t) - ln(close_{t-1}) per ticker.

    Each ticker is differenced over its own non-missing observations, so a
    missing day does not leave a hole in the following return. The first
    observation per ticker has no return and is dropped.
    """
    columns = {
        ticker: np.log(close[ticker].dropna()).diff().iloc[1:]
        for ticker in close.columns
    }
    return pd.DataFrame(columns).sort_index()


def rolling_volatility(log_returns: pd.DataFrame, window: int = 30) -> pd.DataFrame:
    """Trailing, right-aligned rolling standard deviation of each ticker's returns."""
    columns = {
        ticker: log_returns[ticker].dropna().rolling(window).std()
        for ticker in log_returns.columns
    }
    return pd.DataFrame(columns).reindex(log_returns.index)


def cumulative_returns(log_returns: pd.DataFrame) -> pd.Series:
    """Full-sample simple cumulative return per ticker."""
    return (np.exp(log_returns.sum(skipna=True)) - 1).rename("cumulative_return")


def preprocess(prices: pd.DataFrame, window: int = 30) -> ReturnSet:
    """
    Convert long-form prices into a ReturnSet.

    Tickers failing validation are recorded in ``ReturnSet.rejected`` and
    excluded; the remaining tickers proceed.
    """
    closes: dict[str, pd.Series] = {}
    rejected: dict[str, AnalyzerError] = {}

    for ticker, group in prices.groupby("ticker", sort=False):
        ticker = str(ticker)
        try:
            _validate_ticker_dates(ticker, group["date"])
            closes[ticker] = _validate_closes(
                ticker, group.set_index("date")["close"].astype(float)
            )
        except DataValidationError as exc:
            logger.warning("Rejecting %s: %s", ticker, exc)
            rejected[ticker] = exc

    if not closes:
        raise DataValidationError("No ticker passed validation")

    close = pd.DataFrame(closes).sort_index()
    log_returns = compute_log_returns(close)
    vol = rolling_volatility(log_returns, window)

    logger.info(
        "Computed returns for %d tickers over %d dates (%d rejected)",
        len(closes), len(log_returns), len(rejected),
    )
    return ReturnSet(
        log_returns=log_returns,
        rolling_volatility=vol,
        close=close,
        window=window,
        rejected=rejected,
    )
