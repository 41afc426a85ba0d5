"""Tagged per-ticker results and the per-ticker runner."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, TypeVar

from stock_analyzer.errors import AnalyzerError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class TickerOutcome(Generic[T]):
    """Either a computed value or the error that stopped the computation."""

    ticker: str
    value: T | None = None
    error: AnalyzerError | None = None

    def __post_init__(self) -> None:
        if (self.value is None) == (self.error is None):
            raise ValueError(
                f"TickerOutcome for {self.ticker} needs exactly one of value or error"
            )

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, re-raising the stored error if there is none."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def successes(outcomes: dict[str, TickerOutcome[T]]) -> dict[str, T]:
    """Values of the successful outcomes, keyed by ticker."""
    return {t: o.value for t, o in outcomes.items() if o.ok}  # type: ignore[misc]


def failures(outcomes: dict[str, TickerOutcome[Any]]) -> dict[str, AnalyzerError]:
    """Errors of the failed outcomes, keyed by ticker."""
    return {t: o.error for t, o in outcomes.items() if o.error is not None}


def run_per_ticker(
    func: Callable[[str], T],
    tickers: Iterable[str],
    stage: str,
    max_workers: int = 1,
) -> dict[str, TickerOutcome[T]]:
    """
    Apply ``func`` to each ticker, isolating analyzer errors per ticker.

    Args:
        func: Callable taking a ticker and returning its result.
        tickers: Tickers to process, in output order.
        stage: Stage name used in log messages.
        max_workers: Threads to use; 1 runs sequentially.
    """
    tickers = list(tickers)

    def _one(ticker: str) -> TickerOutcome[T]:
        try:
            return TickerOutcome(ticker, value=func(ticker))
        except AnalyzerError as exc:
            logger.warning("%s failed for %s: %s", stage, ticker, exc)
            return TickerOutcome(ticker, error=exc)

    if max_workers <= 1:
        results = [_one(t) for t in tickers]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(_one, tickers))

    return {o.ticker: o for o in results}
