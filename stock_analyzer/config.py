"""Analysis configuration."""

from __future__ import annotations

import argparse
from dataclasses import dataclass

import pandas as pd

from stock_analyzer.errors import ConfigError
from stock_analyzer.event_study import EventWindow

SIMULATION_MODES = ("independent", "repeated")


@dataclass(frozen=True)
class AnalysisConfig:
    """Parameters for one end-to-end analysis run."""

    volatility_window: int = 30
    forecast_horizon: int = 20
    holdout: int = 60
    confidence: float = 0.05
    risk_aversion: float = 5.0
    max_weight: float = 0.30
    n_paths: int = 5000
    horizons: tuple[int, ...] = (1, 5, 21, 63, 252)
    simulation_mode: str = "independent"
    seed: int | None = None
    market_ticker: str | None = None
    event_window: EventWindow | None = None
    run_forecasts: bool = True
    max_workers: int = 1

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError if any parameter is out of range."""
        if self.volatility_window < 2:
            raise ConfigError("volatility_window must be at least 2")
        if self.forecast_horizon < 1:
            raise ConfigError("forecast_horizon must be positive")
        if self.holdout < 1:
            raise ConfigError("holdout must be positive")
        if not 0.0 < self.confidence < 0.5:
            raise ConfigError("confidence (tail probability) must be in (0, 0.5)")
        if self.risk_aversion <= 0:
            raise ConfigError("risk_aversion must be positive")
        if not 0.0 < self.max_weight <= 1.0:
            raise ConfigError("max_weight must be in (0, 1]")
        if self.n_paths < 2:
            raise ConfigError("n_paths must be at least 2")
        if not self.horizons or any(h < 1 for h in self.horizons):
            raise ConfigError("horizons must be a non-empty sequence of positive integers")
        if self.simulation_mode not in SIMULATION_MODES:
            raise ConfigError(
                f"simulation_mode must be one of {SIMULATION_MODES}, got {self.simulation_mode!r}"
            )
        if self.max_workers < 1:
            raise ConfigError("max_workers must be at least 1")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> AnalysisConfig:
        """Build a config from parsed CLI arguments."""
        event_window = None
        if args.estimation_window and args.event_window:
            est_start, est_end = args.estimation_window
            evt_start, evt_end = args.event_window
            event_window = EventWindow(
                estimation_start=pd.Timestamp(est_start),
                estimation_end=pd.Timestamp(est_end),
                event_start=pd.Timestamp(evt_start),
                event_end=pd.Timestamp(evt_end),
            )
        elif args.estimation_window or args.event_window:
            raise ConfigError("--estimation-window and --event-window must be given together")

        return cls(
            volatility_window=args.volatility_window,
            forecast_horizon=args.forecast_horizon,
            holdout=args.holdout,
            risk_aversion=args.risk_aversion,
            max_weight=args.max_weight,
            n_paths=args.simulations,
            horizons=tuple(args.horizons),
            simulation_mode=args.mode,
            seed=args.seed,
            market_ticker=args.market_ticker,
            event_window=event_window,
            run_forecasts=not args.no_forecasts,
            max_workers=args.workers,
        )
