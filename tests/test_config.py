"""Tests for analysis configuration."""

import pandas as pd
import pytest

from stock_analyzer.cli import build_parser
from stock_analyzer.config import AnalysisConfig
from stock_analyzer.errors import ConfigError
from stock_analyzer.event_study import EventWindow


def test_defaults_are_valid():
    config = AnalysisConfig()
    assert config.volatility_window == 30
    assert config.horizons == (1, 5, 21, 63, 252)
    assert config.simulation_mode == "independent"
    assert config.event_window is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"volatility_window": 1},
        {"forecast_horizon": 0},
        {"holdout": 0},
        {"confidence": 0.7},
        {"risk_aversion": 0.0},
        {"max_weight": 1.5},
        {"n_paths": 1},
        {"horizons": ()},
        {"horizons": (1, 0)},
        {"simulation_mode": "weekly"},
        {"max_workers": 0},
    ],
)
def test_invalid_values_raise(overrides):
    with pytest.raises(ConfigError):
        AnalysisConfig(**overrides)


def test_config_error_is_value_error():
    with pytest.raises(ValueError):
        AnalysisConfig(max_weight=0.0)


def test_event_window_must_precede():
    with pytest.raises(ConfigError):
        EventWindow(
            estimation_start=pd.Timestamp("2024-01-01"),
            estimation_end=pd.Timestamp("2024-03-01"),
            event_start=pd.Timestamp("2024-02-01"),
            event_end=pd.Timestamp("2024-04-01"),
        )


def test_from_args():
    args = build_parser().parse_args([
        "--prices", "x.csv",
        "--estimation-window", "2024-01-01", "2024-03-01",
        "--event-window", "2024-03-04", "2024-03-15",
        "--horizons", "1", "10",
        "--mode", "repeated",
        "-n", "200",
        "--seed", "7",
        "--no-forecasts",
    ])
    config = AnalysisConfig.from_args(args)

    assert config.horizons == (1, 10)
    assert config.simulation_mode == "repeated"
    assert config.n_paths == 200
    assert config.seed == 7
    assert config.run_forecasts is False
    assert config.event_window.event_start == pd.Timestamp("2024-03-04")


def test_lone_event_window_raises():
    args = build_parser().parse_args(["--event-window", "2024-03-04", "2024-03-15"])
    with pytest.raises(ConfigError):
        AnalysisConfig.from_args(args)
