"""Assemble analysis results into a JSON report."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import pandas as pd

from stock_analyzer.outcome import TickerOutcome
from stock_analyzer.pipeline import PipelineResult
from stock_analyzer.severity import SeverityReport


def _outcomes_to_dict(outcomes: dict[str, TickerOutcome], render) -> dict:
    return {
        ticker: render(o.value) if o.ok else {"error": f"{type(o.error).__name__}: {o.error}"}
        for ticker, o in outcomes.items()
    }


def _matrix(df: pd.DataFrame) -> dict:
    return {
        str(row): {
            str(col): round(float(v), 6) if np.isfinite(v) else None
            for col, v in values.items()
        }
        for row, values in df.iterrows()
    }


def build_report_data(
    result: PipelineResult,
    severity: SeverityReport | None = None,
) -> dict:
    """Assemble all analysis data into a single JSON-safe dictionary."""
    cfg = result.config
    data = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "config": {
            "volatility_window": cfg.volatility_window,
            "forecast_horizon": cfg.forecast_horizon,
            "holdout": cfg.holdout,
            "risk_aversion": cfg.risk_aversion,
            "max_weight": cfg.max_weight,
            "n_paths": cfg.n_paths,
            "horizons": list(cfg.horizons),
            "simulation_mode": cfg.simulation_mode,
            "seed": cfg.seed,
        },
        "tickers": result.returns.tickers,
        "rejected_tickers": {t: str(e) for t, e in result.returns.rejected.items()},
        "correlation": _matrix(result.correlation),
        "pca": result.factors.to_dict() if result.factors is not None else None,
        "event_study": _outcomes_to_dict(
            result.event_study,
            lambda r: {
                "alpha": round(r.alpha, 6),
                "beta": round(r.beta, 4),
                "n_estimation": r.n_estimation,
                "total_car": round(r.total_car, 6),
            },
        ),
        "forecasts": _outcomes_to_dict(result.forecasts, lambda r: r.to_dict()),
        "risk": _outcomes_to_dict(result.risk, lambda r: r.to_dict()),
        "weights": (
            {s: v.to_dict() for s, v in result.weights.vectors.items()}
            if result.weights is not None
            else {}
        ),
        "weight_failures": (
            {s: str(e) for s, e in result.weights.failures.items()}
            if result.weights is not None
            else {}
        ),
        "monte_carlo": [r.to_dict() for r in result.simulations.values()],
        "stage_errors": {k: str(v) for k, v in result.stage_errors.items()},
    }
    if severity is not None:
        data["severity"] = severity.to_dict()
    return data


def export_json(
    data: dict,
    output: str | Path = "output/analysis_report.json",
) -> Path:
    """Write the report data to a JSON file."""
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))
    return path
