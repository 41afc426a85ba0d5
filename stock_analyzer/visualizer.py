"""Matplotlib-based charts for the stock analysis."""

from __future__ import annotations

from pathlib import Path

import matplotlib
matplotlib.use("Agg")  # non-interactive backend for CI / headless
import matplotlib.pyplot as plt
import matplotlib.ticker as mticker
import numpy as np
import pandas as pd

from stock_analyzer.factors import FactorDecomposition
from stock_analyzer.outcome import successes
from stock_analyzer.pipeline import PipelineResult
from stock_analyzer.returns import ReturnSet
from stock_analyzer.severity import SeverityReport


# ------------------------------------------------------------------
# Style defaults
# ------------------------------------------------------------------

COLORS = {
    "primary": "#1a73e8",
    "secondary": "#34a853",
    "danger": "#ea4335",
    "warning": "#fbbc05",
    "neutral": "#5f6368",
    "bg": "#fafafa",
}


def _apply_style(ax: plt.Axes) -> None:
    ax.set_facecolor(COLORS["bg"])
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.tick_params(labelsize=9)


def _save(fig: plt.Figure, output: str | Path | None) -> plt.Figure:
    fig.tight_layout()
    if output:
        fig.savefig(str(output), dpi=150, bbox_inches="tight")
    return fig


# ------------------------------------------------------------------
# Individual charts
# ------------------------------------------------------------------


def plot_rolling_volatility(
    returns: ReturnSet,
    output: str | Path | None = None,
) -> plt.Figure:
    """Rolling standard deviation of daily log returns per ticker."""
    fig, ax = plt.subplots(figsize=(10, 5))
    _apply_style(ax)

    for ticker in returns.tickers:
        series = returns.rolling_volatility[ticker].dropna()
        ax.plot(series.index, series.values * 100, linewidth=1, label=ticker)

    ax.set_title(f"{returns.window}-Day Rolling Volatility", fontsize=13, fontweight="bold")
    ax.set_ylabel("Daily Std Dev (%)")
    ax.yaxis.set_major_formatter(mticker.FuncFormatter(lambda x, _: f"{x:.1f}%"))
    ax.legend(fontsize=8, ncol=2)
    return _save(fig, output)


def plot_correlation_matrix(
    corr: pd.DataFrame,
    output: str | Path | None = None,
) -> plt.Figure:
    """Heatmap of asset return correlations."""
    fig, ax = plt.subplots(figsize=(8, 6))

    cax = ax.matshow(corr.values, cmap="RdYlGn", vmin=-1, vmax=1)
    fig.colorbar(cax, ax=ax, fraction=0.046, pad=0.04)

    ax.set_xticks(range(len(corr)))
    ax.set_yticks(range(len(corr)))
    ax.set_xticklabels(corr.columns, rotation=45, ha="left", fontsize=9)
    ax.set_yticklabels(corr.columns, fontsize=9)

    for i in range(len(corr)):
        for j in range(len(corr)):
            ax.text(j, i, f"{corr.iloc[i, j]:.2f}", ha="center", va="center", fontsize=8)

    ax.set_title("Log-Return Correlation Matrix", fontsize=13, fontweight="bold", pad=40)
    return _save(fig, output)


def plot_explained_variance(
    factors: FactorDecomposition,
    output: str | Path | None = None,
) -> plt.Figure:
    """Bar chart of explained variance per component with the cumulative line."""
    fig, ax = plt.subplots(figsize=(8, 5))
    _apply_style(ax)

    ratio = factors.explained_variance_ratio * 100
    ax.bar(ratio.index, ratio.values, color=COLORS["primary"], alpha=0.8)
    ax.plot(ratio.index, ratio.cumsum().values, color=COLORS["danger"], marker="o", label="Cumulative")

    ax.set_title("PCA Explained Variance", fontsize=13, fontweight="bold")
    ax.set_ylabel("Variance Explained (%)")
    ax.legend(fontsize=9)
    return _save(fig, output)


def plot_car(
    result: PipelineResult,
    output: str | Path | None = None,
) -> plt.Figure:
    """Cumulative abnormal return over the event window per ticker."""
    fig, ax = plt.subplots(figsize=(10, 5))
    _apply_style(ax)

    for ticker, study in successes(result.event_study).items():
        ax.plot(study.car.index, study.car.values * 100, linewidth=1.5, label=ticker)
    ax.axhline(0, linestyle="--", color=COLORS["neutral"], linewidth=1)

    ax.set_title("Cumulative Abnormal Returns", fontsize=13, fontweight="bold")
    ax.set_ylabel("CAR (%)")
    ax.legend(fontsize=8, ncol=2)
    return _save(fig, output)


def plot_simulation_summary(
    result: PipelineResult,
    output: str | Path | None = None,
) -> plt.Figure:
    """Mean simulated return with 5th-95th percentile band, per strategy and horizon."""
    table = result.simulation_table()
    fig, ax = plt.subplots(figsize=(10, 5))
    _apply_style(ax)

    strategies = table.index.get_level_values("strategy").unique()
    offsets = np.linspace(-0.2, 0.2, len(strategies)) if len(strategies) > 1 else [0.0]
    for offset, strategy in zip(offsets, strategies):
        rows = table.xs(strategy, level="strategy")
        x = np.arange(len(rows)) + offset
        ax.errorbar(
            x,
            rows["mean"] * 100,
            yerr=[(rows["mean"] - rows["p5"]) * 100, (rows["p95"] - rows["mean"]) * 100],
            fmt="o",
            capsize=4,
            label=strategy,
        )
        ax.set_xticks(np.arange(len(rows)))
        ax.set_xticklabels([f"{h}d" for h in rows.index])

    ax.axhline(0, linestyle="--", color=COLORS["neutral"], linewidth=1)
    ax.set_title("Simulated Portfolio Returns (5th-95th percentile)", fontsize=13, fontweight="bold")
    ax.set_xlabel("Horizon")
    ax.set_ylabel("Return (%)")
    ax.legend(fontsize=9)
    return _save(fig, output)


def plot_feature_importance(
    severity: SeverityReport,
    top_n: int = 15,
    output: str | Path | None = None,
) -> plt.Figure:
    """Horizontal bar chart of the most important severity features."""
    top = severity.feature_importances.head(top_n)[::-1]
    fig, ax = plt.subplots(figsize=(8, 6))
    _apply_style(ax)

    ax.barh(top.index, top.values, color=COLORS["secondary"])
    ax.set_title("Random Forest Feature Importance", fontsize=13, fontweight="bold")
    ax.set_xlabel("Importance")
    return _save(fig, output)


# ------------------------------------------------------------------
# Full dashboard
# ------------------------------------------------------------------


def generate_dashboard(
    result: PipelineResult,
    severity: SeverityReport | None = None,
    output_dir: str | Path = "output",
) -> list[Path]:
    """Generate all applicable charts and save to output_dir. Returns list of file paths."""
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    charts = [
        ("rolling_volatility.png", lambda p: plot_rolling_volatility(result.returns, output=p)),
        ("correlation.png", lambda p: plot_correlation_matrix(result.correlation, output=p)),
    ]
    if result.factors is not None:
        charts.append(("pca_variance.png", lambda p: plot_explained_variance(result.factors, output=p)))
    if successes(result.event_study):
        charts.append(("car.png", lambda p: plot_car(result, output=p)))
    if result.simulations:
        charts.append(("simulation.png", lambda p: plot_simulation_summary(result, output=p)))
    if severity is not None and not severity.feature_importances.empty:
        charts.append(("feature_importance.png", lambda p: plot_feature_importance(severity, output=p)))

    paths_saved: list[Path] = []
    for name, fn in charts:
        fn(out / name)
        plt.close("all")
        paths_saved.append(out / name)

    return paths_saved
