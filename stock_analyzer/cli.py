"""Command-line interface for the stock analyzer."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from stock_analyzer.config import SIMULATION_MODES, AnalysisConfig
from stock_analyzer.data_loader import load_patient_records, load_prices
from stock_analyzer.errors import AnalyzerError
from stock_analyzer.logging_utils import setup_logger
from stock_analyzer.outcome import failures, successes
from stock_analyzer.pipeline import AnalysisPipeline, PipelineResult
from stock_analyzer.report import build_report_data, export_json
from stock_analyzer.severity import DEFAULT_TARGET, SeverityReport, fit_severity_models
from stock_analyzer.visualizer import generate_dashboard


console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stock-analyzer",
        description="Stock return, volatility, risk and portfolio simulation analysis.",
    )

    parser.add_argument(
        "--prices",
        type=str,
        default="data/stock_prices.csv",
        help="Path to daily OHLCV CSV (default: data/stock_prices.csv)",
    )
    parser.add_argument(
        "--patients",
        type=str,
        default=None,
        help="Optional path to a patient-records CSV for the severity models",
    )
    parser.add_argument(
        "--target",
        type=str,
        default=DEFAULT_TARGET,
        help=f"Severity target column (default: {DEFAULT_TARGET})",
    )
    parser.add_argument(
        "--market-ticker",
        type=str,
        default=None,
        help="Ticker used as market proxy (default: equal-weighted average)",
    )
    parser.add_argument(
        "--estimation-window",
        nargs=2,
        metavar=("START", "END"),
        default=None,
        help="Event-study estimation window dates",
    )
    parser.add_argument(
        "--event-window",
        nargs=2,
        metavar=("START", "END"),
        default=None,
        help="Event-study event window dates",
    )
    parser.add_argument(
        "--volatility-window",
        type=int,
        default=30,
        help="Rolling volatility window in trading days (default: 30)",
    )
    parser.add_argument(
        "--forecast-horizon",
        type=int,
        default=20,
        help="Forecast horizon in trading days (default: 20)",
    )
    parser.add_argument(
        "--holdout",
        type=int,
        default=60,
        help="Forecast holdout length in trading days (default: 60)",
    )
    parser.add_argument(
        "--no-forecasts",
        action="store_true",
        help="Skip the ARIMA/ETS/Prophet forecasts",
    )
    parser.add_argument(
        "--simulations", "-n",
        type=int,
        default=5000,
        help="Number of Monte Carlo paths (default: 5,000)",
    )
    parser.add_argument(
        "--horizons",
        type=int,
        nargs="+",
        default=[1, 5, 21, 63, 252],
        help="Simulation horizons in trading days (default: 1 5 21 63 252)",
    )
    parser.add_argument(
        "--mode",
        choices=SIMULATION_MODES,
        default="independent",
        help="Horizon compounding: independent daily draws or one repeated draw",
    )
    parser.add_argument(
        "--risk-aversion",
        type=float,
        default=5.0,
        help="Mean-variance risk aversion gamma (default: 5.0)",
    )
    parser.add_argument(
        "--max-weight",
        type=float,
        default=0.30,
        help="Mean-variance per-asset weight cap (default: 0.30)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Threads for per-ticker model fits (default: 1)",
    )
    parser.add_argument(
        "--output-dir", "-o",
        type=str,
        default="output",
        help="Output directory for reports and charts (default: output/)",
    )
    parser.add_argument(
        "--no-charts",
        action="store_true",
        help="Skip chart generation",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Write a JSON report to the output directory",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Optional log file path",
    )

    return parser


# ------------------------------------------------------------------
# Tables
# ------------------------------------------------------------------


def _matrix_table(title: str, df) -> Table:
    table = Table(title=title)
    table.add_column("", style="cyan")
    for col in df.columns:
        table.add_column(str(col), justify="right")
    for row, values in df.iterrows():
        table.add_row(str(row), *[f"{v:.3f}" for v in values])
    return table


def print_results(result: PipelineResult) -> None:
    """Print every computed quantity as rich tables."""
    for ticker, exc in result.returns.rejected.items():
        console.print(f"[red]Rejected {ticker}:[/red] {exc}")

    console.print(_matrix_table("Log-Return Correlation", result.correlation))

    if result.factors is not None:
        pca_table = Table(title=f"Principal Components ({result.factors.n_observations} obs)")
        pca_table.add_column("Component", style="cyan")
        pca_table.add_column("Explained", justify="right")
        pca_table.add_column("Cumulative", justify="right")
        cumulative = result.factors.cumulative_explained()
        for pc, ratio in result.factors.explained_variance_ratio.items():
            pca_table.add_row(pc, f"{ratio * 100:.1f}%", f"{cumulative[pc] * 100:.1f}%")
        console.print(pca_table)
        console.print(_matrix_table("PCA Loadings", result.factors.loadings))

    if result.event_study:
        car_table = Table(title="Event Study (market model)")
        car_table.add_column("Ticker", style="cyan")
        car_table.add_column("Alpha", justify="right")
        car_table.add_column("Beta", justify="right")
        car_table.add_column("Est. Obs", justify="right")
        car_table.add_column("Total CAR", justify="right")
        for ticker, study in successes(result.event_study).items():
            car_table.add_row(
                ticker,
                f"{study.alpha:.5f}",
                f"{study.beta:.3f}",
                str(study.n_estimation),
                f"{study.total_car * 100:.2f}%",
            )
        for ticker, exc in failures(result.event_study).items():
            car_table.add_row(ticker, "[red]failed[/red]", "", "", str(exc))
        console.print(car_table)

    if result.forecasts:
        fc_table = Table(title="Forecast Accuracy (holdout)")
        fc_table.add_column("Ticker", style="cyan")
        fc_table.add_column("Model")
        fc_table.add_column("MAPE", justify="right")
        fc_table.add_column("RMSE", justify="right")
        fc_table.add_column("Weight", justify="right")
        for ticker, evaluation in successes(result.forecasts).items():
            weights = evaluation.ensemble_weights or {}
            for name, score in evaluation.scores.items():
                weight = f"{weights[name]:.2f}" if name in weights else "-"
                fc_table.add_row(ticker, name, f"{score.mape:.2f}%", f"{score.rmse:.3f}", weight)
            if evaluation.ensemble_score is not None:
                fc_table.add_row(
                    ticker,
                    "ensemble",
                    f"{evaluation.ensemble_score.mape:.2f}%",
                    f"{evaluation.ensemble_score.rmse:.3f}",
                    "",
                )
            fc_table.add_row(ticker, f"[green]selected: {evaluation.selected}[/green]", "", "", "")
        console.print(fc_table)

    risk_table = Table(title="GARCH(1,1)-t Risk (next day)")
    risk_table.add_column("Ticker", style="cyan")
    risk_table.add_column("Sigma", justify="right")
    risk_table.add_column("Nu", justify="right")
    risk_table.add_column("VaR 95%", justify="right")
    risk_table.add_column("ES 95%", justify="right")
    for ticker, estimate in successes(result.risk).items():
        risk_table.add_row(
            ticker,
            f"{estimate.sigma * 100:.2f}%",
            f"{estimate.nu:.2f}",
            f"{estimate.value_at_risk * 100:.2f}%",
            f"{estimate.expected_shortfall * 100:.2f}%",
        )
    for ticker, exc in failures(result.risk).items():
        risk_table.add_row(ticker, "[red]failed[/red]", "", "", str(exc))
    console.print(risk_table)

    if result.weights is not None:
        weights_table = Table(title="Portfolio Weights")
        weights_table.add_column("Ticker", style="cyan")
        strategies = list(result.weights.vectors)
        for strategy in strategies:
            weights_table.add_column(strategy, justify="right")
        for ticker in result.universe:
            weights_table.add_row(
                ticker,
                *[f"{result.weights.vectors[s].weights[ticker] * 100:.1f}%" for s in strategies],
            )
        console.print(weights_table)
        for strategy, exc in result.weights.failures.items():
            console.print(f"[red]{strategy} failed:[/red] {exc}")

    if result.simulations:
        mc_table = Table(title=f"Monte Carlo Portfolio Returns ({result.config.simulation_mode} mode)")
        mc_table.add_column("Strategy", style="cyan")
        mc_table.add_column("Horizon", justify="right")
        mc_table.add_column("Mean", justify="right")
        mc_table.add_column("Std Dev", justify="right")
        mc_table.add_column("5th Pct", justify="right")
        mc_table.add_column("95th Pct", justify="right")
        mc_table.add_column("P(Loss)", justify="right")
        for (strategy, horizon), sim in result.simulations.items():
            mc_table.add_row(
                strategy,
                f"{horizon}d",
                f"{sim.mean * 100:.2f}%",
                f"{sim.std * 100:.2f}%",
                f"{sim.p5 * 100:.2f}%",
                f"{sim.p95 * 100:.2f}%",
                f"{sim.prob_loss * 100:.1f}%",
            )
        console.print(mc_table)

    for stage, exc in result.stage_errors.items():
        console.print(f"[red]{stage} skipped:[/red] {exc}")


def print_severity(report: SeverityReport) -> None:
    table = Table(title=f"Severity Models ({report.n_train} train / {report.n_test} test)")
    table.add_column("Model", style="cyan")
    table.add_column("MAE", justify="right")
    table.add_column("RMSE", justify="right")
    table.add_column("R²", justify="right")
    for name, m in report.metrics.items():
        label = f"[green]{name}[/green]" if name == report.best_model else name
        table.add_row(label, f"{m.mae:.4f}", f"{m.rmse:.4f}", f"{m.r2:.4f}")
    console.print(table)


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------


def run(args: argparse.Namespace) -> None:
    """Execute the full analysis pipeline."""
    setup_logger(args.log_level, args.log_file)
    console.print(Panel.fit(
        "[bold blue]Stock Analyzer[/bold blue]\n"
        "Returns, forecasts, GARCH risk and portfolio simulation",
        border_style="blue",
    ))

    try:
        config = AnalysisConfig.from_args(args)
        prices = load_prices(args.prices)
        patients = load_patient_records(args.patients) if args.patients else None
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Error loading data:[/red] {exc}")
        sys.exit(1)

    try:
        result = AnalysisPipeline(config).run(prices)
    except AnalyzerError as exc:
        console.print(f"[red]Analysis failed:[/red] {exc}")
        sys.exit(1)
    print_results(result)

    severity = None
    if patients is not None:
        console.print("\n[bold]Fitting severity models...[/bold]")
        try:
            seed = 42 if args.seed is None else args.seed
            severity = fit_severity_models(patients, target=args.target, seed=seed)
        except AnalyzerError as exc:
            console.print(f"[red]Severity models failed:[/red] {exc}")
        else:
            print_severity(severity)

    output_dir = Path(args.output_dir)
    if args.json:
        json_path = export_json(
            build_report_data(result, severity), output_dir / "analysis_report.json"
        )
        console.print(f"\n[green]JSON report saved:[/green] {json_path}")

    if not args.no_charts:
        console.print("[bold]Generating charts...[/bold]")
        for p in generate_dashboard(result, severity, output_dir):
            console.print(f"  [green]Saved:[/green] {p}")

    console.print("\n[bold green]Analysis complete.[/bold green]")


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    run(args)


if __name__ == "__main__":
    main()
