"""
Stock Analyzer - return, volatility, forecasting and portfolio risk analysis.

Converts daily OHLCV prices into log returns and rolling volatility, then
runs a correlation/PCA decomposition, a market-model event study, an
ARIMA/ETS/Prophet forecast ensemble, GARCH(1,1)-t Value-at-Risk and
Expected Shortfall, four portfolio weight schemes and a Monte Carlo
simulation of portfolio returns. A companion module fits regression
models to patient severity scores.
"""

__version__ = "1.0.0"
