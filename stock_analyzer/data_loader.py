"""Load price and patient data from CSV files."""

from __future__ import annotations

import logging
import re
from pathlib import Path

import pandas as pd

from stock_analyzer.errors import DataValidationError

logger = logging.getLogger(__name__)

PRICE_FIELDS = ["open", "high", "low", "close", "adj_close", "volume"]

_WIDE_COLUMN = re.compile(
    r"^(?P<ticker>.+?)[ _](?P<field>open|high|low|close|adj[ _]?close|volume)$",
    re.IGNORECASE,
)


def load_prices(path: str | Path) -> pd.DataFrame:
    """
    Load a daily OHLCV CSV into long format.

    Accepts either a wide file (one 'date' column plus '<TICKER>_<Field>'
    columns) or a long file that already has 'date' and 'ticker' columns.
    Row order is preserved; date ordering is validated downstream, not fixed.

    Returns:
        DataFrame with columns [date, ticker, open, high, low, close, volume]
        (plus adj_close when present).
    """
    df = _read_csv(path)
    df.columns = [str(c).strip() for c in df.columns]
    lower = {c.lower(): c for c in df.columns}
    if "date" not in lower:
        raise DataValidationError("Prices CSV must contain a 'date' column")
    df = df.rename(columns={lower["date"]: "date"})

    if "ticker" in lower:
        df = df.rename(columns={c: _normalize_field(c) for c in df.columns if c != "date"})
        long = df
    else:
        long = wide_to_long(df)

    long["date"] = pd.to_datetime(long["date"])
    if "close" not in long.columns:
        if "adj_close" in long.columns:
            long["close"] = long["adj_close"]
        else:
            raise DataValidationError("Prices CSV has no close price columns")

    logger.info(
        "Loaded %d rows for %d tickers from %s",
        len(long), long["ticker"].nunique(), path,
    )
    return long.reset_index(drop=True)


def wide_to_long(df: pd.DataFrame) -> pd.DataFrame:
    """Reshape a wide '<TICKER>_<Field>' price table into one row per date per ticker."""
    frames: dict[str, dict[str, pd.Series]] = {}
    for column in df.columns:
        if column == "date":
            continue
        match = _WIDE_COLUMN.match(column)
        if match is None:
            logger.warning("Ignoring unrecognised price column %r", column)
            continue
        ticker = match.group("ticker").strip()
        field = _normalize_field(match.group("field"))
        frames.setdefault(ticker, {})[field] = pd.to_numeric(df[column], errors="coerce")

    if not frames:
        raise DataValidationError("Prices CSV has no '<TICKER>_<Field>' columns")

    parts = []
    for ticker, fields in frames.items():
        part = pd.DataFrame(fields)
        part.insert(0, "ticker", ticker)
        part.insert(0, "date", df["date"].values)
        # Tickers may list late; rows with no data at all carry no observation.
        part = part.dropna(subset=list(fields), how="all")
        parts.append(part)

    long = pd.concat(parts, ignore_index=True)
    columns = ["date", "ticker"] + [f for f in PRICE_FIELDS if f in long.columns]
    return long[columns]


def load_patient_records(path: str | Path) -> pd.DataFrame:
    """Load a patient-records CSV."""
    df = _read_csv(path)
    if df.empty:
        raise DataValidationError(f"Patient records file is empty: {path}")
    return df


def _normalize_field(name: str) -> str:
    field = re.sub(r"[ _]+", "_", name.strip().lower())
    return "adj_close" if field == "adjclose" else field


def _read_csv(path: str | Path) -> pd.DataFrame:
    """Read a CSV, raising a clear error if the file is missing."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")
    return pd.read_csv(path)
