"""Regression models predicting patient severity scores from clinical records."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import GradientBoostingRegressor, RandomForestRegressor
from sklearn.impute import SimpleImputer
from sklearn.linear_model import LinearRegression
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from sklearn.model_selection import train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler

from stock_analyzer.errors import DataValidationError

logger = logging.getLogger(__name__)

DEFAULT_TARGET = "Target_Severity_Score"
DEFAULT_ID_COLUMNS = ("Patient_ID",)
MIN_ROWS = 10


@dataclass(frozen=True)
class ModelMetrics:
    mae: float
    rmse: float
    r2: float

    def to_dict(self) -> dict:
        return {"MAE": round(self.mae, 4), "RMSE": round(self.rmse, 4), "R2": round(self.r2, 4)}


@dataclass(frozen=True)
class SeverityReport:
    """Held-out metrics for each model and random-forest feature importances."""

    target: str
    n_train: int
    n_test: int
    metrics: dict[str, ModelMetrics]
    feature_importances: pd.Series

    @property
    def best_model(self) -> str:
        return min(self.metrics, key=lambda name: self.metrics[name].rmse)

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "n_train": self.n_train,
            "n_test": self.n_test,
            "metrics": {name: m.to_dict() for name, m in self.metrics.items()},
            "best_model": self.best_model,
            "top_features": {
                k: round(float(v), 4) for k, v in self.feature_importances.head(10).items()
            },
        }


def prepare_features(
    df: pd.DataFrame,
    target: str = DEFAULT_TARGET,
    id_columns: tuple[str, ...] = DEFAULT_ID_COLUMNS,
) -> tuple[pd.DataFrame, pd.Series]:
    """
    Split a patient table into features and target.

    Identifier columns are dropped, as are rows without a target value.
    """
    if target not in df.columns:
        raise DataValidationError(f"Patient records missing target column {target!r}")

    usable = df.dropna(subset=[target])
    if len(usable) < MIN_ROWS:
        raise DataValidationError(
            f"Need at least {MIN_ROWS} records with a {target!r} value, got {len(usable)}"
        )

    X = usable.drop(columns=[target, *[c for c in id_columns if c in usable.columns]])
    if X.shape[1] == 0:
        raise DataValidationError("Patient records have no feature columns")
    y = usable[target].astype(float)
    return X, y


def build_preprocessor(X: pd.DataFrame, scale: bool = False) -> ColumnTransformer:
    """Median-impute numeric columns; mode-impute and one-hot encode categoricals."""
    numeric = X.select_dtypes(include="number").columns.tolist()
    categorical = [c for c in X.columns if c not in numeric]

    numeric_steps = [("impute", SimpleImputer(strategy="median"))]
    if scale:
        numeric_steps.append(("scale", StandardScaler()))

    return ColumnTransformer(
        transformers=[
            ("num", Pipeline(numeric_steps), numeric),
            (
                "cat",
                Pipeline([
                    ("impute", SimpleImputer(strategy="most_frequent")),
                    ("encode", OneHotEncoder(handle_unknown="ignore")),
                ]),
                categorical,
            ),
        ]
    )


def build_models(X: pd.DataFrame, seed: int = 42) -> dict[str, Pipeline]:
    """Linear regression, random forest and gradient boosting pipelines."""
    return {
        "linear_regression": Pipeline([
            ("prep", build_preprocessor(X, scale=True)),
            ("model", LinearRegression()),
        ]),
        "random_forest": Pipeline([
            ("prep", build_preprocessor(X)),
            ("model", RandomForestRegressor(n_estimators=200, random_state=seed, n_jobs=-1)),
        ]),
        "gradient_boosting": Pipeline([
            ("prep", build_preprocessor(X)),
            ("model", GradientBoostingRegressor(random_state=seed)),
        ]),
    }


def fit_severity_models(
    df: pd.DataFrame,
    target: str = DEFAULT_TARGET,
    test_size: float = 0.2,
    seed: int = 42,
) -> SeverityReport:
    """Fit every model on a train split and score it on the held-out split."""
    X, y = prepare_features(df, target)
    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=test_size, random_state=seed
    )

    metrics: dict[str, ModelMetrics] = {}
    importances = pd.Series(dtype=float)
    for name, pipeline in build_models(X, seed).items():
        pipeline.fit(X_train, y_train)
        pred = pipeline.predict(X_test)
        metrics[name] = ModelMetrics(
            mae=float(mean_absolute_error(y_test, pred)),
            rmse=float(np.sqrt(mean_squared_error(y_test, pred))),
            r2=float(r2_score(y_test, pred)),
        )
        logger.info(
            "%s: MAE=%.4f RMSE=%.4f R2=%.4f",
            name, metrics[name].mae, metrics[name].rmse, metrics[name].r2,
        )
        if name == "random_forest":
            feature_names = pipeline.named_steps["prep"].get_feature_names_out()
            importances = pd.Series(
                pipeline.named_steps["model"].feature_importances_,
                index=feature_names,
                name="importance",
            ).sort_values(ascending=False)

    return SeverityReport(
        target=target,
        n_train=len(X_train),
        n_test=len(X_test),
        metrics=metrics,
        feature_importances=importances,
    )
