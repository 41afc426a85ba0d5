"""Correlation, covariance and principal-component decomposition of returns."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from stock_analyzer.errors import DataValidationError


@dataclass(frozen=True)
class FactorDecomposition:
    """Principal components of standardized returns."""

    explained_variance_ratio: pd.Series  # indexed PC1..PCk, descending
    loadings: pd.DataFrame               # tickers x components
    n_observations: int

    def cumulative_explained(self) -> pd.Series:
        return self.explained_variance_ratio.cumsum()

    def to_dict(self) -> dict:
        return {
            "explained_variance_ratio": {
                k: round(float(v), 6) for k, v in self.explained_variance_ratio.items()
            },
            "loadings": {
                pc: {t: round(float(v), 6) for t, v in col.items()}
                for pc, col in self.loadings.items()
            },
            "n_observations": self.n_observations,
        }


def correlation_matrix(returns: pd.DataFrame) -> pd.DataFrame:
    """Pairwise-complete Pearson correlation of asset returns."""
    return returns.corr(method="pearson")


def covariance_matrix(returns: pd.DataFrame) -> pd.DataFrame:
    """Pairwise-complete daily covariance of asset returns."""
    return returns.cov()


def principal_components(
    returns: pd.DataFrame,
    n_components: int | None = None,
) -> FactorDecomposition:
    """
    Fit PCA on standardized returns.

    Only dates where every ticker has a return are used. Components are
    ordered by explained variance.

    Args:
        returns: Wide return matrix (dates x tickers).
        n_components: Number of components to keep (default: all).
    """
    complete = returns.dropna(how="any")
    if len(complete) < 2:
        raise DataValidationError("PCA needs at least two complete return observations")

    max_components = min(complete.shape)
    k = max_components if n_components is None else min(n_components, max_components)

    scaled = StandardScaler().fit_transform(complete.values)
    pca = PCA(n_components=k).fit(scaled)

    labels = [f"PC{i + 1}" for i in range(k)]
    ratio = pd.Series(pca.explained_variance_ratio_, index=labels, name="explained_variance")
    loadings = pd.DataFrame(pca.components_.T, index=complete.columns, columns=labels)

    return FactorDecomposition(
        explained_variance_ratio=ratio,
        loadings=loadings,
        n_observations=len(complete),
    )


def is_positive_semidefinite(cov: np.ndarray, tol: float = 1e-10) -> bool:
    """True when a symmetric matrix has no eigenvalue below -tol."""
    cov = np.asarray(cov, dtype=float)
    if cov.ndim != 2 or cov.shape[0] != cov.shape[1]:
        return False
    if not np.allclose(cov, cov.T, atol=1e-12):
        return False
    return bool(np.linalg.eigvalsh(cov).min() >= -tol)
