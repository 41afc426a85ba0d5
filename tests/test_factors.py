"""Tests for correlation and PCA factor decomposition."""

import numpy as np
import pandas as pd
import pytest

from stock_analyzer.errors import DataValidationError
from stock_analyzer.factors import (
    correlation_matrix,
    covariance_matrix,
    is_positive_semidefinite,
    principal_components,
)


def _make_returns(n_days: int = 250, seed: int = 42) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    market = rng.normal(0, 0.01, n_days)
    return pd.DataFrame({
        "AAA": market + rng.normal(0, 0.002, n_days),
        "BBB": market + rng.normal(0, 0.002, n_days),
        "CCC": market + rng.normal(0, 0.002, n_days),
        "DDD": rng.normal(0, 0.01, n_days),
    }, index=pd.bdate_range("2023-01-02", periods=n_days))


def test_correlation_diagonal_is_one():
    corr = correlation_matrix(_make_returns())
    for i in range(4):
        assert abs(corr.iloc[i, i] - 1.0) < 1e-10


def test_correlation_is_pairwise_complete():
    returns = _make_returns()
    returns.iloc[:100, 3] = np.nan
    corr = correlation_matrix(returns)
    assert not corr.isna().any().any()
    expected = returns["AAA"].iloc[100:].corr(returns["DDD"].iloc[100:])
    assert abs(corr.loc["AAA", "DDD"] - expected) < 1e-12


def test_covariance_is_symmetric():
    cov = covariance_matrix(_make_returns())
    np.testing.assert_allclose(cov.values, cov.values.T)
    assert is_positive_semidefinite(cov.values)


def test_explained_variance_ordered_and_complete():
    pca = principal_components(_make_returns())
    ratios = pca.explained_variance_ratio.values
    assert list(pca.explained_variance_ratio.index) == ["PC1", "PC2", "PC3", "PC4"]
    assert np.all(np.diff(ratios) <= 1e-12)
    assert abs(ratios.sum() - 1.0) < 1e-9


def test_common_factor_dominates_first_component():
    pca = principal_components(_make_returns())
    assert pca.explained_variance_ratio["PC1"] > 0.6
    loadings = pca.loadings["PC1"]
    # the three market-driven tickers load with the same sign
    signs = np.sign(loadings[["AAA", "BBB", "CCC"]])
    assert len(set(signs)) == 1


def test_loadings_shape():
    pca = principal_components(_make_returns(), n_components=2)
    assert pca.loadings.shape == (4, 2)
    assert pca.n_observations == 250


def test_pca_needs_complete_rows():
    returns = _make_returns(n_days=5)
    returns.iloc[:, 0] = np.nan
    with pytest.raises(DataValidationError):
        principal_components(returns)


def test_positive_semidefinite_check():
    assert is_positive_semidefinite(np.eye(3))
    assert not is_positive_semidefinite(np.array([[1.0, 2.0], [2.0, 1.0]]))
    assert not is_positive_semidefinite(np.array([[1.0, 0.5], [0.0, 1.0]]))
