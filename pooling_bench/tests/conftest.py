"""Pytest configuration and shared fixtures.

Provides a small synthetic panel, a fast run config and stand-ins for the
MCMC fits so orchestration tests run in seconds.
"""

import numpy as np
import pandas as pd
import pytest

from pooling_bench.config.settings import build_run_config
from pooling_bench.core.artifacts import ArtifactKind, ModelArtifact
from pooling_bench.models.regression import fit_ols

TEST_METADATA = {
    'AAPL': {'benchmark_group': 'NASDAQ', 'category_label': 'Tech'},
    'XOM': {'benchmark_group': 'SP500', 'category_label': 'NonTech'},
}


def make_panel(n_days: int = 30, entities=('AAPL', 'XOM'), benchmarks=('NASDAQ', 'SP500'),
               start: str = '2024-01-01', seed: int = 0) -> pd.DataFrame:
    """Synthetic raw panel: one row per (entity, day), close linear in the features."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range(start, periods=n_days, freq='D')

    frames = []
    for i, entity in enumerate(list(entities) + list(benchmarks)):
        level = 100.0 + 50.0 * i
        close = level + np.cumsum(rng.normal(0, 1, n_days))
        frame = pd.DataFrame({
            'date': dates,
            'entity_id': entity,
            'ma5': close + rng.normal(0, 0.5, n_days),
            'ma20': close + rng.normal(0, 1.0, n_days),
            'rsi': rng.uniform(30, 70, n_days),
            'volatility': rng.uniform(0.01, 0.05, n_days),
        })
        frame['close'] = (0.6 * frame['ma5'] + 0.4 * frame['ma20']
                          + 0.01 * frame['rsi'] + rng.normal(0, 0.2, n_days))
        frames.append(frame)

    return pd.concat(frames, ignore_index=True)[
        ['date', 'entity_id', 'close', 'ma5', 'ma20', 'rsi', 'volatility']
    ]


def fast_bayes(df, features, target='close', likelihood='normal', **kwargs):
    """OLS estimates dressed as a posterior-mean Bayesian artifact."""
    ols = fit_ols(df, features, target=target)
    return ModelArtifact(
        ArtifactKind.BAYESIAN_POOLED,
        coefficients=ols.coefficients,
        covariance=ols.covariance,
        n_obs=ols.n_obs,
        feature_names=features,
        diagnostics={'likelihood': likelihood, 'random_seed': kwargs.get('random_seed')}
    )


def fast_hierarchical(df, features, target='close', group_col='benchmark_group',
                      entity_col='entity_id', **kwargs):
    """OLS estimates with zero group effects, tagged as a hierarchical artifact."""
    ols = fit_ols(df, features, target=target)
    groups = sorted(df[group_col].astype(str).unique())
    return ModelArtifact(
        ArtifactKind.BAYESIAN_HIERARCHICAL,
        coefficients=ols.coefficients,
        covariance=ols.covariance,
        n_obs=ols.n_obs,
        feature_names=features,
        diagnostics={'group_col': group_col, 'entity_col': entity_col},
        group_effects={'group': pd.Series(0.0, index=groups),
                       'entity_in_group': pd.Series(dtype=float)}
    )


@pytest.fixture
def raw_panel():
    """2 tradable entities + 2 benchmarks x 30 daily rows."""
    return make_panel()


@pytest.fixture
def test_config():
    """Run config restricted to AAPL/XOM with tiny sampling budgets."""
    tiny = {'chains': 1, 'iterations': 60, 'warmup': 30, 'target_accept': 0.8}
    return build_run_config({
        'entity_metadata': TEST_METADATA,
        'sampling_budgets': {
            'no_pooling': tiny,
            'partial_pooling': tiny,
            'complete_pooling': tiny,
        },
        'cv': {'k': 3},
        'seed': 7
    })


@pytest.fixture
def fast_fits(monkeypatch):
    """Replace the MCMC fits inside the fitters with OLS-backed stand-ins."""
    monkeypatch.setattr('pooling_bench.models.no_pooling.fit_bayesian_regression', fast_bayes)
    monkeypatch.setattr('pooling_bench.models.complete_pooling.fit_bayesian_regression', fast_bayes)
    monkeypatch.setattr('pooling_bench.models.partial_pooling.fit_hierarchical_bayes', fast_hierarchical)


@pytest.fixture
def prepared(raw_panel, test_config):
    """raw_panel after prepare_model_data()."""
    from pooling_bench.features.preparation import prepare_model_data
    return prepare_model_data(raw_panel, test_config)
