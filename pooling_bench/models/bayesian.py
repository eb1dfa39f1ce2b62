"""Bayesian regressions sampled with PyMC (NUTS).

Three model shapes:
- fit_bayesian_regression(likelihood='normal'): single-level regression with
  weakly-informative priors (No-Pooling, one model per entity)
- fit_bayesian_regression(likelihood='student_t'): pooled regression with a
  heavy-tailed observation model (Complete-Pooling)
- fit_hierarchical_bayes: random intercepts for benchmark group and
  entity-within-group (Partial-Pooling)

Point estimates are posterior means; the coefficient covariance is the sample
covariance of the posterior draws.
"""

from typing import Dict, List, Optional

import arviz as az
import numpy as np
import pandas as pd
import pymc as pm

from pooling_bench.core.artifacts import ArtifactKind, ModelArtifact
from pooling_bench.core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_BUDGET = {'chains': 2, 'iterations': 2000, 'warmup': 1000, 'target_accept': 0.8}


def sample_posterior(model: pm.Model, budget: Dict, random_seed: Optional[int] = None):
    """
    Run NUTS with a fixed sampling budget.

    Args:
        model: PyMC model
        budget: Dict with 'chains', 'iterations' (total per chain, warm-up
                included), 'warmup' and optional 'target_accept'
        random_seed: Seed for reproducible chains

    Returns:
        arviz.InferenceData
    """
    budget = {**DEFAULT_BUDGET, **(budget or {})}
    draws = int(budget['iterations']) - int(budget['warmup'])
    if draws < 1:
        raise ValueError(f"iterations ({budget['iterations']}) must exceed warmup ({budget['warmup']})")

    logger.debug(f"Sampling {budget['chains']} chain(s) x {draws} draws after {budget['warmup']} warm-up")
    with model:
        return pm.sample(
            draws=draws,
            tune=int(budget['warmup']),
            chains=int(budget['chains']),
            cores=1,
            target_accept=float(budget['target_accept']),
            random_seed=random_seed,
            progressbar=False,
            compute_convergence_checks=False
        )


def _flat_draws(idata, var_name: str) -> np.ndarray:
    """Posterior draws of one variable as (n_samples, ...) array."""
    values = idata.posterior[var_name].values  # (chain, draw, ...)
    return values.reshape((-1,) + values.shape[2:])


def _sampling_diagnostics(idata, var_names: List[str], budget: Dict) -> Dict:
    diagnostics = {
        'chains': int(idata.posterior.sizes['chain']),
        'draws': int(idata.posterior.sizes['draw']),
        'warmup': int(budget.get('warmup', DEFAULT_BUDGET['warmup'])),
        'divergences': int(idata.sample_stats['diverging'].values.sum())
    }
    summary = az.summary(idata, var_names=var_names, kind='diagnostics')
    diagnostics['max_r_hat'] = float(summary['r_hat'].max())
    diagnostics['min_ess_bulk'] = float(summary['ess_bulk'].min())
    return diagnostics


def _coefficient_summary(idata, features: List[str]):
    terms = ['const'] + list(features)
    draws = np.column_stack([_flat_draws(idata, 'intercept'), _flat_draws(idata, 'beta')])
    coefficients = pd.Series(draws.mean(axis=0), index=terms)
    if draws.shape[0] > 1:
        covariance = pd.DataFrame(np.atleast_2d(np.cov(draws, rowvar=False)), index=terms, columns=terms)
    else:
        covariance = pd.DataFrame(np.zeros((len(terms), len(terms))), index=terms, columns=terms)
    return coefficients, covariance


def _clean_rows(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    clean = df.dropna(subset=columns)
    if clean.empty:
        raise ValueError("No complete rows to fit")
    return clean


def fit_bayesian_regression(df: pd.DataFrame,
                            features: List[str],
                            target: str = 'close',
                            slope_scale: float = 10.0,
                            intercept_scale: float = 10.0,
                            sigma_scale: float = 10.0,
                            likelihood: str = 'normal',
                            budget: Optional[Dict] = None,
                            random_seed: Optional[int] = None) -> ModelArtifact:
    """
    Single-level Bayesian linear regression.

    Priors:
        slopes     ~ Normal(0, slope_scale)
        intercept  ~ StudentT(3, 0, intercept_scale)
        sigma      ~ HalfStudentT(3, sigma_scale)
        nu         ~ Gamma(2, 0.1)            (student_t likelihood only)

    Args:
        df: Training rows
        features: Feature columns
        target: Target column
        slope_scale: Prior scale of the slopes
        intercept_scale: Prior scale of the intercept
        sigma_scale: Prior scale of the noise
        likelihood: 'normal' or 'student_t'
        budget: Sampling budget (chains, iterations, warmup, target_accept)
        random_seed: Seed for the sampler

    Returns:
        BAYESIAN_POOLED ModelArtifact (posterior-mean prediction)
    """
    if likelihood not in ('normal', 'student_t'):
        raise ValueError(f"Unknown likelihood: {likelihood}. Use 'normal' or 'student_t'")

    clean = _clean_rows(df, list(features) + [target])
    X = clean[features].to_numpy(dtype=float)
    y = clean[target].to_numpy(dtype=float)

    with pm.Model() as model:
        intercept = pm.StudentT('intercept', nu=3, mu=0, sigma=intercept_scale)
        beta = pm.Normal('beta', mu=0, sigma=slope_scale, shape=len(features))
        sigma = pm.HalfStudentT('sigma', nu=3, sigma=sigma_scale)
        mu = intercept + pm.math.dot(X, beta)
        if likelihood == 'student_t':
            nu = pm.Gamma('nu', alpha=2, beta=0.1)
            pm.StudentT('y', nu=nu, mu=mu, sigma=sigma, observed=y)
        else:
            pm.Normal('y', mu=mu, sigma=sigma, observed=y)

    budget = {**DEFAULT_BUDGET, **(budget or {})}
    idata = sample_posterior(model, budget, random_seed)

    coefficients, covariance = _coefficient_summary(idata, features)
    var_names = ['intercept', 'beta', 'sigma'] + (['nu'] if likelihood == 'student_t' else [])
    diagnostics = _sampling_diagnostics(idata, var_names, budget)
    diagnostics['likelihood'] = likelihood
    diagnostics['sigma_mean'] = float(_flat_draws(idata, 'sigma').mean())

    return ModelArtifact(
        ArtifactKind.BAYESIAN_POOLED,
        coefficients=coefficients,
        covariance=covariance,
        n_obs=len(clean),
        feature_names=features,
        diagnostics=diagnostics,
        fitted=idata
    )


def fit_hierarchical_bayes(df: pd.DataFrame,
                           features: List[str],
                           target: str = 'close',
                           group_col: str = 'benchmark_group',
                           entity_col: str = 'entity_id',
                           slope_scale: float = 2.0,
                           intercept_scale: float = 2.0,
                           group_sd_scale: float = 1.0,
                           budget: Optional[Dict] = None,
                           random_seed: Optional[int] = None) -> ModelArtifact:
    """
    Hierarchical regression with nested random intercepts (entity within group).

    y ~ Normal(intercept + a_group[g] + a_entity[g:e] + X @ beta, sigma)

    Priors:
        slopes            ~ Normal(0, slope_scale)
        intercept         ~ StudentT(3, 0, intercept_scale)
        sd_group, sd_ent  ~ HalfCauchy(group_sd_scale)
        a_group, a_entity ~ non-centred Normal(0, sd)

    Args:
        df: Merged multi-entity training rows
        features: Feature columns
        target: Target column
        group_col: Outer grouping column (benchmark group)
        entity_col: Inner grouping column (entity id)
        slope_scale: Prior scale of the slopes
        intercept_scale: Prior scale of the intercept
        group_sd_scale: HalfCauchy scale of the random-intercept SDs
        budget: Sampling budget (chains, iterations, warmup, target_accept)
        random_seed: Seed for the sampler

    Returns:
        BAYESIAN_HIERARCHICAL ModelArtifact with posterior-mean group effects
    """
    clean = _clean_rows(df, list(features) + [target, group_col, entity_col])
    X = clean[features].to_numpy(dtype=float)
    y = clean[target].to_numpy(dtype=float)

    groups = pd.Categorical(clean[group_col].astype(str))
    nested = pd.Categorical(clean[group_col].astype(str) + ':' + clean[entity_col].astype(str))
    group_idx = np.asarray(groups.codes, dtype='int64')
    nested_idx = np.asarray(nested.codes, dtype='int64')

    with pm.Model() as model:
        intercept = pm.StudentT('intercept', nu=3, mu=0, sigma=intercept_scale)
        beta = pm.Normal('beta', mu=0, sigma=slope_scale, shape=len(features))
        sd_group = pm.HalfCauchy('sd_group', beta=group_sd_scale)
        sd_entity = pm.HalfCauchy('sd_entity', beta=group_sd_scale)
        z_group = pm.Normal('z_group', mu=0, sigma=1, shape=len(groups.categories))
        z_entity = pm.Normal('z_entity', mu=0, sigma=1, shape=len(nested.categories))
        group_effect = pm.Deterministic('group_effect', z_group * sd_group)
        entity_effect = pm.Deterministic('entity_effect', z_entity * sd_entity)
        sigma = pm.HalfStudentT('sigma', nu=3, sigma=2.5)
        mu = intercept + group_effect[group_idx] + entity_effect[nested_idx] + pm.math.dot(X, beta)
        pm.Normal('y', mu=mu, sigma=sigma, observed=y)

    budget = {**DEFAULT_BUDGET, **(budget or {})}
    idata = sample_posterior(model, budget, random_seed)

    coefficients, covariance = _coefficient_summary(idata, features)
    diagnostics = _sampling_diagnostics(
        idata, ['intercept', 'beta', 'sd_group', 'sd_entity', 'sigma'], budget
    )
    diagnostics.update({
        'group_col': group_col,
        'entity_col': entity_col,
        'sd_group_mean': float(_flat_draws(idata, 'sd_group').mean()),
        'sd_entity_mean': float(_flat_draws(idata, 'sd_entity').mean()),
        'sigma_mean': float(_flat_draws(idata, 'sigma').mean())
    })

    group_effects = {
        'group': pd.Series(_flat_draws(idata, 'group_effect').mean(axis=0),
                           index=list(groups.categories)),
        'entity_in_group': pd.Series(_flat_draws(idata, 'entity_effect').mean(axis=0),
                                     index=list(nested.categories))
    }

    return ModelArtifact(
        ArtifactKind.BAYESIAN_HIERARCHICAL,
        coefficients=coefficients,
        covariance=covariance,
        n_obs=len(clean),
        feature_names=features,
        diagnostics=diagnostics,
        fitted=idata,
        group_effects=group_effects
    )
