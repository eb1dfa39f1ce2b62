"""Frequentist regression fits: OLS, Gaussian GLM and robust M-estimation.

Each fit function takes one batch DataFrame and returns a ModelArtifact, so it
can be handed directly to BatchExecutor.run().

Use case: No-Pooling per-entity baselines (OLS, GLM) and the Complete-Pooling
robust regression.
"""

from typing import List

import pandas as pd
import statsmodels.api as sm

from pooling_bench.core.artifacts import ArtifactKind, ModelArtifact


def design_matrix(df: pd.DataFrame, features: List[str]) -> pd.DataFrame:
    """Feature columns plus a leading 'const' column."""
    missing = [col for col in features if col not in df.columns]
    if missing:
        raise KeyError(f"Missing feature columns: {missing}")
    return sm.add_constant(df[features].astype(float), has_constant='add')


def _results_to_artifact(kind: ArtifactKind, results, features: List[str],
                         diagnostics: dict, as_raw: bool) -> ModelArtifact:
    artifact = ModelArtifact(
        kind,
        coefficients=results.params,
        covariance=results.cov_params(),
        n_obs=int(results.nobs),
        feature_names=features,
        diagnostics=diagnostics,
        fitted=results
    )
    if as_raw:
        return artifact.to_raw_coefficients()
    return artifact


def fit_ols(df: pd.DataFrame, features: List[str], target: str = 'close',
            as_raw: bool = False) -> ModelArtifact:
    """
    Ordinary least squares of target on features.

    Args:
        df: Training rows
        features: Feature columns
        target: Target column
        as_raw: Return a RAW_COEFFICIENT artifact for fixed-effect pooling

    Returns:
        OLS (or RAW_COEFFICIENT) ModelArtifact
    """
    results = sm.OLS(df[target].astype(float), design_matrix(df, features), missing='drop').fit()
    diagnostics = {
        'rsquared': float(results.rsquared),
        'rsquared_adj': float(results.rsquared_adj),
        'aic': float(results.aic),
        'residual_std': float(results.resid.std())
    }
    return _results_to_artifact(ArtifactKind.OLS, results, features, diagnostics, as_raw)


def fit_glm(df: pd.DataFrame, features: List[str], target: str = 'close',
            as_raw: bool = False) -> ModelArtifact:
    """
    Generalized linear model, Gaussian family with identity link.

    Args:
        df: Training rows
        features: Feature columns
        target: Target column
        as_raw: Return a RAW_COEFFICIENT artifact for fixed-effect pooling

    Returns:
        GLM (or RAW_COEFFICIENT) ModelArtifact
    """
    family = sm.families.Gaussian(link=sm.families.links.Identity())
    results = sm.GLM(df[target].astype(float), design_matrix(df, features),
                     family=family, missing='drop').fit()
    diagnostics = {
        'deviance': float(results.deviance),
        'aic': float(results.aic),
        'scale': float(results.scale)
    }
    return _results_to_artifact(ArtifactKind.GLM, results, features, diagnostics, as_raw)


def fit_robust(df: pd.DataFrame, features: List[str], target: str = 'close',
               huber_t: float = 1.345, maxiter: int = 50,
               as_raw: bool = False) -> ModelArtifact:
    """
    Robust linear regression (M-estimation via IRLS) with Huber's T norm.

    Huber weights bound the influence of outlying residuals: observations with
    |residual / scale| > huber_t are down-weighted.

    Args:
        df: Training rows
        features: Feature columns
        target: Target column
        huber_t: Huber tuning constant
        maxiter: IRLS iteration cap
        as_raw: Return a RAW_COEFFICIENT artifact for fixed-effect pooling

    Returns:
        ROBUST (or RAW_COEFFICIENT) ModelArtifact
    """
    model = sm.RLM(df[target].astype(float), design_matrix(df, features),
                   M=sm.robust.norms.HuberT(t=huber_t), missing='drop')
    results = model.fit(maxiter=maxiter)
    diagnostics = {
        'scale': float(results.scale),
        'norm': 'HuberT',
        'huber_t': huber_t,
        'downweighted_share': float((results.weights < 1).mean())
    }
    return _results_to_artifact(ArtifactKind.ROBUST, results, features, diagnostics, as_raw)
