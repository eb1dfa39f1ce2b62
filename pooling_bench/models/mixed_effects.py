"""Linear mixed-effects regression fitted by REML (statsmodels MixedLM).

Two-level random-intercept structure matching the hierarchical Bayesian fit:
a random intercept per benchmark group plus an entity variance component
nested within the group.
"""

from typing import List

import pandas as pd
import statsmodels.formula.api as smf

from pooling_bench.core.artifacts import ArtifactKind, ModelArtifact
from pooling_bench.core.logger import get_logger

logger = get_logger(__name__)


def fit_mixed_effects(df: pd.DataFrame,
                      features: List[str],
                      target: str = 'close',
                      group_col: str = 'benchmark_group',
                      entity_col: str = 'entity_id',
                      maxiter: int = 200,
                      method: str = 'lbfgs') -> ModelArtifact:
    """
    Fit target ~ features + (1 | group) + (1 | group:entity) by REML.

    Args:
        df: Merged multi-entity training rows
        features: Fixed-effect feature columns
        target: Target column
        group_col: Outer grouping column
        entity_col: Inner grouping column (variance component within group)
        maxiter: Optimizer iteration cap (guarantees termination)
        method: scipy optimizer used by MixedLM

    Returns:
        MIXED_EFFECTS ModelArtifact; coefficients are the fixed effects only
    """
    clean = df.dropna(subset=list(features) + [target, group_col, entity_col]).copy()
    if clean.empty:
        raise ValueError("No complete rows to fit")
    clean[group_col] = clean[group_col].astype(str)
    clean[entity_col] = clean[entity_col].astype(str)

    formula = f"{target} ~ " + " + ".join(features)
    model = smf.mixedlm(
        formula,
        clean,
        groups=clean[group_col],
        re_formula='1',
        vc_formula={entity_col: f"0 + C({entity_col})"}
    )
    results = model.fit(reml=True, method=[method], maxiter=maxiter)
    if not results.converged:
        logger.warning(f"MixedLM did not converge within {maxiter} iterations")

    fe_names = list(results.fe_params.index)
    terms = ['const' if name == 'Intercept' else name for name in fe_names]

    coefficients = pd.Series(results.fe_params.values, index=terms)
    fe_cov = results.cov_params().loc[fe_names, fe_names]
    covariance = pd.DataFrame(fe_cov.values, index=terms, columns=terms)

    diagnostics = {
        'converged': bool(results.converged),
        'reml': True,
        'llf': float(results.llf),
        'scale': float(results.scale),
        'group_variance': float(results.cov_re.iloc[0, 0]),
        'entity_variance': float(results.vcomp[0]) if len(results.vcomp) else None,
        'n_groups': int(clean[group_col].nunique())
    }

    return ModelArtifact(
        ArtifactKind.MIXED_EFFECTS,
        coefficients=coefficients,
        covariance=covariance,
        n_obs=len(clean),
        feature_names=features,
        diagnostics=diagnostics,
        fitted=results
    )
