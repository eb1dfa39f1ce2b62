"""Combine per-batch fit artifacts into one model artifact.

Single-fit paradigms are batched only to bound memory, so their first
successful batch is passed through. RAW_COEFFICIENT artifacts come from
independently fitted batches and are merged by fixed-effect pooling:

    w_i      = n_i / sum(n)
    coef     = sum_i w_i * coef_i
    cov      = sum_i w_i^2 * cov_i
    std_err  = sqrt(diag(cov))

Both sums are order independent, so the result does not depend on the order
in which batches finished.
"""

from typing import Callable, Dict, List

import numpy as np
import pandas as pd

from pooling_bench.core.artifacts import ArtifactKind, ModelArtifact
from pooling_bench.core.logger import get_logger

logger = get_logger(__name__)


def _pass_through(artifacts: List[ModelArtifact]) -> ModelArtifact:
    return artifacts[0]


def _pool_fixed_effect(artifacts: List[ModelArtifact]) -> ModelArtifact:
    """Sample-size weighted coefficients with fixed-effect variance combination."""
    terms = artifacts[0].coefficients.index
    for artifact in artifacts[1:]:
        if not artifact.coefficients.index.equals(terms):
            raise ValueError(
                f"Cannot pool coefficients over different terms: "
                f"{list(terms)} vs {list(artifact.coefficients.index)}"
            )

    n_obs = np.array([a.n_obs for a in artifacts], dtype=float)
    total_obs = n_obs.sum()
    if total_obs <= 0:
        raise ValueError("Cannot pool coefficients backed by zero observations")
    weights = n_obs / total_obs

    coef_matrix = np.vstack([a.coefficients.loc[terms].values for a in artifacts])
    combined_coef = weights @ coef_matrix

    cov_stack = np.stack([a.covariance.loc[terms, terms].values for a in artifacts])
    combined_cov = np.tensordot(weights ** 2, cov_stack, axes=1)

    covariance = pd.DataFrame(combined_cov, index=terms, columns=terms)
    std_errors = pd.Series(np.sqrt(np.clip(np.diag(combined_cov), 0, None)), index=terms)

    return ModelArtifact.raw_coefficients(
        coefficients=pd.Series(combined_coef, index=terms),
        covariance=covariance,
        n_obs=int(total_obs),
        feature_names=artifacts[0].feature_names,
        std_errors=std_errors,
        diagnostics={
            'n_models': len(artifacts),
            'total_obs': int(total_obs),
            'weights': weights.tolist()
        }
    )


COMBINATION_RULES: Dict[ArtifactKind, Callable[[List[ModelArtifact]], ModelArtifact]] = {
    ArtifactKind.BUNDLE: _pass_through,
    ArtifactKind.OLS: _pass_through,
    ArtifactKind.ROBUST: _pass_through,
    ArtifactKind.GLM: _pass_through,
    ArtifactKind.BAYESIAN_HIERARCHICAL: _pass_through,
    ArtifactKind.BAYESIAN_POOLED: _pass_through,
    ArtifactKind.MIXED_EFFECTS: _pass_through,
    ArtifactKind.RAW_COEFFICIENT: _pool_fixed_effect,
}


class ResultCombiner:
    """Merges successful batch artifacts, dispatching on the first artifact's kind."""

    def __init__(self, rules: Dict[ArtifactKind, Callable] = None):
        self.rules = dict(COMBINATION_RULES if rules is None else rules)

    def combine(self, artifacts: List[ModelArtifact]) -> ModelArtifact:
        """
        Combine one or more batch artifacts.

        Args:
            artifacts: Non-empty list of successful batch artifacts

        Returns:
            Single combined ModelArtifact

        Raises:
            ValueError: If artifacts is empty or RAW_COEFFICIENT terms disagree
        """
        if not artifacts:
            raise ValueError("combine() needs at least one artifact")

        kind = artifacts[0].kind
        rule = self.rules.get(kind)
        if rule is None:
            logger.warning(f"No combination rule for {kind.value} artifacts, using the first result")
            return artifacts[0]

        logger.debug(f"Combining {len(artifacts)} {kind.value} artifact(s)")
        return rule(artifacts)


def combine(artifacts: List[ModelArtifact]) -> ModelArtifact:
    """Module-level shortcut using the default combination rules."""
    return ResultCombiner().combine(artifacts)
