"""Partial-Pooling: one model over all entities with group-level random intercepts.

- hierarchical_bayes: PyMC model, random intercepts for benchmark group and
  entity within group
- mixed_effects: statsmodels MixedLM, same random structure, REML

Entities borrow strength from their benchmark group; entity intercepts are
shrunk toward the group mean.
"""

from functools import partial
from typing import Dict, Optional

import pandas as pd

from pooling_bench.config.settings import build_run_config
from pooling_bench.core.artifacts import ModelCollection, attempt
from pooling_bench.core.batch_executor import BatchExecutor
from pooling_bench.core.logger import get_logger
from pooling_bench.core.reproducibility import RandomContext
from pooling_bench.features.preparation import fill_entity_gaps, order_by_date
from pooling_bench.models.bayesian import fit_hierarchical_bayes
from pooling_bench.models.mixed_effects import fit_mixed_effects

logger = get_logger(__name__)

PARADIGM = 'partial_pooling'


def fit_partial_pooling(data: pd.DataFrame,
                        config: Optional[Dict] = None,
                        random_context: Optional[RandomContext] = None) -> ModelCollection:
    """
    Fit the hierarchical Bayesian model and the REML mixed-effects model.

    Args:
        data: Prepared (merged) rows, with the benchmark group column attached
        config: Run config
        random_context: Seed source (default: seeded from config['seed'])

    Returns:
        ModelCollection with 'hierarchical_bayes' and 'mixed_effects' (None on failure)
    """
    config = config or build_run_config()
    random_context = (random_context or RandomContext(config['seed'])).child(PARADIGM)
    features = config['pooled_feature_columns']
    target = config['target_col']

    data = fill_entity_gaps(data, features + [target], config['entity_col'], config['date_col'])
    data = order_by_date(data, config['date_col'], config['entity_col'])
    executor = BatchExecutor.from_config(config['batch'])

    def hierarchical(batch: pd.DataFrame):
        return fit_hierarchical_bayes(
            batch,
            features,
            target=target,
            group_col=config['group_col'],
            entity_col=config['entity_col'],
            budget=config['sampling_budgets'][PARADIGM],
            random_seed=random_context.seed_for('hierarchical_bayes'),
            **config['priors'][PARADIGM]
        )

    def mixed(batch: pd.DataFrame):
        return fit_mixed_effects(
            batch,
            features,
            target=target,
            group_col=config['group_col'],
            entity_col=config['entity_col'],
            **config['mixed_effects']
        )

    logger.info(f"Fitting Partial-Pooling models on {len(data)} rows")
    artifacts = {}
    for name, fit_fn in (('hierarchical_bayes', hierarchical), ('mixed_effects', mixed)):
        outcome = attempt(partial(executor.run, label=name), data, fit_fn, label=name)
        if not outcome.ok:
            logger.error(f"{name} failed: {outcome.describe_error()}")
        artifacts[name] = outcome.artifact if outcome.ok else None

    return ModelCollection(PARADIGM, artifacts)
