"""Complete-Pooling: a single model over all entities, no entity effects.

- robust_regression: Huber M-estimation (statsmodels RLM)
- pooled_bayes: Bayesian regression with a Student-t likelihood
"""

from functools import partial
from typing import Dict, Optional

import pandas as pd

from pooling_bench.config.settings import build_run_config
from pooling_bench.core.artifacts import ModelCollection, attempt
from pooling_bench.core.batch_executor import BatchExecutor
from pooling_bench.core.logger import get_logger
from pooling_bench.core.reproducibility import RandomContext
from pooling_bench.features.preparation import order_by_date
from pooling_bench.models.bayesian import fit_bayesian_regression
from pooling_bench.models.regression import fit_robust

logger = get_logger(__name__)

PARADIGM = 'complete_pooling'


def fit_complete_pooling(data: pd.DataFrame,
                         config: Optional[Dict] = None,
                         random_context: Optional[RandomContext] = None) -> ModelCollection:
    """
    Fit the robust regression and the pooled Student-t Bayesian regression.

    Args:
        data: Prepared (merged) rows for all entities
        config: Run config
        random_context: Seed source (default: seeded from config['seed'])

    Returns:
        ModelCollection with 'robust_regression' and 'pooled_bayes' (None on failure)
    """
    config = config or build_run_config()
    random_context = (random_context or RandomContext(config['seed'])).child(PARADIGM)
    features = config['pooled_feature_columns']
    target = config['target_col']
    data = order_by_date(data, config['date_col'], config['entity_col'])
    executor = BatchExecutor.from_config(config['batch'])

    def robust(batch: pd.DataFrame):
        return fit_robust(batch, features, target=target,
                          as_raw=config['pool_batch_coefficients'], **config['robust'])

    def pooled(batch: pd.DataFrame):
        return fit_bayesian_regression(
            batch,
            features,
            target=target,
            likelihood='student_t',
            budget=config['sampling_budgets'][PARADIGM],
            random_seed=random_context.seed_for('pooled_bayes'),
            **config['priors'][PARADIGM]
        )

    logger.info(f"Fitting Complete-Pooling models on {len(data)} rows")
    artifacts = {}
    for name, fit_fn in (('robust_regression', robust), ('pooled_bayes', pooled)):
        outcome = attempt(partial(executor.run, label=name), data, fit_fn, label=name)
        if not outcome.ok:
            logger.error(f"{name} failed: {outcome.describe_error()}")
        artifacts[name] = outcome.artifact if outcome.ok else None

    return ModelCollection(PARADIGM, artifacts)
