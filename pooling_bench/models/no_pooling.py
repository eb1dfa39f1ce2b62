"""No-Pooling: independent models per tradable entity.

Each entity gets three fits on its own rows only:
- <entity>_linear: OLS
- <entity>_bayes: Bayesian regression, Gaussian likelihood, wide priors
- <entity>_glm: Gaussian GLM with identity link

Nothing is shared across entities, so entity estimates are as noisy as the
entity's own history.
"""

from functools import partial
from typing import Dict, Optional

import pandas as pd

from pooling_bench.config.settings import build_run_config, tradable_entities
from pooling_bench.core.artifacts import FitOutcome, ModelArtifact, ModelCollection, attempt
from pooling_bench.core.batch_executor import BatchExecutor
from pooling_bench.core.logger import get_logger
from pooling_bench.core.parallel import map_units
from pooling_bench.core.reproducibility import RandomContext
from pooling_bench.features.preparation import fill_entity_gaps
from pooling_bench.models.bayesian import fit_bayesian_regression
from pooling_bench.models.regression import fit_glm, fit_ols

logger = get_logger(__name__)

PARADIGM = 'no_pooling'


def _entity_fit_functions(config: Dict, seed: Optional[int]) -> Dict:
    features = config['feature_columns']
    target = config['target_col']
    as_raw = config['pool_batch_coefficients']
    return {
        'linear': partial(fit_ols, features=features, target=target, as_raw=as_raw),
        'bayes': partial(
            fit_bayesian_regression,
            features=features,
            target=target,
            likelihood='normal',
            budget=config['sampling_budgets'][PARADIGM],
            random_seed=seed,
            **config['priors'][PARADIGM]
        ),
        'glm': partial(fit_glm, features=features, target=target, as_raw=as_raw),
    }


def fit_entity(entity: str,
               entity_df: pd.DataFrame,
               config: Dict,
               random_context: RandomContext) -> Dict[str, Optional[ModelArtifact]]:
    """
    Fit the three No-Pooling models for one entity.

    Returns:
        {"<entity>_linear": artifact | None, "<entity>_bayes": ..., "<entity>_glm": ...}
    """
    columns = config['feature_columns'] + [config['target_col']]
    entity_df = fill_entity_gaps(entity_df, columns, config['entity_col'], config['date_col'])
    executor = BatchExecutor.from_config(config['batch'])
    fit_functions = _entity_fit_functions(config, random_context.seed_for(entity, 'bayes'))

    results = {}
    for suffix, fit_fn in fit_functions.items():
        name = f"{entity}_{suffix}"
        outcome = attempt(partial(executor.run, label=name), entity_df, fit_fn, label=name)
        if outcome.ok:
            results[name] = outcome.artifact
        else:
            logger.error(f"{name} failed: {outcome.describe_error()}")
            results[name] = None
    return results


def fit_no_pooling(data: pd.DataFrame,
                   config: Optional[Dict] = None,
                   random_context: Optional[RandomContext] = None) -> ModelCollection:
    """
    Fit per-entity models for every tradable entity.

    Args:
        data: Prepared (merged) rows for all entities
        config: Run config
        random_context: Seed source (default: seeded from config['seed'])

    Returns:
        ModelCollection keyed "<entity>_<linear|bayes|glm>"; failed fits are None
    """
    config = config or build_run_config()
    random_context = (random_context or RandomContext(config['seed'])).child(PARADIGM)
    entity_col = config['entity_col']

    units = []
    for entity in tradable_entities(config):
        entity_df = data[data[entity_col] == entity]
        if entity_df.empty:
            logger.warning(f"No rows for {entity}, skipping")
            continue
        units.append((entity, entity_df))

    logger.info(f"Fitting No-Pooling models for {len(units)} entities")

    def run_unit(unit) -> FitOutcome:
        entity, entity_df = unit
        return attempt(fit_entity, entity, entity_df, config, random_context, label=entity)

    artifacts = {}
    for (entity, _), outcome in zip(units, map_units(run_unit, units, config['n_workers'])):
        if outcome.ok:
            artifacts.update(outcome.value)
        else:
            logger.error(f"All No-Pooling fits failed for {entity}: {outcome.describe_error()}")
            for suffix in ('linear', 'bayes', 'glm'):
                artifacts[f"{entity}_{suffix}"] = None

    return ModelCollection(PARADIGM, artifacts)
