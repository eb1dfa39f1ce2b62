"""Run settings - data schema, entity metadata, fit budgets and CV options.

Every orchestration function takes a run config dict built by
build_run_config(); nothing in the fitting code reads these module constants
directly, so tests and callers can inject their own entity mapping, feature
set or sampling budget.
"""

import copy
from typing import Dict, Optional

# Dataset schema
DATE_COL = 'date'
ENTITY_COL = 'entity_id'
TARGET_COL = 'close'
BENCHMARK_COL = 'benchmark_close'
GROUP_COL = 'benchmark_group'
CATEGORY_COL = 'category_label'

FEATURE_COLUMNS = ['ma5', 'ma20', 'rsi', 'volatility']
POOLED_FEATURE_COLUMNS = FEATURE_COLUMNS + [BENCHMARK_COL]

# Standardized per entity; BENCHMARK_COL is standardized across all rows
STANDARDIZE_COLUMNS = ['close', 'ma5', 'ma20', 'rsi', 'volatility']

REQUIRED_COLUMNS = [DATE_COL, ENTITY_COL, TARGET_COL] + FEATURE_COLUMNS

# Tradable entity -> benchmark group and category
ENTITY_METADATA = {
    'AAPL': {'benchmark_group': 'NASDAQ', 'category_label': 'Tech'},
    'NVDA': {'benchmark_group': 'NASDAQ', 'category_label': 'Tech'},
    'TSLA': {'benchmark_group': 'NASDAQ', 'category_label': 'Tech'},
    'XOM': {'benchmark_group': 'SP500', 'category_label': 'NonTech'},
}

# Benchmark entities whose close becomes BENCHMARK_COL for their group
BENCHMARK_ENTITIES = ['SP500', 'NASDAQ']

BATCH_CONFIG = {
    'batch_size': 1000,
    'min_batch': 100,
    'gc_every': 3,          # Reclaim memory every N batches
    'n_workers': 1          # Threads for the batch loop
}

# iterations include warm-up (draws = iterations - warmup)
SAMPLING_BUDGETS = {
    'no_pooling': {'chains': 2, 'iterations': 2000, 'warmup': 1000, 'target_accept': 0.8},
    'partial_pooling': {'chains': 4, 'iterations': 4000, 'warmup': 2000, 'target_accept': 0.95},
    'complete_pooling': {'chains': 4, 'iterations': 4000, 'warmup': 2000, 'target_accept': 0.8},
}

PRIORS = {
    'no_pooling': {'slope_scale': 10.0, 'intercept_scale': 10.0, 'sigma_scale': 10.0},
    'partial_pooling': {'slope_scale': 2.0, 'intercept_scale': 2.0, 'group_sd_scale': 1.0},
    'complete_pooling': {'slope_scale': 1.0, 'intercept_scale': 1.0, 'sigma_scale': 1.0},
}

MIXED_EFFECTS_CONFIG = {
    'maxiter': 200,
    'method': 'lbfgs'
}

ROBUST_CONFIG = {
    'huber_t': 1.345,
    'maxiter': 50
}

CV_CONFIG = {
    'k': 5
}

RUN_CONFIG = {
    'seed': 42,
    'n_workers': 1,                    # Threads for entities (No-Pooling) and folds
    'standardization_scope': 'train',  # 'train' or 'per_split'
    'pool_batch_coefficients': False,  # Linear fits emit RAW_COEFFICIENT artifacts
    'align_calendar': False            # Expand to a full daily grid before modelling
}

STANDARDIZATION_SCOPES = ('train', 'per_split')


def _deep_merge(base: Dict, overrides: Dict) -> Dict:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def default_run_config() -> Dict:
    """Fresh copy of the default run configuration."""
    config = {
        'date_col': DATE_COL,
        'entity_col': ENTITY_COL,
        'target_col': TARGET_COL,
        'benchmark_col': BENCHMARK_COL,
        'group_col': GROUP_COL,
        'category_col': CATEGORY_COL,
        'feature_columns': FEATURE_COLUMNS,
        'pooled_feature_columns': POOLED_FEATURE_COLUMNS,
        'standardize_columns': STANDARDIZE_COLUMNS,
        'required_columns': REQUIRED_COLUMNS,
        'entity_metadata': ENTITY_METADATA,
        'benchmark_entities': BENCHMARK_ENTITIES,
        'batch': BATCH_CONFIG,
        'sampling_budgets': SAMPLING_BUDGETS,
        'priors': PRIORS,
        'mixed_effects': MIXED_EFFECTS_CONFIG,
        'robust': ROBUST_CONFIG,
        'cv': CV_CONFIG,
    }
    config.update(RUN_CONFIG)
    return copy.deepcopy(config)


def build_run_config(overrides: Optional[Dict] = None) -> Dict:
    """
    Build a run config from the defaults plus (nested) overrides.

    Args:
        overrides: Partial config; nested dicts are merged key by key, other
                   values (including entity_metadata entries' lists) replace
                   the default

    Returns:
        New config dict (defaults are never mutated)

    Example:
        config = build_run_config({
            'sampling_budgets': {'no_pooling': {'chains': 1, 'iterations': 200, 'warmup': 100}},
            'n_workers': 4
        })
    """
    config = default_run_config()
    if overrides:
        if 'entity_metadata' in overrides:
            # An injected mapping replaces the default universe instead of extending it
            config['entity_metadata'] = {}
        config = _deep_merge(config, overrides)

    if config['standardization_scope'] not in STANDARDIZATION_SCOPES:
        raise ValueError(
            f"Invalid standardization_scope: {config['standardization_scope']}. "
            f"Use one of {STANDARDIZATION_SCOPES}"
        )
    return config


def tradable_entities(config: Dict) -> list:
    """Entities that get modelled (keys of the entity metadata mapping)."""
    return list(config['entity_metadata'].keys())
