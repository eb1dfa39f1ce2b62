"""Model registry - the three pooling paradigms and their fitters.

The cross-validator and the pipeline iterate this registry, so the order here
is the order paradigms are fitted and reported.
"""

from pooling_bench.models import complete_pooling, no_pooling, partial_pooling


POOLING_MODELS = {
    'no_pooling': {
        'name': 'No Pooling',
        'function': no_pooling.fit_no_pooling,
        'results': ['<entity>_linear', '<entity>_bayes', '<entity>_glm'],
        'description': 'Independent OLS, Bayesian and GLM fits per entity'
    },

    'partial_pooling': {
        'name': 'Partial Pooling',
        'function': partial_pooling.fit_partial_pooling,
        'results': ['hierarchical_bayes', 'mixed_effects'],
        'description': 'Random intercepts for benchmark group and entity within group'
    },

    'complete_pooling': {
        'name': 'Complete Pooling',
        'function': complete_pooling.fit_complete_pooling,
        'results': ['robust_regression', 'pooled_bayes'],
        'description': 'One robust and one Student-t Bayesian regression over all entities'
    },
}


def get_model_config(model_key: str) -> dict:
    """
    Get configuration for a pooling paradigm.

    Args:
        model_key: Key from POOLING_MODELS

    Returns:
        Model configuration dict

    Raises:
        KeyError: If model_key not found

    Example:
        fit = get_model_config('partial_pooling')['function']
        collection = fit(prepared['merged'], config)
    """
    if model_key not in POOLING_MODELS:
        available = ', '.join(POOLING_MODELS.keys())
        raise KeyError(f"Model '{model_key}' not found. Available: {available}")

    return POOLING_MODELS[model_key]


def list_models() -> list:
    """Return list of all paradigm keys."""
    return list(POOLING_MODELS.keys())
