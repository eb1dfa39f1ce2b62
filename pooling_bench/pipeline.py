"""End-to-end analysis: validate, cross-validate, fit final models, score the test set.

Example:
    from pooling_bench.pipeline import run_analysis

    results = run_analysis(train_df, test_df, config={'cv': {'k': 5}, 'n_workers': 4})
    comparison_table(results['cv_summary'])
    results['test_results']['partial_pooling'].to_dict()
"""

from typing import Dict, Optional

import pandas as pd

from pooling_bench.config.model_registry import POOLING_MODELS
from pooling_bench.config.settings import build_run_config
from pooling_bench.core.artifacts import attempt
from pooling_bench.core.cross_validator import CrossValidator
from pooling_bench.core.evaluator import EvaluationResult, evaluate_collection
from pooling_bench.core.exceptions import DataValidationError
from pooling_bench.core.logger import get_logger
from pooling_bench.core.reproducibility import RandomContext
from pooling_bench.core.summarizer import summarize
from pooling_bench.features.preparation import align_calendar, prepare_model_data
from pooling_bench.validation.input_validator import InputDataValidator

logger = get_logger(__name__)


def _log_standardization_scope(config: Dict) -> None:
    if config['standardization_scope'] == 'train':
        logger.info("Standardization: statistics fitted on training rows (each CV fold's train split, "
                    "then the full training set for the final models) and reused for evaluation rows")
    else:
        logger.warning("Standardization: every split is standardized with its own statistics; "
                       "CV folds and the final models use different scaling of the evaluation rows")


def fit_final_models(prepared: Dict, config: Dict,
                     random_context: RandomContext) -> Dict:
    """Fit every paradigm on the prepared training set; a failing paradigm is None."""
    models = {}
    for paradigm, model_config in POOLING_MODELS.items():
        outcome = attempt(model_config['function'], prepared['merged'], config,
                          random_context.child('final'), label=paradigm)
        if outcome.ok:
            models[paradigm] = outcome.value
        else:
            logger.error(f"Final {model_config['name']} fit failed: {outcome.describe_error()}")
            models[paradigm] = None
    return models


def evaluate_final_models(models: Dict, test_data: pd.DataFrame, train_prepared: Dict,
                          config: Dict) -> Dict[str, EvaluationResult]:
    """Score each final collection on the prepared test rows."""
    standardizer = train_prepared['standardizer'] if config['standardization_scope'] == 'train' else None
    test_prepared = prepare_model_data(test_data, config, standardizer=standardizer)

    results = {}
    for paradigm, collection in models.items():
        if collection is None:
            results[paradigm] = EvaluationResult.undefined()
            continue
        results[paradigm] = evaluate_collection(collection, test_prepared['merged'], config['target_col'])
        logger.info(f"Test {paradigm}: {results[paradigm].to_dict()}")
    return results


def run_analysis(train_data: pd.DataFrame,
                 test_data: Optional[pd.DataFrame] = None,
                 config: Optional[Dict] = None) -> Dict:
    """
    Run the full pooling comparison.

    Steps:
        1. Validate input (missing columns/entities raise DataValidationError)
        2. Optional calendar alignment
        3. k-fold cross-validation and summary
        4. Final models on the full training set
        5. Test-set evaluation (if test_data is given)

    Args:
        train_data: Raw training rows (tradable and benchmark entities)
        test_data: Raw held-out rows, or None
        config: Overrides passed to build_run_config()

    Returns:
        Dict with 'cv_results', 'cv_summary', 'models', 'test_results',
        'validation' and 'processing_info'
    """
    config = build_run_config(config)
    random_context = RandomContext(config['seed'])
    _log_standardization_scope(config)

    validation = InputDataValidator(train_data, config).validate_all()
    if test_data is not None:
        test_validator = InputDataValidator(test_data, config)
        if not test_validator.check_schema():
            raise DataValidationError(
                f"Test data missing columns {test_validator.results['schema']['missing_columns']}"
            )

    if config['align_calendar']:
        train_data = align_calendar(train_data, config['date_col'], config['entity_col'])
        if test_data is not None:
            test_data = align_calendar(test_data, config['date_col'], config['entity_col'])

    k = config['cv']['k']
    cv_results = CrossValidator(config, random_context).run(train_data, k)
    cv_summary = summarize(cv_results, k)

    logger.info("Fitting final models on the full training set")
    prepared = prepare_model_data(train_data, config)
    models = fit_final_models(prepared, config, random_context)

    test_results = None
    if test_data is not None:
        test_results = evaluate_final_models(models, test_data, prepared, config)

    return {
        'cv_results': cv_results,
        'cv_summary': cv_summary,
        'models': models,
        'test_results': test_results,
        'validation': validation,
        'processing_info': prepared['processing_info']
    }
