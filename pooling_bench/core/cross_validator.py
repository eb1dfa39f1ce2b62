"""Cross-validator for contiguous date-block k-fold validation.

Dates are sorted and cut into k contiguous blocks; fold i tests on block i
and trains on every other row. Each fold prepares its own data (standardizer
fitted on the fold's training rows), fits all three pooling paradigms and
evaluates them on the fold's test rows.
"""

from typing import Dict, List, Optional, Tuple

import pandas as pd

from pooling_bench.config.model_registry import POOLING_MODELS
from pooling_bench.config.settings import build_run_config
from pooling_bench.core.artifacts import FitOutcome, attempt
from pooling_bench.core.evaluator import evaluate_collection
from pooling_bench.core.exceptions import CrossValidationError
from pooling_bench.core.logger import get_logger
from pooling_bench.core.parallel import map_units
from pooling_bench.core.reproducibility import RandomContext
from pooling_bench.features.preparation import prepare_model_data

logger = get_logger(__name__)


def build_folds(dataset: pd.DataFrame, k: int = 5,
                date_col: str = 'date') -> List[Tuple[pd.DataFrame, pd.DataFrame]]:
    """
    Split a dataset into k contiguous date-block folds.

    The first k-1 test blocks hold floor(n_dates / k) dates; the last block
    takes the remainder. Train rows are all rows outside the test block.

    Args:
        dataset: Rows with a date column (any entity mix)
        k: Number of folds
        date_col: Date column

    Returns:
        List of (train_df, test_df) tuples in fold order

    Example:
        30 unique dates, k=3 -> test blocks of dates 1-10, 11-20, 21-30
    """
    if k < 1:
        raise ValueError(f"k must be at least 1, got {k}")

    data = dataset.sort_values(date_col, kind='mergesort')
    dates = pd.Series(pd.to_datetime(data[date_col]).unique()).sort_values().reset_index(drop=True)
    n_dates = len(dates)
    fold_size = n_dates // k
    if fold_size == 0:
        raise ValueError(f"Cannot build {k} folds from {n_dates} unique dates")

    row_dates = pd.to_datetime(data[date_col])
    folds = []
    for i in range(k):
        start = i * fold_size
        stop = (i + 1) * fold_size if i < k - 1 else n_dates
        in_test = row_dates.isin(dates.iloc[start:stop])
        folds.append((data[~in_test], data[in_test]))
    return folds


class CrossValidator:
    """Runs the three pooling paradigms over date-block folds.

    Usage:
        cv = CrossValidator(config)
        fold_results = cv.run(dataset, k=5)
        summary = summarize(fold_results, k=5)
    """

    def __init__(self, config: Optional[Dict] = None,
                 random_context: Optional[RandomContext] = None):
        """
        Initialize cross-validator.

        Args:
            config: Run config (build_run_config() defaults if None)
            random_context: Seed source (default: seeded from config['seed'])
        """
        self.config = config or build_run_config()
        self.random_context = random_context or RandomContext(self.config['seed'])

    def _prepare_fold(self, train_df: pd.DataFrame, test_df: pd.DataFrame):
        train_prepared = prepare_model_data(train_df, self.config)
        if self.config['standardization_scope'] == 'train':
            test_prepared = prepare_model_data(test_df, self.config,
                                               standardizer=train_prepared['standardizer'])
        else:
            test_prepared = prepare_model_data(test_df, self.config)
        return train_prepared, test_prepared

    def run_fold(self, fold_id: int, train_df: pd.DataFrame, test_df: pd.DataFrame) -> Dict:
        """
        Fit and evaluate every paradigm on one fold.

        Returns:
            Dict with fold_id, date ranges, row counts, 'models' and 'evaluation'
        """
        date_col = self.config['date_col']
        target_col = self.config['target_col']
        logger.info(f"Fold {fold_id}: train {len(train_df)} rows / {train_df[date_col].nunique()} dates, "
                    f"test {len(test_df)} rows / {test_df[date_col].nunique()} dates")

        train_prepared, test_prepared = self._prepare_fold(train_df, test_df)
        fold_context = self.random_context.child('fold', fold_id)

        models = {}
        evaluation = {}
        for paradigm, model_config in POOLING_MODELS.items():
            collection = model_config['function'](train_prepared['merged'], self.config, fold_context)
            models[paradigm] = collection
            evaluation[paradigm] = evaluate_collection(collection, test_prepared['merged'], target_col)

        return {
            'fold_id': fold_id,
            'train_start': train_df[date_col].min(),
            'train_end': train_df[date_col].max(),
            'test_start': test_df[date_col].min(),
            'test_end': test_df[date_col].max(),
            'n_train': len(train_df),
            'n_test': len(test_df),
            'models': models,
            'evaluation': evaluation
        }

    def run(self, dataset: pd.DataFrame, k: Optional[int] = None) -> List[Optional[Dict]]:
        """
        Cross-validate all paradigms.

        Args:
            dataset: Raw rows (tradable and benchmark entities)
            k: Number of folds (default: config['cv']['k'])

        Returns:
            One entry per fold in fold order; None for a failed fold

        Raises:
            CrossValidationError: If every fold failed
        """
        if k is None:
            k = self.config['cv']['k']
        folds = build_folds(dataset, k, self.config['date_col'])
        logger.info(f"Starting {k}-fold cross-validation on {len(dataset)} rows")

        def run_unit(item) -> FitOutcome:
            fold_id, (train_df, test_df) = item
            return attempt(self.run_fold, fold_id, train_df, test_df, label=f"fold {fold_id}")

        outcomes = map_units(run_unit, list(enumerate(folds, start=1)), self.config['n_workers'])

        results = []
        for outcome in outcomes:
            if outcome.ok:
                results.append(outcome.value)
                summary = {p: r.to_dict() for p, r in outcome.value['evaluation'].items()}
                logger.info(f"{outcome.label} evaluation: {summary}")
            else:
                logger.error(f"{outcome.label} failed: {outcome.describe_error()}")
                results.append(None)

        if all(r is None for r in results):
            raise CrossValidationError(f"All {k} cross-validation folds failed")
        return results


def cross_validate(dataset: pd.DataFrame, k: Optional[int] = None,
                   config: Optional[Dict] = None,
                   random_context: Optional[RandomContext] = None) -> List[Optional[Dict]]:
    """Module-level shortcut for CrossValidator(config, random_context).run(dataset, k)."""
    return CrossValidator(config, random_context).run(dataset, k)
