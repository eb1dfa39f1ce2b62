"""Aggregate per-fold evaluations into per-paradigm mean / std tables."""

from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from scipy import stats

from pooling_bench.core.evaluator import METRIC_LABELS
from pooling_bench.core.logger import get_logger

logger = get_logger(__name__)

METRICS = list(METRIC_LABELS.values())


def summarize(fold_results: List[Optional[Dict]], k: Optional[int] = None) -> Dict[str, Dict]:
    """
    Summarize cross-validation fold results.

    Args:
        fold_results: Fold result dicts (None for failed folds)
        k: Number of folds requested (for logging)

    Returns:
        {model_name: {'means': Series, 'sds': Series, 'all_folds': DataFrame}}
        where all_folds is indexed by fold_id with one column per metric;
        failed folds contribute no row and undefined metrics are NaN.
        means and sds (ddof=1) ignore missing entries.

    Example:
        summary = summarize(cv_results, k=5)
        summary['partial_pooling']['means']['RMSE']
    """
    valid = [r for r in fold_results if r is not None]
    k = k or len(fold_results)
    logger.info(f"Summarizing {len(valid)}/{k} successful cross-validation folds")

    model_names = []
    for result in valid:
        for name in result.get('evaluation', {}):
            if name not in model_names:
                model_names.append(name)

    summary = {}
    for name in model_names:
        rows = {}
        for position, result in enumerate(valid, start=1):
            evaluation = result.get('evaluation', {}).get(name)
            if evaluation is None:
                continue
            rows[result.get('fold_id', position)] = evaluation.to_dict()

        all_folds = pd.DataFrame.from_dict(rows, orient='index', columns=METRICS).astype(float)
        all_folds.index.name = 'fold_id'
        summary[name] = {
            'means': all_folds.mean(skipna=True),
            'sds': all_folds.std(ddof=1, skipna=True),
            'all_folds': all_folds
        }

    return summary


def comparison_table(summary: Dict[str, Dict], stat: str = 'means') -> pd.DataFrame:
    """
    Paradigm x metric table of one summary statistic.

    Args:
        summary: Output of summarize()
        stat: 'means' or 'sds'

    Returns:
        DataFrame indexed by model name with one column per metric
    """
    if stat not in ('means', 'sds'):
        raise ValueError(f"Invalid stat: {stat}. Use 'means' or 'sds'")

    table = pd.DataFrame({name: entry[stat] for name, entry in summary.items()}).T
    return table.reindex(columns=METRICS)


def paired_comparison(summary: Dict[str, Dict], model_a: str, model_b: str,
                      metric: str = 'RMSE', alpha: float = 0.05) -> Dict:
    """
    Paired t-test of one metric across the folds two paradigms share.

    Args:
        summary: Output of summarize()
        model_a: First model name
        model_b: Second model name
        metric: Metric label (lower is treated as better)
        alpha: Significance level

    Returns:
        Dict with n_folds, t_statistic, p_value, is_significant, better_model
        (statistics are None with fewer than 2 shared folds)
    """
    a = summary[model_a]['all_folds'][metric]
    b = summary[model_b]['all_folds'][metric]
    paired = pd.concat([a, b], axis=1, keys=[model_a, model_b], join='inner').dropna()

    result = {
        'metric': metric,
        'n_folds': len(paired),
        't_statistic': None,
        'p_value': None,
        'is_significant': False,
        'better_model': None
    }
    if len(paired) < 2:
        return result

    mean_a, mean_b = paired[model_a].mean(), paired[model_b].mean()
    result['better_model'] = model_a if mean_a < mean_b else model_b

    # Constant differences leave the t statistic undefined
    differences = (paired[model_a] - paired[model_b]).to_numpy()
    if np.allclose(differences, differences[0]):
        return result

    t_stat, p_value = stats.ttest_rel(paired[model_a], paired[model_b])
    result.update({
        't_statistic': float(t_stat),
        'p_value': float(p_value),
        'is_significant': bool(p_value < alpha)
    })
    return result
