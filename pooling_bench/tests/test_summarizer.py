"""Unit tests for cross-validation summaries."""

import numpy as np
import pytest

from pooling_bench.core.evaluator import EvaluationResult
from pooling_bench.core.summarizer import comparison_table, paired_comparison, summarize


def _fold(fold_id, **evaluations):
    return {'fold_id': fold_id, 'evaluation': evaluations}


@pytest.fixture
def fold_results():
    return [
        _fold(1, no_pooling=EvaluationResult(rmse=1.0, mae=0.5, r2=0.9, n_predictions=10),
              complete_pooling=EvaluationResult(rmse=2.0, mae=1.0, n_predictions=10)),
        None,
        _fold(3, no_pooling=EvaluationResult(rmse=3.0, mae=1.5, r2=None, n_predictions=10),
              complete_pooling=EvaluationResult(rmse=4.0, mae=2.0, n_predictions=10)),
        _fold(4, no_pooling=EvaluationResult(rmse=2.0, mae=1.0, r2=0.7, n_predictions=10)),
    ]


class TestSummarize:
    """Test mean / std aggregation."""

    def test_models_seen_in_any_fold(self, fold_results):
        summary = summarize(fold_results, k=4)
        assert set(summary) == {'no_pooling', 'complete_pooling'}

    def test_failed_folds_contribute_no_row(self, fold_results):
        summary = summarize(fold_results, k=4)

        assert list(summary['no_pooling']['all_folds'].index) == [1, 3, 4]
        assert list(summary['complete_pooling']['all_folds'].index) == [1, 3]

    def test_means_and_sample_std(self, fold_results):
        no_pooling = summarize(fold_results, k=4)['no_pooling']

        assert no_pooling['means']['RMSE'] == pytest.approx(2.0)
        assert no_pooling['sds']['RMSE'] == pytest.approx(1.0)

    def test_missing_metrics_ignored(self, fold_results):
        no_pooling = summarize(fold_results, k=4)['no_pooling']

        # R2 undefined in fold 3
        assert no_pooling['means']['R2'] == pytest.approx(0.8)
        assert np.isnan(no_pooling['all_folds'].loc[3, 'R2'])
        # MAPE undefined everywhere
        assert np.isnan(no_pooling['means']['MAPE'])

    def test_metric_columns(self, fold_results):
        all_folds = summarize(fold_results, k=4)['no_pooling']['all_folds']
        assert list(all_folds.columns) == ['RMSE', 'MAE', 'R2', 'MAPE', 'DA', 'IR']
        assert all_folds.index.name == 'fold_id'


class TestComparison:
    """Test reporting helpers."""

    def test_comparison_table(self, fold_results):
        table = comparison_table(summarize(fold_results, k=4))

        assert table.loc['complete_pooling', 'RMSE'] == pytest.approx(3.0)
        assert table.loc['no_pooling', 'MAE'] == pytest.approx(1.0)

    def test_comparison_table_invalid_stat(self, fold_results):
        with pytest.raises(ValueError):
            comparison_table(summarize(fold_results, k=4), stat='median')

    def test_paired_comparison_uses_shared_folds(self, fold_results):
        result = paired_comparison(summarize(fold_results, k=4), 'no_pooling', 'complete_pooling')

        assert result['n_folds'] == 2
        assert result['better_model'] == 'no_pooling'

    def test_paired_comparison_too_few_folds(self):
        summary = summarize([_fold(1, a=EvaluationResult(rmse=1.0, n_predictions=1),
                                   b=EvaluationResult(rmse=2.0, n_predictions=1))], k=1)
        result = paired_comparison(summary, 'a', 'b')

        assert result['t_statistic'] is None
        assert result['n_folds'] == 1
