"""Unit tests for the metric suite.

Tests:
- Regression metrics (RMSE, MAE, R2)
- MAPE and information ratio over non-zero actuals
- Directional accuracy
- Undefined results for absent or empty predictions
"""

import numpy as np
import pandas as pd
import pytest

from pooling_bench.core.artifacts import ArtifactKind, ModelArtifact, ModelCollection
from pooling_bench.core.evaluator import EvaluationResult, Evaluator, evaluate, evaluate_collection


class TestMetrics:
    """Test individual metric values."""

    def test_exact_predictions(self):
        actuals = np.array([1.0, 3.0, 2.0, 5.0])
        result = evaluate(actuals.copy(), actuals)

        assert result.rmse == 0
        assert result.mae == 0
        assert result.r2 == 1.0
        assert result.mape == 0
        assert result.directional_accuracy == 1.0
        assert result.n_predictions == 4

    def test_rmse_and_mae(self):
        result = evaluate([1.0, 2.0, 3.0], [2.0, 2.0, 5.0])

        assert result.rmse == pytest.approx(np.sqrt((1 + 0 + 4) / 3))
        assert result.mae == pytest.approx(1.0)
        assert result.rmse >= 0

    def test_directional_accuracy_half(self):
        """actual diffs [+2, -1], predicted diffs [+1, +2] -> 1 of 2 match."""
        result = evaluate([100.0, 101.0, 103.0], [100.0, 102.0, 101.0])
        assert result.directional_accuracy == 0.5

    def test_directional_accuracy_single_point(self):
        result = evaluate([1.0], [2.0])
        assert result.directional_accuracy is None
        assert result.rmse == pytest.approx(1.0)

    def test_all_zero_actuals(self):
        """MAPE undefined, RMSE/MAE still computed."""
        result = evaluate([0.5, -0.5, 1.0], [0.0, 0.0, 0.0])

        assert result.mape is None
        assert result.information_ratio is None
        assert result.rmse == pytest.approx(np.sqrt((0.25 + 0.25 + 1.0) / 3))
        assert result.mae == pytest.approx(2.0 / 3)
        # Zero-variance actuals: R2 denominator is zero
        assert result.r2 is None

    def test_mape_skips_zero_actuals(self):
        result = evaluate([1.0, 11.0, 5.0], [0.0, 10.0, 4.0])
        assert result.mape == pytest.approx((10.0 + 25.0) / 2)

    def test_information_ratio(self):
        actuals = np.array([10.0, 20.0, 40.0])
        predictions = np.array([11.0, 24.0, 40.0])
        relative = np.array([0.1, 0.2, 0.0])

        result = evaluate(predictions, actuals)
        assert result.information_ratio == pytest.approx(relative.mean() / relative.std(ddof=1))

    def test_information_ratio_zero_std(self):
        """Constant relative error -> undefined."""
        result = evaluate([11.0, 22.0, 44.0], [10.0, 20.0, 40.0])
        assert result.information_ratio is None

    def test_r2_undefined_for_constant_fractional_actuals(self):
        """Mean of [0.1, 0.1, 0.1] is off by one ulp; R2 must still be undefined."""
        result = evaluate([0.1, 0.2, 0.3], [0.1, 0.1, 0.1])

        assert result.r2 is None
        assert result.rmse is not None

    def test_information_ratio_constant_fractional_error(self):
        result = evaluate([0.33, 0.66, 0.99], [0.3, 0.6, 0.9])
        assert result.information_ratio is None

    def test_r2_can_be_negative(self):
        result = evaluate([3.0, 2.0, 1.0], [1.0, 2.0, 3.0])
        assert result.r2 == pytest.approx(-3.0)

    def test_directional_accuracy_in_unit_interval(self):
        rng = np.random.default_rng(11)
        for _ in range(20):
            result = evaluate(rng.normal(size=15), rng.normal(size=15))
            assert 0.0 <= result.directional_accuracy <= 1.0


class TestUndefinedResults:
    """Test absent predictions and NA handling."""

    def test_absent_predictions(self):
        result = evaluate(None, [1.0, 2.0])

        assert result == EvaluationResult.undefined()
        assert result.n_predictions == 0
        assert all(value is None for value in result.to_dict().values())

    def test_missing_pairs_dropped(self):
        result = evaluate([1.0, np.nan, 3.0], [1.0, 2.0, np.nan])
        assert result.n_predictions == 1

    def test_no_valid_pairs(self):
        result = evaluate([np.nan, 1.0], [2.0, np.nan])
        assert result.n_predictions == 0
        assert result.rmse is None

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            evaluate([1.0, 2.0], [1.0])

    def test_purity(self):
        """Inputs are not modified and repeated calls agree."""
        predictions = np.array([1.0, np.nan, 2.5, 4.0])
        actuals = np.array([1.5, 2.0, np.nan, 3.0])
        before = (predictions.copy(), actuals.copy())

        evaluator = Evaluator()
        first = evaluator.evaluate(predictions, actuals)
        second = evaluator.evaluate(predictions, actuals)

        assert first == second
        np.testing.assert_array_equal(predictions, before[0])
        np.testing.assert_array_equal(actuals, before[1])

    def test_to_dict_labels(self):
        assert list(evaluate([1.0, 2.0], [1.0, 2.0]).to_dict()) == ['RMSE', 'MAE', 'R2', 'MAPE', 'DA', 'IR']


class TestEvaluateCollection:
    """Test predict-then-evaluate."""

    def test_scores_collection(self):
        rows = pd.DataFrame({'x': [1.0, 2.0, 3.0], 'close': [2.0, 4.0, 6.0]})
        artifact = ModelArtifact(ArtifactKind.RAW_COEFFICIENT,
                                 coefficients=pd.Series([0.0, 2.0], index=['const', 'x']),
                                 feature_names=['x'])
        result = evaluate_collection(ModelCollection('m', {'m': artifact}), rows, 'close')

        assert result.rmse == pytest.approx(0.0)
        assert result.n_predictions == 3

    def test_failed_collection_is_undefined(self):
        rows = pd.DataFrame({'x': [1.0, 2.0], 'close': [1.0, 2.0]})
        result = evaluate_collection(ModelCollection('m', {'a': None, 'b': None}), rows, 'close')

        assert result == EvaluationResult.undefined()
