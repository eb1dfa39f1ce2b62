"""Evaluator for pooling model predictions.

Metric suite: RMSE, MAE, R2, MAPE, directional accuracy and information
ratio. A metric that is undefined for the given data (zero-variance actuals,
all-zero actuals, too few points) is None rather than NaN or a guess.
"""

import math
from typing import Dict, Mapping, Optional

import numpy as np
import pandas as pd

from pooling_bench.core.logger import get_logger
from pooling_bench.core.predictor import predict

logger = get_logger(__name__)

# Attribute name -> label used in summaries and reports
METRIC_LABELS = {
    'rmse': 'RMSE',
    'mae': 'MAE',
    'r2': 'R2',
    'mape': 'MAPE',
    'directional_accuracy': 'DA',
    'information_ratio': 'IR',
}


def _finite_or_none(value) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


class EvaluationResult:
    """Metrics for one set of predictions; each metric is a float or None."""

    def __init__(self,
                 rmse: Optional[float] = None,
                 mae: Optional[float] = None,
                 r2: Optional[float] = None,
                 mape: Optional[float] = None,
                 directional_accuracy: Optional[float] = None,
                 information_ratio: Optional[float] = None,
                 n_predictions: int = 0):
        self.rmse = _finite_or_none(rmse)
        self.mae = _finite_or_none(mae)
        self.r2 = _finite_or_none(r2)
        self.mape = _finite_or_none(mape)
        self.directional_accuracy = _finite_or_none(directional_accuracy)
        self.information_ratio = _finite_or_none(information_ratio)
        self.n_predictions = int(n_predictions)

    @classmethod
    def undefined(cls) -> 'EvaluationResult':
        """Result for absent predictions: every metric None, n_predictions 0."""
        return cls()

    def to_dict(self) -> Dict[str, Optional[float]]:
        """Metrics keyed by label (RMSE, MAE, R2, MAPE, DA, IR)."""
        return {label: getattr(self, attr) for attr, label in METRIC_LABELS.items()}

    def __eq__(self, other) -> bool:
        if not isinstance(other, EvaluationResult):
            return NotImplemented
        return self.to_dict() == other.to_dict() and self.n_predictions == other.n_predictions

    def __repr__(self) -> str:
        metrics = ', '.join(f"{k}={v}" for k, v in self.to_dict().items())
        return f"EvaluationResult({metrics}, n={self.n_predictions})"


class Evaluator:
    """Computes the metric suite from predictions and actuals.

    Pure: inputs are never modified and the same inputs give the same result.
    """

    def calculate_rmse(self, actuals: np.ndarray, predictions: np.ndarray) -> float:
        return float(np.sqrt(np.mean((predictions - actuals) ** 2)))

    def calculate_mae(self, actuals: np.ndarray, predictions: np.ndarray) -> float:
        return float(np.mean(np.abs(predictions - actuals)))

    def calculate_r2(self, actuals: np.ndarray, predictions: np.ndarray) -> Optional[float]:
        """1 - SS_res / SS_tot; None when the actuals have zero variance."""
        if np.ptp(actuals) == 0:
            return None
        ss_tot = np.sum((actuals - actuals.mean()) ** 2)
        ss_res = np.sum((actuals - predictions) ** 2)
        return float(1 - ss_res / ss_tot)

    def calculate_mape(self, actuals: np.ndarray, predictions: np.ndarray) -> Optional[float]:
        """Mean absolute percentage error over non-zero actuals (percent)."""
        mask = actuals != 0
        if not np.any(mask):
            return None
        return float(np.mean(np.abs((actuals[mask] - predictions[mask]) / actuals[mask])) * 100)

    def calculate_directional_accuracy(self, actuals: np.ndarray,
                                       predictions: np.ndarray) -> Optional[float]:
        """
        Share of consecutive steps where prediction and actual move the same way.

        Directions are compared by sign of the day-to-day differences, so two
        flat steps count as agreeing.

        Returns:
            Fraction in [0, 1], or None with fewer than 2 points
        """
        if len(actuals) < 2:
            return None
        agree = np.sign(np.diff(actuals)) == np.sign(np.diff(predictions))
        return float(np.mean(agree))

    def calculate_information_ratio(self, actuals: np.ndarray,
                                    predictions: np.ndarray) -> Optional[float]:
        """Mean / sample std of (prediction - actual) / |actual| over non-zero actuals."""
        mask = actuals != 0
        if np.sum(mask) < 2:
            return None
        relative = (predictions[mask] - actuals[mask]) / np.abs(actuals[mask])
        # Constant relative error leaves a rounding-level std
        if np.allclose(relative, relative[0], rtol=1e-9, atol=1e-12):
            return None
        std = np.std(relative, ddof=1)
        if not np.isfinite(std):
            return None
        return float(np.mean(relative) / std)

    def evaluate(self, predictions, actuals) -> EvaluationResult:
        """
        Calculate all metrics.

        Args:
            predictions: Predicted values, or None when prediction failed
            actuals: Actual values (same length as predictions)

        Returns:
            EvaluationResult; all metrics None when there is nothing to score
        """
        if predictions is None or actuals is None:
            return EvaluationResult.undefined()

        predictions = np.asarray(predictions, dtype=float)
        actuals = np.asarray(actuals, dtype=float)
        if predictions.shape != actuals.shape:
            raise ValueError(f"predictions {predictions.shape} and actuals {actuals.shape} differ in shape")

        # Remove pairs where either side is missing
        mask = np.isfinite(predictions) & np.isfinite(actuals)
        predictions = predictions[mask]
        actuals = actuals[mask]
        if len(actuals) == 0:
            return EvaluationResult.undefined()

        return EvaluationResult(
            rmse=self.calculate_rmse(actuals, predictions),
            mae=self.calculate_mae(actuals, predictions),
            r2=self.calculate_r2(actuals, predictions),
            mape=self.calculate_mape(actuals, predictions),
            directional_accuracy=self.calculate_directional_accuracy(actuals, predictions),
            information_ratio=self.calculate_information_ratio(actuals, predictions),
            n_predictions=len(actuals)
        )


def evaluate(predictions, actuals) -> EvaluationResult:
    """Module-level shortcut for Evaluator().evaluate()."""
    return Evaluator().evaluate(predictions, actuals)


def evaluate_collection(collection: Mapping,
                        rows: pd.DataFrame,
                        target_col: str = 'close') -> EvaluationResult:
    """
    Predict rows with a model collection and score against rows[target_col].

    Never raises for a failed prediction: the result is then undefined.
    """
    name = getattr(collection, 'name', 'collection')
    try:
        predictions = predict(collection, rows)
    except Exception as e:
        logger.error(f"Prediction failed for {name}: {type(e).__name__}: {e}")
        return EvaluationResult.undefined()

    if predictions is None:
        logger.warning(f"No model in {name} produced predictions")
        return EvaluationResult.undefined()

    return evaluate(predictions, rows[target_col].to_numpy(dtype=float))
