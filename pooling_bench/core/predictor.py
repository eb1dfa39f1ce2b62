"""Point predictions from fitted artifacts and model collections.

Prediction dispatches on ArtifactKind through PREDICTION_RULES. A collection
with several entries is predicted as an ensemble: every present artifact
predicts every row and the element-wise mean over successful predictions is
returned (NaN entries ignored).
"""

import warnings
from typing import Callable, Dict, Mapping, Optional

import numpy as np
import pandas as pd

from pooling_bench.core.artifacts import ArtifactKind, ModelArtifact, attempt
from pooling_bench.core.logger import get_logger
from pooling_bench.models.regression import design_matrix

logger = get_logger(__name__)


def _library_predict(artifact: ModelArtifact, rows: pd.DataFrame) -> np.ndarray:
    """statsmodels results.predict on the constant-augmented design."""
    if artifact.fitted is None:
        return _linear_predictor(artifact, rows)
    return np.asarray(artifact.fitted.predict(design_matrix(rows, artifact.feature_names)), dtype=float)


def _linear_predictor(artifact: ModelArtifact, rows: pd.DataFrame) -> np.ndarray:
    """design @ coefficients (posterior means, fixed effects or pooled coefficients)."""
    X = design_matrix(rows, artifact.feature_names)
    coefficients = artifact.coefficients.reindex(X.columns)
    if coefficients.isna().any():
        missing = list(coefficients.index[coefficients.isna()])
        raise KeyError(f"Artifact has no coefficients for {missing}")
    return X.to_numpy(dtype=float) @ coefficients.to_numpy(dtype=float)


def _hierarchical_predictor(artifact: ModelArtifact, rows: pd.DataFrame) -> np.ndarray:
    """Posterior-mean linear predictor plus group and entity-in-group intercepts.

    Levels not seen in training contribute zero.
    """
    prediction = _linear_predictor(artifact, rows)
    group_col = artifact.diagnostics.get('group_col', 'benchmark_group')
    entity_col = artifact.diagnostics.get('entity_col', 'entity_id')

    groups = rows[group_col].astype(str)
    nested = groups + ':' + rows[entity_col].astype(str)
    group_effect = groups.map(artifact.group_effects.get('group', pd.Series(dtype=float))).fillna(0.0)
    entity_effect = nested.map(artifact.group_effects.get('entity_in_group', pd.Series(dtype=float))).fillna(0.0)
    return prediction + group_effect.to_numpy(dtype=float) + entity_effect.to_numpy(dtype=float)


def _bundle_predictor(artifact: ModelArtifact, rows: pd.DataFrame) -> np.ndarray:
    prediction = ensemble_predict(artifact.members, rows)
    if prediction is None:
        raise ValueError(f"No bundle member could predict ({sorted(artifact.members)})")
    return prediction


PREDICTION_RULES: Dict[ArtifactKind, Callable[[ModelArtifact, pd.DataFrame], np.ndarray]] = {
    ArtifactKind.OLS: _library_predict,
    ArtifactKind.GLM: _library_predict,
    ArtifactKind.ROBUST: _library_predict,
    ArtifactKind.MIXED_EFFECTS: _linear_predictor,       # Random effects excluded
    ArtifactKind.RAW_COEFFICIENT: _linear_predictor,
    ArtifactKind.BAYESIAN_POOLED: _linear_predictor,
    ArtifactKind.BAYESIAN_HIERARCHICAL: _hierarchical_predictor,
    ArtifactKind.BUNDLE: _bundle_predictor,
}


def predict_artifact(artifact: ModelArtifact, rows: pd.DataFrame) -> np.ndarray:
    """
    Predict rows with one artifact.

    Raises:
        KeyError: If rows lack a feature column the artifact needs
        ValueError: If the artifact kind has no prediction rule
    """
    rule = PREDICTION_RULES.get(artifact.kind)
    if rule is None:
        raise ValueError(f"No prediction rule for {artifact.kind.value} artifacts")
    prediction = np.asarray(rule(artifact, rows), dtype=float)
    if prediction.shape != (len(rows),):
        raise ValueError(f"Prediction has shape {prediction.shape}, expected ({len(rows)},)")
    return prediction


def ensemble_predict(artifacts: Mapping[str, Optional[ModelArtifact]],
                     rows: pd.DataFrame) -> Optional[np.ndarray]:
    """
    Element-wise mean prediction over every present artifact.

    Absent entries are skipped; a failing prediction is logged and skipped.

    Returns:
        Mean prediction, or None if no artifact could predict
    """
    predictions = []
    for name, artifact in artifacts.items():
        if artifact is None:
            continue
        outcome = attempt(predict_artifact, artifact, rows, label=name)
        if outcome.ok:
            predictions.append(outcome.value)
        else:
            logger.warning(f"Prediction failed for {name}: {outcome.describe_error()}")

    if not predictions:
        return None

    stacked = np.vstack(predictions)
    with warnings.catch_warnings():
        # All-NaN columns stay NaN
        warnings.simplefilter('ignore', category=RuntimeWarning)
        return np.nanmean(stacked, axis=0)


def predict(collection: Mapping[str, Optional[ModelArtifact]],
            rows: pd.DataFrame) -> Optional[np.ndarray]:
    """
    Predict rows with a model collection.

    Args:
        collection: Name -> artifact (None when the fit failed)
        rows: Rows carrying the feature (and grouping) columns

    Returns:
        Array of len(rows) predictions, or None when nothing could predict

    Example:
        preds = predict(no_pooling_models, prepared_test['merged'])
    """
    if len(collection) == 1:
        name, artifact = next(iter(collection.items()))
        if artifact is None:
            return None
        outcome = attempt(predict_artifact, artifact, rows, label=name)
        if not outcome.ok:
            logger.warning(f"Prediction failed for {name}: {outcome.describe_error()}")
            return None
        return outcome.value

    return ensemble_predict(collection, rows)
