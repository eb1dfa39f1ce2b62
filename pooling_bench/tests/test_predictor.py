"""Unit tests for artifact prediction rules and ensemble prediction."""

import numpy as np
import pandas as pd
import pytest

from pooling_bench.core.artifacts import ArtifactKind, ModelArtifact, ModelCollection
from pooling_bench.core.predictor import ensemble_predict, predict, predict_artifact
from pooling_bench.models.regression import fit_glm, fit_ols, fit_robust

FEATURES = ['x1', 'x2']


@pytest.fixture
def rows():
    rng = np.random.default_rng(3)
    df = pd.DataFrame({
        'x1': rng.normal(size=40),
        'x2': rng.normal(size=40),
        'benchmark_group': ['NASDAQ'] * 20 + ['SP500'] * 20,
        'entity_id': ['AAPL'] * 20 + ['XOM'] * 20,
    })
    df['close'] = 1.0 + 2.0 * df['x1'] - 0.5 * df['x2'] + rng.normal(0, 0.01, 40)
    return df


def _coefficient_artifact(kind, coefs=(1.0, 2.0, -0.5), **kwargs):
    terms = ['const'] + FEATURES
    return ModelArtifact(kind, coefficients=pd.Series(coefs, index=terms),
                         n_obs=40, feature_names=FEATURES, **kwargs)


class TestPredictArtifact:
    """Test per-kind prediction rules."""

    @pytest.mark.parametrize('fit_fn', [fit_ols, fit_glm, fit_robust])
    def test_library_fits_recover_signal(self, rows, fit_fn):
        artifact = fit_fn(rows, FEATURES)
        prediction = predict_artifact(artifact, rows)

        assert prediction.shape == (40,)
        np.testing.assert_allclose(prediction, rows['close'].values, atol=0.1)

    @pytest.mark.parametrize('kind', [
        ArtifactKind.RAW_COEFFICIENT, ArtifactKind.MIXED_EFFECTS, ArtifactKind.BAYESIAN_POOLED
    ])
    def test_linear_predictor(self, rows, kind):
        prediction = predict_artifact(_coefficient_artifact(kind), rows)
        expected = 1.0 + 2.0 * rows['x1'] - 0.5 * rows['x2']
        np.testing.assert_allclose(prediction, expected.values)

    def test_hierarchical_adds_group_effects(self, rows):
        """Seen levels add their intercepts; unseen levels add zero."""
        artifact = _coefficient_artifact(
            ArtifactKind.BAYESIAN_HIERARCHICAL,
            diagnostics={'group_col': 'benchmark_group', 'entity_col': 'entity_id'},
            group_effects={
                'group': pd.Series({'NASDAQ': 1.0}),
                'entity_in_group': pd.Series({'NASDAQ:AAPL': 0.5}),
            }
        )
        base = (1.0 + 2.0 * rows['x1'] - 0.5 * rows['x2']).values
        prediction = predict_artifact(artifact, rows)

        np.testing.assert_allclose(prediction[:20], base[:20] + 1.5)
        np.testing.assert_allclose(prediction[20:], base[20:])

    def test_bundle_averages_members(self, rows):
        low = _coefficient_artifact(ArtifactKind.RAW_COEFFICIENT, coefs=(0.0, 0.0, 0.0))
        high = _coefficient_artifact(ArtifactKind.RAW_COEFFICIENT, coefs=(2.0, 0.0, 0.0))
        bundle = ModelArtifact.bundle({'low': low, 'high': high})

        np.testing.assert_allclose(predict_artifact(bundle, rows), np.ones(40))

    def test_missing_feature_raises(self, rows):
        with pytest.raises(KeyError):
            predict_artifact(_coefficient_artifact(ArtifactKind.RAW_COEFFICIENT), rows.drop(columns=['x2']))


class TestPredictCollection:
    """Test ensemble prediction over a ModelCollection."""

    def test_ensemble_mean_skips_absent(self, rows):
        a = _coefficient_artifact(ArtifactKind.RAW_COEFFICIENT, coefs=(1.0, 0.0, 0.0))
        b = _coefficient_artifact(ArtifactKind.RAW_COEFFICIENT, coefs=(3.0, 0.0, 0.0))
        collection = ModelCollection('test', {'a': a, 'b': b, 'c': None})

        np.testing.assert_allclose(predict(collection, rows), np.full(40, 2.0))

    def test_ensemble_skips_failing_member(self, rows):
        good = _coefficient_artifact(ArtifactKind.RAW_COEFFICIENT, coefs=(1.0, 0.0, 0.0))
        broken = ModelArtifact(ArtifactKind.RAW_COEFFICIENT,
                               coefficients=pd.Series([1.0], index=['const']),
                               feature_names=['missing_feature'])
        collection = ModelCollection('test', {'good': good, 'broken': broken})

        np.testing.assert_allclose(predict(collection, rows), np.ones(40))

    def test_ensemble_ignores_nan_entries(self, rows):
        a = _coefficient_artifact(ArtifactKind.RAW_COEFFICIENT, coefs=(1.0, 0.0, 0.0))
        b = _coefficient_artifact(ArtifactKind.RAW_COEFFICIENT, coefs=(3.0, 0.0, 0.0))
        rows = rows.copy()
        rows.loc[0, 'x1'] = np.nan

        prediction = ensemble_predict({'a': a, 'b': b}, rows)
        assert np.isnan(prediction[0])
        assert prediction[1] == pytest.approx(2.0)

    def test_nothing_predicts_returns_none(self, rows):
        assert predict(ModelCollection('test', {'a': None, 'b': None}), rows) is None

    def test_single_entry_delegates(self, rows):
        artifact = _coefficient_artifact(ArtifactKind.RAW_COEFFICIENT)
        single = predict(ModelCollection('test', {'only': artifact}), rows)

        np.testing.assert_allclose(single, predict_artifact(artifact, rows))

    def test_single_absent_entry(self, rows):
        assert predict(ModelCollection('test', {'only': None}), rows) is None
