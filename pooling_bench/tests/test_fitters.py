"""Unit tests for the three pooling fitters and the model registry.

MCMC fits are replaced with OLS-backed stand-ins (see conftest.fast_fits);
tests/test_bayesian.py covers the samplers themselves.
"""

import pytest

from conftest import make_panel

from pooling_bench.config import model_registry
from pooling_bench.core.artifacts import ArtifactKind, ModelCollection
from pooling_bench.core.reproducibility import RandomContext
from pooling_bench.features.preparation import prepare_model_data
from pooling_bench.models import complete_pooling, no_pooling
from pooling_bench.models.complete_pooling import fit_complete_pooling
from pooling_bench.models.no_pooling import fit_no_pooling
from pooling_bench.models.partial_pooling import fit_partial_pooling


class TestNoPooling:
    """Test per-entity fitting."""

    def test_three_models_per_entity(self, prepared, test_config, fast_fits):
        collection = fit_no_pooling(prepared['merged'], test_config)

        assert isinstance(collection, ModelCollection)
        assert collection.name == 'no_pooling'
        assert set(collection) == {f"{e}_{s}" for e in ('AAPL', 'XOM') for s in ('linear', 'bayes', 'glm')}
        assert collection['AAPL_linear'].kind is ArtifactKind.OLS
        assert collection['AAPL_glm'].kind is ArtifactKind.GLM
        assert collection['AAPL_bayes'].kind is ArtifactKind.BAYESIAN_POOLED

    def test_entities_fitted_independently(self, prepared, test_config, fast_fits):
        collection = fit_no_pooling(prepared['merged'], test_config)

        assert collection['AAPL_linear'].n_obs == 30
        assert collection['XOM_linear'].n_obs == 30
        assert not collection['AAPL_linear'].coefficients.equals(collection['XOM_linear'].coefficients)

    def test_entity_without_rows_is_skipped(self, prepared, test_config, fast_fits):
        merged = prepared['merged']
        collection = fit_no_pooling(merged[merged['entity_id'] != 'XOM'], test_config)

        assert not any(name.startswith('XOM') for name in collection)

    def test_failing_fit_is_absent(self, prepared, test_config, fast_fits, monkeypatch):
        def broken_glm(df, features, target='close', as_raw=False):
            raise ValueError("perfect separation")

        monkeypatch.setattr(no_pooling, 'fit_glm', broken_glm)
        collection = fit_no_pooling(prepared['merged'], test_config)

        assert collection['AAPL_glm'] is None
        assert collection['XOM_glm'] is None
        assert collection['AAPL_linear'] is not None

    def test_failure_log_names_the_model(self, prepared, test_config, fast_fits, monkeypatch, caplog):
        def broken_glm(df, features, target='close', as_raw=False):
            raise ValueError("perfect separation")

        monkeypatch.setattr(no_pooling, 'fit_glm', broken_glm)
        fit_no_pooling(prepared['merged'], test_config)

        assert 'All batches failed for XOM_glm' in caplog.text

    def test_entity_seeds_are_deterministic(self, prepared, test_config, fast_fits):
        first = fit_no_pooling(prepared['merged'], test_config, RandomContext(5))
        second = fit_no_pooling(prepared['merged'], test_config, RandomContext(5))

        seed = first['AAPL_bayes'].diagnostics['random_seed']
        assert seed is not None
        assert seed == second['AAPL_bayes'].diagnostics['random_seed']
        assert seed != first['XOM_bayes'].diagnostics['random_seed']

    def test_entity_workers(self, prepared, test_config, fast_fits):
        sequential = fit_no_pooling(prepared['merged'], test_config)
        threaded = fit_no_pooling(prepared['merged'], {**test_config, 'n_workers': 2})

        assert list(sequential) == list(threaded)
        assert sequential['XOM_linear'].coefficients.equals(threaded['XOM_linear'].coefficients)

    def test_pool_batch_coefficients(self, prepared, test_config, fast_fits):
        config = {**test_config, 'pool_batch_coefficients': True,
                  'batch': {'batch_size': 10, 'min_batch': 10, 'gc_every': 3, 'n_workers': 1}}
        collection = fit_no_pooling(prepared['merged'], config)

        artifact = collection['AAPL_linear']
        assert artifact.kind is ArtifactKind.RAW_COEFFICIENT
        assert artifact.diagnostics['n_models'] == 3
        assert artifact.n_obs == 30


class TestPartialPooling:
    """Test the random-intercept paradigm."""

    def test_result_names(self, prepared, test_config, fast_fits):
        collection = fit_partial_pooling(prepared['merged'], test_config)

        assert set(collection) == {'hierarchical_bayes', 'mixed_effects'}
        assert collection['hierarchical_bayes'].kind is ArtifactKind.BAYESIAN_HIERARCHICAL
        assert 'benchmark_close' in collection['hierarchical_bayes'].feature_names

    def test_failure_is_isolated(self, prepared, test_config, fast_fits, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("sampler diverged")

        monkeypatch.setattr('pooling_bench.models.partial_pooling.fit_hierarchical_bayes', broken)
        collection = fit_partial_pooling(prepared['merged'], test_config)

        assert collection['hierarchical_bayes'] is None
        assert 'hierarchical_bayes' in collection.absent()
        assert 'mixed_effects' in collection


class TestCompletePooling:
    """Test the single pooled model paradigm."""

    def test_result_names(self, prepared, test_config, fast_fits):
        collection = fit_complete_pooling(prepared['merged'], test_config)

        assert set(collection) == {'robust_regression', 'pooled_bayes'}
        assert collection['robust_regression'].kind is ArtifactKind.ROBUST
        assert collection['robust_regression'].n_obs == 60
        assert collection['pooled_bayes'].diagnostics['likelihood'] == 'student_t'


class TestPooledBatching:
    """Pooled fitters batch over date-ordered rows, so every batch spans all entities."""

    @pytest.fixture
    def long_merged(self, test_config):
        # 120 days x 2 entities = 240 rows -> 3 batches of at most 100
        return prepare_model_data(make_panel(n_days=120), test_config)['merged']

    def test_partial_pooling_sees_both_groups(self, long_merged, test_config, fast_fits):
        artifact = fit_partial_pooling(long_merged, test_config)['hierarchical_bayes']

        assert set(artifact.group_effects['group'].index) == {'NASDAQ', 'SP500'}
        assert artifact.n_obs < len(long_merged)

    def test_complete_pooling_batches_span_entities(self, long_merged, test_config, fast_fits, monkeypatch):
        seen = []
        real_fit_robust = complete_pooling.fit_robust

        def recording_fit_robust(batch, *args, **kwargs):
            seen.append(set(batch['entity_id']))
            return real_fit_robust(batch, *args, **kwargs)

        monkeypatch.setattr(complete_pooling, 'fit_robust', recording_fit_robust)
        fit_complete_pooling(long_merged, test_config)

        assert len(seen) == 3
        assert all(entities == {'AAPL', 'XOM'} for entities in seen)


class TestModelRegistry:
    """Test registry lookups."""

    def test_list_models(self):
        assert model_registry.list_models() == ['no_pooling', 'partial_pooling', 'complete_pooling']

    def test_get_model_config(self):
        config = model_registry.get_model_config('complete_pooling')
        assert config['function'] is fit_complete_pooling

    def test_unknown_model(self):
        with pytest.raises(KeyError, match='Available'):
            model_registry.get_model_config('full_bayes')
