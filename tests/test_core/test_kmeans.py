"""
Тесты оценщика KMeans и обученной модели.
"""

import logging

import numpy as np
import pytest

from bspkmeans.core.config import CheckpointConfig, ExecutionConfig, KMeansConfig
from bspkmeans.core.errors import ConfigurationError
from bspkmeans.core.kmeans import KMeans, KMeansModel
from bspkmeans.data.sampling import select_initial_centroids


class TestKMeansFit:
    def test_fit_convergence(self, small_dataset):
        """Полный цикл fit на простых данных."""
        X, initial_centroids = small_dataset
        model = KMeans(KMeansConfig(k=2, max_iterations=10)).fit(X, initial_centroids)

        assert isinstance(model, KMeansModel)
        assert model.centroids.shape == (2, 2)
        assert model.result.labels.shape == (60,)
        assert np.all((model.result.labels >= 0) & (model.result.labels < 2))

        # Тайминги собраны
        timings = model.result.timings
        assert timings.t_iter_total > 0
        assert abs(timings.t_iter_total - (timings.t_assign_total + timings.t_update_total)) < 1e-6

        # Центроиды у истинных центров кластеров
        centroids_sorted = model.centroids[np.argsort(model.centroids[:, 0])]
        np.testing.assert_allclose(centroids_sorted, [[0.0, 0.0], [5.0, 5.0]], atol=0.6)

    def test_fit_seeded_initialization_is_reproducible(self, medium_dataset):
        X, _ = medium_dataset
        config = KMeansConfig(k=3, max_iterations=5, seed=11)

        first = KMeans(config).fit(X)
        second = KMeans(config).fit(X)

        np.testing.assert_array_equal(first.centroids, second.centroids)

    def test_fit_with_negative_seed(self, small_dataset):
        X, _ = small_dataset
        config = KMeansConfig(k=2, max_iterations=2, seed=-1)

        model = KMeans(config).fit(X)

        assert model.centroids.shape == (2, 2)
        np.testing.assert_array_equal(model.centroids, KMeans(config).fit(X).centroids)

    def test_fit_uses_select_initial_centroids(self, medium_dataset):
        X, _ = medium_dataset
        config = KMeansConfig(k=3, max_iterations=3, seed=5)

        implicit = KMeans(config).fit(X)
        explicit = KMeans(config).fit(X, select_initial_centroids(X, 3, 5))

        np.testing.assert_allclose(implicit.centroids, explicit.centroids)

    def test_partitioning_does_not_change_result(self, medium_dataset):
        X, initial = medium_dataset
        config = KMeansConfig(k=3, max_iterations=8)

        by_count = KMeans(config, execution=ExecutionConfig(n_partitions=5, n_workers=3)).fit(X, initial)
        by_chunk = KMeans(config, execution=ExecutionConfig(chunk_size=16, n_workers=2)).fit(X, initial)

        np.testing.assert_allclose(by_count.centroids, by_chunk.centroids, rtol=1e-10, atol=1e-10)

    def test_fit_records(self, line_dataset):
        X, initial = line_dataset
        records = [{"vec": row.tolist(), "id": i} for i, row in enumerate(X)]
        config = KMeansConfig(k=2, max_iterations=5, features_column="vec")

        model = KMeans(config).fit_records(records, initial)

        np.testing.assert_allclose(model.centroids, [[1.0], [10.0]])

    def test_fit_logs_rounds(self, small_dataset, caplog, test_logger):
        X, initial = small_dataset
        with caplog.at_level(logging.INFO, logger="bspkmeans_tests"):
            KMeans(KMeansConfig(k=2, max_iterations=3), logger=test_logger).fit(X, initial)

        messages = [r.getMessage() for r in caplog.records]
        assert any("[N=60 D=2 K=2" in m and "Round 1/3" in m for m in messages)
        assert any("terminated after 3 rounds" in m for m in messages)

    def test_fit_rejects_1d_input(self):
        with pytest.raises(ConfigurationError):
            KMeans(KMeansConfig(k=1)).fit(np.arange(5.0))

    def test_k_larger_than_points(self):
        with pytest.raises(ConfigurationError):
            KMeans(KMeansConfig(k=10)).fit(np.zeros((3, 2)))


class TestKMeansResume:
    def test_resume_requires_checkpoint(self):
        with pytest.raises(ConfigurationError):
            KMeans(KMeansConfig()).resume()

    def test_fit_with_checkpoint_cleans_up(self, tmp_path, small_dataset):
        X, initial = small_dataset
        checkpoint = CheckpointConfig(path=tmp_path / "state.pkl")

        KMeans(KMeansConfig(k=2, max_iterations=3), checkpoint=checkpoint).fit(X, initial)

        assert not (tmp_path / "state.pkl").exists()


class TestKMeansModel:
    def test_predict(self, simple_2d_dataset):
        X, centroids = simple_2d_dataset
        model = KMeans(KMeansConfig(k=2, max_iterations=5)).fit(X, centroids)

        labels = model.predict(np.array([[0.2, 0.1], [11.5, 12.0]]))

        np.testing.assert_array_equal(labels, [0, 1])
        np.testing.assert_array_equal(model.predict(X), model.result.labels)

    def test_predict_wrong_dimension(self, simple_2d_dataset):
        X, centroids = simple_2d_dataset
        model = KMeans(KMeansConfig(k=2, max_iterations=1)).fit(X, centroids)

        with pytest.raises(ConfigurationError):
            model.predict(np.zeros((2, 3)))
