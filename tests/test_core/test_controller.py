"""
Тесты координатора раундов: число раундов, сценарии, параллельное исполнение.
"""

import time

import numpy as np
import pytest

from bspkmeans.core.config import ExecutionConfig
from bspkmeans.core.controller import RoundController
from bspkmeans.core.distance import EuclideanDistanceMeasure
from bspkmeans.core.errors import ConfigurationError, ProtocolViolationError
from bspkmeans.core.termination import TerminationCriteria
from bspkmeans.data.source import partition_points


class CountingTermination(TerminationCriteria):
    """Останавливает после max_rounds и запоминает все вызовы."""

    def __init__(self, max_rounds):
        self.max_rounds = max_rounds
        self.calls = []

    def should_terminate(self, round_index, centroids, previous=None):
        self.calls.append((round_index, centroids.shape))
        return round_index >= self.max_rounds


class TestRoundCount:
    @pytest.mark.parametrize("max_iterations", [1, 2, 7])
    def test_exactly_m_rounds(self, config_factory, small_dataset, max_iterations):
        X, initial = small_dataset
        controller = RoundController(config_factory(max_iterations=max_iterations))

        result = controller.run(partition_points(X, 3), initial)

        assert result.n_rounds == max_iterations
        assert result.timings.n_rounds == max_iterations
        assert len(result.inertia_history) == max_iterations

    def test_centroid_count_stable_every_round(self, config_factory, medium_dataset):
        X, initial = medium_dataset
        termination = CountingTermination(6)
        controller = RoundController(config_factory(k=3, max_iterations=6), termination=termination)

        controller.run(partition_points(X, 4), initial)

        assert [c[0] for c in termination.calls] == [1, 2, 3, 4, 5, 6]
        assert all(shape == (3, 10) for _, shape in termination.calls)

    def test_convergence_stops_early(self, config_factory, line_dataset):
        X, initial = line_dataset
        controller = RoundController(config_factory(max_iterations=50, tol=1e-9))

        result = controller.run(partition_points(X, 2), initial)

        # Центроиды [1, 10] уже неподвижны: остановка после первого раунда
        assert result.n_rounds == 1
        assert result.converged


class TestScenarios:
    def test_line_scenario(self, config_factory, line_dataset):
        X, initial = line_dataset
        controller = RoundController(config_factory(max_iterations=5))

        result = controller.run(partition_points(X, 3), initial)

        np.testing.assert_allclose(result.centroids, [[1.0], [10.0]])
        np.testing.assert_array_equal(result.labels, [0, 0, 0, 1, 1, 1])

    def test_starving_cluster_keeps_previous(self, config_factory, line_dataset):
        """Центроид, к которому не приписано ни одной точки, не меняется."""
        X, _ = line_dataset
        initial = np.array([[1.0], [10.0], [100.0]])
        controller = RoundController(config_factory(k=3, max_iterations=4))

        result = controller.run(partition_points(X, 2), initial)

        np.testing.assert_allclose(result.centroids, [[1.0], [10.0], [100.0]])

    def test_empty_partition(self, config_factory, line_dataset):
        X, initial = line_dataset
        partitions = [X[:3], np.empty((0, 1)), X[3:]]

        result = RoundController(config_factory()).run(partitions, initial)

        np.testing.assert_allclose(result.centroids, [[1.0], [10.0]])

    def test_inertia_non_increasing(self, config_factory):
        rng = np.random.default_rng(3)
        centers = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0], [10.0, 10.0]])
        X = np.vstack([c + rng.standard_normal((100, 2)) for c in centers])
        rng.shuffle(X)
        # Начальные центроиды смещены от истинных центров
        initial = X[:4].copy()

        result = RoundController(config_factory(k=4, max_iterations=15)).run(
            partition_points(X, 5), initial
        )

        history = np.array(result.inertia_history)
        assert np.all(np.diff(history) <= 1e-9 * history[:-1])


class TestParallelExecution:
    def test_threads_match_serial(self, config_factory, medium_dataset):
        X, initial = medium_dataset
        config = config_factory(k=3, max_iterations=10)

        serial = RoundController(config, execution=ExecutionConfig(n_partitions=1, n_workers=1))
        parallel = RoundController(config, execution=ExecutionConfig(n_partitions=6, n_workers=4))

        r_serial = serial.run(partition_points(X, 1), initial)
        r_parallel = parallel.run(partition_points(X, 6), initial)

        np.testing.assert_allclose(r_serial.centroids, r_parallel.centroids, rtol=1e-10, atol=1e-10)
        np.testing.assert_array_equal(r_serial.labels, r_parallel.labels)

    def test_state_released_after_termination(self, config_factory, small_dataset):
        X, initial = small_dataset
        controller = RoundController(config_factory(), execution=ExecutionConfig(n_workers=2))

        controller.run(partition_points(X, 2), initial)

        assert all(a.n_points == 0 for a in controller._assigners)
        assert controller._pool is None


class FailingDistance(EuclideanDistanceMeasure):
    """Падает на заданном вызове pairwise (имитация сбоя в партиции)."""

    def __init__(self, fail_on_call):
        self.fail_on_call = fail_on_call
        self.calls = 0

    def pairwise(self, points, centroids):
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise ProtocolViolationError("boom")
        return super().pairwise(points, centroids)


class TestErrors:
    def test_wrong_initial_centroids(self, config_factory, small_dataset):
        X, _ = small_dataset
        with pytest.raises(ConfigurationError):
            RoundController(config_factory(k=3)).run([X], np.zeros((2, 2)))

    def test_dimension_mismatch(self, config_factory, small_dataset):
        X, initial = small_dataset
        with pytest.raises(ConfigurationError):
            RoundController(config_factory()).run([X[:, :1]], initial)

    def test_no_partitions(self, config_factory, small_dataset):
        _, initial = small_dataset
        with pytest.raises(ConfigurationError):
            RoundController(config_factory()).run([], initial)

    @pytest.mark.parametrize("n_workers", [1, 3])
    def test_partition_failure_aborts_iteration(self, config_factory, small_dataset, n_workers):
        """Ошибка в партиции прерывает итерацию без частичного результата."""
        X, initial = small_dataset
        controller = RoundController(
            config_factory(max_iterations=5),
            execution=ExecutionConfig(n_workers=n_workers),
            distance=FailingDistance(fail_on_call=4),
        )

        with pytest.raises(ProtocolViolationError, match="boom"):
            controller.run(partition_points(X, 3), initial)

        assert controller._pool is None
        assert all(a.n_points == 0 for a in controller._assigners)


class SlowDistance(EuclideanDistanceMeasure):
    """Зависает на партиции заданного размера (имитация медленного воркера)."""

    def __init__(self, slow_size, delay):
        self.slow_size = slow_size
        self.delay = delay

    def pairwise(self, points, centroids):
        if points.shape[0] == self.slow_size:
            time.sleep(self.delay)
        return super().pairwise(points, centroids)


class TestBarrierTimeout:
    @pytest.mark.parametrize("n_workers", [1, 2])
    def test_hung_partition_aborts_round(self, config_factory, line_dataset, n_workers):
        """Таймаут прерывает раунд, не дожидаясь зависшей партиции."""
        X, initial = line_dataset
        controller = RoundController(
            config_factory(max_iterations=3),
            execution=ExecutionConfig(n_workers=n_workers, barrier_timeout=0.2),
            distance=SlowDistance(slow_size=4, delay=2.0),
        )

        start = time.perf_counter()
        with pytest.raises(ProtocolViolationError, match="did not complete"):
            controller.run([X[:2], X[2:]], initial)
        elapsed = time.perf_counter() - start

        assert elapsed < 1.0
        assert controller._pool is None

    def test_timeout_not_hit_by_fast_rounds(self, config_factory, line_dataset):
        X, initial = line_dataset
        controller = RoundController(
            config_factory(max_iterations=3),
            execution=ExecutionConfig(n_workers=1, barrier_timeout=5.0),
        )

        result = controller.run(partition_points(X, 2), initial)

        assert result.n_rounds == 3
        np.testing.assert_allclose(result.centroids, [[1.0], [10.0]])


class TestConvergedFlag:
    def test_custom_criterion_stopping_early(self, config_factory, small_dataset):
        X, initial = small_dataset
        controller = RoundController(
            config_factory(max_iterations=10), termination=CountingTermination(2)
        )

        result = controller.run(partition_points(X, 2), initial)

        assert result.n_rounds == 2
        assert result.converged

    def test_round_limit_is_not_convergence(self, config_factory, small_dataset):
        X, initial = small_dataset
        result = RoundController(config_factory(max_iterations=2)).run(
            partition_points(X, 2), initial
        )

        assert not result.converged


class TestRoundOutsideIteration:
    def test_run_partitions_without_barrier(self, config_factory, line_dataset):
        _, initial = line_dataset
        controller = RoundController(config_factory())

        with pytest.raises(ProtocolViolationError, match="outside of an iteration"):
            controller._run_partitions(0, initial)
