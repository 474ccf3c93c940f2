"""
Общие фикстуры для всех тестов.
"""

import logging

import numpy as np
import pytest

from bspkmeans.core.config import KMeansConfig


@pytest.fixture
def line_dataset():
    """Сценарий из шести точек на прямой: два очевидных кластера."""
    X = np.array([0.0, 1.0, 2.0, 9.0, 10.0, 11.0]).reshape(-1, 1)
    initial_centroids = np.array([[1.0], [10.0]])
    return X, initial_centroids


@pytest.fixture
def small_dataset():
    """Фикстура с небольшим тестовым датасетом (2D, 2 кластера)."""
    rng = np.random.default_rng(42)
    # Два явно разделённых кластера
    cluster1 = rng.standard_normal((30, 2)) + [0, 0]
    cluster2 = rng.standard_normal((30, 2)) + [5, 5]
    X = np.vstack([cluster1, cluster2])
    initial_centroids = np.array([
        [-1.0, -1.0],
        [6.0, 6.0],
    ])
    return X, initial_centroids


@pytest.fixture
def medium_dataset():
    """Фикстура со средним тестовым датасетом (10D, 3 кластера)."""
    rng = np.random.default_rng(42)
    cluster1 = rng.standard_normal((50, 10)) + [0] * 10
    cluster2 = rng.standard_normal((50, 10)) + [5] * 10
    cluster3 = rng.standard_normal((50, 10)) + [-5] * 10
    X = np.vstack([cluster1, cluster2, cluster3])
    initial_centroids = np.array([
        [-1.0] * 10,
        [6.0] * 10,
        [-6.0] * 10,
    ])
    return X, initial_centroids


@pytest.fixture
def simple_2d_dataset():
    """Фикстура с очень простым 2D датасетом для базовых тестов."""
    X = np.array([
        [0.0, 0.0],
        [1.0, 1.0],
        [2.0, 2.0],
        [10.0, 10.0],
        [11.0, 11.0],
        [12.0, 12.0],
    ])
    centroids = np.array([
        [0.5, 0.5],
        [11.0, 11.0],
    ])
    return X, centroids


@pytest.fixture
def config_factory():
    """KMeansConfig с переопределяемыми полями."""

    def make(**overrides) -> KMeansConfig:
        params = {"k": 2, "max_iterations": 5, "seed": 0}
        params.update(overrides)
        return KMeansConfig(**params)

    return make


@pytest.fixture
def test_logger():
    logger = logging.getLogger("bspkmeans_tests")
    logger.setLevel(logging.DEBUG)
    return logger
