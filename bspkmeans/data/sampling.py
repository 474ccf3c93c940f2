"""
Выбор начальных центроидов.

Однократная операция в одном воркере: все точки перемешиваются генератором
с заданным seed, первые k становятся начальными центроидами.
"""

from __future__ import annotations

from numbers import Integral

import numpy as np

from bspkmeans.core.errors import ConfigurationError

# Отрицательные и большие seed приводятся к диапазону, который принимает numpy
SEED_MODULUS = 2**64


def select_initial_centroids(points: np.ndarray, k: int, seed: int) -> np.ndarray:
    """
    Выборка k точек без возвращения, детерминированная при фиксированных
    seed и порядке входа.

    Args:
        points: Все точки входа (N, D)
        k: Количество кластеров
        seed: Любое целое значение seed

    Returns:
        Массив начальных центроидов (k, D)

    Raises:
        ConfigurationError: Если k < 1, точек меньше, чем k, или seed не целое
    """
    X = np.asarray(points, dtype=np.float64)
    if X.ndim != 2:
        raise ConfigurationError(f"Points must be 2-D, got shape {X.shape}")
    if k < 1:
        raise ConfigurationError(f"k must be positive, got {k}")
    if X.shape[0] < k:
        raise ConfigurationError(
            f"Cannot select {k} initial centroids from {X.shape[0]} points"
        )

    if isinstance(seed, bool) or not isinstance(seed, Integral):
        raise ConfigurationError(f"seed must be an integer, got {seed!r}")

    rng = np.random.default_rng(int(seed) % SEED_MODULUS)
    order = rng.permutation(X.shape[0])
    return X[order[:k]].copy()
