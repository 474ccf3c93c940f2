"""
Метрики качества и производительности итераций KMeans.
"""

from __future__ import annotations

import numpy as np


def inertia(X: np.ndarray, centroids: np.ndarray, labels: np.ndarray) -> float:
    """
    Сумма квадратов расстояний точек до центроидов их кластеров (WCSS).

    Args:
        X: Точки (N, D)
        centroids: Центроиды (K, D)
        labels: Номер кластера для каждой точки (N,)

    Returns:
        Значение WCSS
    """
    if X.shape[0] == 0:
        return 0.0
    diff = X - centroids[labels]
    return float(np.einsum("nd,nd->", diff, diff))


def centroid_shift(old: np.ndarray, new: np.ndarray) -> float:
    """Максимальное покомпонентное изменение центроидов между раундами."""
    return float(np.max(np.abs(new - old)))


def throughput(N: int, K: int, D: int, n_iters: int, time: float) -> float:
    """
    Пропускная способность: (N × K × D × n_iters) / time операций в секунду.

    Raises:
        ZeroDivisionError: Если time равно нулю
    """
    if time == 0:
        raise ZeroDivisionError("time must be non-zero")
    return (N * K * D * n_iters) / time
