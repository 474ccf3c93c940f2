"""
Меры расстояния между векторами.

Ассайнер работает только через интерфейс DistanceMeasure, поэтому новую меру
можно зарегистрировать, не трогая логику назначения кластеров.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Type

import numpy as np

from bspkmeans.core.errors import ConfigurationError


class DistanceMeasure(ABC):
    """Симметричная неотрицательная мера расстояния."""

    NAME: str = ""

    @abstractmethod
    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        """Расстояние между двумя векторами."""
        raise NotImplementedError

    def pairwise(self, points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        """
        Матрица расстояний (N, K) от каждой точки до каждого центроида.

        Базовая реализация вызывает distance поэлементно; наследники
        переопределяют её векторизованной версией.
        """
        out = np.empty((points.shape[0], centroids.shape[0]), dtype=np.float64)
        for i, point in enumerate(points):
            for j, centroid in enumerate(centroids):
                out[i, j] = self.distance(centroid, point)
        return out

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class EuclideanDistanceMeasure(DistanceMeasure):
    """sqrt(sum((a_i - b_i)^2))."""

    NAME = "euclidean"

    def distance(self, a: np.ndarray, b: np.ndarray) -> float:
        diff = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
        return float(np.sqrt(np.dot(diff, diff)))

    def pairwise(self, points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        # (N, K, D) → (N, K)
        diff = points[:, None, :] - centroids[None, :, :]
        sq = np.einsum("nkd,nkd->nk", diff, diff, optimize=True)
        return np.sqrt(sq)


_REGISTRY: Dict[str, Type[DistanceMeasure]] = {
    EuclideanDistanceMeasure.NAME: EuclideanDistanceMeasure,
}


def register_distance_measure(cls: Type[DistanceMeasure]) -> Type[DistanceMeasure]:
    """Регистрирует меру под её NAME; можно использовать как декоратор."""
    if not cls.NAME:
        raise ConfigurationError(f"{cls.__name__} has no NAME")
    _REGISTRY[cls.NAME] = cls
    return cls


def available_distance_measures() -> list[str]:
    return sorted(_REGISTRY)


def get_distance_measure(name: str) -> DistanceMeasure:
    """
    Возвращает экземпляр меры по имени из конфигурации.

    Raises:
        ConfigurationError: Если имя не зарегистрировано
    """
    try:
        cls = _REGISTRY[name]
    except (KeyError, TypeError):
        raise ConfigurationError(
            f"Unsupported distance measure: {name!r}. "
            f"Supported options: {', '.join(available_distance_measures())}"
        ) from None
    return cls()
