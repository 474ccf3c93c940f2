from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from numbers import Integral
from multiprocessing import cpu_count
from pathlib import Path
from typing import Optional

from bspkmeans.core.distance import get_distance_measure
from bspkmeans.core.errors import ConfigurationError


class EmptyClusterPolicy(str, Enum):
    # Кластер без точек в раунде сохраняет центроид предыдущего раунда
    RETAIN = "retain"


@dataclass(frozen=True)
class KMeansConfig:
    """
    Параметры одного запуска KMeans.

    Создаётся один раз и передаётся по ссылке во все компоненты.
    Проверка значений выполняется сразу при создании, до первого раунда.
    """

    k: int = 2
    max_iterations: int = 20
    seed: int = 0
    distance_measure: str = "euclidean"
    features_column: str = "features"
    # Порог сходимости; None — только ограничение по числу раундов
    tol: Optional[float] = None
    empty_cluster_policy: EmptyClusterPolicy = EmptyClusterPolicy.RETAIN

    def __post_init__(self) -> None:
        if isinstance(self.k, bool) or not isinstance(self.k, Integral) or self.k < 1:
            raise ConfigurationError(f"k must be a positive integer, got {self.k!r}")
        if (
            isinstance(self.max_iterations, bool)
            or not isinstance(self.max_iterations, Integral)
            or self.max_iterations < 1
        ):
            raise ConfigurationError(
                f"max_iterations must be a positive integer, got {self.max_iterations!r}"
            )
        # Любое целое, включая отрицательные: генератору передаётся seed по модулю 2**64
        if isinstance(self.seed, bool) or not isinstance(self.seed, Integral):
            raise ConfigurationError(f"seed must be an integer, got {self.seed!r}")
        if self.tol is not None and self.tol < 0:
            raise ConfigurationError(f"tol must be non-negative, got {self.tol!r}")
        if not self.features_column:
            raise ConfigurationError("features_column must be a non-empty string")

        get_distance_measure(self.distance_measure)

        try:
            policy = EmptyClusterPolicy(self.empty_cluster_policy)
        except ValueError:
            raise ConfigurationError(
                f"Unsupported empty cluster policy: {self.empty_cluster_policy!r}"
            ) from None
        object.__setattr__(self, "empty_cluster_policy", policy)


@dataclass(frozen=True)
class ExecutionConfig:
    """Параметры параллельного исполнения раундов."""

    n_partitions: int = 4
    n_workers: int = 4
    chunk_size: Optional[int] = None
    # Сколько секунд координатор ждёт барьер раунда
    barrier_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.n_partitions < 1:
            raise ConfigurationError("n_partitions must be positive")
        if self.n_workers < 1:
            raise ConfigurationError("n_workers must be positive")
        if self.chunk_size is not None and int(self.chunk_size) <= 0:
            raise ConfigurationError("chunk_size must be positive")

    @property
    def effective_workers(self) -> int:
        return max(1, min(int(self.n_workers), cpu_count()))


@dataclass(frozen=True)
class CheckpointConfig:
    """Куда и как часто сохранять снимок итерации."""

    path: Path
    every_n_rounds: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))
        if self.every_n_rounds < 1:
            raise ConfigurationError("every_n_rounds must be positive")
