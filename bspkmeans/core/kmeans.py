from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

import numpy as np

from bspkmeans.core.assigner import assign_nearest
from bspkmeans.core.config import CheckpointConfig, ExecutionConfig, KMeansConfig
from bspkmeans.core.controller import IterationResult, RoundController
from bspkmeans.core.distance import DistanceMeasure, get_distance_measure
from bspkmeans.core.errors import ConfigurationError
from bspkmeans.data.sampling import select_initial_centroids
from bspkmeans.data.source import partition_points, records_to_points
from bspkmeans.utils.logging import PrefixedLogger, format_run_prefix


class KMeansModel:
    """Обученная модель: итоговые центроиды и мера расстояния для predict."""

    def __init__(
        self,
        centroids: np.ndarray,
        distance: DistanceMeasure,
        result: Optional[IterationResult] = None,
    ) -> None:
        self.centroids = centroids
        self.distance = distance
        self.result = result

    @property
    def k(self) -> int:
        return int(self.centroids.shape[0])

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Номер ближайшего центроида для каждой точки."""
        X = np.asarray(X, dtype=np.float64)
        if X.ndim != 2 or (X.shape[0] and X.shape[1] != self.centroids.shape[1]):
            raise ConfigurationError(
                f"Expected points of shape (N, {self.centroids.shape[1]}), got {X.shape}"
            )
        return assign_nearest(X, self.centroids, self.distance)


class KMeans:
    """
    Итеративный KMeans (алгоритм Ллойда) над разбитыми на партиции точками.

    fit выбирает начальные центроиды (если не переданы), разбивает точки на
    партиции и запускает RoundController; resume продолжает прерванную
    итерацию из чекпоинта.
    """

    def __init__(
        self,
        config: KMeansConfig = KMeansConfig(),
        execution: ExecutionConfig = ExecutionConfig(),
        checkpoint: Optional[CheckpointConfig] = None,
        logger: Any | None = None,
    ) -> None:
        self.config = config
        self.execution = execution
        self.checkpoint = checkpoint
        self.logger = logger
        self.distance = get_distance_measure(config.distance_measure)

    def _controller(self, logger: Any | None) -> RoundController:
        return RoundController(
            self.config,
            execution=self.execution,
            distance=self.distance,
            checkpoint=self.checkpoint,
            logger=logger,
        )

    def fit(
        self, X: np.ndarray, initial_centroids: Optional[np.ndarray] = None
    ) -> KMeansModel:
        X = np.asarray(X, dtype=np.float64)
        if X.ndim != 2:
            raise ConfigurationError(f"X must be 2-D, got shape {X.shape}")

        if initial_centroids is None:
            initial_centroids = select_initial_centroids(X, self.config.k, self.config.seed)

        partitions = partition_points(
            X, self.execution.n_partitions, self.execution.chunk_size
        )
        logger = None
        if self.logger:
            prefix = format_run_prefix(X.shape[0], X.shape[1], self.config.k, len(partitions))
            logger = PrefixedLogger(self.logger, prefix)

        result = self._controller(logger).run(partitions, initial_centroids)
        return KMeansModel(result.centroids, self.distance, result)

    def fit_records(
        self,
        records: Iterable[Mapping[str, Any]],
        initial_centroids: Optional[np.ndarray] = None,
    ) -> KMeansModel:
        """fit по записям: вектор берётся из поля config.features_column."""
        X = records_to_points(records, self.config.features_column)
        return self.fit(X, initial_centroids)

    def resume(self) -> KMeansModel:
        if self.checkpoint is None:
            raise ConfigurationError("resume() requires a checkpoint config")
        result = self._controller(self.logger).resume()
        return KMeansModel(result.centroids, self.distance, result)
