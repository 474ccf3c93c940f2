from __future__ import annotations

from typing import Any, Iterable, List, Tuple

import numpy as np

from bspkmeans.core.aggregator import ClusterAccumulator
from bspkmeans.core.config import EmptyClusterPolicy


def average(acc: ClusterAccumulator) -> Tuple[int, np.ndarray]:
    """Новый центроид кластера: sum / count."""
    if acc.count <= 0:
        raise ValueError(f"Cluster {acc.cluster_id} has count={acc.count}, cannot average")
    return acc.cluster_id, acc.sum / acc.count


class CentroidCollector:
    """
    Собирает упорядоченный массив из k центроидов по результатам раунда.

    Позиция в массиве — единственный идентификатор кластера, поэтому
    центроиды раскладываются строго по cluster_id.
    """

    def __init__(
        self,
        k: int,
        policy: EmptyClusterPolicy = EmptyClusterPolicy.RETAIN,
        logger: Any | None = None,
    ) -> None:
        self.k = k
        self.policy = policy
        self.logger = logger
        # Пустые кластеры последнего вызова collect
        self.empty_clusters: List[int] = []

    def collect(
        self, averaged: Iterable[Tuple[int, np.ndarray]], previous: np.ndarray
    ) -> np.ndarray:
        if previous.shape[0] != self.k:
            raise ValueError(f"Expected {self.k} previous centroids, got {previous.shape[0]}")

        new_centroids = np.array(previous, dtype=np.float64, copy=True)
        filled = np.zeros(self.k, dtype=bool)

        for cid, centroid in averaged:
            if not 0 <= cid < self.k:
                raise ValueError(f"Cluster id {cid} out of range [0, {self.k})")
            if filled[cid]:
                raise ValueError(f"Cluster {cid} averaged twice in one round")
            new_centroids[cid] = centroid
            filled[cid] = True

        # EmptyClusterPolicy.RETAIN: незаполненные строки уже равны previous
        self.empty_clusters = [int(c) for c in np.flatnonzero(~filled)]
        if self.empty_clusters and self.logger:
            self.logger.warning(
                f"  Empty clusters {self.empty_clusters}: previous centroids retained"
            )
        return new_centroids
