"""
Агрегация назначений раунда в суммы и счётчики по кластерам.

Слияние (sum1 + sum2, count1 + count2) ассоциативно и коммутативно, поэтому
частичные агрегаты партиций можно сворачивать деревом в любом порядке.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List

import numpy as np

from bspkmeans.core.assigner import RoundAssignment
from bspkmeans.core.errors import ProtocolViolationError

Partial = Dict[int, "ClusterAccumulator"]


@dataclass(frozen=True)
class ClusterAccumulator:
    cluster_id: int
    sum: np.ndarray
    count: int

    def merge(self, other: ClusterAccumulator) -> ClusterAccumulator:
        if other.cluster_id != self.cluster_id:
            raise ValueError(
                f"Cannot merge accumulators of clusters {self.cluster_id} "
                f"and {other.cluster_id}"
            )
        return ClusterAccumulator(
            cluster_id=self.cluster_id,
            sum=self.sum + other.sum,
            count=self.count + other.count,
        )


def accumulate(assignment: RoundAssignment, k: int) -> Partial:
    """
    Локальная редукция одной партиции: (sum[D], count) для каждого кластера,
    получившего хотя бы одну точку.
    """
    labels = assignment.labels
    if labels.shape[0] == 0:
        return {}
    if labels.min() < 0 or labels.max() >= k:
        raise ProtocolViolationError(
            f"Cluster id out of range [0, {k}) in round {assignment.epoch}"
        )

    points = assignment.points
    D = points.shape[1]
    sums = np.zeros((k, D), dtype=np.float64)
    np.add.at(sums, labels, points)
    counts = np.bincount(labels, minlength=k)

    return {
        int(cid): ClusterAccumulator(cluster_id=int(cid), sum=sums[cid].copy(), count=int(counts[cid]))
        for cid in np.flatnonzero(counts)
    }


def merge_accumulators(left: Partial, right: Partial) -> Partial:
    """Слияние двух частичных агрегатов (новый словарь, входы не меняются)."""
    merged: Partial = dict(left)
    for cid, acc in right.items():
        merged[cid] = merged[cid].merge(acc) if cid in merged else acc
    return merged


def reduce_partials(partials: Iterable[Partial]) -> Partial:
    """Попарная (деревом) свёртка частичных агрегатов партиций."""
    level: List[Partial] = list(partials)
    if not level:
        return {}
    while len(level) > 1:
        nxt = [
            merge_accumulators(level[i], level[i + 1])
            for i in range(0, len(level) - 1, 2)
        ]
        if len(level) % 2:
            nxt.append(level[-1])
        level = nxt
    return level[0]
