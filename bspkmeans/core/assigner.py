"""
Оператор назначения точек ближайшему центроиду.

Один экземпляр на партицию. Точки поступают один раз и хранятся до конца
итерации (повторно проигрываются в каждом раунде), центроиды приходят
широковещательно ровно один раз за раунд. Назначение выполняется только
на границе раунда (on_epoch_watermark_incremented).

Состояния:
    ACCUMULATING → ROUND_FIRING → ACCUMULATING
                                 ↘ TERMINATED (после on_iteration_terminated)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, List, Optional, Tuple

import numpy as np

from bspkmeans.core.distance import DistanceMeasure
from bspkmeans.core.errors import ProtocolViolationError, RecoveryError


class AssignerState(str, Enum):
    ACCUMULATING = "accumulating"
    ROUND_FIRING = "round_firing"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class RoundAssignment:
    """Назначения одной партиции за один раунд: labels[i] — кластер точки points[i]."""

    epoch: int
    labels: np.ndarray
    points: np.ndarray

    def __iter__(self) -> Iterator[Tuple[int, np.ndarray]]:
        for label, point in zip(self.labels, self.points):
            yield int(label), point

    def __len__(self) -> int:
        return int(self.labels.shape[0])


@dataclass
class AssignerSnapshot:
    """Сохраняемое состояние оператора (входит в чекпоинт)."""

    partition_id: int
    points: np.ndarray
    pending_centroids: List[np.ndarray] = field(default_factory=list)
    last_epoch: Optional[int] = None
    state: AssignerState = AssignerState.ACCUMULATING


def assign_nearest(
    points: np.ndarray, centroids: np.ndarray, distance: DistanceMeasure
) -> np.ndarray:
    """argmin по центроидам; при равенстве выбирается наименьший индекс."""
    if points.shape[0] == 0:
        return np.empty(0, dtype=np.int64)
    distances = distance.pairwise(points, centroids)
    return np.argmin(distances, axis=1).astype(np.int64, copy=False)


class NearestCentroidAssigner:
    """Stateful-оператор одной партиции."""

    def __init__(
        self,
        partition_id: int,
        distance: DistanceMeasure,
        logger: Any | None = None,
    ) -> None:
        self.partition_id = partition_id
        self.distance = distance
        self.logger = logger

        self.state = AssignerState.ACCUMULATING
        self._point_chunks: List[np.ndarray] = []
        self._points: Optional[np.ndarray] = None
        self._centroids: List[np.ndarray] = []
        self.last_epoch: Optional[int] = None

    # --- Входы ---

    def add_points(self, points: np.ndarray) -> None:
        """Первый вход: точки партиции (сохраняются на всё время итерации)."""
        self._check_alive("points")
        arr = np.array(points, dtype=np.float64, ndmin=2)
        arr.setflags(write=False)
        self._point_chunks.append(arr)
        self._points = None

    def receive_centroids(self, centroids: np.ndarray) -> None:
        """Второй вход: широковещательный набор центроидов текущего раунда."""
        self._check_alive("centroids")
        self._centroids.append(np.asarray(centroids, dtype=np.float64))

    @property
    def points(self) -> np.ndarray:
        if self._points is None:
            if self._point_chunks:
                self._points = np.vstack(self._point_chunks)
            else:
                self._points = np.empty((0, 0), dtype=np.float64)
            self._points.setflags(write=False)
            self._point_chunks = [self._points] if self._points.size else []
        return self._points

    @property
    def n_points(self) -> int:
        return sum(chunk.shape[0] for chunk in self._point_chunks)

    @property
    def n_pending_centroids(self) -> int:
        return len(self._centroids)

    # --- Граница раунда ---

    def on_epoch_watermark_incremented(self, epoch: int) -> RoundAssignment:
        """
        Граница раунда epoch: назначает каждую сохранённую точку ближайшему
        центроиду и очищает буфер центроидов. Точки остаются в буфере.

        Raises:
            ProtocolViolationError: если за раунд получено не ровно один набор
                центроидов, либо эпоха повторяется или идёт назад
        """
        self._check_alive("round boundary")
        if self.last_epoch is not None and epoch <= self.last_epoch:
            raise ProtocolViolationError(
                f"Partition {self.partition_id}: round {epoch} fired after round "
                f"{self.last_epoch}"
            )
        if len(self._centroids) != 1:
            raise ProtocolViolationError(
                f"Partition {self.partition_id} received {len(self._centroids)} "
                f"list of centroids in round {epoch}"
            )

        self.state = AssignerState.ROUND_FIRING
        centroids = self._centroids[0]
        points = self.points
        if points.size and points.shape[1] != centroids.shape[1]:
            raise ProtocolViolationError(
                f"Partition {self.partition_id}: points have D={points.shape[1]}, "
                f"centroids have D={centroids.shape[1]}"
            )

        labels = assign_nearest(points, centroids, self.distance)

        self._centroids.clear()
        self.last_epoch = epoch
        self.state = AssignerState.ACCUMULATING
        return RoundAssignment(epoch=epoch, labels=labels, points=points)

    def on_iteration_terminated(self) -> None:
        """Итерация завершена: освобождаем точки и больше ничего не принимаем."""
        self._point_chunks = []
        self._points = None
        self._centroids.clear()
        self.state = AssignerState.TERMINATED

    # --- Снимок и восстановление ---

    def snapshot(self) -> AssignerSnapshot:
        return AssignerSnapshot(
            partition_id=self.partition_id,
            points=self.points.copy(),
            pending_centroids=[c.copy() for c in self._centroids],
            last_epoch=self.last_epoch,
            state=self.state,
        )

    def restore(self, snapshot: AssignerSnapshot) -> None:
        """
        Восстанавливает состояние свежего оператора из снимка.

        Raises:
            RecoveryError: если оператор уже получил данные или снимок
                принадлежит другой партиции / несогласован
        """
        if self._point_chunks or self._centroids or self.last_epoch is not None:
            raise RecoveryError(
                f"Partition {self.partition_id}: restore into a non-empty assigner"
            )
        if snapshot.partition_id != self.partition_id:
            raise RecoveryError(
                f"Snapshot of partition {snapshot.partition_id} cannot be restored "
                f"into partition {self.partition_id}"
            )
        if snapshot.state == AssignerState.ROUND_FIRING:
            raise RecoveryError(
                f"Partition {self.partition_id}: snapshot taken in the middle of a round"
            )
        if snapshot.points is None or np.ndim(snapshot.points) != 2:
            raise RecoveryError(f"Partition {self.partition_id}: malformed point buffer")

        points = np.array(snapshot.points, dtype=np.float64)
        if points.size:
            points.setflags(write=False)
            self._point_chunks = [points]
        self._points = None
        self._centroids = [np.asarray(c, dtype=np.float64) for c in snapshot.pending_centroids]
        self.last_epoch = snapshot.last_epoch
        self.state = AssignerState(snapshot.state)

        if self.logger:
            self.logger.info(
                f"Partition {self.partition_id} restored: {self.n_points} points, "
                f"{len(self._centroids)} pending centroid set(s), "
                f"last_epoch={self.last_epoch}"
            )

    def _check_alive(self, what: str) -> None:
        if self.state == AssignerState.TERMINATED:
            raise ProtocolViolationError(
                f"Partition {self.partition_id} received {what} after termination"
            )
