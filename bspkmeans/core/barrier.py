"""
Барьер раунда: координатор не продолжает, пока все партиции не сообщили
о завершении текущей эпохи.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

from bspkmeans.core.errors import ProtocolViolationError


class RoundBarrier:
    def __init__(self, n_partitions: int) -> None:
        if n_partitions < 1:
            raise ValueError("n_partitions must be positive")
        self.n_partitions = n_partitions
        self.epoch: Optional[int] = None
        self._arrived: Dict[int, Any] = {}
        self._cond = threading.Condition()

    def open(self, epoch: int) -> None:
        """Открывает барьер для новой эпохи; предыдущая должна быть снята wait."""
        with self._cond:
            if self.epoch is not None:
                raise ProtocolViolationError(
                    f"Round {epoch} opened while round {self.epoch} is still in flight"
                )
            self.epoch = epoch
            self._arrived = {}

    def arrive(self, partition_id: int, epoch: int, partial: Any) -> None:
        """Партиция сообщает результат раунда."""
        with self._cond:
            if self.epoch is None or epoch != self.epoch:
                raise ProtocolViolationError(
                    f"Partition {partition_id} arrived for round {epoch}, "
                    f"barrier is at round {self.epoch}"
                )
            if not 0 <= partition_id < self.n_partitions:
                raise ProtocolViolationError(f"Unknown partition id {partition_id}")
            if partition_id in self._arrived:
                raise ProtocolViolationError(
                    f"Partition {partition_id} arrived twice for round {epoch}"
                )
            self._arrived[partition_id] = partial
            if len(self._arrived) == self.n_partitions:
                self._cond.notify_all()

    def wait(self, epoch: int, timeout: Optional[float] = None) -> List[Any]:
        """
        Блокирует до прихода всех партиций и снимает барьер.

        Returns:
            Частичные результаты, упорядоченные по partition_id

        Raises:
            ProtocolViolationError: неверная эпоха или истёк таймаут
        """
        with self._cond:
            if epoch != self.epoch:
                raise ProtocolViolationError(
                    f"Waiting for round {epoch}, barrier is at round {self.epoch}"
                )
            done = self._cond.wait_for(
                lambda: len(self._arrived) == self.n_partitions, timeout=timeout
            )
            if not done:
                missing = sorted(set(range(self.n_partitions)) - set(self._arrived))
                raise ProtocolViolationError(
                    f"Round {epoch}: partitions {missing} did not reach the barrier"
                )
            partials = [self._arrived[pid] for pid in range(self.n_partitions)]
            self.epoch = None
            self._arrived = {}
            return partials
