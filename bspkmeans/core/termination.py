from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from bspkmeans.core.errors import ConfigurationError


class TerminationCriteria(ABC):
    """
    Предикат остановки, вызывается после того как набор центроидов раунда
    полностью сформирован.

    round_index — число завершённых раундов (1 после первого раунда).
    """

    @abstractmethod
    def should_terminate(
        self,
        round_index: int,
        centroids: np.ndarray,
        previous: Optional[np.ndarray] = None,
    ) -> bool:
        raise NotImplementedError

    def has_converged(self) -> bool:
        """Последняя остановка вызвана сходимостью центроидов."""
        return False


class TerminateOnMaxIterations(TerminationCriteria):
    def __init__(self, max_iterations: int) -> None:
        if max_iterations < 1:
            raise ConfigurationError("max_iterations must be positive")
        self.max_iterations = max_iterations

    def should_terminate(self, round_index, centroids, previous=None) -> bool:
        return round_index >= self.max_iterations


class TerminateOnConvergence(TerminationCriteria):
    """Остановка, когда максимальное изменение центроидов меньше tol."""

    def __init__(self, tol: float) -> None:
        if tol < 0:
            raise ConfigurationError("tol must be non-negative")
        self.tol = tol
        self.last_change: Optional[float] = None

    def should_terminate(self, round_index, centroids, previous=None) -> bool:
        if previous is None:
            return False
        self.last_change = float(np.max(np.abs(centroids - previous)))
        return self.last_change < self.tol

    def has_converged(self) -> bool:
        return self.last_change is not None and self.last_change < self.tol


class AnyOf(TerminationCriteria):
    def __init__(self, *criteria: TerminationCriteria) -> None:
        self.criteria = criteria

    def should_terminate(self, round_index, centroids, previous=None) -> bool:
        # Все критерии вычисляются, чтобы у каждого было актуальное состояние
        results = [c.should_terminate(round_index, centroids, previous) for c in self.criteria]
        return any(results)

    def has_converged(self) -> bool:
        return any(c.has_converged() for c in self.criteria)


def build_termination(max_iterations: int, tol: Optional[float] = None) -> TerminationCriteria:
    if tol is None:
        return TerminateOnMaxIterations(max_iterations)
    return AnyOf(TerminateOnMaxIterations(max_iterations), TerminateOnConvergence(tol))
