"""
Снимки итерации на границах раундов.

Снимок содержит номер следующего раунда, текущий (уже разосланный) набор
центроидов и состояние операторов всех партиций по partition_id. Восстановление
продолжает итерацию с этого раунда, а не с начала.
"""

from __future__ import annotations

import os
import pickle
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from bspkmeans.core.assigner import AssignerSnapshot, AssignerState
from bspkmeans.core.config import KMeansConfig
from bspkmeans.core.errors import RecoveryError


@dataclass
class IterationSnapshot:
    epoch: int
    centroids: np.ndarray
    partitions: Dict[int, AssignerSnapshot]
    config: KMeansConfig
    inertia_history: List[float] = field(default_factory=list)

    def validate(self) -> None:
        """Проверяет согласованность снимка перед восстановлением."""
        if self.epoch < 0:
            raise RecoveryError(f"Negative epoch in snapshot: {self.epoch}")
        if np.ndim(self.centroids) != 2 or self.centroids.shape[0] != self.config.k:
            raise RecoveryError(
                f"Snapshot centroids shape {np.shape(self.centroids)} does not match k={self.config.k}"
            )
        if sorted(self.partitions) != list(range(len(self.partitions))) or not self.partitions:
            raise RecoveryError(
                f"Snapshot partition ids are not contiguous: {sorted(self.partitions)}"
            )
        for pid, snap in self.partitions.items():
            if snap.partition_id != pid:
                raise RecoveryError(f"Partition {pid} holds the state of {snap.partition_id}")
            if snap.state != AssignerState.ACCUMULATING:
                raise RecoveryError(f"Partition {pid} snapshot is in state {snap.state}")
            # Снимок делается после рассылки, но до срабатывания границы раунда
            if len(snap.pending_centroids) != 1:
                raise RecoveryError(
                    f"Partition {pid} has {len(snap.pending_centroids)} pending "
                    f"centroid sets for round {self.epoch}"
                )
            if snap.last_epoch is not None and snap.last_epoch >= self.epoch:
                raise RecoveryError(
                    f"Partition {pid} already fired round {snap.last_epoch}, "
                    f"snapshot resumes at round {self.epoch}"
                )


class CheckpointStore:
    """Файловое хранилище одного снимка (pickle, атомарная замена файла)."""

    def __init__(self, location: str | Path) -> None:
        self.location = Path(location)

    def save(self, snapshot: IterationSnapshot) -> Path:
        self.location.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.location.with_name(self.location.name + ".tmp")
        with open(tmp, "wb") as f:
            f.write(pickle.dumps(snapshot))
        os.replace(tmp, self.location)
        return self.location

    def retrieve(self) -> Optional[IterationSnapshot]:
        if not self.location.exists():
            return None
        try:
            with open(self.location, "rb") as f:
                snapshot = pickle.loads(f.read())
        except (OSError, pickle.UnpicklingError, EOFError, AttributeError, ImportError, ValueError) as e:
            raise RecoveryError(f"Cannot read checkpoint {self.location}: {e}") from e
        if not isinstance(snapshot, IterationSnapshot):
            raise RecoveryError(f"{self.location} does not contain an iteration snapshot")
        return snapshot

    def load(self) -> IterationSnapshot:
        """Как retrieve, но отсутствие чекпоинта — ошибка восстановления."""
        snapshot = self.retrieve()
        if snapshot is None:
            raise RecoveryError(f"Checkpoint not found: {self.location}")
        snapshot.validate()
        return snapshot

    def delete(self) -> None:
        if self.location.exists():
            os.remove(self.location)
