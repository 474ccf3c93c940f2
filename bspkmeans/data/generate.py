"""
Синтетические датасеты для демонстрации и тестов.

Использует sklearn.make_blobs; центры кластеров разнесены на расстояние,
заметно большее cluster_std, чтобы кластеры были хорошо разделимы.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
from sklearn.datasets import make_blobs


@dataclass
class BlobsConfig:
    """Параметры синтетического датасета."""

    N: int
    D: int
    K: int
    cluster_std: float = 1.0
    center_box: float = 20.0
    seed: int = 42


@dataclass
class GeneratedDataset:
    data: np.ndarray
    labels: np.ndarray
    centers: np.ndarray
    metadata: dict[str, Any]


def generate_blobs(cfg: BlobsConfig) -> GeneratedDataset:
    X, y, centers = make_blobs(
        n_samples=cfg.N,
        n_features=cfg.D,
        centers=cfg.K,
        cluster_std=cfg.cluster_std,
        center_box=(-cfg.center_box, cfg.center_box),
        random_state=cfg.seed,
        return_centers=True,
    )
    return GeneratedDataset(
        data=X.astype(np.float64),
        labels=y.astype(np.int32),
        centers=centers.astype(np.float64),
        metadata={
            "N": cfg.N,
            "D": cfg.D,
            "K": cfg.K,
            "cluster_std": cfg.cluster_std,
            "seed": cfg.seed,
        },
    )


def save_points(dataset: GeneratedDataset, path: str | Path) -> Path:
    """Сохраняет точки датасета: .npy как массив, иначе текстом с метаданными."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".npy":
        np.save(path, dataset.data)
    else:
        meta = " ".join(f"{k}={v}" for k, v in dataset.metadata.items())
        np.savetxt(path, dataset.data, header=meta, comments="# ")
    return path
