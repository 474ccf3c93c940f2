"""
Источник точек для итерации KMeans.

Поддерживаемые форматы файла:
- ``.npy`` — массив (N, D) или (N,) для одномерных данных;
- ``.jsonl`` / ``.ndjson`` — по одной записи на строку, вектор лежит в поле
  ``features_column``;
- любой другой — текст, одна точка на строку, координаты через пробел.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

import numpy as np

from bspkmeans.core.errors import ConfigurationError


def records_to_points(records: Iterable[Mapping[str, Any]], features_column: str) -> np.ndarray:
    """
    Достаёт векторы признаков из записей.

    Raises:
        ConfigurationError: Если в записи нет поля или размерности различаются
    """
    vectors: List[np.ndarray] = []
    for i, record in enumerate(records):
        if features_column not in record:
            raise ConfigurationError(f"Record {i} has no field {features_column!r}")
        vec = np.asarray(record[features_column], dtype=np.float64).ravel()
        if vectors and vec.shape != vectors[0].shape:
            raise ConfigurationError(
                f"Record {i} has dimension {vec.shape[0]}, expected {vectors[0].shape[0]}"
            )
        vectors.append(vec)

    if not vectors:
        return np.empty((0, 0), dtype=np.float64)
    return np.vstack(vectors)


def load_points(path: str | Path, features_column: str = "features") -> np.ndarray:
    """Загружает точки из файла в массив (N, D) float64."""
    path = Path(path)
    logging.info(f"Loading points from {path}")

    suffix = path.suffix.lower()
    if suffix == ".npy":
        X = np.load(path)
    elif suffix in (".jsonl", ".ndjson"):
        with open(path, "r", encoding="utf-8") as f:
            records = [json.loads(line) for line in f if line.strip()]
        X = records_to_points(records, features_column)
    else:
        X = np.loadtxt(path, dtype=np.float64, comments="#", ndmin=2)

    X = np.asarray(X, dtype=np.float64)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.ndim != 2:
        raise ConfigurationError(f"Expected 2-D points in {path}, got shape {X.shape}")

    logging.info(f"Points loaded: X.shape={X.shape}")
    return X


def partition_points(
    X: np.ndarray, n_partitions: int, chunk_size: Optional[int] = None
) -> List[np.ndarray]:
    """
    Разбиение точек на партиции.

    Если задан chunk_size, партиции идут подряд по chunk_size точек, иначе
    точки делятся на n_partitions почти равных частей. Пустые партиции
    отбрасываются, но хотя бы одна партиция остаётся всегда.
    """
    N = X.shape[0]
    if chunk_size is None:
        if n_partitions < 1:
            raise ConfigurationError("n_partitions must be positive")
        parts = np.array_split(X, n_partitions)
    else:
        cs = int(chunk_size)
        if cs <= 0:
            raise ConfigurationError("chunk_size must be positive")
        parts = [X[i : min(i + cs, N)] for i in range(0, N, cs)]

    parts = [p for p in parts if p.shape[0] > 0]
    return parts or [X]
