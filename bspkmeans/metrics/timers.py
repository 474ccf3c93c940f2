"""
Таймеры раундов итеративного KMeans.

Timer — контекстный менеджер на time.perf_counter(); RoundTimings копит
время шагов назначения и обновления по всем раундам одного запуска.
"""
from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Any


class Timer:
    """
    Контекстный менеджер для замера участка кода.

    Пример использования:
        with Timer() as t:
            controller.run_round(...)
        elapsed_time = t.elapsed
    """

    def __init__(self) -> None:
        self.start: float = 0.0
        self.end: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> Timer:
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.end = time.perf_counter()
        self.elapsed = self.end - self.start


@dataclass
class RoundTimings:
    """
    Суммарные тайминги запуска:
    - t_assign_total: назначение + локальная агрегация в партициях (до барьера);
    - t_update_total: слияние, усреднение и сборка центроидов;
    - t_iter_total: сумма двух предыдущих.
    """

    t_assign_total: float = 0.0
    t_update_total: float = 0.0
    t_iter_total: float = 0.0
    n_rounds: int = 0

    def add_round(self, t_assign: float, t_update: float) -> None:
        self.t_assign_total += t_assign
        self.t_update_total += t_update
        self.t_iter_total += t_assign + t_update
        self.n_rounds += 1
