"""
Иерархия исключений итеративного движка KMeans.

- ConfigurationError: некорректные параметры, обнаруживаются до первого раунда;
- ProtocolViolationError: нарушение протокола раундов (фатально, без повторов);
- RecoveryError: невозможно восстановить состояние из чекпоинта;
- InputError: входной файл точек не найден или повреждён.
"""

from __future__ import annotations


class KMeansError(Exception):
    """Базовое исключение пакета."""


class ConfigurationError(KMeansError, ValueError):
    """Некорректная конфигурация (k < 1, неизвестная мера расстояния и т.п.)."""


class ProtocolViolationError(KMeansError, RuntimeError):
    """Нарушен инвариант раунда: широковещание, барьер или порядок эпох."""


class RecoveryError(KMeansError):
    """Состояние раунда не может быть восстановлено из чекпоинта."""


class InputError(KMeansError):
    """Файл с точками отсутствует или не читается."""
