import logging
from typing import Any


def setup_logger(level: int = logging.INFO) -> logging.Logger:
    """
    Создаёт и настраивает корневой логгер проекта ``bspkmeans``.

    :param level: минимальный уровень логирования
    :return: настроенный экземпляр :class:`logging.Logger`
    """
    logger = logging.getLogger("bspkmeans")
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # Чтобы сообщения не дублировались через root-логгер
    logger.propagate = False

    return logger


def format_run_prefix(N: int, D: int, K: int, P: int) -> str:
    """Префикс логов запуска: размер данных, число кластеров и партиций."""
    return f"[N={N} D={D} K={K} P={P}]"


class PrefixedLogger:
    """Обёртка над логгером, добавляющая префикс к каждому сообщению."""

    def __init__(self, base_logger: logging.Logger | None, prefix: str) -> None:
        self._base = base_logger
        self._prefix = prefix

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        if self._base:
            self._base.info(f"{self._prefix} {msg}", *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        if self._base:
            self._base.warning(f"{self._prefix} {msg}", *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        if self._base:
            self._base.error(f"{self._prefix} {msg}", *args, **kwargs)
