# File: sitemap_builder/logger.py
"""Логирование sitemap_builder.

Все модули пишут в дерево логгеров ``SitemapBuilder``: движок генерации в
корневой логгер (:data:`logger`), компоненты (``crawler``, ``sources``,
``service``, ...) в дочерние через :func:`get_logger`. Вывод идёт в stdout и,
по желанию, в файл с ротацией; CLI перенастраивает его через
:func:`init_logging` по опциям ``--log-level``/``--log-file``/``--log-format``.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, List, Union

DEFAULT_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOGGER_NAME: Final[str] = "SitemapBuilder"

# Ротация файла журнала: 5 МБ × 3 архива.
LOG_FILE_MAX_BYTES: Final[int] = 5 * 1024 * 1024
LOG_FILE_BACKUPS: Final[int] = 3

_LevelT = Union[int, str]


def _handlers(log_file: str | Path | None, fmt: str) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                filename=str(path),
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
        )
    formatter = logging.Formatter(fmt)
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure(
    *,
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
    replace_handlers: bool = True,
) -> logging.Logger:
    """Настраивает логгер ``SitemapBuilder`` и возвращает его.

    ``level`` — число или имя уровня (``"DEBUG"``); ``log_file`` — путь к
    журналу, ``None`` — только консоль. При ``replace_handlers=False`` новые
    обработчики добавляются к уже установленным.
    """
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(level)

    if replace_handlers:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

    for handler in _handlers(log_file, log_format):
        root.addHandler(handler)

    # Дочерние логгеры пишут только через обработчики SitemapBuilder.
    root.propagate = False
    return root


def init_logging(
    level: _LevelT = "INFO",
    log_file: str | Path | None = None,
    log_format: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """Точка входа CLI: заменяет обработчики и применяет уровень."""
    return configure(level=level, log_file=log_file, log_format=log_format, replace_handlers=True)


def get_logger(component: str) -> logging.Logger:
    """Дочерний логгер компонента, например ``SitemapBuilder.crawler``."""
    return logging.getLogger(f"{LOGGER_NAME}.{component}")


logger: logging.Logger = init_logging()

__all__ = ["logger", "configure", "init_logging", "get_logger", "LOGGER_NAME", "DEFAULT_FORMAT"]
