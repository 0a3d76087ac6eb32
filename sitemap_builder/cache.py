# File: sitemap_builder/cache.py
"""sitemap_builder.cache: key/value кеш с TTL для cooldown и содержимого sitemap.

Два варианта: :class:`MemoryCache` для одного процесса (HTTP-сервер, тесты)
и :class:`FileCache`, переживающий перезапуск CLI. Запись значения — атомарная
замена, чтение никогда не видит наполовину записанное значение.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, Union

from sitemap_builder.logger import get_logger

logger = get_logger("cache")

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_.-]")
_ABSENT = object()


class Cache(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None: ...

    def has(self, key: str) -> bool: ...

    def forget(self, key: str) -> bool: ...


class MemoryCache:
    """Кеш в памяти процесса; ttl в секундах, None — бессрочно."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return default
            value, expires_at = item
            if expires_at is not None and expires_at <= self._clock():
                del self._data[key]
                return default
            return value

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expires_at = None if ttl is None else self._clock() + ttl
        with self._lock:
            self._data[key] = (value, expires_at)

    def has(self, key: str) -> bool:
        return self.get(key, _ABSENT) is not _ABSENT

    def forget(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None


class FileCache:
    """Кеш на диске: один JSON-файл на ключ ``{"value": ..., "expires_at": ...}``."""

    def __init__(self, directory: Union[str, Path], clock: Callable[[], float] = time.time) -> None:
        self.directory = Path(directory).expanduser()
        self._clock = clock

    def _path(self, key: str) -> Path:
        return self.directory / f"{_SAFE_KEY_RE.sub('_', key)}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return default
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Повреждённая запись кеша %s: %s", path, exc)
            return default
        expires_at = payload.get("expires_at")
        if expires_at is not None and expires_at <= self._clock():
            self.forget(key)
            return default
        return payload.get("value", default)

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        payload = {"value": value, "expires_at": None if ttl is None else self._clock() + ttl}
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self._path(key)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=str(self.directory), suffix=".tmp", delete=False
        ) as tmp:
            json.dump(payload, tmp, ensure_ascii=False)
            tmp_name = tmp.name
        os.replace(tmp_name, target)

    def has(self, key: str) -> bool:
        return self.get(key, _ABSENT) is not _ABSENT

    def forget(self, key: str) -> bool:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return False
        return True


__all__ = ["Cache", "MemoryCache", "FileCache"]
