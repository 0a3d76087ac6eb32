# File: sitemap_builder/storage.py
"""sitemap_builder.storage: хранилище файлов sitemap.

Storage is addressed with relative POSIX paths (``sitemaps/sitemap.xml``).
:class:`LocalStorage` maps them under a root directory and writes every file
through a temporary file in the same directory followed by ``os.replace``, so
readers never observe a partially written file.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import List, Protocol, Union

from sitemap_builder.errors import NotFound, StorageFailure


class Storage(Protocol):
    """Минимальный интерфейс blob-хранилища."""

    def put(self, path: str, content: bytes) -> None: ...

    def get(self, path: str) -> bytes: ...

    def exists(self, path: str) -> bool: ...

    def delete(self, path: str) -> bool: ...

    def list_files(self, directory: str) -> List[str]: ...


class LocalStorage:
    """Файловое хранилище в каталоге root (обычно ``{storage.root}/{storage.disk}``)."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root).expanduser()

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path.lstrip("/"))
        if any(part == ".." for part in relative.parts):
            raise NotFound(f"Недопустимый путь: {path}")
        return self.root.joinpath(*relative.parts)

    def put(self, path: str, content: bytes) -> None:
        target = self._resolve(path)
        tmp_name = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "wb", dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, target)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageFailure(f"Не удалось записать {target}: {exc}") from exc

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise NotFound(path) from exc
        except IsADirectoryError as exc:
            raise NotFound(path) from exc

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except NotFound:
            return False

    def delete(self, path: str) -> bool:
        try:
            self._resolve(path).unlink()
        except FileNotFoundError:
            return False
        return True

    def list_files(self, directory: str) -> List[str]:
        """Файлы (не рекурсивно) в каталоге, отсортированные по имени."""
        base = self._resolve(directory)
        if not base.is_dir():
            return []
        prefix = directory.strip("/")
        return sorted(
            f"{prefix}/{child.name}" if prefix else child.name
            for child in base.iterdir()
            if child.is_file() and not child.name.startswith(".")
        )


__all__ = ["Storage", "LocalStorage"]
