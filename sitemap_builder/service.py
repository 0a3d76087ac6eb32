# File: sitemap_builder/service.py
"""sitemap_builder.service: cooldown, кеш содержимого и раздача файлов sitemap."""

from __future__ import annotations

import asyncio
import posixpath
from datetime import datetime, timezone
from typing import Optional

from sitemap_builder.cache import Cache, FileCache
from sitemap_builder.config import SitemapConfig
from sitemap_builder.engine import GenerationJob
from sitemap_builder.errors import NotFound
from sitemap_builder.logger import get_logger
from sitemap_builder.models import GenerationResult
from sitemap_builder.storage import Storage

__all__ = ["SitemapService", "safe_filename", "COOLDOWN_KEY", "CONTENT_KEY"]

COOLDOWN_KEY = "sitemap_generated"
CONTENT_KEY = "sitemap_content"

logger = get_logger("service")


def safe_filename(filename: str) -> Optional[str]:
    """Базовое имя файла без каталогов; None, если имя небезопасно."""
    name = posixpath.basename(filename.replace("\\", "/"))
    if not name or name != filename or name in (".", "..") or name.startswith("."):
        return None
    return name


class SitemapService:
    """Генерация по cooldown и выдача содержимого для HTTP-слоя."""

    def __init__(
        self,
        config: SitemapConfig,
        job: Optional[GenerationJob] = None,
        storage: Optional[Storage] = None,
        cache: Optional[Cache] = None,
    ) -> None:
        self.config = config
        self.cache: Cache = cache if cache is not None else FileCache(config.cache_dir)
        self.job = job or GenerationJob(config, storage=storage)
        self.storage: Storage = storage or self.job.storage
        self._generating = asyncio.Lock()

    # ------------------------------------------------------------------ #
    # Paths                                                              #
    # ------------------------------------------------------------------ #

    def path_for(self, filename: str) -> str:
        directory = self.config.storage.path.strip("/")
        return f"{directory}/{filename}" if directory else filename

    @property
    def main_path(self) -> str:
        return self.path_for(self.config.main_filename)

    @property
    def cooldown_seconds(self) -> float:
        return self.config.cooldown_hours * 3600

    # ------------------------------------------------------------------ #
    # Generation                                                         #
    # ------------------------------------------------------------------ #

    def should_skip_generation(self) -> bool:
        if self.config.environment == "local":
            return True
        return self.cache.has(COOLDOWN_KEY) and self.storage.exists(self.main_path)

    async def generate_if_due(self) -> bool:
        """Генерирует sitemap, если cooldown истёк или файла нет. True — если генерировали."""
        if self.should_skip_generation():
            logger.debug("Генерация пропущена: cooldown ещё действует")
            return False
        await self.generate()
        self.start_cooldown()
        return True

    async def force_regenerate(self) -> bool:
        """Генерирует sitemap независимо от cooldown."""
        await self.generate()
        self.start_cooldown()
        return True

    async def generate(self) -> GenerationResult:
        """Запускает генерацию и кладёт главный файл в кеш. Cooldown не трогает."""
        async with self._generating:
            return await self._generate_locked()

    async def _generate_locked(self) -> GenerationResult:
        result = await self.job.run()
        if self.storage.exists(self.main_path):
            content = await asyncio.to_thread(self.storage.get, self.main_path)
            self.cache.put(CONTENT_KEY, content.decode("utf-8"), ttl=self.cooldown_seconds)
        return result

    def start_cooldown(self) -> None:
        self.cache.put(
            COOLDOWN_KEY,
            datetime.now(timezone.utc).isoformat(timespec="seconds"),
            ttl=self.cooldown_seconds,
        )

    # ------------------------------------------------------------------ #
    # Serving                                                            #
    # ------------------------------------------------------------------ #

    async def get_sitemap_content(self) -> str:
        """Содержимое из кеша, иначе — свежая генерация и чтение файла.

        Параллельные запросы при пустом кеше ждут одну генерацию.
        """
        cached = self.cache.get(CONTENT_KEY)
        if cached is not None:
            return cached
        async with self._generating:
            cached = self.cache.get(CONTENT_KEY)
            if cached is not None:
                return cached
            await self._generate_locked()
        try:
            content = await asyncio.to_thread(self.storage.get, self.main_path)
        except NotFound:
            raise NotFound(f"{self.main_path} не создан") from None
        return content.decode("utf-8")

    def get_shard(self, filename: str) -> bytes:
        """Файл-шард по имени; NotFound, если его нет или имя небезопасно."""
        name = safe_filename(filename)
        if name is None:
            raise NotFound(filename)
        return self.storage.get(self.path_for(name))

    # ------------------------------------------------------------------ #
    # Clear                                                              #
    # ------------------------------------------------------------------ #

    def clear(self) -> int:
        """Удаляет файлы sitemap и записи кеша; возвращает число удалённых файлов."""
        deleted = 0
        if self.config.index.enabled:
            for path in self.storage.list_files(self.config.storage.path.strip("/")):
                if path.endswith(".xml") and self.storage.delete(path):
                    logger.info("Удалён %s", path)
                    deleted += 1
        elif self.storage.delete(self.path_for(self.config.storage.filename)):
            logger.info("Удалён %s", self.path_for(self.config.storage.filename))
            deleted += 1

        self.cache.forget(COOLDOWN_KEY)
        self.cache.forget(CONTENT_KEY)
        return deleted
