# File: sitemap_builder/engine.py
"""sitemap_builder.engine: оркестрация генерации — сбор записей, обход, сборка и публикация."""

from __future__ import annotations

import asyncio
import signal
from contextlib import suppress
from typing import Any, Callable, Iterable, List, Optional, Sequence, Set, Tuple
from urllib.parse import urlsplit

from pydantic import HttpUrl, TypeAdapter, ValidationError

from sitemap_builder.config import CrawlConfig, SitemapConfig, load_config
from sitemap_builder.crawler.crawler import SitemapCrawler
from sitemap_builder.crawler.normalizer import normalize
from sitemap_builder.errors import InvalidInput
from sitemap_builder.logger import logger
from sitemap_builder.models import (
    ExclusionConfig,
    GenerationResult,
    GenerationState,
    SitemapEntry,
)
from sitemap_builder.sitemap.writer import SitemapWriter, assemble
from sitemap_builder.sources import RecordSource, RecordSourceAdapter, build_sources
from sitemap_builder.storage import LocalStorage, Storage

__all__ = ["GenerationJob", "validate_base_url", "generate_sitemap", "run_interruptible"]

CrawlerFactory = Callable[[CrawlConfig, ExclusionConfig], Any]

_URL_ADAPTER = TypeAdapter(HttpUrl)


def validate_base_url(url: Optional[str]) -> str:
    """Проверяет базовый URL до любых сетевых запросов; InvalidInput при ошибке."""
    if not url or not str(url).strip():
        raise InvalidInput("Базовый URL не задан: передайте BASE_URL или site_url в конфиге")
    try:
        parsed = _URL_ADAPTER.validate_python(str(url).strip())
    except ValidationError as exc:
        raise InvalidInput(f"Invalid base URL: {url}") from exc
    return str(parsed)


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


class GenerationJob:
    """Одна генерация sitemap: IDLE → COLLECTING/CRAWLING → ASSEMBLING → PUBLISHED | FAILED."""

    @staticmethod
    def load_config(path: Optional[str]) -> SitemapConfig:
        """Загружает конфиг из YAML/JSON или использует значения по умолчанию."""
        return load_config(path)

    def __init__(
        self,
        config: SitemapConfig,
        *,
        storage: Optional[Storage] = None,
        sources: Optional[Iterable[RecordSource]] = None,
        crawler_factory: Optional[CrawlerFactory] = None,
    ) -> None:
        self.config = config
        self.storage: Storage = storage or LocalStorage(config.storage.root / config.storage.disk)
        self.extra_sources: List[RecordSource] = list(sources or [])
        self.crawler_factory: CrawlerFactory = crawler_factory or SitemapCrawler
        self.state = GenerationState.IDLE
        self._crawler: Optional[SitemapCrawler] = None

    def _set_state(self, state: GenerationState) -> None:
        logger.debug("Генерация: %s → %s", self.state.value, state.value)
        self.state = state

    def stop(self) -> None:
        """Прерывает текущий обход; уже собранные записи будут опубликованы."""
        if self._crawler is not None:
            self._crawler.stop()

    def collect_models(self) -> List[SitemapEntry]:
        sources = build_sources(self.config.sources, self.config.base_url) + self.extra_sources
        return RecordSourceAdapter(sources).generate()

    def build_and_publish(
        self, entries: List[SitemapEntry], filename: Optional[str], public_base: str
    ) -> List[str]:
        """Собирает файлы и пишет их в хранилище; вызывается вне event loop."""
        index = self.config.index
        files = assemble(
            entries,
            "indexed" if index.enabled else "single",
            index.max_urls_per_sitemap,
            filename=filename or self.config.storage.filename,
            filename_pattern=index.filename_pattern,
            index_filename=index.index_filename,
            base_url=public_base,
            path=self.config.storage.path,
        )
        return SitemapWriter(self.storage).publish(files)

    async def crawl(
        self, seed: str, exclusion: ExclusionConfig, model_urls: Set[str]
    ) -> Tuple[List[SitemapEntry], SitemapCrawler]:
        async with self.crawler_factory(self.config.crawl, exclusion) as crawler:
            self._crawler = crawler
            try:
                entries = await crawler.crawl(seed, model_urls)
            finally:
                self._crawler = None
        return entries, crawler

    def _resolve_urls(self, mode: str, base_url: Optional[str]) -> Tuple[Optional[str], str]:
        """(seed, public_base); InvalidInput до любых сетевых запросов."""
        if mode not in ("crawl", "models", "hybrid"):
            raise InvalidInput(f"Неизвестный режим генерации: {mode}")
        seed: Optional[str] = None
        if mode != "models" or base_url:
            seed = validate_base_url(base_url or self.config.base_url)
        public_base = self.config.base_url or (_origin(seed) if seed else "")
        if self.config.index.enabled and not public_base:
            raise InvalidInput(
                "Для sitemap index нужен абсолютный адрес: задайте site_url или BASE_URL"
            )
        return seed, public_base

    async def run(
        self,
        base_url: Optional[str] = None,
        *,
        max_depth: Optional[int] = None,
        concurrency: Optional[int] = None,
        filename: Optional[str] = None,
        exclude: Optional[Sequence[str]] = None,
        mode: Optional[str] = None,
    ) -> GenerationResult:
        """Запускает генерацию и возвращает GenerationResult; ошибки пробрасываются."""
        mode = mode or self.config.generate_mode
        result = GenerationResult(mode=mode)

        entries: List[SitemapEntry] = []
        model_urls: Set[str] = set()
        try:
            seed, public_base = self._resolve_urls(mode, base_url)

            if mode in ("models", "hybrid"):
                self._set_state(GenerationState.COLLECTING)
                model_entries = await asyncio.to_thread(self.collect_models)
                entries.extend(model_entries)
                model_urls = {normalize(entry.url) for entry in model_entries}
                result.model_entries = len(model_entries)
                logger.info("Из источников получено %d URL", len(model_entries))

            if mode in ("crawl", "hybrid"):
                if seed is None:
                    raise RuntimeError("Crawl requested without a base URL")
                self._set_state(GenerationState.CRAWLING)
                exclusion = self.config.exclusion(
                    max_depth=max_depth,
                    concurrency=concurrency,
                    excluded_directories=list(exclude) if exclude is not None else None,
                )
                if exclusion.excluded_directories:
                    logger.info("Исключённые директории: %s", ", ".join(exclusion.excluded_directories))
                crawled, crawler = await self.crawl(seed, exclusion, model_urls)
                entries.extend(crawled)
                result.crawled_entries = len(crawled)
                result.crawled_pages = crawler.state.crawled_count
                result.partial = crawler.interrupted

            self._set_state(GenerationState.ASSEMBLING)
            result.files = await asyncio.to_thread(
                self.build_and_publish, entries, filename, public_base
            )
            self._set_state(GenerationState.PUBLISHED)
        except Exception as exc:
            self._set_state(GenerationState.FAILED)
            result.state = self.state
            logger.error("Генерация sitemap не удалась (%s): %s", type(exc).__name__, exc)
            raise

        result.state = self.state
        if result.partial:
            logger.warning("Обход был прерван: опубликован неполный sitemap")
        if mode == "hybrid":
            logger.info(
                "Всего URL: %d (обход) + %d (источники) = %d",
                result.crawled_entries,
                result.model_entries,
                result.total_entries,
            )
        else:
            logger.info("Всего URL: %d", result.total_entries)
        return result


async def run_interruptible(job: GenerationJob, **kwargs: Any) -> GenerationResult:
    """Запускает job.run(); SIGINT прерывает обход вместо аварийного выхода."""
    loop = asyncio.get_running_loop()
    installed = False
    with suppress(NotImplementedError, RuntimeError, ValueError):
        loop.add_signal_handler(signal.SIGINT, job.stop)
        installed = True
    try:
        return await job.run(**kwargs)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def generate_sitemap(
    config: SitemapConfig,
    base_url: Optional[str] = None,
    **options: Any,
) -> GenerationResult:
    """Точка входа для CLI: одна генерация с указанной конфигурацией."""
    job = GenerationJob(config)
    return await run_interruptible(job, base_url=base_url, **options)
