# === FILE: sitemap_builder/crawler/crawler.py ===
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import urlsplit

from aiohttp import ClientSession

from sitemap_builder.config import CrawlConfig
from sitemap_builder.crawler.fetcher import Fetcher, create_session
from sitemap_builder.crawler.filter import CrawlFilter, is_internal, page_number
from sitemap_builder.crawler.link_extractor import extract_canonical, extract_links
from sitemap_builder.crawler.models import PageData
from sitemap_builder.crawler.normalizer import normalize, strip_fragment
from sitemap_builder.errors import FetchFailure, ParseFailure
from sitemap_builder.logger import get_logger
from sitemap_builder.models import ChangeFrequency, CrawlState, ExclusionConfig, SitemapEntry

__all__ = ("SitemapCrawler", "special_pages", "parse_http_date", "SPECIAL_PATHS")

SPECIAL_PATHS: Dict[str, float] = {
    "": 1.0,
    "/contact": 0.9,
    "/about": 0.9,
    "/about-us": 0.9,
    "/products": 0.9,
    "/services": 0.9,
}
DEFAULT_PRIORITY = 0.7
PROGRESS_EVERY = 50

UrlPredicate = Callable[[str], bool]
EntryCallback = Callable[[SitemapEntry], None]
ProgressCallback = Callable[[int, str], None]


def special_pages(seed: str) -> Dict[str, float]:
    """Priority table keyed by absolute URL without trailing slash."""
    origin = seed.rstrip("/")
    return {origin + path: priority for path, priority in SPECIAL_PATHS.items()}


def parse_http_date(value: Optional[str]) -> datetime:
    """Parse an HTTP date header (``Last-Modified``); ParseFailure if unusable."""
    if not value:
        raise ParseFailure("empty date header")
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError) as exc:
        raise ParseFailure(f"bad date header {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SitemapCrawler:
    """
    Асинхронный краулер, собирающий записи sitemap.

    Link-following is gated by an injected predicate (``CrawlFilter`` by
    default) and every accepted page is reported through ``on_entry``.
    All shared crawl state is mutated under one lock.
    """

    def __init__(
        self,
        settings: CrawlConfig,
        exclusion: ExclusionConfig,
        *,
        should_crawl: Optional[UrlPredicate] = None,
        on_entry: Optional[EntryCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        session: Optional[ClientSession] = None,
    ) -> None:
        self.settings = settings
        self.exclusion = exclusion
        self.concurrency = exclusion.concurrency
        self.max_depth = exclusion.max_depth
        self.logger = get_logger("crawler")
        self.state = CrawlState()
        self.interrupted = False
        self._should_crawl = should_crawl
        self._on_entry = on_entry
        self._on_progress = on_progress
        self.session: Optional[ClientSession] = session
        self._owns_session = session is None
        self._fetcher: Optional[Fetcher] = None
        self._lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._visited: Set[str] = set()
        self._entries: List[SitemapEntry] = []
        self._seed = ""
        self._special: Dict[str, float] = {}
        self._predicate: UrlPredicate = lambda url: False

    async def __aenter__(self) -> SitemapCrawler:
        if self.session is None:
            self.session = create_session(
                timeout=self.settings.timeout,
                user_agent=self.settings.user_agent,
            )
        self._fetcher = Fetcher(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()

    def stop(self) -> None:
        """Stop taking new URLs; in-flight fetches finish and crawl() returns."""
        if not self._stop.is_set():
            self.logger.warning("Обход прерван, результат будет неполным")
            self.interrupted = True
            self._stop.set()

    async def crawl(self, seed: str, model_urls: Iterable[str] = ()) -> List[SitemapEntry]:
        """
        Crawl from *seed* and return the emitted entries.

        *model_urls* are normalized URLs already produced by record sources;
        pages matching them are fetched for links but not emitted.
        """
        if self._fetcher is None:
            raise RuntimeError("Session not initialized")
        self._seed = strip_fragment(seed)
        self.state = CrawlState(model_urls=frozenset(model_urls))
        self._special = special_pages(self._seed)
        self._predicate = self._should_crawl or CrawlFilter(
            self.exclusion, self._seed, self.state.normalized_seen
        )
        self._entries = []
        self._visited = {self._seed}

        self.logger.info("Старт обхода: %s (глубина %d, потоков %d)", self._seed, self.max_depth, self.concurrency)
        start = time.monotonic()
        queue: asyncio.Queue[Tuple[str, int]] = asyncio.Queue()
        await queue.put((self._seed, 0))
        workers = [asyncio.create_task(self._worker(queue)) for _ in range(self.concurrency)]
        try:
            await queue.join()
        finally:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        duration = time.monotonic() - start
        self.logger.info(
            "Завершено: %d страниц, %d записей за %.2f с",
            self.state.crawled_count,
            len(self._entries),
            duration,
        )
        return list(self._entries)

    async def _worker(self, queue: asyncio.Queue[Tuple[str, int]]) -> None:
        while True:
            try:
                url, depth = await queue.get()
            except asyncio.CancelledError:
                break
            try:
                if not self._stop.is_set() and not self._limit_reached():
                    await self._visit(url, depth, queue)
            except FetchFailure as exc:
                self.logger.debug("Failed %s", exc)
            except Exception:
                self.logger.exception("Unexpected error while processing %s", url)
            finally:
                queue.task_done()

    def _limit_reached(self) -> bool:
        return bool(self.settings.max_pages) and self.state.crawled_count >= self.settings.max_pages

    async def _visit(self, url: str, depth: int, queue: asyncio.Queue[Tuple[str, int]]) -> None:
        if self._fetcher is None:
            raise RuntimeError("Session not initialized")
        page = await self._fetcher.fetch(url)
        final_url = strip_fragment(page.url)

        async with self._lock:
            self.state.crawled_count += 1
            count = self.state.crawled_count
            self._visited.add(final_url)
        self.logger.debug("[%d] %s -> HTTP %d (depth %d)", count, url, page.status, depth)
        if count % PROGRESS_EVERY == 0:
            self.logger.info("Обработано страниц: %d", count)
        if self._on_progress:
            self._on_progress(count, url)

        if page.status == 200 and is_internal(final_url, self._seed):
            await self._emit(page)

        if depth >= self.max_depth or not page.content:
            return
        links = extract_links(page)
        async with self._lock:
            new_links = [link for link in links if link not in self._visited and self._predicate(link)]
            self._visited.update(new_links)
        for link in new_links:
            await queue.put((link, depth + 1))

    async def _emit(self, page: PageData) -> Optional[SitemapEntry]:
        url = strip_fragment(page.url)
        canonical = extract_canonical(page)
        async with self._lock:
            if canonical and canonical != url:
                if canonical in self.state.processed_urls:
                    self.logger.debug("Skip %s: canonical %s already listed", url, canonical)
                    return None
                url = canonical

            page_num = page_number(urlsplit(url).query)
            if page_num is not None and page_num > 1:
                return None
            if normalize(url) in self.state.model_urls:
                self.logger.debug("Skip %s: provided by record source", url)
                return None
            if url in self.state.processed_urls:
                return None

            entry = self._make_entry(url, page)
            self.state.processed_urls.add(url)
            self._entries.append(entry)

        if self._on_entry:
            self._on_entry(entry)
        return entry

    def _make_entry(self, url: str, page: PageData) -> SitemapEntry:
        priority = self._special.get(url.rstrip("/"))
        if priority is not None:
            frequency = ChangeFrequency.DAILY
        else:
            priority, frequency = DEFAULT_PRIORITY, ChangeFrequency.MONTHLY

        try:
            last_modified = parse_http_date(page.last_modified)
        except ParseFailure:
            last_modified = page.fetched_at

        return SitemapEntry(
            url=url,
            last_modified=last_modified,
            change_frequency=frequency,
            priority=priority,
        )
