# File: sitemap_builder/sitemap/writer.py
"""sitemap_builder.sitemap.writer: сериализация записей в XML sitemap и индекс.

Example
-------
```python
from sitemap_builder.sitemap.writer import assemble, SitemapWriter

files = assemble(entries, mode="indexed", max_per_file=50000,
                 base_url="https://example.com")
SitemapWriter(storage).publish(files)
```
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Iterator, List, Literal, Optional, Sequence

from lxml import etree

from sitemap_builder.errors import StorageFailure
from sitemap_builder.logger import get_logger
from sitemap_builder.models import GeneratedFile, SitemapEntry, SitemapFile, SitemapIndex
from sitemap_builder.storage import Storage

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
AssembleMode = Literal["single", "indexed"]

logger = get_logger("writer")


def format_lastmod(value: datetime) -> str:
    """ISO-8601 с точностью до секунды и смещением часового пояса."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat(timespec="seconds")


def format_priority(value: float) -> str:
    return f"{value:.1f}"


XML_DECLARATION = b'<?xml version="1.0" encoding="UTF-8"?>\n'


def _tostring(root: etree._Element) -> bytes:
    return XML_DECLARATION + etree.tostring(root, encoding="UTF-8", xml_declaration=False, pretty_print=True)


def _sub(parent: etree._Element, tag: str, text: str) -> None:
    etree.SubElement(parent, f"{{{SITEMAP_NS}}}{tag}").text = text


def build_urlset(entries: Iterable[SitemapEntry]) -> bytes:
    """``<urlset>`` со всеми записями в исходном порядке."""
    root = etree.Element(f"{{{SITEMAP_NS}}}urlset", nsmap={None: SITEMAP_NS})
    for entry in entries:
        node = etree.SubElement(root, f"{{{SITEMAP_NS}}}url")
        _sub(node, "loc", entry.url)
        if entry.last_modified is not None:
            _sub(node, "lastmod", format_lastmod(entry.last_modified))
        if entry.change_frequency is not None:
            _sub(node, "changefreq", entry.change_frequency.value)
        if entry.priority is not None:
            _sub(node, "priority", format_priority(entry.priority))
    return _tostring(root)


def build_index(locations: Iterable[str], generated_at: Optional[datetime] = None) -> bytes:
    """``<sitemapindex>`` со ссылками на файлы-шарды."""
    lastmod = format_lastmod(generated_at or datetime.now(timezone.utc))
    root = etree.Element(f"{{{SITEMAP_NS}}}sitemapindex", nsmap={None: SITEMAP_NS})
    for loc in locations:
        node = etree.SubElement(root, f"{{{SITEMAP_NS}}}sitemap")
        _sub(node, "loc", loc)
        _sub(node, "lastmod", lastmod)
    return _tostring(root)


def chunk_entries(entries: Sequence[SitemapEntry], size: int) -> Iterator[List[SitemapEntry]]:
    """Позиционное разбиение: первые size записей — первый файл и т.д."""
    if size < 1:
        raise ValueError("max_per_file must be >= 1")
    for start in range(0, len(entries), size):
        yield list(entries[start:start + size])


def _join(path: str, filename: str) -> str:
    path = path.strip("/")
    return f"{path}/{filename}" if path else filename


def plan(
    entries: Sequence[SitemapEntry],
    mode: AssembleMode,
    max_per_file: int,
    *,
    filename: str = "sitemap.xml",
    filename_pattern: str = "sitemap-%d.xml",
    index_filename: str = "sitemap.xml",
    path: str = "",
) -> SitemapFile | SitemapIndex:
    """Раскладывает записи по файлам, ничего не сериализуя."""
    if mode == "single":
        return SitemapFile(path=_join(path, filename), entries=list(entries))
    if mode != "indexed":
        raise ValueError(f"Неизвестный режим: {mode!r}")
    index = SitemapIndex(path=_join(path, index_filename))
    for number, chunk in enumerate(chunk_entries(entries, max_per_file), start=1):
        index.files.append(SitemapFile(path=_join(path, filename_pattern % number), entries=chunk))
    return index


def assemble(
    entries: Sequence[SitemapEntry],
    mode: AssembleMode = "single",
    max_per_file: int = 50000,
    *,
    filename: str = "sitemap.xml",
    filename_pattern: str = "sitemap-%d.xml",
    index_filename: str = "sitemap.xml",
    base_url: str = "",
    path: str = "",
    generated_at: Optional[datetime] = None,
) -> List[GeneratedFile]:
    """
    Сериализует записи в один файл (mode="single") или в шарды и индекс
    (mode="indexed"). Индекс всегда последний в списке; его ``<loc>`` —
    ``{base_url}/sitemaps/{имя шарда}``.
    """
    layout = plan(
        entries,
        mode,
        max_per_file,
        filename=filename,
        filename_pattern=filename_pattern,
        index_filename=index_filename,
        path=path,
    )
    if isinstance(layout, SitemapFile):
        return [GeneratedFile(layout.path, build_urlset(layout.entries))]

    files = [GeneratedFile(shard.path, build_urlset(shard.entries)) for shard in layout.files]
    prefix = base_url.rstrip("/")
    locations = [f"{prefix}/sitemaps/{shard.path.rsplit('/', 1)[-1]}" for shard in layout.files]
    files.append(GeneratedFile(layout.path, build_index(locations, generated_at)))
    return files


class SitemapWriter:
    """Публикует собранные файлы в хранилище, каждый файл атомарно."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def publish(self, files: Iterable[GeneratedFile]) -> List[str]:
        written: List[str] = []
        for generated in files:
            try:
                self.storage.put(generated.path, generated.content)
            except StorageFailure:
                raise
            except OSError as exc:
                raise StorageFailure(f"Не удалось записать {generated.path}: {exc}") from exc
            logger.info("Записан %s (%d байт)", generated.path, len(generated.content))
            written.append(generated.path)
        return written


__all__ = [
    "SITEMAP_NS",
    "AssembleMode",
    "build_urlset",
    "build_index",
    "chunk_entries",
    "plan",
    "assemble",
    "format_lastmod",
    "format_priority",
    "SitemapWriter",
]
