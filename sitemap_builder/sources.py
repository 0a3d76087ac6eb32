# File: sitemap_builder/sources.py
"""sitemap_builder.sources: превращение записей внешних источников в записи sitemap.

Each source maps its records to URLs, last-modified dates, change frequencies
and priorities. Every mapping is one of three value sources:

* :class:`Field` – read an attribute or mapping key of the record;
* :class:`Computed` – call a function with the record;
* :class:`Constant` – the same value for every record.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from itertools import islice
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union
from urllib.parse import urljoin

from dateutil.parser import parse as parse_date

from sitemap_builder.config import RecordSourceConfig
from sitemap_builder.errors import InvalidInput, ParseFailure
from sitemap_builder.logger import get_logger
from sitemap_builder.models import ChangeFrequency, SitemapEntry

logger = get_logger("sources")

DEFAULT_CHUNK_SIZE = 1000

_MISSING = object()


@dataclass(frozen=True, slots=True)
class Field:
    """Значение берётся из поля записи."""

    name: str


@dataclass(frozen=True, slots=True)
class Computed:
    """Значение вычисляется функцией от записи."""

    func: Callable[[Any], Any]


@dataclass(frozen=True, slots=True)
class Constant:
    """Одинаковое значение для всех записей."""

    value: Any


ValueSource = Union[Field, Computed, Constant]


def resolve(source: Optional[ValueSource], record: Any) -> Any:
    """Вычисляет значение источника для записи; None, если источник не задан."""
    if source is None:
        return None
    if isinstance(source, Constant):
        return source.value
    if isinstance(source, Computed):
        return source.func(record)
    if isinstance(source, Field):
        if isinstance(record, Mapping):
            return record.get(source.name)
        return getattr(record, source.name, None)
    raise TypeError(f"Неизвестный источник значения: {source!r}")


@dataclass(slots=True)
class RecordSource:
    """Описание одного источника записей."""

    name: str
    records: Union[Iterable[Any], Callable[[], Iterable[Any]]]
    url: ValueSource
    lastmod: Optional[ValueSource] = None
    changefreq: Optional[ValueSource] = None
    priority: Optional[ValueSource] = None
    query: Optional[Callable[[Iterable[Any]], Iterable[Any]]] = None
    enabled: bool = True
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def iter_records(self) -> Iterable[Any]:
        records = self.records() if callable(self.records) else self.records
        if self.query is not None:
            records = self.query(records)
        return records


def iter_chunks(records: Iterable[Any], size: int) -> Iterator[List[Any]]:
    """Отдаёт записи порциями не больше size."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    iterator = iter(records)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk


# --------------------------------------------------------------------------- #
# Приведение значений                                                          #
# --------------------------------------------------------------------------- #


def coerce_lastmod(value: Any) -> datetime:
    """datetime/date/строка → aware datetime; ParseFailure, если не разобрать."""
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime.combine(value, time.min)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            result = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise ParseFailure(f"bad lastmod {value!r}") from exc
    elif isinstance(value, str) and value.strip():
        try:
            result = parse_date(value)
        except (ValueError, OverflowError) as exc:
            raise ParseFailure(f"bad lastmod {value!r}") from exc
    else:
        raise ParseFailure(f"bad lastmod {value!r}")
    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def coerce_priority(value: Any) -> float:
    """Число или строка → float в [0, 1]; ParseFailure, если не число."""
    try:
        priority = float(value)
    except (TypeError, ValueError) as exc:
        raise ParseFailure(f"bad priority {value!r}") from exc
    if priority != priority:  # NaN
        raise ParseFailure("priority is NaN")
    return min(1.0, max(0.0, priority))


# --------------------------------------------------------------------------- #
# Адаптер                                                                      #
# --------------------------------------------------------------------------- #


class RecordSourceAdapter:
    """Собирает записи sitemap из всех включённых источников."""

    def __init__(self, sources: Iterable[RecordSource]) -> None:
        self.sources: List[RecordSource] = list(sources)

    def generate(self) -> List[SitemapEntry]:
        return list(self.iter_entries())

    def iter_entries(self) -> Iterator[SitemapEntry]:
        for source in self.sources:
            if not source.enabled:
                logger.debug("Источник %s отключён", source.name)
                continue
            produced = 0
            for chunk in iter_chunks(source.iter_records(), source.chunk_size):
                for record in chunk:
                    entry = self.entry_for(source, record)
                    if entry is not None:
                        produced += 1
                        yield entry
            logger.info("Источник %s: %d URL", source.name, produced)

    def entry_for(self, source: RecordSource, record: Any) -> Optional[SitemapEntry]:
        """Запись sitemap для одной записи источника или None, если URL пуст."""
        url = resolve(source.url, record)
        if not url:
            return None
        url = str(url).strip()
        if not url:
            return None

        last_modified = None
        raw_lastmod = resolve(source.lastmod, record)
        if raw_lastmod is not None:
            try:
                last_modified = coerce_lastmod(raw_lastmod)
            except ParseFailure as exc:
                logger.warning("%s: %s — lastmod пропущен", source.name, exc)

        frequency = None
        raw_freq = resolve(source.changefreq, record)
        if raw_freq is not None:
            frequency = ChangeFrequency.coerce(raw_freq)
            if frequency is None:
                logger.warning("%s: неизвестный changefreq %r для %s", source.name, raw_freq, url)

        priority = None
        raw_priority = resolve(source.priority, record)
        if raw_priority is not None:
            try:
                priority = coerce_priority(raw_priority)
            except ParseFailure as exc:
                logger.warning("%s: %s — priority пропущен", source.name, exc)

        return SitemapEntry(
            url=url,
            last_modified=last_modified,
            change_frequency=frequency,
            priority=priority,
        )


# --------------------------------------------------------------------------- #
# Источники из конфигурации                                                   #
# --------------------------------------------------------------------------- #


def import_string(path: str) -> Any:
    """Импортирует объект по строке ``package.module:attribute``."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise InvalidInput(f"Ожидалось 'module:attribute', получено {path!r}")
    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as exc:
        raise InvalidInput(f"Не удалось импортировать {module_name!r}: {exc}") from exc
    for part in attr.split("."):
        obj = getattr(obj, part, _MISSING)
        if obj is _MISSING:
            raise InvalidInput(f"В {module_name!r} нет атрибута {attr!r}")
    return obj


def _is_import_path(value: str) -> bool:
    module_name, sep, attr = value.partition(":")
    return bool(sep) and "/" not in value and "{" not in value and module_name.replace(".", "").isidentifier()


def _template(template: str, site_url: Optional[str]) -> Computed:
    def render(record: Any) -> Optional[str]:
        fields = record if isinstance(record, Mapping) else _RecordFields(record)
        try:
            url = template.format_map(fields)
        except (KeyError, AttributeError):
            return None
        return urljoin(site_url.rstrip("/") + "/", url) if site_url else url

    return Computed(render)


class _RecordFields(Dict[str, Any]):
    """Mapping-адаптер для str.format_map поверх атрибутов объекта."""

    def __init__(self, record: Any) -> None:
        super().__init__()
        self._record = record

    def __missing__(self, key: str) -> Any:
        value = getattr(self._record, key, _MISSING)
        if value is _MISSING:
            raise KeyError(key)
        return value


def _url_source(value: str, site_url: Optional[str]) -> ValueSource:
    if _is_import_path(value):
        return Computed(import_string(value))
    return _template(value, site_url)


def _field_or_callable(value: Optional[str]) -> Optional[ValueSource]:
    if value is None:
        return None
    if _is_import_path(value):
        return Computed(import_string(value))
    return Field(value)


def _changefreq_source(value: Optional[str]) -> Optional[ValueSource]:
    if value is None:
        return None
    frequency = ChangeFrequency.coerce(value)
    if frequency is not None:
        return Constant(frequency)
    return _field_or_callable(value)


def _priority_source(value: Union[float, str, None]) -> Optional[ValueSource]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return Constant(float(value))
    try:
        return Constant(float(value))
    except ValueError:
        return _field_or_callable(value)


def source_from_config(name: str, cfg: RecordSourceConfig, site_url: Optional[str] = None) -> RecordSource:
    """Строит RecordSource из секции конфигурации ``sources.<name>``."""
    return RecordSource(
        name=name,
        records=import_string(cfg.records),
        url=_url_source(cfg.url, site_url),
        lastmod=_field_or_callable(cfg.lastmod),
        changefreq=_changefreq_source(cfg.changefreq),
        priority=_priority_source(cfg.priority),
        query=import_string(cfg.query) if cfg.query else None,
        enabled=cfg.enabled,
        chunk_size=cfg.chunk_size,
    )


def build_sources(
    configs: Mapping[str, RecordSourceConfig], site_url: Optional[str] = None
) -> List[RecordSource]:
    """Все источники из конфигурации; отключённые не импортируются."""
    sources: List[RecordSource] = []
    for name, cfg in configs.items():
        if not cfg.enabled:
            logger.debug("Источник %s отключён в конфигурации", name)
            continue
        sources.append(source_from_config(name, cfg, site_url))
    return sources


__all__ = [
    "Field",
    "Computed",
    "Constant",
    "ValueSource",
    "resolve",
    "RecordSource",
    "RecordSourceAdapter",
    "iter_chunks",
    "coerce_lastmod",
    "coerce_priority",
    "import_string",
    "source_from_config",
    "build_sources",
]
