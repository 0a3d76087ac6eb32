# sitemap_builder/models.py
"""
Data models shared by the crawler, record sources and the sitemap writer.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Set, Tuple


class ChangeFrequency(str, enum.Enum):
    """Values allowed in ``<changefreq>``."""

    ALWAYS = "always"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    NEVER = "never"

    @classmethod
    def coerce(cls, value: object) -> Optional[ChangeFrequency]:
        """Return the member for *value* (case-insensitive) or None if unknown."""
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class GenerationState(str, enum.Enum):
    IDLE = "idle"
    CRAWLING = "crawling"
    COLLECTING = "collecting"
    ASSEMBLING = "assembling"
    PUBLISHED = "published"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SitemapEntry:
    """One ``<url>`` of a sitemap. The URL is the entry's identity."""

    url: str
    last_modified: Optional[datetime] = None
    change_frequency: Optional[ChangeFrequency] = None
    priority: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("SitemapEntry.url must not be empty")
        if self.priority is not None:
            priority = float(self.priority)
            if not 0.0 <= priority <= 1.0:
                raise ValueError(f"priority must be within [0.0, 1.0], got {priority}")
            object.__setattr__(self, "priority", priority)
        if self.last_modified is not None and self.last_modified.tzinfo is None:
            object.__setattr__(self, "last_modified", self.last_modified.replace(tzinfo=timezone.utc))
        if self.change_frequency is not None:
            object.__setattr__(self, "change_frequency", ChangeFrequency(self.change_frequency))


@dataclass(slots=True)
class CrawlState:
    """Mutable bookkeeping of a single crawl run. Never shared between runs."""

    processed_urls: Set[str] = field(default_factory=set)
    normalized_seen: Set[str] = field(default_factory=set)
    model_urls: frozenset[str] = frozenset()
    crawled_count: int = 0


@dataclass(frozen=True, slots=True)
class ExclusionConfig:
    """Rules deciding which discovered links are followed."""

    skip_patterns: Tuple[str, ...] = ()
    excluded_directories: Tuple[str, ...] = ()
    blocked_query_params: Tuple[str, ...] = ("sort", "order", "view", "filter")
    max_pagination_depth: int = 0
    max_depth: int = 30
    concurrency: int = 5

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.max_depth < 0:
            raise ValueError("max_depth must be >= 0")


@dataclass(frozen=True, slots=True)
class GeneratedFile:
    """Serialized sitemap document ready to be published."""

    path: str
    content: bytes


@dataclass(slots=True)
class SitemapFile:
    path: str
    entries: List[SitemapEntry] = field(default_factory=list)


@dataclass(slots=True)
class SitemapIndex:
    path: str
    files: List[SitemapFile] = field(default_factory=list)


@dataclass(slots=True)
class GenerationResult:
    """Outcome of one generation job."""

    mode: str
    state: GenerationState = GenerationState.IDLE
    files: List[str] = field(default_factory=list)
    crawled_entries: int = 0
    model_entries: int = 0
    crawled_pages: int = 0
    partial: bool = False

    @property
    def total_entries(self) -> int:
        return self.crawled_entries + self.model_entries
