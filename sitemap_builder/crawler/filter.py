# sitemap_builder/crawler/filter.py
"""
Crawl filter: decides whether a discovered link is followed.

The filter gates discovery only; whether a fetched page ends up in the
sitemap is decided by the crawler at emission time.
"""
from __future__ import annotations

from typing import MutableSet, Optional
from urllib.parse import parse_qs, urlsplit

from sitemap_builder.crawler.normalizer import normalize
from sitemap_builder.logger import get_logger
from sitemap_builder.models import ExclusionConfig

logger = get_logger("filter")

FETCHABLE_SCHEMES = ("http", "https")


def page_number(query: str) -> Optional[int]:
    """Return the numeric ``page`` query parameter, or None if absent/non-numeric."""
    values = parse_qs(query, keep_blank_values=True).get("page")
    if not values:
        return None
    raw = values[-1].strip()
    return int(raw) if raw.isdigit() else None


def is_internal(url: str, base_url: str) -> bool:
    """Same host as *base_url* and an http(s) scheme."""
    parsed = urlsplit(url)
    if parsed.scheme.lower() not in FETCHABLE_SCHEMES:
        return False
    return parsed.netloc.lower() == urlsplit(base_url).netloc.lower()


def should_crawl(
    url: str,
    cfg: ExclusionConfig,
    already_normalized: MutableSet[str],
    base_url: str,
) -> bool:
    """
    Apply the exclusion rules in order; the first matching rule rejects.

    *already_normalized* is updated in place with the normalized form of
    every URL variant that passes rule 1.
    """
    # 1. collapse query-parameter variants of the same page
    normalized = normalize(url, keep_fragment=True)
    if normalized != url:
        if normalized in already_normalized:
            logger.debug("Skip %s: variant of %s", url, normalized)
            return False
        already_normalized.add(normalized)

    parsed = urlsplit(url)

    # 2. excluded directories
    path = parsed.path.strip("/")
    for directory in cfg.excluded_directories:
        directory = directory.strip().strip("/")
        if directory and path.startswith(directory):
            logger.debug("Skip %s: excluded directory %s", url, directory)
            return False

    # 3. skip patterns
    for pattern in cfg.skip_patterns:
        if pattern and pattern in url:
            logger.debug("Skip %s: pattern %s", url, pattern)
            return False

    if parsed.query:
        params = parse_qs(parsed.query, keep_blank_values=True)
        # 4. sorting/filtering views of listings
        for param in cfg.blocked_query_params:
            if param in params:
                logger.debug("Skip %s: query parameter %s", url, param)
                return False

        # 5. pagination depth
        page = page_number(parsed.query)
        if cfg.max_pagination_depth and page is not None and page > cfg.max_pagination_depth:
            logger.debug("Skip %s: page %d > %d", url, page, cfg.max_pagination_depth)
            return False

    # 6. internal links only
    return is_internal(url, base_url)


class CrawlFilter:
    """
    Callable predicate bound to one crawl: ``CrawlFilter(cfg, base_url)(url)``.

    Holds the set of normalized URLs seen by rule 1; pass the crawl state's
    set to share it.
    """

    def __init__(
        self,
        cfg: ExclusionConfig,
        base_url: str,
        already_normalized: Optional[MutableSet[str]] = None,
    ) -> None:
        self.cfg = cfg
        self.base_url = base_url
        self.already_normalized: MutableSet[str] = (
            set() if already_normalized is None else already_normalized
        )

    def __call__(self, url: str) -> bool:
        return should_crawl(url, self.cfg, self.already_normalized, self.base_url)


__all__ = ["CrawlFilter", "should_crawl", "is_internal", "page_number", "FETCHABLE_SCHEMES"]
