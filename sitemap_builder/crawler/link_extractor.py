# sitemap_builder/crawler/link_extractor.py
"""
Link and canonical-tag extraction for fetched pages.
"""
from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag

from sitemap_builder.crawler.normalizer import strip_fragment
from sitemap_builder.crawler.models import PageData
from sitemap_builder.errors import ParseFailure

_CANONICAL_RE = re.compile(
    r"""<link[^>]*rel=["']canonical["'][^>]*href=["']([^"']+)["']""",
    re.IGNORECASE,
)

_IGNORED_PREFIXES = ("mailto:", "javascript:", "tel:", "data:", "#")


def extract_links(page: PageData) -> List[str]:
    """
    Extract absolute HTTP(S) links from PageData content.

    Fragments are removed and duplicates dropped, keeping document order.
    ``rel="nofollow"`` is not honoured. Host filtering is left to the crawl
    filter.
    """
    if not page.content:
        return []
    soup = BeautifulSoup(page.content, "html.parser")
    seen: set[str] = set()
    links: List[str] = []
    for tag in soup.find_all("a", href=True):
        if not isinstance(tag, Tag):
            continue
        href_val = tag.get("href")
        if not isinstance(href_val, str):
            continue
        raw = href_val.strip()
        if not raw or raw.lower().startswith(_IGNORED_PREFIXES):
            continue
        absolute = strip_fragment(urljoin(page.url, raw))
        if urlsplit(absolute).scheme not in ("http", "https"):
            continue
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links


def parse_canonical(html: str, page_url: str) -> Optional[str]:
    """
    Return the absolute canonical URL declared by *html*, or None.

    Raises ParseFailure when the tag is present but its href cannot be used.
    """
    match = _CANONICAL_RE.search(html)
    if not match:
        return None
    href = match.group(1).strip()
    try:
        canonical = strip_fragment(urljoin(page_url, href))
        scheme = urlsplit(canonical).scheme
    except ValueError as exc:
        raise ParseFailure(f"bad canonical href {href!r} on {page_url}") from exc
    if scheme not in ("http", "https"):
        raise ParseFailure(f"bad canonical href {href!r} on {page_url}")
    return canonical


def extract_canonical(page: PageData) -> Optional[str]:
    """Like :func:`parse_canonical` but malformed tags are treated as absent."""
    if not page.content:
        return None
    try:
        return parse_canonical(page.content, page.url)
    except ParseFailure:
        return None


__all__ = ["extract_links", "extract_canonical", "parse_canonical"]
