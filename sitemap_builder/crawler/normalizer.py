# sitemap_builder/crawler/normalizer.py
"""
URL canonicalisation used for deduplication and comparison.
"""
from __future__ import annotations

from typing import FrozenSet
from urllib.parse import parse_qsl, urldefrag, urlencode, urlsplit, urlunsplit

TRACKING_PARAMS: FrozenSet[str] = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "gclid",
        "fbclid",
        "sessionid",
        "PHPSESSID",
        "_ga",
        "ref",
    }
)


def normalize(url: str, *, keep_fragment: bool = False) -> str:
    """
    Normalize URL for comparison.

    Lowercases scheme and host, drops tracking/session parameters, sorts the
    remaining query parameters by key and strips the trailing slash of the
    path (the root path collapses to ``""``). The fragment is dropped unless
    *keep_fragment* is set.
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()
    path = parts.path.rstrip("/")

    params = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in TRACKING_PARAMS
    ]
    # sorted() is stable: repeated keys keep their relative order
    params.sort(key=lambda kv: kv[0])
    query = urlencode(params)

    fragment = parts.fragment if keep_fragment else ""
    return urlunsplit((scheme, netloc, path, query, fragment))


def same_page(first: str, second: str) -> bool:
    """True when both URLs normalize to the same string."""
    return normalize(first) == normalize(second)


def strip_fragment(url: str) -> str:
    return urldefrag(url)[0]


__all__ = ["TRACKING_PARAMS", "normalize", "same_page", "strip_fragment"]
