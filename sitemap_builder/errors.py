"""
Error taxonomy for sitemap generation.

Fetch and parse failures are recovered inside the component that raises them;
storage failures and invalid input abort the current generation attempt.
"""
from __future__ import annotations


class SitemapError(Exception):
    """Base class for all sitemap_builder errors."""


class InvalidInput(SitemapError, ValueError):
    """Malformed base URL or option, detected before any network activity."""


class FetchFailure(SitemapError):
    """A single URL could not be fetched (network error, timeout)."""

    def __init__(self, url: str, reason: object) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class ParseFailure(SitemapError):
    """A canonical tag, date header or record field could not be parsed."""


class StorageFailure(SitemapError, OSError):
    """Output could not be written to storage."""


class NotFound(SitemapError, LookupError):
    """A requested sitemap file does not exist."""


__all__ = [
    "SitemapError",
    "InvalidInput",
    "FetchFailure",
    "ParseFailure",
    "StorageFailure",
    "NotFound",
]
