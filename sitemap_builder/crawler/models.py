# sitemap_builder/crawler/models.py
"""
Data models for the sitemap crawler.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


@dataclass(slots=True)
class PageData:
    """Response of one fetch: final URL, status, HTML text (empty for non-HTML)."""

    url: str
    status: int = 200
    content: str = ""
    last_modified: Optional[str] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
