# File: tests/conftest.py
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

import pytest
from aiohttp import web

from sitemap_builder.cache import MemoryCache
from sitemap_builder.config import SitemapConfig
from sitemap_builder.crawler.models import PageData
from sitemap_builder.models import ChangeFrequency, SitemapEntry
from sitemap_builder.storage import LocalStorage


async def serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "localhost", port)
    await site.start()
    try:
        yield f"http://localhost:{port}"
    finally:
        await runner.cleanup()


def html(*links: str, head: str = "") -> str:
    body = "".join(f'<a href="{link}">{link}</a>' for link in links)
    return f"<html><head>{head}</head><body>{body}</body></html>"


@pytest.fixture()
def make_config(tmp_path):
    """
    Factory for SitemapConfig with storage and cache inside tmp_path.
    Nested sections are passed as dicts, e.g. make_config(index={"enabled": True}).
    """

    def factory(**overrides: Any) -> SitemapConfig:
        data: Dict[str, Any] = {
            "site_url": "https://example.com",
            "cache_dir": str(tmp_path / "cache"),
            "storage": {"root": str(tmp_path / "storage")},
            "crawl": {"timeout": 2.0, "user_agent": "TestAgent/1.0"},
        }
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        return SitemapConfig(**data)

    return factory


@pytest.fixture()
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "storage" / "public")


@pytest.fixture()
def memory_cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture()
def sample_entries() -> List[SitemapEntry]:
    """Five entries with a mix of optional fields."""
    stamp = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    return [
        SitemapEntry("https://example.com/", stamp, ChangeFrequency.DAILY, 1.0),
        SitemapEntry("https://example.com/about", stamp, ChangeFrequency.DAILY, 0.9),
        SitemapEntry("https://example.com/blog/first", stamp, ChangeFrequency.MONTHLY, 0.7),
        SitemapEntry("https://example.com/blog/second"),
        SitemapEntry("https://example.com/search?q=a&b=1", priority=0.5),
    ]


@pytest.fixture()
def mock_page_data() -> PageData:
    """
    Provide a simple PageData instance with HTML content.
    """
    content = html("/link1", "http://external.com", "#top", "mailto:a@b.c", "/link1#part")
    return PageData(url="http://example.com/", content=content)


@pytest.fixture()
def cfg_path(tmp_path) -> Path:
    return tmp_path / "sitemap.yaml"
