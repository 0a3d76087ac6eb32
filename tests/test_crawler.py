# File: tests/test_crawler.py
# Test-suite for the sitemap crawler against local aiohttp servers
from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from aiohttp import web

from conftest import html, serve_app
from sitemap_builder.config import CrawlConfig
from sitemap_builder.crawler.crawler import SitemapCrawler, parse_http_date, special_pages
from sitemap_builder.crawler.normalizer import normalize
from sitemap_builder.errors import ParseFailure
from sitemap_builder.models import ChangeFrequency, ExclusionConfig

#: number of seconds a “slow” handler sleeps in the concurrency test
SLOW_SLEEP: float = 0.5


def page(text: str, **headers: str) -> web.Response:
    return web.Response(text=text, content_type="text/html", headers=headers)


async def run_crawler(
    base: str,
    *,
    max_depth: int = 3,
    concurrency: int = 5,
    timeout: float = 2.0,
    max_pages: int = 0,
    model_urls=(),
    **kwargs,
):
    settings = CrawlConfig(timeout=timeout, user_agent="TestAgent/1.0", max_pages=max_pages)
    exclusion = ExclusionConfig(max_depth=max_depth, concurrency=concurrency, max_pagination_depth=100)
    async with SitemapCrawler(settings, exclusion, **kwargs) as crawler:
        entries = await asyncio.wait_for(crawler.crawl(base, model_urls), timeout=15)
    return entries, crawler


def urls_of(entries) -> set[str]:
    return {e.url for e in entries}


# --------------------------------------------------------------------------- #
#                            Test-server fixtures                             #
# --------------------------------------------------------------------------- #


@pytest_asyncio.fixture
async def chain_server(unused_tcp_port: int) -> AsyncIterator[str]:
    """/ → /page1 → /page2 → /page3 (slow)."""
    app = web.Application()

    async def handle_root(_):
        return page(html("/page1"))

    async def handle_page1(_):
        return page(html("/page2"))

    async def handle_page2(_):
        return page(html("/page3"))

    async def handle_page3(_):
        await asyncio.sleep(3)
        return page("<h1>Page3 (slow)</h1>")

    app.router.add_get("/", handle_root)
    app.router.add_get("/page1", handle_page1)
    app.router.add_get("/page2", handle_page2)
    app.router.add_get("/page3", handle_page3)

    async for url in serve_app(app, unused_tcp_port):
        yield url


@pytest_asyncio.fixture
async def site_server(unused_tcp_port: int) -> AsyncIterator[str]:
    """Small site exercising canonical tags, pagination, redirects and 404."""
    app = web.Application()

    async def handle_root(_):
        return page(
            html(
                "/about",
                "/blog",
                "/tag?b=1&a=2",
                "/tag?a=2&b=1&utm_source=news",
                "/duplicate",
                "/list?page=1",
                "/list?page=2",
                "/old",
                "/missing",
                "/admin/panel",
                "/file.pdf",
                "http://external.example/",
                "mailto:info@example.com",
            )
        )

    async def handle_about(_):
        return page(html("/"))

    async def handle_blog(_):
        return page(html("/blog/post"), **{"Last-Modified": "Wed, 01 May 2024 10:00:00 GMT"})

    async def handle_post(_):
        return page("<p>post</p>")

    async def handle_duplicate(_):
        return page('<head><link rel="canonical" href="/about"></head>')

    async def handle_list(request):
        if request.query.get("page") == "2":
            return page(html("/deep"))
        return page(html("/list?page=2"))

    async def handle_deep(_):
        return page("<p>deep</p>")

    async def handle_old(_):
        raise web.HTTPMovedPermanently("/new")

    async def handle_new(_):
        return page("<p>new</p>")

    async def handle_admin(_):
        return page("<p>admin</p>")

    app.router.add_get("/", handle_root)
    app.router.add_get("/about", handle_about)
    app.router.add_get("/blog", handle_blog)
    app.router.add_get("/blog/post", handle_post)
    app.router.add_get("/tag", handle_post)
    app.router.add_get("/duplicate", handle_duplicate)
    app.router.add_get("/list", handle_list)
    app.router.add_get("/deep", handle_deep)
    app.router.add_get("/old", handle_old)
    app.router.add_get("/new", handle_new)
    app.router.add_get("/admin/panel", handle_admin)

    async for url in serve_app(app, unused_tcp_port):
        yield url


# --------------------------------------------------------------------------- #
#                                   Tests                                     #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_basic_crawl_skips_timed_out_page(chain_server: str):
    entries, crawler = await run_crawler(chain_server, timeout=1.0)

    assert urls_of(entries) == {
        f"{chain_server}/",
        f"{chain_server}/page1",
        f"{chain_server}/page2",
    }
    assert crawler.interrupted is False


@pytest.mark.asyncio()
async def test_depth_limit(chain_server: str):
    entries, crawler = await run_crawler(chain_server, max_depth=0)
    assert urls_of(entries) == {f"{chain_server}/"}
    assert crawler.state.crawled_count == 1


@pytest.mark.asyncio()
async def test_site_crawl(site_server: str):
    entries, crawler = await run_crawler(site_server, max_depth=5)
    urls = urls_of(entries)

    assert urls == {
        f"{site_server}/",
        f"{site_server}/about",
        f"{site_server}/blog",
        f"{site_server}/blog/post",
        f"{site_server}/list?page=1",
        f"{site_server}/deep",
        f"{site_server}/new",
        f"{site_server}/admin/panel",
        f"{site_server}/tag?b=1&a=2",
    }
    # one entry per URL
    assert len(entries) == len(urls)


@pytest.mark.asyncio()
async def test_site_crawl_exclusions(site_server: str):
    entries, _ = await run_crawler(site_server, max_depth=5)
    urls = urls_of(entries)

    assert f"{site_server}/missing" not in urls
    assert f"{site_server}/duplicate" not in urls
    assert f"{site_server}/list?page=2" not in urls
    assert f"{site_server}/old" not in urls
    assert f"{site_server}/tag?a=2&b=1&utm_source=news" not in urls
    assert not any(url.startswith("http://external.example") for url in urls)


@pytest.mark.asyncio()
async def test_priorities_and_lastmod(site_server: str):
    entries, _ = await run_crawler(site_server, max_depth=5)
    by_url = {e.url: e for e in entries}

    root = by_url[f"{site_server}/"]
    assert root.priority == 1.0
    assert root.change_frequency is ChangeFrequency.DAILY

    about = by_url[f"{site_server}/about"]
    assert about.priority == 0.9
    assert about.change_frequency is ChangeFrequency.DAILY

    blog = by_url[f"{site_server}/blog"]
    assert blog.priority == 0.7
    assert blog.change_frequency is ChangeFrequency.MONTHLY
    assert blog.last_modified == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    assert by_url[f"{site_server}/deep"].last_modified is not None


@pytest.mark.asyncio()
async def test_model_urls_not_emitted_but_followed(site_server: str):
    model_urls = {normalize(f"{site_server}/blog")}
    entries, _ = await run_crawler(site_server, max_depth=5, model_urls=model_urls)
    urls = urls_of(entries)

    assert f"{site_server}/blog" not in urls
    assert f"{site_server}/blog/post" in urls


@pytest.mark.asyncio()
async def test_exclusion_config_applied(site_server: str):
    settings = CrawlConfig(timeout=2.0)
    exclusion = ExclusionConfig(
        skip_patterns=("/admin",),
        excluded_directories=("blog",),
        max_depth=5,
    )
    async with SitemapCrawler(settings, exclusion) as crawler:
        entries = await crawler.crawl(site_server)
    urls = urls_of(entries)

    assert f"{site_server}/admin/panel" not in urls
    assert not any("/blog" in url for url in urls)
    assert f"{site_server}/new" in urls


@pytest.mark.asyncio()
async def test_injected_predicate_and_callbacks(site_server: str):
    emitted = []
    progress = []
    entries, crawler = await run_crawler(
        site_server,
        should_crawl=lambda url: url.endswith("/about"),
        on_entry=emitted.append,
        on_progress=lambda count, url: progress.append(count),
    )

    assert urls_of(entries) == {f"{site_server}/", f"{site_server}/about"}
    assert emitted == entries
    assert progress == [1, 2]
    assert crawler.state.crawled_count == 2


@pytest.mark.asyncio()
async def test_non_200_counted_but_not_emitted(unused_tcp_port: int):
    app = web.Application()

    async def handle_root(_):
        return page(html("/missing", "/error"))

    async def handle_error(_):
        return web.Response(status=500, text="<a href='/hidden'>x</a>", content_type="text/html")

    app.router.add_get("/", handle_root)
    app.router.add_get("/error", handle_error)

    async for base in serve_app(app, unused_tcp_port):
        entries, crawler = await run_crawler(base, max_depth=1)

    assert urls_of(entries) == {f"{base}/"}
    assert crawler.state.crawled_count == 3


@pytest.mark.asyncio()
async def test_max_pages_limit(unused_tcp_port: int):
    app = web.Application()

    async def handle_root(_):
        return page(html(*(f"/p{i}" for i in range(10))))

    async def handle_page(_):
        return page("<p>p</p>")

    app.router.add_get("/", handle_root)
    for i in range(10):
        app.router.add_get(f"/p{i}", handle_page)

    async for base in serve_app(app, unused_tcp_port):
        entries, crawler = await run_crawler(base, concurrency=1, max_pages=3)

    assert crawler.state.crawled_count == 3
    assert len(entries) == 3


@pytest.mark.asyncio()
async def test_concurrency(unused_tcp_port: int):
    """Ensure that two slow pages are fetched concurrently."""
    app = web.Application()

    async def slow(_):
        await asyncio.sleep(SLOW_SLEEP)
        return page("<h1>Slow</h1>")

    async def root(_):
        return page(html("/slow1", "/slow2"))

    app.router.add_get("/", root)
    app.router.add_get("/slow1", slow)
    app.router.add_get("/slow2", slow)

    async for base in serve_app(app, unused_tcp_port):
        start = time.perf_counter()
        entries, _ = await run_crawler(base, max_depth=1, concurrency=2, timeout=5.0)
        elapsed = time.perf_counter() - start

    assert elapsed < SLOW_SLEEP * 1.8
    assert {f"{base}/slow1", f"{base}/slow2"} <= urls_of(entries)


@pytest.mark.asyncio()
async def test_stop_returns_partial_result(unused_tcp_port: int):
    app = web.Application()

    async def root(_):
        return page(html(*(f"/slow{i}" for i in range(20))))

    async def slow(_):
        await asyncio.sleep(0.3)
        return page("<p>slow</p>")

    app.router.add_get("/", root)
    for i in range(20):
        app.router.add_get(f"/slow{i}", slow)

    async for base in serve_app(app, unused_tcp_port):
        settings = CrawlConfig(timeout=5.0)
        exclusion = ExclusionConfig(max_depth=1, concurrency=2)
        async with SitemapCrawler(settings, exclusion) as crawler:
            task = asyncio.create_task(crawler.crawl(base))
            await asyncio.sleep(0.5)
            crawler.stop()
            entries = await asyncio.wait_for(task, timeout=5)

    assert crawler.interrupted is True
    assert f"{base}/" in urls_of(entries)
    assert len(entries) < 21


@pytest.mark.asyncio()
async def test_crawl_requires_context_manager():
    crawler = SitemapCrawler(CrawlConfig(), ExclusionConfig())
    with pytest.raises(RuntimeError):
        await crawler.crawl("http://localhost/")
    with pytest.raises(RuntimeError):
        await crawler._visit("http://localhost/", 0, asyncio.Queue())


def test_special_pages():
    table = special_pages("https://example.com/")
    assert table["https://example.com"] == 1.0
    assert table["https://example.com/contact"] == 0.9


def test_parse_http_date():
    parsed = parse_http_date("Wed, 01 May 2024 10:00:00 GMT")
    assert parsed == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    with pytest.raises(ParseFailure):
        parse_http_date("yesterday")
    with pytest.raises(ParseFailure):
        parse_http_date(None)
