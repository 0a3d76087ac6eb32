# sitemap_builder/crawler/fetcher.py
"""
Fetcher module: HTTP GET with redirects, cookies, fixed user agent and timeout.
"""
from __future__ import annotations

import asyncio

from aiohttp import ClientError, ClientSession, ClientTimeout, CookieJar, TCPConnector

from sitemap_builder.crawler.models import PageData
from sitemap_builder.errors import FetchFailure

DEFAULT_USER_AGENT = "SitemapBuilder/1.0"


def create_session(
    *,
    timeout: float,
    user_agent: str = DEFAULT_USER_AGENT,
    verify_ssl: bool = False,
) -> ClientSession:
    """
    Build the crawl session: cookie jar kept for the whole crawl, TLS
    certificates not verified unless *verify_ssl*.
    """
    return ClientSession(
        connector=TCPConnector(ssl=verify_ssl),
        cookie_jar=CookieJar(unsafe=True),
        timeout=ClientTimeout(total=timeout),
        headers={"User-Agent": user_agent},
        raise_for_status=False,
    )


class Fetcher:
    """Fetches single pages; any network error surfaces as FetchFailure."""

    def __init__(self, session: ClientSession, max_redirects: int = 10) -> None:
        self.session = session
        self.max_redirects = max_redirects

    async def fetch(self, url: str) -> PageData:
        """
        GET *url* following redirects.

        Returns PageData for every HTTP response (any status); the body is
        only read for HTML content. Raises FetchFailure on network errors and
        timeouts.
        """
        try:
            async with self.session.get(
                url, allow_redirects=True, max_redirects=self.max_redirects
            ) as resp:
                ctype = resp.headers.get("Content-Type", "").lower()
                text = ""
                if not ctype or "html" in ctype:
                    text = await resp.text(errors="replace")
                return PageData(
                    url=str(resp.url),
                    status=resp.status,
                    content=text,
                    last_modified=resp.headers.get("Last-Modified"),
                )
        except asyncio.TimeoutError as exc:
            raise FetchFailure(url, "timeout") from exc
        except (ClientError, ValueError) as exc:
            raise FetchFailure(url, exc) from exc

