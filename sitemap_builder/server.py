# File: sitemap_builder/server.py
"""HTTP surface for sitemap files built on :mod:`aiohttp.web`."""

from __future__ import annotations

from aiohttp import web

from sitemap_builder.config import SitemapConfig
from sitemap_builder.errors import NotFound
from sitemap_builder.logger import get_logger
from sitemap_builder.service import SitemapService

SERVICE_KEY = web.AppKey("sitemap_service", SitemapService)

RESPONSE_HEADERS = {"Cache-Control": "public, max-age=3600"}
CONTENT_TYPE = "application/xml"

logger = get_logger("server")


async def handle_sitemap(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    try:
        content = await service.get_sitemap_content()
    except NotFound:
        raise web.HTTPNotFound()
    return web.Response(
        text=content, content_type=CONTENT_TYPE, charset="utf-8", headers=RESPONSE_HEADERS
    )


async def handle_shard(request: web.Request) -> web.Response:
    service = request.app[SERVICE_KEY]
    filename = request.match_info["filename"]
    try:
        body = service.get_shard(filename)
    except NotFound:
        logger.debug("Shard not found: %s", filename)
        raise web.HTTPNotFound()
    return web.Response(
        body=body, content_type=CONTENT_TYPE, charset="utf-8", headers=RESPONSE_HEADERS
    )


def create_app(service: SitemapService, config: SitemapConfig) -> web.Application:
    """Build the application; ``/sitemaps/{filename}`` exists only in index mode."""
    app = web.Application()
    app[SERVICE_KEY] = service
    app.router.add_get("/sitemap.xml", handle_sitemap)
    if config.index.enabled:
        app.router.add_get("/sitemaps/{filename}", handle_shard)
    return app


__all__ = ["create_app", "SERVICE_KEY"]
