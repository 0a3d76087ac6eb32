"""sitemap_builder.sitemap: запись и чтение XML sitemap (urlset и sitemapindex)."""

from sitemap_builder.sitemap.parser import is_index, parse_index, parse_urlset
from sitemap_builder.sitemap.writer import SitemapWriter, assemble, build_index, build_urlset

__all__ = [
    "assemble",
    "build_urlset",
    "build_index",
    "SitemapWriter",
    "parse_urlset",
    "parse_index",
    "is_index",
]
