"""Crawl engine: URL normalization, exclusion filter, fetcher and crawler."""
from sitemap_builder.crawler.crawler import SitemapCrawler
from sitemap_builder.crawler.filter import CrawlFilter, should_crawl
from sitemap_builder.crawler.normalizer import normalize

__all__ = ["SitemapCrawler", "CrawlFilter", "should_crawl", "normalize"]
