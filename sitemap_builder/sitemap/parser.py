# File: sitemap_builder/sitemap/parser.py
"""sitemap_builder.sitemap.parser: разбор ранее записанных sitemap.xml и индексов."""

from __future__ import annotations

from typing import List, Optional, Union

from dateutil.parser import parse as parse_date
from lxml import etree

from sitemap_builder.errors import ParseFailure
from sitemap_builder.models import ChangeFrequency, SitemapEntry


def _root(xml_content: Union[str, bytes]) -> etree._Element:
    data = xml_content.encode("utf-8") if isinstance(xml_content, str) else xml_content
    parser = etree.XMLParser(ns_clean=True, recover=True, resolve_entities=False)
    try:
        root = etree.fromstring(data, parser=parser)
    except etree.XMLSyntaxError as exc:
        raise ParseFailure(f"повреждённый XML: {exc}") from exc
    if root is None:
        raise ParseFailure("пустой или повреждённый XML")
    return root


def _text(node: etree._Element, tag: str) -> Optional[str]:
    child = node.find(f"{{*}}{tag}")
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


def is_index(xml_content: Union[str, bytes]) -> bool:
    """True, если корневой элемент — ``<sitemapindex>``."""
    return etree.QName(_root(xml_content)).localname == "sitemapindex"


def parse_urlset(xml_content: Union[str, bytes]) -> List[SitemapEntry]:
    """Разбирает ``<urlset>`` и возвращает записи в порядке документа.

    Пример:
    ```python
    from sitemap_builder.sitemap.parser import parse_urlset

    with open('sitemap.xml', 'rb') as f:
        entries = parse_urlset(f.read())
    print([e.url for e in entries])
    ```
    """
    entries: List[SitemapEntry] = []
    for node in _root(xml_content).findall("{*}url"):
        loc = _text(node, "loc")
        if not loc:
            continue
        lastmod = _text(node, "lastmod")
        priority = _text(node, "priority")
        entries.append(
            SitemapEntry(
                url=loc,
                last_modified=parse_date(lastmod) if lastmod else None,
                change_frequency=ChangeFrequency.coerce(_text(node, "changefreq")),
                priority=float(priority) if priority else None,
            )
        )
    return entries


def parse_index(xml_content: Union[str, bytes]) -> List[str]:
    """Разбирает ``<sitemapindex>`` и возвращает URL шардов."""
    root = _root(xml_content)
    return [loc for loc in (_text(node, "loc") for node in root.findall("{*}sitemap")) if loc]


__all__ = ["is_index", "parse_urlset", "parse_index"]
