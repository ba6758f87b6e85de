from __future__ import annotations

import datetime as dt
import html
import json
from pathlib import Path
from typing import Optional

from .models import Language, Post, SiteConfig
from .render import strip_tags, write_text
from .utils import iso_date, join_url, rfc822_date

GENERATOR = "staticpress"


def build_rss(
    path: Path,
    site: SiteConfig,
    lang: Language,
    posts: list[Post],
    title: str,
    page_url: str,
) -> None:
    """Write an RSS 2.0 feed for ``posts`` (already sorted newest first) to ``path``."""
    feed_url = join_url(page_url, "index.xml")
    items = []
    for post in posts[: lang.rss_limit]:
        link = join_url(site.base_url, site.lang_prefix(post.lang) + post.url_path)
        lines = [
            "<item>",
            f"<title>{html.escape(post.title)}</title>",
            f"<link>{link}</link>",
            f"<pubDate>{rfc822_date(post.date)}</pubDate>",
        ]
        if post.author:
            lines.append(f"<author>{html.escape(post.author)}</author>")
        lines.append(f"<guid>{link}</guid>")
        for category in post.categories + post.tags:
            lines.append(f"<category>{html.escape(category)}</category>")
        lines.append(f"<description>{html.escape(post.summary)}</description>")
        lines.append("</item>")
        items.append("\n".join(lines))
    header = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">',
        "<channel>",
        f"<title>{html.escape(title)}</title>",
        f"<link>{page_url}</link>",
        f"<description>{html.escape(lang.description or title)}</description>",
        f"<generator>{GENERATOR}</generator>",
        f"<language>{html.escape(lang.code)}</language>",
    ]
    if posts:
        header.append(f"<lastBuildDate>{rfc822_date(posts[0].date)}</lastBuildDate>")
    header.append(f'<atom:link href="{feed_url}" rel="self" type="application/rss+xml" />')
    rss = "\n".join(header + items + ["</channel>", "</rss>"])
    write_text(path, rss + "\n")


def search_entries(site: SiteConfig, lang: Language, posts: list[Post]) -> list[dict]:
    entries = []
    limit = max(1, lang.search.content_length)
    for post in posts:
        url_path = site.lang_prefix(post.lang) + post.url_path
        uri = join_url(site.base_url, url_path) if lang.search.absolute_url else site.base_path + url_path
        text = " ".join(html.unescape(strip_tags(post.content_html)).split())
        chunks = [text[i : i + limit] for i in range(0, len(text), limit)] or [""]
        for index, chunk in enumerate(chunks):
            entries.append(
                {
                    "objectID": f"{uri}:{index}",
                    "uri": uri,
                    "title": post.title,
                    "date": post.date.date().isoformat() if post.date else "",
                    "lastmod": post.lastmod.date().isoformat() if post.lastmod else "",
                    "tags": post.tags,
                    "categories": post.categories,
                    "content": chunk,
                }
            )
    return entries


def build_search_index(path: Path, site: SiteConfig, lang: Language, posts: list[Post]) -> None:
    entries = search_entries(site, lang, posts)
    write_text(path, json.dumps(entries, indent=2, ensure_ascii=False) + "\n")


def build_sitemap(path: Path, site: SiteConfig, urls: list[tuple[str, Optional[dt.datetime]]]) -> None:
    unique: dict[str, Optional[dt.datetime]] = {}
    for url, lastmod in urls:
        unique.setdefault(url, lastmod)
    items = []
    for url, lastmod in sorted(unique.items()):
        lines = ["<url>", f"<loc>{html.escape(url)}</loc>"]
        if lastmod:
            lines.append(f"<lastmod>{iso_date(lastmod)}</lastmod>")
        if site.sitemap_changefreq:
            lines.append(f"<changefreq>{html.escape(site.sitemap_changefreq)}</changefreq>")
        if site.sitemap_priority is not None:
            lines.append(f"<priority>{site.sitemap_priority:g}</priority>")
        lines.append("</url>")
        items.append("\n".join(lines))
    sitemap = "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            *items,
            "</urlset>",
        ]
    )
    write_text(path, sitemap + "\n")


def build_robots(path: Path, site: SiteConfig) -> None:
    sitemap_url = join_url(site.base_url, site.sitemap_filename)
    write_text(path, f"User-agent: *\nAllow: /\nSitemap: {sitemap_url}\n")
