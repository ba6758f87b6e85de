from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit


@dataclass(frozen=True)
class MenuEntry:
    identifier: str
    name: str
    url: str
    title: str = ""
    pre: str = ""
    post: str = ""
    weight: int = 0


@dataclass(frozen=True)
class SearchConfig:
    enable: bool = False
    type: str = "lunr"
    content_length: int = 4000
    placeholder: str = ""
    max_result_length: int = 10
    snippet_length: int = 30
    highlight_tag: str = "em"
    absolute_url: bool = False


@dataclass(frozen=True)
class Language:
    code: str
    name: str = ""
    weight: int = 0
    paginate: int = 10
    title: str = ""
    description: str = ""
    keywords: tuple[str, ...] = ()
    author: str = ""
    subtitle: str = ""
    avatar_url: str = ""
    footer: str = ""
    since: int = 0
    rss_limit: int = 10
    home_paginate: int = 0
    logo_url: str = ""
    favicon_url: str = ""
    seo_image: str = ""
    thumbnail_url: str = ""
    menu: tuple[MenuEntry, ...] = ()
    social: dict = field(default_factory=dict)
    share: dict = field(default_factory=dict)
    search: SearchConfig = field(default_factory=SearchConfig)


@dataclass(frozen=True)
class SiteConfig:
    base_url: str
    title: str
    root: Path
    config_path: Optional[Path] = None
    theme: str = ""
    default_lang: str = "en"
    languages: tuple[Language, ...] = ()
    content_dir: Path = Path("content")
    static_dir: Path = Path("static")
    themes_dir: Path = Path("themes")
    publish_dir: Path = Path("public")
    build_drafts: bool = False
    enable_robots_txt: bool = False
    enable_git_info: bool = False
    home_outputs: tuple[str, ...] = ("HTML", "RSS", "JSON")
    line_nos: bool = False
    no_classes: bool = True
    custom_domain: str = ""
    write_nojekyll: bool = False
    sitemap_changefreq: str = ""
    sitemap_priority: Optional[float] = None
    sitemap_filename: str = "sitemap.xml"
    toc_depth: str = "2-4"

    @property
    def base_path(self) -> str:
        path = urlsplit(self.base_url).path or "/"
        return path if path.endswith("/") else path + "/"

    def language(self, code: str) -> Language:
        for lang in self.languages:
            if lang.code == code:
                return lang
        raise KeyError(code)

    def lang_prefix(self, code: str) -> str:
        """URL prefix for a language: empty for the default language, ``"fr/"`` otherwise."""
        if code == self.default_lang:
            return ""
        return f"{code}/"


@dataclass
class Post:
    path: Path
    section: str
    lang: str
    title: str
    date: Optional[dt.datetime]
    lastmod: Optional[dt.datetime]
    draft: bool
    author: str
    tags: list[str]
    categories: list[str]
    slug: str
    summary: str
    body: str
    content_html: str = ""
    toc_html: str = ""
    words: int = 0
    bundle_dir: Optional[Path] = None

    @property
    def is_post(self) -> bool:
        return self.section == "posts"

    @property
    def url_path(self) -> str:
        """Site-relative URL of the rendered page, without the language prefix."""
        if self.is_post:
            return f"posts/{self.slug}/"
        return f"{self.slug}/"

    @property
    def reading_time(self) -> int:
        return max(1, round(self.words / 220))
