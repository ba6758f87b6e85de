from __future__ import annotations

import json
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import yaml

try:
    import tomllib as toml
except ImportError:
    import tomli as toml

from .errors import ConfigError
from .models import Language, MenuEntry, SearchConfig, SiteConfig
from .utils import parse_bool, parse_int

CONFIG_NAMES = ("config.toml", "config.yaml", "config.yml", "config.json")
DEFAULT_PAGINATE = 10
DEFAULT_RSS_LIMIT = 10


def find_config(source: Path) -> Path:
    for name in CONFIG_NAMES:
        candidate = source / name
        if candidate.exists():
            return candidate
    return source / CONFIG_NAMES[0]


def load_config(path: Path) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigError(f"Config file is not valid UTF-8: {path}") from exc
    if suffix == ".toml":
        try:
            data = toml.loads(text)
        except toml.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in config file {path}: {exc}") from exc
    elif suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except (yaml.YAMLError, ValueError) as exc:
            raise ConfigError(f"Invalid YAML in config file {path}: {exc}") from exc
        if data is None:
            data = {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping: {path}")
    return data


def _table(value: object) -> dict:
    return value if isinstance(value, dict) else {}


def _lookup(data: dict, key: str, default: object = None) -> object:
    """Case-insensitive key lookup; Hugo treats config keys that way."""
    if key in data:
        return data[key]
    lowered = key.lower()
    for name, value in data.items():
        if str(name).lower() == lowered:
            return value
    return default


def parse_menu(entries: object) -> tuple[MenuEntry, ...]:
    if not isinstance(entries, list):
        return ()
    seen = set()
    items = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name") or "")
        url = str(entry.get("url") or "")
        identifier = str(entry.get("identifier") or name or url)
        if identifier in seen:
            continue
        seen.add(identifier)
        items.append(
            MenuEntry(
                identifier=identifier,
                name=name,
                url=url,
                title=str(entry.get("title") or ""),
                pre=str(entry.get("pre") or ""),
                post=str(entry.get("post") or ""),
                weight=parse_int(entry.get("weight"), 0),
            )
        )
    items.sort(key=lambda item: (item.weight, item.name.lower(), item.identifier))
    return tuple(items)


def parse_search(params: dict) -> SearchConfig:
    search = _table(_lookup(params, "search"))
    return SearchConfig(
        enable=parse_bool(search.get("enable")),
        type=str(search.get("type") or "lunr"),
        content_length=parse_int(_lookup(search, "contentLength"), 4000),
        placeholder=str(search.get("placeholder") or ""),
        max_result_length=parse_int(_lookup(search, "maxResultLength"), 10),
        snippet_length=parse_int(_lookup(search, "snippetLength"), 30),
        highlight_tag=str(_lookup(search, "highlightTag") or "em"),
        absolute_url=parse_bool(_lookup(search, "absoluteURL")),
    )


def parse_language(code: str, data: dict, site: dict) -> Language:
    params = _table(_lookup(data, "params")) or _table(_lookup(site, "params"))
    header = _table(_table(params.get("header")).get("title"))
    profile = _table(_table(params.get("home")).get("profile"))
    home = _table(params.get("home"))
    footer = _table(params.get("footer"))
    app = _table(params.get("app"))
    seo = _table(params.get("seo"))
    menu = _table(_lookup(data, "menu")) or _table(_lookup(site, "menu"))
    keywords = params.get("keywords") or []
    if isinstance(keywords, str):
        keywords = [item.strip() for item in keywords.split(",") if item.strip()]
    title = _lookup(data, "title") or header.get("name") or _lookup(site, "title") or ""
    return Language(
        code=code,
        name=str(_lookup(data, "languageName") or code),
        weight=parse_int(data.get("weight"), 0),
        paginate=max(1, parse_int(_lookup(data, "paginate", _lookup(site, "paginate")), DEFAULT_PAGINATE)),
        title=str(title),
        description=str(params.get("description") or ""),
        keywords=tuple(str(item) for item in keywords),
        author=str(_lookup(params, "author") or _lookup(site, "author") or footer.get("custom") or ""),
        subtitle=str(profile.get("subtitle") or ""),
        avatar_url=str(_lookup(profile, "avatarURL") or ""),
        footer=str(footer.get("license") or "") if parse_bool(footer.get("enable", True)) else "",
        since=parse_int(footer.get("since"), 0),
        rss_limit=max(1, parse_int(home.get("rss", _lookup(site, "rssLimit")), DEFAULT_RSS_LIMIT)),
        home_paginate=max(0, parse_int(_table(home.get("posts")).get("paginate"), 0)),
        logo_url=str(header.get("logo") or ""),
        favicon_url="" if parse_bool(_lookup(app, "noFavicon")) else str(_lookup(app, "svgFavicon") or ""),
        seo_image=str(seo.get("image") or ""),
        thumbnail_url=str(_lookup(seo, "thumbnailUrl") or ""),
        menu=parse_menu(menu.get("main")),
        social={key: value for key, value in _table(params.get("social")).items() if value},
        share={key: value for key, value in _table(params.get("share")).items() if key != "enable"}
        if parse_bool(_table(params.get("share")).get("enable"))
        else {},
        search=parse_search(params),
    )


def site_config(raw: dict, root: Path, config_path: Optional[Path] = None, overrides: Optional[dict] = None) -> SiteConfig:
    """Map a Hugo-style config mapping onto a SiteConfig; ``overrides`` come from the command line."""
    overrides = {key: value for key, value in (overrides or {}).items() if value is not None}
    base_url = str(overrides.get("base_url") or _lookup(raw, "baseURL") or "")
    parts = urlsplit(base_url)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise ConfigError(f"baseURL must be an absolute http(s) URL, got {base_url!r}")
    if not base_url.endswith("/"):
        base_url += "/"

    default_lang = str(_lookup(raw, "defaultContentLanguage") or "en")
    languages_table = _table(_lookup(raw, "languages"))
    if languages_table:
        languages = [
            parse_language(str(code), _table(data), raw) for code, data in languages_table.items()
        ]
    else:
        languages = [parse_language(default_lang, {"languageName": _lookup(raw, "languageCode")}, raw)]
    languages.sort(key=lambda lang: (lang.weight, lang.code))
    if default_lang not in {lang.code for lang in languages}:
        raise ConfigError(f"defaultContentLanguage {default_lang!r} is not listed under [languages]")

    highlight = _table(_table(_lookup(raw, "markup")).get("highlight"))
    toc = _table(_table(_lookup(raw, "markup")).get("tableOfContents"))
    outputs = _table(_lookup(raw, "outputs"))
    home_outputs = outputs.get("home") or ["HTML", "RSS", "JSON"]
    sitemap = _table(_lookup(raw, "sitemap"))
    for lang_data in languages_table.values():
        sitemap = sitemap or _table(_lookup(_table(lang_data), "sitemap"))
    priority = sitemap.get("priority")

    def resolve(key: str, default: str) -> Path:
        value = Path(str(_lookup(raw, key) or default))
        return value if value.is_absolute() else root / value

    publish_dir = overrides.get("publish_dir")
    if publish_dir:
        publish_dir = Path(publish_dir)
        if not publish_dir.is_absolute():
            publish_dir = root / publish_dir
    else:
        publish_dir = resolve("publishDir", "public")

    toc_start = parse_int(_lookup(toc, "startLevel"), 2)
    toc_end = parse_int(_lookup(toc, "endLevel"), 4)
    return SiteConfig(
        base_url=base_url,
        title=str(_lookup(raw, "title") or ""),
        root=root,
        config_path=config_path,
        theme=str(_lookup(raw, "theme") or ""),
        default_lang=default_lang,
        languages=tuple(languages),
        content_dir=resolve("contentDir", "content"),
        static_dir=resolve("staticDir", "static"),
        themes_dir=resolve("themesDir", "themes"),
        publish_dir=publish_dir,
        build_drafts=parse_bool(overrides.get("build_drafts", _lookup(raw, "buildDrafts"))),
        enable_robots_txt=parse_bool(_lookup(raw, "enableRobotsTXT")),
        enable_git_info=parse_bool(overrides.get("enable_git_info", _lookup(raw, "enableGitInfo"))),
        home_outputs=tuple(str(item).upper() for item in home_outputs),
        line_nos=parse_bool(_lookup(highlight, "lineNos")),
        no_classes=parse_bool(_lookup(highlight, "noClasses", True)),
        custom_domain=str(_lookup(raw, "customDomain") or ""),
        write_nojekyll=parse_bool(_lookup(raw, "writeNojekyll")),
        sitemap_changefreq=str(sitemap.get("changefreq") or ""),
        sitemap_priority=float(priority) if priority is not None else None,
        sitemap_filename=str(sitemap.get("filename") or "sitemap.xml"),
        toc_depth=f"{toc_start}-{toc_end}",
    )
