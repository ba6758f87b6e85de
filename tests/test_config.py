from pathlib import Path

import pytest

from staticpress.config import find_config, load_config, parse_menu, site_config
from staticpress.errors import ConfigError

ROOT = Path("/srv/blog")


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "config.toml")

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("baseURL = ", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path)

    def test_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("baseURL: https://example.org/\ntitle: Blog\n", encoding="utf-8")
        assert load_config(path) == {"baseURL": "https://example.org/", "title": "Blog"}

    def test_yaml_impossible_date(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("baseURL: https://example.org/\nreleased: 2023-02-30\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_utf8(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_bytes(b"title = \"\xff\"\n")
        with pytest.raises(ConfigError, match="UTF-8"):
            load_config(path)

    def test_json_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_find_config_prefers_toml(self, tmp_path):
        (tmp_path / "config.yaml").write_text("{}", encoding="utf-8")
        assert find_config(tmp_path) == tmp_path / "config.yaml"
        (tmp_path / "config.toml").write_text("", encoding="utf-8")
        assert find_config(tmp_path) == tmp_path / "config.toml"


class TestParseMenu:
    def test_duplicates_keep_first(self):
        menu = parse_menu(
            [
                {"identifier": "github", "name": "GitHub", "url": "https://github.com/a", "weight": 3},
                {"identifier": "github", "name": "GitHub again", "url": "https://github.com/b", "weight": 1},
            ]
        )
        assert len(menu) == 1
        assert menu[0].url == "https://github.com/a"

    def test_sorted_by_weight_then_name(self):
        menu = parse_menu(
            [
                {"name": "Tags", "url": "/tags/", "weight": 2},
                {"name": "posts", "url": "/posts/", "weight": 1},
                {"name": "About", "url": "/about/", "weight": 1},
            ]
        )
        assert [item.name for item in menu] == ["About", "posts", "Tags"]

    def test_not_a_list(self):
        assert parse_menu({"name": "x"}) == ()


class TestSiteConfig:
    def test_defaults(self):
        site = site_config({"baseURL": "https://example.org/blog"}, ROOT)
        assert site.base_url == "https://example.org/blog/"
        assert site.base_path == "/blog/"
        assert site.publish_dir == ROOT / "public"
        assert site.content_dir == ROOT / "content"
        assert site.default_lang == "en"
        assert [lang.code for lang in site.languages] == ["en"]
        assert site.no_classes
        assert site.home_outputs == ("HTML", "RSS", "JSON")
        assert not site.build_drafts

    @pytest.mark.parametrize("base_url", ["", "example.org", "ftp://example.org/", "/blog/"])
    def test_base_url_must_be_absolute(self, base_url):
        with pytest.raises(ConfigError, match="baseURL"):
            site_config({"baseURL": base_url}, ROOT)

    def test_overrides(self):
        site = site_config(
            {"baseURL": "https://example.org/", "publishDir": "docs", "buildDrafts": False},
            ROOT,
            overrides={"base_url": "http://localhost:1313", "publish_dir": "out", "build_drafts": True},
        )
        assert site.base_url == "http://localhost:1313/"
        assert site.publish_dir == ROOT / "out"
        assert site.build_drafts

    def test_languages(self):
        raw = {
            "baseURL": "https://example.org/",
            "defaultContentLanguage": "en",
            "params": {"description": "Site wide"},
            "languages": {
                "fr": {"languageName": "Français", "weight": 2, "title": "Le blog", "params": {"description": "FR"}},
                "en": {"languageName": "English", "weight": 1, "title": "The blog"},
            },
        }
        site = site_config(raw, ROOT)
        assert [lang.code for lang in site.languages] == ["en", "fr"]
        assert site.language("fr").title == "Le blog"
        assert site.language("fr").description == "FR"
        assert site.language("en").description == "Site wide"
        assert site.lang_prefix("en") == ""
        assert site.lang_prefix("fr") == "fr/"

    def test_default_language_must_be_configured(self):
        raw = {"baseURL": "https://example.org/", "defaultContentLanguage": "de", "languages": {"en": {}}}
        with pytest.raises(ConfigError, match="defaultContentLanguage"):
            site_config(raw, ROOT)

    def test_hugo_params(self):
        raw = {
            "baseURL": "https://example.org/",
            "enableRobotsTXT": True,
            "markup": {"highlight": {"noClasses": False, "lineNos": True}},
            "outputs": {"home": ["HTML", "RSS"]},
            "sitemap": {"changefreq": "weekly", "priority": 0.5},
            "params": {
                "home": {"rss": 5, "profile": {"subtitle": "Hi", "avatarURL": "images/me.png"}},
                "footer": {"since": 2019, "license": "CC BY-NC 4.0"},
                "share": {"enable": True, "Twitter": True},
                "search": {"enable": True, "contentLength": 100, "absoluteURL": True},
                "social": {"GitHub": "someone", "Twitter": ""},
            },
        }
        site = site_config(raw, ROOT)
        lang = site.language("en")
        assert site.enable_robots_txt
        assert not site.no_classes
        assert site.line_nos
        assert site.home_outputs == ("HTML", "RSS")
        assert site.sitemap_changefreq == "weekly"
        assert site.sitemap_priority == 0.5
        assert lang.rss_limit == 5
        assert lang.subtitle == "Hi"
        assert lang.avatar_url == "images/me.png"
        assert lang.since == 2019
        assert lang.footer == "CC BY-NC 4.0"
        assert lang.share == {"Twitter": True}
        assert lang.social == {"GitHub": "someone"}
        assert lang.search.enable
        assert lang.search.content_length == 100
        assert lang.search.absolute_url

    def test_branding_and_home_pagination(self):
        raw = {
            "baseURL": "https://example.org/",
            "paginate": 12,
            "params": {
                "header": {"title": {"logo": "/images/logo.png"}},
                "app": {"svgFavicon": "/images/favicon.svg"},
                "seo": {"image": "/images/cover.png", "thumbnailUrl": "/images/thumb.png"},
                "home": {"posts": {"paginate": 10}},
            },
        }
        lang = site_config(raw, ROOT).language("en")
        assert lang.logo_url == "/images/logo.png"
        assert lang.favicon_url == "/images/favicon.svg"
        assert lang.seo_image == "/images/cover.png"
        assert lang.thumbnail_url == "/images/thumb.png"
        assert lang.paginate == 12
        assert lang.home_paginate == 10

    def test_no_favicon(self):
        raw = {
            "baseURL": "https://example.org/",
            "params": {"app": {"noFavicon": True, "svgFavicon": "/images/favicon.svg"}},
        }
        lang = site_config(raw, ROOT).language("en")
        assert lang.favicon_url == ""
        assert lang.home_paginate == 0

    def test_sitemap_from_language_table(self):
        raw = {
            "baseURL": "https://example.org/",
            "languages": {"en": {"sitemap": {"changefreq": "monthly", "filename": "map.xml"}}},
        }
        site = site_config(raw, ROOT)
        assert site.sitemap_changefreq == "monthly"
        assert site.sitemap_filename == "map.xml"
