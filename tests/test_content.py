import datetime as dt
from dataclasses import replace
from pathlib import Path

import pytest

from staticpress.cache import hash_text
from staticpress.content import (
    load_corpus,
    load_post,
    make_summary,
    new_post,
    parse_date,
    parse_list,
    slugify,
    split_front_matter,
)
from staticpress.errors import ContentError

UTC = dt.timezone.utc


class TestSplitFrontMatter:
    def test_yaml_block(self):
        meta, body = split_front_matter("---\nTitle: Hello\ntags: [a, b]\n---\nBody\n", Path("a.md"))
        assert meta == {"title": "Hello", "tags": ["a", "b"]}
        assert body == "Body"

    def test_toml_block(self):
        meta, body = split_front_matter('+++\ntitle = "Hello"\ndate = 2023-04-24\n+++\nBody', Path("a.md"))
        assert meta["title"] == "Hello"
        assert meta["date"] == dt.date(2023, 4, 24)
        assert body == "Body"

    def test_byte_order_mark_is_ignored(self):
        meta, _ = split_front_matter("\ufeff---\ntitle: Hello\n---\n", Path("a.md"))
        assert meta["title"] == "Hello"

    def test_empty_block(self):
        meta, body = split_front_matter("---\n---\nBody", Path("a.md"))
        assert meta == {}
        assert body == "Body"

    def test_missing_block(self):
        with pytest.raises(ContentError, match="missing front matter"):
            split_front_matter("# Just a heading\n", Path("a.md"))

    def test_unterminated_block(self):
        with pytest.raises(ContentError, match="unterminated") as exc_info:
            split_front_matter("---\ntitle: Hello\n\nBody\n", Path("posts/a.md"))
        assert exc_info.value.path == Path("posts/a.md")
        assert "posts/a.md" in str(exc_info.value)

    def test_invalid_yaml(self):
        with pytest.raises(ContentError, match="invalid front matter"):
            split_front_matter("---\ntitle: [unclosed\n---\n", Path("a.md"))

    def test_invalid_toml(self):
        with pytest.raises(ContentError, match="invalid front matter"):
            split_front_matter("+++\ntitle = \n+++\n", Path("a.md"))

    def test_block_must_be_mapping(self):
        with pytest.raises(ContentError, match="mapping"):
            split_front_matter("---\n- a\n- b\n---\n", Path("a.md"))

    def test_impossible_yaml_date(self):
        with pytest.raises(ContentError, match="invalid front matter") as exc_info:
            split_front_matter("---\ntitle: A\ndate: 2023-02-30\n---\n", Path("posts/a.md"))
        assert exc_info.value.path == Path("posts/a.md")

    def test_impossible_toml_date(self):
        with pytest.raises(ContentError, match="invalid front matter"):
            split_front_matter("+++\ntitle = 'A'\ndate = 2023-02-30\n+++\n", Path("posts/a.md"))


class TestParseDate:
    def test_date_only_is_midnight_utc(self):
        assert parse_date(dt.date(2023, 4, 24), Path("a.md")) == dt.datetime(2023, 4, 24, tzinfo=UTC)

    def test_date_only_string(self):
        assert parse_date("2023-04-24", Path("a.md")) == dt.datetime(2023, 4, 24, tzinfo=UTC)

    def test_zulu_suffix(self):
        value = parse_date("2023-04-24T10:30:00Z", Path("a.md"))
        assert value == dt.datetime(2023, 4, 24, 10, 30, tzinfo=UTC)

    def test_offset_is_kept(self):
        value = parse_date("2023-02-11T09:30:00+02:00", Path("a.md"))
        assert value.utcoffset() == dt.timedelta(hours=2)

    def test_naive_datetime_is_utc(self):
        value = parse_date(dt.datetime(2023, 4, 24, 8, 0), Path("a.md"))
        assert value.tzinfo == UTC

    def test_missing(self):
        assert parse_date(None, Path("a.md")) is None
        assert parse_date("", Path("a.md")) is None

    def test_invalid(self):
        with pytest.raises(ContentError, match="invalid date"):
            parse_date("yesterday", Path("a.md"))


class TestHelpers:
    def test_slugify(self):
        assert slugify("Hello, World!") == "hello-world"
        assert slugify("snake_case_title") == "snake-case-title"
        assert slugify("!!!") == "post"

    def test_parse_list_from_string(self):
        assert parse_list("Java, Spring, java") == ["Java", "Spring"]

    def test_parse_list_from_bracketed_string(self):
        assert parse_list("['aws', 'dynamodb']") == ["aws", "dynamodb"]

    def test_parse_list_from_list(self):
        assert parse_list(["a", " b ", "", "A"]) == ["a", "b"]

    def test_parse_list_none(self):
        assert parse_list(None) == []

    def test_summary_from_front_matter(self):
        assert make_summary({"summary": " Short. "}, "<p>Long body</p>") == "Short."

    def test_summary_from_more_marker(self):
        html = "<p>Lead &amp; intro.</p>\n<!--more-->\n<p>Rest</p>"
        assert make_summary({}, html) == "Lead & intro."

    def test_summary_truncated(self):
        summary = make_summary({}, "<p>" + "word " * 100 + "</p>")
        assert summary.endswith("...")
        assert len(summary) == 203


class TestLoadPost:
    def test_post_fields(self, site, write_post):
        path = write_post(
            "posts/hello-world.md",
            """
            title: Hello World
            date: 2023-04-24
            tags: [Java, Spring]
            categories: Backend
            """,
            "## Intro\n\nHello there.",
        )
        post = load_post(path, site)
        assert post.path == Path("posts/hello-world.md")
        assert post.section == "posts"
        assert post.is_post
        assert post.slug == "hello-world"
        assert post.url_path == "posts/hello-world/"
        assert post.lang == "en"
        assert post.author == "Jane Doe"
        assert post.tags == ["Java", "Spring"]
        assert post.categories == ["Backend"]
        assert post.date == dt.datetime(2023, 4, 24, tzinfo=UTC)
        assert post.lastmod == post.date
        assert 'id="intro"' in post.content_html
        assert 'href="#intro"' in post.toc_html
        assert post.words == 3
        assert post.reading_time == 1

    def test_explicit_slug_and_lastmod(self, site, write_post):
        path = write_post(
            "posts/a.md",
            """
            title: A
            slug: Custom Slug
            date: 2023-04-24
            lastmod: 2023-05-01
            """,
        )
        post = load_post(path, site)
        assert post.slug == "custom-slug"
        assert post.lastmod == dt.datetime(2023, 5, 1, tzinfo=UTC)

    def test_missing_title(self, site, write_post):
        path = write_post("posts/a.md", "date: 2023-04-24")
        with pytest.raises(ContentError, match="title"):
            load_post(path, site)

    def test_post_requires_date(self, site, write_post):
        path = write_post("posts/a.md", "title: A")
        with pytest.raises(ContentError, match="date"):
            load_post(path, site)

    def test_page_without_date(self, site, write_post):
        post = load_post(write_post("about.md", "title: About"), site)
        assert post.section == ""
        assert not post.is_post
        assert post.date is None
        assert post.url_path == "about/"

    def test_nested_page_renders_at_slug(self, site, write_post):
        post = load_post(write_post("notes/colophon.md", "title: Colophon"), site)
        assert post.section == "notes"
        assert not post.is_post
        assert post.url_path == "colophon/"

    def test_not_utf8(self, site, site_dir):
        path = site_dir / "content" / "posts" / "a.md"
        path.parent.mkdir(parents=True)
        path.write_bytes(b"---\ntitle: A\ndate: 2023-04-24\n---\n\n\xff\xfe\n")
        with pytest.raises(ContentError, match="not valid UTF-8") as exc_info:
            load_post(path, site)
        assert exc_info.value.path == Path("posts/a.md")

    def test_invalid_date_names_file(self, site, write_post):
        path = write_post("posts/a.md", "title: A\ndate: not-a-date")
        with pytest.raises(ContentError, match="posts/a.md"):
            load_post(path, site)

    def test_page_bundle(self, site, site_dir, write_post):
        path = write_post("posts/trip/index.md", "title: Trip\ndate: 2023-04-24", "![map](map.png)")
        (site_dir / "content" / "posts" / "trip" / "map.png").write_bytes(b"png")
        post = load_post(path, site)
        assert post.slug == "trip"
        assert post.section == "posts"
        assert post.bundle_dir == path.parent
        assert 'src="map.png"' in post.content_html

    def test_relative_images_point_at_site_root(self, site, write_post):
        path = write_post("posts/a.md", "title: A\ndate: 2023-04-24", "![logo](images/logo.png)")
        post = load_post(path, site)
        assert 'src="../../images/logo.png"' in post.content_html

    def test_code_is_highlighted(self, site, write_post):
        path = write_post("posts/a.md", "title: A\ndate: 2023-04-24", "```python\nprint('hi')\n```")
        post = load_post(path, site)
        assert 'class="highlight"' in post.content_html


class TestLoadCorpus:
    def test_drafts_are_skipped(self, site, write_post):
        write_post("posts/draft.md", "title: Draft\ndate: 2023-04-24\ndraft: true")
        write_post("posts/live.md", "title: Live\ndate: 2023-04-24")
        assert [post.slug for post in load_corpus(site)] == ["live"]

    def test_drafts_included_when_requested(self, site, write_post):
        write_post("posts/draft.md", "title: Draft\ndate: 2023-04-24\ndraft: true")
        posts = load_corpus(replace(site, build_drafts=True))
        assert [post.slug for post in posts] == ["draft"]

    def test_newest_first_then_pages(self, site, write_post):
        write_post("posts/old.md", "title: Old\ndate: 2022-01-01")
        write_post("posts/new.md", "title: New\ndate: 2023-06-01")
        write_post("about.md", "title: About")
        write_post("_index.md", "title: Home")
        assert [post.slug for post in load_corpus(site, workers=4)] == ["new", "old", "about"]

    def test_colliding_slugs_are_disambiguated(self, site, write_post):
        write_post("posts/a.md", "title: A\nslug: same\ndate: 2023-04-24")
        write_post("posts/b.md", "title: B\nslug: same\ndate: 2023-04-24")
        slugs = {post.path.as_posix(): post.slug for post in load_corpus(site)}
        assert slugs["posts/a.md"] == "same"
        assert slugs["posts/b.md"] == "same-" + hash_text("posts/b.md")[:8]

    def test_posts_and_pages_have_separate_slugs(self, site, write_post):
        write_post("posts/about.md", "title: About the blog\ndate: 2023-04-24")
        write_post("about.md", "title: About")
        urls = sorted(post.url_path for post in load_corpus(site))
        assert urls == ["about/", "posts/about/"]

    def test_missing_content_dir(self, site, site_dir):
        (site_dir / "content").rmdir()
        with pytest.raises(ContentError, match="Content directory not found"):
            load_corpus(site)


class TestNewPost:
    def test_creates_draft(self, site, site_dir):
        now = dt.datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
        path = new_post(Path("posts/my-first-post"), site, now=now)
        assert path == site_dir / "content" / "posts" / "my-first-post.md"
        post = load_post(path, site)
        assert post.title == "My First Post"
        assert post.draft
        assert post.date == now

    def test_refuses_to_overwrite(self, site, write_post):
        write_post("posts/a.md", "title: A\ndate: 2023-04-24")
        with pytest.raises(ContentError, match="overwrite"):
            new_post(Path("posts/a.md"), site)
