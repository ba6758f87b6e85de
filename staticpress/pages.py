from __future__ import annotations

import datetime as dt
import html
import math
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from .content import slugify
from .errors import ContentError
from .feeds import build_rss, build_search_index
from .models import Language, Post, SiteConfig
from .render import SCHEME_RE, render_template, write_text
from .utils import join_url, relative_root

DATE_FMT = "%Y-%m-%d"
TAXONOMIES = (("tags", "Tags"), ("categories", "Categories"))
RESERVED_SLUGS = {"posts", "tags", "categories", "search", "page"}
SOCIAL_URLS = {
    "github": "https://github.com/{}",
    "gitlab": "https://gitlab.com/{}",
    "linkedin": "https://www.linkedin.com/in/{}",
    "twitter": "https://twitter.com/{}",
    "facebook": "https://www.facebook.com/{}",
    "instagram": "https://www.instagram.com/{}",
    "stackoverflow": "https://stackoverflow.com/users/{}",
    "email": "mailto:{}",
}
SHARE_URLS = {
    "twitter": "https://twitter.com/intent/tweet?url={url}&text={title}",
    "facebook": "https://www.facebook.com/sharer/sharer.php?u={url}",
    "linkedin": "https://www.linkedin.com/sharing/share-offsite/?url={url}",
    "reddit": "https://reddit.com/submit?url={url}&title={title}",
}


@dataclass
class Term:
    name: str
    slug: str
    posts: list[Post] = field(default_factory=list)


@dataclass
class PageContext:
    """Everything the page builders of one language need."""

    site: SiteConfig
    lang: Language
    template: str
    output_dir: Path
    posts: list[Post]
    pages: list[Post]
    languages: tuple[Language, ...] = ()
    taxonomies: dict[str, list[Term]] = field(default_factory=dict)
    latest_year: int = 0
    urls: list[tuple[str, Optional[dt.datetime]]] = field(default_factory=list)
    rendered: list[tuple[Post, Path]] = field(default_factory=list)

    @property
    def prefix(self) -> str:
        return self.site.lang_prefix(self.lang.code)

    @property
    def site_title(self) -> str:
        return self.lang.title or self.site.title

    def page_file(self, url_path: str, filename: str = "index.html") -> Path:
        return self.output_dir / self.prefix / url_path / filename

    def href(self, root: str, url_path: str) -> str:
        return f"{root}/{self.prefix}{url_path}"

    def absolute(self, url_path: str) -> str:
        return join_url(self.site.base_url, self.prefix + url_path)

    def absolute_asset(self, value: str) -> str:
        if SCHEME_RE.match(value):
            return value
        return join_url(self.site.base_url, value)


def build_terms(posts: list[Post], attr: str) -> list[Term]:
    terms: dict[str, Term] = {}
    for post in posts:
        for name in getattr(post, attr):
            slug = slugify(name)
            terms.setdefault(slug, Term(name=name, slug=slug)).posts.append(post)
    return sorted(terms.values(), key=lambda term: (term.name.lower(), term.slug))


def format_date(value: Optional[dt.datetime]) -> str:
    return value.strftime(DATE_FMT) if value else ""


def build_menu(ctx: PageContext, root: str) -> str:
    items = []
    for entry in ctx.lang.menu:
        if SCHEME_RE.match(entry.url) or entry.url.startswith("//"):
            href = entry.url
            external = ' rel="noopener noreferrer" target="_blank"'
        else:
            href = ctx.href(root, entry.url.lstrip("/"))
            external = ""
        title = f' title="{html.escape(entry.title)}"' if entry.title else ""
        items.append(
            f'<a class="menu-item" href="{html.escape(href)}"{title}{external}>'
            f"{entry.pre}{html.escape(entry.name)}{entry.post}</a>"
        )
    for other in ctx.languages:
        if other.code == ctx.lang.code:
            continue
        href = f"{root}/{ctx.site.lang_prefix(other.code)}"
        items.append(f'<a class="menu-item menu-lang" href="{href}" hreflang="{other.code}">{html.escape(other.name)}</a>')
    return "".join(items)


def asset_href(root: str, value: str) -> str:
    if SCHEME_RE.match(value):
        return value
    return f"{root}/{value.lstrip('/')}"


def build_head_meta(ctx: PageContext, root: str, title: str, description: str, url_path: str) -> str:
    """Favicon, Open Graph and Twitter card tags."""
    tags = []
    if ctx.lang.favicon_url:
        tags.append(f'<link rel="icon" href="{html.escape(asset_href(root, ctx.lang.favicon_url))}">')
    tags.append(f'<meta property="og:title" content="{html.escape(title)}">')
    tags.append(f'<meta property="og:description" content="{html.escape(description)}">')
    tags.append(f'<meta property="og:url" content="{html.escape(ctx.absolute(url_path))}">')
    tags.append(f'<meta property="og:site_name" content="{html.escape(ctx.site_title)}">')
    if ctx.lang.seo_image:
        image = html.escape(ctx.absolute_asset(ctx.lang.seo_image))
        tags.append(f'<meta property="og:image" content="{image}">')
        tags.append('<meta name="twitter:card" content="summary_large_image">')
        tags.append(f'<meta name="twitter:image" content="{image}">')
    else:
        tags.append('<meta name="twitter:card" content="summary">')
    if ctx.lang.thumbnail_url:
        tags.append(f'<meta name="thumbnail" content="{html.escape(ctx.absolute_asset(ctx.lang.thumbnail_url))}">')
    return "\n  ".join(tags)


def build_logo(ctx: PageContext, root: str) -> str:
    if not ctx.lang.logo_url:
        return ""
    return f'<img class="site-logo" src="{html.escape(asset_href(root, ctx.lang.logo_url))}" alt="">'


def build_social_links(ctx: PageContext, root: str) -> str:
    links = []
    for network, value in sorted(ctx.lang.social.items(), key=lambda x: x[0].lower()):
        key = network.lower()
        if key == "rss":
            links.append(f'<a class="social-link" href="{ctx.href(root, "index.xml")}">RSS</a>')
            continue
        value = str(value)
        if SCHEME_RE.match(value):
            url = value
        elif key in SOCIAL_URLS:
            url = SOCIAL_URLS[key].format(value.strip("/"))
        else:
            continue
        links.append(
            f'<a class="social-link" href="{html.escape(url)}" rel="me noopener noreferrer" '
            f'target="_blank">{html.escape(network)}</a>'
        )
    return "".join(links)


def build_sidebar(ctx: PageContext, root: str, toc_html: str = "") -> str:
    profile = []
    if ctx.lang.avatar_url:
        avatar = asset_href(root, ctx.lang.avatar_url)
        profile.append(f'<img class="avatar" src="{html.escape(avatar)}" alt="{html.escape(ctx.site_title)}">')
    if ctx.lang.subtitle:
        profile.append(f'<p class="subtitle">{html.escape(ctx.lang.subtitle)}</p>')
    social = build_social_links(ctx, root)
    if social:
        profile.append(f'<div class="social">{social}</div>')
    panels = []
    if profile:
        panels.append(f'<div class="panel panel-profile">{"".join(profile)}</div>')
    if toc_html and "<li" in toc_html:
        panels.append(f'<div class="panel"><h3>Contents</h3>{toc_html}</div>')
    return "".join(panels)


def build_footer(ctx: PageContext) -> str:
    years = str(ctx.latest_year) if ctx.latest_year else ""
    if ctx.lang.since and ctx.latest_year and ctx.lang.since < ctx.latest_year:
        years = f"{ctx.lang.since} - {ctx.latest_year}"
    elif ctx.lang.since and not years:
        years = str(ctx.lang.since)
    owner = html.escape(ctx.lang.author or ctx.site_title)
    parts = [f"&copy; {years} {owner}" if years else f"&copy; {owner}"]
    if ctx.lang.footer:
        parts.append(ctx.lang.footer)
    return " | ".join(parts)


def term_chips(ctx: PageContext, post: Post, root: str) -> str:
    chips = []
    for kind, attr in (("categories", post.categories), ("tags", post.tags)):
        for name in attr:
            chips.append(
                f'<a class="chip chip-{kind}" href="{ctx.href(root, f"{kind}/{slugify(name)}/")}">'
                f"{html.escape(name)}</a>"
            )
    return " ".join(chips)


def build_post_cards(ctx: PageContext, posts: list[Post], root: str) -> str:
    cards = []
    for post in posts:
        url = ctx.href(root, post.url_path)
        cards.append(
            '<article class="post-card">'
            '<div class="post-meta">'
            f'<span class="post-date">{format_date(post.date)}</span>'
            f'<span class="post-words">{post.words} words</span>'
            f'<span class="post-reading">{post.reading_time} min read</span>'
            "</div>"
            f'<h2 class="post-title"><a href="{url}">{html.escape(post.title)}</a></h2>'
            f'<p class="post-summary">{html.escape(post.summary)}</p>'
            f'<div class="post-tags">{term_chips(ctx, post, root)}</div>'
            f'<a class="post-more" href="{url}">Read more</a>'
            "</article>"
        )
    return "\n".join(cards)


def page_url_path(base: str, page: int) -> str:
    if page == 1:
        return base
    return f"{base}page/{page}/"


def build_pagination(ctx: PageContext, base: str, page: int, total_pages: int, root: str) -> str:
    if total_pages <= 1:
        return ""
    items = []
    if page > 1:
        items.append(f'<a class="page-link" href="{ctx.href(root, page_url_path(base, page - 1))}">Previous</a>')
    else:
        items.append('<span class="page-link is-disabled">Previous</span>')
    numbers = []
    for num in range(1, total_pages + 1):
        if num == page:
            numbers.append(f'<span class="page-number is-active">{num}</span>')
        else:
            numbers.append(f'<a class="page-number" href="{ctx.href(root, page_url_path(base, num))}">{num}</a>')
    items.append(f'<div class="page-numbers">{"".join(numbers)}</div>')
    if page < total_pages:
        items.append(f'<a class="page-link" href="{ctx.href(root, page_url_path(base, page + 1))}">Next</a>')
    else:
        items.append('<span class="page-link is-disabled">Next</span>')
    return f'<nav class="pagination">{"".join(items)}</nav>'


def render_page(
    ctx: PageContext,
    url_path: str,
    title: str,
    content: str,
    root: str,
    sidebar: str = "",
    extra_head: str = "",
    description: str = "",
    filename: str = "index.html",
) -> Path:
    if not ctx.site.no_classes:
        extra_head = f'<link rel="stylesheet" href="{root}/css/syntax.css">' + extra_head
    description = description or ctx.lang.description
    html_doc = render_template(
        ctx.template,
        lang=html.escape(ctx.lang.code),
        title=html.escape(title),
        description=html.escape(description),
        meta=build_head_meta(ctx, root, title, description, url_path),
        logo=build_logo(ctx, root),
        keywords=html.escape(", ".join(ctx.lang.keywords)),
        canonical=html.escape(ctx.absolute(url_path)),
        feed_url=ctx.href(root, "index.xml"),
        root=root,
        home=ctx.href(root, ""),
        site_title=html.escape(ctx.site_title),
        menu=build_menu(ctx, root),
        footer=build_footer(ctx),
        extra_head=extra_head,
        content=content,
        sidebar=sidebar,
    )
    path = ctx.page_file(url_path, filename)
    write_text(path, html_doc)
    return path


def build_listing(
    ctx: PageContext, base: str, heading: str, intro: str, posts: list[Post], per_page: int = 0
) -> int:
    """Paginated card list at ``base``, ``base/page/2/``, ..."""
    per_page = max(1, per_page or ctx.lang.paginate)
    total_pages = max(1, math.ceil(len(posts) / per_page))
    for page in range(1, total_pages + 1):
        url_path = page_url_path(base, page)
        root = relative_root(ctx.prefix + url_path)
        page_posts = posts[(page - 1) * per_page : page * per_page]
        content = (
            '<div class="section-head">'
            f"<h2>{html.escape(heading)}</h2>"
            f"<p>{html.escape(intro)}</p>"
            "</div>"
            f'<div class="post-grid">{build_post_cards(ctx, page_posts, root)}</div>'
            f"{build_pagination(ctx, base, page, total_pages, root)}"
        )
        title = ctx.site_title if not base else f"{heading} | {ctx.site_title}"
        if page > 1:
            title = f"{title} | Page {page}"
        render_page(ctx, url_path, title, content, root, sidebar=build_sidebar(ctx, root))
        ctx.urls.append((ctx.absolute(url_path), page_posts[0].lastmod if page_posts else None))
    return total_pages


def build_index(ctx: PageContext) -> int:
    return build_listing(ctx, "", "Latest posts", ctx.lang.description, ctx.posts, ctx.lang.home_paginate)


def build_section(ctx: PageContext) -> int:
    return build_listing(ctx, "posts/", "Posts", "All posts, newest first.", ctx.posts)


def copy_bundle_resources(ctx: PageContext, post: Post) -> None:
    if post.bundle_dir is None:
        return
    dest_dir = ctx.page_file(post.url_path).parent
    for item in sorted(post.bundle_dir.rglob("*")):
        if item.is_file() and item.suffix != ".md":
            dest = dest_dir / item.relative_to(post.bundle_dir)
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(item, dest)


def build_share(ctx: PageContext, post: Post) -> str:
    if not ctx.lang.share:
        return ""
    url = quote(ctx.absolute(post.url_path), safe="")
    title = quote(post.title, safe="")
    links = []
    for network, enabled in sorted(ctx.lang.share.items(), key=lambda x: x[0].lower()):
        template = SHARE_URLS.get(network.lower())
        if not enabled or template is None:
            continue
        href = html.escape(template.format(url=url, title=title))
        links.append(
            f'<a class="share-link" href="{href}" rel="noopener noreferrer" target="_blank">{html.escape(network)}</a>'
        )
    if not links:
        return ""
    return f'<div class="post-share">Share: {" ".join(links)}</div>'


def render_article(ctx: PageContext, post: Post, root: str, with_nav: bool) -> str:
    meta = []
    if post.date:
        meta.append(f'<span class="post-date">{format_date(post.date)}</span>')
    if post.lastmod and post.date and format_date(post.lastmod) != format_date(post.date):
        meta.append(f'<span class="post-updated">Updated {format_date(post.lastmod)}</span>')
    if post.author:
        meta.append(f'<span class="post-author">{html.escape(post.author)}</span>')
    if post.is_post:
        meta.append(f'<span class="post-words">{post.words} words</span>')
        meta.append(f'<span class="post-reading">{post.reading_time} min read</span>')
    nav = ""
    if with_nav:
        index = next(i for i, item in enumerate(ctx.posts) if item is post)
        older = ctx.posts[index + 1] if index + 1 < len(ctx.posts) else None
        newer = ctx.posts[index - 1] if index > 0 else None
        links = []
        if older:
            links.append(f'<a class="post-prev" href="{ctx.href(root, older.url_path)}">{html.escape(older.title)}</a>')
        if newer:
            links.append(f'<a class="post-next" href="{ctx.href(root, newer.url_path)}">{html.escape(newer.title)}</a>')
        nav = f'<nav class="post-nav">{"".join(links)}</nav>' if links else ""
    return (
        '<article class="post">'
        f'<h1 class="post-title">{html.escape(post.title)}</h1>'
        f'<div class="post-meta">{"".join(meta)}</div>'
        f'<div class="post-tags">{term_chips(ctx, post, root)}</div>'
        f'<div class="post-body">{post.content_html}</div>'
        f"{build_share(ctx, post) if with_nav else ''}"
        f"{nav}"
        "</article>"
    )


def build_posts(ctx: PageContext, workers: int = 1) -> None:
    items = [(post, True) for post in ctx.posts] + [(page, False) for page in ctx.pages]

    def render_post(item: tuple[Post, bool]) -> tuple[Post, Path]:
        post, with_nav = item
        root = relative_root(ctx.prefix + post.url_path)
        content = render_article(ctx, post, root, with_nav)
        path = render_page(
            ctx,
            post.url_path,
            f"{post.title} | {ctx.site_title}",
            content,
            root,
            sidebar=build_sidebar(ctx, root, post.toc_html),
            description=post.summary,
        )
        copy_bundle_resources(ctx, post)
        return post, path

    workers = max(1, int(workers or 1))
    if workers <= 1 or len(items) <= 1:
        results = [render_post(item) for item in items]
    else:
        with ThreadPoolExecutor(max_workers=min(workers, len(items))) as executor:
            results = list(executor.map(render_post, items))
    for post, path in results:
        ctx.rendered.append((post, path))
        ctx.urls.append((ctx.absolute(post.url_path), post.lastmod))


def build_taxonomies(ctx: PageContext, feeds: bool = True) -> None:
    for kind, label in TAXONOMIES:
        terms = ctx.taxonomies.get(kind, [])
        url_path = f"{kind}/"
        root = relative_root(ctx.prefix + url_path)
        rows = [
            f'<li><a href="{ctx.href(root, f"{kind}/{term.slug}/")}">{html.escape(term.name)}</a>'
            f'<span class="count">{len(term.posts)}</span></li>'
            for term in terms
        ]
        body = f'<ul class="term-index">{"".join(rows)}</ul>' if rows else f"<p>No {kind} yet.</p>"
        content = f'<div class="section-head"><h2>{label}</h2></div>{body}'
        render_page(ctx, url_path, f"{label} | {ctx.site_title}", content, root, sidebar=build_sidebar(ctx, root))
        ctx.urls.append((ctx.absolute(url_path), None))
        for term in terms:
            term_path = f"{kind}/{term.slug}/"
            build_listing(ctx, term_path, term.name, f"Posts filed under {term.name}.", term.posts)
            if feeds:
                build_rss(
                    ctx.page_file(term_path, "index.xml"),
                    ctx.site,
                    ctx.lang,
                    term.posts,
                    f"{term.name} | {ctx.site_title}",
                    ctx.absolute(term_path),
                )


def build_search(ctx: PageContext) -> None:
    url_path = "search/"
    root = relative_root(ctx.prefix + url_path)
    search = ctx.lang.search
    placeholder = html.escape(search.placeholder or "Type to search...")
    content = (
        '<div class="section-head"><h2>Search</h2></div>'
        '<div class="search-bar">'
        f'<input id="search-input" class="search-input" type="search" placeholder="{placeholder}" '
        f'data-index="{ctx.href(root, "index.json")}" data-max-results="{search.max_result_length}" '
        f'data-snippet-length="{search.snippet_length}" data-highlight-tag="{html.escape(search.highlight_tag)}" />'
        '<div id="search-status" class="search-status"></div>'
        "</div>"
        '<div id="search-results" class="post-grid"></div>'
    )
    extra_head = f'<script src="{root}/js/search.js" defer></script>'
    render_page(
        ctx, url_path, f"Search | {ctx.site_title}", content, root, sidebar=build_sidebar(ctx, root), extra_head=extra_head
    )
    build_search_index(ctx.page_file("", "index.json"), ctx.site, ctx.lang, ctx.posts)


def build_404(ctx: PageContext) -> None:
    root = ctx.site.base_path.rstrip("/")
    content = (
        '<div class="section-head"><h2>404</h2><p>Page not found.</p></div>'
        f'<a class="post-more" href="{ctx.href(root, "")}">Back to home</a>'
    )
    render_page(ctx, "", f"404 | {ctx.site_title}", content, root, filename="404.html")


def build_language(
    site: SiteConfig,
    lang: Language,
    template: str,
    output_dir: Path,
    corpus: list[Post],
    workers: int = 1,
) -> PageContext:
    own = [post for post in corpus if post.lang == lang.code]
    reserved = set(RESERVED_SLUGS)
    if lang.code == site.default_lang:
        reserved.update(other.code for other in site.languages if other.code != lang.code)
    for post in own:
        if not post.is_post and post.slug in reserved:
            raise ContentError(f"page slug {post.slug!r} collides with a generated section", post.path)
    posts = [post for post in own if post.is_post]
    dated = [post.date.year for post in corpus if post.date]
    ctx = PageContext(
        site=site,
        lang=lang,
        template=template,
        output_dir=output_dir,
        posts=posts,
        pages=[post for post in own if not post.is_post],
        languages=site.languages,
        taxonomies={kind: build_terms(posts, kind) for kind, _ in TAXONOMIES},
        latest_year=max(dated) if dated else 0,
    )
    feeds = "RSS" in site.home_outputs
    build_index(ctx)
    build_section(ctx)
    build_posts(ctx, workers)
    build_taxonomies(ctx, feeds)
    if feeds:
        build_rss(ctx.page_file("", "index.xml"), site, lang, posts, ctx.site_title, ctx.absolute(""))
        build_rss(
            ctx.page_file("posts/", "index.xml"), site, lang, posts, f"Posts | {ctx.site_title}", ctx.absolute("posts/")
        )
    if lang.search.enable and "JSON" in site.home_outputs:
        build_search(ctx)
    build_404(ctx)
    return ctx
