from __future__ import annotations

import datetime as dt
import html as html_lib
import re
import subprocess
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

import yaml

try:
    import tomllib as toml
except ImportError:
    import tomli as toml

from .cache import hash_text
from .errors import ContentError
from .models import Post, SiteConfig
from .render import convert_markdown, fix_relative_img_src, strip_tags
from .utils import parse_bool, relative_root

LIST_MARKER_RE = re.compile(r"^(?P<indent>[ \t]*)(?:[-+*]|\d+[.)])\s+")
FENCE_RE = re.compile(r"^(?P<indent>[ \t]*)(`{3,}|~{3,})")
CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
WORD_RE = re.compile(r"[A-Za-z0-9]+(?:'[A-Za-z0-9]+)?")
MORE_MARKER = "<!--more-->"
SUMMARY_LENGTH = 200
FRONT_MATTER_DELIMITERS = {"---": "yaml", "+++": "toml"}
MIN_DATE = dt.datetime.min.replace(tzinfo=dt.timezone.utc)


def slugify(text: str) -> str:
    text = text.lower()
    text = re.sub(r"[^\w]+", "-", text, flags=re.UNICODE)
    text = text.strip("-_").replace("_", "-")
    return text or "post"


def parse_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        items = [str(item).strip() for item in value]
    else:
        text = str(value).strip()
        if text.startswith("[") and text.endswith("]"):
            text = text[1:-1]
        items = [item.strip().strip("'\"") for item in text.split(",")]
    unique = []
    seen = set()
    for item in items:
        if item and item.lower() not in seen:
            seen.add(item.lower())
            unique.append(item)
    return unique


def split_front_matter(text: str, path: Path) -> tuple[dict, str]:
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines()
    if not lines or lines[0].strip() not in FRONT_MATTER_DELIMITERS:
        raise ContentError("missing front matter block (expected '---' or '+++' on the first line)", path)
    delimiter = lines[0].strip()

    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() == delimiter:
            end = i
            break
    if end is None:
        raise ContentError(f"unterminated front matter block (no closing '{delimiter}')", path)

    block = "\n".join(lines[1:end])
    try:
        if FRONT_MATTER_DELIMITERS[delimiter] == "yaml":
            meta = yaml.safe_load(block)
        else:
            meta = toml.loads(block)
    except (yaml.YAMLError, ValueError) as exc:
        raise ContentError(f"invalid front matter: {exc}", path) from exc
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise ContentError("front matter must be a mapping", path)
    meta = {str(key).lower(): value for key, value in meta.items()}
    body = "\n".join(lines[end + 1 :])
    return meta, body


def parse_date(value: object, path: Path, field: str = "date") -> Optional[dt.datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        parsed = value
    elif isinstance(value, dt.date):
        parsed = dt.datetime.combine(value, dt.time())
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = dt.datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = dt.datetime.combine(dt.date.fromisoformat(text), dt.time())
            except ValueError:
                raise ContentError(f"invalid {field}: {value!r}", path) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def git_lastmod(repo_root: Path, path: Path) -> Optional[dt.datetime]:
    try:
        out = subprocess.check_output(
            ["git", "log", "-1", "--format=%cI", "--", str(path)],
            cwd=str(repo_root),
            stderr=subprocess.DEVNULL,
        ).decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return None
    if not out:
        return None
    return dt.datetime.fromisoformat(out.replace("Z", "+00:00"))


def git_head(repo_root: Path) -> str:
    try:
        out = subprocess.check_output(
            ["git", "rev-parse", "HEAD"], cwd=str(repo_root), stderr=subprocess.DEVNULL
        )
    except (OSError, subprocess.CalledProcessError):
        return ""
    return out.decode().strip()


def normalize_list_spacing(text: str) -> str:
    lines = text.splitlines()
    out: list[str] = []
    in_fence = False
    fence_marker = ""
    for line in lines:
        fence_match = FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(2)
            if not in_fence:
                in_fence = True
                fence_marker = marker
            elif marker == fence_marker:
                in_fence = False
                fence_marker = ""
            out.append(line)
            continue
        if in_fence:
            out.append(line)
            continue
        list_match = LIST_MARKER_RE.match(line)
        if list_match and not list_match.group("indent"):
            if out and out[-1].strip() and not LIST_MARKER_RE.match(out[-1]):
                out.append("")
        out.append(line)
    return "\n".join(out)


def count_words(text: str) -> int:
    text = html_lib.unescape(text)
    cjk_count = len(CJK_RE.findall(text))
    text = CJK_RE.sub(" ", text)
    word_count = len(WORD_RE.findall(text))
    return cjk_count + word_count


def make_summary(meta: dict, html_content: str) -> str:
    summary = meta.get("summary") or meta.get("description")
    if summary:
        return str(summary).strip()
    if MORE_MARKER in html_content:
        lead = html_lib.unescape(strip_tags(html_content.split(MORE_MARKER, 1)[0]))
        return " ".join(lead.split())
    text = " ".join(html_lib.unescape(strip_tags(html_content)).split())
    return text[:SUMMARY_LENGTH] + ("..." if len(text) > SUMMARY_LENGTH else "")


def split_lang(stem: str, site: SiteConfig) -> tuple[str, str]:
    """``intro.fr`` -> (``intro``, ``fr``) when ``fr`` is a configured language."""
    codes = {lang.code for lang in site.languages}
    base, dot, suffix = stem.rpartition(".")
    if dot and suffix in codes:
        return base, suffix
    return stem, site.default_lang


def load_post(path: Path, site: SiteConfig) -> Post:
    rel = path.relative_to(site.content_dir)
    try:
        raw_text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ContentError("not valid UTF-8", rel) from exc
    meta, body = split_front_matter(raw_text, rel)

    title = str(meta.get("title") or "").strip()
    if not title:
        raise ContentError("front matter is missing a non-empty 'title'", rel)
    stem, lang = split_lang(path.stem, site)
    dirs = rel.parts[:-1]
    bundle_dir = None
    if stem == "index" and dirs:
        bundle_dir = path.parent
        stem = dirs[-1]
        dirs = dirs[:-1]
    section = dirs[0] if dirs else ""
    date = parse_date(meta.get("date"), rel)
    if date is None and section == "posts":
        raise ContentError("front matter is missing a 'date'", rel)
    lastmod = parse_date(meta.get("lastmod"), rel, "lastmod")
    if lastmod is None and site.enable_git_info:
        lastmod = git_lastmod(site.root, path)
    if lastmod is None:
        lastmod = date

    explicit_slug = str(meta.get("slug") or "").strip()
    slug = slugify(explicit_slug or stem)

    language = site.language(lang)
    post = Post(
        path=rel,
        section=section,
        lang=lang,
        title=title,
        date=date,
        lastmod=lastmod,
        draft=parse_bool(meta.get("draft")),
        author=str(meta.get("author") or language.author),
        tags=parse_list(meta.get("tags")),
        categories=parse_list(meta.get("categories")),
        slug=slug,
        summary="",
        body=body,
        bundle_dir=bundle_dir,
    )
    html_content, toc_html = convert_markdown(normalize_list_spacing(body), site)
    if bundle_dir is None:
        html_content = fix_relative_img_src(html_content, relative_root(site.lang_prefix(lang) + post.url_path))
    post.content_html = html_content
    post.toc_html = toc_html
    post.summary = make_summary(meta, html_content)
    post.words = count_words(strip_tags(html_content))
    return post


def dedupe_slugs(posts: list[Post]) -> None:
    used = set()
    for post in posts:
        key = (post.lang, post.is_post, post.slug)
        if key in used:
            post.slug = f"{post.slug}-{hash_text(post.path.as_posix())[:8]}"
            key = (post.lang, post.is_post, post.slug)
        used.add(key)


def load_corpus(site: SiteConfig, workers: int = 1) -> list[Post]:
    if not site.content_dir.is_dir():
        raise ContentError(f"Content directory not found: {site.content_dir}")
    files = sorted(
        (path for path in site.content_dir.rglob("*.md") if path.name != "_index.md"),
        key=lambda p: p.as_posix(),
    )
    workers = max(1, min(workers, len(files) or 1))
    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            parsed = list(executor.map(lambda p: load_post(p, site), files))
    else:
        parsed = [load_post(path, site) for path in files]
    posts = [post for post in parsed if site.build_drafts or not post.draft]
    dedupe_slugs(posts)
    posts.sort(key=lambda p: p.path.as_posix())
    posts.sort(key=lambda p: p.date or MIN_DATE, reverse=True)
    return posts


def new_post(path: Path, site: SiteConfig, now: Optional[dt.datetime] = None) -> Path:
    if not path.is_absolute():
        path = site.content_dir / path
    if path.suffix != ".md":
        path = path.with_suffix(".md")
    if path.exists():
        raise ContentError("refusing to overwrite an existing file", path)
    now = now or dt.datetime.now(dt.timezone.utc).astimezone()
    stem, _ = split_lang(path.stem, site)
    if stem == "index":
        stem = path.parent.name
    title = stem.replace("-", " ").replace("_", " ").strip().title() or "Untitled"
    meta = {
        "title": title,
        "date": now.replace(microsecond=0).isoformat(),
        "draft": True,
        "author": site.language(site.default_lang).author,
        "tags": [],
        "categories": [],
    }
    front = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"---\n{front}---\n\n", encoding="utf-8")
    return path
