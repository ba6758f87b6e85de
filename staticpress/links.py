from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable
from urllib.parse import unquote, urlsplit

from .errors import LinkError
from .models import Post
from .render import SCHEME_RE

REF_RE = re.compile(r'<(?:a|img)\b[^>]*?\s(?:href|src)="([^"]*)"', re.IGNORECASE)


def extract_references(html_text: str) -> list[str]:
    return [ref for ref in REF_RE.findall(html_text) if is_internal(ref)]


def is_internal(ref: str) -> bool:
    if not ref or ref.startswith(("#", "//")):
        return False
    return not SCHEME_RE.match(ref)


def resolve_reference(ref: str, page_file: Path, output_dir: Path, base_path: str) -> Path:
    path = unquote(urlsplit(ref).path)
    if path.startswith("/"):
        if path.startswith(base_path):
            path = path[len(base_path) :]
        target = output_dir / path.lstrip("/")
    else:
        target = page_file.parent / path
    if not path or path.endswith("/") or target.is_dir():
        target = target / "index.html"
    return target


def find_broken(
    rendered: Iterable[tuple[Post, Path]], output_dir: Path, base_path: str
) -> list[tuple[str, str]]:
    broken = []
    root = output_dir.resolve()
    for post, page_file in rendered:
        for ref in extract_references(post.content_html):
            target = resolve_reference(ref, page_file, output_dir, base_path).resolve()
            if not target.is_relative_to(root) or not target.is_file():
                broken.append((post.path.as_posix(), ref))
    return broken


def check_links(rendered: Iterable[tuple[Post, Path]], output_dir: Path, base_path: str) -> None:
    broken = find_broken(rendered, output_dir, base_path)
    if broken:
        raise LinkError(broken)
