from __future__ import annotations

import re
import shutil
from pathlib import Path

import markdown
from pygments.formatters import HtmlFormatter

from .errors import TemplateError
from .models import SiteConfig

IMG_SRC_RE = re.compile(r'<img([^>]*?)src="([^"]+)"', re.IGNORECASE)
TAG_RE = re.compile(r"<[^>]+>")
PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
OPTIONAL_KEYS = ("extra_head", "sidebar")
BUNDLED_THEME = Path(__file__).parent / "theme"
HIGHLIGHT_CLASS = "highlight"


def convert_markdown(text: str, site: SiteConfig) -> tuple[str, str]:
    md = markdown.Markdown(
        extensions=["fenced_code", "tables", "toc", "codehilite"],
        extension_configs={
            "toc": {"toc_depth": site.toc_depth},
            "codehilite": {
                "linenums": site.line_nos,
                "noclasses": site.no_classes,
                "guess_lang": False,
                "css_class": HIGHLIGHT_CLASS,
            },
        },
    )
    html_content = md.convert(text)
    toc_html = md.toc
    md.reset()
    return html_content, toc_html


def syntax_css() -> str:
    return HtmlFormatter(cssclass=HIGHLIGHT_CLASS).get_style_defs(f".{HIGHLIGHT_CLASS}")


def fix_relative_img_src(html_text: str, root: str) -> str:
    def repl(match: re.Match) -> str:
        attrs = match.group(1)
        src = match.group(2)
        if SCHEME_RE.match(src) or src.startswith(("#", "/", "./", "../")):
            return match.group(0)
        return f'<img{attrs}src="{root}/{src}"'

    return IMG_SRC_RE.sub(repl, html_text)


def strip_tags(html_text: str) -> str:
    return TAG_RE.sub("", html_text)


def render_template(template: str, **context: str) -> str:
    """Substitute every {{name}} placeholder in a single pass, so inserted values are never rescanned."""
    unresolved = sorted(
        {name for name in PLACEHOLDER_RE.findall(template) if name not in context and name not in OPTIONAL_KEYS}
    )
    if unresolved:
        raise TemplateError(f"Unresolved template placeholders: {', '.join(unresolved)}")
    return PLACEHOLDER_RE.sub(lambda m: context.get(m.group(1), ""), template)


def theme_dir(site: SiteConfig) -> Path:
    if site.theme in {"", "default"}:
        return BUNDLED_THEME
    path = site.themes_dir / site.theme
    if not path.is_dir():
        raise TemplateError(f"Theme {site.theme!r} not found in {site.themes_dir}")
    return path


def read_template(site: SiteConfig, name: str = "base.html") -> str:
    path = theme_dir(site) / "templates" / name
    if not path.exists():
        raise TemplateError(f"Template not found: {path}")
    return path.read_text(encoding="utf-8")


def write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def copy_static(static_dir: Path, output_dir: Path) -> None:
    if not static_dir.is_dir():
        return
    for item in sorted(static_dir.iterdir()):
        dest = output_dir / item.name
        if item.is_dir():
            shutil.copytree(item, dest, dirs_exist_ok=True)
        else:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(item, dest)
