from __future__ import annotations

import argparse
import os
import shutil
import sys
import tempfile
import time
from pathlib import Path
from typing import Optional

from .cache import LOCK_NAME, build_fingerprint, load_lock, write_lock
from .config import find_config, load_config, site_config
from .content import git_head, load_corpus, new_post
from .errors import ConfigError, StaticpressError
from .feeds import build_robots, build_sitemap
from .links import check_links
from .models import Post, SiteConfig
from .pages import build_language
from .publish import DEFAULT_BRANCH, DEFAULT_MESSAGE, PublishOptions, origin_url, publish_site
from .render import copy_static, read_template, syntax_css, theme_dir, write_text
from .utils import check_publish_dir, make_staging_dir, parse_bool, parse_int, swap_into_place, write_nojekyll

MAX_WORKERS = 32
COMMANDS = {"build", "check", "publish", "new"}
GLOBAL_OPTIONS = {"--source", "--config"}


def resolve_workers(value: int) -> int:
    workers = int(value or 0)
    if workers <= 0:
        workers = os.cpu_count() or 1
    return max(1, min(workers, MAX_WORKERS))


def load_site(args: argparse.Namespace) -> SiteConfig:
    source = Path(args.source).resolve()
    config_path = Path(args.config) if args.config else find_config(source)
    if not config_path.is_absolute():
        config_path = source / config_path
    raw = load_config(config_path)
    overrides = {
        "base_url": getattr(args, "base_url", None),
        "publish_dir": getattr(args, "destination", None),
        "build_drafts": getattr(args, "build_drafts", None),
    }
    return site_config(raw, source, config_path, overrides)


def render_site(site: SiteConfig, output_dir: Path, workers: int, check: bool) -> list[Post]:
    """Render the whole site into ``output_dir``; raises before anything is published."""
    template = read_template(site)
    corpus = load_corpus(site, workers)
    copy_static(theme_dir(site) / "static", output_dir)
    copy_static(site.static_dir, output_dir)
    if not site.no_classes:
        write_text(output_dir / "css" / "syntax.css", syntax_css())

    rendered = []
    urls = []
    for lang in site.languages:
        ctx = build_language(site, lang, template, output_dir, corpus, workers)
        rendered.extend(ctx.rendered)
        urls.extend(ctx.urls)
    build_sitemap(output_dir / site.sitemap_filename, site, urls)
    if site.enable_robots_txt:
        build_robots(output_dir / "robots.txt", site)
    if site.custom_domain:
        write_text(output_dir / "CNAME", f"{site.custom_domain}\n")
    if site.write_nojekyll:
        write_nojekyll(output_dir)
    if check:
        check_links(rendered, output_dir, site.base_path)
    return corpus


def build_site(args: argparse.Namespace) -> bool:
    site = load_site(args)
    check_publish_dir(site.publish_dir, site.root)
    workers = resolve_workers(args.workers)

    lock_path = Path(args.lock_file)
    if not lock_path.is_absolute():
        lock_path = site.root / lock_path
    options = {
        "base_url": site.base_url,
        "publish_dir": site.publish_dir.as_posix(),
        "build_drafts": site.build_drafts,
        "check_links": args.check_links,
        "git_head": git_head(site.root) if site.enable_git_info else "",
    }
    fingerprint = build_fingerprint(site.content_dir, site.static_dir, theme_dir(site), site.config_path, options)
    if not args.force and site.publish_dir.exists() and load_lock(lock_path) == fingerprint:
        print("No changes detected. Build skipped.")
        return False

    staging = make_staging_dir(site.publish_dir)
    try:
        corpus = render_site(site, staging, workers, args.check_links)
        swap_into_place(staging, site.publish_dir)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise
    write_lock(lock_path, fingerprint)
    posts = sum(1 for post in corpus if post.is_post)
    print(f"Rendered {posts} posts and {len(corpus) - posts} pages in {len(site.languages)} language(s).")
    return True


def check_site(args: argparse.Namespace) -> None:
    site = load_site(args)
    with tempfile.TemporaryDirectory(prefix="staticpress-check-") as tmp:
        corpus = render_site(site, Path(tmp), resolve_workers(args.workers), True)
    print(f"Checked {len(corpus)} content files: no problems found.")


def publish(args: argparse.Namespace) -> bool:
    source = Path(args.source).resolve()
    dir_value = args.dir or os.environ.get("PUBLISH_DIR", "")
    if dir_value:
        publish_dir = Path(dir_value)
        if not publish_dir.is_absolute():
            publish_dir = source / publish_dir
    else:
        publish_dir = load_site(args).publish_dir
    options = PublishOptions(
        publish_dir=publish_dir,
        repository=args.repository or os.environ.get("PUBLISH_REPOSITORY", "") or origin_url(source),
        branch=args.branch or os.environ.get("PUBLISH_BRANCH", "") or DEFAULT_BRANCH,
        message=args.message,
        deploy_key=os.environ.get("ACTIONS_DEPLOY_KEY", ""),
        token=os.environ.get("GITHUB_TOKEN", "") or os.environ.get("github_token", ""),
    )
    return publish_site(options)


def new_content(args: argparse.Namespace) -> Path:
    site = load_site(args)
    path = new_post(Path(args.path), site)
    print(f"Created {path}")
    return path


def add_render_options(parser: argparse.ArgumentParser, cfg_value) -> None:
    parser.add_argument("--base-url", default=None, help="Override baseURL from the config.")
    parser.add_argument(
        "-D",
        "--build-drafts",
        action="store_const",
        const=True,
        default=None,
        help="Include content marked as draft.",
    )
    parser.add_argument(
        "--workers",
        default=parse_int(cfg_value("buildWorkers", 0), 0),
        type=int,
        help="Number of worker threads for parsing/rendering (0 = auto).",
    )
    parser.add_argument(
        "--check-links",
        action=argparse.BooleanOptionalAction,
        default=parse_bool(cfg_value("checkLinks", True)),
        help="Fail when a post references an internal page or asset that does not exist.",
    )


def build_parser(argv: list[str]) -> argparse.ArgumentParser:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--source", default=".")
    pre_parser.add_argument("--config", default=None)
    pre_args, _ = pre_parser.parse_known_args(argv)
    config_path = Path(pre_args.config) if pre_args.config else find_config(Path(pre_args.source))
    if not config_path.is_absolute() and pre_args.config:
        config_path = Path(pre_args.source) / config_path
    try:
        config = load_config(config_path)
    except ConfigError:
        config = {}

    def cfg_value(key: str, default: object) -> object:
        value = config.get(key)
        return default if value is None else value

    parser = argparse.ArgumentParser(prog="staticpress", description="Build and publish a Markdown blog.")
    parser.add_argument("--source", default=pre_args.source, help="Site root directory.")
    parser.add_argument(
        "--config",
        default=pre_args.config,
        help="Path to the site config file (TOML/YAML/JSON), relative to --source.",
    )
    commands = parser.add_subparsers(dest="command")

    build_cmd = commands.add_parser("build", help="Render the site into the publish directory.")
    add_render_options(build_cmd, cfg_value)
    build_cmd.add_argument("-d", "--destination", default=None, help="Override publishDir from the config.")
    build_cmd.add_argument("--force", action="store_true", help="Rebuild even when no input changed.")
    build_cmd.add_argument(
        "--lock-file",
        default=str(cfg_value("lockFile", LOCK_NAME)),
        help="Path to the build fingerprint JSON.",
    )

    check_cmd = commands.add_parser("check", help="Render into a throwaway directory and validate content.")
    add_render_options(check_cmd, cfg_value)

    publish_cmd = commands.add_parser("publish", help="Push the publish directory to a git branch.")
    publish_cmd.add_argument("--dir", default="", help="Directory to publish (default: PUBLISH_DIR or publishDir).")
    publish_cmd.add_argument("--repository", default="", help="Remote URL or path (default: origin).")
    publish_cmd.add_argument("--branch", default="", help=f"Target branch (default: PUBLISH_BRANCH or {DEFAULT_BRANCH}).")
    publish_cmd.add_argument("--message", default=DEFAULT_MESSAGE, help="Commit message.")

    new_cmd = commands.add_parser("new", help="Create a new draft post.")
    new_cmd.add_argument("path", help="Path of the new file, relative to the content directory.")
    return parser


def split_global_options(argv: list[str]) -> tuple[list[str], list[str]]:
    head: list[str] = []
    rest = list(argv)
    while rest and rest[0].split("=", 1)[0] in GLOBAL_OPTIONS:
        option = rest.pop(0)
        head.append(option)
        if "=" not in option and rest:
            head.append(rest.pop(0))
    return head, rest


def with_default_command(argv: list[str]) -> list[str]:
    """Insert ``build`` after the global options so build flags work without naming the command."""
    head, rest = split_global_options(argv)
    return head + ["build"] + rest


def needs_default_command(argv: list[str]) -> bool:
    _, rest = split_global_options(argv)
    return not rest or rest[0] not in COMMANDS | {"-h", "--help"}


def main(argv: Optional[list[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if needs_default_command(argv):
        argv = with_default_command(argv)
    parser = build_parser(argv)
    args = parser.parse_args(argv)
    start = time.perf_counter()
    try:
        if args.command == "build":
            build_site(args)
        elif args.command == "check":
            check_site(args)
        elif args.command == "publish":
            publish(args)
        elif args.command == "new":
            new_content(args)
    except StaticpressError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if args.command in {"build", "check"}:
        elapsed = time.perf_counter() - start
        print(f"Build completed in {elapsed:.2f}s.")
    return 0
