import textwrap

import pytest

from staticpress.config import load_config, site_config

SITE_CONFIG = """\
baseURL = "https://blog.example.com/"
title = "Example Blog"
publishDir = "public"
author = "Jane Doe"

[params]
description = "Notes on software"

[params.search]
enable = true

[[menu.main]]
identifier = "posts"
name = "Posts"
url = "/posts/"
weight = 1

[[menu.main]]
identifier = "tags"
name = "Tags"
url = "/tags/"
weight = 2
"""


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def site_dir(tmp_path):
    root = tmp_path / "site"
    _write(root / "config.toml", SITE_CONFIG)
    (root / "content").mkdir()
    return root


@pytest.fixture
def write_post(site_dir):
    """Write a Markdown file with YAML front matter under ``content/``."""

    def write(rel, front, body="Some body text."):
        text = f"---\n{textwrap.dedent(front).strip()}\n---\n\n{textwrap.dedent(body).strip()}\n"
        return _write(site_dir / "content" / rel, text)

    return write


@pytest.fixture
def site(site_dir):
    config_path = site_dir / "config.toml"
    return site_config(load_config(config_path), site_dir, config_path)


def snapshot(directory):
    return {
        path.relative_to(directory).as_posix(): path.read_bytes()
        for path in sorted(directory.rglob("*"))
        if path.is_file()
    }


@pytest.fixture
def read_tree():
    return snapshot
