from __future__ import annotations

import datetime as dt
import shutil
import tempfile
from pathlib import Path

from .errors import ConfigError


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return False


def parse_int(value: object, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def join_url(base: str, path: str) -> str:
    base = base.rstrip("/")
    path = path.lstrip("/")
    if not path:
        return base + "/"
    return f"{base}/{path}"


def as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def rfc822_date(value: dt.datetime) -> str:
    return as_utc(value).strftime("%a, %d %b %Y %H:%M:%S %z")


def iso_date(value: dt.datetime) -> str:
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def relative_root(url_path: str) -> str:
    """Relative prefix that leads from the page at ``url_path`` back to the site root."""
    depth = len([part for part in url_path.strip("/").split("/") if part])
    if depth == 0:
        return "."
    return "/".join([".."] * depth)


def write_nojekyll(output_dir: Path) -> None:
    output_dir.joinpath(".nojekyll").write_text("", encoding="utf-8")


def check_publish_dir(publish_dir: Path, project_root: Path) -> None:
    publish_resolved = publish_dir.resolve()
    root_resolved = project_root.resolve()
    if publish_resolved == root_resolved:
        raise ConfigError("Refusing to publish into the project root.")
    if not publish_resolved.is_relative_to(root_resolved):
        raise ConfigError(f"Refusing to publish outside the project root: {publish_dir}")


def make_staging_dir(publish_dir: Path) -> Path:
    publish_dir.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=f".{publish_dir.name}.staging-", dir=publish_dir.parent))
    staging.chmod(0o755)
    return staging


def swap_into_place(staging_dir: Path, publish_dir: Path) -> None:
    backup = None
    if publish_dir.exists():
        backup = publish_dir.with_name(f".{publish_dir.name}.previous")
        if backup.exists():
            shutil.rmtree(backup)
        publish_dir.rename(backup)
    try:
        staging_dir.rename(publish_dir)
    except OSError:
        if backup is not None:
            backup.rename(publish_dir)
        raise
    if backup is not None:
        shutil.rmtree(backup)
