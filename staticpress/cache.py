from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Optional

LOCK_VERSION = 1
LOCK_NAME = ".staticpress.lock.json"
GENERATOR_DIR = Path(__file__).parent


def list_files(root: Path) -> list[Path]:
    if not root.exists():
        return []
    return [path for path in root.rglob("*") if path.is_file() and "__pycache__" not in path.parts]


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def hash_file(path: Path) -> str:
    return hash_bytes(path.read_bytes())


def hash_paths(paths: list[Path], base: Optional[Path] = None) -> str:
    digest = hashlib.sha256()
    for path in sorted(paths, key=lambda p: p.as_posix()):
        rel = path
        if base is not None:
            try:
                rel = path.relative_to(base)
            except ValueError:
                rel = path
        digest.update(rel.as_posix().encode("utf-8"))
        digest.update(b"\0")
        digest.update(path.read_bytes())
        digest.update(b"\0")
    return digest.hexdigest()


def build_fingerprint(
    content_dir: Path,
    static_dir: Path,
    theme_dir: Path,
    config_path: Optional[Path],
    options: dict,
) -> dict:
    """Hashes of every build input; equal fingerprints mean the output would be identical."""
    return {
        "version": LOCK_VERSION,
        "generator_hash": hash_paths(list_files(GENERATOR_DIR), GENERATOR_DIR),
        "content_hash": hash_paths(list_files(content_dir), content_dir),
        "static_hash": hash_paths(list_files(static_dir), static_dir),
        "theme_hash": hash_paths(list_files(theme_dir), theme_dir),
        "config_hash": hash_file(config_path) if config_path and config_path.exists() else "",
        "options_hash": hash_text(json.dumps(options, sort_keys=True, default=str)),
    }


def load_lock(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def write_lock(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=True, sort_keys=True), encoding="utf-8")
