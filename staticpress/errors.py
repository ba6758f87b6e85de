from __future__ import annotations

from pathlib import Path
from typing import Optional


class StaticpressError(Exception):
    """Base class for every failure that aborts a build or publish run."""


class ConfigError(StaticpressError):
    pass


class ContentError(StaticpressError):
    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        if path is not None:
            message = f"{path}: {message}"
        super().__init__(message)


class TemplateError(StaticpressError):
    pass


class LinkError(StaticpressError):
    def __init__(self, broken: list[tuple[str, str]]):
        self.broken = broken
        lines = [f"  {source} -> {ref}" for source, ref in broken]
        super().__init__("Broken internal references:\n" + "\n".join(lines))


class PublishError(StaticpressError):
    pass
