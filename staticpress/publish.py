from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from .errors import PublishError

DEFAULT_BRANCH = "gh-pages"
DEFAULT_MESSAGE = "Publish site"
COMMIT_NAME = "staticpress"
COMMIT_EMAIL = "staticpress@users.noreply.github.com"


@dataclass
class PublishOptions:
    publish_dir: Path
    repository: str
    branch: str = DEFAULT_BRANCH
    message: str = DEFAULT_MESSAGE
    deploy_key: str = ""
    token: str = ""


def mask(text: str, secrets: list[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


def run_git(args: list[str], cwd: Optional[Path], env: dict, secrets: list[str]) -> str:
    cmd = ["git", *args]
    print("+", mask(" ".join(cmd), secrets))
    try:
        result = subprocess.run(
            cmd, cwd=str(cwd) if cwd else None, env=env, capture_output=True, text=True, check=False
        )
    except OSError as exc:
        raise PublishError(f"Unable to run git: {exc}") from exc
    if result.returncode != 0:
        detail = mask((result.stderr or result.stdout).strip(), secrets)
        raise PublishError(f"{mask(' '.join(cmd), secrets)} failed: {detail}")
    return result.stdout


def origin_url(source: Path) -> str:
    try:
        out = subprocess.check_output(
            ["git", "remote", "get-url", "origin"], cwd=str(source), stderr=subprocess.DEVNULL
        )
    except (OSError, subprocess.CalledProcessError):
        return ""
    return out.decode().strip()


def authenticated_url(url: str, token: str) -> str:
    parts = urlsplit(url)
    if not token or parts.scheme != "https":
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"x-access-token:{token}@{host}", parts.path, parts.query, parts.fragment))


def clear_worktree(work: Path) -> None:
    for item in work.iterdir():
        if item.name == ".git":
            continue
        if item.is_dir() and not item.is_symlink():
            shutil.rmtree(item)
        else:
            item.unlink()


def publish_site(options: PublishOptions) -> bool:
    """Replace the tree of ``options.branch`` with the publish dir and push it.

    Returns False when the branch already holds exactly this tree.
    """
    if not options.publish_dir.is_dir():
        raise PublishError(f"Publish directory not found: {options.publish_dir}")
    if not options.repository:
        raise PublishError("No repository to publish to (set --repository or PUBLISH_REPOSITORY).")

    url = authenticated_url(options.repository, options.token)
    secrets = [options.token, options.deploy_key, url if url != options.repository else ""]
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"

    with tempfile.TemporaryDirectory(prefix="staticpress-publish-") as tmp:
        tmp_dir = Path(tmp)
        if options.deploy_key:
            key_path = tmp_dir / "deploy_key"
            key_path.write_text(options.deploy_key.strip() + "\n", encoding="utf-8")
            key_path.chmod(0o600)
            env["GIT_SSH_COMMAND"] = f"ssh -i {key_path} -o IdentitiesOnly=yes -o StrictHostKeyChecking=accept-new"

        work = tmp_dir / "site"
        heads = run_git(["ls-remote", "--heads", url, options.branch], None, env, secrets)
        if heads.strip():
            run_git(["clone", "--depth", "1", "--branch", options.branch, url, str(work)], None, env, secrets)
        else:
            print(f"Branch {options.branch} does not exist yet; creating it.")
            run_git(["init", str(work)], None, env, secrets)
            run_git(["symbolic-ref", "HEAD", f"refs/heads/{options.branch}"], work, env, secrets)
            run_git(["remote", "add", "origin", url], work, env, secrets)

        clear_worktree(work)
        shutil.copytree(options.publish_dir, work, dirs_exist_ok=True)
        run_git(["add", "--all"], work, env, secrets)
        if not run_git(["status", "--porcelain"], work, env, secrets).strip():
            print("Nothing to publish.")
            return False
        run_git(
            [
                "-c",
                f"user.name={COMMIT_NAME}",
                "-c",
                f"user.email={COMMIT_EMAIL}",
                "-c",
                "commit.gpgsign=false",
                "commit",
                "-m",
                options.message,
            ],
            work,
            env,
            secrets,
        )
        run_git(["push", "origin", f"HEAD:refs/heads/{options.branch}"], work, env, secrets)
    print(f"Published {options.publish_dir} to {mask(options.repository, secrets)} ({options.branch}).")
    return True
