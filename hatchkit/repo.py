"""Git operations: cloning template repositories, identity lookup, init."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


class RepoError(RuntimeError):
    def __init__(self, message: str, command: str = "", stderr: str = "") -> None:
        self.command = command
        self.stderr = stderr
        super().__init__(message)


@dataclass(frozen=True)
class GitIdentity:
    name: str
    email: str

    @property
    def author(self) -> str:
        return f"{self.name} <{self.email}>"


def run_git(*args: str, cwd: Path | None = None, check: bool = True) -> subprocess.CompletedProcess:
    cmd = ["git", *args]
    cmd_str = " ".join(cmd)
    logger.debug("Running %s", cmd_str)
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as error:
        raise RepoError("git executable not found", command=cmd_str) from error

    if check and result.returncode != 0:
        stderr = result.stderr.strip()
        raise RepoError(f"`{cmd_str}` failed: {stderr or 'exit code ' + str(result.returncode)}", command=cmd_str, stderr=stderr)
    return result


def find_repo_name(url: str) -> str | None:
    """Extract ``owner/name`` from a git URL.

    Supported forms, the ``.git`` suffix being optional:

    - ``git@<host>:<owner>/<name>.git``
    - ``https://<host>/<owner>/<name>.git``
    - ``http://<host>/<owner>/<name>.git``
    """
    if url.startswith("git@"):
        if ":" not in url:
            return None
        name = url.split(":", 1)[1]
    elif url.startswith(("http://", "https://")):
        rest = url.split("://", 1)[1]
        if "/" not in rest:
            return None
        name = rest.split("/", 1)[1]
    else:
        return None

    if name.endswith(".git"):
        name = name[: -len(".git")]
    if name.count("/") != 1:
        return None
    return name


def clone_or_update(url: str, target: Path) -> None:
    if (target / ".git").exists():
        _update(url, target)
    else:
        _clone(url, target)


def _clone(url: str, target: Path) -> None:
    logger.info("Cloning %s into %s", url, target)
    target.parent.mkdir(parents=True, exist_ok=True)
    run_git("clone", "--quiet", url, str(target))


def _update(url: str, target: Path) -> None:
    logger.info("Updating %s in %s", url, target)
    head = run_git("symbolic-ref", "--quiet", "HEAD", cwd=target).stdout.strip()
    if not head:
        raise RepoError(f"repository head of {target} is detached")
    run_git("fetch", "--quiet", url, head, cwd=target)
    run_git("reset", "--hard", "--quiet", "FETCH_HEAD", cwd=target)
    run_git("clean", "-fdx", "--quiet", cwd=target)


def init(target: Path) -> None:
    run_git("init", "--quiet", str(target))


def _config_value(key: str) -> str:
    result = run_git("config", "--get", key, check=False)
    value = result.stdout.strip()
    if result.returncode != 0 or not value:
        raise RepoError(f"failed getting `{key}` from git config", command=f"git config --get {key}")
    return value


def load_git_identity() -> GitIdentity:
    return GitIdentity(name=_config_value("user.name"), email=_config_value("user.email"))
