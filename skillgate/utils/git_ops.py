"""Git operations — resolve template sources, inspect target repos."""

from __future__ import annotations

import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

_URL_PREFIXES = ("http://", "https://", "git@", "git://", "ssh://")

# github.com[:/]owner/repo(.git)
_REMOTE_PATTERN = re.compile(r"[:/]([^/:]+)/([^/]+?)(?:\.git)?/?$")


@dataclass
class TemplateHandle:
    """A resolved reference tree, possibly a temporary clone.

    Use as a context manager so temporary clones are cleaned up::

        with resolve_template(url_or_path) as handle:
            sync(LocalFileSystem(handle.local_path), ...)
    """

    local_path: Path
    source: str = ""
    is_temp_clone: bool = False

    def __enter__(self) -> "TemplateHandle":
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self.is_temp_clone and self.local_path.exists():
            shutil.rmtree(self.local_path, ignore_errors=True)


def is_git_url(value: str) -> bool:
    return value.startswith(_URL_PREFIXES)


def resolve_template(source: str, ref: str | None = None) -> TemplateHandle:
    """Turn a template source into a local directory.

    Args:
        source: Local directory or git URL.
        ref: Branch or tag to clone (URLs only).

    Raises:
        ValueError: neither an existing directory nor a cloneable URL.
    """
    path = Path(source)
    if path.is_dir():
        return TemplateHandle(local_path=path, source=source)

    if is_git_url(source):
        clone_dir = Path(tempfile.mkdtemp(prefix="skillgate_"))
        kwargs = {"depth": 1}
        if ref:
            kwargs["branch"] = ref
        try:
            Repo.clone_from(source, clone_dir, **kwargs)
        except GitCommandError as e:
            shutil.rmtree(clone_dir, ignore_errors=True)
            raise ValueError(f"Could not clone template {source}: {e}") from e
        return TemplateHandle(local_path=clone_dir, source=source, is_temp_clone=True)

    raise ValueError(f"Not a template directory or git URL: {source}")


def parse_remote_url(url: str) -> str | None:
    """Return ``owner/repo`` for a remote URL, or None if it does not look like one."""
    match = _REMOTE_PATTERN.search(url.strip())
    if not match:
        return None
    return f"{match.group(1)}/{match.group(2)}"


def detect_repository(repo_path: str | Path) -> str | None:
    """Derive ``owner/repo`` from the origin remote of a local clone."""
    try:
        repo = Repo(repo_path, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError):
        return None
    if not repo.remotes:
        return None
    remote = next((r for r in repo.remotes if r.name == "origin"), repo.remotes[0])
    return parse_remote_url(remote.url)
