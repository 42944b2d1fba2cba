"""Filesystem capability — the only way the core touches a tree.

Every path handed to a :class:`FileSystem` is a POSIX-style path relative to
the tree root (``""`` is the root itself). The validator and the sync engine
only ever talk to this interface, so a tree can live on disk or in memory.
"""

from __future__ import annotations

import posixpath
from abc import ABC, abstractmethod
from pathlib import Path

# Directories never walked, whatever tree they appear in
SKIP_DIRS = {
    ".git", "__pycache__", "node_modules", ".venv", "venv",
    ".tox", ".mypy_cache", ".pytest_cache", ".ruff_cache", ".skillgate",
}


def normalize_path(path: str) -> str:
    """Normalize a relative tree path.

    Backslashes become slashes, ``.`` segments and trailing slashes are
    dropped. Absolute paths and paths escaping the root raise ``ValueError``.
    """
    raw = path.replace("\\", "/").strip()
    if raw.startswith("/"):
        raise ValueError(f"Path must be relative: {path}")
    if not raw or raw == ".":
        return ""
    norm = posixpath.normpath(raw)
    if norm == ".":
        return ""
    if norm == ".." or norm.startswith("../"):
        raise ValueError(f"Path escapes the tree root: {path}")
    return norm


def join(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def is_within(path: str, root: str) -> bool:
    """True if ``path`` is ``root`` or lies beneath it."""
    if not root:
        return True
    return path == root or path.startswith(root + "/")


class FileSystem(ABC):
    """Read/write access to one tree."""

    @abstractmethod
    def read(self, path: str) -> bytes: ...

    @abstractmethod
    def write(self, path: str, data: bytes) -> None: ...

    @abstractmethod
    def list(self, path: str) -> list[str]:
        """Names of the immediate children of a directory, sorted."""

    @abstractmethod
    def exists(self, path: str) -> bool: ...

    @abstractmethod
    def is_dir(self, path: str) -> bool: ...

    @abstractmethod
    def mkdir(self, path: str) -> None:
        """Create a directory. The parent must already exist."""

    def read_text(self, path: str) -> str:
        return self.read(path).decode("utf-8")


class LocalFileSystem(FileSystem):
    """A tree rooted at a directory on disk.

    Symbolic links are never followed as directories: they are left out of
    listings, report as files, and are never written through.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"LocalFileSystem({str(self.root)!r})"

    def _resolve(self, path: str) -> Path:
        rel = normalize_path(path)
        return self.root / rel if rel else self.root

    def read(self, path: str) -> bytes:
        return self._resolve(path).read_bytes()

    def _is_link(self, path: str) -> bool:
        """Whether ``path`` or any directory above it inside the root is a symlink."""
        current = self.root
        for part in normalize_path(path).split("/"):
            if not part:
                continue
            current = current / part
            if current.is_symlink():
                return True
        return False

    def _writable(self, path: str) -> Path:
        resolved = self._resolve(path)
        if self._is_link(path):
            raise OSError(f"Refusing to write through symlink: {path}")
        return resolved

    def write(self, path: str, data: bytes) -> None:
        self._writable(path).write_bytes(data)

    def list(self, path: str) -> list[str]:
        return sorted(
            child.name for child in self._resolve(path).iterdir() if not child.is_symlink()
        )

    def exists(self, path: str) -> bool:
        return self._is_link(path) or self._resolve(path).exists()

    def is_dir(self, path: str) -> bool:
        return self._resolve(path).is_dir() and not self._is_link(path)

    def mkdir(self, path: str) -> None:
        self._writable(path).mkdir(exist_ok=True)


class MemoryFileSystem(FileSystem):
    """An in-memory tree, mainly for tests and dry runs.

    Files are seeded from a ``{path: bytes | str}`` mapping; their parent
    directories are created implicitly.
    """

    def __init__(self, files: dict[str, bytes | str] | None = None):
        self._files: dict[str, bytes] = {}
        self._dirs: set[str] = {""}
        for path, data in (files or {}).items():
            rel = normalize_path(path)
            self._make_parents(rel)
            self._files[rel] = data.encode("utf-8") if isinstance(data, str) else data

    def __repr__(self) -> str:
        return f"MemoryFileSystem({len(self._files)} files)"

    def _make_parents(self, path: str) -> None:
        parent = posixpath.dirname(path)
        while parent and parent not in self._dirs:
            self._dirs.add(parent)
            parent = posixpath.dirname(parent)

    @property
    def files(self) -> dict[str, bytes]:
        return dict(self._files)

    def read(self, path: str) -> bytes:
        rel = normalize_path(path)
        if rel in self._dirs:
            raise IsADirectoryError(rel)
        try:
            return self._files[rel]
        except KeyError:
            raise FileNotFoundError(rel) from None

    def write(self, path: str, data: bytes) -> None:
        rel = normalize_path(path)
        if rel in self._dirs:
            raise IsADirectoryError(rel)
        if posixpath.dirname(rel) not in self._dirs:
            raise FileNotFoundError(f"Parent directory missing: {rel}")
        self._files[rel] = bytes(data)

    def list(self, path: str) -> list[str]:
        rel = normalize_path(path)
        if rel not in self._dirs:
            raise NotADirectoryError(rel)
        names = {
            p.rsplit("/", 1)[-1]
            for p in (*self._files, *self._dirs)
            if p and posixpath.dirname(p) == rel
        }
        return sorted(names)

    def exists(self, path: str) -> bool:
        rel = normalize_path(path)
        return rel in self._files or rel in self._dirs

    def is_dir(self, path: str) -> bool:
        return normalize_path(path) in self._dirs

    def mkdir(self, path: str) -> None:
        rel = normalize_path(path)
        if rel in self._files:
            raise FileExistsError(rel)
        if posixpath.dirname(rel) not in self._dirs:
            raise FileNotFoundError(f"Parent directory missing: {rel}")
        self._dirs.add(rel)
