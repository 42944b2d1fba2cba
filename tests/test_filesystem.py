"""Tests for the filesystem capability."""

import os
import tempfile
from pathlib import Path

import pytest

from skillgate.utils.filesystem import (
    SKIP_DIRS,
    LocalFileSystem,
    MemoryFileSystem,
    is_within,
    join,
    normalize_path,
)


def test_normalize_path():
    assert normalize_path("packages/") == "packages"
    assert normalize_path("./packages/alpha") == "packages/alpha"
    assert normalize_path("packages\\alpha") == "packages/alpha"
    assert normalize_path(".") == ""
    assert normalize_path("") == ""


def test_normalize_rejects_escaping_paths():
    with pytest.raises(ValueError):
        normalize_path("/etc/passwd")
    with pytest.raises(ValueError):
        normalize_path("../outside")


def test_join_and_is_within():
    assert join("", "a") == "a"
    assert join("a", "b") == "a/b"
    assert is_within("packages/alpha", "packages")
    assert is_within("packages", "packages")
    assert not is_within("packages-old", "packages")
    assert is_within("anything", "")


def test_memory_fs_implicit_parents():
    fs = MemoryFileSystem({"packages/alpha/header.md": "x"})
    assert fs.is_dir("packages")
    assert fs.is_dir("packages/alpha")
    assert fs.list("") == ["packages"]
    assert fs.list("packages/alpha") == ["header.md"]
    assert fs.read("packages/alpha/header.md") == b"x"


def test_memory_fs_write_requires_parent():
    fs = MemoryFileSystem()
    with pytest.raises(FileNotFoundError):
        fs.write("missing/file.md", b"x")
    fs.mkdir("missing")
    fs.write("missing/file.md", b"x")
    assert fs.exists("missing/file.md")


def test_memory_fs_kind_errors():
    fs = MemoryFileSystem({"a/b.md": "x"})
    with pytest.raises(IsADirectoryError):
        fs.read("a")
    with pytest.raises(FileExistsError):
        fs.mkdir("a/b.md")
    with pytest.raises(NotADirectoryError):
        fs.list("a/b.md")


def test_local_fs_round_trip():
    with tempfile.TemporaryDirectory() as tmpdir:
        fs = LocalFileSystem(tmpdir)
        fs.mkdir("packages")
        fs.write("packages/readme.md", b"hello")
        assert fs.exists("packages/readme.md")
        assert fs.is_dir("packages")
        assert not fs.is_dir("packages/readme.md")
        assert fs.list("packages") == ["readme.md"]
        assert fs.read_text("packages/readme.md") == "hello"
        assert (Path(tmpdir) / "packages" / "readme.md").read_bytes() == b"hello"


def test_skip_dirs_contains_expected():
    assert ".git" in SKIP_DIRS
    assert "__pycache__" in SKIP_DIRS
    assert ".skillgate" in SKIP_DIRS


# --- Symlink Tests ---


def test_local_fs_symlinks_are_not_listed_or_treated_as_dirs():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir) / "tree"
        outside = Path(tmpdir) / "outside"
        root.mkdir()
        outside.mkdir()
        (root / "a.md").write_text("a")
        os.symlink(outside, root / "linked")
        os.symlink(root, root / "loop")

        fs = LocalFileSystem(root)
        assert fs.list("") == ["a.md"]
        assert fs.exists("linked")
        assert not fs.is_dir("linked")
        assert not fs.is_dir("loop")


def test_local_fs_refuses_to_write_through_symlinks():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir) / "tree"
        outside = Path(tmpdir) / "outside"
        root.mkdir()
        outside.mkdir()
        os.symlink(outside / "target.md", root / "dangling.md")
        os.symlink(outside, root / "linked")

        fs = LocalFileSystem(root)
        assert fs.exists("dangling.md")
        with pytest.raises(OSError):
            fs.write("dangling.md", b"x")
        with pytest.raises(OSError):
            fs.write("linked/new.md", b"x")
        with pytest.raises(OSError):
            fs.mkdir("linked/sub")
        assert list(outside.iterdir()) == []
