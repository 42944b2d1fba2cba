"""Tree differencer — classify every reference entry against the target.

Only the reference tree is walked: target-only entries are never classified
unless explicitly asked for, and even then they are informational. Files are
compared by SHA-256 of their bytes, never by timestamps.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from skillgate.schema.registry import EntryKind
from skillgate.utils.filesystem import SKIP_DIRS, FileSystem, is_within, join, normalize_path

logger = logging.getLogger(__name__)


class DiffClassification(Enum):
    MISSING = "missing"  # In reference, absent from target
    IDENTICAL = "identical"  # Same kind, same content
    CONFLICTING = "conflicting"  # In both, differs (or could not be read)
    EXTRA_IN_TARGET = "extra_in_target"  # Target only, never deleted


@dataclass(frozen=True)
class TreeEntry:
    """One node of a tree, keyed by its relative path."""

    relative_path: str
    kind: EntryKind
    content_hash: bytes | None = None  # Files only


@dataclass(frozen=True)
class DiffEntry:
    """A reference entry paired with its classification against the target."""

    entry: TreeEntry
    classification: DiffClassification
    target_kind: EntryKind | None = None
    error: OSError | None = None  # Read failure on either side

    @property
    def path(self) -> str:
        return self.entry.relative_path

    @property
    def kind(self) -> EntryKind:
        return self.entry.kind

    @property
    def kind_mismatch(self) -> bool:
        return self.target_kind is not None and self.target_kind != self.entry.kind


def content_hash(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def diff(
    reference: FileSystem,
    target: FileSystem,
    scope: Sequence[str] | str | None = None,
    include_extra: bool = False,
) -> list[DiffEntry]:
    """Classify the reference tree against the target tree.

    Args:
        reference: The template tree.
        target: The tree being brought into compliance.
        scope: Optional path prefixes; only entries inside them (and their
            ancestor directories) are walked.
        include_extra: Also report target-only entries as EXTRA_IN_TARGET.

    Returns:
        Entries in pre-order, siblings sorted by name.
    """
    differ = _Differ(reference, target, _normalize_scope(scope), include_extra)
    entries, _ = differ.walk("")
    return entries


def _normalize_scope(scope: Sequence[str] | str | None) -> list[str]:
    if scope is None:
        return []
    if isinstance(scope, str):
        scope = [scope]
    roots = [normalize_path(s) for s in scope]
    return [] if "" in roots else sorted(set(roots))


class _Differ:
    def __init__(self, reference: FileSystem, target: FileSystem, scope: list[str], include_extra: bool):
        self.reference = reference
        self.target = target
        self.scope = scope
        self.include_extra = include_extra

    def in_scope(self, path: str) -> bool:
        if not self.scope:
            return True
        return any(is_within(path, root) or is_within(root, path) for root in self.scope)

    def target_kind(self, path: str) -> EntryKind | None:
        if not self.target.exists(path):
            return None
        return EntryKind.DIRECTORY if self.target.is_dir(path) else EntryKind.FILE

    def walk(self, directory: str) -> tuple[list[DiffEntry], bool]:
        """Classify the children of a reference directory.

        Returns the entries and whether every one of them is IDENTICAL. A read
        failure is confined to its entry: it is classified CONFLICTING with
        the error attached and its subtree is not walked.
        """
        entries: list[DiffEntry] = []
        all_identical = True
        names = [n for n in self.reference.list(directory) if n not in SKIP_DIRS]

        for name in names:
            path = join(directory, name)
            if not self.in_scope(path):
                continue

            kind = EntryKind.FILE
            try:
                if self.reference.is_dir(path):
                    kind = EntryKind.DIRECTORY
                classified = self._classify(path, kind)
            except OSError as e:
                logger.warning("Cannot compare %s: %s", path, e)
                classified = [
                    DiffEntry(
                        TreeEntry(relative_path=path, kind=kind),
                        DiffClassification.CONFLICTING,
                        error=e,
                    )
                ]

            if classified[0].classification != DiffClassification.IDENTICAL:
                all_identical = False
            entries.extend(classified)

        if self.include_extra:
            try:
                if self.target.is_dir(directory):
                    entries.extend(self._extras(directory, set(names)))
            except OSError as e:
                logger.warning("Cannot list target-only entries in '%s': %s", directory, e)

        return entries, all_identical

    def _classify(self, path: str, kind: EntryKind) -> list[DiffEntry]:
        """The entry for ``path`` followed by its reference descendants."""
        t_kind = self.target_kind(path)

        if kind == EntryKind.DIRECTORY:
            children, children_identical = self.walk(path)
            if t_kind is None:
                classification = DiffClassification.MISSING
            elif t_kind == EntryKind.DIRECTORY and children_identical:
                classification = DiffClassification.IDENTICAL
            else:
                classification = DiffClassification.CONFLICTING
            entry = TreeEntry(relative_path=path, kind=EntryKind.DIRECTORY)
            return [DiffEntry(entry, classification, t_kind), *children]

        digest = content_hash(self.reference.read(path))
        if t_kind is None:
            classification = DiffClassification.MISSING
        elif t_kind == EntryKind.FILE and content_hash(self.target.read(path)) == digest:
            classification = DiffClassification.IDENTICAL
        else:
            classification = DiffClassification.CONFLICTING
        entry = TreeEntry(relative_path=path, kind=EntryKind.FILE, content_hash=digest)
        return [DiffEntry(entry, classification, t_kind)]

    def _extras(self, directory: str, reference_names: set[str]) -> list[DiffEntry]:
        extras = []
        for name in self.target.list(directory):
            path = join(directory, name)
            if name in reference_names or name in SKIP_DIRS or not self.in_scope(path):
                continue
            kind = self.target_kind(path)
            extras.append(
                DiffEntry(
                    TreeEntry(relative_path=path, kind=kind),
                    DiffClassification.EXTRA_IN_TARGET,
                    kind,
                )
            )
        return extras
