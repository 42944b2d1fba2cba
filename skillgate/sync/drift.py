"""Drift detection — report how a target diverges from the reference tree.

Drift happens when:
1. A reference entry is missing from the target
2. A reference file was edited locally (or a path changed kind)

Drift detection never mutates the target; it is the read-only half of sync.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from skillgate.schema.registry import EntryKind
from skillgate.sync.differ import DiffClassification, diff
from skillgate.utils.filesystem import FileSystem


class DriftType:
    MISSING = "missing"  # Reference entry absent from the target
    MODIFIED = "modified"  # Reference file differs in the target
    KIND = "kind"  # File where a directory is expected, or the reverse
    UNREADABLE = "unreadable"  # Could not be compared


@dataclass
class DriftReport:
    """Divergence between a reference and a target tree."""

    missing: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    kind_changed: list[str] = field(default_factory=list)
    unreadable: list[str] = field(default_factory=list)
    extra: list[str] = field(default_factory=list)  # Informational only

    @property
    def drift_types(self) -> list[str]:
        types = []
        if self.missing:
            types.append(DriftType.MISSING)
        if self.modified:
            types.append(DriftType.MODIFIED)
        if self.kind_changed:
            types.append(DriftType.KIND)
        if self.unreadable:
            types.append(DriftType.UNREADABLE)
        return types

    @property
    def has_drift(self) -> bool:
        return len(self.drift_types) > 0

    def summary(self) -> str:
        if not self.has_drift:
            return "no drift detected"
        return (
            f"DRIFT [{', '.join(self.drift_types)}]: {len(self.missing)} missing, "
            f"{len(self.modified)} modified, {len(self.kind_changed)} kind changed, "
            f"{len(self.unreadable)} unreadable"
        )


def detect_drift(
    reference: FileSystem,
    target: FileSystem,
    scope: Sequence[str] | str | None = None,
) -> DriftReport:
    """Compare trees and collect the paths that would make sync do work."""
    report = DriftReport()
    for entry in diff(reference, target, scope=scope, include_extra=True):
        if entry.error is not None:
            report.unreadable.append(entry.path)
        elif entry.classification == DiffClassification.MISSING:
            report.missing.append(entry.path)
        elif entry.classification == DiffClassification.EXTRA_IN_TARGET:
            report.extra.append(entry.path)
        elif entry.classification == DiffClassification.CONFLICTING:
            if entry.kind_mismatch:
                report.kind_changed.append(entry.path)
            elif entry.kind == EntryKind.FILE:
                report.modified.append(entry.path)
    return report
