"""Template synchronizer — bring a target tree in line with a reference tree.

Entries are classified by the differencer, resolved by the conflict
resolver and applied one at a time. A failing entry is logged as FAILED with
its error and the run carries on with its siblings. Nothing in the target is
ever deleted.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum

from skillgate.schema.registry import EntryKind
from skillgate.sync.differ import DiffClassification, DiffEntry, diff
from skillgate.sync.resolver import ConflictPolicy, InteractiveAsk, ResolutionAction, resolve
from skillgate.utils.filesystem import FileSystem, is_within

logger = logging.getLogger(__name__)


class SyncOutcome(Enum):
    APPLIED = "applied"
    DECLINED = "declined"
    FAILED = "failed"


class KindMismatchError(Exception):
    """A file and a directory collide at the same path."""


@dataclass(frozen=True)
class SyncActionLogEntry:
    """What happened to one reference entry."""

    relative_path: str
    action: ResolutionAction
    outcome: SyncOutcome
    error: Exception | None = None

    def to_dict(self) -> dict:
        data = {
            "path": self.relative_path,
            "action": self.action.value,
            "outcome": self.outcome.value,
        }
        if self.error is not None:
            data["error"] = f"{type(self.error).__name__}: {self.error}"
        return data


@dataclass
class SyncReport:
    """Ordered log of one sync run."""

    entries: list[SyncActionLogEntry] = field(default_factory=list)

    def append(self, entry: SyncActionLogEntry) -> None:
        self.entries.append(entry)

    @property
    def counts(self) -> dict[SyncOutcome, int]:
        tally = Counter(e.outcome for e in self.entries)
        return {outcome: tally.get(outcome, 0) for outcome in SyncOutcome}

    @property
    def action_counts(self) -> dict[ResolutionAction, int]:
        tally = Counter(e.action for e in self.entries)
        return {action: tally.get(action, 0) for action in ResolutionAction}

    @property
    def failed(self) -> list[SyncActionLogEntry]:
        return [e for e in self.entries if e.outcome == SyncOutcome.FAILED]

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    def summary(self) -> str:
        counts = self.counts
        status = "FAIL" if self.has_failures else "OK"
        return (
            f"[{status}] {counts[SyncOutcome.APPLIED]} applied, "
            f"{counts[SyncOutcome.DECLINED]} declined, {counts[SyncOutcome.FAILED]} failed"
        )

    def to_dict(self) -> dict:
        return {
            "counts": {o.value: n for o, n in self.counts.items()},
            "actions": {a.value: n for a, n in self.action_counts.items()},
            "entries": [e.to_dict() for e in self.entries],
        }


class TemplateSynchronizer:
    """Applies a reference tree onto a target tree under a conflict policy."""

    def __init__(
        self,
        reference: FileSystem,
        target: FileSystem,
        policy: ConflictPolicy = ConflictPolicy.KEEP_EXISTING,
        ask: InteractiveAsk | None = None,
        scope: Sequence[str] | str | None = None,
    ):
        if policy == ConflictPolicy.INTERACTIVE and ask is None:
            raise ValueError("The interactive conflict policy requires an ask callback")
        self.reference = reference
        self.target = target
        self.policy = policy
        self.ask = ask
        self.scope = scope

    def _resolved(self) -> Iterator[tuple[DiffEntry, ResolutionAction, bool]]:
        """Yield (entry, action, declined_by_parent) lazily, in tree order."""
        declined: list[str] = []
        for entry in diff(self.reference, self.target, scope=self.scope):
            if any(is_within(entry.path, prefix) for prefix in declined):
                yield entry, ResolutionAction.SKIP, True
                continue
            if entry.error is not None:
                yield entry, ResolutionAction.SKIP, False
                continue
            action = resolve(entry, self.policy, self.ask)
            if (
                action == ResolutionAction.SKIP
                and entry.kind == EntryKind.DIRECTORY
                and entry.classification == DiffClassification.CONFLICTING
            ):
                declined.append(entry.path)
            yield entry, action, False

    def plan(self) -> list[tuple[DiffEntry, ResolutionAction]]:
        """Resolve every entry without touching the target."""
        return [(entry, action) for entry, action, _ in self._resolved()]

    def sync(self) -> SyncReport:
        report = SyncReport()
        failed_dirs: list[tuple[str, Exception]] = []

        for entry, action, declined_by_parent in self._resolved():
            parent_error = next(
                (err for prefix, err in failed_dirs if is_within(entry.path, prefix)), None
            )
            if parent_error is not None:
                report.append(
                    SyncActionLogEntry(entry.path, action, SyncOutcome.FAILED, parent_error)
                )
                continue

            if declined_by_parent:
                report.append(SyncActionLogEntry(entry.path, action, SyncOutcome.DECLINED))
                continue

            if entry.error is not None:
                if entry.kind == EntryKind.DIRECTORY:
                    failed_dirs.append((entry.path, entry.error))
                report.append(SyncActionLogEntry(entry.path, action, SyncOutcome.FAILED, entry.error))
                continue

            try:
                outcome = self._apply(entry, action)
            except (OSError, KindMismatchError) as e:
                logger.warning("Failed to %s %s: %s", action.value, entry.path, e)
                if entry.kind == EntryKind.DIRECTORY:
                    failed_dirs.append((entry.path, e))
                report.append(SyncActionLogEntry(entry.path, action, SyncOutcome.FAILED, e))
                continue

            report.append(SyncActionLogEntry(entry.path, action, outcome))

        logger.info("Sync finished: %s", report.summary())
        return report

    def _apply(self, entry: DiffEntry, action: ResolutionAction) -> SyncOutcome:
        if action == ResolutionAction.SKIP:
            if entry.classification == DiffClassification.CONFLICTING:
                logger.debug("Keeping local %s", entry.path)
                return SyncOutcome.DECLINED
            return SyncOutcome.APPLIED

        if action == ResolutionAction.MERGE_DIRECTORY:
            logger.debug("Merging into %s", entry.path)
            return SyncOutcome.APPLIED

        if entry.kind_mismatch:
            raise KindMismatchError(
                f"Reference has a {entry.kind.value} where the target has a "
                f"{entry.target_kind.value}; resolve '{entry.path}' by hand"
            )

        if entry.kind == EntryKind.DIRECTORY:
            self.target.mkdir(entry.path)
        else:
            self.target.write(entry.path, self.reference.read(entry.path))
        logger.info("%s %s", action.value.capitalize(), entry.path)
        return SyncOutcome.APPLIED


def sync(
    reference: FileSystem,
    target: FileSystem,
    policy: ConflictPolicy = ConflictPolicy.KEEP_EXISTING,
    ask: InteractiveAsk | None = None,
    scope: Sequence[str] | str | None = None,
) -> SyncReport:
    """Synchronize ``target`` with ``reference`` and return the action log."""
    return TemplateSynchronizer(reference, target, policy=policy, ask=ask, scope=scope).sync()
