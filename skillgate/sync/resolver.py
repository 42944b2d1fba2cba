"""Conflict resolver — decide what to do with each classified entry.

The mapping is a pure function of the classification and the configured
policy. Interactive decisions come from a caller-supplied callback; the
resolver itself never reads from a terminal.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from skillgate.schema.registry import EntryKind
from skillgate.sync.differ import DiffClassification, DiffEntry


class ConflictPolicy(Enum):
    FORCE = "force"  # Reference wins
    INTERACTIVE = "interactive"  # Ask per conflict
    KEEP_EXISTING = "keep-existing"  # Local customizations win


class ResolutionAction(Enum):
    CREATE = "create"
    OVERWRITE = "overwrite"
    SKIP = "skip"
    MERGE_DIRECTORY = "merge_directory"


# Offered choices per conflict type; files are never content-merged
FILE_CHOICES = (ResolutionAction.OVERWRITE, ResolutionAction.SKIP)
DIRECTORY_CHOICES = (ResolutionAction.MERGE_DIRECTORY, ResolutionAction.SKIP)

InteractiveAsk = Callable[[DiffEntry, tuple[ResolutionAction, ...]], ResolutionAction]


class InvalidDecisionError(ValueError):
    """The interactive callback returned an action it was not offered."""


def resolve(
    entry: DiffEntry,
    policy: ConflictPolicy,
    ask: InteractiveAsk | None = None,
) -> ResolutionAction:
    """Map a classified entry to the action the synchronizer should take.

    Raises:
        ValueError: INTERACTIVE policy without an ``ask`` callback.
        InvalidDecisionError: ``ask`` answered outside the offered choices.
    """
    if policy == ConflictPolicy.INTERACTIVE and ask is None:
        raise ValueError("The interactive conflict policy requires an ask callback")

    if entry.classification == DiffClassification.MISSING:
        return ResolutionAction.CREATE
    if entry.classification in (DiffClassification.IDENTICAL, DiffClassification.EXTRA_IN_TARGET):
        return ResolutionAction.SKIP

    both_directories = (
        entry.kind == EntryKind.DIRECTORY and entry.target_kind == EntryKind.DIRECTORY
    )

    if policy == ConflictPolicy.INTERACTIVE:
        choices = DIRECTORY_CHOICES if both_directories else FILE_CHOICES
        decision = ask(entry, choices)
        if decision not in choices:
            raise InvalidDecisionError(
                f"'{decision}' is not one of {[c.value for c in choices]} for {entry.path}"
            )
        return decision

    if both_directories:
        return ResolutionAction.MERGE_DIRECTORY
    if policy == ConflictPolicy.FORCE:
        return ResolutionAction.OVERWRITE
    return ResolutionAction.SKIP
