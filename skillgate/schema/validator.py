"""Structural validator — checks a repository tree against the schema registry.

This is the gate the remote merge policy requires. It never mutates the tree,
accumulates every issue instead of stopping at the first, and orders issues
by ``(path, rule)`` so two runs over an unchanged tree report identically.
"""

from __future__ import annotations

import logging
from pathlib import Path

from skillgate.schema.header import HeaderParseError, check_header, parse_header
from skillgate.schema.issues import Severity, ValidationIssue, ValidationReport
from skillgate.schema.registry import EntryKind, SchemaRegistry, SchemaRule, default_registry
from skillgate.utils.filesystem import SKIP_DIRS, FileSystem, LocalFileSystem, join

logger = logging.getLogger(__name__)


def validate(
    root: str | Path | FileSystem,
    registry: SchemaRegistry | None = None,
) -> ValidationReport:
    """Validate a repository tree.

    Args:
        root: A directory path or an already-open FileSystem.
        registry: The structural contract; defaults to the built-in convention.
    """
    fs = root if isinstance(root, FileSystem) else LocalFileSystem(root)
    registry = registry or default_registry()

    issues: list[ValidationIssue] = []
    for rule in registry.rules:
        issues.extend(_check_rule(fs, rule, registry))

    report = ValidationReport(issues=sorted(issues, key=lambda i: (i.path, i.rule)))
    logger.debug("Validated %r: %s", fs, report.summary())
    return report


def _check_rule(fs: FileSystem, rule: SchemaRule, registry: SchemaRegistry) -> list[ValidationIssue]:
    if not fs.exists(rule.path):
        if not rule.required:
            return []
        return [
            ValidationIssue(
                severity=Severity.ERROR,
                path=rule.path,
                rule="RequiredPath",
                message=f"Required {rule.kind.value} '{rule.path}' is missing",
            )
        ]

    actual = EntryKind.DIRECTORY if fs.is_dir(rule.path) else EntryKind.FILE
    if actual != rule.kind:
        return [
            ValidationIssue(
                severity=Severity.ERROR,
                path=rule.path,
                rule="PathKind",
                message=f"'{rule.path}' must be a {rule.kind.value}, found a {actual.value}",
            )
        ]

    if rule.kind != EntryKind.DIRECTORY or not rule.package_file:
        return []

    issues: list[ValidationIssue] = []
    documents, missing = _discover_packages(fs, rule, issues)

    for package_dir in missing:
        issues.append(
            ValidationIssue(
                severity=Severity.WARNING,
                path=package_dir,
                rule="PackageDocument",
                message=f"Package directory has no '{rule.package_file}'",
            )
        )

    if len(documents) < rule.min_count:
        issues.append(
            ValidationIssue(
                severity=Severity.ERROR,
                path=rule.path,
                rule="PackageCount",
                message=(
                    f"'{rule.path}' holds {len(documents)} package(s), "
                    f"at least {rule.min_count} required"
                ),
            )
        )

    fields = registry.header_field_schemas(rule.package_kind)
    for doc in documents:
        issues.extend(_check_document(fs, doc, fields))
    return issues


def _discover_packages(
    fs: FileSystem,
    rule: SchemaRule,
    issues: list[ValidationIssue],
) -> tuple[list[str], list[str]]:
    """Find package documents directly inside each immediate subdirectory."""
    try:
        names = fs.list(rule.path)
    except OSError as e:
        issues.append(
            ValidationIssue(
                severity=Severity.ERROR,
                path=rule.path,
                rule="Unreadable",
                message=f"Cannot list '{rule.path}': {e}",
            )
        )
        return [], []

    documents: list[str] = []
    missing: list[str] = []
    for name in names:
        if name in SKIP_DIRS:
            continue
        child = join(rule.path, name)
        if not fs.is_dir(child):
            continue
        doc = join(child, rule.package_file)
        if fs.exists(doc) and not fs.is_dir(doc):
            documents.append(doc)
        else:
            missing.append(child)
    return documents, missing


def _check_document(fs: FileSystem, doc: str, fields) -> list[ValidationIssue]:
    try:
        text = fs.read_text(doc)
    except (OSError, UnicodeDecodeError) as e:
        return [
            ValidationIssue(
                severity=Severity.ERROR,
                path=doc,
                rule="Unreadable",
                message=f"Cannot read package document: {e}",
            )
        ]

    try:
        header = parse_header(text)
    except HeaderParseError as e:
        return [
            ValidationIssue(
                severity=Severity.ERROR,
                path=doc,
                rule=e.rule,
                message=str(e),
            )
        ]

    return check_header(header, fields, doc)
