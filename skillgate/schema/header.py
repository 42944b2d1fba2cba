"""Header parser — the ``---`` delimited key/value block atop package documents.

Parsing is structural only and fails fast (``HeaderParseError``); type checks
against the declared ``HeaderField`` list accumulate every defect as a
``ValidationIssue`` so a single pass reports all of them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

import yaml

from skillgate.schema.issues import Severity, ValidationIssue
from skillgate.schema.registry import FieldType, HeaderField

MARKER = "---"

SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


class ParseErrorKind(Enum):
    MALFORMED = "Malformed"
    NOT_KEY_VALUE = "NotKeyValue"


class HeaderParseError(ValueError):
    """The header block could not be parsed at all."""

    def __init__(self, kind: ParseErrorKind, message: str, line: int = 0):
        super().__init__(message)
        self.kind = kind
        self.line = line

    @property
    def rule(self) -> str:
        return f"HeaderParse:{self.kind.value}"


@dataclass
class PackageHeader:
    """Raw key/value pairs from one header block."""

    values: dict[str, str] = field(default_factory=dict)
    duplicates: list[str] = field(default_factory=list)

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.values.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self.values


def parse_header(text: str) -> PackageHeader:
    """Extract the header block from a document.

    Raises:
        HeaderParseError: MALFORMED if the first line is not the marker or the
            closing marker is missing, NOT_KEY_VALUE for a line inside the
            block that is not ``key: value``.
    """
    lines = text.lstrip("\ufeff").splitlines()
    if not lines or lines[0].strip() != MARKER:
        raise HeaderParseError(
            ParseErrorKind.MALFORMED, "Document does not start with a '---' header marker", line=1
        )

    try:
        end = next(i for i in range(1, len(lines)) if lines[i].strip() == MARKER)
    except StopIteration:
        raise HeaderParseError(
            ParseErrorKind.MALFORMED, "Header has no closing '---' marker"
        ) from None

    header = PackageHeader()
    for lineno, line in enumerate(lines[1:end], start=2):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition(":")
        key = key.strip()
        if not sep or not key:
            raise HeaderParseError(
                ParseErrorKind.NOT_KEY_VALUE,
                f"Line {lineno} is not 'key: value': {stripped!r}",
                line=lineno,
            )
        if key in header.values:
            header.duplicates.append(key)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        header.values[key] = value
    return header


def coerce_list(value: str) -> list[str]:
    """Read a list value: a YAML flow sequence or comma-separated text."""
    if value.startswith("["):
        try:
            parsed = yaml.safe_load(value)
        except yaml.YAMLError as e:
            raise ValueError(f"invalid list: {e}") from e
        if not isinstance(parsed, list):
            raise ValueError("invalid list")
        return [str(item) for item in parsed if item is not None and str(item).strip()]
    return [item.strip() for item in value.split(",") if item.strip()]


def _type_error(header_field: HeaderField, value: str) -> str | None:
    """Return a description of why ``value`` fails the field type, or None."""
    if header_field.type == FieldType.STRING:
        return None if value else "must not be empty"
    if header_field.type == FieldType.SEMVER:
        return None if SEMVER_PATTERN.match(value) else f"'{value}' is not a semantic version"
    if header_field.type == FieldType.ENUM:
        if value in header_field.allowed:
            return None
        return f"'{value}' not in allowed values {list(header_field.allowed)}"
    if header_field.type == FieldType.LIST:
        try:
            items = coerce_list(value)
        except ValueError as e:
            return str(e)
        return None if items else "must list at least one value"
    return None


def check_header(
    header: PackageHeader,
    fields: list[HeaderField],
    path: str,
) -> list[ValidationIssue]:
    """Check a parsed header against its field schema, reporting every defect."""
    issues: list[ValidationIssue] = []

    for key in dict.fromkeys(header.duplicates):
        issues.append(
            ValidationIssue(
                severity=Severity.WARNING,
                path=path,
                rule=f"HeaderDuplicate:{key}",
                message=f"Header key '{key}' appears more than once; the last value wins",
            )
        )

    for header_field in fields:
        rule = f"HeaderField:{header_field.key}"
        if header_field.key not in header:
            if header_field.required:
                issues.append(
                    ValidationIssue(
                        severity=Severity.ERROR,
                        path=path,
                        rule=rule,
                        message=f"Missing required header field '{header_field.key}'",
                    )
                )
            continue

        problem = _type_error(header_field, header.values[header_field.key])
        if problem:
            issues.append(
                ValidationIssue(
                    severity=Severity.ERROR,
                    path=path,
                    rule=rule,
                    message=f"Header field '{header_field.key}' ({header_field.type.value}) {problem}",
                )
            )

    return issues
