"""Validation issues and the report they fold into."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Severity(Enum):
    ERROR = "error"  # Fails the gate
    WARNING = "warning"  # Reported, never fails the gate


@dataclass(frozen=True)
class ValidationIssue:
    """A single defect found during one validation pass."""

    severity: Severity
    path: str  # Tree-relative path the issue is about
    rule: str  # Machine-readable rule id, e.g. "HeaderField:version"
    message: str

    def to_dict(self) -> dict:
        return {
            "severity": self.severity.value,
            "path": self.path,
            "rule": self.rule,
            "message": self.message,
        }


@dataclass
class ValidationReport:
    """Ordered issues from one validation pass."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not any(i.severity == Severity.ERROR for i in self.issues)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return f"[{status}] {len(self.errors)} error(s), {len(self.warnings)} warning(s)"

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "issues": [i.to_dict() for i in self.issues],
        }
