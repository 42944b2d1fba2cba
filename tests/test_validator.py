"""Tests for the structural validator."""

import tempfile
from pathlib import Path

from skillgate.schema.issues import Severity
from skillgate.schema.registry import build_registry
from skillgate.schema.validator import validate
from skillgate.utils.filesystem import MemoryFileSystem

ALPHA = "---\nname: alpha\nversion: 1.0.0\n---\n# Alpha\n"


def _valid_tree(**extra) -> dict:
    files = {
        "manifest.md": "# Skills\n",
        "packages/alpha/header.md": ALPHA,
    }
    files.update(extra)
    return files


def test_valid_tree_passes_with_no_issues():
    report = validate(MemoryFileSystem(_valid_tree()))
    assert report.passed
    assert report.issues == []


def test_missing_required_header_field():
    fs = MemoryFileSystem(_valid_tree(**{"packages/alpha/header.md": "---\nname: alpha\n---\n"}))
    report = validate(fs)
    assert not report.passed
    assert len(report.issues) == 1
    issue = report.issues[0]
    assert issue.severity == Severity.ERROR
    assert issue.path == "packages/alpha/header.md"
    assert issue.rule == "HeaderField:version"


def test_empty_tree_reports_required_paths_in_order():
    report = validate(MemoryFileSystem())
    assert not report.passed
    assert [(i.path, i.rule) for i in report.issues] == [
        ("manifest.md", "RequiredPath"),
        ("packages", "RequiredPath"),
    ]


def test_underpopulated_package_directory():
    fs = MemoryFileSystem({"manifest.md": "x"})
    fs.mkdir("packages")
    report = validate(fs)
    assert [(i.path, i.rule) for i in report.issues] == [("packages", "PackageCount")]


def test_package_without_document_warns_and_does_not_count():
    fs = MemoryFileSystem({"manifest.md": "x", "packages/beta/notes.md": "x"})
    report = validate(fs)
    assert [(i.severity, i.path, i.rule) for i in report.issues] == [
        (Severity.ERROR, "packages", "PackageCount"),
        (Severity.WARNING, "packages/beta", "PackageDocument"),
    ]


def test_warnings_do_not_fail_the_gate():
    fs = MemoryFileSystem(_valid_tree(**{"packages/beta/notes.md": "x"}))
    report = validate(fs)
    assert report.passed
    assert len(report.warnings) == 1


def test_wrong_kind():
    fs = MemoryFileSystem({"manifest.md/readme": "x", "packages/alpha/header.md": ALPHA})
    report = validate(fs)
    assert [(i.path, i.rule) for i in report.issues] == [("manifest.md", "PathKind")]


def test_malformed_header_does_not_stop_other_documents():
    fs = MemoryFileSystem(
        _valid_tree(**{
            "packages/beta/header.md": "no header here",
            "packages/gamma/header.md": "---\nname gamma\n---\n",
            "packages/delta/header.md": "---\nname: delta\nversion: two\n---\n",
        })
    )
    report = validate(fs)
    assert [(i.path, i.rule) for i in report.issues] == [
        ("packages/beta/header.md", "HeaderParse:Malformed"),
        ("packages/delta/header.md", "HeaderField:version"),
        ("packages/gamma/header.md", "HeaderParse:NotKeyValue"),
    ]


def test_optional_capabilities_are_checked_when_present():
    fs = MemoryFileSystem(_valid_tree(**{"capabilities/http/capability.md": "---\ndescription: x\n---\n"}))
    report = validate(fs)
    assert [(i.path, i.rule) for i in report.issues] == [
        ("capabilities/http/capability.md", "HeaderField:name"),
    ]


def test_undecodable_document():
    fs = MemoryFileSystem(_valid_tree(**{"packages/alpha/header.md": b"\xff\xfe\x00bad"}))
    report = validate(fs)
    assert [i.rule for i in report.issues] == ["Unreadable"]


def test_validation_is_deterministic():
    fs = MemoryFileSystem(
        _valid_tree(**{
            "packages/zeta/header.md": "---\nversion: x\n---\n",
            "packages/beta/header.md": "nope",
        })
    )
    first = validate(fs)
    second = validate(fs)
    assert first == second
    keys = [(i.path, i.rule) for i in first.issues]
    assert keys == sorted(keys)


def test_validator_never_mutates():
    fs = MemoryFileSystem({"packages/beta/notes.md": "x"})
    before = fs.files
    validate(fs)
    assert fs.files == before


def test_custom_registry():
    registry = build_registry({
        "rules": [
            {"path": "skills", "kind": "directory", "min_count": 2,
             "package_file": "SKILL.md", "package_kind": "skill"},
        ],
        "headers": {"skill": [{"key": "name", "required": True}]},
    })
    fs = MemoryFileSystem({"skills/one/SKILL.md": "---\nname: one\n---\n"})
    report = validate(fs, registry)
    assert [(i.path, i.rule) for i in report.issues] == [("skills", "PackageCount")]


def test_validate_directory_on_disk():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "manifest.md").write_text("# Skills\n")
        (root / "packages" / "alpha").mkdir(parents=True)
        (root / "packages" / "alpha" / "header.md").write_text(ALPHA)
        report = validate(tmpdir)
        assert report.passed
        assert report.to_dict() == {"passed": True, "issues": []}
