"""Schema registry — the skill-package convention expressed as data.

The default convention lives in ``DEFAULT_SCHEMA``, a plain dict with the same
shape as the YAML a repository can supply to override it. ``build_registry``
turns either into checked ``SchemaRule``/``HeaderField`` objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import yaml

from skillgate.schema import CONVENTION_VERSION
from skillgate.utils.filesystem import normalize_path


class SchemaError(ValueError):
    """The schema document itself is invalid."""


class EntryKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"


class FieldType(Enum):
    STRING = "string"
    SEMVER = "semver"
    LIST = "list"
    ENUM = "enum"


@dataclass(frozen=True)
class HeaderField:
    """One key a package header may carry."""

    key: str
    required: bool = False
    type: FieldType = FieldType.STRING
    allowed: tuple[str, ...] = ()  # Only meaningful for FieldType.ENUM


@dataclass(frozen=True)
class SchemaRule:
    """One path the convention cares about."""

    path: str
    kind: EntryKind
    required: bool = True
    min_count: int = 0
    package_file: str = ""  # Document expected inside each immediate subdirectory
    package_kind: str = ""  # Key into the header schemas


@dataclass
class SchemaRegistry:
    """The full structural contract."""

    version: str = CONVENTION_VERSION
    rules: list[SchemaRule] = field(default_factory=list)
    headers: dict[str, list[HeaderField]] = field(default_factory=dict)

    def header_field_schemas(self, package_kind: str) -> list[HeaderField]:
        """Ordered header fields for a package kind (empty if undeclared)."""
        return list(self.headers.get(package_kind, []))

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "rules": [
                {
                    "path": r.path,
                    "kind": r.kind.value,
                    "required": r.required,
                    "min_count": r.min_count,
                    **({"package_file": r.package_file} if r.package_file else {}),
                    **({"package_kind": r.package_kind} if r.package_kind else {}),
                }
                for r in self.rules
            ],
            "headers": {
                kind: [
                    {
                        "key": f.key,
                        "required": f.required,
                        "type": f.type.value,
                        **({"allowed": list(f.allowed)} if f.allowed else {}),
                    }
                    for f in fields
                ]
                for kind, fields in self.headers.items()
            },
        }


DEFAULT_SCHEMA: dict = {
    "version": CONVENTION_VERSION,
    "rules": [
        {"path": "manifest.md", "kind": "file", "required": True},
        {
            "path": "packages",
            "kind": "directory",
            "required": True,
            "min_count": 1,
            "package_file": "header.md",
            "package_kind": "skill",
        },
        {
            "path": "capabilities",
            "kind": "directory",
            "required": False,
            "package_file": "capability.md",
            "package_kind": "capability",
        },
    ],
    "headers": {
        "skill": [
            {"key": "name", "required": True, "type": "string"},
            {"key": "version", "required": True, "type": "semver"},
            {"key": "description", "type": "string"},
            {"key": "tags", "type": "list"},
            {"key": "status", "type": "enum", "allowed": ["draft", "stable", "deprecated"]},
        ],
        "capability": [
            {"key": "name", "required": True, "type": "string"},
            {"key": "description", "type": "string"},
        ],
    },
}


def build_registry(data: dict) -> SchemaRegistry:
    """Build a checked registry from a schema dict.

    Raises:
        SchemaError: on unknown kinds/types, duplicate paths or duplicate keys.
    """
    if not isinstance(data, dict):
        raise SchemaError("Schema document must be a mapping")

    rules: list[SchemaRule] = []
    seen_paths: set[str] = set()
    for raw in data.get("rules", []):
        try:
            path = normalize_path(str(raw["path"]))
            kind = EntryKind(raw.get("kind", "file"))
        except (KeyError, ValueError) as e:
            raise SchemaError(f"Invalid schema rule {raw!r}: {e}") from e
        if not path:
            raise SchemaError("Schema rule path must not be the tree root")
        if path in seen_paths:
            raise SchemaError(f"Duplicate schema rule path: {path}")
        seen_paths.add(path)

        min_count = int(raw.get("min_count", 0))
        if min_count < 0:
            raise SchemaError(f"{path}: min_count must be >= 0")
        if kind == EntryKind.FILE and (min_count or raw.get("package_file")):
            raise SchemaError(f"{path}: only directory rules can hold packages")

        rules.append(
            SchemaRule(
                path=path,
                kind=kind,
                required=bool(raw.get("required", True)),
                min_count=min_count,
                package_file=raw.get("package_file", ""),
                package_kind=raw.get("package_kind", ""),
            )
        )

    headers: dict[str, list[HeaderField]] = {}
    for kind_name, raw_fields in (data.get("headers") or {}).items():
        fields: list[HeaderField] = []
        keys: set[str] = set()
        for raw in raw_fields:
            try:
                key = str(raw["key"])
                field_type = FieldType(raw.get("type", "string"))
            except (KeyError, ValueError) as e:
                raise SchemaError(f"Invalid header field in '{kind_name}': {e}") from e
            if key in keys:
                raise SchemaError(f"Duplicate header key '{key}' in '{kind_name}'")
            keys.add(key)
            allowed = tuple(str(v) for v in raw.get("allowed", []))
            if field_type == FieldType.ENUM and not allowed:
                raise SchemaError(f"Enum field '{key}' in '{kind_name}' declares no allowed values")
            fields.append(
                HeaderField(
                    key=key,
                    required=bool(raw.get("required", False)),
                    type=field_type,
                    allowed=allowed,
                )
            )
        headers[kind_name] = fields

    return SchemaRegistry(
        version=str(data.get("version", CONVENTION_VERSION)),
        rules=rules,
        headers=headers,
    )


def default_registry() -> SchemaRegistry:
    return build_registry(DEFAULT_SCHEMA)


def load_schema(path: str | Path) -> SchemaRegistry:
    """Load a schema registry from a YAML file."""
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SchemaError(f"Invalid YAML in {path}: {e}") from e
    return build_registry(data or {})
