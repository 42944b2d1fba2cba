"""Configuration — the explicit settings struct every entry point receives.

Settings come from a YAML file (``.skillgate.yaml`` at the target root by
default); the CLI overlays its flags on top. Nothing in the core reads
configuration from the environment or from globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from skillgate.remote import REQUIRED_CHECK_CONTEXT
from skillgate.remote.models import ActorRef, Enforcement, PolicyDocument, Scope, TargetScope
from skillgate.schema.registry import SchemaRegistry, default_registry, load_schema
from skillgate.sync.resolver import ConflictPolicy

CONFIG_FILE = ".skillgate.yaml"
DEFAULT_POLICY_NAME = "skillgate"


class ConfigError(ValueError):
    """A configuration value is missing or invalid."""


@dataclass
class ProvisionSettings:
    """How the merge-gate policy should look and where it goes."""

    name: str = DEFAULT_POLICY_NAME
    scope: TargetScope = TargetScope.REPOSITORY
    target: str = ""  # Organization login or owner/repo
    enforcement: Enforcement = Enforcement.ACTIVE
    check_context: str = REQUIRED_CHECK_CONTEXT
    bypass_actors: list[ActorRef] = field(default_factory=list)

    def scope_ref(self) -> Scope:
        if not self.target:
            raise ConfigError("No provisioning target: set policy.target or pass --org/--repo")
        try:
            return Scope(self.scope, self.target)
        except ValueError as e:
            raise ConfigError(str(e)) from e

    def document(self) -> PolicyDocument:
        return PolicyDocument(
            name=self.name,
            target_scope=self.scope,
            enforcement=self.enforcement,
            required_check_context=self.check_context,
            bypass_actors=set(self.bypass_actors),
        )


@dataclass
class SkillgateConfig:
    """Settings for one invocation."""

    template: str = ""  # Reference tree: local path or git URL
    conflict_policy: ConflictPolicy = ConflictPolicy.KEEP_EXISTING
    scope: list[str] = field(default_factory=list)
    schema: str = ""  # Optional YAML schema registry
    history: bool = True
    policy: ProvisionSettings = field(default_factory=ProvisionSettings)

    def registry(self) -> SchemaRegistry:
        return load_schema(self.schema) if self.schema else default_registry()


def parse_actor(value: str | dict) -> ActorRef:
    """Build an ActorRef from ``{actor_id, actor_type, bypass_mode}`` or ``"Type:id"``."""
    try:
        if isinstance(value, str):
            actor_type, _, actor_id = value.partition(":")
            return ActorRef(actor_id=int(actor_id), actor_type=actor_type.strip())
        return ActorRef(
            actor_id=int(value["actor_id"]),
            actor_type=str(value["actor_type"]),
            bypass_mode=str(value.get("bypass_mode", "always")),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid bypass actor {value!r}: {e}") from e


def _enum(enum_cls, value, key: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"Invalid {key} '{value}'. Must be one of: {allowed}") from None


def config_from_dict(data: dict, base_dir: Path | None = None) -> SkillgateConfig:
    """Build a config from a parsed YAML mapping."""
    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping")

    policy_data = data.get("policy") or {}
    if not isinstance(policy_data, dict):
        raise ConfigError("'policy' must be a mapping")

    policy = ProvisionSettings(
        name=str(policy_data.get("name", DEFAULT_POLICY_NAME)),
        scope=_enum(TargetScope, policy_data.get("scope", "repository"), "policy.scope"),
        target=str(policy_data.get("target", "")),
        enforcement=_enum(Enforcement, policy_data.get("enforcement", "active"), "policy.enforcement"),
        check_context=str(policy_data.get("check_context", REQUIRED_CHECK_CONTEXT)),
        bypass_actors=[parse_actor(a) for a in policy_data.get("bypass_actors", [])],
    )

    scope = data.get("scope", [])
    if isinstance(scope, str):
        scope = [scope]

    schema = str(data.get("schema", "") or "")
    if schema and base_dir is not None and not Path(schema).is_absolute():
        schema = str(base_dir / schema)

    return SkillgateConfig(
        template=str(data.get("template", "") or ""),
        conflict_policy=_enum(
            ConflictPolicy, data.get("conflict_policy", "keep-existing"), "conflict_policy"
        ),
        scope=[str(s) for s in scope],
        schema=schema,
        history=bool(data.get("history", True)),
        policy=policy,
    )


def load_config(path: str | Path) -> SkillgateConfig:
    """Load a configuration from a YAML file."""
    path = Path(path)
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    return config_from_dict(data or {}, base_dir=path.parent)


def find_config(directory: str | Path) -> SkillgateConfig:
    """Load ``.skillgate.yaml`` from a directory, or the defaults if absent."""
    path = Path(directory) / CONFIG_FILE
    if path.is_file():
        return load_config(path)
    return SkillgateConfig()
