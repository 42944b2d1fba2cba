"""Tests for configuration loading."""

import tempfile
from pathlib import Path

import pytest

from skillgate.config import (
    CONFIG_FILE,
    ConfigError,
    config_from_dict,
    find_config,
    load_config,
    parse_actor,
)
from skillgate.remote.models import ActorRef, Enforcement, TargetScope
from skillgate.sync.resolver import ConflictPolicy


def test_defaults():
    config = config_from_dict({})
    assert config.template == ""
    assert config.conflict_policy == ConflictPolicy.KEEP_EXISTING
    assert config.scope == []
    assert config.history is True
    assert config.policy.name == "skillgate"
    assert config.policy.scope == TargetScope.REPOSITORY
    assert config.policy.check_context == "skillgate/validate"
    assert [r.path for r in config.registry().rules] == ["manifest.md", "packages", "capabilities"]


def test_full_config():
    config = config_from_dict({
        "template": "https://github.com/acme/skill-template.git",
        "conflict_policy": "force",
        "scope": "packages",
        "history": False,
        "policy": {
            "name": "skills-gate",
            "scope": "organization",
            "target": "acme",
            "enforcement": "evaluate",
            "bypass_actors": [{"actor_id": 3, "actor_type": "Team", "bypass_mode": "pull_request"}],
        },
    })
    assert config.conflict_policy == ConflictPolicy.FORCE
    assert config.scope == ["packages"]
    assert config.history is False

    document = config.policy.document()
    assert document.name == "skills-gate"
    assert document.target_scope == TargetScope.ORGANIZATION
    assert document.enforcement == Enforcement.EVALUATE
    assert document.bypass_actors == {ActorRef(3, "Team", "pull_request")}
    assert str(config.policy.scope_ref()) == "organization:acme"


def test_invalid_enum_value():
    with pytest.raises(ConfigError, match="conflict_policy"):
        config_from_dict({"conflict_policy": "overwrite-everything"})
    with pytest.raises(ConfigError, match="policy.scope"):
        config_from_dict({"policy": {"scope": "enterprise"}})


def test_policy_must_be_a_mapping():
    with pytest.raises(ConfigError):
        config_from_dict({"policy": ["nope"]})


def test_scope_ref_requires_a_valid_target():
    config = config_from_dict({})
    with pytest.raises(ConfigError):
        config.policy.scope_ref()
    config.policy.target = "not-owner-slash-repo"
    with pytest.raises(ConfigError):
        config.policy.scope_ref()


def test_parse_actor():
    assert parse_actor("Team:42") == ActorRef(42, "Team")
    assert parse_actor({"actor_id": "7", "actor_type": "Integration"}) == ActorRef(7, "Integration")
    with pytest.raises(ConfigError):
        parse_actor("Team:abc")
    with pytest.raises(ConfigError):
        parse_actor({"actor_type": "Team"})


def test_load_config_resolves_schema_relative_to_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / CONFIG_FILE
        path.write_text("template: ../template\nschema: schema.yaml\n")
        config = load_config(path)
    assert config.template == "../template"
    assert config.schema == str(Path(tmpdir) / "schema.yaml")


def test_load_config_invalid_yaml():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / CONFIG_FILE
        path.write_text("template: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(path)


def test_find_config():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert find_config(tmpdir).template == ""
        (Path(tmpdir) / CONFIG_FILE).write_text("conflict_policy: interactive\n")
        assert find_config(tmpdir).conflict_policy == ConflictPolicy.INTERACTIVE
