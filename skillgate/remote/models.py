"""Policy document models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from skillgate.remote import REQUIRED_CHECK_CONTEXT


class TargetScope(Enum):
    ORGANIZATION = "organization"
    REPOSITORY = "repository"


class Enforcement(Enum):
    ACTIVE = "active"
    EVALUATE = "evaluate"  # Report only
    DISABLED = "disabled"


@dataclass(frozen=True)
class Scope:
    """Where a policy lives: an organization login or an ``owner/repo``."""

    kind: TargetScope
    identifier: str

    def __post_init__(self):
        if not self.identifier:
            raise ValueError("Scope identifier must not be empty")
        if self.kind == TargetScope.REPOSITORY and self.identifier.count("/") != 1:
            raise ValueError(f"Repository scope must be 'owner/repo', got '{self.identifier}'")
        if self.kind == TargetScope.ORGANIZATION and "/" in self.identifier:
            raise ValueError(f"Organization scope must be a login, got '{self.identifier}'")

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.identifier}"


@dataclass(frozen=True)
class ActorRef:
    """An actor allowed to bypass the policy."""

    actor_id: int
    actor_type: str  # Team | Integration | OrganizationAdmin | RepositoryRole | DeployKey
    bypass_mode: str = "always"  # always | pull_request


@dataclass
class PolicyDocument:
    """A named branch-protection policy requiring the validator check."""

    name: str
    target_scope: TargetScope = TargetScope.REPOSITORY
    enforcement: Enforcement = Enforcement.ACTIVE
    required_check_context: str = REQUIRED_CHECK_CONTEXT
    bypass_actors: set[ActorRef] = field(default_factory=set)


@dataclass(frozen=True)
class RemotePolicy:
    """A policy as it exists on the remote side."""

    id: int
    name: str
