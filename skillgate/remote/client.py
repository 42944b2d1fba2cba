"""Remote policy API — the interface the provisioner talks to.

Implementations translate platform responses into the error classes below;
the provisioner decides what is retryable from the class alone.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from skillgate.remote.models import PolicyDocument, RemotePolicy, Scope


class RemoteError(Exception):
    """Any failure talking to the remote API."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(RemoteError):
    """Rate limited; ``retry_after`` is the server's hint in seconds."""

    def __init__(self, message: str, retry_after: float = 0.0, status_code: int | None = None):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class PermissionDeniedError(RemoteError):
    pass


class ScopeNotFoundError(RemoteError):
    pass


class ConflictError(RemoteError):
    """A concurrent change won; re-fetch and try again."""


class PolicyClient(ABC):
    """Capability to read and write policies in a scope."""

    @abstractmethod
    def list_policies(self, scope: Scope) -> list[RemotePolicy]: ...

    @abstractmethod
    def create_policy(self, scope: Scope, document: PolicyDocument) -> RemotePolicy: ...

    @abstractmethod
    def update_policy(self, scope: Scope, policy_id: int, document: PolicyDocument) -> RemotePolicy: ...
