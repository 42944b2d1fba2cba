"""Policy provisioner — make the validator check a required merge gate.

Reconciliation is lookup-before-write: the scope's policies are listed and a
policy with the same name is updated in place, so provisioning twice never
creates a duplicate. Rate-limited calls are retried with exponential
backoff; authorization and missing-scope errors are surfaced immediately.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from skillgate.remote import REQUIRED_CHECK_CONTEXT
from skillgate.remote.client import (
    ConflictError,
    PermissionDeniedError,
    PolicyClient,
    RateLimitedError,
    RemoteError,
    ScopeNotFoundError,
)
from skillgate.remote.models import PolicyDocument, Scope

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProvisionError(Exception):
    """Provisioning failed as a whole."""


class PermissionDenied(ProvisionError):
    pass


class ScopeNotFound(ProvisionError):
    pass


class PolicyConflict(ProvisionError):
    """Another writer changed the policy concurrently; re-run to reconcile."""


class RetriesExhausted(ProvisionError):
    pass


class ProvisionCancelled(ProvisionError):
    pass


class RemoteFailure(ProvisionError):
    """An unclassified remote error."""


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0

    def delay(self, attempt: int, retry_after: float = 0.0) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        backoff = self.base_delay * (2 ** (attempt - 1))
        return min(self.max_delay, max(backoff, retry_after))


@dataclass(frozen=True)
class ProvisionOutcome:
    action: str  # created | updated
    policy_id: int
    name: str
    attempts: int = 1  # Remote calls made, retries included


class PolicyProvisioner:
    """Reconciles one policy document against a remote scope."""

    def __init__(
        self,
        client: PolicyClient,
        retry: RetryPolicy | None = None,
        cancel: threading.Event | None = None,
        check_context: str = REQUIRED_CHECK_CONTEXT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.retry = retry or RetryPolicy()
        self.cancel = cancel
        self.check_context = check_context
        self._sleep = sleep
        self._attempts = 0

    def provision(self, scope: Scope, document: PolicyDocument) -> ProvisionOutcome:
        """Create or update the policy named ``document.name`` in ``scope``.

        Raises:
            ValueError: the document does not require the validator check,
                or targets a different kind of scope.
            ProvisionError: see the subclasses; the remote error is chained.
        """
        if document.required_check_context != self.check_context:
            raise ValueError(
                f"Policy must require '{self.check_context}', "
                f"not '{document.required_check_context}'"
            )
        if document.target_scope != scope.kind:
            raise ValueError(
                f"Policy targets {document.target_scope.value} scope but {scope} was given"
            )

        self._attempts = 0
        existing = self._call(lambda: self.client.list_policies(scope))
        match = next((p for p in existing if p.name == document.name), None)

        if match is not None:
            logger.info("Updating policy '%s' (%s) in %s", document.name, match.id, scope)
            remote = self._call(lambda: self.client.update_policy(scope, match.id, document))
            action = "updated"
        else:
            logger.info("Creating policy '%s' in %s", document.name, scope)
            remote = self._call(lambda: self.client.create_policy(scope, document))
            action = "created"

        return ProvisionOutcome(
            action=action,
            policy_id=remote.id,
            name=remote.name,
            attempts=self._attempts,
        )

    def _call(self, operation: Callable[[], T]) -> T:
        """Run one remote operation under the retry policy."""
        attempt = 0
        while True:
            if self.cancel is not None and self.cancel.is_set():
                raise ProvisionCancelled("Provisioning cancelled before the next attempt")
            attempt += 1
            self._attempts += 1
            try:
                return operation()
            except RateLimitedError as exc:
                if attempt >= self.retry.max_attempts:
                    raise RetriesExhausted(
                        f"Still rate limited after {attempt} attempt(s)"
                    ) from exc
                delay = self.retry.delay(attempt, exc.retry_after)
                logger.warning(
                    "Rate limited (attempt %d/%d); retrying in %.1fs",
                    attempt, self.retry.max_attempts, delay,
                )
                self._wait(delay)
            except PermissionDeniedError as exc:
                raise PermissionDenied(str(exc)) from exc
            except ScopeNotFoundError as exc:
                raise ScopeNotFound(str(exc)) from exc
            except ConflictError as exc:
                raise PolicyConflict(str(exc)) from exc
            except RemoteError as exc:
                raise RemoteFailure(str(exc)) from exc

    def _wait(self, delay: float) -> None:
        if self.cancel is not None:
            if self.cancel.wait(delay):
                raise ProvisionCancelled("Provisioning cancelled during backoff")
            return
        self._sleep(delay)


def provision(
    client: PolicyClient,
    scope: Scope,
    document: PolicyDocument,
    retry: RetryPolicy | None = None,
    cancel: threading.Event | None = None,
) -> ProvisionOutcome:
    """Create or update ``document`` in ``scope`` via ``client``."""
    return PolicyProvisioner(client, retry=retry, cancel=cancel).provision(scope, document)
