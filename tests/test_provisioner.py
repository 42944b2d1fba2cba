"""Tests for the policy provisioner, against an in-memory policy client."""

import threading

import pytest

from skillgate.remote.client import (
    ConflictError,
    PermissionDeniedError,
    PolicyClient,
    RateLimitedError,
    RemoteError,
    ScopeNotFoundError,
)
from skillgate.remote.models import PolicyDocument, RemotePolicy, Scope, TargetScope
from skillgate.remote.provisioner import (
    PermissionDenied,
    PolicyConflict,
    PolicyProvisioner,
    ProvisionCancelled,
    RemoteFailure,
    RetriesExhausted,
    RetryPolicy,
    ScopeNotFound,
    provision,
)

REPO = Scope(TargetScope.REPOSITORY, "acme/skills")


class FakeClient(PolicyClient):
    """Stores policies in a dict; pops scripted failures before each call."""

    def __init__(self, failures=(), on_fail=None):
        self.policies: dict[int, RemotePolicy] = {}
        self.documents: dict[int, PolicyDocument] = {}
        self.failures = list(failures)
        self.on_fail = on_fail
        self.calls: list[str] = []
        self._next_id = 1

    def _step(self, op: str) -> None:
        self.calls.append(op)
        if self.failures:
            error = self.failures.pop(0)
            if error is not None:
                if self.on_fail:
                    self.on_fail()
                raise error

    def list_policies(self, scope):
        self._step("list")
        return list(self.policies.values())

    def create_policy(self, scope, document):
        self._step("create")
        policy = RemotePolicy(id=self._next_id, name=document.name)
        self._next_id += 1
        self.policies[policy.id] = policy
        self.documents[policy.id] = document
        return policy

    def update_policy(self, scope, policy_id, document):
        self._step("update")
        self.documents[policy_id] = document
        return self.policies[policy_id]


def _provisioner(client, **kwargs):
    sleeps = []
    kwargs.setdefault("sleep", sleeps.append)
    return PolicyProvisioner(client, **kwargs), sleeps


def test_first_run_creates():
    client = FakeClient()
    provisioner, sleeps = _provisioner(client)
    outcome = provisioner.provision(REPO, PolicyDocument(name="skillgate"))

    assert outcome.action == "created"
    assert outcome.policy_id == 1
    assert outcome.attempts == 2
    assert client.calls == ["list", "create"]
    assert sleeps == []


def test_second_run_updates_in_place():
    client = FakeClient()
    provisioner, _ = _provisioner(client)
    provisioner.provision(REPO, PolicyDocument(name="skillgate"))
    outcome = provisioner.provision(REPO, PolicyDocument(name="skillgate"))

    assert outcome.action == "updated"
    assert outcome.policy_id == 1
    assert len(client.policies) == 1
    assert client.calls == ["list", "create", "list", "update"]


def test_other_policies_are_left_alone():
    client = FakeClient()
    client.policies[7] = RemotePolicy(id=7, name="someone-else")
    client._next_id = 8
    provisioner, _ = _provisioner(client)
    outcome = provisioner.provision(REPO, PolicyDocument(name="skillgate"))

    assert outcome.action == "created"
    assert sorted(client.policies) == [7, 8]


def test_rate_limit_is_retried_with_backoff():
    client = FakeClient(failures=[RateLimitedError("slow"), RateLimitedError("slow")])
    provisioner, sleeps = _provisioner(client)
    outcome = provisioner.provision(REPO, PolicyDocument(name="skillgate"))

    assert outcome.action == "created"
    assert outcome.attempts == 4
    assert sleeps == [1.0, 2.0]
    assert client.calls == ["list", "list", "list", "create"]


def test_retry_after_hint_is_honoured():
    client = FakeClient(failures=[RateLimitedError("slow", retry_after=30.0)])
    provisioner, sleeps = _provisioner(client)
    provisioner.provision(REPO, PolicyDocument(name="skillgate"))
    assert sleeps == [30.0]


def test_retries_exhausted():
    client = FakeClient(failures=[RateLimitedError("slow")] * 3)
    provisioner, sleeps = _provisioner(client, retry=RetryPolicy(max_attempts=3))

    with pytest.raises(RetriesExhausted) as excinfo:
        provisioner.provision(REPO, PolicyDocument(name="skillgate"))
    assert isinstance(excinfo.value.__cause__, RateLimitedError)
    assert client.calls == ["list"] * 3
    assert sleeps == [1.0, 2.0]


def test_backoff_delays():
    policy = RetryPolicy(base_delay=1.0, max_delay=5.0)
    assert [policy.delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]
    assert policy.delay(1, retry_after=3.0) == 3.0
    assert policy.delay(1, retry_after=100.0) == 5.0


@pytest.mark.parametrize(
    "remote_error, expected",
    [
        (PermissionDeniedError("no", status_code=403), PermissionDenied),
        (ScopeNotFoundError("gone", status_code=404), ScopeNotFound),
        (ConflictError("raced", status_code=409), PolicyConflict),
        (RemoteError("boom", status_code=500), RemoteFailure),
    ],
)
def test_non_retryable_errors_surface_immediately(remote_error, expected):
    client = FakeClient(failures=[remote_error])
    provisioner, sleeps = _provisioner(client)

    with pytest.raises(expected) as excinfo:
        provisioner.provision(REPO, PolicyDocument(name="skillgate"))
    assert excinfo.value.__cause__ is remote_error
    assert client.calls == ["list"]
    assert sleeps == []


def test_cancelled_before_start():
    cancel = threading.Event()
    cancel.set()
    client = FakeClient()
    provisioner, _ = _provisioner(client, cancel=cancel)

    with pytest.raises(ProvisionCancelled):
        provisioner.provision(REPO, PolicyDocument(name="skillgate"))
    assert client.calls == []


def test_cancelled_during_backoff():
    cancel = threading.Event()
    client = FakeClient(failures=[RateLimitedError("slow", retry_after=60.0)], on_fail=cancel.set)
    provisioner, sleeps = _provisioner(client, cancel=cancel)

    with pytest.raises(ProvisionCancelled):
        provisioner.provision(REPO, PolicyDocument(name="skillgate"))
    assert client.calls == ["list"]
    assert client.policies == {}


def test_document_must_require_the_validator_check():
    provisioner, _ = _provisioner(FakeClient())
    with pytest.raises(ValueError):
        provisioner.provision(REPO, PolicyDocument(name="x", required_check_context="other/check"))


def test_document_scope_must_match():
    provisioner, _ = _provisioner(FakeClient())
    document = PolicyDocument(name="x", target_scope=TargetScope.ORGANIZATION)
    with pytest.raises(ValueError):
        provisioner.provision(REPO, document)


def test_custom_check_context():
    client = FakeClient()
    provisioner, _ = _provisioner(client, check_context="ci/skills")
    provisioner.provision(REPO, PolicyDocument(name="x", required_check_context="ci/skills"))
    assert client.documents[1].required_check_context == "ci/skills"


def test_module_level_provision():
    client = FakeClient()
    outcome = provision(client, REPO, PolicyDocument(name="skillgate"))
    assert outcome.action == "created"


def test_scope_validation():
    with pytest.raises(ValueError):
        Scope(TargetScope.REPOSITORY, "no-slash")
    with pytest.raises(ValueError):
        Scope(TargetScope.ORGANIZATION, "acme/skills")
    assert str(Scope(TargetScope.ORGANIZATION, "acme")) == "organization:acme"
