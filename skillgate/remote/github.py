"""GitHub adapter for the remote policy API (repository and organization rulesets)."""

from __future__ import annotations

import logging
import os
import time

import httpx

from skillgate.remote.client import (
    ConflictError,
    PermissionDeniedError,
    PolicyClient,
    RateLimitedError,
    RemoteError,
    ScopeNotFoundError,
)
from skillgate.remote.models import PolicyDocument, RemotePolicy, Scope, TargetScope

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
DEFAULT_TIMEOUT = 15.0


def github_token() -> str:
    """Token from the environment, the same variables the gh CLI honours."""
    return os.environ.get("GITHUB_TOKEN", "") or os.environ.get("GH_TOKEN", "")


def ruleset_payload(document: PolicyDocument, scope: Scope) -> dict:
    """Render a policy document as a GitHub ruleset request body."""
    conditions: dict = {"ref_name": {"include": ["~DEFAULT_BRANCH"], "exclude": []}}
    if scope.kind == TargetScope.ORGANIZATION:
        conditions["repository_name"] = {"include": ["~ALL"], "exclude": []}

    bypass = sorted(document.bypass_actors, key=lambda a: (a.actor_type, a.actor_id))
    return {
        "name": document.name,
        "target": "branch",
        "enforcement": document.enforcement.value,
        "bypass_actors": [
            {"actor_id": a.actor_id, "actor_type": a.actor_type, "bypass_mode": a.bypass_mode}
            for a in bypass
        ],
        "conditions": conditions,
        "rules": [
            {
                "type": "required_status_checks",
                "parameters": {
                    "strict_required_status_checks_policy": False,
                    "required_status_checks": [{"context": document.required_check_context}],
                },
            }
        ],
    }


def _rulesets_path(scope: Scope) -> str:
    if scope.kind == TargetScope.ORGANIZATION:
        return f"/orgs/{scope.identifier}/rulesets"
    return f"/repos/{scope.identifier}/rulesets"


class GitHubRulesetClient(PolicyClient):
    """Talks to the GitHub REST API with a pre-authenticated token.

    Parameters
    ----------
    token : str | None
        API token. Falls back to ``GITHUB_TOKEN`` / ``GH_TOKEN`` when *None*.
    base_url : str
        API root, overridable for GitHub Enterprise.
    timeout : float
        Per-request timeout in seconds.
    transport : httpx.BaseTransport | None
        Injected transport, used by tests.
    """

    def __init__(
        self,
        token: str | None = None,
        base_url: str = GITHUB_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        token = token if token is not None else github_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GitHubRulesetClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -- requests ------------------------------------------------------------

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise RemoteError(f"{method} {url} timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise RemoteError(f"Failed to reach GitHub API: {exc}") from exc

        logger.debug("%s %s -> %s", method, url, resp.status_code)
        if resp.is_success:
            return resp
        raise _classify(resp)

    def list_policies(self, scope: Scope) -> list[RemotePolicy]:
        params = {"per_page": 100}
        if scope.kind == TargetScope.REPOSITORY:
            params["includes_parents"] = "false"

        policies: list[RemotePolicy] = []
        url: str | None = _rulesets_path(scope)
        while url:
            resp = self._request("GET", url, params=params)
            for item in resp.json():
                policies.append(RemotePolicy(id=int(item["id"]), name=item.get("name", "")))
            url = resp.links.get("next", {}).get("url")
            params = {}  # The next link already carries the query
        return policies

    def create_policy(self, scope: Scope, document: PolicyDocument) -> RemotePolicy:
        resp = self._request("POST", _rulesets_path(scope), json=ruleset_payload(document, scope))
        data = resp.json()
        return RemotePolicy(id=int(data["id"]), name=data.get("name", document.name))

    def update_policy(self, scope: Scope, policy_id: int, document: PolicyDocument) -> RemotePolicy:
        resp = self._request(
            "PUT",
            f"{_rulesets_path(scope)}/{policy_id}",
            json=ruleset_payload(document, scope),
        )
        data = resp.json()
        return RemotePolicy(id=int(data.get("id", policy_id)), name=data.get("name", document.name))


def _message(resp: httpx.Response) -> str:
    try:
        detail = resp.json().get("message", "")
    except (ValueError, AttributeError):
        detail = resp.text[:200]
    return f"GitHub API error {resp.status_code}: {detail}".rstrip(": ")


def _retry_after(resp: httpx.Response) -> float | None:
    """Seconds to wait according to the response headers, if it says."""
    header = resp.headers.get("retry-after")
    if header:
        try:
            return max(float(header), 0.0)
        except ValueError:
            return None
    if resp.headers.get("x-ratelimit-remaining") == "0":
        reset = resp.headers.get("x-ratelimit-reset")
        if reset and reset.isdigit():
            return max(int(reset) - time.time(), 0.0)
        return 0.0
    return None


def _classify(resp: httpx.Response) -> RemoteError:
    status = resp.status_code
    message = _message(resp)
    retry_after = _retry_after(resp)

    if status == 429 or (status == 403 and retry_after is not None):
        return RateLimitedError(message, retry_after=retry_after or 0.0, status_code=status)
    if status in (401, 403):
        return PermissionDeniedError(message, status_code=status)
    if status == 404:
        return ScopeNotFoundError(message, status_code=status)
    if status == 409:
        return ConflictError(message, status_code=status)
    return RemoteError(message, status_code=status)
