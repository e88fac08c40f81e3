"""GitHub API client with rate-limit tracking and typed errors."""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from .config import API_BASE_URL, API_VERSION, GRAPHQL_URL, REQUEST_TIMEOUT, USER_AGENT
from .errors import (
    DiscoveryError,
    RateLimitedError,
    RepositoryNotFoundError,
    TransportError,
    UnauthorizedError,
)
from .github_queries import rate_limit_from_graphql
from .models import GitHubUser, RateLimitSnapshot, parse_timestamp

logger = logging.getLogger(__name__)


def rate_limit_from_headers(response: requests.Response) -> Optional[RateLimitSnapshot]:
    remaining = response.headers.get("X-RateLimit-Remaining")
    if remaining is None:
        return None
    try:
        remaining_count = int(remaining)
    except ValueError:
        return None
    limit = response.headers.get("X-RateLimit-Limit")
    return RateLimitSnapshot(
        remaining=remaining_count,
        reset_at=parse_timestamp(response.headers.get("X-RateLimit-Reset")),
        limit=int(limit) if limit and limit.isdigit() else None,
    )


class GitHubClient:
    """Handles all communication with api.github.com for one credential.

    Every response refreshes ``rate_limit``; failures are raised as
    :class:`DiscoveryError` subclasses carrying the snapshot seen on the
    failing response. Requests are attempted once.
    """

    BASE_URL = API_BASE_URL

    def __init__(
        self,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        })
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.rate_limit: Optional[RateLimitSnapshot] = None

    @property
    def authenticated(self) -> bool:
        return bool(self.token)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ── Transport ───────────────────────────────────────────────

    def _update_rate_limit(self, response: requests.Response) -> Optional[RateLimitSnapshot]:
        snapshot = rate_limit_from_headers(response)
        if snapshot is not None:
            self.rate_limit = snapshot
        return snapshot

    def _raise_for_status(self, response: requests.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        snapshot = rate_limit_from_headers(response)
        text = response.text[:500]
        if status in (403, 429) and (
            (snapshot is not None and snapshot.remaining == 0)
            or "rate limit" in text.lower()
        ):
            raise RateLimitedError(
                "GitHub API rate limit exceeded",
                reset_at=snapshot.reset_at if snapshot else None,
                rate_limit=snapshot,
            )
        if status == 401:
            raise UnauthorizedError("GitHub rejected the access token (401 Bad credentials)", rate_limit=snapshot)
        if status == 403:
            raise UnauthorizedError(f"GitHub refused access (403): {text}", rate_limit=snapshot)
        if status == 404:
            raise RepositoryNotFoundError("Repository not found or not accessible", rate_limit=snapshot)
        if status == 410:
            raise RepositoryNotFoundError("Issues are disabled for this repository", rate_limit=snapshot)
        raise TransportError(f"GitHub API error {status}: {text}", rate_limit=snapshot)

    def _request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        url = f"{self.BASE_URL}{endpoint}" if endpoint.startswith("/") else endpoint
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request to {url} failed: {e}", rate_limit=self.rate_limit) from e
        logger.debug("%s %s -> %s", method, url, response.status_code)
        self._update_rate_limit(response)
        self._raise_for_status(response)
        return response

    @staticmethod
    def _json(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {response.url}: {e}") from e

    def get(self, endpoint: str, params: Optional[dict] = None) -> Any:
        return self._json(self._request("GET", endpoint, params=params))

    def graphql(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        response = self._request("POST", GRAPHQL_URL, json={"query": query, "variables": variables or {}})
        payload = self._json(response)
        if not isinstance(payload, dict):
            raise TransportError(f"Unexpected GraphQL payload: {type(payload).__name__}")
        data = payload.get("data") or {}
        snapshot = rate_limit_from_graphql(data)
        if snapshot is not None:
            self.rate_limit = snapshot
        errors = payload.get("errors") or []
        if errors:
            raise self._graphql_error(errors, self.rate_limit)
        return data

    @staticmethod
    def _graphql_error(errors: list[dict[str, Any]], snapshot: Optional[RateLimitSnapshot]) -> DiscoveryError:
        first = errors[0] if isinstance(errors[0], dict) else {}
        kind = (first.get("type") or "").upper()
        message = first.get("message") or "GitHub API error"
        if kind == "RATE_LIMITED" or "rate limit" in message.lower():
            return RateLimitedError(message, rate_limit=snapshot)
        if kind == "NOT_FOUND":
            return RepositoryNotFoundError(message, rate_limit=snapshot)
        if kind in ("FORBIDDEN", "UNAUTHORIZED") or "bad credentials" in message.lower():
            return UnauthorizedError(message, rate_limit=snapshot)
        return TransportError(message, rate_limit=snapshot)

    # ── Endpoints ───────────────────────────────────────────────

    def list_open_unassigned_issues(
        self, owner: str, repo: str, *, page: int, per_page: int
    ) -> tuple[list[dict[str, Any]], bool]:
        """One page of the REST issue listing, newest first.

        Returns ``(items, has_next_page)``. Items still include pull requests,
        which the REST endpoint mixes into issue listings.
        """
        response = self._request(
            "GET",
            f"/repos/{owner}/{repo}/issues",
            params={
                "state": "open",
                "assignee": "none",
                "sort": "created",
                "direction": "desc",
                "per_page": per_page,
                "page": page,
            },
        )
        items = self._json(response)
        if not isinstance(items, list):
            raise TransportError(f"Expected list for issue listing, got {type(items).__name__}")
        return items, "next" in response.links

    def get_rate_limit(self) -> RateLimitSnapshot:
        """Current budget for the resource the issue search spends.

        /rate_limit does not count against the budget itself.
        """
        data = self.get("/rate_limit")
        resources = (data or {}).get("resources") or {}
        block = resources.get("graphql" if self.authenticated else "core") or data.get("rate") or {}
        if block.get("remaining") is None:
            raise TransportError("Rate limit response did not include a remaining count")
        snapshot = RateLimitSnapshot(
            remaining=int(block["remaining"]),
            reset_at=parse_timestamp(block.get("reset")),
            limit=block.get("limit"),
        )
        self.rate_limit = snapshot
        return snapshot

    def get_user(self) -> GitHubUser:
        data = self.get("/user")
        if not isinstance(data, dict) or not data.get("login"):
            raise TransportError("Unexpected /user payload")
        return GitHubUser.from_dict(data)
