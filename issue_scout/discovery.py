"""Issue discovery engine: open, unassigned issues with no linked pull request.

Two tiers, chosen by whether a credential is supplied:
  1. Signed in  - GraphQL query with cross-reference timeline, PR-linked
                  issues are dropped (``filtering_applied=True``)
  2. Signed out - REST issue listing, only open + unassigned is enforced
                  (``filtering_applied=False``)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Union

from .cancellation import CancelToken
from .config import DEFAULT_PAGE_SIZE, MAX_ISSUES
from .errors import (
    DiscoveryError,
    InvalidReferenceError,
    PartialPageError,
    RepositoryNotFoundError,
    SearchCancelledError,
    TransportError,
)
from .github_api import GitHubClient
from .github_queries import FIND_AVAILABLE_ISSUES_QUERY, issue_from_graphql, issue_from_rest
from .models import Credential, DiscoveryResult, Issue, RateLimitSnapshot
from .repo_ref import is_valid_segment
from .types import RepoRef

log = logging.getLogger(__name__)

UNFILTERED_WARNING = (
    "Not signed in: issues that already have a linked pull request were not filtered out."
)

CredentialLike = Union[Credential, str, None]


def _token_of(credential: CredentialLike) -> Optional[str]:
    if isinstance(credential, Credential):
        return credential.token or None
    return credential or None


class IssueDiscoveryEngine:
    """Finds issues nobody is working on in a single repository."""

    def __init__(
        self,
        client_factory: Callable[[Optional[str]], GitHubClient] = GitHubClient,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_issues: int = MAX_ISSUES,
    ):
        if not 1 <= page_size <= 100:
            raise ValueError("page_size must be between 1 and 100")
        if max_issues < 1:
            raise ValueError("max_issues must be positive")
        self.client_factory = client_factory
        self.page_size = page_size
        self.max_issues = max_issues

    def fetch_available_issues(
        self,
        owner: str,
        repo: str,
        credential: CredentialLike = None,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> DiscoveryResult:
        if not (is_valid_segment(owner or "") and is_valid_segment(repo or "")):
            raise InvalidReferenceError(f"Not a valid repository reference: {owner!r}/{repo!r}")
        ref = RepoRef(owner=owner, repo=repo)
        token = _token_of(credential)
        filtering = token is not None

        issues: list[Issue] = []
        seen: set[int] = set()
        candidates = 0
        truncated = False
        page = 1
        cursor: Optional[str] = None
        has_next = True

        with self.client_factory(token) as client:
            while has_next:
                self._check_cancelled(cancel_token)
                try:
                    if filtering:
                        page_issues, has_next, cursor = self._fetch_graphql_page(client, ref, cursor)
                    else:
                        page_issues, has_next = self._fetch_rest_page(client, ref, page)
                except DiscoveryError as e:
                    if e.rate_limit is None:
                        e.rate_limit = client.rate_limit
                    if page == 1:
                        raise
                    partial = self._result(
                        issues, client.rate_limit, filtering, candidates, truncated=False,
                        extra_warning=f"Results are incomplete: page {page} failed ({e}).",
                    )
                    raise PartialPageError(partial, page, e) from e

                log.debug("%s page %d: %d candidates", ref.full_name, page, len(page_issues))
                for issue in page_issues:
                    if issue.number in seen:
                        continue
                    if candidates >= self.max_issues:
                        truncated = True
                        break
                    seen.add(issue.number)
                    candidates += 1
                    if filtering and issue.has_linked_pull_request:
                        continue
                    issues.append(issue)
                if truncated or (candidates >= self.max_issues and has_next):
                    truncated = True
                    break
                page += 1

            self._check_cancelled(cancel_token)
            result = self._result(issues, client.rate_limit, filtering, candidates, truncated)

        log.info(
            "%s: %d available of %d candidates (filtering_applied=%s)",
            ref.full_name, len(result.issues), candidates, filtering,
        )
        return result

    def get_rate_limit(self, credential: CredentialLike = None) -> RateLimitSnapshot:
        with self.client_factory(_token_of(credential)) as client:
            return client.get_rate_limit()

    # ── Pages ───────────────────────────────────────────────────

    def _fetch_graphql_page(
        self, client: GitHubClient, ref: RepoRef, cursor: Optional[str]
    ) -> tuple[list[Issue], bool, Optional[str]]:
        data = client.graphql(
            FIND_AVAILABLE_ISSUES_QUERY,
            {"owner": ref.owner, "repo": ref.repo, "first": self.page_size, "cursor": cursor},
        )
        repository = data.get("repository")
        if repository is None:
            raise RepositoryNotFoundError(
                f"Repository {ref.full_name} not found or not accessible",
                rate_limit=client.rate_limit,
            )
        try:
            connection = repository["issues"]
            page_info = connection["pageInfo"]
            nodes: list[dict[str, Any]] = connection["nodes"] or []
        except (KeyError, TypeError) as e:
            raise TransportError(f"Unexpected GraphQL shape for issue listing: {e}") from e

        page_issues = [
            issue_from_graphql(node)
            for node in nodes
            if node and not ((node.get("assignees") or {}).get("totalCount") or 0)
        ]
        has_next = bool(page_info.get("hasNextPage")) and bool(page_info.get("endCursor"))
        return page_issues, has_next, page_info.get("endCursor")

    def _fetch_rest_page(
        self, client: GitHubClient, ref: RepoRef, page: int
    ) -> tuple[list[Issue], bool]:
        items, has_next = client.list_open_unassigned_issues(
            ref.owner, ref.repo, page=page, per_page=self.page_size
        )
        page_issues = [
            issue_from_rest(item)
            for item in items
            if isinstance(item, dict)
            and "pull_request" not in item
            and item.get("state", "open") == "open"
            and not item.get("assignee")
            and not item.get("assignees")
        ]
        return page_issues, has_next and bool(items)

    # ── Helpers ─────────────────────────────────────────────────

    @staticmethod
    def _check_cancelled(cancel_token: Optional[CancelToken]) -> None:
        if cancel_token is not None and cancel_token.cancelled:
            raise SearchCancelledError()

    def _result(
        self,
        issues: list[Issue],
        rate_limit: Optional[RateLimitSnapshot],
        filtering: bool,
        candidates: int,
        truncated: bool,
        extra_warning: Optional[str] = None,
    ) -> DiscoveryResult:
        warnings: list[str] = []
        if not filtering:
            warnings.append(UNFILTERED_WARNING)
        if truncated:
            warnings.append(
                f"Stopped after {self.max_issues} issues; the repository has more open unassigned issues."
            )
        if extra_warning:
            warnings.append(extra_warning)
        return DiscoveryResult(
            issues=tuple(issues),
            rate_limit=rate_limit,
            filtering_applied=filtering,
            total_candidates=candidates,
            truncated=truncated,
            warnings=tuple(warnings),
        )
