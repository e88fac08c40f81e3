from __future__ import annotations

from typing import Any

from .errors import TransportError
from .models import Issue, Label, LinkedPullRequest, RateLimitSnapshot, parse_timestamp

FIND_AVAILABLE_ISSUES_QUERY = """
query FindAvailableIssues($owner: String!, $repo: String!, $first: Int!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    issues(
      first: $first
      after: $cursor
      states: OPEN
      filterBy: {assignee: null}
      orderBy: {field: CREATED_AT, direction: DESC}
    ) {
      pageInfo {
        hasNextPage
        endCursor
      }
      totalCount
      nodes {
        number
        title
        url
        createdAt
        updatedAt
        assignees(first: 1) { totalCount }
        comments { totalCount }
        labels(first: 10) {
          nodes { name color description }
        }
        timelineItems(first: 100, itemTypes: [CROSS_REFERENCED_EVENT, CONNECTED_EVENT]) {
          nodes {
            __typename
            ... on CrossReferencedEvent {
              source {
                __typename
                ... on PullRequest { number state url }
              }
            }
            ... on ConnectedEvent {
              source {
                __typename
                ... on PullRequest { number state url }
              }
              subject {
                __typename
                ... on PullRequest { number state url }
              }
            }
          }
        }
      }
    }
  }
  rateLimit {
    limit
    remaining
    resetAt
  }
}
"""


def rate_limit_from_graphql(data: dict[str, Any]) -> RateLimitSnapshot | None:
    block = data.get("rateLimit") if isinstance(data, dict) else None
    if not isinstance(block, dict) or block.get("remaining") is None:
        return None
    return RateLimitSnapshot(
        remaining=int(block["remaining"]),
        reset_at=parse_timestamp(block.get("resetAt")),
        limit=int(block["limit"]) if block.get("limit") is not None else None,
    )


def _linked_pull_requests(node: dict[str, Any]) -> tuple[LinkedPullRequest, ...]:
    """Pull requests that cross-reference or are connected to the issue, any state."""
    found: dict[int, LinkedPullRequest] = {}
    for item in ((node.get("timelineItems") or {}).get("nodes") or []):
        if not isinstance(item, dict):
            continue
        for key in ("source", "subject"):
            pr = item.get(key) or {}
            # Issue sources come back as empty objects from the fragment spread.
            if pr.get("__typename", "PullRequest") != "PullRequest":
                continue
            number = pr.get("number")
            if isinstance(number, int) and number not in found:
                found[number] = LinkedPullRequest(
                    number=number,
                    state=pr.get("state") or "",
                    url=pr.get("url") or "",
                )
    return tuple(found.values())


def issue_from_graphql(node: dict[str, Any]) -> Issue:
    try:
        created_at = parse_timestamp(node["createdAt"])
        if created_at is None:
            raise ValueError(f"bad createdAt {node['createdAt']!r}")
        return Issue(
            number=int(node["number"]),
            title=node.get("title") or "",
            url=node["url"],
            created_at=created_at,
            updated_at=parse_timestamp(node.get("updatedAt")),
            comment_count=int((node.get("comments") or {}).get("totalCount") or 0),
            labels=tuple(
                Label(name=lbl["name"], color=lbl.get("color") or "", description=lbl.get("description"))
                for lbl in ((node.get("labels") or {}).get("nodes") or [])
                if lbl
            ),
            linked_pull_requests=_linked_pull_requests(node),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise TransportError(f"Unexpected GraphQL shape for issue: {e}") from e


def issue_from_rest(item: dict[str, Any]) -> Issue:
    try:
        created_at = parse_timestamp(item["created_at"])
        if created_at is None:
            raise ValueError(f"bad created_at {item['created_at']!r}")
        return Issue(
            number=int(item["number"]),
            title=item.get("title") or "",
            url=item["html_url"],
            created_at=created_at,
            updated_at=parse_timestamp(item.get("updated_at")),
            comment_count=int(item.get("comments") or 0),
            labels=tuple(
                Label(name=lbl["name"], color=lbl.get("color") or "", description=lbl.get("description"))
                for lbl in (item.get("labels") or [])
                if isinstance(lbl, dict)
            ),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise TransportError(f"Unexpected REST shape for issue: {e}") from e
