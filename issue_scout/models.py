from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def parse_timestamp(value: Any) -> datetime | None:
    """Parse GitHub's ISO-8601 timestamps (``2025-11-29T10:30:00Z``) or epoch seconds."""
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    text = str(value).strip()
    if text.isdigit():
        return datetime.fromtimestamp(int(text), tz=timezone.utc)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class Label:
    name: str
    color: str
    description: str | None = None


@dataclass(frozen=True)
class LinkedPullRequest:
    number: int
    state: str
    url: str


@dataclass(frozen=True)
class Issue:
    number: int
    title: str
    url: str
    created_at: datetime
    comment_count: int = 0
    labels: tuple[Label, ...] = ()
    updated_at: datetime | None = None
    linked_pull_requests: tuple[LinkedPullRequest, ...] = ()

    @property
    def has_zero_comments(self) -> bool:
        return self.comment_count == 0

    @property
    def has_linked_pull_request(self) -> bool:
        return bool(self.linked_pull_requests)

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "url": self.url,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "comments": {"totalCount": self.comment_count},
            "labels": {
                "nodes": [{"name": label.name, "color": label.color} for label in self.labels]
            },
        }


@dataclass(frozen=True)
class RateLimitSnapshot:
    remaining: int
    reset_at: datetime | None = None
    limit: int | None = None

    @property
    def is_exhausted(self) -> bool:
        return self.remaining <= 0

    def seconds_until_reset(self, now: datetime | None = None) -> int | None:
        if self.reset_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return max(0, int((self.reset_at - now).total_seconds()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "remaining": self.remaining,
            "resetAt": format_timestamp(self.reset_at),
            "limit": self.limit,
        }


@dataclass(frozen=True)
class DiscoveryResult:
    issues: tuple[Issue, ...]
    rate_limit: RateLimitSnapshot | None
    filtering_applied: bool
    total_candidates: int = 0
    truncated: bool = False
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [issue.to_dict() for issue in self.issues],
            "rateLimit": self.rate_limit.to_dict() if self.rate_limit else None,
            "filteringApplied": self.filtering_applied,
            "totalCandidates": self.total_candidates,
            "truncated": self.truncated,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class GitHubUser:
    login: str
    avatar_url: str = ""
    name: str | None = None
    email: str | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "GitHubUser":
        return cls(
            login=payload["login"],
            avatar_url=payload.get("avatar_url") or "",
            name=payload.get("name"),
            email=payload.get("email"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Credential:
    token: str
    user: GitHubUser | None = None


class DeviceFlowState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    AWAITING_USER_ACTION = "awaiting_user_action"
    POLLING = "polling"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            DeviceFlowState.AUTHENTICATED,
            DeviceFlowState.FAILED,
            DeviceFlowState.EXPIRED,
            DeviceFlowState.CANCELLED,
        )


@dataclass(frozen=True)
class DeviceCode:
    """What the caller shows the user: the code and where to enter it."""

    user_code: str
    verification_uri: str


@dataclass
class DeviceFlowSession:
    device_code: str
    user_code: str
    verification_uri: str
    interval: int
    expires_at: float
    attempts: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at
