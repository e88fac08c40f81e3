"""Exception taxonomy shared by the discovery engine and the device flow."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import DiscoveryResult, RateLimitSnapshot


class IssueScoutError(Exception):
    pass


# ── Issue discovery ──────────────────────────────────────────


class DiscoveryError(IssueScoutError):
    """Base for every failure of an issue search.

    ``rate_limit`` holds the budget reported by the failing response, if any.
    """

    def __init__(self, message: str, *, rate_limit: "RateLimitSnapshot | None" = None):
        super().__init__(message)
        self.rate_limit = rate_limit


class InvalidReferenceError(DiscoveryError):
    pass


class UnauthorizedError(DiscoveryError):
    pass


class RateLimitedError(DiscoveryError):
    def __init__(
        self,
        message: str = "GitHub API rate limit exceeded",
        *,
        reset_at: datetime | None = None,
        rate_limit: "RateLimitSnapshot | None" = None,
    ):
        super().__init__(message, rate_limit=rate_limit)
        if reset_at is None and rate_limit is not None:
            reset_at = rate_limit.reset_at
        self.reset_at = reset_at


class RepositoryNotFoundError(DiscoveryError):
    pass


class TransportError(DiscoveryError):
    pass


class SearchCancelledError(DiscoveryError):
    def __init__(self, message: str = "Search was cancelled"):
        super().__init__(message)


class PartialPageError(DiscoveryError):
    """A page after the first failed; earlier pages are kept in ``partial_result``."""

    def __init__(self, partial_result: "DiscoveryResult", page: int, cause: DiscoveryError):
        super().__init__(
            f"Page {page} failed after {len(partial_result.issues)} issues were fetched: {cause}",
            rate_limit=cause.rate_limit or partial_result.rate_limit,
        )
        self.partial_result = partial_result
        self.page = page
        self.cause = cause


# ── Device flow ──────────────────────────────────────────────


class DeviceFlowError(IssueScoutError):
    reason = "error"


class DeviceFlowStartError(DeviceFlowError):
    reason = "start_failed"


class DeviceFlowDeniedError(DeviceFlowError):
    reason = "denied"


class DeviceFlowExpiredError(DeviceFlowError):
    reason = "expired"


class DeviceFlowTransportError(DeviceFlowError):
    reason = "transport"


class DeviceFlowCancelledError(DeviceFlowError):
    reason = "cancelled"
