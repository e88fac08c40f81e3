"""Process-wide state for one user: credential, rate-limit budget, latest search."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .cancellation import CancelToken
from .discovery import IssueDiscoveryEngine
from .errors import DiscoveryError, InvalidReferenceError, PartialPageError, SearchCancelledError
from .models import Credential, DiscoveryResult, GitHubUser, RateLimitSnapshot
from .oauth import DeviceFlowAuthenticator
from .repo_ref import parse_repo_url
from .storage import CredentialStore

logger = logging.getLogger(__name__)


class ScoutSession:
    """Owns the mutable state the presentation layer reads.

    The credential is written only by the authenticator. ``rate_limit`` and
    ``last_result`` are replaced wholesale, and only by the most recent
    search; a search started later supersedes (and cancels) an earlier one.
    """

    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        engine: Optional[IssueDiscoveryEngine] = None,
        authenticator: Optional[DeviceFlowAuthenticator] = None,
    ):
        self.store = store or CredentialStore()
        self.engine = engine or IssueDiscoveryEngine()
        self.authenticator = authenticator or DeviceFlowAuthenticator(store=self.store)
        self.rate_limit: Optional[RateLimitSnapshot] = None
        self.last_result: Optional[DiscoveryResult] = None
        self._generation = 0
        self._active: Optional[CancelToken] = None
        self._lock = threading.Lock()

    @classmethod
    def start(cls, **kwargs) -> "ScoutSession":
        """Build a session from stored state and take a first look at the budget."""
        session = cls(**kwargs)
        session.refresh_rate_limit()
        return session

    @property
    def credential(self) -> Optional[Credential]:
        return self.authenticator.get_credential()

    @property
    def user(self) -> Optional[GitHubUser]:
        return self.authenticator.get_stored_user()

    def refresh_rate_limit(self) -> Optional[RateLimitSnapshot]:
        """Best effort: on failure the previous snapshot is kept."""
        try:
            snapshot = self.engine.get_rate_limit(self.credential)
        except DiscoveryError as e:
            logger.warning("Could not refresh rate limit: %s", e)
            return self.rate_limit
        self.rate_limit = snapshot
        return snapshot

    def search(self, owner: str, repo: str, credential: Optional[Credential] = None) -> DiscoveryResult:
        """Run a search with the stored credential, or ``credential`` when given."""
        with self._lock:
            if self._active is not None:
                self._active.cancel()
            self._generation += 1
            generation = self._generation
            cancel_token = CancelToken()
            self._active = cancel_token
            self.last_result = None

        try:
            result = self.engine.fetch_available_issues(
                owner, repo, credential or self.credential, cancel_token=cancel_token
            )
        except PartialPageError as e:
            self._publish(generation, e.rate_limit, e.partial_result)
            raise
        except DiscoveryError as e:
            self._publish(generation, e.rate_limit, None)
            raise
        if not self._publish(generation, result.rate_limit, result):
            raise SearchCancelledError("Superseded by a newer search")
        return result

    def search_url(self, value: str, credential: Optional[Credential] = None) -> DiscoveryResult:
        ref = parse_repo_url(value)
        if ref is None:
            raise InvalidReferenceError(f"Not a GitHub repository: {value!r}")
        return self.search(ref.owner, ref.repo, credential)

    def cancel_search(self) -> None:
        with self._lock:
            if self._active is not None:
                self._active.cancel()
                self._active = None
            self._generation += 1

    def logout(self) -> None:
        self.authenticator.cancel()
        self.authenticator.logout()

    def _publish(
        self,
        generation: int,
        rate_limit: Optional[RateLimitSnapshot],
        result: Optional[DiscoveryResult],
    ) -> bool:
        with self._lock:
            if generation != self._generation:
                return False
            if rate_limit is not None:
                self.rate_limit = rate_limit
            self.last_result = result
            self._active = None
            return True
