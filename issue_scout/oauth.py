"""GitHub OAuth device flow and local sign-in state.

    IDLE -> REQUESTING -> AWAITING_USER_ACTION -> POLLING
         -> AUTHENTICATED | FAILED | EXPIRED | CANCELLED

The handshake (:meth:`DeviceFlowAuthenticator.login_with_device_flow`)
returns the user code right away; :meth:`poll_device_flow` then waits for the
user to approve it. Waiting goes through an injectable ``sleep`` and the
expiry check through an injectable ``clock`` so the loop can be driven
without real delays.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, NoReturn, Optional

import requests

from .cancellation import CancelToken
from .config import (
    ACCESS_TOKEN_URL,
    DEFAULT_DEVICE_CODE_TTL,
    DEFAULT_POLL_INTERVAL,
    DEVICE_CODE_URL,
    DEVICE_GRANT_TYPE,
    OAUTH_SCOPE,
    REQUEST_TIMEOUT,
    SLOW_DOWN_INCREMENT,
    USER_AGENT,
    get_client_id,
)
from .errors import (
    DeviceFlowCancelledError,
    DeviceFlowDeniedError,
    DeviceFlowError,
    DeviceFlowExpiredError,
    DeviceFlowStartError,
    DeviceFlowTransportError,
    DiscoveryError,
)
from .github_api import GitHubClient
from .models import Credential, DeviceCode, DeviceFlowSession, DeviceFlowState, GitHubUser
from .storage import CredentialStore

logger = logging.getLogger(__name__)

SleepFn = Callable[[float, CancelToken], Any]


def _cancellable_sleep(seconds: float, cancel_token: CancelToken) -> None:
    cancel_token.wait(seconds)


class DeviceFlowAuthenticator:
    """Signs the user in with a short code entered at github.com/login/device."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        store: Optional[CredentialStore] = None,
        *,
        http: Optional[requests.Session] = None,
        client_factory: Callable[[Optional[str]], GitHubClient] = GitHubClient,
        clock: Callable[[], float] = time.monotonic,
        sleep: SleepFn = _cancellable_sleep,
        scope: str = OAUTH_SCOPE,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.client_id = get_client_id() if client_id is None else client_id
        self.store = store or CredentialStore()
        self.http = http or requests.Session()
        self.client_factory = client_factory
        self.clock = clock
        self.sleep = sleep
        self.scope = scope
        self.timeout = timeout

        self.state = DeviceFlowState.IDLE
        self.session: Optional[DeviceFlowSession] = None
        self._cancel_token: Optional[CancelToken] = None

    # ── Handshake ───────────────────────────────────────────────

    def request_device_code(self) -> DeviceFlowSession:
        if not self.client_id:
            self.state = DeviceFlowState.FAILED
            raise DeviceFlowStartError(
                "GitHub Client ID not configured. Set GITHUB_CLIENT_ID to an OAuth app with device flow enabled."
            )
        # A new handshake supersedes any flow still waiting; the stored
        # credential is left alone until the new flow succeeds.
        if self._cancel_token is not None:
            self._cancel_token.cancel()
        self.session = None
        self.state = DeviceFlowState.REQUESTING

        try:
            payload = self._post(DEVICE_CODE_URL, {"client_id": self.client_id, "scope": self.scope})
        except DeviceFlowError as e:
            self.state = DeviceFlowState.FAILED
            raise DeviceFlowStartError(f"Failed to initiate device flow: {e}") from e

        if payload.get("error"):
            self.state = DeviceFlowState.FAILED
            raise DeviceFlowStartError(
                f"Failed to initiate device flow: {payload.get('error_description') or payload['error']}"
            )
        try:
            session = DeviceFlowSession(
                device_code=payload["device_code"],
                user_code=payload["user_code"],
                verification_uri=payload["verification_uri"],
                interval=int(payload.get("interval") or DEFAULT_POLL_INTERVAL),
                expires_at=self.clock() + int(payload.get("expires_in") or DEFAULT_DEVICE_CODE_TTL),
                started_at=self.clock(),
            )
        except (KeyError, TypeError, ValueError) as e:
            self.state = DeviceFlowState.FAILED
            raise DeviceFlowStartError(f"Unexpected device code response: missing {e}") from e

        self.session = session
        self._cancel_token = CancelToken()
        self.state = DeviceFlowState.AWAITING_USER_ACTION
        logger.debug("Device flow started, polling every %ds", session.interval)
        return session

    def login_with_device_flow(self) -> DeviceCode:
        session = self.request_device_code()
        return DeviceCode(user_code=session.user_code, verification_uri=session.verification_uri)

    # ── Polling ─────────────────────────────────────────────────

    def poll_device_flow(
        self,
        device_code: Optional[str] = None,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> Credential:
        if not self.client_id:
            raise DeviceFlowStartError("GitHub Client ID not configured")
        session = self.session
        if device_code is not None and (session is None or session.device_code != device_code):
            now = self.clock()
            session = DeviceFlowSession(
                device_code=device_code,
                user_code="",
                verification_uri="",
                interval=DEFAULT_POLL_INTERVAL,
                expires_at=now + DEFAULT_DEVICE_CODE_TTL,
                started_at=now,
            )
            self.session = session
            self._cancel_token = None
        if session is None:
            if self._cancel_token is not None and self._cancel_token.cancelled:
                self._raise_cancelled()
            raise DeviceFlowError("No device flow in progress; call login_with_device_flow() first")

        token = cancel_token or self._cancel_token or CancelToken()
        self._cancel_token = token
        if token.cancelled:
            self._raise_cancelled(session)
        self.state = DeviceFlowState.POLLING

        while True:
            self.sleep(session.interval, token)
            if token.cancelled:
                self._raise_cancelled(session)
            if session.is_expired(self.clock()):
                self._end(DeviceFlowState.EXPIRED, session)
                raise DeviceFlowExpiredError("The device code expired before it was authorized")

            try:
                payload = self._post(
                    ACCESS_TOKEN_URL,
                    {
                        "client_id": self.client_id,
                        "device_code": session.device_code,
                        "grant_type": DEVICE_GRANT_TYPE,
                    },
                )
            except DeviceFlowError:
                self._end(DeviceFlowState.FAILED, session)
                raise
            session.attempts += 1
            if token.cancelled:
                self._raise_cancelled(session)

            access_token = payload.get("access_token")
            if access_token:
                credential = self._store_credential(access_token)
                self._end(DeviceFlowState.AUTHENTICATED, session)
                return credential

            error = payload.get("error")
            if error == "authorization_pending":
                continue
            if error == "slow_down":
                session.interval = max(
                    int(payload.get("interval") or 0), session.interval + SLOW_DOWN_INCREMENT
                )
                logger.warning("GitHub asked to slow down; polling every %ds", session.interval)
                continue
            if error == "expired_token":
                self._end(DeviceFlowState.EXPIRED, session)
                raise DeviceFlowExpiredError("The device code expired. Start the sign-in again.")
            if error == "access_denied":
                self._end(DeviceFlowState.FAILED, session)
                raise DeviceFlowDeniedError("Authorization was denied on GitHub.")

            self._end(DeviceFlowState.FAILED, session)
            raise DeviceFlowError(payload.get("error_description") or error or "Unexpected token response")

    def cancel(self) -> None:
        if self._cancel_token is not None:
            self._cancel_token.cancel()
        if self.state == DeviceFlowState.AWAITING_USER_ACTION:
            self._end(DeviceFlowState.CANCELLED)

    # ── Stored credential ───────────────────────────────────────

    def save_auth(self, token: str) -> Credential:
        """Store a token obtained elsewhere, e.g. a personal access token."""
        return self._store_credential(token)

    def logout(self) -> None:
        try:
            self.store.clear()
        except OSError as e:
            logger.warning("Could not remove stored credential: %s", e)

    def get_token(self) -> Optional[str]:
        return self.store.load_token()

    def get_stored_user(self) -> Optional[GitHubUser]:
        return self.store.load_user()

    def get_credential(self) -> Optional[Credential]:
        token = self.get_token()
        if not token:
            return None
        return Credential(token=token, user=self.get_stored_user())

    def is_authenticated(self) -> bool:
        return bool(self.get_token())

    # ── Internals ───────────────────────────────────────────────

    def _post(self, url: str, data: dict[str, str]) -> dict[str, Any]:
        try:
            response = self.http.post(
                url,
                data=data,
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise DeviceFlowTransportError(f"Could not reach GitHub: {e}") from e
        try:
            payload = response.json()
        except ValueError as e:
            raise DeviceFlowTransportError(f"Invalid response from GitHub ({response.status_code})") from e
        if not isinstance(payload, dict):
            raise DeviceFlowTransportError("Invalid response from GitHub")
        if response.status_code >= 400 and not payload.get("error"):
            raise DeviceFlowTransportError(f"GitHub returned HTTP {response.status_code}")
        return payload

    def _store_credential(self, access_token: str) -> Credential:
        self.store.clear()
        self.store.save_token(access_token)
        user: Optional[GitHubUser] = None
        try:
            with self.client_factory(access_token) as client:
                user = client.get_user()
            self.store.save_user(user)
        except DiscoveryError as e:
            logger.warning("Signed in, but fetching the user profile failed: %s", e)
        return Credential(token=access_token, user=user)

    def _raise_cancelled(self, session: Optional[DeviceFlowSession] = None) -> NoReturn:
        self._end(DeviceFlowState.CANCELLED, session)
        raise DeviceFlowCancelledError("Sign-in was cancelled")

    def _end(self, state: DeviceFlowState, session: Optional[DeviceFlowSession] = None) -> None:
        # A flow superseded by a newer handshake must not touch the new one.
        if session is not None and self.session is not session:
            return
        self.state = state
        self.session = None
