"""Tests for the device flow state machine, driven by a fake clock."""

import pytest
import requests

from issue_scout.cancellation import CancelToken
from issue_scout.config import ACCESS_TOKEN_URL, DEVICE_CODE_URL, DEVICE_GRANT_TYPE
from issue_scout.errors import (
    DeviceFlowCancelledError,
    DeviceFlowDeniedError,
    DeviceFlowError,
    DeviceFlowExpiredError,
    DeviceFlowStartError,
    DeviceFlowTransportError,
)
from issue_scout.models import DeviceFlowState
from issue_scout.oauth import DeviceFlowAuthenticator
from issue_scout.storage import CredentialStore

from .factories import FakeSession, client_factory_for, make_response

DEVICE_CODE_BODY = {
    "device_code": "dc-123",
    "user_code": "WDJB-MJHT",
    "verification_uri": "https://github.com/login/device",
    "expires_in": 900,
    "interval": 5,
}
USER_BODY = {"login": "octocat", "name": "The Octocat", "avatar_url": "https://a/o.png", "email": None}


class FakeClock:
    """Monotonic clock that only moves when the flow sleeps."""

    def __init__(self):
        self.now = 1000.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds, cancel_token):
        self.sleeps.append(seconds)
        self.now += seconds


def pending():
    return make_response(200, {"error": "authorization_pending"})


def granted(token="gho_abc"):
    return make_response(200, {"access_token": token, "token_type": "bearer", "scope": "public_repo"})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path)


def _auth(store, clock, http, api=None, **kwargs):
    return DeviceFlowAuthenticator(
        "client-xyz",
        store,
        http=http,
        client_factory=client_factory_for(api or FakeSession([make_response(200, USER_BODY)])),
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


class TestHandshake:
    def test_returns_user_code(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY)])
        auth = _auth(store, clock, http)
        code = auth.login_with_device_flow()
        assert code.user_code == "WDJB-MJHT"
        assert code.verification_uri == "https://github.com/login/device"
        assert auth.state == DeviceFlowState.AWAITING_USER_ACTION
        assert auth.session.expires_at == clock.now + 900
        call = http.calls[0]
        assert call["url"] == DEVICE_CODE_URL
        assert call["data"]["client_id"] == "client-xyz"
        assert call["headers"]["Accept"] == "application/json"

    def test_missing_client_id(self, store, clock):
        http = FakeSession()
        auth = DeviceFlowAuthenticator("", store, http=http, clock=clock, sleep=clock.sleep)
        with pytest.raises(DeviceFlowStartError, match="Client ID"):
            auth.login_with_device_flow()
        assert auth.state == DeviceFlowState.FAILED
        assert http.calls == []

    def test_network_failure(self, store, clock):
        auth = _auth(store, clock, FakeSession([requests.ConnectionError("offline")]))
        with pytest.raises(DeviceFlowStartError):
            auth.login_with_device_flow()
        assert auth.state == DeviceFlowState.FAILED

    def test_error_payload(self, store, clock):
        body = {"error": "unauthorized_client", "error_description": "Device flow is disabled for this app"}
        auth = _auth(store, clock, FakeSession([make_response(400, body)]))
        with pytest.raises(DeviceFlowStartError, match="Device flow is disabled"):
            auth.login_with_device_flow()
        assert auth.state == DeviceFlowState.FAILED

    def test_incomplete_payload(self, store, clock):
        auth = _auth(store, clock, FakeSession([make_response(200, {"user_code": "X"})]))
        with pytest.raises(DeviceFlowStartError):
            auth.login_with_device_flow()

    def test_new_handshake_cancels_previous_wait(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY), make_response(200, DEVICE_CODE_BODY)])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        first = auth._cancel_token
        auth.login_with_device_flow()
        assert first.cancelled
        assert not auth._cancel_token.cancelled

    def test_stored_credential_survives_new_flow(self, store, clock):
        store.save_token("gho_existing")
        auth = _auth(store, clock, FakeSession([make_response(200, DEVICE_CODE_BODY)]))
        auth.login_with_device_flow()
        assert auth.get_token() == "gho_existing"


class TestPolling:
    def test_pending_then_granted(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY), pending(), pending(), granted()])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        credential = auth.poll_device_flow()

        assert credential.token == "gho_abc"
        assert credential.user.login == "octocat"
        assert auth.state == DeviceFlowState.AUTHENTICATED
        assert auth.session is None
        assert clock.sleeps == [5, 5, 5]
        token_call = http.calls[1]
        assert token_call["url"] == ACCESS_TOKEN_URL
        assert token_call["data"] == {
            "client_id": "client-xyz",
            "device_code": "dc-123",
            "grant_type": DEVICE_GRANT_TYPE,
        }

    def test_success_persists_token_and_user(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY), granted("gho_new")])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        auth.poll_device_flow()
        assert store.load_token() == "gho_new"
        assert store.load_user().login == "octocat"
        assert auth.is_authenticated()
        assert auth.get_credential().user.name == "The Octocat"

    def test_profile_failure_keeps_token(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY), granted("gho_new")])
        api = FakeSession([make_response(500, text="boom")])
        auth = _auth(store, clock, http, api=api)
        auth.login_with_device_flow()
        credential = auth.poll_device_flow()
        assert credential.user is None
        assert auth.state == DeviceFlowState.AUTHENTICATED
        assert store.load_token() == "gho_new"
        assert store.load_user() is None

    def test_profile_fetch_uses_new_token(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY), granted("gho_new")])
        api = FakeSession([make_response(200, USER_BODY)])
        auth = _auth(store, clock, http, api=api)
        auth.login_with_device_flow()
        auth.poll_device_flow()
        assert api.calls[0]["headers"]["Authorization"] == "Bearer gho_new"

    def test_slow_down_widens_interval(self, store, clock):
        http = FakeSession([
            make_response(200, DEVICE_CODE_BODY),
            pending(),
            make_response(200, {"error": "slow_down"}),
            pending(),
            granted(),
        ])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        auth.poll_device_flow()
        # No request goes out sooner than the widened interval.
        assert clock.sleeps == [5, 5, 10, 10]

    def test_slow_down_honours_server_interval(self, store, clock):
        http = FakeSession([
            make_response(200, DEVICE_CODE_BODY),
            make_response(200, {"error": "slow_down", "interval": 20}),
            granted(),
        ])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        auth.poll_device_flow()
        assert clock.sleeps == [5, 20]

    def test_access_denied(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY), pending(), make_response(200, {"error": "access_denied"})])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        with pytest.raises(DeviceFlowDeniedError) as info:
            auth.poll_device_flow()
        assert info.value.reason == "denied"
        assert auth.state == DeviceFlowState.FAILED
        assert store.load_token() is None

    def test_expired_token_response(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY), make_response(200, {"error": "expired_token"})])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        with pytest.raises(DeviceFlowExpiredError):
            auth.poll_device_flow()
        assert auth.state == DeviceFlowState.EXPIRED

    def test_local_expiry_stops_polling(self, store, clock):
        body = dict(DEVICE_CODE_BODY, expires_in=8)
        http = FakeSession([make_response(200, body), pending()])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        with pytest.raises(DeviceFlowExpiredError):
            auth.poll_device_flow()
        assert auth.state == DeviceFlowState.EXPIRED
        assert len(http.calls) == 2

    def test_unknown_error(self, store, clock):
        body = {"error": "incorrect_client_credentials", "error_description": "The client_id is not valid."}
        http = FakeSession([make_response(200, DEVICE_CODE_BODY), make_response(200, body)])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        with pytest.raises(DeviceFlowError, match="client_id is not valid"):
            auth.poll_device_flow()
        assert auth.state == DeviceFlowState.FAILED

    def test_network_failure_while_polling(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY), requests.Timeout("slow")])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        with pytest.raises(DeviceFlowTransportError) as info:
            auth.poll_device_flow()
        assert info.value.reason == "transport"
        assert auth.state == DeviceFlowState.FAILED

    def test_explicit_device_code(self, store, clock):
        http = FakeSession([granted()])
        auth = _auth(store, clock, http)
        credential = auth.poll_device_flow("dc-external")
        assert credential.token == "gho_abc"
        assert http.calls[0]["data"]["device_code"] == "dc-external"
        assert clock.sleeps == [5]

    def test_poll_without_handshake(self, store, clock):
        auth = _auth(store, clock, FakeSession())
        with pytest.raises(DeviceFlowError):
            auth.poll_device_flow()


class TestCancellation:
    def test_cancel_while_waiting_sends_no_more_requests(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY), pending()])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()

        def sleep(seconds, cancel_token):
            clock.sleep(seconds, cancel_token)
            if len(clock.sleeps) == 2:
                auth.cancel()

        auth.sleep = sleep
        with pytest.raises(DeviceFlowCancelledError) as info:
            auth.poll_device_flow()
        assert info.value.reason == "cancelled"
        assert auth.state == DeviceFlowState.CANCELLED
        assert len(http.calls) == 2

    def test_restart_while_waiting_keeps_new_flow(self, store, clock):
        restarted = dict(DEVICE_CODE_BODY, device_code="dc-new", user_code="NEW0-CODE")
        http = FakeSession([make_response(200, DEVICE_CODE_BODY), make_response(200, restarted), granted()])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()

        def restart_once(seconds, cancel_token):
            clock.sleep(seconds, cancel_token)
            if len(clock.sleeps) == 1:
                auth.login_with_device_flow()

        auth.sleep = restart_once
        with pytest.raises(DeviceFlowCancelledError):
            auth.poll_device_flow()

        assert auth.state == DeviceFlowState.AWAITING_USER_ACTION
        assert auth.session.device_code == "dc-new"
        credential = auth.poll_device_flow()
        assert credential.token == "gho_abc"
        assert http.calls[2]["data"]["device_code"] == "dc-new"

    def test_cancel_before_polling(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY)])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        auth.cancel()
        assert auth.state == DeviceFlowState.CANCELLED
        with pytest.raises(DeviceFlowCancelledError):
            auth.poll_device_flow()
        assert len(http.calls) == 1

    def test_caller_supplied_token(self, store, clock):
        http = FakeSession([make_response(200, DEVICE_CODE_BODY)])
        auth = _auth(store, clock, http)
        auth.login_with_device_flow()
        token = CancelToken()
        token.cancel()
        with pytest.raises(DeviceFlowCancelledError):
            auth.poll_device_flow(cancel_token=token)
        assert len(http.calls) == 1


class TestSignOut:
    def test_logout_is_idempotent(self, store, clock):
        store.save_token("gho_abc")
        auth = _auth(store, clock, FakeSession())
        auth.logout()
        auth.logout()
        assert auth.get_token() is None
        assert auth.get_credential() is None
        assert not auth.is_authenticated()

    def test_save_auth_with_personal_token(self, store, clock):
        auth = _auth(store, clock, FakeSession())
        credential = auth.save_auth("ghp_personal")
        assert credential.user.login == "octocat"
        assert store.load_token() == "ghp_personal"
