"""
Unit tests for AuthorizingTransport: bearer injection, refresh-before-send,
error surfacing and refresh serialization under concurrency.
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta
from unittest.mock import Mock

import pytest
import requests
from requests.adapters import BaseAdapter

from ecobee_connect.api_auth.errors import AuthorizationError, AuthorizationErrorCode, ConfigurationError, DecodeError
from ecobee_connect.api_auth.store import MemoryStore
from ecobee_connect.api_auth.token import SAFETY_MARGIN, TokenRefreshResponse
from ecobee_connect.api_auth.transport import AuthorizingTransport

API = "https://api.example.invalid"
TOKEN_URL = f"{API}/token"


class RecordingAdapter(BaseAdapter):
    """Stand-in for HTTPAdapter: records requests and answers 200 {}."""

    def __init__(self, error: Exception | None = None) -> None:
        super().__init__()
        self.requests: list[requests.PreparedRequest] = []
        self.error = error
        self.closed = False

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        resp = requests.Response()
        resp.status_code = 200
        resp._content = b"{}"  # noqa: SLF001
        resp.url = request.url
        resp.request = request
        resp.connection = self
        return resp

    def close(self) -> None:
        self.closed = True


class FakeTokenStore:
    """TokenStore double with fixed values; records update() calls."""

    def __init__(self, access: str, refresh: str, valid_for: timedelta) -> None:
        self.access = access
        self.refresh = refresh
        self.vf = valid_for
        self.updates: list[TokenRefreshResponse] = []

    def access_token(self) -> str:
        return self.access

    def refresh_token(self) -> str:
        return self.refresh

    def valid_for(self) -> timedelta:
        return self.vf

    def update(self, response: TokenRefreshResponse) -> None:
        self.updates.append(response)
        self.access = response.access_token
        self.refresh = response.refresh_token or self.refresh
        self.vf = response.expires_in - SAFETY_MARGIN


def _session_with(transport: AuthorizingTransport) -> requests.Session:
    s = requests.Session()
    s.mount(API + "/", transport)
    return s


def _refresh_session(json_response, payload, *, status_code: int = 200) -> Mock:
    session = Mock()
    session.post.return_value = json_response(payload, status_code=status_code)
    return session


def test_injects_bearer_header_with_current_token() -> None:
    inner = RecordingAdapter()
    store = FakeTokenStore("thisisanaccesstoken", "thisisarefreshtoken", timedelta(minutes=30))
    refresh = Mock()
    transport = AuthorizingTransport(store, "app-id", token_url=TOKEN_URL, transport=inner, refresh_session=refresh)

    resp = _session_with(transport).get(f"{API}/1/thermostat", headers={"Authorization": "Bearer stale"})

    assert resp.status_code == 200
    assert inner.requests[0].headers["Authorization"] == "Bearer thisisanaccesstoken"
    refresh.post.assert_not_called()
    assert store.updates == []


@pytest.mark.parametrize(
    ("access", "valid_for", "expected"),
    [
        ("x", timedelta(seconds=10), True),
        ("x", timedelta(seconds=30), False),
        ("x", timedelta(seconds=15), False),
        ("x", timedelta(seconds=-1), True),
        ("", timedelta(hours=1), True),
        ("", timedelta(seconds=-100), True),
    ],
)
def test_should_reauthenticate(access: str, valid_for: timedelta, expected: bool) -> None:
    transport = AuthorizingTransport(
        FakeTokenStore(access, "r", valid_for), "app-id", token_url=TOKEN_URL, transport=RecordingAdapter()
    )
    assert transport.should_reauthenticate() is expected


def test_custom_threshold_is_honored() -> None:
    transport = AuthorizingTransport(
        FakeTokenStore("x", "r", timedelta(seconds=30)),
        "app-id",
        token_url=TOKEN_URL,
        transport=RecordingAdapter(),
        reauth_threshold=timedelta(minutes=1),
    )
    assert transport.should_reauthenticate() is True


def test_expired_token_is_refreshed_before_forwarding(json_response, clock) -> None:
    inner = RecordingAdapter()
    store = MemoryStore(
        TokenRefreshResponse(access_token="old", refresh_token="R-old", expires_in=timedelta(seconds=30)),
        clock=clock,
    )
    clock.advance(timedelta(seconds=10))  # 5s of validity left: below the 15s threshold
    refresh = _refresh_session(
        json_response,
        {
            "access_token": "new",
            "token_type": "Bearer",
            "expires_in": 3599,
            "refresh_token": "R-new",
            "scope": "smartWrite",
        },
    )
    transport = AuthorizingTransport(store, "app-id", token_url=TOKEN_URL, transport=inner, refresh_session=refresh)

    _session_with(transport).get(f"{API}/1/thermostatSummary")

    call_args = refresh.post.call_args
    assert call_args[0][0] == TOKEN_URL
    assert call_args[1]["params"] == {
        "grant_type": "refresh_token",
        "refresh_token": "R-old",
        "client_id": "app-id",
    }
    assert call_args[1]["data"] == b""
    assert inner.requests[0].headers["Authorization"] == "Bearer new"
    assert store.access_token() == "new"
    assert store.refresh_token() == "R-new"
    assert store.valid_for() == timedelta(seconds=3599) - SAFETY_MARGIN


def test_vendor_error_aborts_request_and_leaves_store_untouched(json_response) -> None:
    inner = RecordingAdapter()
    store = FakeTokenStore("old", "revoked-refresh", timedelta(seconds=1))
    refresh = _refresh_session(
        json_response,
        {
            "error": "invalid_grant",
            "error_description": "The refresh token has been revoked.",
            "error_uri": "https://tools.ietf.org/html/rfc6749#section-5.2",
        },
        status_code=400,
    )
    transport = AuthorizingTransport(store, "app-id", token_url=TOKEN_URL, transport=inner, refresh_session=refresh)

    with pytest.raises(AuthorizationError) as excinfo:
        _session_with(transport).get(f"{API}/1/thermostat")

    err = excinfo.value
    assert err.error is AuthorizationErrorCode.INVALID_GRANT
    assert "invalid_grant" in str(err)
    assert "The refresh token has been revoked." in str(err)
    assert err.requires_reauthorization
    assert store.updates == []
    assert inner.requests == []


def test_unclassifiable_error_body_is_generic_authorization_error(json_response) -> None:
    store = FakeTokenStore("", "r", timedelta(0))
    refresh = _refresh_session(json_response, {"message": "nope"}, status_code=500)
    transport = AuthorizingTransport(
        store, "app-id", token_url=TOKEN_URL, transport=RecordingAdapter(), refresh_session=refresh
    )

    with pytest.raises(AuthorizationError, match="unknown reasons"):
        transport.get_access_token()
    assert store.updates == []


@pytest.mark.parametrize("status_code", [200, 502])
def test_undecodable_token_response_is_decode_error(text_response, status_code: int) -> None:
    store = FakeTokenStore("", "r", timedelta(0))
    refresh = Mock()
    refresh.post.return_value = text_response("<html>gateway</html>", status_code=status_code)
    transport = AuthorizingTransport(
        store, "app-id", token_url=TOKEN_URL, transport=RecordingAdapter(), refresh_session=refresh
    )

    with pytest.raises(DecodeError):
        transport.get_access_token()
    assert store.updates == []


def test_success_status_with_error_shape_is_decode_error(json_response) -> None:
    store = FakeTokenStore("", "r", timedelta(0))
    refresh = _refresh_session(json_response, {"error": "invalid_grant"}, status_code=200)
    transport = AuthorizingTransport(
        store, "app-id", token_url=TOKEN_URL, transport=RecordingAdapter(), refresh_session=refresh
    )

    with pytest.raises(DecodeError):
        transport.get_access_token()


@pytest.mark.parametrize("expires_in", [10**20, 10**13, "99999999999999999999h", float("nan")])
def test_out_of_range_expires_in_is_decode_error(json_response, clock, expires_in) -> None:
    store = MemoryStore(
        TokenRefreshResponse(access_token="old", refresh_token="R", expires_in=timedelta(0)),
        clock=clock,
    )
    store.update = Mock(wraps=store.update)
    refresh = _refresh_session(json_response, {"access_token": "a", "refresh_token": "r", "expires_in": expires_in})
    transport = AuthorizingTransport(
        store, "app-id", token_url=TOKEN_URL, transport=RecordingAdapter(), refresh_session=refresh
    )

    with pytest.raises(DecodeError):
        transport.get_access_token()
    store.update.assert_not_called()
    assert store.access_token() == "old"


def test_transport_errors_propagate_unchanged() -> None:
    boom = requests.exceptions.ConnectionError("network down")
    inner = RecordingAdapter(error=boom)
    transport = AuthorizingTransport(
        FakeTokenStore("ok", "r", timedelta(hours=1)), "app-id", token_url=TOKEN_URL, transport=inner
    )

    with pytest.raises(requests.exceptions.ConnectionError) as excinfo:
        _session_with(transport).get(f"{API}/1/thermostat")
    assert excinfo.value is boom
    assert len(inner.requests) == 1


def test_refresh_transport_errors_propagate_unchanged() -> None:
    refresh = Mock()
    refresh.post.side_effect = requests.exceptions.Timeout("slow")
    store = FakeTokenStore("", "r", timedelta(0))
    transport = AuthorizingTransport(
        store, "app-id", token_url=TOKEN_URL, transport=RecordingAdapter(), refresh_session=refresh
    )

    with pytest.raises(requests.exceptions.Timeout):
        transport.get_access_token()
    assert refresh.post.call_count == 1
    assert store.updates == []


def test_requires_app_id() -> None:
    with pytest.raises(ConfigurationError):
        AuthorizingTransport(FakeTokenStore("a", "r", timedelta(hours=1)), "  ", token_url=TOKEN_URL)


def test_close_closes_wrapped_adapter() -> None:
    inner = RecordingAdapter()
    transport = AuthorizingTransport(
        FakeTokenStore("a", "r", timedelta(hours=1)), "app-id", token_url=TOKEN_URL, transport=inner
    )
    transport.close()
    assert inner.closed


def test_concurrent_requests_on_expired_token_refresh_once(json_response, clock) -> None:
    store = MemoryStore(
        TokenRefreshResponse(access_token="old", refresh_token="R", expires_in=timedelta(0)),
        clock=clock,
    )
    calls = []

    def slow_post(*args, **kwargs):
        calls.append(kwargs)
        time.sleep(0.05)
        return json_response({"access_token": "new", "refresh_token": "R2", "expires_in": 3600})

    refresh = Mock()
    refresh.post.side_effect = slow_post
    inner = RecordingAdapter()
    transport = AuthorizingTransport(store, "app-id", token_url=TOKEN_URL, transport=inner, refresh_session=refresh)
    session = _session_with(transport)

    errors: list[BaseException] = []

    def worker() -> None:
        try:
            session.get(f"{API}/1/thermostat")
        except BaseException as e:  # noqa: BLE001 - surfaced via assertion below
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(calls) == 1
    assert len(inner.requests) == 8
    assert {r.headers["Authorization"] for r in inner.requests} == {"Bearer new"}
