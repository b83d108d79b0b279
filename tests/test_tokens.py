from __future__ import annotations

import threading
import time

import pytest
import requests

from sheetsync.errors import NotAuthenticated, TokenExchangeError, TokenRefreshError
from sheetsync.models import Credential
from sheetsync.store import MemoryCredentialStore
from sheetsync.tokens import TokenManager, authorization_url, error_message, handle_callback

from conftest import CountingStore, FakeResponse


def _manager(store, session, clock):
    return TokenManager(
        store=store,
        client_id="cid",
        client_secret="secret",
        redirect_uri="http://localhost:3000/oauth-callback",
        session=session,
        clock=clock,
    )


def _token_response(access="new-access", refresh="new-refresh", expires_in=1800):
    body = {"access_token": access, "expires_in": expires_in, "token_type": "bearer"}
    if refresh:
        body["refresh_token"] = refresh
    return FakeResponse(200, body)


def _stored(clock, expires_in=1800, access="old-access"):
    return Credential(
        access_token=access,
        refresh_token="old-refresh",
        token_type="bearer",
        expires_in=expires_in,
    ).stamp(clock())


def test_exchange_stores_credential_with_expiry(make_session, clock):
    session = make_session(lambda m, u, kw: _token_response())
    store = MemoryCredentialStore()
    manager = _manager(store, session, clock)

    credential = manager.exchange_authorization_code("the-code")

    assert credential.access_token == "new-access"
    assert credential.expires_at == int(clock() * 1000) + 1800 * 1000
    assert store.load().to_dict() == credential.to_dict()

    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url.endswith("/oauth/v1/token")
    assert kwargs["data"] == {
        "grant_type": "authorization_code",
        "client_id": "cid",
        "client_secret": "secret",
        "redirect_uri": "http://localhost:3000/oauth-callback",
        "code": "the-code",
    }
    assert kwargs["timeout"] == 30.0


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(400, {"status": "BAD_AUTH_CODE", "message": "missing or unknown auth code"}),
        FakeResponse(200, text="<html>oops</html>"),
        FakeResponse(200, {"token_type": "bearer"}),
        FakeResponse(200, {"access_token": "a", "expires_in": "soon"}),
    ],
)
def test_exchange_rejects_bad_responses(make_session, clock, response):
    store = MemoryCredentialStore()
    manager = _manager(store, make_session(lambda m, u, kw: response), clock)

    with pytest.raises(TokenExchangeError):
        manager.exchange_authorization_code("code")
    assert store.load() is None


def test_exchange_transport_error(make_session, clock):
    def handler(m, u, kw):
        raise requests.ConnectionError("connection refused")

    manager = _manager(MemoryCredentialStore(), make_session(handler), clock)
    with pytest.raises(TokenExchangeError):
        manager.exchange_authorization_code("code")


def test_not_authenticated_without_credential(make_session, clock):
    session = make_session(lambda m, u, kw: _token_response())
    manager = _manager(MemoryCredentialStore(), session, clock)

    with pytest.raises(NotAuthenticated):
        manager.get_valid_access_token()
    assert session.calls == []
    assert manager.is_authorized() is False


def test_valid_token_is_returned_without_refresh(make_session, clock):
    session = make_session(lambda m, u, kw: _token_response())
    manager = _manager(MemoryCredentialStore(_stored(clock)), session, clock)

    assert manager.get_valid_access_token() == "old-access"
    assert manager.get_valid_access_token() == "old-access"
    assert session.calls == []


def test_expired_token_refreshes_once(make_session, clock):
    session = make_session(lambda m, u, kw: _token_response(refresh=None))
    store = MemoryCredentialStore(_stored(clock))
    manager = _manager(store, session, clock)

    clock.advance(1801)
    assert manager.get_valid_access_token() == "new-access"
    assert manager.get_valid_access_token() == "new-access"

    assert len(session.calls) == 1
    assert session.calls[0][2]["data"]["grant_type"] == "refresh_token"
    assert session.calls[0][2]["data"]["refresh_token"] == "old-refresh"

    saved = store.load()
    assert saved.access_token == "new-access"
    # refresh token kept when the provider does not reissue one
    assert saved.refresh_token == "old-refresh"
    # expiry resets relative to refresh time
    assert saved.expires_at == int(clock() * 1000) + 1800 * 1000


def test_refresh_keeps_reissued_refresh_token(make_session, clock):
    session = make_session(lambda m, u, kw: _token_response(refresh="rotated"))
    store = MemoryCredentialStore(_stored(clock))
    manager = _manager(store, session, clock)

    manager.refresh()

    assert store.load().refresh_token == "rotated"


def test_credential_without_expiry_is_refreshed(make_session, clock):
    session = make_session(lambda m, u, kw: _token_response())
    stale = Credential(access_token="a", refresh_token="r", expires_in=1800)
    manager = _manager(MemoryCredentialStore(stale), session, clock)

    assert manager.get_valid_access_token() == "new-access"
    assert len(session.calls) == 1


def test_refresh_failure_leaves_store_untouched(make_session, clock):
    session = make_session(
        lambda m, u, kw: FakeResponse(400, {"status": "BAD_REFRESH_TOKEN", "message": "revoked"})
    )
    original = _stored(clock)
    store = CountingStore(original)
    manager = _manager(store, session, clock)
    clock.advance(5000)

    with pytest.raises(TokenRefreshError) as info:
        manager.get_valid_access_token()

    assert info.value.status == 400
    assert info.value.message == "revoked"
    assert store.load().to_dict() == original.to_dict()
    assert store.saves == 0


def test_concurrent_callers_share_one_refresh(make_session, clock):
    def handler(m, u, kw):
        time.sleep(0.05)
        return _token_response()

    session = make_session(handler)
    manager = _manager(MemoryCredentialStore(_stored(clock)), session, clock)
    clock.advance(1801)

    tokens = []
    threads = [
        threading.Thread(target=lambda: tokens.append(manager.get_valid_access_token()))
        for _ in range(5)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert tokens == ["new-access"] * 5
    assert len(session.calls) == 1


def test_authorization_url_carries_parameters():
    url = authorization_url("cid", "crm.objects.contacts.read", "http://localhost:3000/cb", "xyz")

    assert url.startswith("https://app.hubspot.com/oauth/authorize?")
    assert "client_id=cid" in url
    assert "scope=crm.objects.contacts.read" in url
    assert "redirect_uri=http%3A%2F%2Flocalhost%3A3000%2Fcb" in url
    assert "state=xyz" in url


def test_handle_callback_exchanges_code_from_url(make_session, clock):
    store = MemoryCredentialStore()
    manager = _manager(store, make_session(lambda m, u, kw: _token_response()), clock)

    ok, message = handle_callback(
        manager, "http://localhost:3000/oauth-callback?code=abc&state=s1"
    )

    assert ok is True
    assert "successful" in message
    assert store.load().access_token == "new-access"


def test_handle_callback_redirects_to_error_page(make_session, clock):
    session = make_session(
        lambda m, u, kw: FakeResponse(400, {"message": "missing or unknown auth code"})
    )
    manager = _manager(MemoryCredentialStore(), session, clock)

    ok, target = handle_callback(manager, {"code": "bad", "state": "s1"})

    assert ok is False
    assert target == "/error?msg=missing+or+unknown+auth+code"


def test_handle_callback_without_code(make_session, clock):
    session = make_session(lambda m, u, kw: _token_response())
    manager = _manager(MemoryCredentialStore(), session, clock)

    ok, target = handle_callback(manager, {"error": "access_denied"})

    assert ok is False
    assert target == "/error?msg=access_denied"
    assert session.calls == []


def test_handle_callback_checks_state(make_session, clock):
    session = make_session(lambda m, u, kw: _token_response())
    store = MemoryCredentialStore()
    manager = _manager(store, session, clock)

    ok, target = handle_callback(manager, {"code": "abc", "state": "forged"}, "s1")

    assert ok is False
    assert error_message(target) == "State mismatch. Please restart the authorization."
    assert session.calls == []
    assert store.load() is None

    ok, _ = handle_callback(manager, {"code": "abc", "state": "s1"}, "s1")

    assert ok is True
    assert store.load().access_token == "new-access"
