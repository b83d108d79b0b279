"""
sheetsync.tokens
~~~~~~~~~~~~~~~~

This module contains the OAuth2 token lifecycle manager and the thin entry
point that turns an authorization redirect into stored tokens.
"""

import secrets
import threading
import time
from logging import error, info, warning
from typing import Callable, Optional, Tuple
from urllib.parse import parse_qs, urlencode, urlparse

from sheetsync.errors import (
    NotAuthenticated,
    TokenError,
    TokenExchangeError,
    TokenRefreshError,
)
from sheetsync.models import Credential
from sheetsync.store import CredentialStore

import requests as rq

AUTHORIZE_URL = "https://app.hubspot.com/oauth/authorize"
TOKEN_URL = "https://api.hubapi.com/oauth/v1/token"
DEFAULT_IDENTITY = "default"


class TokenManager:
    """ Implement the `TokenManager` class.

    This class hands out valid access tokens, exchanging authorization codes
    and refreshing expired tokens against the provider's token endpoint. Every
    change is written through to the `CredentialStore` before it is returned.

    Refreshes are serialized per identity, so two callers racing on an expired
    token submit a single refresh grant.

    :param store: A `CredentialStore` instance.
    :param client_id: The OAuth app's client id.
    :param client_secret: The OAuth app's client secret.
    :param redirect_uri: The redirect URI registered with the app.
    :param session: Optional `requests.Session`-like object.
    :param clock: Callable returning the current epoch time in seconds.
    :param timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        store: CredentialStore,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        session: rq.Session = None,
        clock: Callable[[], float] = time.time,
        timeout: float = 30.0,
        token_url: str = TOKEN_URL,
        identity: str = DEFAULT_IDENTITY,
    ):
        self.store: CredentialStore = store
        self.client_id: str = client_id
        self.client_secret: str = client_secret
        self.redirect_uri: str = redirect_uri
        self.session: rq.Session = session or rq.Session()
        self.clock = clock
        self.timeout: float = timeout
        self.token_url: str = token_url
        self.identity: str = identity

        self._locks: dict = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, identity: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = self._locks[identity] = threading.Lock()
            return lock

    def is_authorized(self) -> bool:
        return self.store.load() is not None

    def get_valid_access_token(self) -> str:
        """ Return an access token that has not yet expired.

        :raises NotAuthenticated: If no credential has been stored.
        :raises TokenRefreshError: If the stored token is expired and the
                                   refresh grant is rejected.
        """
        with self._lock_for(self.identity):
            credential: Optional[Credential] = self.store.load()
            if credential is None:
                raise NotAuthenticated("No stored tokens. Please authenticate first.")

            if not credential.is_expired(self.clock()):
                return credential.access_token

            info("Refreshing expired access token.")
            return self._refresh(credential).access_token

    def exchange_authorization_code(self, code: str) -> Credential:
        """ Exchange an authorization code for a fresh credential.

        :param code: The `code` query parameter from the redirect.
        :raises TokenExchangeError: On any rejected or malformed response.
        """
        data: dict = self._grant(
            {"grant_type": "authorization_code", "code": code}, TokenExchangeError
        )

        credential = Credential(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", ""),
            token_type=data.get("token_type", "bearer"),
            expires_in=int(data["expires_in"]),
        ).stamp(self.clock())

        with self._lock_for(self.identity):
            self.store.save(credential)

        info("Received an access token and refresh token.")
        return credential

    def refresh(self, refresh_token: str = None) -> Credential:
        """ Run the refresh grant and persist the merged credential.

        :param refresh_token: Refresh token to use. Defaults to the stored one.
        :raises NotAuthenticated: If no credential has been stored.
        :raises TokenRefreshError: If the provider rejects the grant.
        """
        with self._lock_for(self.identity):
            credential: Optional[Credential] = self.store.load()
            if credential is None:
                raise NotAuthenticated("No stored tokens. Please authenticate first.")
            if refresh_token:
                credential.refresh_token = refresh_token
            return self._refresh(credential)

    def _refresh(self, credential: Credential) -> Credential:
        # Callers must hold the identity lock.
        if not credential.refresh_token:
            raise TokenRefreshError("No refresh token stored. Please re-authenticate.")

        data: dict = self._grant(
            {"grant_type": "refresh_token", "refresh_token": credential.refresh_token},
            TokenRefreshError,
        )

        credential.access_token = data["access_token"]
        credential.expires_in = int(data["expires_in"])
        credential.token_type = data.get("token_type", credential.token_type)
        credential.refresh_token = data.get("refresh_token") or credential.refresh_token
        credential.stamp(self.clock())

        self.store.save(credential)
        info("Access token refreshed.")
        return credential

    def _grant(self, fields: dict, exc: type) -> dict:
        """ POST a form-encoded grant to the token endpoint.

        :param fields: Grant-specific fields.
        :param exc: The `TokenError` subclass to raise on failure.
        :return: The decoded token response.
        """
        form: dict = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
        }
        form.update(fields)
        grant: str = fields["grant_type"]

        try:
            response: rq.Response = self.session.post(
                self.token_url, data=form, timeout=self.timeout
            )
        except rq.RequestException as e:
            error(f"Error exchanging {grant} for access token. {e}")
            raise exc(f"Token request failed: {e}")

        if not 200 <= response.status_code < 300:
            body = _body(response)
            error(
                f"Error exchanging {grant} for access token. "
                f"status={response.status_code} body={body}"
            )
            message: str = body.get("message") if isinstance(body, dict) else None
            raise exc(
                message or f"Token endpoint returned {response.status_code}.",
                status=response.status_code,
                body=body,
            )

        try:
            data = response.json()
        except ValueError:
            raise exc("Token endpoint returned a malformed body.", response.status_code)

        if not isinstance(data, dict) or not data.get("access_token"):
            raise exc("Token response is missing access_token.", response.status_code, data)

        try:
            int(data["expires_in"])
        except (KeyError, TypeError, ValueError):
            raise exc("Token response has no usable expires_in.", response.status_code, data)

        return data


def _body(response: rq.Response):
    try:
        return response.json()
    except ValueError:
        return response.text


def generate_state() -> str:
    return secrets.token_urlsafe(12)


def authorization_url(client_id: str, scopes: str, redirect_uri: str, state: str = None) -> str:
    """ Build the URL a user visits to install the app.

    :return: The authorization URL.
    """
    query: str = urlencode(
        {
            "client_id": client_id,
            "scope": scopes,
            "redirect_uri": redirect_uri,
            "state": state or generate_state(),
        }
    )
    return f"{AUTHORIZE_URL}?{query}"


def handle_callback(
    manager: TokenManager, query, expected_state: str = None
) -> Tuple[bool, str]:
    """ Process the query of an authorization redirect.

    :param manager: A `TokenManager` instance.
    :param query: A `dict` of query parameters, or the full redirect URL.
    :param expected_state: The `state` sent with the authorization URL. When
                           given, a redirect carrying any other state is
                           rejected before the code is exchanged.
    :return: A `(success, target)` tuple. On failure the target is the local
             error page carrying a `msg` parameter.
    """
    if isinstance(query, str):
        query = {k: v[0] for k, v in parse_qs(urlparse(query).query).items()}

    code: Optional[str] = query.get("code")
    if not code:
        message: str = (
            query.get("error_description")
            or query.get("error")
            or "Missing authorization code."
        )
        return False, error_target(message)

    if expected_state is not None and query.get("state") != expected_state:
        warning("Authorization redirect carried an unexpected state.")
        return False, error_target("State mismatch. Please restart the authorization.")

    try:
        manager.exchange_authorization_code(code)
    except TokenError as e:
        return False, error_target(e.message)

    return True, "OAuth successful. Your tokens have been saved."


def error_target(message: str) -> str:
    return "/error?" + urlencode({"msg": message})


def error_message(target: str) -> str:
    """ Recover the message carried by an error page target. """
    return parse_qs(urlparse(target).query).get("msg", [target])[0]
