"""OAuth2 authorization-code client for Basecamp Launchpad.

Builds the authorization URL, exchanges codes and refresh tokens at the token
endpoint, and lists the accounts an access token can reach.
"""

from __future__ import annotations

import secrets
import ssl
import urllib.parse
from dataclasses import dataclass, field
from typing import Any

import certifi
import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError, field_validator

from basecamp_cli import __version__
from basecamp_cli.errors import (
    GenericError,
    InvalidInputError,
    OAuthError,
    oauth_error_from_status,
)

AUTH_URL = "https://launchpad.37signals.com/authorization/new"
TOKEN_URL = "https://launchpad.37signals.com/authorization/token"
AUTHORIZATION_JSON_URL = "https://launchpad.37signals.com/authorization.json"
USER_AGENT = f"basecamp-cli/{__version__} (+https://github.com/basecamp/bc3-api)"
DEFAULT_TIMEOUT = 30

SSL_CONTEXT = ssl.create_default_context(cafile=certifi.where())


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization URL plus the CSRF state it carries. Lives for one login.

    The URL embeds the state, so neither field appears in the repr.
    """

    authorization_url: str = field(repr=False)
    csrf_state: str = field(repr=False)


@dataclass(frozen=True)
class TokenBundle:
    """Access and refresh token pair. Both are always present."""

    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)


class Account(BaseModel):
    """A Basecamp account (tenant) reachable with the current token."""

    id: int
    name: str
    href: str
    product: str

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, str):
            return int(value.strip())
        return value


class AuthorizationEnvelope(BaseModel):
    accounts: list[Account]


class OAuthClient:
    """Client credentials plus the provider endpoints.

    The underlying HTTP client never follows redirects, so credentials posted
    to the token endpoint cannot be forwarded to another host.

    Args:
        client_id: Integration client id.
        client_secret: Integration client secret.
        redirect_uri: Registered redirect URI.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        auth_url: str = AUTH_URL,
        token_url: str = TOKEN_URL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        for name, value in (("auth_url", auth_url), ("token_url", token_url)):
            if urllib.parse.urlsplit(value).scheme not in ("http", "https"):
                raise InvalidInputError(f"Invalid OAuth {name}: {value}")
        if not urllib.parse.urlsplit(redirect_uri).scheme:
            raise InvalidInputError(f"Invalid redirect_uri: {redirect_uri}")

        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._auth_url = auth_url
        self._token_url = token_url
        self._transport = transport

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def redirect_uri(self) -> str:
        return self._redirect_uri

    def build_authorization_url(self) -> AuthorizationRequest:
        """Build the browser URL with a fresh, unguessable CSRF state."""
        state = secrets.token_urlsafe(32)
        params = {
            "type": "web_server",
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "state": state,
        }
        separator = "&" if "?" in self._auth_url else "?"
        url = f"{self._auth_url}{separator}{urllib.parse.urlencode(params)}"
        return AuthorizationRequest(authorization_url=url, csrf_state=state)

    def exchange_code(self, code: str) -> TokenBundle:
        """Exchange an authorization code for a token bundle.

        Raises:
            OAuthError: If the provider rejects the code or omits a token.
        """
        data = {
            "type": "web_server",
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._redirect_uri,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        return self._request_tokens(data, "OAuth token exchange")

    def refresh_access_token(self, refresh_token: str) -> TokenBundle:
        """Trade a refresh token for a new token bundle.

        Raises:
            OAuthError: If the provider rejects the refresh token.
        """
        data = {
            "type": "refresh",
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
        }
        return self._request_tokens(data, "OAuth token refresh")

    def _request_tokens(self, data: dict[str, str], operation: str) -> TokenBundle:
        try:
            with self._http_client() as client:
                response = client.post(
                    self._token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
        except httpx.RequestError as e:
            raise OAuthError(f"{operation} failed: {e}") from e

        if response.is_redirect:
            raise OAuthError(
                f"{operation} failed: token endpoint redirected "
                f"(status {response.status_code}); refusing to follow."
            )
        if response.status_code != 200:
            raise OAuthError(
                f"{operation} failed with status {response.status_code}: "
                f"{_error_summary(response)}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise OAuthError(f"{operation} returned invalid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise OAuthError(f"{operation} returned an unexpected response.")

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise OAuthError(f"{operation} response did not include access_token.")

        refresh_token = payload.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token:
            kind = "refresh" if data.get("grant_type") == "refresh_token" else "token"
            raise OAuthError(f"OAuth {kind} response did not include refresh_token.")

        logger.debug("{} succeeded", operation)
        return TokenBundle(access_token=access_token, refresh_token=refresh_token)

    def _http_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=DEFAULT_TIMEOUT,
            verify=SSL_CONTEXT,
            follow_redirects=False,
            transport=self._transport,
        )


def fetch_authorization(
    access_token: str,
    *,
    url: str = AUTHORIZATION_JSON_URL,
    transport: httpx.BaseTransport | None = None,
) -> list[Account]:
    """List the accounts reachable with ``access_token``.

    Raises:
        OAuthError: On 401/403.
        GenericError: On other failures.
    """
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }
    try:
        with httpx.Client(
            timeout=DEFAULT_TIMEOUT,
            verify=SSL_CONTEXT,
            transport=transport,
        ) as client:
            response = client.get(url, headers=headers)
    except httpx.RequestError as e:
        raise GenericError(f"Failed to request authorization.json: {e}") from e

    error = oauth_error_from_status(response.status_code)
    if error is not None:
        raise error

    if not response.is_success:
        raise GenericError(
            f"Basecamp authorization.json failed with status {response.status_code}."
        )

    try:
        envelope = AuthorizationEnvelope.model_validate_json(response.content)
    except ValidationError as e:
        raise GenericError(
            f"Failed to decode authorization.json response: {e}"
        ) from e

    return envelope.accounts


def _error_summary(response: httpx.Response) -> str:
    """Short description of an error response that never echoes tokens."""
    try:
        payload = response.json()
    except ValueError:
        return response.reason_phrase or "unknown error"
    if isinstance(payload, dict):
        error = payload.get("error")
        description = payload.get("error_description")
        if error and description:
            return f"{error}: {description}"
        if error:
            return str(error)
    return response.reason_phrase or "unknown error"
