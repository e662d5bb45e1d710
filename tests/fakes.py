"""Fake implementations for testing the vault and integration store.

These fakes stand in for the OS keyring and the Basecamp endpoints so tests
never touch a real credential manager or the network.
"""

import json
from typing import Any

import httpx

from basecamp_cli.errors import SecureStorageError
from basecamp_cli.keystore import Keystore


class MemoryKeystore(Keystore):
    """In-memory keystore that records every call."""

    def __init__(self) -> None:
        self.entries: dict[tuple[str, str], str] = {}
        self.get_calls = 0
        self.set_calls = 0

    def get_password(self, service: str, account: str) -> str | None:
        self.get_calls += 1
        return self.entries.get((service, account))

    def set_password(self, service: str, account: str, value: str) -> None:
        self.set_calls += 1
        self.entries[(service, account)] = value


class FailingKeystore(Keystore):
    """Keystore whose backend is unavailable."""

    def get_password(self, service: str, account: str) -> str | None:
        raise SecureStorageError(
            f"Failed to load keyring secret (service={service}, account={account}): "
            "no backend"
        )

    def set_password(self, service: str, account: str, value: str) -> None:
        raise SecureStorageError(
            f"Failed to persist keyring secret (service={service}, account={account}): "
            "no backend"
        )


class FakeLaunchpad:
    """Records requests to the token and authorization endpoints.

    Responses are configurable per endpoint; defaults describe a successful
    login with a single Basecamp account.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_payload: dict[str, Any] = {
            "access_token": "access-1",
            "refresh_token": "refresh-1",
            "expires_in": 1209600,
        }
        self.authorization_status = 200
        self.accounts: list[dict[str, Any]] = [
            {
                "id": 999,
                "name": "Acme",
                "href": "https://3.basecampapi.com/999",
                "product": "bc3",
            }
        ]

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/authorization/token")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/authorization/token"):
            return httpx.Response(self.token_status, json=self.token_payload)
        if request.url.path.endswith("/authorization.json"):
            return httpx.Response(
                self.authorization_status,
                content=json.dumps({"accounts": self.accounts}).encode(),
                headers={"Content-Type": "application/json"},
            )
        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)
