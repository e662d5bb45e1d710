"""Interactive OAuth login.

Runs the authorization-code flow end to end: resolve integration credentials,
listen for the redirect on loopback, send the user to the browser, verify the
CSRF state, exchange the code, pick an account and persist the session.
"""

from __future__ import annotations

import functools
import hmac
import sys
import webbrowser
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TextIO

import httpx
from loguru import logger

from basecamp_cli.callback import DEFAULT_CALLBACK_TIMEOUT, CallbackServer
from basecamp_cli.errors import (
    GenericError,
    InvalidInputError,
    NoAccountError,
    StateMismatchError,
)
from basecamp_cli.integration import IntegrationStore, LoginOverrides, SessionData
from basecamp_cli.oauth import Account, OAuthClient, fetch_authorization

BASECAMP_PRODUCT = "bc3"


@dataclass(frozen=True)
class LoginOptions:
    account_id: int | None = None
    no_browser: bool = False
    overrides: LoginOverrides = field(default_factory=LoginOverrides)


@dataclass(frozen=True)
class LoginResult:
    ok: bool
    account_id: int
    account_name: str


def run_login(
    options: LoginOptions,
    store: IntegrationStore,
    *,
    callback_timeout: float = DEFAULT_CALLBACK_TIMEOUT,
    transport: httpx.BaseTransport | None = None,
    open_browser: Callable[[str], bool] = webbrowser.open,
    prompt: Callable[[str], str] | None = input,
    out: TextIO | None = None,
) -> LoginResult:
    """Log in and store the session.

    Args:
        options: Account selection, browser behaviour and credential overrides.
        store: Where credentials are read from and the session is written to.
        callback_timeout: Seconds to wait for the browser redirect.
        transport: Optional httpx transport for the provider calls, used by tests.
        open_browser: Opens the authorization URL; returns False on failure.
        prompt: Reads the account selection when several accounts exist.
            None means no one can answer, so several accounts are an error.
        out: Stream for user-facing messages (stderr by default).

    Raises:
        StateMismatchError: If the callback state does not match. No token
            request is made in that case.
    """
    out = out or sys.stderr
    resolved = store.resolve_login_credentials(options.overrides)

    with CallbackServer.bind(resolved.redirect_uri, callback_timeout) as server:
        oauth_client = OAuthClient(
            resolved.client_id,
            resolved.client_secret,
            resolved.redirect_uri,
            transport=transport,
        )
        request = oauth_client.build_authorization_url()

        if options.no_browser:
            print(
                f"Open this URL to continue login:\n{request.authorization_url}",
                file=out,
            )
        elif not _try_open_browser(open_browser, request.authorization_url):
            print(
                "Could not open browser automatically. Open this URL manually:\n"
                f"{request.authorization_url}",
                file=out,
            )

        callback = server.wait_for_code()

    if not hmac.compare_digest(
        callback.state.encode("utf-8"), request.csrf_state.encode("utf-8")
    ):
        raise StateMismatchError("OAuth state mismatch. Aborting login for security.")

    tokens = oauth_client.exchange_code(callback.code)
    accounts = fetch_authorization(tokens.access_token, transport=transport)
    account_prompt: Callable[[], Account] | None = None
    if prompt is not None:
        account_prompt = functools.partial(prompt_for_account, accounts, prompt, out)
    account = select_account(accounts, options.account_id, account_prompt)

    store.save_session(
        SessionData(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            account_id=account.id,
            account_name=account.name,
            account_href=account.href,
        )
    )
    logger.info("Logged in to account {} ({})", account.id, account.name)
    return LoginResult(ok=True, account_id=account.id, account_name=account.name)


def select_account(
    accounts: list[Account],
    requested_id: int | None,
    prompt: Callable[[], Account] | None = None,
) -> Account:
    """Pick the Basecamp account to use.

    Only ``bc3`` accounts qualify. A requested id must be among them. With no
    request, a single account is chosen directly and several are handed to
    ``prompt``.

    Raises:
        NoAccountError: If no account qualifies or the requested id is absent.
    """
    candidates = [a for a in accounts if a.product == BASECAMP_PRODUCT]
    if not candidates:
        raise NoAccountError("No accessible Basecamp account found (product == bc3).")

    if requested_id is not None:
        for account in candidates:
            if account.id == requested_id:
                return account
        raise NoAccountError(
            f"Requested account_id {requested_id} was not found in "
            "accessible Basecamp accounts."
        )

    if len(candidates) == 1:
        return candidates[0]

    if prompt is None:
        raise InvalidInputError(
            "Multiple Basecamp accounts found. Pass --account-id to choose one."
        )
    return prompt()


def prompt_for_account(
    accounts: list[Account],
    read_line: Callable[[str], str] = input,
    out: TextIO | None = None,
) -> Account:
    """Ask the user to choose one of the ``bc3`` accounts by number.

    Raises:
        InvalidInputError: If the answer is not a number in range.
    """
    out = out or sys.stderr
    candidates = [a for a in accounts if a.product == BASECAMP_PRODUCT]

    print("Multiple Basecamp accounts found. Select one:", file=out)
    for index, account in enumerate(candidates, start=1):
        print(f"  {index}. {account.name} ({account.id})", file=out)

    try:
        answer = read_line("Enter selection number: ")
    except EOFError as e:
        raise GenericError("Failed to read account selection: no input.") from e

    try:
        selection = int(answer.strip())
    except ValueError as e:
        raise InvalidInputError("Invalid selection. Expected a number.") from e

    if selection < 1 or selection > len(candidates):
        raise InvalidInputError("Selection out of range.")
    return candidates[selection - 1]


def _try_open_browser(open_browser: Callable[[str], bool], url: str) -> bool:
    try:
        return bool(open_browser(url))
    except webbrowser.Error as e:
        logger.debug("Browser launch failed: {}", e)
        return False
