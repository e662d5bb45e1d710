"""Error types for basecamp-cli.

Every failure the CLI reports is a ``BasecampCliError``. Each subclass carries
a stable process exit code so scripts can branch on the failure category.
"""

from __future__ import annotations

EXIT_GENERIC = 1
EXIT_INVALID_INPUT = 2
EXIT_OAUTH = 3
EXIT_NO_ACCOUNT = 4
EXIT_SECURE_STORAGE = 5

OAUTH_UNAUTHORIZED_MESSAGE = (
    "Basecamp rejected the access token (401 Unauthorized)."
)
OAUTH_UNAUTHORIZED_RELOGIN_MESSAGE = (
    "Basecamp rejected the access token (401 Unauthorized). Run `basecamp login` again."
)
OAUTH_FORBIDDEN_MESSAGE = "Basecamp denied access (403 Forbidden)."


class BasecampCliError(Exception):
    """Base exception for all basecamp-cli errors."""

    exit_code = EXIT_GENERIC

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class GenericError(BasecampCliError):
    """Network, transport, decode and other uncategorised failures."""


class InvalidInputError(BasecampCliError):
    """Raised when a user-supplied or configured value is missing or malformed."""

    exit_code = EXIT_INVALID_INPUT


class OAuthError(BasecampCliError):
    """Raised when the OAuth flow or token-authenticated call fails."""

    exit_code = EXIT_OAUTH


class CallbackTimeoutError(OAuthError):
    """Raised when no OAuth callback arrives before the deadline."""


class StateMismatchError(OAuthError):
    """Raised when the callback state does not match the CSRF token."""


class NoAccountError(BasecampCliError):
    """Raised when an account or resource does not exist or is inaccessible."""

    exit_code = EXIT_NO_ACCOUNT


class SecureStorageError(BasecampCliError):
    """Raised on keystore, vault encryption/decryption or vault file I/O failures."""

    exit_code = EXIT_SECURE_STORAGE


def oauth_error_from_status(
    status: int,
    unauthorized_message: str = OAUTH_UNAUTHORIZED_MESSAGE,
    forbidden_message: str = OAUTH_FORBIDDEN_MESSAGE,
) -> OAuthError | None:
    """Map 401/403 responses to an ``OAuthError``; other statuses map to None."""
    if status == 401:
        return OAuthError(unauthorized_message)
    if status == 403:
        return OAuthError(forbidden_message)
    return None
