"""Basecamp command-line client.

Logs in with OAuth2 through a loopback redirect, keeps the client secret and
tokens in an encrypted local vault whose passphrase lives in the OS keyring,
and manages to-dos through the Basecamp API.
"""

__version__ = "0.1.0"

from basecamp_cli.errors import (  # noqa: E402
    BasecampCliError,
    CallbackTimeoutError,
    GenericError,
    InvalidInputError,
    NoAccountError,
    OAuthError,
    SecureStorageError,
    StateMismatchError,
)

__all__ = [
    "BasecampCliError",
    "CallbackTimeoutError",
    "GenericError",
    "InvalidInputError",
    "NoAccountError",
    "OAuthError",
    "SecureStorageError",
    "StateMismatchError",
    "__version__",
]
