"""Vault passphrase storage in the OS credential manager.

The vault passphrase never touches disk. It lives in the OS keyring (macOS
Keychain, Windows Credential Locker, or Linux Secret Service) under an account
name derived from the config directory, so separate config directories get
separate passphrases.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from abc import ABC, abstractmethod
from pathlib import Path

import keyring
import keyring.errors
from loguru import logger

from basecamp_cli.errors import SecureStorageError

# Keyring service name for the vault passphrase
KEYRING_SERVICE = "basecamp-cli"
PASSPHRASE_BYTES = 32


class Keystore(ABC):
    """Abstract secret store keyed by (service, account)."""

    @abstractmethod
    def get_password(self, service: str, account: str) -> str | None:
        """Return the stored value, or None when no entry exists."""
        ...

    @abstractmethod
    def set_password(self, service: str, account: str, value: str) -> None:
        """Store ``value`` for (service, account), replacing any existing entry."""
        ...


class KeyringKeystore(Keystore):
    """Keystore backed by the ``keyring`` library."""

    def get_password(self, service: str, account: str) -> str | None:
        try:
            return keyring.get_password(service, account)
        except keyring.errors.KeyringError as e:
            raise SecureStorageError(
                f"Failed to load keyring secret (service={service}, account={account}): {e}"
            ) from e

    def set_password(self, service: str, account: str, value: str) -> None:
        try:
            keyring.set_password(service, account, value)
        except keyring.errors.KeyringError as e:
            raise SecureStorageError(
                f"Failed to persist keyring secret (service={service}, account={account}): {e}"
            ) from e


def keyring_account(config_dir: Path) -> str:
    """Derive the keyring account name for a config directory.

    The account is ``secrets|`` followed by the first 16 hex characters of the
    SHA-256 of the canonical directory path.
    """
    try:
        canonical = str(config_dir.resolve())
    except (OSError, RuntimeError):
        canonical = str(config_dir.absolute())

    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"secrets|{digest[:16]}"


def get_or_create_passphrase(keystore: Keystore, account: str) -> str:
    """Fetch the vault passphrase, generating and storing one on first use.

    Raises:
        SecureStorageError: If the keystore cannot be read or written.
    """
    existing = keystore.get_password(KEYRING_SERVICE, account)
    if existing is not None:
        return existing

    logger.info(
        "No vault passphrase in keyring (service={}, account={}); generating one",
        KEYRING_SERVICE,
        account,
    )
    generated = generate_passphrase()
    keystore.set_password(KEYRING_SERVICE, account, generated)
    return generated


def generate_passphrase() -> str:
    """Return 256 random bits, base64-encoded."""
    raw = bytearray(secrets.token_bytes(PASSPHRASE_BYTES))
    try:
        return base64.b64encode(raw).decode("ascii")
    finally:
        wipe_bytes(raw)


def wipe_bytes(buffer: bytearray) -> None:
    """Zero a mutable buffer in place.

    Best effort only: the interpreter may hold other copies of the data.
    """
    for i in range(len(buffer)):
        buffer[i] = 0
