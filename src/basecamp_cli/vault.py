"""Encrypted local vault for the client secret and OAuth tokens.

The vault is a single file, ``<config_dir>/secrets/local.vault``, holding a
versioned JSON envelope encrypted with a key derived from a passphrase kept in
the OS keyring (see ``basecamp_cli.keystore``).

File layout::

    b"BCVAULT1" | log2(N) (1 byte) | salt (16 bytes) | nonce (12 bytes) | ciphertext+tag

The key is derived with scrypt(N, r=8, p=1) and the envelope is sealed with
AES-256-GCM. The header is authenticated as associated data, so any change to
the work factor, salt or nonce fails decryption just like a wrong passphrase.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from loguru import logger
from pydantic import BaseModel, ValidationError

from basecamp_cli.errors import SecureStorageError
from basecamp_cli.fileio import (
    set_secure_dir_permissions,
    set_secure_file_permissions,
    write_file_atomically,
)
from basecamp_cli.keystore import (
    KEYRING_SERVICE,
    Keystore,
    get_or_create_passphrase,
    keyring_account,
)

SECRETS_DIR = "secrets"
SECRETS_FILE = "local.vault"
SECRETS_VERSION = 1

MAGIC = b"BCVAULT1"
SALT_SIZE = 16
NONCE_SIZE = 12
KEY_SIZE = 32
DEFAULT_WORK_FACTOR = 15  # N = 2**15
MAX_WORK_FACTOR = 22
HEADER_SIZE = len(MAGIC) + 1 + SALT_SIZE + NONCE_SIZE
# AES-GCM appends a 16-byte tag
MIN_CIPHERTEXT_SIZE = HEADER_SIZE + 16


class SecretConfig(BaseModel):
    """Vault contents. Every field may be absent independently."""

    client_secret: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None


class EncryptedSecretsFile(BaseModel):
    """Versioned envelope serialized to JSON before encryption."""

    version: int
    secrets: SecretConfig


@dataclass(frozen=True)
class SecretStoreInfo:
    """Where the vault and its passphrase live. Contains no secret values."""

    service: str
    account: str
    file_path: Path


def encrypt_with_passphrase(
    plaintext: bytes, passphrase: str, work_factor: int = DEFAULT_WORK_FACTOR
) -> bytes:
    """Encrypt ``plaintext`` with a key derived from ``passphrase``."""
    if not 1 <= work_factor <= MAX_WORK_FACTOR:
        raise SecureStorageError(f"Unsupported scrypt work factor: {work_factor}")

    salt = secrets.token_bytes(SALT_SIZE)
    nonce = secrets.token_bytes(NONCE_SIZE)
    header = MAGIC + bytes([work_factor]) + salt + nonce

    try:
        key = _derive_key(passphrase, salt, work_factor)
        ciphertext = AESGCM(key).encrypt(nonce, plaintext, header)
    except (ValueError, TypeError, MemoryError) as e:
        raise SecureStorageError(f"Failed to encrypt secret data: {e}") from e

    return header + ciphertext


def decrypt_with_passphrase(ciphertext: bytes, passphrase: str) -> bytes:
    """Decrypt data produced by ``encrypt_with_passphrase``.

    Raises:
        SecureStorageError: On a wrong passphrase, truncated or corrupted data.
    """
    if len(ciphertext) < MIN_CIPHERTEXT_SIZE:
        raise SecureStorageError("Failed to decrypt secret data: data is truncated.")
    if not ciphertext.startswith(MAGIC):
        raise SecureStorageError(
            "Failed to decrypt secret data: unrecognized file header."
        )

    offset = len(MAGIC)
    work_factor = ciphertext[offset]
    offset += 1
    salt = ciphertext[offset : offset + SALT_SIZE]
    offset += SALT_SIZE
    nonce = ciphertext[offset : offset + NONCE_SIZE]
    offset += NONCE_SIZE
    header = ciphertext[:offset]

    if not 1 <= work_factor <= MAX_WORK_FACTOR:
        raise SecureStorageError(
            f"Failed to decrypt secret data: unsupported scrypt work factor {work_factor}."
        )

    try:
        key = _derive_key(passphrase, salt, work_factor)
        return AESGCM(key).decrypt(nonce, ciphertext[offset:], header)
    except InvalidTag as e:
        raise SecureStorageError(
            "Failed to decrypt secret data: wrong passphrase or corrupted file."
        ) from e
    except (ValueError, TypeError, MemoryError) as e:
        raise SecureStorageError(f"Failed to decrypt secret data: {e}") from e


def _derive_key(passphrase: str, salt: bytes, work_factor: int) -> bytes:
    kdf = Scrypt(salt=salt, length=KEY_SIZE, n=2**work_factor, r=8, p=1)
    return kdf.derive(passphrase.encode("utf-8"))


class SecretStore:
    """Loads and saves ``SecretConfig`` through the encrypted vault file.

    Merging is the caller's job: ``save`` writes exactly what it is given.

    Args:
        config_dir: Base configuration directory; the vault lives in
            ``<config_dir>/secrets/``.
        keystore: Where the vault passphrase is kept.
        work_factor: log2 of the scrypt N parameter used for new writes.
    """

    def __init__(
        self,
        config_dir: Path,
        keystore: Keystore,
        work_factor: int = DEFAULT_WORK_FACTOR,
    ) -> None:
        self._config_dir = config_dir
        self._keystore = keystore
        self._work_factor = work_factor

    @property
    def secrets_dir(self) -> Path:
        return self._config_dir / SECRETS_DIR

    @property
    def secrets_path(self) -> Path:
        return self.secrets_dir / SECRETS_FILE

    def info(self) -> SecretStoreInfo:
        return SecretStoreInfo(
            service=KEYRING_SERVICE,
            account=keyring_account(self._config_dir),
            file_path=self.secrets_path,
        )

    def load(self) -> SecretConfig:
        """Read the vault, returning empty secrets when no vault exists yet."""
        path = self.secrets_path
        if not path.exists():
            return SecretConfig()

        try:
            ciphertext = path.read_bytes()
        except OSError as e:
            raise SecureStorageError(f"Failed to read secret file {path}: {e}") from e

        passphrase = get_or_create_passphrase(
            self._keystore, keyring_account(self._config_dir)
        )
        plaintext = decrypt_with_passphrase(ciphertext, passphrase)

        try:
            parsed = EncryptedSecretsFile.model_validate_json(plaintext)
        except ValidationError as e:
            raise SecureStorageError(
                f"Failed to decode decrypted secret file {path}: {e}"
            ) from e

        if parsed.version > SECRETS_VERSION:
            raise SecureStorageError(
                f"Secrets file version {parsed.version} is newer than "
                f"supported version {SECRETS_VERSION}."
            )

        return parsed.secrets

    def save(self, secrets_config: SecretConfig) -> None:
        """Encrypt and atomically write ``secrets_config`` as the current version."""
        self._ensure_secrets_dir()

        passphrase = get_or_create_passphrase(
            self._keystore, keyring_account(self._config_dir)
        )
        payload = EncryptedSecretsFile(version=SECRETS_VERSION, secrets=secrets_config)
        plaintext = payload.model_dump_json().encode("utf-8")
        ciphertext = encrypt_with_passphrase(plaintext, passphrase, self._work_factor)

        path = self.secrets_path
        write_file_atomically(path, ciphertext)
        set_secure_file_permissions(path)
        logger.debug("Saved secret vault to {}", path)

    def _ensure_secrets_dir(self) -> None:
        directory = self.secrets_dir
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SecureStorageError(
                f"Failed to create secret directory {directory}: {e}"
            ) from e
        set_secure_dir_permissions(directory)
