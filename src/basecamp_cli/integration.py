"""Integration credentials and login session persistence.

Non-secret identifiers (client id, redirect URI, account id/name/href) live in
``config.json``. The client secret and the OAuth tokens live in the encrypted
vault. ``IntegrationStore`` is the only code that reads or writes either file.
"""

from __future__ import annotations

import time
import urllib.parse
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from basecamp_cli.config import (
    CONFIG_FILE,
    AppConfig,
    SessionConfig,
    Settings,
    load_app_config,
    resolve_config_dir,
    save_app_config,
)
from basecamp_cli.errors import GenericError, InvalidInputError, OAuthError
from basecamp_cli.keystore import KeyringKeystore, Keystore
from basecamp_cli.vault import (
    DEFAULT_WORK_FACTOR,
    SecretConfig,
    SecretStore,
    SecretStoreInfo,
)


@dataclass(frozen=True)
class LoginOverrides:
    """Credential values given on the command line (highest priority)."""

    client_id: str | None = None
    client_secret: str | None = field(default=None, repr=False)
    redirect_uri: str | None = None


@dataclass(frozen=True)
class ResolvedIntegration:
    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str


@dataclass(frozen=True)
class IntegrationDefaults:
    client_id: str | None = None
    redirect_uri: str | None = None


@dataclass(frozen=True)
class IntegrationStatus:
    has_client_id: bool
    has_client_secret: bool
    has_redirect_uri: bool
    client_id: str | None
    redirect_uri: str | None


@dataclass(frozen=True)
class SessionData:
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    account_id: int
    account_name: str
    account_href: str


@dataclass(frozen=True)
class SessionContext:
    """What an authenticated command needs to call the API."""

    account_id: int
    account_name: str | None
    access_token: str = field(repr=False)


class IntegrationStore:
    """Reads and writes the plaintext config and the secret vault.

    Args:
        config_dir: Directory holding ``config.json`` and ``secrets/``.
        keystore: Where the vault passphrase is kept.
        settings: Environment settings; read from the environment when omitted.
        work_factor: scrypt work factor for vault writes.
    """

    def __init__(
        self,
        config_dir: Path,
        keystore: Keystore,
        settings: Settings | None = None,
        work_factor: int = DEFAULT_WORK_FACTOR,
    ) -> None:
        self._config_dir = config_dir
        self._settings = settings or Settings()
        self._secret_store = SecretStore(config_dir, keystore, work_factor)

    @classmethod
    def from_environment(cls) -> IntegrationStore:
        """Build a store for the configured directory and the OS keyring."""
        settings = Settings()
        return cls(resolve_config_dir(settings), KeyringKeystore(), settings)

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def config_path(self) -> Path:
        return self._config_dir / CONFIG_FILE

    def secret_store_info(self) -> SecretStoreInfo:
        return self._secret_store.info()

    # Integration credentials

    def set_integration(
        self, client_id: str, client_secret: str, redirect_uri: str
    ) -> None:
        """Save integration credentials; the secret goes to the vault."""
        _validate_non_empty("client_id", client_id)
        _validate_non_empty("client_secret", client_secret)
        validate_redirect_uri(redirect_uri)

        secrets_config = self._load_secrets()
        secrets_config.client_secret = client_secret
        self._save_secrets(secrets_config)

        config = self._load_config()
        config.integration.client_id = client_id
        config.integration.redirect_uri = redirect_uri
        self._save_config(config)
        logger.info("Saved integration credentials for client {}", redact_value(client_id))

    def show_integration(self) -> IntegrationStatus:
        config = self._load_config()
        secrets_config = self._load_secrets()

        client_id = config.integration.client_id
        return IntegrationStatus(
            has_client_id=client_id is not None,
            has_client_secret=secrets_config.client_secret is not None,
            has_redirect_uri=config.integration.redirect_uri is not None,
            client_id=redact_value(client_id) if client_id is not None else None,
            redirect_uri=config.integration.redirect_uri,
        )

    def integration_defaults(self) -> IntegrationDefaults:
        config = self._load_config()
        return IntegrationDefaults(
            client_id=config.integration.client_id,
            redirect_uri=config.integration.redirect_uri,
        )

    def clear_integration_only(self) -> None:
        secrets_config = self._load_secrets()
        secrets_config.client_secret = None
        self._save_secrets(secrets_config)

        config = self._load_config()
        config.integration.client_id = None
        config.integration.redirect_uri = None
        self._save_config(config)

    def clear_integration_and_session(self) -> None:
        self.clear_integration_only()
        self.clear_session()

    def resolve_login_credentials(
        self, overrides: LoginOverrides | None = None
    ) -> ResolvedIntegration:
        """Pick client id, secret and redirect URI from flag, env, then storage.

        Raises:
            InvalidInputError: If a value is missing everywhere or the redirect
                URI is malformed.
        """
        overrides = overrides or LoginOverrides()
        config = self._load_config()
        secrets_config = self._load_secrets()

        client_id = _pick_value(
            overrides.client_id,
            self._settings.basecamp_client_id,
            config.integration.client_id,
        )
        if client_id is None:
            raise InvalidInputError(
                "Missing client_id. Set via --client-id, BASECAMP_CLIENT_ID, "
                "or `basecamp integration set`."
            )

        client_secret = _pick_value(
            overrides.client_secret,
            self._settings.basecamp_client_secret,
            secrets_config.client_secret,
        )
        if client_secret is None:
            raise InvalidInputError(
                "Missing client_secret. Set via --client-secret, "
                "BASECAMP_CLIENT_SECRET, or `basecamp integration set`."
            )

        redirect_uri = _pick_value(
            overrides.redirect_uri,
            self._settings.basecamp_redirect_uri,
            config.integration.redirect_uri,
        )
        if redirect_uri is None:
            raise InvalidInputError(
                "Missing redirect_uri. Set via --redirect-uri, "
                "BASECAMP_REDIRECT_URI, or `basecamp integration set`."
            )

        validate_redirect_uri(redirect_uri)

        return ResolvedIntegration(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
        )

    # Session

    def save_session(self, data: SessionData) -> None:
        """Persist tokens, then account metadata.

        The vault is written first: if it fails, config.json is not touched and
        the CLI never looks logged in without a token.
        """
        secrets_config = self._load_secrets()
        secrets_config.access_token = data.access_token
        secrets_config.refresh_token = data.refresh_token
        self._save_secrets(secrets_config)

        config = self._load_config()
        config.session.account_id = data.account_id
        config.session.account_name = data.account_name
        config.session.account_href = data.account_href
        config.session.updated_at = str(int(time.time()))
        self._save_config(config)
        logger.info("Saved session for account {}", data.account_id)

    def clear_session(self) -> None:
        secrets_config = self._load_secrets()
        secrets_config.access_token = None
        secrets_config.refresh_token = None
        self._save_secrets(secrets_config)

        config = self._load_config()
        config.session = SessionConfig()
        self._save_config(config)

    def resolve_session_context(self) -> SessionContext:
        """Return the stored session for authenticated commands.

        Raises:
            OAuthError: If no login session is stored.
        """
        config = self._load_config()
        secrets_config = self._load_secrets()

        access_token = secrets_config.access_token
        if not access_token or not access_token.strip():
            raise OAuthError("Not logged in. Run `basecamp login` first.")

        account_id = config.session.account_id
        if account_id is None:
            raise OAuthError(
                "No Basecamp account selected. Run `basecamp login` first."
            )

        return SessionContext(
            account_id=account_id,
            account_name=config.session.account_name,
            access_token=access_token,
        )

    # Storage

    def _ensure_config_dir(self) -> Path:
        try:
            self._config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise GenericError(
                f"Failed to create config directory {self._config_dir}: {e}"
            ) from e
        return self._config_dir

    def _load_config(self) -> AppConfig:
        return load_app_config(self.config_path)

    def _save_config(self, config: AppConfig) -> None:
        self._ensure_config_dir()
        save_app_config(self.config_path, config)

    def _load_secrets(self) -> SecretConfig:
        return self._secret_store.load()

    def _save_secrets(self, secrets_config: SecretConfig) -> None:
        self._ensure_config_dir()
        self._secret_store.save(secrets_config)


def validate_redirect_uri(redirect_uri: str) -> None:
    """Require an http(s) URL with a host.

    Raises:
        InvalidInputError: If the URI is malformed.
    """
    try:
        parsed = urllib.parse.urlsplit(redirect_uri)
        # Accessing port validates it
        parsed.port  # noqa: B018
    except ValueError as e:
        raise InvalidInputError(f"Invalid redirect_uri: {e}") from e

    if not parsed.scheme:
        raise InvalidInputError(
            "Invalid redirect_uri: relative URL without a base."
        )
    if parsed.scheme not in ("http", "https"):
        raise InvalidInputError("redirect_uri must use http or https scheme.")
    if not parsed.hostname:
        raise InvalidInputError("redirect_uri must include a host.")


def redact_value(value: str) -> str:
    """Keep the first and last two characters: ``abcdef`` -> ``ab***ef``."""
    if len(value) <= 4:
        return "****"
    return f"{value[:2]}***{value[-2:]}"


def _pick_value(*candidates: str | None) -> str | None:
    for candidate in candidates:
        if candidate is not None and candidate.strip():
            return candidate
    return None


def _validate_non_empty(name: str, value: str) -> None:
    if not value.strip():
        raise InvalidInputError(f"{name} cannot be empty.")
