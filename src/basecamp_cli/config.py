"""Configuration: environment settings and the plaintext config file.

Precedence for login credentials (see ``IntegrationStore``):
1. CLI flags
2. BASECAMP_CLIENT_ID / BASECAMP_CLIENT_SECRET / BASECAMP_REDIRECT_URI
3. Stored integration (config.json and the encrypted vault)

The config directory is BASECAMP_CLI_CONFIG_DIR when set, otherwise the
platform's per-user config location with a ``basecamp-cli`` subdirectory.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from basecamp_cli.errors import GenericError

APP_NAME = "basecamp-cli"
CONFIG_FILE = "config.json"
APP_CONFIG_DIR_ENV = "BASECAMP_CLI_CONFIG_DIR"


class Settings(BaseSettings):
    """Settings read from environment variables. Blank values count as unset."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    basecamp_cli_config_dir: str | None = None
    basecamp_client_id: str | None = None
    basecamp_client_secret: str | None = None
    basecamp_redirect_uri: str | None = None
    basecamp_cli_log_level: str = "WARNING"

    @field_validator(
        "basecamp_cli_config_dir",
        "basecamp_client_id",
        "basecamp_client_secret",
        "basecamp_redirect_uri",
        mode="before",
    )
    @classmethod
    def _blank_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("basecamp_cli_log_level", mode="before")
    @classmethod
    def _default_log_level(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "WARNING"
        return value


class IntegrationConfig(BaseModel):
    client_id: str | None = None
    redirect_uri: str | None = None


class SessionConfig(BaseModel):
    account_id: int | None = None
    account_name: str | None = None
    account_href: str | None = None
    updated_at: str | None = None


class AppConfig(BaseModel):
    """Non-secret configuration persisted in ``config.json``."""

    integration: IntegrationConfig = Field(default_factory=IntegrationConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)


def resolve_config_dir(settings: Settings | None = None) -> Path:
    """Return the configuration directory without creating it.

    Raises:
        GenericError: If no candidate location can be determined.
    """
    settings = settings or Settings()
    if settings.basecamp_cli_config_dir:
        return Path(settings.basecamp_cli_config_dir)

    if sys.platform == "win32":
        for var in ("APPDATA", "LOCALAPPDATA"):
            value = os.environ.get(var)
            if value:
                return Path(value) / APP_NAME

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_NAME

    home = os.environ.get("HOME")
    if home:
        return Path(home) / ".config" / APP_NAME

    raise GenericError(
        "Could not determine config directory. "
        f"Set HOME, XDG_CONFIG_HOME, or {APP_CONFIG_DIR_ENV}."
    )


def load_app_config(path: Path) -> AppConfig:
    """Read ``config.json``; a missing or blank file is an empty config.

    Raises:
        GenericError: If the file cannot be read or parsed.
    """
    if not path.exists():
        return AppConfig()

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise GenericError(f"Failed to read config {path}: {e}") from e

    if not raw.strip():
        return AppConfig()

    try:
        return AppConfig.model_validate_json(raw)
    except ValidationError as e:
        raise GenericError(f"Failed to read config {path}: {e}") from e


def save_app_config(path: Path, config: AppConfig) -> None:
    """Write ``config.json`` pretty-printed with owner-only permissions."""
    serialized = json.dumps(config.model_dump(), indent=2)
    try:
        path.write_text(serialized + "\n", encoding="utf-8")
    except OSError as e:
        raise GenericError(f"Failed to write config {path}: {e}") from e

    if sys.platform != "win32":
        try:
            path.chmod(0o600)
        except OSError as e:
            raise GenericError(
                f"Failed to set file permissions on {path}: {e}"
            ) from e
