"""Shared fixtures for basecamp-cli tests."""

import socket
from pathlib import Path

import pytest

from basecamp_cli.config import Settings
from basecamp_cli.integration import IntegrationStore
from tests.fakes import MemoryKeystore

# Small scrypt work factor keeps vault tests fast
TEST_WORK_FACTOR = 10

ENV_VARS = (
    "BASECAMP_CLI_CONFIG_DIR",
    "BASECAMP_CLIENT_ID",
    "BASECAMP_CLIENT_SECRET",
    "BASECAMP_REDIRECT_URI",
    "BASECAMP_CLI_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "config"
    directory.mkdir()
    return directory


@pytest.fixture
def keystore() -> MemoryKeystore:
    return MemoryKeystore()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def store(config_dir: Path, keystore: MemoryKeystore, settings: Settings) -> IntegrationStore:
    return IntegrationStore(config_dir, keystore, settings, work_factor=TEST_WORK_FACTOR)


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port: int = sock.getsockname()[1]
    return port
