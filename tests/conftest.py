"""Shared pytest fixtures for all tests."""

import pytest

from privault.storage.credentials import MemoryKeystore
from privault.utils.core import build_services

PASSWORD = "correct-horse"


@pytest.fixture
def home(tmp_path):
    """Temporary vault home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def keystore():
    return MemoryKeystore()


@pytest.fixture
def services(home, keystore):
    """Fully wired vault components, not yet set up."""
    return build_services(home, keystore_backend=keystore)


@pytest.fixture
def unlocked(services):
    """Vault set up with PASSWORD and left unlocked."""
    services.cipher.setup(PASSWORD)
    return services


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the CLI's home and keystore at temporary directories."""
    home = tmp_path / "cli-home"
    monkeypatch.setenv("PRIVAULT_HOME", str(home))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg"))
    return home
