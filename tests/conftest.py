"""Shared fixtures: an isolated home directory and an in-memory Vault."""
import copy
from pathlib import Path
from unittest import mock

import pytest
from hvac.exceptions import InvalidPath

from vault_nomad_deploy.secrets.domains import preferences
from vault_nomad_deploy.secrets.domains.config_loader import DEFAULT_CONFIG
from vault_nomad_deploy.secrets.domains.vault_client import VaultSecretClient


@pytest.fixture
def temp_home(tmp_path, monkeypatch):
    """Fixture to create a temporary home directory for testing."""
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setattr(Path, "home", lambda: fake_home)

    fake_config_dir = fake_home / ".config" / "vault-nomad-deploy"
    monkeypatch.setattr(preferences, "PREFERENCES_DIR", fake_config_dir)
    monkeypatch.setattr(preferences, "PREFERENCES_FILE", fake_config_dir / "preferences.json")

    return fake_home


@pytest.fixture
def config():
    """Default configuration with a Vault token, as load_config would return it."""
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["vault"]["token"] = "vault-token"
    return cfg


class FakeKV:
    """Minimal stand-in for hvac's KV v2 API backed by a dict."""

    def __init__(self, store):
        self.store = store
        self.writes = []

    def read_secret_version(self, path, mount_point="secret", raise_on_deleted_version=None):
        if path not in self.store:
            raise InvalidPath(f"no secret at {mount_point}/{path}")
        return {"data": {"data": dict(self.store[path]), "metadata": {"version": 1}}}

    def create_or_update_secret(self, path, secret, mount_point="secret"):
        self.writes.append((path, dict(secret)))
        self.store[path] = dict(secret)
        return {"data": {"version": 1}}


@pytest.fixture
def vault_store():
    return {}


@pytest.fixture
def hvac_client(vault_store):
    """MagicMock hvac client whose KV v2 engine reads and writes ``vault_store``."""
    client = mock.MagicMock()
    client.secrets.kv.v2 = FakeKV(vault_store)
    client.sys.is_initialized.return_value = True
    client.sys.is_sealed.return_value = False
    client.auth.token.create.return_value = {"auth": {"client_token": "hvs.traefik"}}
    return client


@pytest.fixture
def vault(hvac_client):
    return VaultSecretClient("https://vault.example", "vault-token", client=hvac_client)
