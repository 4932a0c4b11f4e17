"""Tests for configuration loading."""

from types import SimpleNamespace

import pytest

from bloodbank import config
from bloodbank.config import AppSettings, LakebaseSettings, Settings
from bloodbank.core.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "LAKEBASE_HOST",
        "LAKEBASE_PASSWORD",
        "BLOODBANK_APP_ID",
        "BLOODBANK_BACKEND",
        "BLOODBANK_INITIAL_AUTH_TOKEN",
        "BLOODBANK_MAX_CLIENTS",
        "BLOODBANK_CLIENT_IDLE_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir("/")


def test_defaults():
    app = AppSettings()
    assert app.app_id == "default-app-id"
    assert app.initial_auth_token is None
    assert app.collection_path == "artifacts/default-app-id/public/data/bloodBanks"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("BLOODBANK_APP_ID", "prod")
    monkeypatch.setenv("BLOODBANK_INITIAL_AUTH_TOKEN", "tok")

    app = Settings().app

    assert app.collection_path == "artifacts/prod/public/data/bloodBanks"
    assert app.initial_auth_token == "tok"


def test_missing_lakebase_host_is_config_error():
    with pytest.raises(ConfigError, match="LAKEBASE_HOST"):
        Settings().validate_backend()


def test_memory_backend_needs_no_host(monkeypatch):
    monkeypatch.setenv("BLOODBANK_BACKEND", "memory")
    Settings().validate_backend()


def test_lakebase_configured(monkeypatch):
    monkeypatch.setenv("LAKEBASE_HOST", "db.example.com")
    Settings().validate_backend()


def test_empty_app_id_rejected(monkeypatch):
    monkeypatch.setenv("BLOODBANK_BACKEND", "memory")
    monkeypatch.setenv("BLOODBANK_APP_ID", "")
    with pytest.raises(ConfigError):
        Settings().validate_backend()


def test_static_password_skips_credential_generation(monkeypatch, workspace):
    monkeypatch.setenv("LAKEBASE_PASSWORD", "s3cr3t")

    lakebase = LakebaseSettings(host="db.example.com")

    assert lakebase.get_password() == "s3cr3t"
    assert lakebase.endpoint_name == "projects/bloodbank/branches/main/endpoints/default"
    assert workspace.calls == 0


class FakeWorkspaceClient:
    calls = 0

    def __init__(self, host=None):
        self.postgres = self

    def generate_database_credential(self, endpoint):
        FakeWorkspaceClient.calls += 1
        if endpoint.endswith("/broken"):
            raise RuntimeError("permission denied")
        return SimpleNamespace(token=f"token-{FakeWorkspaceClient.calls}")


@pytest.fixture
def workspace(monkeypatch):
    FakeWorkspaceClient.calls = 0
    monkeypatch.setattr("databricks.sdk.WorkspaceClient", FakeWorkspaceClient)
    monkeypatch.setattr(config, "_credentials", config.LakebaseCredentialCache())
    return FakeWorkspaceClient


def test_generated_credential_is_reused(workspace):
    lakebase = LakebaseSettings(host="db.example.com")

    assert lakebase.get_password() == "token-1"
    assert lakebase.get_password() == "token-1"
    assert workspace.calls == 1


def test_credential_failure_gives_empty_password(workspace):
    lakebase = LakebaseSettings(host="db.example.com", endpoint_id="broken")
    assert lakebase.get_password() == ""


def test_client_limits_are_configurable(monkeypatch):
    monkeypatch.setenv("BLOODBANK_MAX_CLIENTS", "3")
    monkeypatch.setenv("BLOODBANK_CLIENT_IDLE_SECONDS", "60")

    app = AppSettings()

    assert app.max_clients == 3
    assert app.client_idle_seconds == 60
