"""Configuration management for the Blood Bank service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Literal

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bloodbank.core.errors import ConfigError

logger = structlog.get_logger()

# Database credentials are valid for an hour; refresh a little early
CREDENTIAL_LIFETIME = timedelta(minutes=55)


@dataclass
class _Credential:
    endpoint_name: str
    token: str
    expires_at: datetime


class LakebaseCredentialCache:
    """Generates Lakebase database credentials and reuses them until expiry."""

    def __init__(self):
        self._credential: _Credential | None = None

    def get_token(self, endpoint_name: str, workspace_host: str | None = None) -> str | None:
        """Return a database credential for the endpoint, or None if generation fails."""
        cached = self._credential
        if (
            cached is not None
            and cached.endpoint_name == endpoint_name
            and datetime.now() < cached.expires_at
        ):
            return cached.token

        try:
            from databricks.sdk import WorkspaceClient

            w = WorkspaceClient(host=workspace_host) if workspace_host else WorkspaceClient()
            cred = w.postgres.generate_database_credential(endpoint=endpoint_name)
        except Exception as e:
            logger.error("lakebase_credential_failed", endpoint=endpoint_name, error=str(e))
            return None

        self._credential = _Credential(
            endpoint_name=endpoint_name,
            token=cred.token,
            expires_at=datetime.now() + CREDENTIAL_LIFETIME,
        )
        logger.info("lakebase_credential_generated", endpoint=endpoint_name)
        return cred.token


_credentials = LakebaseCredentialCache()


class DatabricksSettings(BaseSettings):
    """Workspace used for token sign-in and database credentials."""

    model_config = SettingsConfigDict(
        env_prefix="DATABRICKS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = ""


class LakebaseSettings(BaseSettings):
    """Lakebase (Postgres) document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LAKEBASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = ""
    port: int = 5432
    database: str = "postgres"
    user: str = "lakebase"
    # Static password; a workspace credential is generated when empty
    password: str = ""
    sslmode: str = "require"
    project_id: str = "bloodbank"
    branch_id: str = "main"
    endpoint_id: str = "default"

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    @property
    def endpoint_name(self) -> str:
        return f"projects/{self.project_id}/branches/{self.branch_id}/endpoints/{self.endpoint_id}"

    def get_password(self, workspace_host: str | None = None) -> str:
        if self.password:
            return self.password
        return _credentials.get_token(self.endpoint_name, workspace_host) or ""


class AppSettings(BaseSettings):
    """Deployment settings for the blood bank application."""

    model_config = SettingsConfigDict(
        env_prefix="BLOODBANK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Namespace for the shared collection path
    app_id: str = "default-app-id"
    # Pre-issued session token; anonymous sign-in when unset
    initial_auth_token: str | None = None
    backend: Literal["lakebase", "memory"] = "lakebase"
    # Seconds the API waits for the first inventory snapshot after sign-in
    snapshot_wait_seconds: float = 10.0
    # Live clients kept by the API; the least recently used are closed first
    max_clients: int = Field(default=200, ge=1)
    # Clients idle this long are closed when the next one is created
    client_idle_seconds: float = 1800.0

    @property
    def collection_path(self) -> str:
        return f"artifacts/{self.app_id}/public/data/bloodBanks"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    @property
    def lakebase(self) -> LakebaseSettings:
        return LakebaseSettings()

    @property
    def databricks(self) -> DatabricksSettings:
        return DatabricksSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()

    def validate_backend(self) -> None:
        """Ensure the configured backend can be reached.

        Raises:
            ConfigError: If the Lakebase backend is selected but has no host
        """
        app = self.app
        if not app.app_id:
            raise ConfigError("BLOODBANK_APP_ID must not be empty.")
        if app.backend == "lakebase" and not self.lakebase.is_configured:
            raise ConfigError(
                "Lakebase backend selected but LAKEBASE_HOST is not set."
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure structlog to filter below the given level name."""
    level_name = (level or get_settings().log_level).upper()
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level_name)
        ),
    )
