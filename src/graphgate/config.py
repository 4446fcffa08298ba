"""
Configuration loading and validation for graphgate.

Values come from (highest priority first):
- keyword overrides passed to load_config (CLI flags)
- a YAML file (graphgate.yaml by default, if present)
- GRAPHGATE_* environment variables and .env

Usage:
    from graphgate.config import load_config

    config = load_config("graphgate.yaml", port=4000)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from .core.errors import ConfigError

DEFAULT_CONFIG_FILE = "graphgate.yaml"


class SecurityConfig(BaseModel):
    """
    Keycloak adapter configuration.

    Accepts the keys of a keycloak.json adapter file ("auth-server-url",
    "realm-public-key") as well as their snake_case names.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    realm: str
    auth_server_url: str = Field(alias="auth-server-url")
    resource: str
    realm_public_key: Optional[str] = Field(default=None, alias="realm-public-key")
    verify_audience: bool = False
    algorithms: tuple[str, ...] = ("RS256",)

    @property
    def issuer(self) -> str:
        return f"{self.auth_server_url.rstrip('/')}/realms/{self.realm}"

    @property
    def jwks_url(self) -> str:
        return f"{self.issuer}/protocol/openid-connect/certs"

    @classmethod
    def from_keycloak_json(cls, path: Path | str) -> "SecurityConfig":
        """Load config from a keycloak.json adapter file."""
        path = Path(path)
        try:
            data = json.loads(path.read_text())
        except (OSError, ValueError) as e:
            raise ConfigError([f"Could not read Keycloak config {path}: {e}"]) from e
        return cls.model_validate(data)


class NotificationConfig(BaseModel):
    """UnifiedPush sender configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    url: str
    application_id: str = Field(alias="applicationId")
    master_secret: str = Field(alias="masterSecret")
    timeout: float = 10.0


class ServerConfig(BaseSettings):
    """Gateway settings. Loaded once, never mutated."""

    model_config = SettingsConfigDict(
        env_prefix="GRAPHGATE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Network
    host: str = "0.0.0.0"
    port: int = Field(default=4000, ge=0, le=65535)

    # Storage
    database_url: str = "sqlite+aiosqlite:///./graphgate.db"
    sql_echo: bool = False

    # Optional services
    security: Optional[SecurityConfig] = None
    notifications: Optional[NotificationConfig] = None
    pubsub_url: Optional[str] = None

    # HTTP surface
    playground: bool = True
    graphql_path: str = "/graphql"
    health_path: str = "/health"
    metrics_path: str = "/metrics"
    static_dir: str = "website"
    cors_origins: tuple[str, ...] = ("*",)

    # Uploads
    max_file_size: int = 10_000_000
    max_files: int = 5

    log_level: str = "INFO"

    @field_validator("security", mode="before")
    @classmethod
    def _load_keycloak_file(cls, value: Any) -> Any:
        # A string is a path to a keycloak.json adapter file
        if isinstance(value, (str, Path)):
            return SecurityConfig.from_keycloak_json(value)
        return value

    @field_validator("graphql_path", "health_path", "metrics_path")
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("paths must start with '/'")
        return value.rstrip("/") or "/"

    def to_dict(self, mask_secrets: bool = True) -> dict[str, Any]:
        """Convert config to a plain dict, hiding credentials by default."""
        data = self.model_dump(mode="json")
        if mask_secrets:
            data["database_url"] = mask_url(self.database_url)
            if data.get("notifications"):
                data["notifications"]["master_secret"] = "***"
            if data.get("pubsub_url"):
                data["pubsub_url"] = mask_url(self.pubsub_url)
        return data


def mask_url(url: str) -> str:
    """Render a connection URL with its password hidden."""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<invalid url>"


def load_config(path: Path | str | None = None, **overrides: Any) -> ServerConfig:
    """
    Load and validate server configuration.

    Args:
        path: YAML config file. Defaults to ./graphgate.yaml when it exists.
        **overrides: Values that win over the file and the environment.
            None values are ignored.

    Returns:
        Frozen ServerConfig

    Raises:
        ConfigError: If the file is missing/invalid or validation fails
    """
    data: dict[str, Any] = {}

    config_path = Path(path) if path else Path(DEFAULT_CONFIG_FILE)
    if config_path.exists():
        try:
            loaded = yaml.safe_load(config_path.read_text())
        except yaml.YAMLError as e:
            raise ConfigError([f"Could not parse {config_path}: {e}"]) from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError([f"{config_path} must contain a mapping"])
        data.update(loaded or {})
    elif path:
        raise ConfigError([f"Config file not found: {config_path}"])

    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return ServerConfig(**data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigError(errors) from e
