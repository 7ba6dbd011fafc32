"""
Environment-driven settings.

Every value has an environment variable and a default; CLI flags override
what is read here.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sheetsync.errors import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass
class PostgresSettings:
    host: str = "localhost"
    port: int = 5432
    database: str = "sheetsync"
    user: str = "postgres"
    password: str | None = field(default=None, repr=False)
    pool_min: int = 1
    pool_max: int = 5

    def connection_config(self) -> dict[str, Any]:
        """Keyword arguments for PostgresConnectionPool."""
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password,
        }


@dataclass
class Settings:
    credentials_file: str | None = None
    postgres: PostgresSettings = field(default_factory=PostgresSettings)
    sync_interval_ms: int = 5000
    metrics_port: int = 0
    tracing_enabled: bool = False
    otlp_endpoint: str | None = None
    api_host: str = "127.0.0.1"
    api_port: int = 8000
    vault_addr: str | None = None
    vault_token: str | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """
        Read settings from the environment.

        Args:
            env: Mapping to read instead of os.environ

        Raises:
            ConfigurationError: A numeric variable is not an integer, or the
                pool bounds or interval are inconsistent
        """
        env = os.environ if env is None else env

        settings = cls(
            credentials_file=env.get("GOOGLE_APPLICATION_CREDENTIALS") or None,
            postgres=PostgresSettings(
                host=env.get("POSTGRES_HOST", "localhost"),
                port=_env_int(env, "POSTGRES_PORT", 5432),
                database=env.get("POSTGRES_DB", "sheetsync"),
                user=env.get("POSTGRES_USER", "postgres"),
                password=env.get("POSTGRES_PASSWORD") or None,
                pool_min=_env_int(env, "POSTGRES_POOL_MIN", 1),
                pool_max=_env_int(env, "POSTGRES_POOL_MAX", 5),
            ),
            sync_interval_ms=_env_int(env, "SYNC_INTERVAL_MS", 5000),
            metrics_port=_env_int(env, "METRICS_PORT", 0),
            tracing_enabled=_env_bool(env, "TRACING_ENABLED"),
            otlp_endpoint=env.get("OTLP_ENDPOINT") or None,
            api_host=env.get("API_HOST", "127.0.0.1"),
            api_port=_env_int(env, "API_PORT", 8000),
            vault_addr=env.get("VAULT_ADDR") or None,
            vault_token=env.get("VAULT_TOKEN") or None,
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.sync_interval_ms <= 0:
            raise ConfigurationError(
                f"SYNC_INTERVAL_MS must be positive, got {self.sync_interval_ms}"
            )
        if self.postgres.pool_min < 0 or self.postgres.pool_min > self.postgres.pool_max:
            raise ConfigurationError(
                f"Invalid pool bounds: min={self.postgres.pool_min}, max={self.postgres.pool_max}"
            )

    @property
    def use_vault(self) -> bool:
        return bool(self.vault_addr and self.vault_token)
