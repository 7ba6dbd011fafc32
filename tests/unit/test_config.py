"""
Unit tests for environment-driven settings
"""

import pytest

from sheetsync.config import PostgresSettings, Settings
from sheetsync.errors import ConfigurationError


class TestSettingsFromEnv:
    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.credentials_file is None
        assert settings.postgres.host == "localhost"
        assert settings.postgres.port == 5432
        assert settings.postgres.database == "sheetsync"
        assert settings.postgres.password is None
        assert settings.sync_interval_ms == 5000
        assert settings.metrics_port == 0
        assert settings.tracing_enabled is False
        assert settings.api_host == "127.0.0.1"
        assert settings.api_port == 8000
        assert settings.use_vault is False

    def test_reads_variables(self):
        settings = Settings.from_env(
            {
                "GOOGLE_APPLICATION_CREDENTIALS": "/keys/sa.json",
                "POSTGRES_HOST": "db",
                "POSTGRES_PORT": "6543",
                "POSTGRES_DB": "sheets",
                "POSTGRES_USER": "sync",
                "POSTGRES_PASSWORD": "pw",
                "POSTGRES_POOL_MIN": "2",
                "POSTGRES_POOL_MAX": "8",
                "SYNC_INTERVAL_MS": "1500",
                "METRICS_PORT": "9108",
                "TRACING_ENABLED": "yes",
                "OTLP_ENDPOINT": "http://otel:4317",
                "API_PORT": "9000",
                "VAULT_ADDR": "https://vault",
                "VAULT_TOKEN": "t",
            }
        )

        assert settings.credentials_file == "/keys/sa.json"
        assert settings.postgres.connection_config() == {
            "host": "db",
            "port": 6543,
            "database": "sheets",
            "user": "sync",
            "password": "pw",
        }
        assert (settings.postgres.pool_min, settings.postgres.pool_max) == (2, 8)
        assert settings.sync_interval_ms == 1500
        assert settings.metrics_port == 9108
        assert settings.tracing_enabled is True
        assert settings.otlp_endpoint == "http://otel:4317"
        assert settings.api_port == 9000
        assert settings.use_vault is True

    def test_empty_strings_fall_back_to_defaults(self):
        settings = Settings.from_env({"POSTGRES_PORT": "", "POSTGRES_PASSWORD": ""})

        assert settings.postgres.port == 5432
        assert settings.postgres.password is None

    def test_non_integer_rejected(self):
        with pytest.raises(ConfigurationError, match="POSTGRES_PORT"):
            Settings.from_env({"POSTGRES_PORT": "abc"})

    @pytest.mark.parametrize("value", ["0", "-5"])
    def test_non_positive_interval_rejected(self, value):
        with pytest.raises(ConfigurationError, match="SYNC_INTERVAL_MS"):
            Settings.from_env({"SYNC_INTERVAL_MS": value})

    def test_inconsistent_pool_bounds_rejected(self):
        with pytest.raises(ConfigurationError, match="pool bounds"):
            Settings.from_env({"POSTGRES_POOL_MIN": "6", "POSTGRES_POOL_MAX": "2"})

    def test_reads_os_environ_by_default(self, monkeypatch):
        monkeypatch.setenv("POSTGRES_DB", "from_env")
        assert Settings.from_env().postgres.database == "from_env"


def test_password_hidden_from_repr():
    settings = Settings(postgres=PostgresSettings(password="hunter2"), vault_token="s.vault-token-123")
    assert "hunter2" not in repr(settings)
    assert "s.vault-token-123" not in repr(settings)
