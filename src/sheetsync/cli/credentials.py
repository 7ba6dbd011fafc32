"""
Settings resolution for the CLI.

Environment settings are overlaid with command-line flags; PostgreSQL
credentials optionally come from Vault instead.
"""

import argparse
import logging

import requests

from sheetsync.config import Settings
from sheetsync.errors import ConfigurationError
from utils.vault_client import VaultClient

logger = logging.getLogger(__name__)


def resolve_settings(args: argparse.Namespace, settings: Settings | None = None) -> Settings:
    """
    Apply CLI flags on top of environment settings

    Args:
        args: Parsed command-line arguments
        settings: Base settings (default: Settings.from_env())

    Returns:
        Settings with flags and Vault credentials applied

    Raises:
        ConfigurationError: Vault is requested but unreachable or incomplete
    """
    settings = settings or Settings.from_env()
    pg = settings.postgres

    if getattr(args, "credentials_file", None):
        settings.credentials_file = args.credentials_file
    if getattr(args, "metrics_port", None) is not None:
        settings.metrics_port = args.metrics_port

    if getattr(args, "use_vault", False):
        try:
            creds = VaultClient(
                vault_addr=settings.vault_addr, vault_token=settings.vault_token
            ).get_postgres_credentials()
        except (ValueError, requests.RequestException) as e:
            raise ConfigurationError(f"Failed to fetch credentials from Vault: {e}") from e

        pg.host = creds["host"]
        pg.port = creds["port"]
        pg.database = creds["database"]
        pg.user = creds["user"]
        pg.password = creds["password"]
        logger.info("Using PostgreSQL credentials from Vault")

    pg.host = getattr(args, "pg_host", None) or pg.host
    pg.port = getattr(args, "pg_port", None) or pg.port
    pg.database = getattr(args, "pg_database", None) or pg.database
    pg.user = getattr(args, "pg_user", None) or pg.user
    pg.password = getattr(args, "pg_password", None) or pg.password

    return settings


def require_credentials_file(settings: Settings) -> None:
    if not settings.credentials_file:
        raise ConfigurationError(
            "Google service account file not provided. Set GOOGLE_APPLICATION_CREDENTIALS "
            "or pass --credentials-file."
        )


def require_store_settings(settings: Settings) -> None:
    """Fail early when a command needs both stores and a credential is missing."""
    require_credentials_file(settings)
    if not settings.postgres.password:
        raise ConfigurationError(
            "PostgreSQL password not provided. Set POSTGRES_PASSWORD, pass --pg-password "
            "or use --use-vault."
        )
