"""
HashiCorp Vault client for the PostgreSQL store credentials.

Reads the KV v2 secret at secret/database/postgresql over the HTTP API.
"""

import logging
import os
import re
from typing import Any

import requests

logger = logging.getLogger(__name__)

_SAFE_PATH = re.compile(r"^[a-zA-Z0-9/_-]+$")

POSTGRES_SECRET_PATH = "secret/database/postgresql"
REQUIRED_POSTGRES_FIELDS = ("host", "database", "username", "password")


class VaultClient:
    """Minimal KV v2 reader."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_token: str | None = None,
        namespace: str | None = None,
        timeout: float = 10.0,
    ):
        """
        Args:
            vault_addr: Vault server address (default: VAULT_ADDR)
            vault_token: Vault token (default: VAULT_TOKEN)
            namespace: Vault Enterprise namespace
            timeout: Request timeout in seconds

        Raises:
            ValueError: If the address or token is missing
        """
        vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        vault_token = vault_token or os.getenv("VAULT_TOKEN")

        if not vault_addr:
            raise ValueError("Vault address not provided. Set VAULT_ADDR or pass vault_addr.")
        if not vault_token:
            raise ValueError("Vault token not provided. Set VAULT_TOKEN or pass vault_token.")

        self.vault_addr = vault_addr.rstrip("/")
        self.timeout = timeout
        self.headers = {"X-Vault-Token": vault_token, "Content-Type": "application/json"}
        if namespace:
            self.headers["X-Vault-Namespace"] = namespace

        logger.info(f"Initialized Vault client for {self.vault_addr}")

    @staticmethod
    def _kv2_path(secret_path: str) -> str:
        if not secret_path or ".." in secret_path or not _SAFE_PATH.match(secret_path):
            raise ValueError(f"Invalid secret_path: {secret_path!r}")

        if "/data/" in secret_path:
            return secret_path
        mount, _, rest = secret_path.partition("/")
        return f"{mount}/data/{rest}" if rest else f"{mount}/data"

    def get_secret(self, secret_path: str) -> dict[str, Any]:
        """
        Fetch the data of a KV v2 secret.

        Raises:
            ValueError: If the path is invalid, missing or holds no data
            requests.RequestException: If Vault cannot be reached
        """
        path = self._kv2_path(secret_path)
        url = f"{self.vault_addr}/v1/{path}"
        logger.debug(f"Fetching secret from: {url}")

        response = requests.get(url, headers=self.headers, timeout=self.timeout)
        if response.status_code == 404:
            raise ValueError(f"Secret not found at path: {path}")
        response.raise_for_status()

        secret_data = response.json().get("data", {}).get("data", {})
        if not secret_data:
            raise ValueError(f"No data found in secret at path: {path}")

        return secret_data

    def get_postgres_credentials(self) -> dict[str, Any]:
        """
        PostgreSQL credentials in psycopg2 keyword form.

        Returns:
            host, port, database, user and password; port defaults to 5432
        """
        secret = self.get_secret(POSTGRES_SECRET_PATH)

        missing = [name for name in REQUIRED_POSTGRES_FIELDS if name not in secret]
        if missing:
            raise ValueError(f"Missing required fields in secret: {', '.join(missing)}")

        logger.info("Fetched postgresql credentials from Vault")
        return {
            "host": secret["host"],
            "port": int(secret.get("port", 5432)),
            "database": secret["database"],
            "user": secret["username"],
            "password": secret["password"],
        }

    def health_check(self) -> bool:
        """True when Vault is initialized and unsealed."""
        try:
            response = requests.get(f"{self.vault_addr}/v1/sys/health", timeout=5)
        except requests.RequestException as e:
            logger.error(f"Vault health check failed: {e}")
            return False
        # 429 and 473 are healthy standbys
        return response.status_code in (200, 429, 472, 473)
