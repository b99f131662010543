"""
HashiCorp Vault client for ADC PRO secrets.

AppRole authentication, fail-fast on missing configuration. Every path is
scoped under 'adcpro/', so the service can only read its own secrets:

    adcpro/database   url
    adcpro/gateway    api_key, webhook_token
"""

import os
import logging
from typing import Dict, Iterable

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "adcpro"

# Singleton instance and cache
_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, str] = {}


class VaultClient:
    """Vault client with AppRole auth and env-based config."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
    ):
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        role_id = os.getenv("VAULT_ROLE_ID")
        secret_id = os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")
        if not role_id or not secret_id:
            raise ValueError("VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required")

        client_kwargs = {"url": self.vault_addr}
        if self.vault_namespace:
            client_kwargs["namespace"] = self.vault_namespace

        self.client = hvac.Client(**client_kwargs)
        self._login(role_id, secret_id)

        logger.info("Vault client initialized: %s", self.vault_addr)

    def _login(self, role_id: str, secret_id: str) -> None:
        try:
            auth_response = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except Exception as e:
            logger.error("AppRole authentication failed: %s", e)
            raise PermissionError(f"AppRole authentication failed: {e}")

        self.client.token = auth_response["auth"]["client_token"]
        if not self.client.is_authenticated():
            raise PermissionError("Vault authentication failed")

    def read(self, path: str) -> Dict[str, str]:
        """
        Read every field of a KV v2 secret under the 'adcpro/' prefix.

        Raises:
            PermissionError: Path not accessible or doesn't exist.
        """
        full_path = f"{_SECRET_PREFIX}/{path}"

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath:
            logger.error("Secret path not found: %s", full_path)
            raise PermissionError(f"Secret path '{full_path}' not found in Vault")
        except (Unauthorized, Forbidden) as e:
            logger.error("Access denied to secret %s: %s", full_path, e)
            raise PermissionError(f"Access denied to secret '{full_path}': {e}")

        return response["data"]["data"]

    def get_secrets(self, path: str, fields: Iterable[str]) -> Dict[str, str]:
        """
        Pick several fields from one secret, read in a single round trip.

        Raises:
            PermissionError: Path not accessible or doesn't exist.
            KeyError: A requested field is missing from the secret.
        """
        data = self.read(path)
        missing = [f for f in fields if f not in data]
        if missing:
            raise KeyError(
                f"Field(s) {', '.join(missing)} not found in secret '{_SECRET_PREFIX}/{path}'. "
                f"Available: {', '.join(data)}"
            )
        return {f: data[f] for f in fields}

    def get_secret(self, path: str, field: str) -> str:
        return self.get_secrets(path, [field])[field]


# Convenience functions


def _ensure_vault_client() -> VaultClient:
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


def _cached_secrets(path: str, fields: tuple[str, ...]) -> Dict[str, str]:
    keys = {f: f"{_SECRET_PREFIX}/{path}/{f}" for f in fields}

    if all(key in _secret_cache for key in keys.values()):
        return {f: _secret_cache[key] for f, key in keys.items()}

    values = _ensure_vault_client().get_secrets(path, fields)
    for f, key in keys.items():
        _secret_cache[key] = values[f]
    return values


def get_database_url() -> str:
    """PostgreSQL connection URL."""
    return _cached_secrets("database", ("url",))["url"]


def get_gateway_config() -> Dict[str, str]:
    """
    Payment gateway (Asaas) credentials.

    Returns:
        Dict with keys: api_key, webhook_token
    """
    return _cached_secrets("gateway", ("api_key", "webhook_token"))
