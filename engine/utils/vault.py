"""
Secrets lookup: HashiCorp Vault first, process environment second.

    from utils.vault import secrets

    api_key = secrets.get("GEMINI_API_KEY", default="")
    secrets.refresh()

All keys for one deployment live in a single KV v2 entry,
``secret/docsum/<DOCSUM_REGION>/<DOCSUM_ENV>``. Without ``VAULT_ADDR`` the
client never touches the network and behaves as a plain env reader.
"""

import os
import logging
from typing import Any, Dict, Optional

import hvac

logger = logging.getLogger("DocSummaryBE")

_MISSING = object()


class VaultClient:
    def __init__(self, client: Optional[hvac.Client] = None):
        self.vault_addr = (os.getenv("VAULT_ADDR") or "").strip()
        self.region = os.getenv("DOCSUM_REGION", "default")
        self.env = os.getenv("DOCSUM_ENV", "dev")

        self._client = client
        # None until the first lookup; {} also when Vault is unreachable
        self._secrets: Optional[Dict[str, Any]] = None

    @property
    def secret_path(self) -> str:
        return f"docsum/{self.region}/{self.env}"

    def _login(self) -> Optional[hvac.Client]:
        if self._client is not None:
            return self._client
        if not self.vault_addr:
            return None

        client = hvac.Client(url=self.vault_addr)
        role_id, secret_id = os.getenv("VAULT_ROLE_ID"), os.getenv("VAULT_SECRET_ID")
        token = os.getenv("VAULT_TOKEN")
        try:
            if role_id and secret_id:
                client.auth.approle.login(role_id=role_id, secret_id=secret_id)
                logger.info("Vault login via AppRole (%s)", self.secret_path)
            elif token:
                client.token = token
                logger.info("Vault login via token (%s)", self.secret_path)
            else:
                logger.warning("VAULT_ADDR is set but no Vault credentials are configured")
                return None
        except Exception as e:
            logger.warning("Could not authenticate to Vault: %s", e)
            return None

        self._client = client
        return client

    def _fetch(self) -> Dict[str, Any]:
        client = self._login()
        if client is None:
            return {}
        try:
            response = client.secrets.kv.v2.read_secret_version(
                path=self.secret_path, mount_point="secret"
            )
        except Exception as e:
            logger.warning("Could not read %s from Vault: %s", self.secret_path, e)
            return {}
        data = response["data"]["data"]
        logger.debug("Loaded %d secrets from Vault (%s)", len(data), self.secret_path)
        return {k.lower(): v for k, v in data.items()}

    def get(self, key: str, default: Optional[str] = _MISSING) -> Any:
        """
        Look up ``key`` case-insensitively in Vault, then in the environment.

        Raises KeyError when nothing is found and no default was given.
        """
        if self._secrets is None:
            self._secrets = self._fetch()

        value = self._secrets.get(key.lower())
        if value not in (None, ""):
            return value

        for name in (key, key.upper(), key.lower()):
            env_value = os.getenv(name)
            if env_value:
                return env_value

        if default is _MISSING:
            raise KeyError(f"Secret '{key}' not found (Vault or env)")
        return default

    def refresh(self) -> None:
        self._secrets = self._fetch()
        logger.info("Secrets refreshed for %s", self.secret_path)


secrets = VaultClient()
