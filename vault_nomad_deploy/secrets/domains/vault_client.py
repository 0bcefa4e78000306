"""HashiCorp Vault KV client wrapper."""
import logging
from typing import Any, Dict, Optional

import hvac
import requests
from hvac.exceptions import InvalidPath, VaultError

from .models import CredentialUnavailable, SecretReference, VaultUnavailable

logger = logging.getLogger(__name__)


class VaultSecretClient:
    """Wrapper around an hvac client scoped to one KV mount."""

    def __init__(self, address: str, token: Optional[str], kv_mount: str = "kv",
                 kv_version: int = 2, verify: bool = True, timeout: float = 30,
                 client: Optional[hvac.Client] = None):
        self.address = address
        self.kv_mount = kv_mount
        self.kv_version = kv_version
        self.token = token
        self._verify = verify
        self._timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "VaultSecretClient":
        vault = config["vault"]
        return cls(
            address=vault["address"],
            token=vault.get("token"),
            kv_mount=vault["kv_mount"],
            kv_version=vault["kv_version"],
            verify=vault["verify"],
            timeout=vault["timeout"],
        )

    @property
    def client(self) -> hvac.Client:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = hvac.Client(
                url=self.address,
                token=self.token,
                verify=self._verify,
                timeout=self._timeout,
            )
        return self._client

    def _kv(self):
        if self.kv_version == 1:
            return self.client.secrets.kv.v1
        return self.client.secrets.kv.v2

    def read_secret(self, path: str) -> Dict[str, Any]:
        """
        Read every field stored at a KV path.

        Returns:
            The secret's fields, or an empty dict if nothing is stored at the path

        Raises:
            VaultError: On permission or server errors
            requests.RequestException: On transport errors
        """
        try:
            if self.kv_version == 1:
                response = self._kv().read_secret(path=path, mount_point=self.kv_mount)
                data = response.get("data")
            else:
                response = self._kv().read_secret_version(
                    path=path,
                    mount_point=self.kv_mount,
                    raise_on_deleted_version=True,
                )
                data = response.get("data", {}).get("data")
        except InvalidPath:
            return {}
        return data or {}

    def read_field(self, ref: SecretReference) -> str:
        """
        Read one field from Vault.

        Surrounding whitespace is stripped; the value is otherwise returned
        unchanged. Secret values are never logged.

        Raises:
            CredentialUnavailable: If the lookup errors, or the field is
                missing or empty
        """
        logger.debug(f"Reading '{ref.field}' from {self.kv_mount}/{ref.path}")
        try:
            data = self.read_secret(ref.path)
        except (VaultError, requests.exceptions.RequestException) as e:
            raise CredentialUnavailable(f"Vault lookup failed: {e}", ref) from e

        if not data:
            raise CredentialUnavailable("no secret stored at this path", ref)

        value = data.get(ref.field)
        if value is None:
            raise CredentialUnavailable("field is missing", ref)

        value = str(value).strip()
        if not value:
            raise CredentialUnavailable("field is empty", ref)
        return value

    def write_secret(self, path: str, data: Dict[str, Any]) -> None:
        """Store all fields of a secret in one write, replacing the previous version."""
        logger.info(f"Storing {', '.join(sorted(data))} in Vault at {self.kv_mount}/{path}")
        self._kv().create_or_update_secret(path=path, secret=data, mount_point=self.kv_mount)

    def check_status(self) -> None:
        """
        Verify Vault is reachable, initialized and unsealed.

        Raises:
            VaultUnavailable: If any of those checks fails
        """
        try:
            initialized = self.client.sys.is_initialized()
            sealed = self.client.sys.is_sealed()
        except (VaultError, requests.exceptions.RequestException) as e:
            raise VaultUnavailable(f"Cannot connect to Vault at {self.address}: {e}") from e

        if not initialized:
            raise VaultUnavailable(f"Vault at {self.address} is not initialized")
        if sealed:
            raise VaultUnavailable(f"Vault at {self.address} is sealed")

    def write_policy(self, name: str, policy: str) -> None:
        logger.info(f"Writing Vault policy '{name}'")
        self.client.sys.create_or_update_policy(name=name, policy=policy)

    def create_periodic_token(self, policy: str, period: str) -> str:
        """Create a periodic token bound to one policy and return its client token."""
        response = self.client.auth.token.create(policies=[policy], period=period)
        return response["auth"]["client_token"]
