"""Ordered credential providers for the Nomad access token and address.

Each provider either returns a complete ``NomadCredentials`` or raises
``CredentialUnavailable``. ``resolve_with_providers`` walks the list in
order and uses the first provider that succeeds.
"""
import logging
import os
from typing import Mapping, Optional, Sequence

from .gcp_client import GCPSecretClient
from .models import CredentialUnavailable, NomadCredentials, SecretReference
from .vault_client import VaultSecretClient

logger = logging.getLogger(__name__)


class VaultCredentialProvider:
    """Reads the Nomad token and address from one Vault KV path."""

    name = "vault"

    def __init__(self, client: VaultSecretClient, path: str,
                 token_field: str = "token", address_field: str = "addr"):
        self.client = client
        self.token_ref = SecretReference(path, token_field)
        self.address_ref = SecretReference(path, address_field)

    def nomad_credentials(self) -> NomadCredentials:
        if not self.client.address:
            raise CredentialUnavailable("Vault address is not set (VAULT_ADDR)", self.token_ref)
        if not self.client.token:
            raise CredentialUnavailable("Vault token is not set (VAULT_TOKEN)", self.token_ref)

        token = self.client.read_field(self.token_ref)
        address = self.client.read_field(self.address_ref)
        return NomadCredentials(token=token, address=address, source=self.name)


class EnvironmentCredentialProvider:
    """Reads NOMAD_TOKEN and NOMAD_ADDR from the process environment."""

    name = "env"

    def __init__(self, environ: Optional[Mapping[str, str]] = None,
                 token_var: str = "NOMAD_TOKEN", address_var: str = "NOMAD_ADDR"):
        self.environ = os.environ if environ is None else environ
        self.token_var = token_var
        self.address_var = address_var

    def nomad_credentials(self) -> NomadCredentials:
        token = (self.environ.get(self.token_var) or "").strip()
        address = (self.environ.get(self.address_var) or "").strip()
        missing = [var for var, value in ((self.token_var, token), (self.address_var, address)) if not value]
        if missing:
            raise CredentialUnavailable(f"environment variable(s) not set: {', '.join(missing)}")
        return NomadCredentials(token=token, address=address, source=self.name)


class GCPSecretManagerCredentialProvider:
    """Reads the Nomad token and address from two GCP Secret Manager secrets."""

    name = "gcp"

    def __init__(self, project_id: Optional[str], token_secret: str = "NOMAD_TOKEN",
                 address_secret: str = "NOMAD_ADDR", client: Optional[GCPSecretClient] = None):
        self.project_id = project_id
        self.token_secret = token_secret
        self.address_secret = address_secret
        self.client = client or GCPSecretClient()

    def nomad_credentials(self) -> NomadCredentials:
        if not self.project_id:
            raise CredentialUnavailable("GCP project ID is not set (GCP_PROJECT or gcp.project_id)")

        values = {}
        for secret_name in (self.token_secret, self.address_secret):
            value = self.client.fetch_secret(secret_name, self.project_id)
            if not value:
                raise CredentialUnavailable(
                    f"secret '{secret_name}' not found or empty in GCP project {self.project_id}"
                )
            values[secret_name] = value

        return NomadCredentials(
            token=values[self.token_secret],
            address=values[self.address_secret],
            source=self.name,
        )


def resolve_with_providers(providers: Sequence) -> NomadCredentials:
    """
    Return credentials from the first provider that succeeds.

    Raises:
        ValueError: If no providers are given
        CredentialUnavailable: If every provider fails; the message lists
            each provider's reason
    """
    if not providers:
        raise ValueError("At least one credential provider is required")

    failures = []
    for provider in providers:
        try:
            credentials = provider.nomad_credentials()
        except CredentialUnavailable as e:
            logger.warning(f"Credential source '{provider.name}' unavailable: {e}")
            failures.append(f"{provider.name}: {e}")
            continue
        logger.info(f"Using Nomad credentials from '{provider.name}'")
        return credentials

    raise CredentialUnavailable(
        "No credential source could provide Nomad credentials:\n  " + "\n  ".join(failures)
    )
