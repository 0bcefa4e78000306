"""Workflows for resolving deployment credentials."""
import logging
from typing import Any, Dict, List, Mapping, Optional

from ..domains.models import DashboardCredentials, NomadCredentials, SecretReference
from ..domains.providers import (
    EnvironmentCredentialProvider,
    GCPSecretManagerCredentialProvider,
    VaultCredentialProvider,
    resolve_with_providers,
)
from ..domains.vault_client import VaultSecretClient

logger = logging.getLogger(__name__)


def build_providers(config: Dict[str, Any], vault_client: Optional[VaultSecretClient] = None,
                    environ: Optional[Mapping[str, str]] = None) -> List:
    """Build credential providers in the order listed by ``credential_sources``."""
    secrets = config["secrets"]
    gcp = config["gcp"]

    providers = []
    for source in config["credential_sources"]:
        if source == "vault":
            providers.append(VaultCredentialProvider(
                vault_client or VaultSecretClient.from_config(config),
                secrets["nomad_path"],
                token_field=secrets["nomad_token_field"],
                address_field=secrets["nomad_address_field"],
            ))
        elif source == "env":
            providers.append(EnvironmentCredentialProvider(environ))
        elif source == "gcp":
            providers.append(GCPSecretManagerCredentialProvider(
                gcp.get("project_id"),
                token_secret=gcp["token_secret"],
                address_secret=gcp["address_secret"],
            ))
        else:
            raise ValueError(f"Unknown credential source: {source}")
    return providers


def resolve_nomad_credentials(config: Dict[str, Any], vault_client: Optional[VaultSecretClient] = None,
                              environ: Optional[Mapping[str, str]] = None) -> NomadCredentials:
    """
    Resolve the Nomad token and address.

    Raises:
        CredentialUnavailable: If no configured source yields both values
    """
    logger.debug(f"Credential sources: {', '.join(config['credential_sources'])}")
    return resolve_with_providers(build_providers(config, vault_client, environ))


def resolve_dashboard_credentials(client: VaultSecretClient, config: Dict[str, Any]) -> DashboardCredentials:
    path = config["secrets"]["dashboard_path"]
    return DashboardCredentials(
        username=client.read_field(SecretReference(path, "username")),
        password=client.read_field(SecretReference(path, "password")),
        auth=client.read_field(SecretReference(path, "auth")),
    )


def get_secret_field(client: VaultSecretClient, path: str, field: str) -> str:
    """
    Fetch a single field from Vault.

    Raises:
        CredentialUnavailable: If the field cannot be read or is empty
    """
    return client.read_field(SecretReference(path, field))
