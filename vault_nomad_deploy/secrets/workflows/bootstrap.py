"""Workflow that seeds Vault with the Traefik deployment secrets."""
import base64
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import bcrypt
import requests
from hvac.exceptions import VaultError

from ...deploy.domains.models import SubmissionFailed
from ...deploy.domains.nomad_client import NomadClient
from ..domains.vault_client import VaultSecretClient

logger = logging.getLogger(__name__)

POLICY_TEMPLATE = """# Traefik Vault Policy
path "{data}/*" {{
  capabilities = ["read", "list"]
}}

path "{data}/certificates/*" {{
  capabilities = ["create", "read", "update", "delete", "list"]
}}

path "{metadata}/*" {{
  capabilities = ["read", "list"]
}}
"""


@dataclass
class BootstrapReport:
    """What a setup run created, reused and skipped."""
    created: List[str] = field(default_factory=list)
    reused: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    dashboard_username: Optional[str] = None
    dashboard_password: Optional[str] = None


def render_policy(kv_mount: str, kv_version: int, prefix: str) -> str:
    if kv_version == 2:
        data = f"{kv_mount}/data/{prefix}"
        metadata = f"{kv_mount}/metadata/{prefix}"
    else:
        data = metadata = f"{kv_mount}/{prefix}"
    return POLICY_TEMPLATE.format(data=data, metadata=metadata)


def generate_password() -> str:
    """Base64 encoding of 32 random bytes, like ``openssl rand -base64 32``."""
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


def htpasswd_entry(username: str, password: str) -> str:
    """
    Build a bcrypt htpasswd line for Traefik basic auth.

    Every ``$`` is doubled so the value survives Nomad/Traefik label
    interpolation.
    """
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("ascii")
    # htpasswd -B emits the $2y$ prefix
    if hashed.startswith("$2b$"):
        hashed = "$2y$" + hashed[4:]
    return f"{username}:{hashed}".replace("$", "$$")


def _setup_nomad_token(vault: VaultSecretClient, nomad_client: Optional[NomadClient],
                       config: Dict[str, Any], report: BootstrapReport) -> None:
    path = config["secrets"]["nomad_path"]
    existing = vault.read_secret(path)
    if existing.get(config["secrets"]["nomad_token_field"]):
        logger.info("Nomad token already exists in Vault")
        report.reused.append(path)
        return

    if nomad_client is None:
        report.warnings.append(
            "Could not create Nomad token automatically (no Nomad credentials). "
            f"Create one manually and store it in Vault at {path}"
        )
        return

    logger.info("No existing Nomad token found in Vault, creating new one...")
    try:
        token = nomad_client.create_acl_token(config["setup"]["nomad_token_name"])
    except SubmissionFailed as e:
        report.warnings.append(f"Could not create Nomad token automatically: {e}")
        return

    vault.write_secret(path, {
        config["secrets"]["nomad_token_field"]: token,
        config["secrets"]["nomad_address_field"]: nomad_client.address,
    })
    report.created.append(path)


def _setup_dashboard(vault: VaultSecretClient, config: Dict[str, Any], report: BootstrapReport) -> None:
    path = config["secrets"]["dashboard_path"]
    if vault.read_secret(path).get("username"):
        logger.info("Dashboard credentials already exist in Vault")
        report.reused.append(path)
        return

    username = config["setup"]["dashboard_user"]
    password = generate_password()
    vault.write_secret(path, {
        "username": username,
        "password": password,
        "auth": htpasswd_entry(username, password),
    })
    report.created.append(path)
    report.dashboard_username = username
    report.dashboard_password = password


def _setup_certificates(vault: VaultSecretClient, config: Dict[str, Any], report: BootstrapReport) -> None:
    path = config["secrets"]["certificates_path"]
    try:
        vault.write_secret(path, {
            "storage_type": "vault",
            "acme_email": config["setup"]["acme_email"],
            "created_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        })
    except (VaultError, requests.exceptions.RequestException) as e:
        report.warnings.append(f"Could not configure certificate storage at {path}: {e}")
        return
    report.created.append(path)


def bootstrap_vault(vault: VaultSecretClient, config: Dict[str, Any],
                    nomad_client: Optional[NomadClient] = None) -> BootstrapReport:
    """
    Store the Nomad token, dashboard credentials, certificate settings,
    Traefik policy and Traefik Vault token.

    Existing Nomad and dashboard secrets are left untouched.

    Args:
        vault: Client authenticated with a token allowed to write secrets,
            policies and tokens
        config: Loaded configuration
        nomad_client: Client with a management token, used to create the
            Nomad ACL token for CI; without it that step is skipped

    Raises:
        VaultUnavailable: If Vault is unreachable or sealed
    """
    vault.check_status()
    report = BootstrapReport()
    setup = config["setup"]

    _setup_nomad_token(vault, nomad_client, config, report)
    _setup_dashboard(vault, config, report)
    _setup_certificates(vault, config, report)

    prefix = config["secrets"]["nomad_path"].split("/")[0]
    vault.write_policy(setup["policy_name"], render_policy(vault.kv_mount, vault.kv_version, prefix))
    report.created.append(f"policy:{setup['policy_name']}")

    token_path = config["secrets"]["vault_token_path"]
    traefik_token = vault.create_periodic_token(setup["policy_name"], setup["token_period"])
    vault.write_secret(token_path, {"token": traefik_token})
    report.created.append(token_path)

    for warning in report.warnings:
        logger.warning(warning)
    return report
