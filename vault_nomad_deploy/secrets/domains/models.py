"""Domain models for secret management."""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SecretReference:
    """A single field at a KV path."""
    path: str
    field: str

    def __str__(self) -> str:
        return f"{self.path}#{self.field}"


@dataclass
class NomadCredentials:
    """Resolved orchestrator credential pair."""
    token: str
    address: str
    source: str = "vault"  # "vault", "env" or "gcp"

    def __repr__(self) -> str:
        return f"NomadCredentials(address={self.address!r}, source={self.source!r})"


@dataclass
class DashboardCredentials:
    """Traefik dashboard basic-auth credentials."""
    username: str
    password: str
    auth: str

    def __repr__(self) -> str:
        return f"DashboardCredentials(username={self.username!r})"


class CredentialUnavailable(Exception):
    """A required secret could not be read or was empty."""

    def __init__(self, reason: str, reference: Optional[SecretReference] = None):
        self.reason = reason
        self.reference = reference
        if reference is not None:
            message = f"Failed to retrieve '{reference.field}' from {reference.path}: {reason}"
        else:
            message = reason
        super().__init__(message)


class VaultUnavailable(Exception):
    """Vault cannot be reached or is sealed."""
    pass
