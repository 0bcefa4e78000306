"""Configuration loader for vault-nomad-deploy."""
import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .preferences import get_preference

logger = logging.getLogger(__name__)

CREDENTIAL_SOURCES = ("vault", "env", "gcp")

DEFAULT_CONFIG: Dict[str, Any] = {
    "vault": {
        "address": "https://vault.cloudya.net",
        "kv_mount": "kv",
        "kv_version": 2,
        "verify": True,
        "timeout": 30,
    },
    "secrets": {
        "nomad_path": "traefik/nomad",
        "nomad_token_field": "token",
        "nomad_address_field": "addr",
        "dashboard_path": "traefik/dashboard",
        "certificates_path": "traefik/certificates",
        "vault_token_path": "traefik/vault",
    },
    "nomad": {
        "address": "https://nomad.cloudya.net",
        "token_header": "X-Nomad-Token",
        "job_file": "traefik.nomad",
        "job_name": "traefik",
        "binary": "nomad",
        "timeout": 30,
    },
    "status_check": {
        "poll_interval": 10,
        "max_attempts": 6,
        "fail_on_not_running": False,
    },
    "credential_sources": ["vault"],
    "gcp": {
        "project_id": None,
        "token_secret": "NOMAD_TOKEN",
        "address_secret": "NOMAD_ADDR",
    },
    "setup": {
        "dashboard_user": "admin",
        "acme_email": "admin@cloudya.net",
        "policy_name": "traefik-policy",
        "token_period": "768h",
        "nomad_token_name": "github-actions-traefik",
    },
}


class ConfigError(Exception):
    """Configuration error exception."""
    pass


def default_config_path() -> Path:
    return Path.home() / ".config" / "vault-nomad-deploy" / "config.yml"


def _get_config_path(explicit_path: Optional[str] = None) -> Optional[str]:
    """
    Resolve the config file path.

    Priority order:
    1. Explicit path (``--config``), which must exist
    2. User preference (~/.config/vault-nomad-deploy/preferences.json)
    3. Default location: ~/.config/vault-nomad-deploy/config.yml

    Returns:
        Absolute path to the config file, or None when no file is present
        and built-in defaults should be used

    Raises:
        ConfigError: If an explicit path was given and does not exist
    """
    if explicit_path:
        config_path = Path(explicit_path).expanduser()
        if not config_path.is_file():
            raise ConfigError(f"Configuration file not found at: {config_path}")
        return str(config_path.resolve())

    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    logger.debug("No configuration file found, using built-in defaults")
    return None


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_config_file(config_path: str) -> Dict[str, Any]:
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if not config:
        raise ConfigError(f"Config file at {config_path} is empty")
    if not isinstance(config, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping at the top level")

    for section in ("vault", "secrets", "nomad", "status_check", "gcp", "setup"):
        if section in config and not isinstance(config[section], dict):
            raise ConfigError(f"'{section}' in config at {config_path} must be a mapping")

    if "token" in config.get("vault", {}):
        raise ConfigError(
            f"'vault.token' found in config at {config_path}\n"
            f"The Vault token must be supplied through the VAULT_TOKEN environment variable."
        )

    return config


def _positive_number(config: Dict[str, Any], section: str, key: str, integer: bool = False) -> None:
    value = config[section][key]
    valid_types = (int,) if integer else (int, float)
    if isinstance(value, bool) or not isinstance(value, valid_types) or value <= 0:
        kind = "positive integer" if integer else "positive number"
        raise ConfigError(f"'{section}.{key}' must be a {kind}, got: {value!r}")


def _validate(config: Dict[str, Any]) -> None:
    sources = config["credential_sources"]
    if isinstance(sources, str):
        sources = [sources]
        config["credential_sources"] = sources
    if not isinstance(sources, list) or not sources:
        raise ConfigError("'credential_sources' must be a non-empty list")
    unknown = [s for s in sources if s not in CREDENTIAL_SOURCES]
    if unknown:
        raise ConfigError(
            f"Unsupported credential source(s): {', '.join(map(str, unknown))}\n"
            f"Supported sources: {', '.join(CREDENTIAL_SOURCES)}"
        )

    if config["vault"]["kv_version"] not in (1, 2):
        raise ConfigError(f"'vault.kv_version' must be 1 or 2, got: {config['vault']['kv_version']!r}")

    _positive_number(config, "vault", "timeout")
    _positive_number(config, "nomad", "timeout")
    _positive_number(config, "status_check", "poll_interval")
    _positive_number(config, "status_check", "max_attempts", integer=True)

    for section, key in (("nomad", "job_name"), ("nomad", "token_header"), ("secrets", "nomad_path")):
        if not config[section][key]:
            raise ConfigError(f"'{section}.{key}' cannot be empty")


def load_config(config_path: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Load configuration, layering the YAML file and environment over the defaults.

    Args:
        config_path: Explicit config file path (``--config``)
        environ: Environment mapping, defaults to ``os.environ``

    Returns:
        Dict containing the full configuration. ``vault.token`` holds the
        VAULT_TOKEN value (or None) and is never read from the file.

    Raises:
        ConfigError: If a config file exists but is empty, malformed or invalid
    """
    environ = os.environ if environ is None else environ

    # Resolved on every call so a preference change applies immediately
    resolved_path = _get_config_path(config_path)

    config = copy.deepcopy(DEFAULT_CONFIG)
    if resolved_path:
        config = _merge(config, _read_config_file(resolved_path))
        logger.info(f"Configuration loaded successfully from {resolved_path}")

    if environ.get("VAULT_ADDR"):
        config["vault"]["address"] = environ["VAULT_ADDR"]
    config["vault"]["token"] = environ.get("VAULT_TOKEN") or None
    if environ.get("GCP_PROJECT"):
        config["gcp"]["project_id"] = environ["GCP_PROJECT"]

    _validate(config)

    logger.debug(f"Using Vault address: {config['vault']['address']}")
    logger.debug(f"Using credential sources: {config['credential_sources']}")

    return config
