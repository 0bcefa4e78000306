"""CLI entrypoint for vault-nomad-deploy."""
import argparse
import logging
import os
import sys
from pathlib import Path

import yaml

from .. import VERSION
from ..deploy.domains.models import ExecutionMode, JobState, SubmissionFailed
from ..deploy.domains.nomad_client import NomadClient
from ..deploy.workflows.submission import deploy
from ..secrets.domains.config_loader import CREDENTIAL_SOURCES, DEFAULT_CONFIG, default_config_path, load_config
from ..secrets.domains.models import CredentialUnavailable, VaultUnavailable
from ..secrets.domains.vault_client import VaultSecretClient
from ..secrets.workflows.bootstrap import bootstrap_vault
from ..secrets.workflows.secret_operations import (
    get_secret_field,
    resolve_dashboard_credentials,
    resolve_nomad_credentials,
)
from .validators import validate_field_name, validate_http_url, validate_secret_path

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _configure_verbosity(verbose: int) -> None:
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.getLogger().setLevel(level)


def detect_execution_mode(environ) -> ExecutionMode:
    """GitHub Actions sets GITHUB_ACTIONS; anything else is a local run."""
    return ExecutionMode.AUTOMATED if environ.get("GITHUB_ACTIONS") else ExecutionMode.LOCAL


def _vault_client(config) -> VaultSecretClient:
    validate_http_url(config["vault"]["address"], "Vault address")
    if not config["vault"].get("token"):
        print("Error: VAULT_TOKEN is not set", file=sys.stderr)
        sys.exit(1)
    return VaultSecretClient.from_config(config)


def cmd_version(args):
    """Show version information."""
    print(f"vault-nomad-deploy {VERSION}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from vault_nomad_deploy.secrets.domains.preferences import set_preference

    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path."""
    from vault_nomad_deploy.secrets.domains.preferences import get_preference

    config_path_pref = get_preference("config_path")

    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            print(f"Config path: {config_path}")
        else:
            print(f"Config path (from preference, but file not found): {config_path}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        if default_config.exists():
            print("Source: default")
        else:
            print("Source: default (file not found, built-in defaults in use)")


def cmd_config_clear(args):
    """Clear config path preference."""
    from vault_nomad_deploy.secrets.domains.preferences import clear_preference

    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def cmd_config_init(args):
    """Write a starter config file with the built-in defaults."""
    target = Path(args.path).expanduser() if args.path else default_config_path()

    if target.exists() and not args.force:
        print(f"Configuration file already exists at: {target}", file=sys.stderr)
        print("Use --force to overwrite it.", file=sys.stderr)
        sys.exit(1)

    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, 'w') as f:
        yaml.safe_dump(DEFAULT_CONFIG, f, default_flow_style=False, sort_keys=False)
    print(f"Config written to: {target}")


def cmd_secrets_get(args):
    """Get a single field from Vault."""
    validate_secret_path(args.path)
    validate_field_name(args.field)

    config = load_config(args.config)
    client = _vault_client(config)

    try:
        value = get_secret_field(client, args.path, args.field)
    except CredentialUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.quiet:
        print(value)
    else:
        print(f"Field '{args.field}' at '{args.path}': {value}")


def cmd_secrets_dashboard(args):
    """Show the Traefik dashboard credentials stored in Vault."""
    config = load_config(args.config)
    client = _vault_client(config)

    try:
        dashboard = resolve_dashboard_credentials(client, config)
    except CredentialUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Username: {dashboard.username}")
    if args.show_password:
        print(f"Password: {dashboard.password}")
    else:
        print("Password: ******** (use --show-password to reveal)")
    print(f"Basic auth: {dashboard.auth}")


def cmd_setup(args):
    """Seed Vault with the Traefik deployment secrets."""
    config = load_config(args.config)
    vault = _vault_client(config)

    nomad_client = None
    nomad_token = os.environ.get("NOMAD_TOKEN")
    if nomad_token:
        nomad_address = os.environ.get("NOMAD_ADDR") or config["nomad"]["address"]
        validate_http_url(nomad_address, "Nomad address")
        nomad_client = NomadClient(
            nomad_address,
            nomad_token,
            token_header=config["nomad"]["token_header"],
            timeout=config["nomad"]["timeout"],
        )
    else:
        logger.warning("NOMAD_TOKEN is not set, the Nomad token for CI will not be created")

    print(f"Setting up Vault integration at {vault.address}...")
    try:
        report = bootstrap_vault(vault, config, nomad_client=nomad_client)
    except VaultUnavailable as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    for path in report.created:
        print(f"Created: {path}")
    for path in report.reused:
        print(f"Already present: {path}")
    for warning in report.warnings:
        print(f"Warning: {warning}", file=sys.stderr)

    if report.dashboard_password:
        print("\nDashboard Credentials:")
        print(f"   Username: {report.dashboard_username}")
        print(f"   Password: {report.dashboard_password}")
        print(f"   (Stored in Vault at {config['secrets']['dashboard_path']})")

    print("\nSuccess: Vault integration setup complete")
    print("Next steps:")
    print(f"  1. Update the CI secret VAULT_TOKEN with the token stored at {config['secrets']['vault_token_path']}")
    print("  2. Deploy Traefik with 'vault-deploy deploy'")


def _apply_deploy_overrides(config, args) -> None:
    if args.credential_source:
        config["credential_sources"] = args.credential_source
    if args.job_name:
        config["nomad"]["job_name"] = args.job_name
    if args.poll_interval is not None:
        config["status_check"]["poll_interval"] = args.poll_interval
    if args.max_attempts is not None:
        config["status_check"]["max_attempts"] = args.max_attempts
    if args.strict:
        config["status_check"]["fail_on_not_running"] = True


def cmd_deploy(args):
    """Resolve Nomad credentials and submit the job."""
    config = load_config(args.config)
    _apply_deploy_overrides(config, args)

    job_file = args.job_file or config["nomad"]["job_file"]
    mode = ExecutionMode(args.mode) if args.mode else detect_execution_mode(os.environ)

    if "vault" in config["credential_sources"]:
        validate_http_url(config["vault"]["address"], "Vault address")

    print("Retrieving deployment credentials...")
    try:
        credentials = resolve_nomad_credentials(config)
    except CredentialUnavailable as e:
        print(f"Error: Failed to retrieve Nomad credentials: {e}", file=sys.stderr)
        print("Please ensure:", file=sys.stderr)
        print(f"  1. Vault is accessible at {config['vault']['address']}", file=sys.stderr)
        print("  2. VAULT_TOKEN is valid", file=sys.stderr)
        print(f"  3. Secrets exist at {config['vault']['kv_mount']}/{config['secrets']['nomad_path']}",
              file=sys.stderr)
        sys.exit(1)

    print(f"Retrieved Nomad credentials from {credentials.source}")
    print(f"Nomad API endpoint: {credentials.address}")
    print(f"Execution mode: {mode.value}")

    def report_submission(submission):
        print("Job submitted successfully")
        print(f"Evaluation ID: {submission.eval_id_display}")

    try:
        outcome = deploy(credentials, job_file, mode, config, on_submitted=report_submission)
    except SubmissionFailed as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.body is not None:
            print(f"Response: {e.body}", file=sys.stderr)
        sys.exit(1)

    if mode is ExecutionMode.AUTOMATED:
        observation = outcome.observation
        print(f"Job Status: {observation.status}")

        if outcome.running:
            print(f"Success: {config['nomad']['job_name']} is running")
        else:
            if observation.state is JobState.TIMED_OUT:
                message = (f"{config['nomad']['job_name']} not running after "
                           f"{observation.attempts} status check(s), last status: {observation.status}")
            else:
                message = f"{config['nomad']['job_name']} status: {observation.status}"
            print(f"Warning: {message}", file=sys.stderr)
            if config["status_check"]["fail_on_not_running"]:
                sys.exit(1)

    print("Deployment complete")


def main():
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (credentials, Vault, submission, strict status check, etc.)
        2 - Usage errors (invalid arguments, invalid paths, etc.)
    """
    parser = argparse.ArgumentParser(
        prog="vault-deploy",
        description="Store Traefik deployment secrets in Vault and submit the Traefik job to Nomad",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (credentials unavailable, Vault unreachable, submission failed, etc.)
  2 - Usage error (invalid arguments, invalid secret path, etc.)

Environment variables:
  VAULT_ADDR      - Vault address (overrides config file)
  VAULT_TOKEN     - Vault token (never read from the config file)
  GCP_PROJECT     - GCP project ID for the 'gcp' credential source
  NOMAD_TOKEN     - Used by the 'env' credential source and by 'setup'
  NOMAD_ADDR      - Used by the 'env' credential source and by 'setup'
  GITHUB_ACTIONS  - Selects automated mode for 'deploy' when --mode is not given

Configuration:
  Default location: ~/.config/vault-nomad-deploy/config.yml
  Custom path: Set with 'vault-deploy config set-path <path>'
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Increase log output (-v info, -vv debug)")
    parser.add_argument("--config", help="Path to config file (overrides preference and default location)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of vault-nomad-deploy"
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage vault-nomad-deploy configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_set_path_parser = config_subparsers.add_parser(
        "set-path",
        help="Set config file path",
        description="Store the absolute config file path in ~/.config/vault-nomad-deploy/preferences.json"
    )
    config_set_path_parser.add_argument("path", help="Path to config file")

    config_subparsers.add_parser(
        "show",
        help="Show current config path",
        description="Display the current configuration file path and its source (preference or default)"
    )
    config_subparsers.add_parser(
        "clear",
        help="Clear config path preference",
        description="Remove the config path preference so the default location is used"
    )
    config_init_parser = config_subparsers.add_parser(
        "init",
        help="Write a starter config file",
        description="Write the built-in defaults to a YAML config file for editing"
    )
    config_init_parser.add_argument("--path", help="Where to write the file (default location if omitted)")
    config_init_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")

    # secrets command
    secrets_parser = subparsers.add_parser(
        "secrets",
        help="Secret operations",
        description="Read secrets from Vault"
    )
    secrets_subparsers = secrets_parser.add_subparsers(dest="secrets_command")

    get_parser = secrets_subparsers.add_parser(
        "get",
        help="Get a secret field",
        description="""
Fetch one field of a KV secret from Vault.

Exit codes:
  0 - Field found and printed
  1 - Field missing, empty, or Vault lookup failed
  2 - Invalid path or field name
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    get_parser.add_argument("path", help="KV path relative to the mount (e.g. traefik/nomad)")
    get_parser.add_argument("field", help="Field name (e.g. token)")
    get_parser.add_argument("-q", "--quiet", action="store_true",
                            help="Output only the value (useful for scripts)")

    dashboard_parser = secrets_subparsers.add_parser(
        "dashboard",
        help="Show the dashboard credentials",
        description="Show the Traefik dashboard username, password and basic-auth entry stored by 'setup'"
    )
    dashboard_parser.add_argument("--show-password", action="store_true",
                                  help="Print the password instead of masking it")

    # setup command
    subparsers.add_parser(
        "setup",
        help="Seed Vault with Traefik secrets",
        description="""
Store the Nomad token, dashboard credentials, certificate storage settings,
Traefik policy and a periodic Traefik Vault token. Existing Nomad and
dashboard secrets are kept.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # deploy command
    deploy_parser = subparsers.add_parser(
        "deploy",
        help="Submit the Traefik job to Nomad",
        description="""
Resolve Nomad credentials, submit the job and wait for it to run.

In automated mode the job is converted to JSON and posted to the Nomad API,
then its status is polled. In local mode the nomad CLI submits it.
A job that is not running is reported as a warning unless --strict is given.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    deploy_parser.add_argument("--job-file", help="Job file to submit (default from config: traefik.nomad)")
    deploy_parser.add_argument("--job-name", help="Job name to check status for (default from config: traefik)")
    deploy_parser.add_argument("--mode", choices=[m.value for m in ExecutionMode],
                               help="Execution mode (default: automated when GITHUB_ACTIONS is set, else local)")
    deploy_parser.add_argument("--strict", action="store_true",
                               help="Exit 1 when the job is not running after submission")
    deploy_parser.add_argument("--poll-interval", type=float, help="Seconds to wait before each status check")
    deploy_parser.add_argument("--max-attempts", type=int, help="Maximum number of status checks")
    deploy_parser.add_argument("--credential-source", action="append", choices=CREDENTIAL_SOURCES,
                               help="Credential source to try, in order (repeatable; default from config: vault)")

    args = parser.parse_args()
    _configure_verbosity(args.verbose)

    # If no command provided, show help and exit with usage error code
    if not args.command:
        parser.print_help()
        sys.exit(2)

    if args.command == "deploy":
        if args.poll_interval is not None and args.poll_interval <= 0:
            parser.error("--poll-interval must be positive")
        if args.max_attempts is not None and args.max_attempts < 1:
            parser.error("--max-attempts must be at least 1")

    try:
        if args.command == "version":
            cmd_version(args)
        elif args.command == "config":
            if args.config_command == "set-path":
                cmd_config_set_path(args)
            elif args.config_command == "show":
                cmd_config_show(args)
            elif args.config_command == "clear":
                cmd_config_clear(args)
            elif args.config_command == "init":
                cmd_config_init(args)
            else:
                config_parser.print_help()
                sys.exit(2)
        elif args.command == "secrets":
            if args.secrets_command == "get":
                cmd_secrets_get(args)
            elif args.secrets_command == "dashboard":
                cmd_secrets_dashboard(args)
            else:
                secrets_parser.print_help()
                sys.exit(2)
        elif args.command == "setup":
            cmd_setup(args)
        elif args.command == "deploy":
            cmd_deploy(args)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
