"""Input validation for CLI arguments."""
import re
import sys
from urllib.parse import urlparse


def validate_secret_path(path: str) -> None:
    """
    Validate a KV path relative to the mount, such as ``traefik/nomad``.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not path:
        print("Error: Secret path cannot be empty", file=sys.stderr)
        sys.exit(2)

    # Segments of letters, numbers, underscores, hyphens and dots, separated by single slashes
    pattern = r'^[A-Za-z0-9_.-]+(/[A-Za-z0-9_.-]+)*$'

    if not re.match(pattern, path):
        print(f"Error: Invalid secret path '{path}'", file=sys.stderr)
        print("\nPaths are relative to the KV mount, without leading or trailing slashes.", file=sys.stderr)
        print("\nExamples of valid paths:", file=sys.stderr)
        print("  ✓ traefik/nomad", file=sys.stderr)
        print("  ✓ traefik/dashboard", file=sys.stderr)
        print("\nExamples of invalid paths:", file=sys.stderr)
        print("  ✗ /traefik/nomad (leading slash)", file=sys.stderr)
        print("  ✗ traefik//nomad (empty segment)", file=sys.stderr)
        sys.exit(2)


def validate_field_name(field: str) -> None:
    if not field or not re.match(r'^[A-Za-z0-9_-]+$', field):
        print(f"Error: Invalid field name '{field}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_), hyphens (-)", file=sys.stderr)
        sys.exit(2)


def validate_http_url(url: str, name: str) -> None:
    """
    Validate that a service address is an http(s) URL.

    Raises:
        SystemExit with code 2 if validation fails
    """
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        print(f"Error: {name} must be an http(s) URL, got '{url}'", file=sys.stderr)
        print(f"\nExample: https://{name.lower().split()[0]}.example.com", file=sys.stderr)
        sys.exit(2)
